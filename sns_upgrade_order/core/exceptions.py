"""
Custom exception classes for upgrade-order validation.

Only ConfigurationError (and failures during pre-flight) terminate the
process; every other error is contained to the ordering it occurred in.
"""


class UpgradeOrderError(Exception):
    """Base exception for all upgrade-order validation errors"""

    def __init__(self, message: str, remediation: str = None):
        self.message = message
        self.remediation = remediation
        super().__init__(self.message)


class ConfigurationError(UpgradeOrderError):
    """Raised for bad CLI arguments or missing environment bindings"""

    pass


class CommandError(ConfigurationError):
    """Raised when a configured binary cannot be started at all"""

    pass


class TransientNetworkError(UpgradeOrderError):
    """Raised when a call to the NNS/SNS fails and may succeed on retry"""

    pass


class ProvisioningError(UpgradeOrderError):
    """Raised when a fresh SNS deployment cannot be created"""

    pass


class IntegrityError(UpgradeOrderError):
    """Raised when compressed and decompressed artifact hashes coincide"""

    pass


class UpgradeTimeoutError(UpgradeOrderError):
    """Raised when a canister never converges on the target within its deadline"""

    pass
