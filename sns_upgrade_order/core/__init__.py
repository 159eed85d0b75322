"""
Core package for the upgrade-order validator.

Contains fundamental data structures, constants, enumerations, and exceptions
used throughout the validator.
"""

from .dataclasses import (
    ArtifactReference,
    DeploymentInstance,
    Ordering,
    OrderingResult,
    SweepSummary,
    UpgradeAttempt,
    format_ordering,
    sha256_hex,
)
from .enums import (
    ArtifactVariant,
    CanisterType,
    OrderingOutcome,
    OrderingState,
    StepOutcome,
)
from .exceptions import (
    CommandError,
    ConfigurationError,
    IntegrityError,
    ProvisioningError,
    TransientNetworkError,
    UpgradeOrderError,
    UpgradeTimeoutError,
)
from .constants import (
    COMMAND_TIMEOUT,
    POLLING_INTERVAL,
    STEP_DEADLINE,
)

__all__ = [
    # Data classes
    "ArtifactReference",
    "DeploymentInstance",
    "Ordering",
    "OrderingResult",
    "SweepSummary",
    "UpgradeAttempt",
    "format_ordering",
    "sha256_hex",
    # Enums
    "ArtifactVariant",
    "CanisterType",
    "OrderingOutcome",
    "OrderingState",
    "StepOutcome",
    # Exceptions
    "CommandError",
    "ConfigurationError",
    "IntegrityError",
    "ProvisioningError",
    "TransientNetworkError",
    "UpgradeOrderError",
    "UpgradeTimeoutError",
    # Constants
    "COMMAND_TIMEOUT",
    "POLLING_INTERVAL",
    "STEP_DEADLINE",
]
