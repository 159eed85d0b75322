"""
Application enumerations for type safety and clear intent definitions.

Centralized enum definitions for canister types, artifact variants, per-step
outcomes and the per-ordering state machine.
"""

from enum import Enum


class CanisterType(Enum):
    """SNS canister types known to SNS-W."""

    ROOT = "root"
    GOVERNANCE = "governance"
    LEDGER = "ledger"
    SWAP = "swap"
    ARCHIVE = "archive"
    INDEX = "index"

    @property
    def wasm_name(self) -> str:
        """Name of the build artifact published for this canister type."""
        return WASM_NAMES[self]


WASM_NAMES = {
    CanisterType.ROOT: "sns-root-canister",
    CanisterType.GOVERNANCE: "sns-governance-canister",
    CanisterType.LEDGER: "ic-icrc1-ledger",
    CanisterType.SWAP: "sns-swap-canister",
    CanisterType.ARCHIVE: "ic-icrc1-archive",
    CanisterType.INDEX: "ic-icrc1-index",
}


class ArtifactVariant(Enum):
    """Delivery form of an upgrade artifact."""

    COMPRESSED = "compressed"
    DECOMPRESSED = "decompressed"


class StepOutcome(Enum):
    """Outcome of a single upgrade attempt."""

    PASSED = "passed"
    TIMEOUT = "timeout"
    INTEGRITY_FAILURE = "integrity_failure"


class OrderingOutcome(Enum):
    """Final status of one ordering in the sweep."""

    PASSED = "passed"
    UPGRADE_TIMEOUT = "upgrade_timeout"
    INTEGRITY_FAILURE = "integrity_failure"
    PROVISIONING_FAILED = "provisioning_failed"
    UNEXPECTED_ERROR = "unexpected_error"


class OrderingState(Enum):
    """States of the per-ordering state machine."""

    INIT = "init"
    PROVISIONED = "provisioned"
    UPLOADING = "uploading"
    PROPOSING = "proposing"
    POLLING = "polling"
    VERSION_OK = "version_ok"
    TIMEOUT = "timeout"
    INTEGRITY_CHECK = "integrity_check"
    HASH_DIFF_OK = "hash_diff_ok"
    HASH_MISMATCH = "hash_mismatch"
    RE_UPGRADE = "re_upgrade"
    CONTENT_HASH_OK = "content_hash_ok"
    DONE = "done"
    ABORTED_ORDERING = "aborted_ordering"
