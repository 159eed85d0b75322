"""
Application-wide constants and configuration defaults.

Centralized defaults for polling, deadlines, well-known canister ids and
artifact locations used across the validator.
"""

from typing import Final

# ==============================================================================
# POLLING AND DEADLINE CONSTANTS
# ==============================================================================

POLLING_INTERVAL: Final[float] = 10.0  # seconds between version checks
STEP_DEADLINE: Final[float] = 600.0  # seconds per publish/propose/poll step
COMMAND_TIMEOUT: Final[float] = 300.0  # seconds for a single external command
HTTP_TIMEOUT: Final[float] = 60.0  # seconds

# ==============================================================================
# NNS CONSTANTS
# ==============================================================================

SNS_WASM_CANISTER_ID: Final[str] = "qaa6y-5yaaa-aaaaa-aaafa-cai"
NNS_GOVERNANCE_CANISTER_ID: Final[str] = "rrkah-fqaaa-aaaaa-aaaaq-cai"
GIT_COMMIT_METADATA: Final[str] = "git_commit_id"

# ==============================================================================
# ARTIFACT CONSTANTS
# ==============================================================================

DEFAULT_ARTIFACT_BASE_URL: Final[str] = "https://download.dfinity.systems/ic"
NNS_GOVERNANCE_WASM_NAME: Final[str] = "governance-canister_test"
GZIP_MAGIC: Final[bytes] = b"\x1f\x8b"

# ==============================================================================
# LOGGING CONSTANTS
# ==============================================================================

MODULE_LOG_FORMAT: Final[str] = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan> - {message}"
)
