"""
Upgrade passes and polling.

Provides the compressed upgrade driver, the decompressed integrity checker,
the SNS-W baseline restoration run before each deployment and the
deadline-bounded poller they share.
"""

from .baseline import SnsWasmBaseline
from .integrity_checker import ArtifactIntegrityChecker
from .polling import Deadline, Poller
from .upgrade_driver import UpgradeDriver

__all__ = [
    "ArtifactIntegrityChecker",
    "Deadline",
    "Poller",
    "SnsWasmBaseline",
    "UpgradeDriver",
]
