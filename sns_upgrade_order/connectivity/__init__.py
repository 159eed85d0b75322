"""
Connectivity module for the NNS, SNS-W and build artifact stores.

Provides the external command wrapper, governance proposals and queries,
artifact download and per-ordering SNS provisioning.
"""

from .artifact_store import ArtifactStore
from .command_runner import CommandRunner
from .governance_client import GovernanceClient
from .provisioner import SnsProvisioner

__all__ = [
    "ArtifactStore",
    "CommandRunner",
    "GovernanceClient",
    "SnsProvisioner",
]
