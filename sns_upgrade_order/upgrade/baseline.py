"""
SNS-W baseline restoration.

`sns deploy` builds a new SNS from SNS-W's latest version, and every WASM
added to SNS-W becomes part of that latest version. Once an ordering has
published the target WASMs, the next deployment would already start on the
target. Before each deployment the baseline WASMs are therefore published
again, so every ordering starts from the same version and the target is the
next version on its upgrade path.
"""

from loguru import logger

from ..config import ValidatorConfig
from ..connectivity.artifact_store import ArtifactStore
from ..connectivity.governance_client import GovernanceClient
from ..connectivity.provisioner import DEPLOYED_TYPES
from ..core.dataclasses import Ordering
from ..core.exceptions import (
    IntegrityError,
    ProvisioningError,
    TransientNetworkError,
    UpgradeTimeoutError,
)
from ..progress.result_log import ResultLog
from .polling import Poller
from .upgrade_driver import publish_artifact


class SnsWasmBaseline:
    """Puts SNS-W's latest version back to the baseline version."""

    def __init__(
        self,
        config: ValidatorConfig,
        artifacts: ArtifactStore,
        governance: GovernanceClient,
        poller: Poller,
        result_log: ResultLog,
    ):
        if not config.baseline_version:
            raise ValueError("baseline_version must be resolved before the sweep")
        self.config = config
        self.artifacts = artifacts
        self.governance = governance
        self.poller = poller
        self.result_log = result_log

    @property
    def version(self) -> str:
        return self.config.baseline_version

    def restore(self, ordering: Ordering) -> None:
        """
        Publish whichever baseline WASMs SNS-W no longer treats as latest.

        Raises:
            ProvisioningError: If SNS-W cannot be put back in time
        """
        self.result_log.progress(
            f"Restoring SNS-W upgrade path to {self.version}", ordering
        )
        deadline = self.poller.deadline()
        for canister_type in DEPLOYED_TYPES:
            name = canister_type.value
            try:
                artifact = self.poller.retry(
                    lambda: self.artifacts.compressed(canister_type, self.version),
                    f"Fetching baseline {name} WASM",
                    deadline,
                )
                publish_artifact(
                    self.governance,
                    self.poller,
                    artifact,
                    f"baseline {name} WASM",
                    deadline,
                )
            except (UpgradeTimeoutError, TransientNetworkError, IntegrityError) as e:
                raise ProvisioningError(
                    f"Could not restore baseline {name} WASM in SNS-W: {e.message}"
                ) from e
        logger.debug(f"SNS-W latest version is baseline {self.version}")
