"""
Compressed-artifact upgrade pass over one ordering.

For each canister type in order: publish the gzipped WASM to SNS-W, propose
the upgrade on the ordering's own SNS, then poll the canister's reported
git commit until it matches the target. Steps run strictly one after the
other; the first step that misses its deadline ends the pass.
"""

from typing import Callable, List, Optional, Tuple

from loguru import logger

from ..config import ValidatorConfig
from ..connectivity.artifact_store import ArtifactStore
from ..connectivity.governance_client import GovernanceClient
from ..core.dataclasses import (
    ArtifactReference,
    DeploymentInstance,
    Ordering,
    UpgradeAttempt,
    format_ordering,
)
from ..core.enums import ArtifactVariant, CanisterType, OrderingState, StepOutcome
from ..core.exceptions import UpgradeTimeoutError
from ..progress.result_log import ResultLog
from .polling import Deadline, Poller

StateCallback = Callable[[OrderingState], None]


def failure_line(ordering: Ordering, canister_type: CanisterType) -> str:
    return (
        f"Failed upgrade for '{format_ordering(ordering)}' "
        f"on step upgrading '{canister_type.value}'"
    )


def publish_artifact(
    governance: GovernanceClient,
    poller: Poller,
    artifact: ArtifactReference,
    description: str,
    deadline: Deadline,
) -> None:
    """Publish to SNS-W and wait until SNS-W upgrades to the artifact."""
    if poller.retry(
        lambda: governance.publish_wasm(artifact),
        f"Publishing {description}",
        deadline,
    ):
        poller.until(
            lambda: governance.publish_settled(artifact),
            bool,
            f"SNS-W serving {description} as latest",
            deadline,
        )


class UpgradeDriver:
    """Upgrades every canister of an ordering to the target version."""

    variant = ArtifactVariant.COMPRESSED

    def __init__(
        self,
        config: ValidatorConfig,
        artifacts: ArtifactStore,
        governance: GovernanceClient,
        poller: Poller,
        result_log: ResultLog,
    ):
        self.config = config
        self.artifacts = artifacts
        self.governance = governance
        self.poller = poller
        self.result_log = result_log
        self.active_step: Optional[Tuple[int, CanisterType]] = None

    def run(
        self,
        ordering: Ordering,
        deployment: DeploymentInstance,
        on_state: StateCallback,
    ) -> List[UpgradeAttempt]:
        """
        Run the pass, stopping at the first failed step.

        Returns:
            Recorded attempts, one per step executed
        """
        attempts = []
        for step, canister_type in enumerate(ordering, start=1):
            self.active_step = (step, canister_type)
            attempt = self.upgrade_step(
                ordering, step, canister_type, deployment, on_state
            )
            self.result_log.record(attempt)
            attempts.append(attempt)
            if not attempt.passed:
                break
        self.active_step = None
        return attempts

    def upgrade_step(
        self,
        ordering: Ordering,
        step: int,
        canister_type: CanisterType,
        deployment: DeploymentInstance,
        on_state: StateCallback,
    ) -> UpgradeAttempt:
        name = canister_type.value
        target = self.config.target_version
        canister_id = deployment.canister_id(canister_type)
        deadline = self.poller.deadline()
        log = self.result_log.bind(ordering, step)

        try:
            on_state(OrderingState.UPLOADING)
            log.progress(f"Uploading {name} WASM to SNS-W")
            artifact = self.poller.retry(
                lambda: self.artifacts.compressed(canister_type),
                f"Fetching {name} WASM",
                deadline,
            )
            publish_artifact(
                self.governance, self.poller, artifact, f"{name} WASM", deadline
            )

            on_state(OrderingState.PROPOSING)
            self.poller.retry(
                lambda: self.governance.propose_upgrade(
                    deployment, canister_type, artifact
                ),
                f"Proposing {name} upgrade",
                deadline,
            )

            on_state(OrderingState.POLLING)
            log.progress("Waiting for upgrade...")
            self.poller.until(
                lambda: self.governance.canister_version(canister_id),
                lambda version: version == target,
                f"{name} ({canister_id}) reaching version {target}",
                deadline,
            )
        except UpgradeTimeoutError as e:
            on_state(OrderingState.TIMEOUT)
            log.failure(failure_line(ordering, canister_type))
            logger.debug(e.message)
            return UpgradeAttempt(
                ordering, step, canister_type, self.variant, StepOutcome.TIMEOUT,
                e.message,
            )

        on_state(OrderingState.VERSION_OK)
        log.progress(f"{name} is running {target}")
        return UpgradeAttempt(
            ordering, step, canister_type, self.variant, StepOutcome.PASSED,
            f"{name} upgraded to {target}",
        )
