"""
Decompressed-artifact integrity pass over one ordering.

Runs after the compressed pass upgraded every canister. For each canister
type it checks that decompressing the gzipped WASM really changes the bytes,
then upgrades the canister again from the decompressed WASM and waits until
the installed module hash equals the decompressed hash.
"""

from typing import List, Optional, Tuple

from loguru import logger

from ..config import ValidatorConfig
from ..connectivity.artifact_store import ArtifactStore
from ..connectivity.governance_client import GovernanceClient
from ..core.dataclasses import DeploymentInstance, Ordering, UpgradeAttempt
from ..core.enums import ArtifactVariant, CanisterType, OrderingState, StepOutcome
from ..core.exceptions import IntegrityError, UpgradeTimeoutError
from ..progress.result_log import ResultLog
from .polling import Poller
from .upgrade_driver import StateCallback, failure_line, publish_artifact

SAME_HASH_MESSAGE = "Hashes were the same, aborting rest of test..."


class ArtifactIntegrityChecker:
    """Checks that gzipped and plain WASM delivery converge."""

    variant = ArtifactVariant.DECOMPRESSED

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
        attempts = []
        for step, canister_type in enumerate(ordering, start=1):
            self.active_step = (step, canister_type)
            attempt = self.check_step(
                ordering, step, canister_type, deployment, on_state
            )
            self.result_log.record(attempt)
            attempts.append(attempt)
            if not attempt.passed:
                break
        self.active_step = None
        return attempts

    def check_step(
        self,
        ordering: Ordering,
        step: int,
        canister_type: CanisterType,
        deployment: DeploymentInstance,
        on_state: StateCallback,
    ) -> UpgradeAttempt:
        name = canister_type.value
        canister_id = deployment.canister_id(canister_type)
        deadline = self.poller.deadline()
        log = self.result_log.bind(ordering, step)

        log.progress(f"Uploading ungzipped {name} WASM to SNS-W")
        try:
            compressed = self.poller.retry(
                lambda: self.artifacts.compressed(canister_type),
                f"Fetching {name} WASM",
                deadline,
            )
            decompressed = self.artifacts.decompress(compressed)
            if decompressed.sha256 == compressed.sha256:
                raise IntegrityError(SAME_HASH_MESSAGE)
        except IntegrityError as e:
            on_state(OrderingState.HASH_MISMATCH)
            log.failure(e.message)
            return UpgradeAttempt(
                ordering, step, canister_type, self.variant,
                StepOutcome.INTEGRITY_FAILURE, e.message,
            )
        except UpgradeTimeoutError as e:
            on_state(OrderingState.TIMEOUT)
            log.failure(failure_line(ordering, canister_type))
            return UpgradeAttempt(
                ordering, step, canister_type, self.variant, StepOutcome.TIMEOUT,
                e.message,
            )

        on_state(OrderingState.HASH_DIFF_OK)
        logger.debug(
            f"{name}: gz {compressed.sha256[:12]} != wasm {decompressed.sha256[:12]}"
        )

        try:
            on_state(OrderingState.RE_UPGRADE)
            publish_artifact(
                self.governance,
                self.poller,
                decompressed,
                f"ungzipped {name} WASM",
                deadline,
            )
            self.poller.retry(
                lambda: self.governance.propose_upgrade(
                    deployment, canister_type, decompressed
                ),
                f"Proposing ungzipped {name} upgrade",
                deadline,
            )
            self.poller.until(
                lambda: self.governance.module_hash(canister_id),
                lambda module_hash: module_hash == decompressed.sha256,
                f"{name} ({canister_id}) installing module {decompressed.sha256}",
                deadline,
            )
        except UpgradeTimeoutError as e:
            on_state(OrderingState.TIMEOUT)
            log.failure("Subsequent upgrade failed.")
            log.failure(failure_line(ordering, canister_type))
            return UpgradeAttempt(
                ordering, step, canister_type, self.variant, StepOutcome.TIMEOUT,
                e.message,
            )

        on_state(OrderingState.CONTENT_HASH_OK)
        log.progress(f"{name} is running ungzipped WASM {decompressed.sha256}")
        return UpgradeAttempt(
            ordering, step, canister_type, self.variant, StepOutcome.PASSED,
            f"{name} module hash matches ungzipped WASM",
        )
