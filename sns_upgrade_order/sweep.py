"""
Permutation sweep orchestration.

Drives every ordering through its own state machine:

    INIT -> PROVISIONED -> {UPLOADING -> PROPOSING -> POLLING -> VERSION_OK}*
         -> INTEGRITY_CHECK -> {HASH_DIFF_OK -> RE_UPGRADE -> CONTENT_HASH_OK}*
         -> DONE

TIMEOUT and HASH_MISMATCH lead to ABORTED_ORDERING, which ends that ordering
only. An unexpected error moves any live state straight to ABORTED_ORDERING.
The sweep always moves on to the next ordering; nothing short of a
ConfigurationError stops it.
"""

import time
from typing import Dict, FrozenSet, Iterable

from loguru import logger

from .config import ValidatorConfig
from .connectivity.artifact_store import ArtifactStore
from .connectivity.governance_client import GovernanceClient
from .connectivity.provisioner import SnsProvisioner
from .core.constants import NNS_GOVERNANCE_CANISTER_ID
from .core.dataclasses import (
    Ordering,
    OrderingResult,
    SweepSummary,
    format_ordering,
)
from .core.enums import OrderingOutcome, OrderingState, StepOutcome
from .core.exceptions import (
    ConfigurationError,
    ProvisioningError,
    TransientNetworkError,
)
from .progress.result_log import ResultLog
from .upgrade.baseline import SnsWasmBaseline
from .upgrade.integrity_checker import ArtifactIntegrityChecker
from .upgrade.polling import Poller
from .upgrade.upgrade_driver import UpgradeDriver, failure_line

S = OrderingState

TRANSITIONS: Dict[OrderingState, FrozenSet[OrderingState]] = {
    S.INIT: frozenset({S.PROVISIONED, S.ABORTED_ORDERING}),
    S.PROVISIONED: frozenset({S.UPLOADING, S.ABORTED_ORDERING}),
    S.UPLOADING: frozenset({S.PROPOSING, S.TIMEOUT, S.ABORTED_ORDERING}),
    S.PROPOSING: frozenset({S.POLLING, S.TIMEOUT, S.ABORTED_ORDERING}),
    S.POLLING: frozenset({S.VERSION_OK, S.TIMEOUT, S.ABORTED_ORDERING}),
    S.VERSION_OK: frozenset({S.UPLOADING, S.INTEGRITY_CHECK, S.ABORTED_ORDERING}),
    S.INTEGRITY_CHECK: frozenset(
        {S.HASH_DIFF_OK, S.HASH_MISMATCH, S.TIMEOUT, S.ABORTED_ORDERING}
    ),
    S.HASH_DIFF_OK: frozenset({S.RE_UPGRADE, S.ABORTED_ORDERING}),
    S.RE_UPGRADE: frozenset({S.CONTENT_HASH_OK, S.TIMEOUT, S.ABORTED_ORDERING}),
    S.CONTENT_HASH_OK: frozenset(
        {S.HASH_DIFF_OK, S.HASH_MISMATCH, S.TIMEOUT, S.DONE, S.ABORTED_ORDERING}
    ),
    S.TIMEOUT: frozenset({S.ABORTED_ORDERING}),
    S.HASH_MISMATCH: frozenset({S.ABORTED_ORDERING}),
    S.DONE: frozenset(),
    S.ABORTED_ORDERING: frozenset(),
}


class InvalidTransition(RuntimeError):
    pass


class OrderingStateMachine:
    """Tracks and validates the state of one ordering."""

    def __init__(self, result: OrderingResult):
        self.result = result

    @property
    def state(self) -> OrderingState:
        return self.result.state

    @property
    def terminal(self) -> bool:
        return not TRANSITIONS[self.state]

    def advance(self, new_state: OrderingState) -> None:
        if new_state not in TRANSITIONS[self.state]:
            raise InvalidTransition(
                f"'{format_ordering(self.result.ordering)}': "
                f"{self.state.value} -> {new_state.value} is not allowed"
            )
        logger.debug(
            f"'{format_ordering(self.result.ordering)}': "
            f"{self.state.value} -> {new_state.value}"
        )
        self.result.state = new_state
        self.result.state_history.append(new_state)


STEP_TO_ORDERING_OUTCOME = {
    StepOutcome.TIMEOUT: OrderingOutcome.UPGRADE_TIMEOUT,
    StepOutcome.INTEGRITY_FAILURE: OrderingOutcome.INTEGRITY_FAILURE,
}


class UpgradeSweep:
    """Runs the upgrade passes for every ordering, one at a time."""

    def __init__(
        self,
        config: ValidatorConfig,
        baseline: SnsWasmBaseline,
        provisioner: SnsProvisioner,
        driver: UpgradeDriver,
        checker: ArtifactIntegrityChecker,
        result_log: ResultLog,
    ):
        self.config = config
        self.baseline = baseline
        self.provisioner = provisioner
        self.driver = driver
        self.checker = checker
        self.result_log = result_log

    def run(self, orderings: Iterable[Ordering]) -> SweepSummary:
        summary = SweepSummary(self.config.target_version)
        self.result_log.begin_run()
        for ordering in orderings:
            summary.results.append(self.run_ordering(tuple(ordering)))
        self.result_log.sweep_finished(summary)
        return summary

    def run_ordering(self, ordering: Ordering) -> OrderingResult:
        """
        Process one ordering on a freshly provisioned SNS.

        Only ConfigurationError escapes; anything else ends this ordering.
        """
        result = OrderingResult(ordering, start_time=time.time())
        machine = OrderingStateMachine(result)
        self.result_log.progress(
            f"Testing 'Upgrade Order: {format_ordering(ordering)}'", ordering
        )
        active = None

        try:
            try:
                self.baseline.restore(ordering)
                deployment = self.provisioner.provision(ordering)
            except ProvisioningError as e:
                machine.advance(S.ABORTED_ORDERING)
                result.outcome = OrderingOutcome.PROVISIONING_FAILED
                result.message = e.message
                self.result_log.failure(f"Could not deploy SNS: {e.message}", ordering)
                return self._finish(result)

            machine.advance(S.PROVISIONED)
            try:
                active = self.driver
                attempts = self.driver.run(ordering, deployment, machine.advance)
                result.attempts.extend(attempts)

                if all(attempt.passed for attempt in attempts):
                    active = self.checker
                    machine.advance(S.INTEGRITY_CHECK)
                    result.attempts.extend(
                        self.checker.run(ordering, deployment, machine.advance)
                    )
                active = None
            finally:
                self.provisioner.discard(deployment)
        except ConfigurationError:
            raise
        except Exception as e:
            return self._abort_unexpected(result, machine, active, e)

        last = result.attempts[-1]
        if last.passed:
            machine.advance(S.DONE)
            result.outcome = OrderingOutcome.PASSED
        else:
            machine.advance(S.ABORTED_ORDERING)
            result.outcome = STEP_TO_ORDERING_OUTCOME[last.outcome]
            result.failed_step = last.step
            result.failed_canister = last.canister_type
            result.message = last.message
        return self._finish(result)

    def _abort_unexpected(self, result, machine, active, error) -> OrderingResult:
        ordering = result.ordering
        step = active.active_step if active is not None else None
        result.outcome = OrderingOutcome.UNEXPECTED_ERROR
        result.message = f"{type(error).__name__}: {error}"
        logger.opt(exception=error).error(
            f"Unexpected error in '{format_ordering(ordering)}'"
        )

        if step is None:
            self.result_log.failure(f"Aborting ordering: {result.message}", ordering)
        else:
            result.failed_step, result.failed_canister = step
            self.result_log.failure(
                f"{failure_line(ordering, result.failed_canister)}: {result.message}",
                ordering,
                result.failed_step,
            )
        if not machine.terminal:
            machine.advance(S.ABORTED_ORDERING)
        return self._finish(result)

    def _finish(self, result: OrderingResult) -> OrderingResult:
        result.end_time = time.time()
        self.result_log.ordering_finished(result)
        return result


def check_sns_cli(
    governance: GovernanceClient, nns_version: str, result_log: ResultLog
) -> None:
    """Warn when the sns CLI was not built from NNS governance's revision."""
    try:
        cli_version = governance.sns_cli_version()
    except TransientNetworkError as e:
        result_log.warning(f"Could not determine the sns CLI version: {e.message}")
        return
    if nns_version not in cli_version:
        result_log.warning(
            f"sns CLI reports '{cli_version}' but NNS governance runs {nns_version}; "
            "deployments may not match what NNS governance expects"
        )


def prepare_nns(
    config: ValidatorConfig,
    governance: GovernanceClient,
    artifacts: ArtifactStore,
    poller: Poller,
    result_log: ResultLog,
) -> str:
    """
    Pre-flight: make sure the NNS is reachable and running a governance
    build that accepts the target SNS version.

    Returns:
        The git version NNS governance ran before the pre-flight touched it

    Raises:
        UpgradeOrderError: Any failure here is a setup failure for the run
    """
    governance.check_endpoint()
    nns_version = poller.retry(
        lambda: governance.canister_version(NNS_GOVERNANCE_CANISTER_ID),
        "Reading NNS governance version",
    )
    result_log.info(f"NNS governance is running {nns_version}")
    check_sns_cli(governance, nns_version, result_log)

    if config.skip_nns_upgrade:
        result_log.info("Skipping NNS governance upgrade")
        return nns_version

    target = config.target_version
    result_log.info(f"Upgrading NNS governance to {target}")
    deadline = poller.deadline()
    artifact = poller.retry(
        artifacts.nns_governance, "Fetching NNS governance WASM", deadline
    )
    poller.retry(
        lambda: governance.upgrade_nns_governance(artifact),
        "Proposing NNS governance upgrade",
        deadline,
    )
    poller.until(
        lambda: governance.canister_version(NNS_GOVERNANCE_CANISTER_ID),
        lambda version: version == target,
        f"NNS governance reaching version {target}",
        deadline,
    )
    result_log.info(f"NNS governance is running {target}")
    return nns_version
