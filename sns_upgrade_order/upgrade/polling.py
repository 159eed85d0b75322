"""
Deadline-bounded polling with transient error retry.

Every upgrade step gets one Deadline. Publishing, proposing and waiting for
convergence all draw from it; calls that fail with TransientNetworkError
are retried at the fixed polling interval until the deadline runs out, at
which point the step fails with UpgradeTimeoutError.
"""

import time
from typing import Callable, Optional, TypeVar

from loguru import logger

from ..core.constants import POLLING_INTERVAL, STEP_DEADLINE
from ..core.exceptions import TransientNetworkError, UpgradeTimeoutError

T = TypeVar("T")


class Deadline:
    """Point in time after which a step is declared failed."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        self.seconds = seconds
        self.clock = clock
        self.started = clock()

    @property
    def elapsed(self) -> float:
        return self.clock() - self.started

    @property
    def remaining(self) -> float:
        return max(0.0, self.seconds - self.elapsed)

    @property
    def expired(self) -> bool:
        return self.elapsed >= self.seconds


class Poller:
    """
    Blocking, sleep-based retry loop.

    Args:
        interval: Seconds between attempts
        step_deadline: Seconds allowed for one step
        clock: Monotonic clock (injectable for tests)
        sleep: Sleep function (injectable for tests)
    """

    def __init__(
        self,
        interval: float = POLLING_INTERVAL,
        step_deadline: float = STEP_DEADLINE,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.interval = interval
        self.step_deadline = step_deadline
        self.clock = clock
        self.sleep = sleep

    def deadline(self) -> Deadline:
        """Start the clock on a new step."""
        return Deadline(self.step_deadline, self.clock)

    def until(
        self,
        probe: Callable[[], T],
        accept: Callable[[T], bool],
        description: str,
        deadline: Optional[Deadline] = None,
    ) -> T:
        """
        Call probe until accept(result) holds or the deadline expires.

        Returns:
            The accepted probe result

        Raises:
            UpgradeTimeoutError: If the deadline expires first
        """
        deadline = deadline or self.deadline()
        attempts = 0
        last_observed = None
        last_error = None

        while True:
            attempts += 1
            try:
                observed = probe()
                if accept(observed):
                    logger.debug(
                        f"{description}: satisfied after {attempts} attempt(s)"
                    )
                    return observed
                last_observed = observed
                last_error = None
            except TransientNetworkError as e:
                last_error = e
                logger.debug(f"{description}: transient failure, retrying: {e}")

            if deadline.expired:
                break
            self.sleep(min(self.interval, deadline.remaining))
            if deadline.expired:
                break

        detail = (
            f"last error: {last_error.message}"
            if last_error
            else f"last observed: {last_observed!r}"
        )
        raise UpgradeTimeoutError(
            f"{description} did not succeed within {deadline.seconds:g}s "
            f"after {attempts} attempt(s) ({detail})",
            "Inspect the canister and proposal state on the test network",
        )

    def retry(
        self,
        action: Callable[[], T],
        description: str,
        deadline: Optional[Deadline] = None,
    ) -> T:
        """Call action until it stops raising TransientNetworkError."""
        return self.until(action, lambda _: True, description, deadline)
