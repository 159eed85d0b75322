"""
Append-only run log.

Every progress and failure line of a run goes to one log file through a
dedicated loguru sink and, optionally, to the console. Lines are tagged with
the ordering and step they belong to. The log also keeps the ledger of
upgrade attempts, each recorded exactly once.
"""

import os
import sys
import tempfile
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from loguru import logger

from ..core.dataclasses import (
    Ordering,
    OrderingResult,
    SweepSummary,
    UpgradeAttempt,
    format_ordering,
)

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}"
CONSOLE_FORMAT = "<level>{message}</level>"


@dataclass(frozen=True)
class LogEntry:
    """One line written to the run log."""

    level: str
    message: str
    ordering: Optional[str] = None
    step: Optional[int] = None

    @property
    def line(self) -> str:
        tag = ""
        if self.ordering is not None:
            tag = f"[{self.ordering}]"
            if self.step is not None:
                tag += f"[step {self.step}]"
            tag += " "
        return f"{tag}{self.message}"


class BoundLog:
    """ResultLog view pinned to one ordering and step."""

    def __init__(self, result_log: "ResultLog", ordering: Ordering, step: int):
        self.result_log = result_log
        self.ordering = ordering
        self.step = step

    def progress(self, message: str) -> None:
        self.result_log.progress(message, self.ordering, self.step)

    def failure(self, message: str) -> None:
        self.result_log.failure(message, self.ordering, self.step)


class ResultLog:
    """
    Run log backed by a loguru file sink.

    Args:
        path: Log file; a fresh temporary file is created when omitted
        echo: Also write lines to stderr
    """

    def __init__(self, path: Optional[Path] = None, echo: bool = True):
        if path is None:
            handle, name = tempfile.mkstemp(prefix="sns-upgrade-order-", suffix=".log")
            os.close(handle)
            path = Path(name)
        self.path = Path(path)
        self._id = uuid.uuid4().hex
        self._logger = logger.bind(result_log=self._id)
        self._entries: List[LogEntry] = []
        self._attempts: Dict[Tuple, UpgradeAttempt] = {}
        self._run = 0

        self._sink_ids = [
            logger.add(
                self.path,
                format=FILE_FORMAT,
                filter=self._owns,
                level="INFO",
                mode="a",
            )
        ]
        if echo:
            self._sink_ids.append(
                logger.add(
                    sys.stderr,
                    format=CONSOLE_FORMAT,
                    filter=self._owns,
                    level="INFO",
                    colorize=True,
                )
            )

    def _owns(self, record) -> bool:
        return record["extra"].get("result_log") == self._id

    # =========================================================================
    # WRITING
    # =========================================================================

    def _write(
        self,
        level: str,
        message: str,
        ordering: Optional[Ordering] = None,
        step: Optional[int] = None,
    ) -> None:
        entry = LogEntry(
            level,
            message,
            format_ordering(ordering) if ordering is not None else None,
            step,
        )
        self._entries.append(entry)
        self._logger.log(level, entry.line)

    def bind(self, ordering: Ordering, step: int) -> BoundLog:
        return BoundLog(self, ordering, step)

    def info(self, message: str) -> None:
        self._write("INFO", message)

    def progress(
        self, message: str, ordering: Ordering = None, step: Optional[int] = None
    ) -> None:
        self._write("INFO", message, ordering, step)

    def warning(self, message: str) -> None:
        self._write("WARNING", message)

    def failure(
        self, message: str, ordering: Ordering = None, step: Optional[int] = None
    ) -> None:
        self._write("ERROR", message, ordering, step)

    def begin_run(self) -> int:
        """
        Start a new sweep over the orderings.

        Attempts are unique per run, so the same orderings can be swept
        again into the same log.
        """
        self._run += 1
        return self._run

    def record(self, attempt: UpgradeAttempt) -> None:
        """
        Add an attempt to the ledger.

        Raises:
            ValueError: If this (ordering, step, variant) was already recorded
                in the current run
        """
        key = (self._run, *attempt.key)
        if key in self._attempts:
            raise ValueError(
                f"Attempt for '{format_ordering(attempt.ordering)}' step "
                f"{attempt.step} ({attempt.variant.value}) already recorded "
                f"in run {self._run}"
            )
        self._attempts[key] = attempt

    def ordering_finished(self, result: OrderingResult) -> None:
        ordering = format_ordering(result.ordering)
        self._write(
            "INFO" if result.passed else "WARNING",
            f"Finished testing 'Upgrade Order: {ordering}' but check for failures "
            f"(outcome: {result.outcome.value})",
            result.ordering,
        )

    def sweep_finished(self, summary: SweepSummary) -> None:
        self._write(
            "INFO",
            f"Testing finished: {summary.passed}/{summary.total} orderings passed "
            f"for version {summary.target_version}. "
            f"Test logs recorded in: {self.path}",
        )

    # =========================================================================
    # READING
    # =========================================================================

    @property
    def entries(self) -> Tuple[LogEntry, ...]:
        return tuple(self._entries)

    @property
    def attempts(self) -> Tuple[UpgradeAttempt, ...]:
        return tuple(self._attempts.values())

    def messages(self, ordering: Optional[Ordering] = None) -> List[str]:
        """Messages in write order, optionally only those of one ordering."""
        wanted = format_ordering(ordering) if ordering is not None else None
        return [
            entry.message
            for entry in self._entries
            if wanted is None or entry.ordering == wanted
        ]

    def close(self) -> None:
        for sink_id in self._sink_ids:
            logger.remove(sink_id)
        self._sink_ids = []
