"""
Data classes for the upgrade-order validator.

Defines structured containers for artifacts, deployments, upgrade attempts
and per-ordering results. Records that describe something that already
happened are frozen.
"""

import hashlib
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .enums import (
    ArtifactVariant,
    CanisterType,
    OrderingOutcome,
    OrderingState,
    StepOutcome,
)

Ordering = Tuple[CanisterType, ...]


def format_ordering(ordering: Ordering) -> str:
    """Render an ordering the way it appears in log lines: 'root governance'."""
    return " ".join(canister_type.value for canister_type in ordering)


def sha256_hex(content: bytes) -> str:
    """Lowercase hex SHA-256 of the given bytes."""
    return hashlib.sha256(content).hexdigest()


@dataclass(frozen=True)
class ArtifactReference:
    """A build artifact in one delivery form, with its content hash."""

    canister_type: CanisterType
    variant: ArtifactVariant
    content: bytes = field(repr=False)
    sha256: str
    path: Path
    version: Optional[str] = None

    @classmethod
    def from_bytes(
        cls,
        canister_type: CanisterType,
        variant: ArtifactVariant,
        content: bytes,
        path: Path,
        version: Optional[str] = None,
    ) -> "ArtifactReference":
        return cls(canister_type, variant, content, sha256_hex(content), path, version)


@dataclass(frozen=True)
class DeploymentInstance:
    """An SNS provisioned for exactly one ordering."""

    name: str
    canister_ids: Dict[CanisterType, str]
    neuron_id: str
    workdir: Path

    def canister_id(self, canister_type: CanisterType) -> str:
        try:
            return self.canister_ids[canister_type]
        except KeyError:
            raise KeyError(
                f"Deployment {self.name} has no {canister_type.value} canister"
            ) from None


@dataclass(frozen=True)
class UpgradeAttempt:
    """One upgrade step of one ordering. Never mutated once recorded."""

    ordering: Ordering
    step: int
    canister_type: CanisterType
    variant: ArtifactVariant
    outcome: StepOutcome
    message: str = ""
    timestamp: float = field(default_factory=time.time)

    @property
    def key(self) -> Tuple[Ordering, int, ArtifactVariant]:
        return (self.ordering, self.step, self.variant)

    @property
    def passed(self) -> bool:
        return self.outcome == StepOutcome.PASSED


@dataclass
class OrderingResult:
    """Comprehensive result of processing one ordering."""

    ordering: Ordering
    outcome: Optional[OrderingOutcome] = None
    state: OrderingState = OrderingState.INIT
    failed_step: Optional[int] = None
    failed_canister: Optional[CanisterType] = None
    message: str = ""
    attempts: List[UpgradeAttempt] = field(default_factory=list)
    state_history: List[OrderingState] = field(
        default_factory=lambda: [OrderingState.INIT]
    )
    start_time: float = 0.0
    end_time: float = 0.0

    @property
    def passed(self) -> bool:
        return self.outcome == OrderingOutcome.PASSED

    @property
    def duration(self) -> float:
        if self.start_time and self.end_time:
            return self.end_time - self.start_time
        return 0.0


@dataclass
class SweepSummary:
    """Results of every ordering attempted in one run."""

    target_version: str
    results: List[OrderingResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    def count(self, outcome: OrderingOutcome) -> int:
        return sum(1 for result in self.results if result.outcome == outcome)

    @property
    def passed(self) -> int:
        return self.count(OrderingOutcome.PASSED)

    @property
    def failed(self) -> int:
        return self.total - self.passed

    @property
    def all_passed(self) -> bool:
        return self.failed == 0
