"""
Upgrade ordering generation.

Produces every permutation of a set of canister types. Emission order is
whatever itertools yields; completeness and uniqueness are what matter.
"""

from itertools import permutations
from math import factorial
from typing import Iterable, Iterator, List, Sequence

from loguru import logger

from ..core.dataclasses import Ordering
from ..core.enums import CanisterType
from ..core.exceptions import ConfigurationError

# Archive canisters are spawned by the ledger after an activity threshold,
# so a fresh test SNS never has one to upgrade.
UNTESTABLE_TYPES = frozenset({CanisterType.ARCHIVE})


def parse_canister_types(names: Iterable[str]) -> List[CanisterType]:
    """
    Convert human readable canister names into CanisterType values.

    Args:
        names: Names such as 'root' or 'governance' (case insensitive)

    Returns:
        CanisterType values in the order given

    Raises:
        ConfigurationError: If a name is not a known SNS canister type
    """
    parsed = []
    for name in names:
        try:
            parsed.append(CanisterType(name.strip().lower()))
        except ValueError:
            valid = ", ".join(t.value for t in CanisterType)
            raise ConfigurationError(
                f"Unknown SNS canister type '{name}'",
                f"Use one of: {valid}",
            ) from None
    return parsed


def exclude_untestable(canister_types: Sequence[CanisterType]) -> List[CanisterType]:
    """Drop canister types that cannot exist on a freshly deployed SNS."""
    kept = []
    for canister_type in canister_types:
        if canister_type in UNTESTABLE_TYPES:
            logger.warning(
                f"Skipping {canister_type.value}: it is only spawned after "
                "activity thresholds and cannot be upgrade tested here"
            )
            continue
        kept.append(canister_type)
    return kept


def _validate(canister_types: Sequence[CanisterType]) -> None:
    if not canister_types:
        raise ConfigurationError(
            "At least one canister type is required to generate orderings"
        )
    seen = set()
    duplicates = []
    for canister_type in canister_types:
        if canister_type in seen:
            duplicates.append(canister_type.value)
        seen.add(canister_type)
    if duplicates:
        raise ConfigurationError(
            f"Duplicate canister types: {', '.join(duplicates)}",
            "List each canister type once",
        )


class OrderGenerator:
    """
    Restartable source of every upgrade ordering for a set of canister types.

    Each call to iter() regenerates the full permutation set, so a run can
    be repeated against the same generator.
    """

    def __init__(self, canister_types: Sequence[CanisterType]):
        canister_types = tuple(canister_types)
        _validate(canister_types)
        self.canister_types = canister_types

    def __iter__(self) -> Iterator[Ordering]:
        return permutations(self.canister_types)

    def __len__(self) -> int:
        return factorial(len(self.canister_types))


def generate_orderings(canister_types: Sequence[CanisterType]) -> List[Ordering]:
    """Return all K! orderings of the given canister types."""
    return list(OrderGenerator(canister_types))
