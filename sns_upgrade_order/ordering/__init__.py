"""
Ordering module for upgrade permutation generation.
"""

from .permutations import (
    OrderGenerator,
    exclude_untestable,
    generate_orderings,
    parse_canister_types,
)

__all__ = [
    "OrderGenerator",
    "exclude_untestable",
    "generate_orderings",
    "parse_canister_types",
]
