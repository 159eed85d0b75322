"""
Tests for upgrade ordering generation.
"""

from math import factorial

import pytest

from sns_upgrade_order.core.enums import CanisterType
from sns_upgrade_order.core.exceptions import ConfigurationError
from sns_upgrade_order.ordering import (
    OrderGenerator,
    exclude_untestable,
    generate_orderings,
    parse_canister_types,
)

ROOT = CanisterType.ROOT
GOVERNANCE = CanisterType.GOVERNANCE


def test_two_types_give_both_orders():
    orderings = generate_orderings([ROOT, GOVERNANCE])

    assert set(orderings) == {(ROOT, GOVERNANCE), (GOVERNANCE, ROOT)}
    assert len(orderings) == 2


@pytest.mark.parametrize("k", [1, 2, 3, 4, 5])
def test_k_types_give_k_factorial_unique_permutations(k):
    types = [
        CanisterType.ROOT,
        CanisterType.GOVERNANCE,
        CanisterType.LEDGER,
        CanisterType.SWAP,
        CanisterType.INDEX,
    ][:k]

    orderings = generate_orderings(types)

    assert len(orderings) == factorial(k)
    assert len(set(orderings)) == factorial(k)
    for ordering in orderings:
        assert sorted(ordering, key=lambda t: t.value) == sorted(
            types, key=lambda t: t.value
        )


def test_generator_is_restartable():
    generator = OrderGenerator([ROOT, GOVERNANCE, CanisterType.LEDGER])

    first = set(generator)
    second = set(generator)

    assert first == second
    assert len(generator) == 6


def test_empty_input_is_rejected():
    with pytest.raises(ConfigurationError):
        OrderGenerator([])


def test_duplicates_are_rejected():
    with pytest.raises(ConfigurationError) as excinfo:
        generate_orderings([ROOT, GOVERNANCE, ROOT])

    assert "root" in excinfo.value.message


def test_parse_canister_types():
    assert parse_canister_types(["root", "Governance", " ledger "]) == [
        ROOT,
        GOVERNANCE,
        CanisterType.LEDGER,
    ]


def test_parse_rejects_unknown_type():
    with pytest.raises(ConfigurationError) as excinfo:
        parse_canister_types(["root", "treasury"])

    assert "treasury" in excinfo.value.message
    assert "governance" in excinfo.value.remediation


def test_archive_is_excluded_from_live_testing():
    kept = exclude_untestable([ROOT, CanisterType.ARCHIVE, GOVERNANCE])

    assert kept == [ROOT, GOVERNANCE]


def test_archive_only_leaves_nothing_to_order():
    with pytest.raises(ConfigurationError):
        OrderGenerator(exclude_untestable([CanisterType.ARCHIVE]))
