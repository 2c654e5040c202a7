import random

import pytest

from conftest import item
from tabsplit.db.models import Allocation, Member, SplitMode
from tabsplit.errors import ValidationError
from tabsplit.services.split import calculate_allocations, preview_allocations, proportional_tip

A, B, C = Member("A", "Alice"), Member("B", "Bob"), Member("C", "Carol")


def amounts(allocations):
    return {allocation.member_id: allocation.amount_minor_units for allocation in allocations}


def test_even_split_scenario():
    items = [item("1", "Dinner", 3000), item("2", "Wine", 2000)]
    allocations = calculate_allocations(items, {}, 500, SplitMode.EVEN_SPLIT, [C, B, A])

    assert allocations == [
        Allocation("A", 1834),
        Allocation("B", 1833),
        Allocation("C", 1833),
    ]


def test_even_split_needs_members():
    with pytest.raises(ValidationError):
        calculate_allocations([item("1", "Dinner", 100)], {}, 0, SplitMode.EVEN_SPLIT, [])


def test_full_control_scenario():
    items = [item("pizza", "Pizza", 2000), item("soda", "Soda", 500)]
    claims = {"pizza": ["A", "B"], "soda": ["A"]}

    result = amounts(calculate_allocations(items, claims, 300, SplitMode.FULL_CONTROL, [A, B]))

    assert result == {"A": 1680, "B": 1120}
    assert sum(result.values()) == 2800


def test_full_control_covers_members_without_claims():
    items = [item("pizza", "Pizza", 2000)]
    result = amounts(calculate_allocations(items, {"pizza": ["A"]}, 100, SplitMode.FULL_CONTROL, [A, B, C]))
    assert result == {"A": 2100, "B": 0, "C": 0}


def test_full_control_rejects_unclaimed_item():
    items = [item("pizza", "Pizza", 2000), item("soda", "Soda", 500)]
    with pytest.raises(ValidationError):
        calculate_allocations(items, {"pizza": ["A"]}, 0, SplitMode.FULL_CONTROL, [A, B])


def test_full_control_rejects_claims_by_non_members():
    items = [item("pizza", "Pizza", 2000)]
    with pytest.raises(ValidationError):
        calculate_allocations(items, {"pizza": ["A", "Z"]}, 0, SplitMode.FULL_CONTROL, [A, B])


def test_full_control_tip_without_subtotal():
    items = [item("water", "Water", 0)]
    with pytest.raises(ValidationError):
        calculate_allocations(items, {"water": ["A"]}, 100, SplitMode.FULL_CONTROL, [A, B])

    result = amounts(calculate_allocations(items, {"water": ["A"]}, 0, SplitMode.FULL_CONTROL, [A, B]))
    assert result == {"A": 0, "B": 0}


def test_proportional_tip_residual_goes_in_id_order():
    shares = proportional_tip(100, {"A": 100, "B": 100, "C": 100, "D": 0})
    assert shares == {"A": 34, "B": 33, "C": 33, "D": 0}


def test_proportional_tip_rounds_to_nearest():
    assert proportional_tip(100, {"A": 100, "B": 200}) == {"A": 33, "B": 67}


def test_proportional_tip_takes_back_overshoot_from_last_members():
    assert proportional_tip(1, {"A": 1, "B": 1}) == {"A": 1, "B": 0}


def test_full_control_tip_goes_to_larger_fraction():
    items = [item("x", "X", 100), item("y", "Y", 200)]
    result = amounts(calculate_allocations(items, {"x": ["A"], "y": ["B"]}, 100, SplitMode.FULL_CONTROL, [A, B]))
    assert result == {"A": 133, "B": 267}


def test_proportional_tip_zero_subtotal_member_gets_nothing():
    shares = proportional_tip(7, {"A": 0, "B": 1, "C": 2})
    assert shares["A"] == 0
    assert sum(shares.values()) == 7


@pytest.mark.parametrize("seed", range(25))
def test_allocations_conserve_money(seed):
    rng = random.Random(seed)
    members = [Member(f"m{idx:02d}", f"Member {idx}") for idx in range(rng.randint(1, 6))]
    items = [item(f"i{idx}", f"Item {idx}", rng.randint(0, 5000)) for idx in range(rng.randint(1, 8))]
    claims = {
        entry.id: rng.sample([member.id for member in members], rng.randint(1, len(members)))
        for entry in items
    }
    subtotal = sum(entry.price_minor_units for entry in items)
    tip = rng.randint(0, 2000) if subtotal else 0

    for mode in SplitMode:
        allocations = calculate_allocations(items, claims, tip, mode, members)
        assert [allocation.member_id for allocation in allocations] == sorted(member.id for member in members)
        assert sum(allocation.amount_minor_units for allocation in allocations) == subtotal + tip
        assert all(allocation.amount_minor_units >= 0 for allocation in allocations)


def test_preview_returns_none_until_computable():
    items = [item("pizza", "Pizza", 2000)]
    assert preview_allocations(items, {"pizza": []}, 0, SplitMode.FULL_CONTROL, [A]) is None
    assert preview_allocations(items, {"pizza": ["A"]}, 0, SplitMode.FULL_CONTROL, [A]) == [Allocation("A", 2000)]
