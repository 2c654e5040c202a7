from __future__ import annotations

from typing import Iterable, Mapping, Sequence

from tabsplit.db.models import Allocation, Member, ReceiptItem, SplitMode
from tabsplit.errors import ValidationError
from tabsplit.services.claims import ClaimTable
from tabsplit.services.money import distribute_evenly, merge_shares, split_amount

ClaimsLike = ClaimTable | Mapping[str, Iterable[str]]


def subtotal_of(items: Sequence[ReceiptItem]) -> int:
    return sum(item.price_minor_units for item in items)


def _claims_mapping(claims: ClaimsLike) -> dict[str, tuple[str, ...]]:
    if isinstance(claims, ClaimTable):
        return claims.as_dict()
    return {item_id: tuple(sorted(set(member_ids))) for item_id, member_ids in claims.items()}


def _ordered_member_ids(members: Sequence[Member]) -> list[str]:
    member_ids = sorted({member.id for member in members})
    if not member_ids:
        raise ValidationError("group has no members to split between")
    return member_ids


def proportional_tip(tip_minor_units: int, subtotals: Mapping[str, int]) -> dict[str, int]:
    """Spread ``tip_minor_units`` proportionally to each member subtotal.

    Every member with a positive subtotal gets their exact share rounded half
    up. A positive residual goes one unit each to those members in id order;
    a negative one is taken back one unit each in reverse id order.
    """
    if tip_minor_units < 0:
        raise ValidationError("tip must be non-negative")

    eligible = sorted(member_id for member_id, amount in subtotals.items() if amount > 0)
    shares = {member_id: 0 for member_id in subtotals}
    if tip_minor_units == 0:
        return shares

    subtotal = sum(subtotals[member_id] for member_id in eligible)
    if subtotal == 0:
        raise ValidationError("cannot split a tip proportionally when the subtotal is zero")

    for member_id in eligible:
        shares[member_id] = (2 * tip_minor_units * subtotals[member_id] + subtotal) // (2 * subtotal)

    residual = tip_minor_units - sum(shares.values())
    if residual > 0:
        for member_id, extra in zip(eligible, distribute_evenly(residual, len(eligible))):
            shares[member_id] += extra
    else:
        for member_id in reversed(eligible):
            if residual == 0:
                break
            if shares[member_id] > 0:
                shares[member_id] -= 1
                residual += 1

    return shares


def _even_split(items: Sequence[ReceiptItem], tip_minor_units: int, member_ids: list[str]) -> dict[str, int]:
    total = subtotal_of(items) + tip_minor_units
    return dict(zip(member_ids, distribute_evenly(total, len(member_ids))))


def _full_control_split(
    items: Sequence[ReceiptItem],
    claims: dict[str, tuple[str, ...]],
    tip_minor_units: int,
    member_ids: list[str],
) -> dict[str, int]:
    roster = set(member_ids)
    per_item = []
    for item in items:
        claimers = claims.get(item.id, ())
        if not claimers:
            raise ValidationError(f"Item '{item.name}' has no claimers")
        strangers = set(claimers) - roster
        if strangers:
            raise ValidationError(f"Item '{item.name}' is claimed by non-members: {', '.join(sorted(strangers))}")
        per_item.append(split_amount(item.price_minor_units, claimers))

    subtotals = {member_id: 0 for member_id in member_ids}
    subtotals.update(merge_shares(per_item))
    tips = proportional_tip(tip_minor_units, subtotals)
    return {member_id: subtotals[member_id] + tips[member_id] for member_id in member_ids}


def calculate_allocations(
    items: Sequence[ReceiptItem],
    claims: ClaimsLike,
    tip_minor_units: int,
    split_mode: SplitMode,
    members: Sequence[Member],
) -> list[Allocation]:
    if tip_minor_units < 0:
        raise ValidationError("tip must be non-negative")
    member_ids = _ordered_member_ids(members)

    if split_mode == SplitMode.EVEN_SPLIT:
        totals = _even_split(items, tip_minor_units, member_ids)
    elif split_mode == SplitMode.FULL_CONTROL:
        totals = _full_control_split(items, _claims_mapping(claims), tip_minor_units, member_ids)
    else:
        raise ValidationError(f"Unsupported split mode: {split_mode}")

    allocations = [Allocation(member_id=member_id, amount_minor_units=totals[member_id]) for member_id in member_ids]

    expected = subtotal_of(items) + tip_minor_units
    actual = sum(allocation.amount_minor_units for allocation in allocations)
    if actual != expected:
        raise AssertionError(f"allocations sum to {actual}, expected {expected}")
    return allocations


def preview_allocations(
    items: Sequence[ReceiptItem],
    claims: ClaimsLike,
    tip_minor_units: int,
    split_mode: SplitMode,
    members: Sequence[Member],
) -> list[Allocation] | None:
    """Same as :func:`calculate_allocations`, but ``None`` when not computable yet."""
    try:
        return calculate_allocations(items, claims, tip_minor_units, split_mode, members)
    except ValidationError:
        return None
