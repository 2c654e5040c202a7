from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Iterable, Mapping

from tabsplit.errors import ValidationError

MINOR_UNIT_EXPONENT = 2
_QUANTUM = Decimal(1).scaleb(-MINOR_UNIT_EXPONENT)


def distribute_evenly(total_minor_units: int, n: int) -> list[int]:
    """Split ``total_minor_units`` into ``n`` shares differing by at most one.

    The first ``total % n`` shares carry the extra unit, so callers must pass
    recipients in their deterministic (ascending id) order.
    """
    if total_minor_units < 0:
        raise ValidationError("total must be non-negative")
    if n < 1:
        raise ValidationError("cannot distribute among zero recipients")

    base = total_minor_units // n
    remainder = total_minor_units - base * n
    return [base + 1 if idx < remainder else base for idx in range(n)]


def split_amount(amount_minor_units: int, member_ids: Iterable[str]) -> dict[str, int]:
    ordered = sorted(set(member_ids))
    shares = distribute_evenly(amount_minor_units, len(ordered))
    return {member_id: share for member_id, share in zip(ordered, shares)}


def merge_shares(shares: Iterable[Mapping[str, int]]) -> dict[str, int]:
    result: dict[str, int] = {}
    for share in shares:
        for member_id, amount in share.items():
            result[member_id] = result.get(member_id, 0) + amount
    return result


def to_minor_units(value: str | int | Decimal) -> int:
    """Parse a decimal amount such as ``"12.34"`` into minor units."""
    if isinstance(value, bool):
        raise ValidationError(f"Invalid amount: {value!r}")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid amount: {value!r}") from exc

    if not amount.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}")
    if amount < 0:
        raise ValidationError("Amount must be non-negative")
    try:
        exact = amount == amount.quantize(_QUANTUM)
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid amount: {value!r}") from exc
    if not exact:
        raise ValidationError(f"Amount has more than {MINOR_UNIT_EXPONENT} decimal places: {value!r}")

    return int(amount.scaleb(MINOR_UNIT_EXPONENT))


def format_minor_units(amount_minor_units: int) -> str:
    return str(Decimal(amount_minor_units).scaleb(-MINOR_UNIT_EXPONENT).quantize(_QUANTUM))
