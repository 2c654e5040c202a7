from __future__ import annotations

from datetime import tzinfo
from typing import Optional, Sequence

from tabsplit.api.schemas import ActivityOut, AllocationOut, TransactionOut
from tabsplit.db.models import SplitMode, TransactionStatus

MODE_LABELS = {
    SplitMode.EVEN_SPLIT: "even split",
    SplitMode.FULL_CONTROL: "itemized",
}

STATUS_LABELS = {
    TransactionStatus.DRAFT: "waiting for a receipt",
    TransactionStatus.PENDING_ALLOCATION: "open",
    TransactionStatus.FINALIZED: "finalized",
    TransactionStatus.CANCELLED: "cancelled",
}


def parse_mode(value: str) -> SplitMode:
    normalized = value.strip().lower()
    if normalized in {"even", "even_split", "equal"}:
        return SplitMode.EVEN_SPLIT
    if normalized in {"full", "items", "itemized", "full_control"}:
        return SplitMode.FULL_CONTROL
    raise ValueError("Mode must be 'even' or 'items'")


def parse_receipt_lines(text: str) -> list[tuple[str, str]]:
    """Parse ``Name price`` lines, e.g. ``Pizza 20.00``."""
    items: list[tuple[str, str]] = []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        name, _, price = line.rpartition(" ")
        if not name or not price:
            raise ValueError(f"Could not read line '{line}', expected '<name> <price>'")
        items.append((name.strip(), price.replace(",", ".")))
    if not items:
        raise ValueError("Add at least one line: '<name> <price>'")
    return items


def _allocation_lines(allocations: Sequence[AllocationOut]) -> list[str]:
    return [f"  {allocation.display_name or allocation.member_id}: {allocation.amount}" for allocation in allocations]


def format_tab_card(
    tab: TransactionOut,
    names: dict[str, str],
    currency: str,
    tz: Optional[tzinfo] = None,
) -> str:
    lines = [
        f"Tab {tab.id[:8]} ({MODE_LABELS[tab.mode]}), {STATUS_LABELS[tab.status]}",
    ]
    for idx, item in enumerate(tab.items, start=1):
        line = f"{idx}. {item.name}: {item.price} {currency}"
        if tab.mode == SplitMode.FULL_CONTROL:
            claimers = [names.get(member_id, member_id) for member_id in tab.claims.get(item.id, [])]
            line += f" [{', '.join(claimers) if claimers else 'unclaimed'}]"
        lines.append(line)

    if tab.items:
        lines.append(f"Subtotal: {tab.subtotal} {currency}")
        lines.append(f"Tip: {tab.tip} {currency}")
        lines.append(f"Total: {tab.total} {currency}")

    if tab.allocations:
        lines.append("Amounts owed:")
        lines.extend(_allocation_lines(tab.allocations))
    elif tab.preview:
        lines.append("Preview:")
        lines.extend(_allocation_lines(tab.preview))

    if tab.allocation_deadline_at and tab.status == TransactionStatus.PENDING_ALLOCATION:
        deadline = tab.allocation_deadline_at.astimezone(tz) if tz else tab.allocation_deadline_at
        lines.append(f"Claims close at {deadline:%Y-%m-%d %H:%M %Z}")
    return "\n".join(lines)


def format_activity(entries: Sequence[ActivityOut], currency: str) -> str:
    if not entries:
        return "No finalized tabs yet."
    lines = ["Your finalized tabs:"]
    for entry in entries:
        when = f"{entry.finalized_at:%Y-%m-%d}" if entry.finalized_at else "?"
        lines.append(f"{when} {MODE_LABELS[entry.mode]} tab {entry.transaction_id[:8]}: {entry.amount} {currency}")
    return "\n".join(lines)
