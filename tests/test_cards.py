from datetime import datetime, timezone

import pytest

from tabsplit.api.schemas import ActivityOut, AllocationOut, ItemOut, TransactionOut
from tabsplit.db.models import SplitMode, TransactionStatus
from tabsplit.handlers.cards import format_activity, format_tab_card, parse_mode, parse_receipt_lines

CREATED = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def make_tab(**overrides) -> TransactionOut:
    data = dict(
        id="1234567890abcdef",
        group_id="group-1",
        mode=SplitMode.FULL_CONTROL,
        status=TransactionStatus.PENDING_ALLOCATION,
        created_by="A",
        items=[ItemOut(id="pizza", name="Pizza", price="20.00"), ItemOut(id="soda", name="Soda", price="5.00")],
        claims={"pizza": ["A", "B"], "soda": []},
        tip="3.00",
        subtotal="25.00",
        total="28.00",
        created_at=CREATED,
    )
    data.update(overrides)
    return TransactionOut(**data)


def test_format_tab_card_shows_claims():
    text = format_tab_card(make_tab(), {"A": "Alice", "B": "Bob"}, "USD")
    assert "Tab 12345678 (itemized), open" in text
    assert "1. Pizza: 20.00 USD [Alice, Bob]" in text
    assert "2. Soda: 5.00 USD [unclaimed]" in text
    assert "Total: 28.00 USD" in text


def test_format_tab_card_prefers_final_allocations():
    tab = make_tab(
        status=TransactionStatus.FINALIZED,
        allocations=[AllocationOut(member_id="A", display_name="Alice", amount="16.80")],
        preview=[AllocationOut(member_id="A", display_name="Alice", amount="1.00")],
    )
    text = format_tab_card(tab, {}, "USD")
    assert "Amounts owed:" in text
    assert "Alice: 16.80" in text
    assert "Preview" not in text


def test_parse_mode():
    assert parse_mode("even") == SplitMode.EVEN_SPLIT
    assert parse_mode(" Items ") == SplitMode.FULL_CONTROL
    with pytest.raises(ValueError):
        parse_mode("halves")


def test_parse_receipt_lines():
    assert parse_receipt_lines("Margherita pizza 20,00\n\nSoda 5") == [("Margherita pizza", "20.00"), ("Soda", "5")]
    with pytest.raises(ValueError):
        parse_receipt_lines("Pizza")
    with pytest.raises(ValueError):
        parse_receipt_lines("  ")


def test_format_activity():
    entries = [
        ActivityOut(
            transaction_id="abcdef123456",
            group_id="group-1",
            mode=SplitMode.EVEN_SPLIT,
            amount="18.34",
            finalized_at=CREATED,
        )
    ]
    assert format_activity(entries, "USD").splitlines()[1] == "2026-10-18 even split tab abcdef12: 18.34 USD"
    assert format_activity([], "USD") == "No finalized tabs yet."
