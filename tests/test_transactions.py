from datetime import timedelta

import pytest

from conftest import T0, item
from tabsplit.db.models import ReceiptItem, SplitMode, TransactionStatus
from tabsplit.errors import AuthorizationError, ConflictError, TabSplitError, ValidationError
from tabsplit.services.transactions import Transaction

ROSTER = ["A", "B", "C"]


def new_tab(mode=SplitMode.FULL_CONTROL) -> Transaction:
    return Transaction.create("group-1", mode, "A", now=T0)


def test_create_starts_as_empty_draft():
    tab = Transaction.create("group-1", SplitMode.EVEN_SPLIT, "A", now=T0, allocation_window=timedelta(minutes=5))
    assert tab.status == TransactionStatus.DRAFT
    assert tab.items == ()
    assert tab.tip_minor_units == 0
    assert tab.allocation_deadline_at == T0 + timedelta(minutes=5)


def test_attach_receipt_moves_to_pending():
    tab = new_tab()
    tab.attach_receipt([item("pizza", "Pizza", 2000), item("soda", "Soda", 500)])
    assert tab.status == TransactionStatus.PENDING_ALLOCATION
    assert tab.subtotal_minor_units == 2500
    assert tab.claims.unclaimed_items() == ["pizza", "soda"]


def test_replacing_receipt_discards_claims():
    tab = new_tab()
    tab.attach_receipt([item("pizza", "Pizza", 2000)])
    tab.set_claims("pizza", ["A"], ROSTER)

    tab.attach_receipt([item("burger", "Burger", 1500)])

    assert tab.claims.as_dict() == {"burger": ()}
    assert tab.find_item("pizza") is None


def test_attach_receipt_rejects_duplicate_item_ids():
    tab = new_tab()
    with pytest.raises(ValidationError):
        tab.attach_receipt([item("x", "Pizza", 100), item("x", "Soda", 100)])
    assert tab.status == TransactionStatus.DRAFT


def test_claims_need_pending_full_control():
    draft = new_tab()
    with pytest.raises(ValidationError):
        draft.set_claims("pizza", ["A"], ROSTER)

    even = new_tab(SplitMode.EVEN_SPLIT)
    even.attach_receipt([item("pizza", "Pizza", 2000)])
    with pytest.raises(ValidationError):
        even.set_claims("pizza", ["A"], ROSTER)


def test_set_tip_rules():
    tab = new_tab()
    with pytest.raises(ValidationError):
        tab.set_tip(100, "A")

    tab.attach_receipt([item("pizza", "Pizza", 2000)])
    with pytest.raises(AuthorizationError):
        tab.set_tip(100, "B")
    with pytest.raises(ValidationError):
        tab.set_tip(-1, "A")

    tab.set_tip(300, "A")
    assert tab.tip_minor_units == 300
    assert tab.total_minor_units == 2300


def test_set_tip_checks_creator_before_receipt():
    tab = new_tab()
    with pytest.raises(AuthorizationError):
        tab.set_tip(100, "B")


def test_authorization_error_is_a_permission_error():
    tab = new_tab()
    tab.attach_receipt([item("pizza", "Pizza", 2000)])
    with pytest.raises(PermissionError):
        tab.set_tip(100, "C")


def test_cancel_is_terminal():
    tab = new_tab()
    tab.cancel()
    assert tab.status == TransactionStatus.CANCELLED
    assert not tab.is_active

    with pytest.raises(ConflictError):
        tab.attach_receipt([item("pizza", "Pizza", 2000)])
    with pytest.raises(ConflictError):
        tab.cancel()


def test_is_overdue_only_while_pending():
    tab = Transaction.create("group-1", SplitMode.EVEN_SPLIT, "A", now=T0, allocation_window=timedelta(minutes=5))
    later = T0 + timedelta(minutes=6)
    assert not tab.is_overdue(later)

    tab.attach_receipt([item("pizza", "Pizza", 2000)])
    assert not tab.is_overdue(T0 + timedelta(minutes=1))
    assert tab.is_overdue(later)


def test_negative_item_price_is_a_domain_error():
    with pytest.raises(TabSplitError):
        ReceiptItem("pizza", "Pizza", -1)
