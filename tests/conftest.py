from __future__ import annotations

from datetime import datetime, timezone

import pytest

from tabsplit.api.service import TransactionAPI
from tabsplit.config import Settings
from tabsplit.db.models import Member, ReceiptItem
from tabsplit.db.repo import InMemoryMemberDirectory, InMemoryTransactionRepository

GROUP = "group-1"
ALICE = Member(id="A", display_name="Alice")
BOB = Member(id="B", display_name="Bob")
CAROL = Member(id="C", display_name="Carol")
T0 = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


class RecordingPayments:
    def __init__(self) -> None:
        self.calls: list[tuple[str, list]] = []

    async def submit(self, transaction_id, allocations) -> None:
        self.calls.append((transaction_id, list(allocations)))


class FixedClock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def item(item_id: str, name: str, price: int) -> ReceiptItem:
    return ReceiptItem(id=item_id, name=name, price_minor_units=price)


@pytest.fixture
def members() -> list[Member]:
    return [ALICE, BOB, CAROL]


@pytest.fixture
def payments() -> RecordingPayments:
    return RecordingPayments()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(ALLOCATION_WINDOW_MINUTES=10, DEADLINE_POLICY="even_fallback")


@pytest.fixture
def api(members, payments, clock, settings) -> TransactionAPI:
    directory = InMemoryMemberDirectory({GROUP: members})
    return TransactionAPI(
        InMemoryTransactionRepository(),
        directory,
        payments=payments,
        settings=settings,
        clock=clock,
    )
