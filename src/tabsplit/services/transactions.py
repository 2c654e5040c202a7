"""Transaction aggregate and its lifecycle.

The aggregate itself is synchronous and does no locking; repositories hand it
out inside a per-transaction critical section (see ``tabsplit.db.repo``).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional, Sequence

from tabsplit.db.models import Allocation, ReceiptItem, SplitMode, TransactionStatus
from tabsplit.errors import ConflictError, ValidationError
from tabsplit.services.authz import assert_creator
from tabsplit.services.claims import ClaimTable
from tabsplit.services.split import subtotal_of

MUTABLE_STATUSES = (TransactionStatus.DRAFT, TransactionStatus.PENDING_ALLOCATION)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class Transaction:
    id: str
    group_id: str
    split_mode: SplitMode
    created_by: str
    status: TransactionStatus = TransactionStatus.DRAFT
    items: tuple[ReceiptItem, ...] = ()
    claims: ClaimTable = field(default_factory=ClaimTable)
    tip_minor_units: int = 0
    allocation_deadline_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=_utcnow)
    finalized_at: Optional[datetime] = None
    allocations: tuple[Allocation, ...] = ()

    @classmethod
    def create(
        cls,
        group_id: str,
        split_mode: SplitMode,
        created_by: str,
        *,
        now: datetime | None = None,
        allocation_window: timedelta | None = None,
    ) -> "Transaction":
        now = now or _utcnow()
        deadline = now + allocation_window if allocation_window else None
        return cls(
            id=str(uuid.uuid4()),
            group_id=group_id,
            split_mode=SplitMode(split_mode),
            created_by=created_by,
            created_at=now,
            allocation_deadline_at=deadline,
        )

    @property
    def subtotal_minor_units(self) -> int:
        return subtotal_of(self.items)

    @property
    def total_minor_units(self) -> int:
        return self.subtotal_minor_units + self.tip_minor_units

    @property
    def is_active(self) -> bool:
        return not self.status.is_terminal

    def is_overdue(self, now: datetime) -> bool:
        return (
            self.status == TransactionStatus.PENDING_ALLOCATION
            and self.allocation_deadline_at is not None
            and now >= self.allocation_deadline_at
        )

    def find_item(self, item_id: str) -> ReceiptItem | None:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def require_status(self, *allowed: TransactionStatus) -> None:
        if self.status in allowed:
            return
        if self.status.is_terminal:
            raise ConflictError(f"Transaction {self.id} is already {self.status.value}")
        raise ValidationError("Attach a receipt before doing this")

    def attach_receipt(self, items: Sequence[ReceiptItem]) -> None:
        self.require_status(*MUTABLE_STATUSES)
        item_ids = [item.id for item in items]
        if len(set(item_ids)) != len(item_ids):
            raise ValidationError("Receipt item ids must be unique")

        self.items = tuple(items)
        self.claims = ClaimTable(item_ids)
        self.status = TransactionStatus.PENDING_ALLOCATION

    def set_claims(self, item_id: str, member_ids: Iterable[str], roster_ids: Iterable[str]) -> tuple[str, ...]:
        self.require_status(TransactionStatus.PENDING_ALLOCATION)
        if self.split_mode != SplitMode.FULL_CONTROL:
            raise ValidationError("Items can only be claimed in FULL_CONTROL mode")
        return self.claims.set_claims(item_id, member_ids, roster_ids)

    def set_tip(self, amount_minor_units: int, actor_id: str) -> None:
        assert_creator(self, actor_id, "set the tip")
        self.require_status(TransactionStatus.PENDING_ALLOCATION)
        if amount_minor_units < 0:
            raise ValidationError("Tip must be non-negative")
        self.tip_minor_units = amount_minor_units

    def cancel(self) -> None:
        self.require_status(*MUTABLE_STATUSES)
        self.status = TransactionStatus.CANCELLED

    def mark_finalized(self, allocations: Sequence[Allocation], now: datetime | None = None) -> None:
        if self.status == TransactionStatus.FINALIZED:
            raise ConflictError(f"Transaction {self.id} is already FINALIZED")
        self.require_status(TransactionStatus.PENDING_ALLOCATION)
        self.allocations = tuple(allocations)
        self.finalized_at = now or _utcnow()
        self.status = TransactionStatus.FINALIZED
