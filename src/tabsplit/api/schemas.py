"""Request and response models for the transaction API.

Money crosses this boundary as decimal strings ("12.34"); everything behind
it works in integer minor units.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from pydantic import BaseModel, Field, model_validator

from tabsplit.db.models import ActivityEntry, Allocation, Member, SplitMode, TransactionStatus
from tabsplit.services.money import format_minor_units
from tabsplit.services.transactions import Transaction


class CreateTransactionRequest(BaseModel):
    group_id: str = Field(min_length=1)
    mode: SplitMode


class ReceiptItemIn(BaseModel):
    name: str = Field(min_length=1)
    price: str


class ReceiptTotalsIn(BaseModel):
    subtotal: Optional[str] = None
    tax: Optional[str] = None
    tip: Optional[str] = None
    total: Optional[str] = None


class ReceiptRequest(BaseModel):
    items: Optional[list[ReceiptItemIn]] = None
    raw_file: Optional[bytes] = None
    filename: str = "receipt.jpg"
    totals: Optional[ReceiptTotalsIn] = None

    @model_validator(mode="after")
    def _one_source(self) -> "ReceiptRequest":
        if (self.items is None) == (self.raw_file is None):
            raise ValueError("provide either items or raw_file")
        return self


class ClaimsRequest(BaseModel):
    member_ids: list[str] = Field(default_factory=list)


class TipRequest(BaseModel):
    amount: str


class ItemOut(BaseModel):
    id: str
    name: str
    price: str


class AllocationOut(BaseModel):
    member_id: str
    display_name: Optional[str] = None
    amount: str


class ClaimsResponse(BaseModel):
    item_id: str
    member_ids: list[str]


class TransactionOut(BaseModel):
    id: str
    group_id: str
    mode: SplitMode
    status: TransactionStatus
    created_by: str
    items: list[ItemOut]
    claims: dict[str, list[str]]
    tip: str
    subtotal: str
    total: str
    allocation_deadline_at: Optional[datetime] = None
    created_at: datetime
    finalized_at: Optional[datetime] = None
    allocations: list[AllocationOut] = Field(default_factory=list)
    preview: Optional[list[AllocationOut]] = None


class FinalizeResponse(BaseModel):
    transaction_id: str
    status: TransactionStatus
    allocations: list[AllocationOut]


class ActivityOut(BaseModel):
    transaction_id: str
    group_id: str
    mode: SplitMode
    amount: str
    finalized_at: Optional[datetime] = None


def allocation_out(allocations: Sequence[Allocation], members: Sequence[Member]) -> list[AllocationOut]:
    names = {member.id: member.display_name for member in members}
    return [
        AllocationOut(
            member_id=allocation.member_id,
            display_name=names.get(allocation.member_id),
            amount=format_minor_units(allocation.amount_minor_units),
        )
        for allocation in allocations
    ]


def transaction_out(
    transaction: Transaction,
    members: Sequence[Member],
    preview: Sequence[Allocation] | None = None,
) -> TransactionOut:
    return TransactionOut(
        id=transaction.id,
        group_id=transaction.group_id,
        mode=transaction.split_mode,
        status=transaction.status,
        created_by=transaction.created_by,
        items=[
            ItemOut(id=item.id, name=item.name, price=format_minor_units(item.price_minor_units))
            for item in transaction.items
        ],
        claims={item_id: list(member_ids) for item_id, member_ids in transaction.claims.as_dict().items()},
        tip=format_minor_units(transaction.tip_minor_units),
        subtotal=format_minor_units(transaction.subtotal_minor_units),
        total=format_minor_units(transaction.total_minor_units),
        allocation_deadline_at=transaction.allocation_deadline_at,
        created_at=transaction.created_at,
        finalized_at=transaction.finalized_at,
        allocations=allocation_out(transaction.allocations, members),
        preview=allocation_out(preview, members) if preview is not None else None,
    )


def activity_out(entry: ActivityEntry) -> ActivityOut:
    return ActivityOut(
        transaction_id=entry.transaction_id,
        group_id=entry.group_id,
        mode=entry.split_mode,
        amount=format_minor_units(entry.amount_minor_units),
        finalized_at=entry.finalized_at,
    )
