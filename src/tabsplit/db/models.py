from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from tabsplit.errors import ValidationError


class SplitMode(str, Enum):
    EVEN_SPLIT = "EVEN_SPLIT"
    FULL_CONTROL = "FULL_CONTROL"


class DeadlinePolicy(str, Enum):
    NONE = "none"
    CANCEL = "cancel"
    EVEN_FALLBACK = "even_fallback"


class TransactionStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING_ALLOCATION = "PENDING_ALLOCATION"
    FINALIZED = "FINALIZED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (TransactionStatus.FINALIZED, TransactionStatus.CANCELLED)


@dataclass(slots=True, frozen=True)
class Member:
    id: str
    display_name: str


@dataclass(slots=True, frozen=True)
class ReceiptItem:
    id: str
    name: str
    price_minor_units: int

    def __post_init__(self) -> None:
        if self.price_minor_units < 0:
            raise ValidationError("price_minor_units must be non-negative")


@dataclass(slots=True, frozen=True)
class Allocation:
    member_id: str
    amount_minor_units: int


@dataclass(slots=True, frozen=True)
class ActivityEntry:
    transaction_id: str
    group_id: str
    split_mode: SplitMode
    amount_minor_units: int
    finalized_at: Optional[datetime]
