from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

from tabsplit.db.models import Member
from tabsplit.errors import AuthorizationError, NotFoundError

if TYPE_CHECKING:
    from tabsplit.services.transactions import Transaction


def is_creator(transaction: "Transaction", actor_id: str) -> bool:
    return transaction.created_by == actor_id


def assert_creator(transaction: "Transaction", actor_id: str, action: str = "do this") -> None:
    if not is_creator(transaction, actor_id):
        raise AuthorizationError(f"Only the creator can {action}")


def assert_group_member(members: Iterable[Member], actor_id: str, group_id: str) -> None:
    if not any(member.id == actor_id for member in members):
        raise NotFoundError(f"Group {group_id} not found")
