from __future__ import annotations

from datetime import datetime, timezone
from typing import Sequence

from tabsplit.db.models import Allocation, DeadlinePolicy, Member, SplitMode, TransactionStatus
from tabsplit.errors import ConflictError, ValidationError
from tabsplit.logging import get_logger
from tabsplit.services.authz import assert_creator
from tabsplit.services.split import calculate_allocations
from tabsplit.services.transactions import Transaction


class FinalizationService:
    """Performs the one-way PENDING_ALLOCATION -> FINALIZED transition.

    Callers are expected to hold the transaction's critical section; the
    service itself only checks and mutates the aggregate it is given.
    """

    def __init__(self) -> None:
        self._log = get_logger(__name__)

    def check_ready(self, transaction: Transaction) -> None:
        if transaction.status == TransactionStatus.FINALIZED:
            raise ConflictError(f"Transaction {transaction.id} is already FINALIZED")
        transaction.require_status(TransactionStatus.PENDING_ALLOCATION)

        if transaction.subtotal_minor_units <= 0:
            raise ValidationError("Nothing to split: the receipt subtotal is zero")

        if transaction.split_mode == SplitMode.FULL_CONTROL and not transaction.claims.is_complete():
            unclaimed = set(transaction.claims.unclaimed_items())
            names = [item.name for item in transaction.items if item.id in unclaimed]
            raise ValidationError(
                f"Every item must be claimed before finalizing; unclaimed: {', '.join(names)}",
                issues=names,
            )

    def finalize(
        self,
        transaction: Transaction,
        members: Sequence[Member],
        actor_id: str,
        now: datetime | None = None,
    ) -> list[Allocation]:
        assert_creator(transaction, actor_id, "finalize")
        self.check_ready(transaction)

        allocations = calculate_allocations(
            transaction.items,
            transaction.claims,
            transaction.tip_minor_units,
            transaction.split_mode,
            members,
        )
        transaction.mark_finalized(allocations, now)
        self._log.info(
            "transaction.finalized",
            transaction_id=transaction.id,
            group_id=transaction.group_id,
            split_mode=transaction.split_mode.value,
            total=transaction.total_minor_units,
            members=len(allocations),
        )
        return allocations

    def expire(
        self,
        transaction: Transaction,
        members: Sequence[Member],
        policy: DeadlinePolicy,
        now: datetime | None = None,
    ) -> TransactionStatus | None:
        """Apply ``policy`` to an overdue transaction; ``None`` when nothing changed."""
        now = now or datetime.now(timezone.utc)
        if policy == DeadlinePolicy.NONE or not transaction.is_overdue(now):
            return None

        if policy == DeadlinePolicy.CANCEL or transaction.subtotal_minor_units == 0:
            transaction.cancel()
            self._log.info("transaction.expired.cancelled", transaction_id=transaction.id)
            return transaction.status

        allocations = calculate_allocations(
            transaction.items,
            {},
            transaction.tip_minor_units,
            SplitMode.EVEN_SPLIT,
            members,
        )
        transaction.mark_finalized(allocations, now)
        self._log.info(
            "transaction.expired.even_fallback",
            transaction_id=transaction.id,
            total=transaction.total_minor_units,
        )
        return transaction.status
