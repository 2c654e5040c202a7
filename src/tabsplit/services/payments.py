from __future__ import annotations

from typing import Protocol, Sequence

from tabsplit.db.models import Allocation
from tabsplit.logging import get_logger


class PaymentExecutor(Protocol):
    async def submit(self, transaction_id: str, allocations: Sequence[Allocation]) -> None: ...


class LoggingPaymentExecutor:
    """Records finalized allocations; settlement happens in an external service."""

    def __init__(self) -> None:
        self._log = get_logger(__name__)

    async def submit(self, transaction_id: str, allocations: Sequence[Allocation]) -> None:
        for allocation in allocations:
            if allocation.amount_minor_units == 0:
                continue
            self._log.info(
                "payment.submitted",
                transaction_id=transaction_id,
                member_id=allocation.member_id,
                amount=allocation.amount_minor_units,
            )
