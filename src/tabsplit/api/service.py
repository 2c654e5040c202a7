from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

from tabsplit.api.schemas import (
    ActivityOut,
    ClaimsRequest,
    ClaimsResponse,
    CreateTransactionRequest,
    FinalizeResponse,
    ReceiptRequest,
    ReceiptTotalsIn,
    TipRequest,
    TransactionOut,
    activity_out,
    allocation_out,
    transaction_out,
)
from tabsplit.config import Settings, get_settings
from tabsplit.db.models import Allocation, Member, SplitMode, TransactionStatus
from tabsplit.db.repo import MemberDirectory, TransactionRepository
from tabsplit.errors import NotFoundError, ValidationError
from tabsplit.logging import get_logger
from tabsplit.services.authz import assert_creator, assert_group_member
from tabsplit.services.finalization import FinalizationService
from tabsplit.services.money import to_minor_units
from tabsplit.services.payments import LoggingPaymentExecutor, PaymentExecutor
from tabsplit.services.receipts import (
    ExtractedItem,
    ReceiptExtractor,
    ReceiptTotals,
    build_receipt_items,
    extract_items,
    validate_receipt,
)
from tabsplit.services.split import preview_allocations
from tabsplit.services.transactions import Transaction


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _optional_minor_units(value: Optional[str]) -> Optional[int]:
    return to_minor_units(value) if value is not None else None


def _totals(totals: ReceiptTotalsIn) -> ReceiptTotals:
    return ReceiptTotals(
        subtotal_minor_units=_optional_minor_units(totals.subtotal),
        tax_minor_units=_optional_minor_units(totals.tax),
        tip_minor_units=_optional_minor_units(totals.tip),
        total_minor_units=_optional_minor_units(totals.total),
    )


class TransactionAPI:
    """Request/response operations over transactions, one critical section per call."""

    def __init__(
        self,
        repo: TransactionRepository,
        directory: MemberDirectory,
        *,
        finalizer: FinalizationService | None = None,
        extractor: ReceiptExtractor | None = None,
        payments: PaymentExecutor | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.repo = repo
        self.directory = directory
        self.finalizer = finalizer or FinalizationService()
        self.extractor = extractor
        self.payments = payments or LoggingPaymentExecutor()
        self.settings = settings or get_settings()
        self.clock = clock
        self._log = get_logger(__name__)

    async def _group_members(self, group_id: str, actor_id: str) -> list[Member]:
        members = await self.directory.list_members(group_id)
        assert_group_member(members, actor_id, group_id)
        return members

    async def _visible(self, transaction_id: str, actor_id: str) -> tuple[Transaction, list[Member]]:
        transaction = await self.repo.get(transaction_id)
        members = await self.directory.list_members(transaction.group_id)
        if not any(member.id == actor_id for member in members):
            raise NotFoundError(f"Transaction {transaction_id} not found")
        return transaction, members

    async def create_transaction(self, actor_id: str, request: CreateTransactionRequest) -> TransactionOut:
        members = await self._group_members(request.group_id, actor_id)
        transaction = Transaction.create(
            request.group_id,
            request.mode,
            actor_id,
            now=self.clock(),
            allocation_window=self.settings.allocation_window,
        )
        await self.repo.add(transaction)
        self._log.info(
            "transaction.created",
            transaction_id=transaction.id,
            group_id=transaction.group_id,
            split_mode=transaction.split_mode.value,
            created_by=actor_id,
        )
        return transaction_out(transaction, members)

    async def _extracted_items(self, request: ReceiptRequest) -> list[ExtractedItem]:
        if request.items is not None:
            return [ExtractedItem(name=item.name, price_minor_units=to_minor_units(item.price)) for item in request.items]

        if self.extractor is None:
            raise ValidationError("Receipt scanning is not available; enter the items manually")
        assert request.raw_file is not None
        return await extract_items(
            self.extractor,
            request.raw_file,
            request.filename,
            self.settings.receipt_extract_timeout_seconds,
        )

    async def attach_receipt(self, actor_id: str, transaction_id: str, request: ReceiptRequest) -> TransactionOut:
        _, members = await self._visible(transaction_id, actor_id)
        extracted = await self._extracted_items(request)

        if request.totals is not None:
            validation = validate_receipt(extracted, _totals(request.totals))
            if not validation.is_valid:
                self._log.info("receipt.rejected", transaction_id=transaction_id, issues=validation.issues)
                raise ValidationError("Receipt does not reconcile", issues=validation.issues)

        items = build_receipt_items(extracted)
        async with self.repo.locked(transaction_id) as transaction:
            replaced = bool(transaction.items)
            transaction.attach_receipt(items)

        self._log.info(
            "transaction.receipt.attached",
            transaction_id=transaction_id,
            items=len(items),
            subtotal=transaction.subtotal_minor_units,
            replaced=replaced,
        )
        return transaction_out(transaction, members)

    async def set_claims(
        self,
        actor_id: str,
        transaction_id: str,
        item_id: str,
        request: ClaimsRequest,
    ) -> ClaimsResponse:
        _, members = await self._visible(transaction_id, actor_id)
        async with self.repo.locked(transaction_id) as transaction:
            claimed = transaction.set_claims(item_id, request.member_ids, [member.id for member in members])

        self._log.info(
            "transaction.claims.set",
            transaction_id=transaction_id,
            item_id=item_id,
            actor_id=actor_id,
            member_ids=list(claimed),
        )
        return ClaimsResponse(item_id=item_id, member_ids=list(claimed))

    async def set_tip(self, actor_id: str, transaction_id: str, request: TipRequest) -> TransactionOut:
        _, members = await self._visible(transaction_id, actor_id)
        amount = to_minor_units(request.amount)
        async with self.repo.locked(transaction_id) as transaction:
            transaction.set_tip(amount, actor_id)

        self._log.info("transaction.tip.set", transaction_id=transaction_id, tip=amount)
        return transaction_out(transaction, members, self._preview(transaction, members))

    async def finalize(self, actor_id: str, transaction_id: str) -> FinalizeResponse:
        _, members = await self._visible(transaction_id, actor_id)
        async with self.repo.locked(transaction_id) as transaction:
            allocations = self.finalizer.finalize(transaction, members, actor_id, now=self.clock())

        await self.payments.submit(transaction_id, allocations)
        return FinalizeResponse(
            transaction_id=transaction_id,
            status=transaction.status,
            allocations=allocation_out(allocations, members),
        )

    async def cancel_transaction(self, actor_id: str, transaction_id: str) -> TransactionOut:
        _, members = await self._visible(transaction_id, actor_id)
        async with self.repo.locked(transaction_id) as transaction:
            assert_creator(transaction, actor_id, "cancel this transaction")
            transaction.cancel()

        self._log.info("transaction.cancelled", transaction_id=transaction_id, actor_id=actor_id)
        return transaction_out(transaction, members)

    async def cancel_group(self, group_id: str) -> int:
        """Cancel every active transaction of a group that is being deleted."""
        cancelled = 0
        for candidate in await self.repo.list_for_group(group_id):
            if not candidate.is_active:
                continue
            async with self.repo.locked(candidate.id) as transaction:
                if transaction.is_active:
                    transaction.cancel()
                    cancelled += 1
        self._log.info("group.transactions.cancelled", group_id=group_id, cancelled=cancelled)
        return cancelled

    def _preview(self, transaction: Transaction, members: list[Member]) -> list[Allocation] | None:
        if transaction.status != TransactionStatus.PENDING_ALLOCATION:
            return None
        return preview_allocations(
            transaction.items,
            transaction.claims,
            transaction.tip_minor_units,
            transaction.split_mode,
            members,
        )

    async def get_transaction(self, actor_id: str, transaction_id: str) -> TransactionOut:
        transaction, members = await self._visible(transaction_id, actor_id)
        return transaction_out(transaction, members, self._preview(transaction, members))

    async def list_transactions(self, actor_id: str, group_id: str) -> list[TransactionOut]:
        members = await self._group_members(group_id, actor_id)
        return [
            transaction_out(transaction, members, self._preview(transaction, members))
            for transaction in await self.repo.list_for_group(group_id)
        ]

    async def active_transaction(self, actor_id: str, group_id: str, mode: SplitMode) -> TransactionOut | None:
        for transaction in await self.list_transactions(actor_id, group_id):
            if transaction.mode == mode and transaction.status not in (
                TransactionStatus.FINALIZED,
                TransactionStatus.CANCELLED,
            ):
                return transaction
        return None

    async def member_activity(self, actor_id: str) -> list[ActivityOut]:
        return [activity_out(entry) for entry in await self.repo.list_member_activity(actor_id)]

    async def expire_transaction(self, transaction_id: str, now: datetime | None = None) -> TransactionStatus | None:
        """Apply the configured deadline policy to one transaction."""
        now = now or self.clock()
        snapshot = await self.repo.get(transaction_id)
        members = await self.directory.list_members(snapshot.group_id)
        async with self.repo.locked(transaction_id) as transaction:
            outcome = self.finalizer.expire(transaction, members, self.settings.deadline_policy, now)

        if outcome == TransactionStatus.FINALIZED:
            await self.payments.submit(transaction_id, transaction.allocations)
        return outcome

    async def expire_overdue(self, now: datetime | None = None) -> int:
        now = now or self.clock()
        expired = 0
        for transaction_id in await self.repo.list_overdue_ids(now):
            if await self.expire_transaction(transaction_id, now) is not None:
                expired += 1
        return expired


_global_api: TransactionAPI | None = None


def set_global_api(api: TransactionAPI) -> None:
    global _global_api
    _global_api = api


def get_global_api() -> TransactionAPI:
    if _global_api is None:
        raise RuntimeError("Transaction API is not initialised")
    return _global_api
