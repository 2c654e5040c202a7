from __future__ import annotations

from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from tabsplit.api.service import TransactionAPI
from tabsplit.config import get_settings
from tabsplit.db.models import DeadlinePolicy
from tabsplit.errors import TabSplitError
from tabsplit.logging import get_logger, transaction_context


async def setup_scheduler(api: TransactionAPI) -> AsyncIOScheduler:
    settings = get_settings()

    scheduler = AsyncIOScheduler(timezone=settings.tz)
    if settings.deadline_policy != DeadlinePolicy.NONE:
        scheduler.add_job(
            _deadline_job,
            IntervalTrigger(seconds=settings.deadline_sweep_seconds),
            kwargs={"api": api},
        )
    scheduler.start()
    return scheduler


async def _deadline_job(api: TransactionAPI) -> None:
    log = get_logger(__name__)
    now = datetime.now(timezone.utc)
    overdue = await api.repo.list_overdue_ids(now)

    for transaction_id in overdue:
        with transaction_context(transaction_id):
            try:
                outcome = await api.expire_transaction(transaction_id, now)
            except TabSplitError as exc:
                log.warning("deadline.expire.failed", error=str(exc))
                continue
            if outcome is not None:
                log.info("deadline.expired", status=outcome.value)
