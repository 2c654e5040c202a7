from __future__ import annotations

import asyncio

from aiogram import Bot, Dispatcher

from tabsplit.api.service import TransactionAPI, set_global_api
from tabsplit.config import get_settings
from tabsplit.db.repo import (
    Database,
    InMemoryMemberDirectory,
    InMemoryTransactionRepository,
    PostgresMemberDirectory,
    PostgresTransactionRepository,
)
from tabsplit.handlers import tabs_router
from tabsplit.logging import configure_logging, get_logger
from tabsplit.scheduler import setup_scheduler


async def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    log = get_logger(__name__)
    if not settings.bot_token:
        raise RuntimeError("BOT_TOKEN is not set")

    db: Database | None = None
    if settings.database_url:
        db = Database(settings.database_url)
        await db.connect()
        api = TransactionAPI(PostgresTransactionRepository(db), PostgresMemberDirectory(db), settings=settings)
    else:
        log.warning("storage.in_memory")
        api = TransactionAPI(InMemoryTransactionRepository(), InMemoryMemberDirectory(), settings=settings)
    set_global_api(api)

    bot = Bot(token=settings.bot_token)
    dp = Dispatcher()
    dp.include_router(tabs_router)

    scheduler = await setup_scheduler(api)

    log.info("bot.start")
    try:
        await dp.start_polling(bot)
    finally:
        scheduler.shutdown(wait=False)
        if db is not None:
            await db.close()
        await bot.session.close()
        log.info("bot.stop")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
