from __future__ import annotations

import asyncio
import dataclasses
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Iterable, Protocol

import asyncpg

from tabsplit.db.models import ActivityEntry, Allocation, Member, ReceiptItem, SplitMode, TransactionStatus
from tabsplit.errors import ConflictError, NotFoundError
from tabsplit.logging import get_logger, sql_logger
from tabsplit.services.claims import ClaimTable
from tabsplit.services.transactions import Transaction

ACTIVITY_LIMIT = 50


class TransactionRepository(Protocol):
    async def add(self, transaction: Transaction) -> None: ...

    async def get(self, transaction_id: str) -> Transaction: ...

    async def list_for_group(self, group_id: str) -> list[Transaction]: ...

    def locked(self, transaction_id: str) -> Any:
        """Async context manager yielding the transaction inside its critical section.

        Changes made to the yielded aggregate are stored when the block exits
        normally and discarded when it raises.
        """
        ...

    async def list_overdue_ids(self, now: datetime) -> list[str]: ...

    async def list_member_activity(self, member_id: str) -> list[ActivityEntry]: ...


class MemberDirectory(Protocol):
    async def list_members(self, group_id: str) -> list[Member]: ...

    async def add_member(self, group_id: str, member: Member) -> None: ...


def _snapshot(transaction: Transaction) -> Transaction:
    return dataclasses.replace(transaction, claims=transaction.claims.copy())


def _conflicting(existing: Iterable[Transaction], candidate: Transaction) -> bool:
    return any(
        tx.is_active and tx.group_id == candidate.group_id and tx.split_mode == candidate.split_mode
        for tx in existing
    )


class InMemoryTransactionRepository:
    def __init__(self) -> None:
        self._transactions: dict[str, Transaction] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._create_lock = asyncio.Lock()
        self._log = get_logger(__name__)

    async def add(self, transaction: Transaction) -> None:
        async with self._create_lock:
            if transaction.id in self._transactions:
                raise ConflictError(f"Transaction {transaction.id} already exists")
            if _conflicting(self._transactions.values(), transaction):
                raise ConflictError(
                    f"Group {transaction.group_id} already has an active {transaction.split_mode.value} transaction"
                )
            self._transactions[transaction.id] = _snapshot(transaction)
            self._locks[transaction.id] = asyncio.Lock()
        self._log.info("memory.transaction.added", transaction_id=transaction.id)

    async def get(self, transaction_id: str) -> Transaction:
        stored = self._transactions.get(transaction_id)
        if stored is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        return _snapshot(stored)

    async def list_for_group(self, group_id: str) -> list[Transaction]:
        rows = [_snapshot(tx) for tx in self._transactions.values() if tx.group_id == group_id]
        return sorted(rows, key=lambda tx: tx.created_at, reverse=True)

    @asynccontextmanager
    async def locked(self, transaction_id: str) -> AsyncIterator[Transaction]:
        lock = self._locks.get(transaction_id)
        if lock is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        async with lock:
            # Creation checks read statuses, so commits share the creation lock.
            working = _snapshot(self._transactions[transaction_id])
            yield working
            async with self._create_lock:
                self._transactions[transaction_id] = working

    async def list_overdue_ids(self, now: datetime) -> list[str]:
        return [tx.id for tx in self._transactions.values() if tx.is_overdue(now)]

    async def list_member_activity(self, member_id: str) -> list[ActivityEntry]:
        entries = [
            ActivityEntry(
                transaction_id=tx.id,
                group_id=tx.group_id,
                split_mode=tx.split_mode,
                amount_minor_units=allocation.amount_minor_units,
                finalized_at=tx.finalized_at,
            )
            for tx in self._transactions.values()
            if tx.status == TransactionStatus.FINALIZED
            for allocation in tx.allocations
            if allocation.member_id == member_id
        ]
        entries.sort(key=lambda entry: entry.finalized_at or datetime.min.replace(tzinfo=timezone.utc), reverse=True)
        return entries[:ACTIVITY_LIMIT]


class InMemoryMemberDirectory:
    def __init__(self, rosters: dict[str, Iterable[Member]] | None = None) -> None:
        self._rosters: dict[str, dict[str, Member]] = {}
        for group_id, members in (rosters or {}).items():
            for member in members:
                self._rosters.setdefault(group_id, {})[member.id] = member

    async def list_members(self, group_id: str) -> list[Member]:
        return sorted(self._rosters.get(group_id, {}).values(), key=lambda member: member.id)

    async def add_member(self, group_id: str, member: Member) -> None:
        self._rosters.setdefault(group_id, {})[member.id] = member


class Database:
    def __init__(self, dsn: str) -> None:
        self._dsn = dsn
        self._pool: asyncpg.Pool | None = None
        self._log = get_logger(__name__)

    async def connect(self) -> None:
        if self._pool is None:
            # asyncpg expects a plain postgresql:// scheme, without "+asyncpg"
            dsn = self._dsn.replace("+asyncpg", "")
            self._pool = await asyncpg.create_pool(dsn)
            self._log.info("db.pool.created")

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            self._log.info("db.pool.closed")

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        await self._ensure_pool()
        assert self._pool
        sql_logger.info("sql.fetch", query=query, args=args)
        return await self._pool.fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        await self._ensure_pool()
        assert self._pool
        sql_logger.info("sql.fetchrow", query=query, args=args)
        return await self._pool.fetchrow(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        await self._ensure_pool()
        assert self._pool
        sql_logger.info("sql.fetchval", query=query, args=args)
        return await self._pool.fetchval(query, *args)

    async def execute(self, query: str, *args: Any) -> str:
        await self._ensure_pool()
        assert self._pool
        sql_logger.info("sql.execute", query=query, args=args)
        return await self._pool.execute(query, *args)

    async def executemany(self, command: str, args: Iterable[Iterable[Any]]) -> None:
        await self._ensure_pool()
        assert self._pool
        sql_logger.info("sql.executemany", query=command)
        await self._pool.executemany(command, args)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        await self._ensure_pool()
        assert self._pool
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                sql_logger.info("sql.transaction.begin")
                yield conn

    async def _ensure_pool(self) -> None:
        if self._pool is None:
            await self.connect()


class PostgresTransactionRepository:
    def __init__(self, db: Database) -> None:
        self.db = db

    async def add(self, transaction: Transaction) -> None:
        try:
            await self.db.execute(
                """
                INSERT INTO transactions
                    (id, group_id, split_mode, status, created_by, tip_minor_units,
                     allocation_deadline_at, created_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                """,
                transaction.id,
                transaction.group_id,
                transaction.split_mode.value,
                transaction.status.value,
                transaction.created_by,
                transaction.tip_minor_units,
                transaction.allocation_deadline_at,
                transaction.created_at,
            )
        except asyncpg.UniqueViolationError as exc:
            raise ConflictError(
                f"Group {transaction.group_id} already has an active {transaction.split_mode.value} transaction"
            ) from exc

    async def get(self, transaction_id: str) -> Transaction:
        row = await self.db.fetchrow("SELECT * FROM transactions WHERE id = $1", transaction_id)
        if row is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        return await self._load(self.db, row)

    async def list_for_group(self, group_id: str) -> list[Transaction]:
        rows = await self.db.fetch(
            "SELECT * FROM transactions WHERE group_id = $1 ORDER BY created_at DESC",
            group_id,
        )
        return [await self._load(self.db, row) for row in rows]

    @asynccontextmanager
    async def locked(self, transaction_id: str) -> AsyncIterator[Transaction]:
        async with self.db.transaction() as conn:
            row = await conn.fetchrow("SELECT * FROM transactions WHERE id = $1 FOR UPDATE", transaction_id)
            if row is None:
                raise NotFoundError(f"Transaction {transaction_id} not found")
            transaction = await self._load(conn, row)
            yield transaction
            await self._save(conn, transaction)

    async def list_overdue_ids(self, now: datetime) -> list[str]:
        rows = await self.db.fetch(
            """
            SELECT id FROM transactions
            WHERE status = 'PENDING_ALLOCATION'
              AND allocation_deadline_at IS NOT NULL
              AND allocation_deadline_at <= $1
            """,
            now,
        )
        return [row["id"] for row in rows]

    async def list_member_activity(self, member_id: str) -> list[ActivityEntry]:
        rows = await self.db.fetch(
            """
            SELECT t.id, t.group_id, t.split_mode, t.finalized_at, a.amount_minor_units
            FROM allocations a
            JOIN transactions t ON t.id = a.transaction_id
            WHERE a.member_id = $1 AND t.status = 'FINALIZED'
            ORDER BY t.finalized_at DESC
            LIMIT $2
            """,
            member_id,
            ACTIVITY_LIMIT,
        )
        return [
            ActivityEntry(
                transaction_id=row["id"],
                group_id=row["group_id"],
                split_mode=SplitMode(row["split_mode"]),
                amount_minor_units=row["amount_minor_units"],
                finalized_at=row["finalized_at"],
            )
            for row in rows
        ]

    async def _load(self, executor: Any, row: Any) -> Transaction:
        transaction_id = row["id"]
        item_rows = await executor.fetch(
            """
            SELECT id, name, price_minor_units FROM receipt_items
            WHERE transaction_id = $1
            ORDER BY sort_order, id
            """,
            transaction_id,
        )
        claim_rows = await executor.fetch(
            """
            SELECT c.item_id, c.member_id
            FROM item_claims c
            JOIN receipt_items i ON i.id = c.item_id
            WHERE i.transaction_id = $1
            """,
            transaction_id,
        )
        allocation_rows = await executor.fetch(
            "SELECT member_id, amount_minor_units FROM allocations WHERE transaction_id = $1 ORDER BY member_id",
            transaction_id,
        )

        items = tuple(
            ReceiptItem(id=item["id"], name=item["name"], price_minor_units=item["price_minor_units"])
            for item in item_rows
        )
        claimed: dict[str, list[str]] = {}
        for claim in claim_rows:
            claimed.setdefault(claim["item_id"], []).append(claim["member_id"])

        return Transaction(
            id=transaction_id,
            group_id=row["group_id"],
            split_mode=SplitMode(row["split_mode"]),
            created_by=row["created_by"],
            status=TransactionStatus(row["status"]),
            items=items,
            claims=ClaimTable.from_mapping([item.id for item in items], claimed),
            tip_minor_units=row["tip_minor_units"],
            allocation_deadline_at=row["allocation_deadline_at"],
            created_at=row["created_at"],
            finalized_at=row["finalized_at"],
            allocations=tuple(
                Allocation(member_id=alloc["member_id"], amount_minor_units=alloc["amount_minor_units"])
                for alloc in allocation_rows
            ),
        )

    async def _save(self, conn: asyncpg.Connection, transaction: Transaction) -> None:
        sql_logger.info("sql.transaction.save", transaction_id=transaction.id, status=transaction.status.value)
        await conn.execute(
            """
            UPDATE transactions
            SET status = $2, tip_minor_units = $3, finalized_at = $4
            WHERE id = $1
            """,
            transaction.id,
            transaction.status.value,
            transaction.tip_minor_units,
            transaction.finalized_at,
        )

        await conn.execute("DELETE FROM receipt_items WHERE transaction_id = $1", transaction.id)
        await conn.executemany(
            """
            INSERT INTO receipt_items (id, transaction_id, name, price_minor_units, sort_order)
            VALUES ($1, $2, $3, $4, $5)
            """,
            [
                (item.id, transaction.id, item.name, item.price_minor_units, idx)
                for idx, item in enumerate(transaction.items)
            ],
        )
        await conn.executemany(
            "INSERT INTO item_claims (item_id, member_id) VALUES ($1, $2)",
            [
                (item_id, member_id)
                for item_id, member_ids in transaction.claims.as_dict().items()
                for member_id in member_ids
            ],
        )

        await conn.execute("DELETE FROM allocations WHERE transaction_id = $1", transaction.id)
        await conn.executemany(
            "INSERT INTO allocations (transaction_id, member_id, amount_minor_units) VALUES ($1, $2, $3)",
            [(transaction.id, a.member_id, a.amount_minor_units) for a in transaction.allocations],
        )


class PostgresMemberDirectory:
    def __init__(self, db: Database) -> None:
        self.db = db

    async def list_members(self, group_id: str) -> list[Member]:
        rows = await self.db.fetch(
            """
            SELECT u.id, u.display_name
            FROM group_members gm
            JOIN users u ON u.id = gm.user_id
            WHERE gm.group_id = $1
            ORDER BY u.id
            """,
            group_id,
        )
        return [Member(id=row["id"], display_name=row["display_name"]) for row in rows]

    async def add_member(self, group_id: str, member: Member) -> None:
        await self.db.execute(
            """
            INSERT INTO users (id, display_name)
            VALUES ($1, $2)
            ON CONFLICT (id) DO UPDATE SET display_name = EXCLUDED.display_name
            """,
            member.id,
            member.display_name,
        )
        await self.db.execute(
            """
            INSERT INTO group_members (group_id, user_id)
            VALUES ($1, $2)
            ON CONFLICT DO NOTHING
            """,
            group_id,
            member.id,
        )
