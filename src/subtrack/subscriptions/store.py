"""Persistent subscription records keyed by email."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional

import asyncpg

from subtrack.db.models import Table
from subtrack.db.pool import get_pool
from subtrack.errors import DuplicateKeyError, StoreUnavailableError
from subtrack.subscriptions.models import SubscriptionRecord, SubscriptionUpdate

logger = logging.getLogger(__name__)

PoolFactory = Callable[[], Awaitable[asyncpg.Pool]]

_SELECT_COLUMNS = (
    "id, email, stripe_customer_id, plan_name, subscription_id, "
    "subscription_status, created_at, updated_at"
)


class SubscriptionStore:
    """Point reads and writes against the subscriptions table.

    The pool is resolved on every operation, so a store built while the
    database is down starts working once it comes back.
    """

    def __init__(self, pool_factory: PoolFactory = get_pool):
        self._pool_factory = pool_factory

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[asyncpg.Connection]:
        try:
            pool = await self._pool_factory()
            async with pool.acquire() as conn:
                yield conn
        except asyncpg.UniqueViolationError as e:
            raise DuplicateKeyError(str(e)) from e
        except (
            asyncpg.PostgresError,
            asyncpg.InterfaceError,
            OSError,
            asyncio.TimeoutError,
            RuntimeError,
        ) as e:
            raise StoreUnavailableError(f"Subscription store unavailable: {e}") from e

    async def create(self, record: SubscriptionRecord) -> None:
        """
        Insert a new record.

        Raises:
            DuplicateKeyError: If a record with this email already exists
            StoreUnavailableError: On connection or database errors
        """
        async with self._connection() as conn:
            await conn.execute(
                f"""
                INSERT INTO {Table.SUBSCRIPTIONS}
                    (email, stripe_customer_id, plan_name, subscription_id, subscription_status)
                VALUES ($1, $2, $3, $4, $5)
                """,
                record.email,
                record.stripe_customer_id,
                record.plan_name.value,
                record.subscription_id,
                record.status.value,
            )

        logger.info(
            f"Created subscription record for {record.email}: "
            f"plan={record.plan_name.value}, status={record.status.value}"
        )

    async def update_by_email(self, email: str, update: SubscriptionUpdate) -> int:
        """
        Apply a partial update and refresh updated_at.

        An empty update returns without touching the database. An unknown
        email is not an error.

        Returns:
            int: Number of rows updated (0 or 1)

        Raises:
            StoreUnavailableError: On connection or database errors
        """
        if update.is_empty():
            return 0

        columns = update.columns()
        assignments = [f"{column} = ${i}" for i, column in enumerate(columns, start=1)]
        assignments.append("updated_at = now()")

        async with self._connection() as conn:
            result = await conn.execute(
                f"""
                UPDATE {Table.SUBSCRIPTIONS}
                SET {', '.join(assignments)}
                WHERE email = ${len(columns) + 1}
                """,
                *columns.values(),
                email,
            )

        # asyncpg returns the command tag, e.g. "UPDATE 1"
        updated = int(result.split()[-1])
        logger.info(f"Updated subscription for {email}: {columns} ({updated} row(s))")
        return updated

    async def get_by_email(self, email: str) -> Optional[SubscriptionRecord]:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"SELECT {_SELECT_COLUMNS} FROM {Table.SUBSCRIPTIONS} WHERE email = $1",
                email,
            )
        return SubscriptionRecord.from_row(row) if row else None

    async def get_by_customer_id(self, customer_id: str) -> Optional[SubscriptionRecord]:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {_SELECT_COLUMNS}
                FROM {Table.SUBSCRIPTIONS}
                WHERE stripe_customer_id = $1
                """,
                customer_id,
            )
        return SubscriptionRecord.from_row(row) if row else None
