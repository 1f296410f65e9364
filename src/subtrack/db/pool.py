"""asyncpg connection pool factory with startup health check."""

import asyncio
import logging
from typing import Optional

import asyncpg

from subtrack.config import get_config

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_SECONDS = 5.0

_pool: Optional[asyncpg.Pool] = None


async def get_pool() -> asyncpg.Pool:
    """
    Shared pool for the subscription store and migrations.

    The pool is built lazily and kept only after a `SELECT 1` round trip
    succeeds. When building it fails nothing is cached, so callers such as
    the webhook handler simply try again on the next request while
    PostgreSQL is starting up.

    Raises:
        asyncpg.PostgresError: Credentials or database rejected
        OSError: Host unreachable
        asyncio.TimeoutError: No pool within CONNECT_TIMEOUT_SECONDS
        RuntimeError: `SELECT 1` did not come back as 1
    """
    global _pool

    if _pool is not None:
        return _pool

    config = get_config()

    try:
        pool = await asyncio.wait_for(
            asyncpg.create_pool(
                str(config.db_dsn),
                min_size=config.db_pool_min,
                max_size=config.db_pool_max,
            ),
            timeout=CONNECT_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        raise asyncio.TimeoutError(
            f"Database connection timed out after {CONNECT_TIMEOUT_SECONDS:.0f} seconds"
        )

    if pool is None:
        raise RuntimeError("Failed to create database pool")

    try:
        async with pool.acquire() as conn:
            result = await conn.fetchval("SELECT 1")
            if result != 1:
                raise RuntimeError(f"Health check failed: expected 1, got {result}")
    except Exception as e:
        await pool.close()
        raise RuntimeError(f"Database health check failed: {e}") from e

    logger.info(
        f"Database pool ready: min={config.db_pool_min}, max={config.db_pool_max}"
    )
    _pool = pool
    return _pool


async def close_pool() -> None:
    """
    Close the pool if one is open.

    Falls back to terminate() when a graceful close does not finish within
    5 seconds (usually a connection that was never released).
    """
    global _pool
    if _pool is None:
        return

    try:
        await asyncio.wait_for(_pool.close(), timeout=CONNECT_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        logger.warning("Pool close timed out; terminating remaining connections")
        _pool.terminate()
    finally:
        _pool = None
