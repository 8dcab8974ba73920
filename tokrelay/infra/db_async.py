# tokrelay/infra/db_async.py
"""
Shared asyncpg pool for the relay stores.

The queue, mapping and runtime-config repositories all borrow connections
from here; nothing else opens connections of its own.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import asyncpg

from tokrelay.config import settings
from tokrelay.infra.logging_config import get_logger

logger = get_logger(__name__)

# Statement ceiling; the relay only runs short single-row queries
COMMAND_TIMEOUT_SECONDS = 30

_pool: asyncpg.Pool | None = None


def _require_pool() -> asyncpg.Pool:
    if _pool is None:
        raise RuntimeError("Connection pool not initialized. Call init_pool() first.")
    return _pool


async def init_pool() -> None:
    """Create the pool; a second call is a no-op."""
    global _pool

    if _pool is not None:
        return

    _pool = await asyncpg.create_pool(
        dsn=settings.database_dsn,
        min_size=settings.pg_pool_min,
        max_size=settings.pg_pool_max,
        timeout=settings.pg_connect_timeout,
        command_timeout=COMMAND_TIMEOUT_SECONDS,
        server_settings={"application_name": "tokrelay"},
    )
    logger.info(f"Database pool ready: min={settings.pg_pool_min}, max={settings.pg_pool_max}")


async def close_pool() -> None:
    global _pool

    if _pool is None:
        return

    pool, _pool = _pool, None
    await pool.close()
    logger.info("Database pool closed")


@asynccontextmanager
async def db_conn(autocommit: bool = True) -> AsyncIterator[asyncpg.Connection]:
    """
    Borrow a pooled connection.

    With autocommit=False the block runs inside one transaction (used by
    the migration runner so a failed file leaves no partial schema).
    """
    async with _require_pool().acquire() as conn:
        if autocommit:
            yield conn
        else:
            async with conn.transaction():
                yield conn


async def get_pool() -> asyncpg.Pool:
    return _require_pool()


def pool_stats() -> dict:
    """Size and idle counts for the readiness endpoint; empty before init."""
    if _pool is None:
        return {}
    return {
        "size": _pool.get_size(),
        "idle": _pool.get_idle_size(),
        "min": _pool.get_min_size(),
        "max": _pool.get_max_size(),
    }
