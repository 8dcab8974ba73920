# tokrelay/infra/db_resilience_async.py
"""
Retry on transient asyncpg errors when acquiring and using a connection.
"""
from __future__ import annotations
import asyncio
from contextlib import asynccontextmanager

import asyncpg
from tokrelay.infra.db_async import db_conn
from tokrelay.infra.logging_config import get_logger

logger = get_logger(__name__)

TRANSIENT_PATTERNS = (
    "connection",
    "timeout",
    "closed",
    "network",
    "deadlock",
    "too many connections",
    "server closed",
    "connection reset",
)


def is_transient_error(exc: Exception) -> bool:
    """
    Check if database error is transient (should retry).

    Transient errors:
    - Connection errors
    - Server closed connection
    - Too many connections
    - Deadlock
    """
    if isinstance(exc, (
        asyncpg.PostgresConnectionError,
        asyncpg.TooManyConnectionsError,
        asyncpg.DeadlockDetectedError,
    )):
        return True

    if isinstance(exc, (OSError, asyncio.TimeoutError)):
        return True

    # Constraint/syntax errors never recover on retry
    if isinstance(exc, asyncpg.PostgresError):
        return False

    error_message = str(exc).lower()
    return any(pattern in error_message for pattern in TRANSIENT_PATTERNS)


@asynccontextmanager
async def safe_db_conn(autocommit: bool = True, max_retries: int = 3):
    """
    Database connection with retry on transient acquisition errors.

    Usage:
        async with safe_db_conn() as conn:
            await conn.execute("UPDATE message_queue SET ... WHERE id = $1", job_id)

    Only acquiring the connection is retried. Once the block has run,
    errors propagate unchanged so a statement is never replayed.
    """
    delay = 0.1

    for attempt in range(max_retries + 1):
        entered = False
        try:
            async with db_conn(autocommit=autocommit) as conn:
                entered = True
                yield conn
                return
        except Exception as exc:
            if entered or not is_transient_error(exc):
                raise

            if attempt >= max_retries:
                logger.error(f"Max retries ({max_retries}) exceeded getting connection")
                raise

            logger.warning(
                f"Transient error getting connection (attempt {attempt + 1}/{max_retries}): {exc}. "
                f"Retrying in {delay:.2f}s..."
            )

            await asyncio.sleep(delay)
            delay = min(delay * 2.0, 5.0)
