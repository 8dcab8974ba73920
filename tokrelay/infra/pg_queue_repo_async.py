# tokrelay/infra/pg_queue_repo_async.py
"""
Async PostgreSQL delivery queue (asyncpg).

Durable, append-only message_queue table. Four mutators only:
enqueue, increment_attempts, mark_done, mark_failed. Jobs are never
deleted here.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from tokrelay.infra.db_resilience_async import safe_db_conn
from tokrelay.infra.logging_config import get_logger
from tokrelay.infra.metrics import RelayMetrics

logger = get_logger(__name__)

STATUS_PENDING = "pending"
STATUS_DONE = "done"
STATUS_FAILED = "failed"


@dataclass
class QueueJob:
    """A delivery job from the message_queue table."""

    id: int
    payload: dict[str, Any]
    status: str
    attempts: int
    created_at: datetime
    updated_at: datetime


def _row_to_job(row) -> QueueJob:
    """Convert an asyncpg Record to a QueueJob dataclass."""
    payload = row["payload"]
    if isinstance(payload, str):
        payload = json.loads(payload)
    return QueueJob(
        id=int(row["id"]),
        payload=payload,
        status=row["status"],
        attempts=row["attempts"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class AsyncPostgresQueueRepository:
    """DB-backed delivery queue."""

    async def enqueue(self, payload: dict[str, Any]) -> int:
        """
        Insert a new pending job.

        Returns:
            Job id
        """
        async with safe_db_conn() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO message_queue (payload)
                VALUES ($1::jsonb)
                RETURNING id
                """,
                json.dumps(payload),
            )
            job_id = int(row["id"])
            logger.debug(f"Job enqueued: id={job_id}", extra={"job_id": job_id})
            RelayMetrics.job_enqueued()
            return job_id

    async def get_pending(self, limit: int = 5) -> list[QueueJob]:
        """Up to `limit` pending jobs, oldest first."""
        async with safe_db_conn() as conn:
            rows = await conn.fetch(
                """
                SELECT id, payload, status, attempts, created_at, updated_at
                FROM message_queue
                WHERE status = 'pending'
                ORDER BY created_at ASC, id ASC
                LIMIT $1
                """,
                limit,
            )
            return [_row_to_job(row) for row in rows]

    async def increment_attempts(self, job_id: int) -> None:
        async with safe_db_conn() as conn:
            await conn.execute(
                """
                UPDATE message_queue
                SET attempts = attempts + 1, updated_at = now()
                WHERE id = $1
                """,
                job_id,
            )

    async def mark_done(self, job_id: int) -> None:
        await self._set_status(job_id, STATUS_DONE)

    async def mark_failed(self, job_id: int) -> None:
        await self._set_status(job_id, STATUS_FAILED)

    async def _set_status(self, job_id: int, status: str) -> None:
        # Only pending jobs move; a job finished elsewhere keeps its status
        async with safe_db_conn() as conn:
            await conn.execute(
                """
                UPDATE message_queue
                SET status = $2, updated_at = now()
                WHERE id = $1 AND status = 'pending'
                """,
                job_id,
                status,
            )

    async def count_by_status(self) -> dict[str, int]:
        """Return {status: count} for admin visibility."""
        async with safe_db_conn() as conn:
            rows = await conn.fetch(
                "SELECT status, count(*)::int AS cnt FROM message_queue GROUP BY status",
            )
            return {row["status"]: row["cnt"] for row in rows}

    async def get_recent(self, limit: int = 50, status: str | None = None) -> list[QueueJob]:
        """Most recent jobs for the admin endpoint."""
        async with safe_db_conn() as conn:
            if status:
                rows = await conn.fetch(
                    """
                    SELECT id, payload, status, attempts, created_at, updated_at
                    FROM message_queue
                    WHERE status = $1
                    ORDER BY created_at DESC
                    LIMIT $2
                    """,
                    status,
                    limit,
                )
            else:
                rows = await conn.fetch(
                    """
                    SELECT id, payload, status, attempts, created_at, updated_at
                    FROM message_queue
                    ORDER BY created_at DESC
                    LIMIT $1
                    """,
                    limit,
                )
            return [_row_to_job(row) for row in rows]


_queue_repo: AsyncPostgresQueueRepository | None = None


def get_queue_repo() -> AsyncPostgresQueueRepository:
    """Get the global queue repository instance."""
    global _queue_repo
    if _queue_repo is None:
        _queue_repo = AsyncPostgresQueueRepository()
    return _queue_repo
