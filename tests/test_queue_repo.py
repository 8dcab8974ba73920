# tests/test_queue_repo.py
"""
Tests for the DB-backed delivery queue (pg_queue_repo_async.py):
- QueueJob dataclass / row conversion
- SQL issued by each repository method
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest

from tokrelay.infra.pg_queue_repo_async import (
    AsyncPostgresQueueRepository,
    QueueJob,
    _row_to_job,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_row(overrides: dict | None = None) -> dict:
    """Create a dict that mimics an asyncpg Record for _row_to_job."""
    now = datetime.now(timezone.utc)
    row = {
        "id": 7,
        "payload": '{"url": "https://www.tiktok.com/@jane_doe/live", "username": "jane_doe", "channel_id": "123"}',
        "status": "pending",
        "attempts": 0,
        "created_at": now,
        "updated_at": now,
    }
    if overrides:
        row.update(overrides)
    return row


# ---------------------------------------------------------------------------
# Row conversion
# ---------------------------------------------------------------------------

class TestQueueJob:
    def test_row_to_job_parses_json_string(self):
        job = _row_to_job(_make_row())
        assert isinstance(job, QueueJob)
        assert job.id == 7
        assert job.payload["username"] == "jane_doe"
        assert job.status == "pending"

    def test_row_to_job_handles_dict_payload(self):
        """When asyncpg auto-parses JSONB, payload is already a dict."""
        job = _row_to_job(_make_row({"payload": {"key": "value"}}))
        assert job.payload == {"key": "value"}


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------

class TestQueueRepository:
    @pytest.mark.asyncio
    async def test_enqueue_returns_id(self):
        repo = AsyncPostgresQueueRepository()
        mock_conn = AsyncMock()
        mock_conn.fetchrow = AsyncMock(return_value={"id": 101})

        with patch("tokrelay.infra.pg_queue_repo_async.safe_db_conn") as mock_ctx:
            mock_ctx.return_value.__aenter__ = AsyncMock(return_value=mock_conn)
            mock_ctx.return_value.__aexit__ = AsyncMock(return_value=False)

            job_id = await repo.enqueue({"url": "u", "username": "jane_doe", "channel_id": "1"})

        assert job_id == 101
        sql, payload_json = mock_conn.fetchrow.call_args[0]
        assert "INSERT INTO message_queue" in sql
        assert "RETURNING id" in sql
        assert json.loads(payload_json)["username"] == "jane_doe"

    @pytest.mark.asyncio
    async def test_get_pending_is_oldest_first(self):
        repo = AsyncPostgresQueueRepository()
        mock_conn = AsyncMock()
        mock_conn.fetch = AsyncMock(return_value=[_make_row({"id": 1}), _make_row({"id": 2})])

        with patch("tokrelay.infra.pg_queue_repo_async.safe_db_conn") as mock_ctx:
            mock_ctx.return_value.__aenter__ = AsyncMock(return_value=mock_conn)
            mock_ctx.return_value.__aexit__ = AsyncMock(return_value=False)

            jobs = await repo.get_pending(5)

        assert [j.id for j in jobs] == [1, 2]
        sql, limit = mock_conn.fetch.call_args[0]
        assert "status = 'pending'" in sql
        assert "ORDER BY created_at ASC" in sql
        assert limit == 5

    @pytest.mark.asyncio
    async def test_increment_attempts(self):
        repo = AsyncPostgresQueueRepository()
        mock_conn = AsyncMock()

        with patch("tokrelay.infra.pg_queue_repo_async.safe_db_conn") as mock_ctx:
            mock_ctx.return_value.__aenter__ = AsyncMock(return_value=mock_conn)
            mock_ctx.return_value.__aexit__ = AsyncMock(return_value=False)

            await repo.increment_attempts(7)

        sql, job_id = mock_conn.execute.call_args[0]
        assert "attempts = attempts + 1" in sql
        assert job_id == 7

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method,status", [("mark_done", "done"), ("mark_failed", "failed")])
    async def test_status_changes_only_from_pending(self, method, status):
        repo = AsyncPostgresQueueRepository()
        mock_conn = AsyncMock()

        with patch("tokrelay.infra.pg_queue_repo_async.safe_db_conn") as mock_ctx:
            mock_ctx.return_value.__aenter__ = AsyncMock(return_value=mock_conn)
            mock_ctx.return_value.__aexit__ = AsyncMock(return_value=False)

            await getattr(repo, method)(7)

        sql, job_id, new_status = mock_conn.execute.call_args[0]
        assert "AND status = 'pending'" in sql
        assert job_id == 7
        assert new_status == status

    @pytest.mark.asyncio
    async def test_count_by_status(self):
        repo = AsyncPostgresQueueRepository()
        mock_conn = AsyncMock()
        mock_conn.fetch = AsyncMock(return_value=[
            {"status": "pending", "cnt": 3},
            {"status": "done", "cnt": 10},
        ])

        with patch("tokrelay.infra.pg_queue_repo_async.safe_db_conn") as mock_ctx:
            mock_ctx.return_value.__aenter__ = AsyncMock(return_value=mock_conn)
            mock_ctx.return_value.__aexit__ = AsyncMock(return_value=False)

            counts = await repo.count_by_status()

        assert counts == {"pending": 3, "done": 10}

    @pytest.mark.asyncio
    async def test_get_recent_filters_by_status(self):
        repo = AsyncPostgresQueueRepository()
        mock_conn = AsyncMock()
        mock_conn.fetch = AsyncMock(return_value=[_make_row({"status": "failed", "attempts": 3})])

        with patch("tokrelay.infra.pg_queue_repo_async.safe_db_conn") as mock_ctx:
            mock_ctx.return_value.__aenter__ = AsyncMock(return_value=mock_conn)
            mock_ctx.return_value.__aexit__ = AsyncMock(return_value=False)

            jobs = await repo.get_recent(limit=10, status="failed")

        assert jobs[0].status == "failed"
        args = mock_conn.fetch.call_args[0]
        assert "WHERE status = $1" in args[0]
        assert args[1:] == ("failed", 10)
