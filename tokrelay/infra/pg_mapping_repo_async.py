# tokrelay/infra/pg_mapping_repo_async.py
"""
Async PostgreSQL destination mapping store (asyncpg).

One row per username. telegram_topic_id is a cache of the forum topic id;
the forum's own topic listing stays authoritative.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from tokrelay.infra.db_resilience_async import safe_db_conn
from tokrelay.infra.logging_config import get_logger

logger = get_logger(__name__)

_COLUMNS = "username, channel_id, role_id, telegram_topic_id, created_at, updated_at"


@dataclass
class DestinationMapping:
    username: str
    channel_id: str
    role_id: Optional[str] = None
    telegram_topic_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


def _row_to_mapping(row) -> DestinationMapping:
    return DestinationMapping(
        username=row["username"],
        channel_id=row["channel_id"],
        role_id=row["role_id"],
        telegram_topic_id=row["telegram_topic_id"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _normalize(username: str) -> str:
    return username.strip().lower()


class AsyncPostgresMappingRepository:
    """username -> destination channel / role / topic"""

    async def find_by_username(self, username: str) -> Optional[DestinationMapping]:
        async with safe_db_conn() as conn:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM user_mapping WHERE username = $1",
                _normalize(username),
            )
            return _row_to_mapping(row) if row else None

    async def upsert(
        self,
        username: str,
        channel_id: str,
        role_id: Optional[str] = None,
    ) -> None:
        """
        Create or repoint a mapping.

        Idempotent: repeating the call leaves one row; only updated_at moves.
        The cached topic id survives because the topic belongs to the username,
        not to the channel.
        """
        async with safe_db_conn() as conn:
            await conn.execute(
                """
                INSERT INTO user_mapping (username, channel_id, role_id)
                VALUES ($1, $2, $3)
                ON CONFLICT (username) DO UPDATE
                SET channel_id = EXCLUDED.channel_id,
                    role_id = EXCLUDED.role_id,
                    updated_at = now()
                """,
                _normalize(username),
                str(channel_id),
                role_id,
            )
        logger.debug(f"Mapping upserted: @{username} -> {channel_id}", extra={"username": username})

    async def update_telegram_topic(self, username: str, topic_id: str) -> None:
        async with safe_db_conn() as conn:
            await conn.execute(
                """
                UPDATE user_mapping
                SET telegram_topic_id = $2, updated_at = now()
                WHERE username = $1
                """,
                _normalize(username),
                str(topic_id),
            )

    async def delete(self, username: str) -> bool:
        """Remove a mapping (operator tooling). Returns True if a row was removed."""
        async with safe_db_conn() as conn:
            result = await conn.execute(
                "DELETE FROM user_mapping WHERE username = $1",
                _normalize(username),
            )
            return result.split()[-1] != "0" if result else False

    async def list_all(self, limit: int = 500) -> list[DestinationMapping]:
        async with safe_db_conn() as conn:
            rows = await conn.fetch(
                f"SELECT {_COLUMNS} FROM user_mapping ORDER BY username LIMIT $1",
                limit,
            )
            return [_row_to_mapping(row) for row in rows]


_mapping_repo: AsyncPostgresMappingRepository | None = None


def get_mapping_repo() -> AsyncPostgresMappingRepository:
    global _mapping_repo
    if _mapping_repo is None:
        _mapping_repo = AsyncPostgresMappingRepository()
    return _mapping_repo
