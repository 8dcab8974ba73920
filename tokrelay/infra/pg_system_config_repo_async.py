# tokrelay/infra/pg_system_config_repo_async.py
"""
Runtime configuration stored in the system_config table.

Operators flip DOWNLOAD_ENGINE / AUTO_DOWNLOAD without a restart, so
values are read on every use and never cached in process. When a key has
no row, the environment default from settings applies.
"""
from __future__ import annotations

from typing import Optional

from tokrelay.config import settings
from tokrelay.infra.db_resilience_async import safe_db_conn
from tokrelay.infra.logging_config import get_logger

logger = get_logger(__name__)

KEY_DOWNLOAD_ENGINE = "DOWNLOAD_ENGINE"
KEY_AUTO_DOWNLOAD = "AUTO_DOWNLOAD"

RUNTIME_KEYS = (KEY_DOWNLOAD_ENGINE, KEY_AUTO_DOWNLOAD)

_FALSE_VALUES = {"false", "0", "no", "off"}


def parse_bool(value: str) -> bool:
    return value.strip().lower() not in _FALSE_VALUES


class AsyncPostgresSystemConfigRepository:
    """Key/value access to system_config."""

    async def get(self, key: str) -> Optional[str]:
        async with safe_db_conn() as conn:
            return await conn.fetchval(
                "SELECT value FROM system_config WHERE key = $1",
                key,
            )

    async def set(self, key: str, value: str) -> None:
        async with safe_db_conn() as conn:
            await conn.execute(
                """
                INSERT INTO system_config (key, value)
                VALUES ($1, $2)
                ON CONFLICT (key) DO UPDATE
                SET value = EXCLUDED.value, updated_at = now()
                """,
                key,
                value,
            )
        logger.info(f"Runtime config updated: {key}={value}")

    async def get_all(self) -> dict[str, str]:
        async with safe_db_conn() as conn:
            rows = await conn.fetch("SELECT key, value FROM system_config ORDER BY key")
            return {row["key"]: row["value"] for row in rows}


class RuntimeConfig:
    """Typed view over system_config with environment defaults."""

    def __init__(self, repo: AsyncPostgresSystemConfigRepository | None = None):
        self._repo = repo or AsyncPostgresSystemConfigRepository()

    async def download_engine(self) -> str:
        value = await self._repo.get(KEY_DOWNLOAD_ENGINE)
        return (value or settings.download_engine).strip()

    async def auto_download_enabled(self) -> bool:
        value = await self._repo.get(KEY_AUTO_DOWNLOAD)
        if value is None:
            return settings.auto_download
        return parse_bool(value)

    async def snapshot(self) -> dict[str, str]:
        """Effective values for every runtime key (admin view)."""
        stored = await self._repo.get_all()
        return {
            KEY_DOWNLOAD_ENGINE: stored.get(KEY_DOWNLOAD_ENGINE, settings.download_engine),
            KEY_AUTO_DOWNLOAD: stored.get(KEY_AUTO_DOWNLOAD, str(settings.auto_download).lower()),
        }

    async def set(self, key: str, value: str) -> None:
        if key not in RUNTIME_KEYS:
            raise ValueError(f"Unknown runtime config key: {key}")
        await self._repo.set(key, value)
