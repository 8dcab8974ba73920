# tokrelay/infra/health_checks_async.py
from __future__ import annotations
import time
from typing import Dict, Any
from enum import Enum

from tokrelay.infra.db_async import get_pool
from tokrelay.infra.logging_config import get_logger

logger = get_logger(__name__)

REQUIRED_TABLES = ("user_mapping", "message_queue", "system_config")


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


async def check_database() -> Dict[str, Any]:
    """Connectivity, required tables, response time."""
    start = time.monotonic()

    try:
        pool = await get_pool()
        async with pool.acquire() as conn:
            result = await conn.fetchval("SELECT 1")
            if result != 1:
                return {
                    "status": HealthStatus.UNHEALTHY,
                    "details": "Unexpected query result",
                }

            missing_tables = [
                table for table in REQUIRED_TABLES
                if await conn.fetchval("SELECT to_regclass($1)", table) is None
            ]
            if missing_tables:
                return {
                    "status": HealthStatus.UNHEALTHY,
                    "details": "Missing required tables",
                    "error": f"Missing: {', '.join(missing_tables)}",
                }

        duration = time.monotonic() - start
        if duration > 1.0:
            return {
                "status": HealthStatus.DEGRADED,
                "details": f"Slow database response: {duration:.3f}s",
                "response_time": duration,
            }

        return {
            "status": HealthStatus.HEALTHY,
            "details": "Database operational",
            "response_time": duration,
        }

    except Exception as exc:
        logger.error("Database health check failed", exc_info=True)
        return {
            "status": HealthStatus.UNHEALTHY,
            "details": "Database connection failed",
            "error": str(exc)[:200],
        }
