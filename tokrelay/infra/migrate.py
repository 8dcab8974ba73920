#!/usr/bin/env python3
# tokrelay/infra/migrate.py
"""
Standalone migration runner.

    python -m tokrelay.infra.migrate

Use it when RUN_MIGRATIONS_ON_START is disabled (for example a dedicated
"migrate" container that runs before the relay starts).
"""
import asyncio
import sys

from tokrelay.config import settings
from tokrelay.infra.db_async import init_pool, close_pool
from tokrelay.infra.logging_config import setup_logging, get_logger
from tokrelay.infra.migrations_async import apply_migrations

setup_logging(level="INFO", use_json=False)
logger = get_logger(__name__)


async def main() -> int:
    logger.info("=" * 60)
    logger.info("Database Migration Runner")
    logger.info("=" * 60)
    logger.info(f"Environment: {settings.app_env}")
    logger.info(f"Database: {settings.pghost}:{settings.pgport}/{settings.pgdatabase}")

    try:
        await init_pool()
        logger.info("✓ Database connected")

        result = await apply_migrations()

        logger.info(f"Status: {'SUCCESS' if result['ok'] else 'FAILED'}")
        logger.info(f"Migrations applied: {result['count']}")
        for migration in result['applied']:
            logger.info(f"  ✓ {migration}")

        return 0 if result['ok'] else 1

    except Exception as exc:
        logger.critical("MIGRATION FAILED")
        logger.critical(f"Error: {exc}", exc_info=True)
        return 1

    finally:
        await close_pool()


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
