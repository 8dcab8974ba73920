# tokrelay/transport/http_app.py
"""
HTTP application: process lifecycle plus a small operator surface.

The lifespan wires the whole relay (database pool, repositories,
downloader, Telegram client, Discord gateway, queue processor).

Endpoints:
1. Public: /health, /ready
2. Admin (Bearer ADMIN_TOKEN): queue drain/status, runtime config,
   destination mappings
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from tokrelay.config import settings
from tokrelay.core.forwarder import Forwarder
from tokrelay.infra.db_async import close_pool, init_pool, pool_stats
from tokrelay.infra.delivery_channels import DiscordDeliveryChannel, TelegramDeliveryChannel
from tokrelay.infra.downloader import build_downloader
from tokrelay.infra.health_checks_async import HealthStatus, check_database
from tokrelay.infra.http_client import close_all_sessions
from tokrelay.infra.logging_config import get_logger, setup_logging
from tokrelay.infra.metrics import get_metrics_collector
from tokrelay.infra.migrations_async import apply_migrations
from tokrelay.infra.pg_mapping_repo_async import get_mapping_repo
from tokrelay.infra.pg_queue_repo_async import STATUS_DONE, STATUS_FAILED, STATUS_PENDING, get_queue_repo
from tokrelay.infra.pg_system_config_repo_async import (
    KEY_AUTO_DOWNLOAD,
    KEY_DOWNLOAD_ENGINE,
    RUNTIME_KEYS,
    RuntimeConfig,
    parse_bool,
)
from tokrelay.infra.queue_processor import QueueProcessor, SchedulerState
from tokrelay.transport.discord_bot import (
    DiscordAcknowledger,
    DiscordChannelProvisioner,
    RelayBot,
    run_bot,
)
from tokrelay.transport.security import check_admin_token, require_admin_auth
from tokrelay.transport.telegram_topics import TelegramTopicClient

setup_logging(level=settings.log_level, use_json=settings.use_json_logs)

logger = get_logger(__name__)


# ============================================================================
# LIFESPAN
# ============================================================================

@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    """Application lifecycle: startup and shutdown"""

    logger.info(f"Starting tokrelay: env={settings.app_env}")

    check_admin_token()

    await init_pool()
    logger.info("Database pool initialized")

    if settings.run_migrations_on_start:
        result = await apply_migrations()
        logger.info(f"Migrations on start: {result['count']} applied")

    mappings = get_mapping_repo()
    queue_repo = get_queue_repo()
    runtime_config = RuntimeConfig()
    downloader = build_downloader(runtime_config)
    logger.info(f"Download engines registered: {downloader.engine_names()}")

    telegram = TelegramTopicClient.from_settings()
    try:
        await telegram.connect()
    except Exception as exc:
        logger.error(f"Telegram connect failed, secondary delivery disabled: {exc}", exc_info=True)

    bot = RelayBot()
    forwarder = Forwarder(
        mappings=mappings,
        queue=queue_repo,
        provisioner=DiscordChannelProvisioner(bot.sender, settings.core_server_id),
        acknowledger=DiscordAcknowledger(bot.sender),
        allowed_author_ids=settings.allowed_author_ids,
        core_server_id=settings.core_server_id,
        fallback_channel_id=settings.fallback_channel_id,
        auto_create_parent_id=settings.auto_create_category_id,
    )
    bot.forwarder = forwarder

    bot_task: asyncio.Task | None = None
    if settings.discord_enabled:
        bot_task = asyncio.create_task(run_bot(bot, settings.discord_token), name="discord_gateway")
    else:
        logger.warning("DISCORD_TOKEN not set, gateway not started")

    processor = QueueProcessor(
        repo=queue_repo,
        downloader=downloader,
        runtime_config=runtime_config,
        adapters=[
            DiscordDeliveryChannel(bot.sender, fallback_channel_id=settings.fallback_channel_id),
            TelegramDeliveryChannel(telegram, mappings),
        ],
        poll_interval=settings.queue_poll_interval,
        batch_size=settings.queue_batch_size,
        max_attempts=settings.queue_max_attempts,
    )
    if settings.queue_processor_enabled:
        await processor.start()
    else:
        logger.info("Queue processor skipped (queue_processor_enabled=false)")

    fastapi_app.state.processor = processor
    fastapi_app.state.queue_repo = queue_repo
    fastapi_app.state.runtime_config = runtime_config
    fastapi_app.state.downloader = downloader
    fastapi_app.state.forwarder = forwarder
    fastapi_app.state.mappings = mappings

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down application")

    await processor.stop()

    if bot_task is not None:
        bot_task.cancel()
        await asyncio.gather(bot_task, return_exceptions=True)

    await telegram.disconnect()
    await close_all_sessions()
    await close_pool()
    logger.info("Application shutdown complete")


# ============================================================================
# CREATE APP
# ============================================================================

app = FastAPI(
    title="tokrelay",
    description="Creator notification relay: Discord + Telegram fan-out",
    version="1.0.0",
    lifespan=lifespan,
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None,
    openapi_url=None if settings.is_production else "/openapi.json",
)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    if exc.status_code >= 500:
        logger.error(f"Server error: {exc.detail}")

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=exc.headers,
    )


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================

@app.get("/health")
def health():
    """Liveness probe."""
    return {"status": "healthy"}


@app.get("/ready")
async def readiness():
    """Readiness probe: database reachable and schema present."""
    result = await check_database()

    if result["status"] == HealthStatus.UNHEALTHY:
        return JSONResponse(status_code=503, content={"status": "unhealthy"})

    return {"status": result["status"].value, "pool": pool_stats()}


# ============================================================================
# ADMIN ENDPOINTS
# ============================================================================

class ConfigValue(BaseModel):
    value: str


@app.post("/admin/queue/drain", dependencies=[Depends(require_admin_auth)])
async def admin_queue_drain(request: Request):
    """
    Drain one batch now (ADMIN only).
    Returns processed=0 with skipped=true when a drain is already running.
    """
    processor: QueueProcessor = request.app.state.processor
    was_draining = processor.state == SchedulerState.DRAINING
    processed = await processor.drain_now()
    return {"processed": processed, "skipped": was_draining}


@app.get("/admin/jobs", dependencies=[Depends(require_admin_auth)])
async def admin_jobs_status(
    request: Request,
    status: str | None = None,
    limit: int = 50,
):
    """Queue counts by status, recent jobs and in-process counters."""
    if status is not None and status not in (STATUS_PENDING, STATUS_DONE, STATUS_FAILED):
        raise HTTPException(status_code=400, detail=f"Unknown status: {status}")

    repo = request.app.state.queue_repo
    counts = await repo.count_by_status()
    recent = await repo.get_recent(limit=min(max(limit, 1), 500), status=status)

    return {
        "counts": counts,
        "scheduler": request.app.state.processor.state.value,
        "recent": [
            {
                "id": j.id,
                "username": j.payload.get("username"),
                "url": j.payload.get("url"),
                "status": j.status,
                "attempts": j.attempts,
                "created_at": j.created_at.isoformat(),
                "updated_at": j.updated_at.isoformat(),
            }
            for j in recent
        ],
        "metrics": get_metrics_collector().get_metrics()["counters"],
    }


@app.get("/admin/config", dependencies=[Depends(require_admin_auth)])
async def admin_get_config(request: Request):
    runtime_config: RuntimeConfig = request.app.state.runtime_config
    return {
        "config": await runtime_config.snapshot(),
        "engines": request.app.state.downloader.engine_names(),
    }


@app.put("/admin/config/{key}", dependencies=[Depends(require_admin_auth)])
async def admin_set_config(key: str, body: ConfigValue, request: Request):
    """Change a runtime flag; takes effect on the next job."""
    key = key.upper()
    if key not in RUNTIME_KEYS:
        raise HTTPException(status_code=404, detail=f"Unknown config key: {key}")

    value = body.value.strip()
    if key == KEY_DOWNLOAD_ENGINE and not request.app.state.downloader.is_valid_spec(value):
        raise HTTPException(status_code=400, detail=f"Unknown download engine: {value}")
    if key == KEY_AUTO_DOWNLOAD:
        value = "true" if parse_bool(value) else "false"

    await request.app.state.runtime_config.set(key, value)
    return {"key": key, "value": value}


@app.get("/admin/mappings", dependencies=[Depends(require_admin_auth)])
async def admin_list_mappings(request: Request, limit: int = 500):
    mappings = await request.app.state.mappings.list_all(limit=min(max(limit, 1), 5000))
    return {
        "mappings": [
            {
                "username": m.username,
                "channel_id": m.channel_id,
                "role_id": m.role_id,
                "telegram_topic_id": m.telegram_topic_id,
            }
            for m in mappings
        ],
    }


@app.delete("/admin/mappings/{username}", dependencies=[Depends(require_admin_auth)])
async def admin_delete_mapping(username: str, request: Request):
    """Drop a stale mapping; the next notification re-provisions the channel."""
    if not await request.app.state.mappings.delete(username):
        raise HTTPException(status_code=404, detail=f"No mapping for @{username}")
    logger.info(f"Mapping removed by admin: @{username}", extra={"username": username})
    return {"deleted": username}


def main() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    uvicorn.run(
        "tokrelay.transport.http_app:app",
        host="0.0.0.0",
        port=8000,
        log_config=None,
    )


if __name__ == "__main__":
    main()
