# tokrelay/infra/queue_processor.py
"""
Tick-driven delivery queue processor.

One ticker task wakes every poll interval and starts a drain unless one is
already running. A drain takes up to batch_size pending jobs (oldest first)
and processes them one at a time: download, then fan-out to both delivery
adapters concurrently, then status bookkeeping.
"""
from __future__ import annotations

import asyncio
from enum import Enum
from typing import Sequence

from tokrelay.core.domain import DeliveryTarget, DownloadResult, QueuePayload
from tokrelay.core.errors import RetrievalError
from tokrelay.core.ports import DeliveryAdapter, Downloader, QueueRepository, RuntimeConfigSource
from tokrelay.infra.logging_config import LogContext, get_logger
from tokrelay.infra.metrics import RelayMetrics
from tokrelay.infra.pg_queue_repo_async import QueueJob

logger = get_logger(__name__)


class SchedulerState(str, Enum):
    IDLE = "idle"
    DRAINING = "draining"


class QueueProcessor:
    """
    Usage:
        processor = QueueProcessor(
            repo=get_queue_repo(),
            downloader=downloader,
            runtime_config=RuntimeConfig(),
            adapters=[discord_channel, telegram_channel],
        )
        await processor.start()
        ...
        await processor.stop()

    `drain_now()` may also be called directly (admin endpoint, tooling);
    the scheduler state guarantees at most one drain at a time.
    """

    def __init__(
        self,
        repo: QueueRepository,
        downloader: Downloader,
        runtime_config: RuntimeConfigSource,
        adapters: Sequence[DeliveryAdapter],
        *,
        poll_interval: float = 5.0,
        batch_size: int = 5,
        max_attempts: int = 3,
    ):
        self._repo = repo
        self._downloader = downloader
        self._runtime_config = runtime_config
        self._adapters = list(adapters)
        self._poll_interval = poll_interval
        self._batch_size = batch_size
        self._max_attempts = max_attempts
        self._state = SchedulerState.IDLE
        self._ticker: asyncio.Task | None = None
        self._drain_task: asyncio.Task | None = None
        self._running = False

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the ticker as an asyncio task."""
        self._running = True
        self._ticker = asyncio.create_task(self._loop(), name="queue_ticker")
        self._ticker.add_done_callback(self._on_task_done)
        logger.info(
            f"Queue processor started: interval={self._poll_interval}s, "
            f"batch={self._batch_size}, max_attempts={self._max_attempts}, "
            f"adapters={[a.name for a in self._adapters]}",
        )

    async def stop(self) -> None:
        """Stop ticking and let an in-flight drain finish."""
        self._running = False
        if self._ticker and not self._ticker.done():
            self._ticker.cancel()
            try:
                await self._ticker
            except asyncio.CancelledError:
                pass
        if self._drain_task and not self._drain_task.done():
            await asyncio.gather(self._drain_task, return_exceptions=True)
        logger.info("Queue processor stopped")

    async def _loop(self) -> None:
        while self._running:
            self._tick()
            await asyncio.sleep(self._poll_interval)

    def _tick(self) -> None:
        """Launch a drain unless one is in flight; skipped ticks are not queued."""
        if self._state is SchedulerState.DRAINING:
            logger.debug("Tick skipped: drain in progress")
            RelayMetrics.tick_skipped()
            return
        self._drain_task = asyncio.create_task(self.drain_now(), name="queue_drain")

    async def drain_now(self) -> int:
        """
        Process one batch of pending jobs sequentially.

        Returns the number of jobs processed, 0 when a drain was already
        running or the queue was empty.
        """
        if self._state is SchedulerState.DRAINING:
            return 0

        self._state = SchedulerState.DRAINING
        processed = 0
        try:
            try:
                jobs = await self._repo.get_pending(self._batch_size)
            except Exception as exc:
                logger.error(f"Failed to fetch pending jobs: {exc}", exc_info=True)
                RelayMetrics.fetch_failed()
                return 0

            for job in jobs:
                await self.process_job(job)
                processed += 1

            if processed:
                logger.info(f"Drain finished: {processed} job(s)")
            return processed
        finally:
            self._state = SchedulerState.IDLE

    async def process_job(self, job: QueueJob) -> None:
        """
        One delivery attempt.

        The attempt is counted before anything else happens. A job-level
        error leaves the job pending until the attempt limit is reached.
        """
        attempts = job.attempts + 1
        log = LogContext(logger, job_id=job.id, username=job.payload.get("username"))

        try:
            await self._repo.increment_attempts(job.id)

            payload = QueuePayload.from_dict(job.payload)
            media = await self._retrieve(payload, log)
            await self._fan_out(payload, media, log)

            await self._repo.mark_done(job.id)
            RelayMetrics.job_done()
            log.info(f"Job done: id={job.id}, attempt={attempts}")

        except Exception as exc:
            error_msg = f"{exc.__class__.__name__}: {exc}"[:500]
            if attempts >= self._max_attempts:
                await self._mark_failed(job, attempts, error_msg, log)
            else:
                RelayMetrics.job_retry()
                log.warning(
                    f"Job attempt failed, will retry: id={job.id}, "
                    f"attempt={attempts}/{self._max_attempts}, error={error_msg[:200]}",
                )

    async def _mark_failed(self, job: QueueJob, attempts: int, error_msg: str, log: LogContext) -> None:
        try:
            await self._repo.mark_failed(job.id)
        except Exception as exc:
            log.error(f"Could not mark job {job.id} failed: {exc}", exc_info=True)
            return
        RelayMetrics.job_failed()
        log.error(
            f"Job failed permanently: id={job.id}, attempts={attempts}, error={error_msg}",
        )

    async def _retrieve(self, payload: QueuePayload, log: LogContext) -> DownloadResult:
        """Media for the job, or a link-only result. Never raises RetrievalError."""
        if not await self._runtime_config.auto_download_enabled():
            log.debug("Auto-download disabled, delivering link only")
            return DownloadResult.link_only(payload.url)

        try:
            return await self._downloader.download(payload.url)
        except RetrievalError as exc:
            RelayMetrics.retrieval_failed(exc.engine)
            log.warning(f"Retrieval failed, delivering link only: {exc}")
            return DownloadResult.link_only(payload.url)

    async def _fan_out(self, payload: QueuePayload, media: DownloadResult, log: LogContext) -> None:
        """Deliver on every adapter concurrently; one failure never cancels another."""
        target = DeliveryTarget.from_payload(payload)
        results = await asyncio.gather(
            *(adapter.deliver(payload.notification, media, target) for adapter in self._adapters),
            return_exceptions=True,
        )

        for adapter, result in zip(self._adapters, results):
            if isinstance(result, BaseException):
                RelayMetrics.delivery(adapter.name, "failed")
                log.error(f"Delivery via {adapter.name} failed: {result}")
            else:
                RelayMetrics.delivery(adapter.name, "ok")

    @staticmethod
    def _on_task_done(task: asyncio.Task) -> None:
        """Log unexpected ticker death."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc:
            logger.error(
                f"Queue ticker died unexpectedly: {exc}",
                exc_info=(type(exc), exc, exc.__traceback__),
            )
