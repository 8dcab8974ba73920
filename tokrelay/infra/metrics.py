# tokrelay/infra/metrics.py
"""
In-process relay metrics.

One collector per process, read back through GET /admin/jobs. Call sites
record through RelayMetrics so every metric name is declared here.
"""
from __future__ import annotations

import time
from collections import defaultdict, deque
from threading import Lock
from typing import Deque, Dict, Iterable

# Timing samples kept per series; the relay runs for weeks
MAX_SAMPLES = 1000


def _series_key(name: str, labels: dict | None) -> str:
    if not labels:
        return name
    label_str = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
    return f"{name}{{{label_str}}}"


def _summarize(samples: Iterable[float]) -> dict:
    ordered = sorted(samples)
    if not ordered:
        return {"count": 0, "min": 0, "max": 0, "avg": 0, "p95": 0}
    count = len(ordered)
    return {
        "count": count,
        "min": ordered[0],
        "max": ordered[-1],
        "avg": sum(ordered) / count,
        "p95": ordered[min(int(count * 0.95), count - 1)],
    }


class MetricsCollector:
    """Labelled counters plus bounded timing samples."""

    def __init__(self, max_samples: int = MAX_SAMPLES):
        self._counters: Dict[str, int] = defaultdict(int)
        self._samples: Dict[str, Deque[float]] = defaultdict(lambda: deque(maxlen=max_samples))
        self._lock = Lock()

    def inc_counter(self, name: str, amount: int = 1, labels: dict | None = None) -> None:
        with self._lock:
            self._counters[_series_key(name, labels)] += amount

    def observe_histogram(self, name: str, value: float, labels: dict | None = None) -> None:
        with self._lock:
            self._samples[_series_key(name, labels)].append(value)

    def get_metrics(self) -> dict:
        with self._lock:
            counters = dict(self._counters)
            samples = {k: list(v) for k, v in self._samples.items()}
        return {
            "counters": counters,
            "histograms": {k: _summarize(v) for k, v in samples.items()},
        }


_metrics = MetricsCollector()


def get_metrics_collector() -> MetricsCollector:
    return _metrics


class Timer:
    """Record the wall time of a block as a histogram sample."""

    def __init__(self, metric_name: str, **labels):
        self.metric_name = metric_name
        self.labels = labels
        self.start_time: float | None = None

    def __enter__(self):
        self.start_time = time.monotonic()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is not None:
            _metrics.observe_histogram(
                self.metric_name, time.monotonic() - self.start_time, self.labels or None
            )


class RelayMetrics:
    """Relay metrics, grouped by pipeline stage."""

    # Ingestion

    @staticmethod
    def notification_queued(origin: str) -> None:
        _metrics.inc_counter("notifications_queued_total", labels={"origin": origin})

    @staticmethod
    def notification_dropped(reason: str) -> None:
        _metrics.inc_counter("notifications_dropped_total", labels={"reason": reason})

    @staticmethod
    def channel_provisioned() -> None:
        _metrics.inc_counter("channels_provisioned_total")

    @staticmethod
    def provisioning_failed(stage: str) -> None:
        _metrics.inc_counter("provisioning_failures_total", labels={"stage": stage})

    # Queue

    @staticmethod
    def job_enqueued() -> None:
        _metrics.inc_counter("queue_jobs_enqueued_total")

    @staticmethod
    def job_done() -> None:
        _metrics.inc_counter("queue_jobs_done_total")

    @staticmethod
    def job_retry() -> None:
        _metrics.inc_counter("queue_jobs_retry_total")

    @staticmethod
    def job_failed() -> None:
        _metrics.inc_counter("queue_jobs_failed_total")

    @staticmethod
    def tick_skipped() -> None:
        _metrics.inc_counter("queue_ticks_skipped_total")

    @staticmethod
    def fetch_failed() -> None:
        _metrics.inc_counter("queue_fetch_errors_total")

    # Retrieval

    @staticmethod
    def download(engine: str, status: str) -> None:
        _metrics.inc_counter("downloads_total", labels={"engine": engine, "status": status})

    @staticmethod
    def time_download(engine: str) -> Timer:
        return Timer("download_seconds", engine=engine)

    @staticmethod
    def retrieval_failed(engine: str | None) -> None:
        _metrics.inc_counter("retrieval_failures_total", labels={"engine": engine or "none"})

    # Delivery

    @staticmethod
    def delivery(channel: str, status: str) -> None:
        _metrics.inc_counter("deliveries_total", labels={"channel": channel, "status": status})

    @staticmethod
    def discord_message_sent(with_files: bool) -> None:
        _metrics.inc_counter("discord_messages_sent_total", labels={"with_files": with_files})

    # Admin surface

    @staticmethod
    def admin_auth_failed() -> None:
        _metrics.inc_counter("admin_auth_failures_total")
