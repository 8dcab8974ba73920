# tokrelay/infra/logging_config.py
"""
Relay logging: JSON lines in production, coloured console elsewhere.

Both formatters surface the relay's structured extras (job, creator,
engine, delivery channel, source message) passed via `extra=`.
"""
import json
import logging
import sys
from datetime import datetime, timezone

CONTEXT_FIELDS = ("job_id", "username", "engine", "channel", "message_id")

# Library loggers and the level they are capped at
NOISY_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "uvicorn.error": logging.INFO,
    "discord": logging.WARNING,
    "discord.gateway": logging.WARNING,
    "telethon": logging.WARNING,
    "aiohttp.access": logging.WARNING,
}

LEVEL_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
}
RESET = "\033[0m"


def _record_context(record: logging.LogRecord) -> dict:
    return {key: getattr(record, key) for key in CONTEXT_FIELDS if hasattr(record, key)}


def _record_time(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log shipping."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": _record_time(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
            **_record_context(record),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """`[time] LEVEL logger [k=v ...] - message` with the level coloured."""

    def format(self, record: logging.LogRecord) -> str:
        color = LEVEL_COLORS.get(record.levelname, RESET)
        context = " ".join(f"{k}={v}" for k, v in _record_context(record).items())

        line = (
            f"{color}[{_record_time(record):%Y-%m-%d %H:%M:%S}] {record.levelname:8}{RESET} "
            f"{record.name}{f' [{context}]' if context else ''} - {record.getMessage()}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(level: str = "INFO", use_json: bool = False) -> None:
    """Replace root handlers with a single stdout handler."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if use_json else ConsoleFormatter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)

    for name, cap in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(cap)

    logging.getLogger(__name__).info(f"Logging configured: level={level}, json={use_json}")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class LogContext(logging.LoggerAdapter):
    """
    Logger bound to one queue job (or any other relay context).

    Usage:
        log = LogContext(logger, job_id=job.id, username="jane_doe")
        log.info("Job done")
    """

    def __init__(self, logger: logging.Logger, **context):
        super().__init__(logger, {k: v for k, v in context.items() if v is not None})

    def process(self, msg, kwargs):
        kwargs["extra"] = {**kwargs.get("extra", {}), **self.extra}
        return msg, kwargs
