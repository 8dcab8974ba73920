# tokrelay/infra/http_client.py
"""
Shared HTTP client sessions for download engines.

Named, lazily created aiohttp.ClientSession singletons so engines do not
open a session per download.

Session profiles
~~~~~~~~~~~~~~~~
- **api**     – resolver/metadata calls (total=20 s, connect=5 s, pool limit=10)
- **fetcher** – media downloads         (total=60 s, connect=15 s, pool limit=10)

Shutdown
~~~~~~~~
Call ``close_all_sessions()`` once during application shutdown.
"""
from __future__ import annotations

import aiohttp

from tokrelay.infra.logging_config import get_logger

logger = get_logger(__name__)

# Some CDNs refuse requests without a browser user agent
DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    ),
}

_sessions: dict[str, aiohttp.ClientSession] = {}


def _get_or_create(
    name: str,
    timeout: aiohttp.ClientTimeout,
    limit: int = 10,
) -> aiohttp.ClientSession:
    """Return an existing session or create a new one."""
    session = _sessions.get(name)
    if session is None or session.closed:
        session = aiohttp.ClientSession(
            timeout=timeout,
            headers=DEFAULT_HEADERS,
            connector=aiohttp.TCPConnector(
                keepalive_timeout=30,
                limit=limit,
                enable_cleanup_closed=True,
            ),
        )
        _sessions[name] = session
        logger.debug("HTTP session '%s' created (limit=%d)", name, limit)
    return session


def get_api_session() -> aiohttp.ClientSession:
    """Session for resolver APIs returning JSON."""
    return _get_or_create(
        "api",
        aiohttp.ClientTimeout(total=20, connect=5),
        limit=10,
    )


def get_fetcher_session() -> aiohttp.ClientSession:
    """Session for media downloads."""
    return _get_or_create(
        "fetcher",
        aiohttp.ClientTimeout(total=60, connect=15),
        limit=10,
    )


async def close_all_sessions() -> None:
    """Gracefully close every managed session.  Call during app shutdown."""
    for name in list(_sessions):
        session = _sessions.pop(name, None)
        if session is not None and not session.closed:
            await session.close()
            logger.debug("HTTP session '%s' closed", name)
