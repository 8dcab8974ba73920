# tokrelay/infra/downloader/http_fetch.py
"""
Direct HTTP download of a media file, shared by engines that resolve a
CDN URL first and then fetch the bytes.
"""
from __future__ import annotations

import asyncio

import aiohttp

from tokrelay.core.errors import RetrievalError
from tokrelay.infra.http_client import get_fetcher_session
from tokrelay.infra.logging_config import get_logger

logger = get_logger(__name__)


class _FetchAttemptError(Exception):
    def __init__(self, message: str, retryable: bool = True):
        self.retryable = retryable
        super().__init__(message)


async def fetch_bytes(
    url: str,
    *,
    engine: str,
    max_retries: int = 3,
    max_bytes: int | None = None,
) -> bytes:
    """
    Download `url` into memory.

    Retries 5xx/429 and connection errors with linear backoff (2s, 4s).
    Validates Content-Length so truncated bodies are never returned.

    Raises:
        RetrievalError: after the last attempt, or immediately on 4xx.
    """
    session = get_fetcher_session()
    last_error: Exception | None = None

    for attempt in range(max_retries):
        try:
            async with session.get(url, allow_redirects=True) as response:
                if response.status != 200:
                    raise _FetchAttemptError(
                        f"HTTP {response.status}",
                        retryable=response.status >= 500 or response.status == 429,
                    )

                cl_header = response.headers.get("Content-Length")
                if max_bytes is not None and cl_header and int(cl_header) > max_bytes:
                    raise _FetchAttemptError(
                        f"media is {cl_header} bytes (limit {max_bytes})",
                        retryable=False,
                    )

                data = await response.read()

                if not data:
                    raise _FetchAttemptError("empty body")

                if cl_header and len(data) < int(cl_header):
                    raise _FetchAttemptError(
                        f"Incomplete download: got {len(data)} of {cl_header} bytes"
                    )

                logger.debug(
                    f"Fetched {len(data)} bytes",
                    extra={"engine": engine},
                )
                return data

        except _FetchAttemptError as e:
            last_error = e
            if not e.retryable or attempt == max_retries - 1:
                raise RetrievalError(f"media fetch failed: {e}", engine=engine) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            last_error = e
            if attempt == max_retries - 1:
                raise RetrievalError(
                    f"media fetch failed after {max_retries} attempts: {e}",
                    engine=engine,
                ) from e

        wait = (attempt + 1) * 2
        logger.warning(
            f"Media fetch failed (attempt {attempt + 1}/{max_retries}), "
            f"retrying in {wait}s: {last_error}",
            extra={"engine": engine},
        )
        await asyncio.sleep(wait)

    raise RetrievalError(f"media fetch failed: {last_error}", engine=engine)
