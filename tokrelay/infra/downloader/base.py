# tokrelay/infra/downloader/base.py
"""
Download engine abstraction.

Every engine turns a source URL into a DownloadResult. Engines that can be
tuned by a ":variant" suffix in DOWNLOAD_ENGINE also implement
SupportsVariant; the service checks the capability, never the concrete type.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from tokrelay.config import settings
from tokrelay.core.domain import DownloadResult
from tokrelay.core.errors import RetrievalError


class DownloadEngine(Protocol):
    """Protocol for download engines."""

    name: str

    async def download(self, url: str) -> DownloadResult:
        """
        Retrieve media for a source URL.

        Returns:
            DownloadResult with at least one payload and the source URL(s).

        Raises:
            RetrievalError: On any failure, including implausible payloads.
        """
        ...


@runtime_checkable
class SupportsVariant(Protocol):
    """Optional capability: engine accepts a sub-variant selector."""

    def with_variant(self, variant: str) -> "DownloadEngine":
        """Return an engine configured for `variant` (self is not modified)."""
        ...


def ensure_plausible(
    engine: str,
    payloads: list[bytes],
    min_bytes: int | None = None,
) -> None:
    """Reject empty results and payloads too small to be real media."""
    threshold = settings.min_media_bytes if min_bytes is None else min_bytes

    if not payloads:
        raise RetrievalError("engine returned no media", engine=engine)

    for index, data in enumerate(payloads):
        if len(data) < threshold:
            raise RetrievalError(
                f"payload {index} is {len(data)} bytes (< {threshold}), treating as corrupted",
                engine=engine,
            )
