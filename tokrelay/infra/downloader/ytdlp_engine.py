# tokrelay/infra/downloader/ytdlp_engine.py
"""
yt-dlp engine.

Runs the blocking yt-dlp download in a worker thread into a temporary
directory and reads the result back into memory. The ":variant" suffix is
passed through as the yt-dlp format selector, e.g. "ytdlp:worst".
"""
from __future__ import annotations

import asyncio
import tempfile
from pathlib import Path

import yt_dlp
from yt_dlp.utils import DownloadError

from tokrelay.config import settings
from tokrelay.core.domain import DownloadResult, MediaKind
from tokrelay.core.errors import RetrievalError
from tokrelay.infra.downloader.base import ensure_plausible
from tokrelay.infra.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_FORMAT = "best[ext=mp4]/best"


class YtDlpEngine:
    name = "ytdlp"

    def __init__(self, format_selector: str = DEFAULT_FORMAT):
        self.format_selector = format_selector

    def with_variant(self, variant: str) -> "YtDlpEngine":
        return YtDlpEngine(format_selector=variant)

    def _options(self, target_dir: str) -> dict:
        return {
            "format": self.format_selector,
            "outtmpl": str(Path(target_dir) / "%(id)s.%(ext)s"),
            "quiet": True,
            "no_warnings": True,
            "noplaylist": True,
            "noprogress": True,
            "max_filesize": settings.discord_max_upload_bytes * 4,
        }

    def _download_blocking(self, url: str) -> bytes:
        with tempfile.TemporaryDirectory(prefix="tokrelay-") as target_dir:
            with yt_dlp.YoutubeDL(self._options(target_dir)) as ydl:
                info = ydl.extract_info(url, download=True)
                path = Path(ydl.prepare_filename(info))

            if not path.exists():
                candidates = sorted(Path(target_dir).iterdir())
                if not candidates:
                    raise RetrievalError("yt-dlp produced no file", engine=self.name)
                path = candidates[0]

            return path.read_bytes()

    async def download(self, url: str) -> DownloadResult:
        try:
            data = await asyncio.to_thread(self._download_blocking, url)
        except DownloadError as e:
            raise RetrievalError(f"yt-dlp failed: {e}", engine=self.name) from e

        ensure_plausible(self.name, [data])
        logger.info(
            f"yt-dlp downloaded {len(data)} bytes (format={self.format_selector})",
            extra={"engine": self.name},
        )
        return DownloadResult(media_kind=MediaKind.VIDEO, payloads=[data], source_urls=[url])
