# tokrelay/infra/downloader/tikwm_engine.py
"""
TikWM resolver engine.

Asks the public TikWM JSON API for direct media URLs, then fetches the
bytes. Slideshow posts come back as an ordered image list.

Variants:
    tikwm     / tikwm:sd - standard quality ("play")
    tikwm:hd             - HD when available ("hdplay")
"""
from __future__ import annotations

import asyncio

import aiohttp

from tokrelay.config import settings
from tokrelay.core.domain import DownloadResult, MediaKind
from tokrelay.core.errors import RetrievalError
from tokrelay.infra.downloader.base import ensure_plausible
from tokrelay.infra.downloader.http_fetch import fetch_bytes
from tokrelay.infra.http_client import get_api_session
from tokrelay.infra.logging_config import get_logger

logger = get_logger(__name__)

QUALITIES = ("sd", "hd")


class TikwmEngine:
    name = "tikwm"

    def __init__(self, quality: str = "sd", api_url: str | None = None):
        if quality not in QUALITIES:
            raise RetrievalError(
                f"unknown tikwm variant '{quality}' (expected one of {', '.join(QUALITIES)})",
                engine=self.name,
            )
        self.quality = quality
        self.api_url = api_url or settings.tikwm_api_url

    def with_variant(self, variant: str) -> "TikwmEngine":
        return TikwmEngine(quality=variant.lower(), api_url=self.api_url)

    async def _resolve(self, url: str) -> dict:
        session = get_api_session()
        params = {"url": url, "hd": "1" if self.quality == "hd" else "0"}
        try:
            async with session.get(self.api_url, params=params) as response:
                if response.status != 200:
                    raise RetrievalError(f"resolver returned HTTP {response.status}", engine=self.name)
                body = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise RetrievalError(f"resolver request failed: {e}", engine=self.name) from e

        if not isinstance(body, dict) or body.get("code") != 0 or not body.get("data"):
            message = body.get("msg") if isinstance(body, dict) else "malformed response"
            raise RetrievalError(f"resolver error: {message}", engine=self.name)
        return body["data"]

    async def download(self, url: str) -> DownloadResult:
        data = await self._resolve(url)

        images = data.get("images") or []
        if images:
            payloads = await asyncio.gather(
                *(fetch_bytes(image_url, engine=self.name) for image_url in images)
            )
            payloads = list(payloads)
            ensure_plausible(self.name, payloads)
            logger.info(
                f"tikwm fetched {len(payloads)} images",
                extra={"engine": self.name},
            )
            return DownloadResult(media_kind=MediaKind.IMAGE, payloads=payloads, source_urls=[url])

        video_url = data.get("hdplay") if self.quality == "hd" else None
        video_url = video_url or data.get("play")
        if not video_url:
            raise RetrievalError("resolver returned no video url", engine=self.name)

        payload = await fetch_bytes(video_url, engine=self.name)
        ensure_plausible(self.name, [payload])
        logger.info(
            f"tikwm fetched video: {len(payload)} bytes (quality={self.quality})",
            extra={"engine": self.name},
        )
        return DownloadResult(media_kind=MediaKind.VIDEO, payloads=[payload], source_urls=[url])
