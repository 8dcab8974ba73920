# tokrelay/infra/downloader/__init__.py
"""
Media download engines.

Strategy pattern: each engine implements one contract (download a source
URL into a DownloadResult). DownloaderService picks exactly one per call
from the DOWNLOAD_ENGINE runtime setting.
"""
from tokrelay.infra.downloader.base import (
    DownloadEngine,
    SupportsVariant,
    ensure_plausible,
)
from tokrelay.infra.downloader.service import DownloaderService, parse_engine_spec
from tokrelay.infra.downloader.tikwm_engine import TikwmEngine
from tokrelay.infra.downloader.ytdlp_engine import YtDlpEngine

__all__ = [
    "DownloadEngine",
    "SupportsVariant",
    "ensure_plausible",
    "DownloaderService",
    "parse_engine_spec",
    "TikwmEngine",
    "YtDlpEngine",
    "build_downloader",
]


def build_downloader(runtime_config) -> DownloaderService:
    """DownloaderService with every built-in engine registered."""
    service = DownloaderService(runtime_config)
    service.register(YtDlpEngine())
    service.register(TikwmEngine())
    return service
