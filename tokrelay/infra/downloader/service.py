# tokrelay/infra/downloader/service.py
"""
Downloader service: engine selection and failure isolation.

The engine is re-selected from runtime config on every call, so an
operator can switch DOWNLOAD_ENGINE while the relay runs. There is no
fallback chain: an unknown engine name is a configuration error.
"""
from __future__ import annotations

from tokrelay.core.domain import DownloadResult
from tokrelay.core.errors import EngineNotConfiguredError, RetrievalError
from tokrelay.core.ports import RuntimeConfigSource
from tokrelay.infra.downloader.base import DownloadEngine, SupportsVariant
from tokrelay.infra.logging_config import get_logger
from tokrelay.infra.metrics import RelayMetrics

logger = get_logger(__name__)


def parse_engine_spec(spec: str) -> tuple[str, str | None]:
    """'name' or 'name:variant' -> (name, variant|None)"""
    name, sep, variant = spec.strip().partition(":")
    return name.strip(), (variant.strip() or None) if sep else None


class DownloaderService:
    """
    Usage:
        service = DownloaderService(runtime_config)
        service.register(YtDlpEngine())
        result = await service.download(url)
    """

    def __init__(self, runtime_config: RuntimeConfigSource):
        self._runtime_config = runtime_config
        self._engines: dict[str, DownloadEngine] = {}

    def register(self, engine: DownloadEngine) -> None:
        """Register an engine under its name (start-up only)."""
        if engine.name in self._engines:
            raise ValueError(f"Engine already registered: {engine.name}")
        self._engines[engine.name] = engine

    def engine_names(self) -> list[str]:
        return sorted(self._engines)

    def is_valid_spec(self, spec: str) -> bool:
        name, _ = parse_engine_spec(spec)
        return name in self._engines

    async def select(self) -> DownloadEngine:
        """Resolve the currently configured engine, applying any variant."""
        spec = await self._runtime_config.download_engine()
        name, variant = parse_engine_spec(spec)

        engine = self._engines.get(name)
        if engine is None:
            raise EngineNotConfiguredError(
                f"Engine '{name}' not found (registered: {', '.join(self.engine_names()) or 'none'})"
            )

        if variant:
            if isinstance(engine, SupportsVariant):
                engine = engine.with_variant(variant)
            else:
                logger.warning(
                    f"Engine '{name}' has no variants, ignoring ':{variant}'",
                    extra={"engine": name},
                )

        return engine

    async def download(self, url: str) -> DownloadResult:
        """
        Download media for `url` with the configured engine.

        Raises:
            RetrievalError: for every failure mode, including configuration errors.
        """
        try:
            engine = await self.select()
        except RetrievalError:
            RelayMetrics.download("none", "failed")
            raise
        except Exception as exc:
            RelayMetrics.download("none", "failed")
            raise RetrievalError(
                f"engine selection failed: {exc.__class__.__name__}: {exc}"
            ) from exc

        logger.info(f"Downloading with engine: {engine.name}", extra={"engine": engine.name})

        try:
            with RelayMetrics.time_download(engine.name):
                result = await engine.download(url)
        except RetrievalError:
            RelayMetrics.download(engine.name, "failed")
            raise
        except Exception as exc:
            RelayMetrics.download(engine.name, "failed")
            raise RetrievalError(
                f"{exc.__class__.__name__}: {exc}", engine=engine.name
            ) from exc

        if not result.source_urls:
            RelayMetrics.download(engine.name, "failed")
            raise RetrievalError("engine returned no source urls", engine=engine.name)

        RelayMetrics.download(engine.name, "ok")
        return result
