# tokrelay/core/ports.py
from __future__ import annotations
from typing import Any, Optional, Protocol

from tokrelay.core.domain import (
    AckSignal,
    DeliveryTarget,
    DownloadResult,
    InboundMessage,
    Notification,
)


class MappingRepository(Protocol):
    async def find_by_username(self, username: str) -> Optional["DestinationMappingLike"]: ...
    async def upsert(self, username: str, channel_id: str, role_id: Optional[str] = None) -> None: ...
    async def update_telegram_topic(self, username: str, topic_id: str) -> None: ...


class DestinationMappingLike(Protocol):
    username: str
    channel_id: str
    role_id: Optional[str]
    telegram_topic_id: Optional[str]


class QueueRepository(Protocol):
    async def enqueue(self, payload: dict[str, Any]) -> int: ...
    async def get_pending(self, limit: int) -> list: ...
    async def increment_attempts(self, job_id: int) -> None: ...
    async def mark_done(self, job_id: int) -> None: ...
    async def mark_failed(self, job_id: int) -> None: ...


class RuntimeConfigSource(Protocol):
    """Operator-changeable flags, read fresh on every call"""

    async def download_engine(self) -> str: ...
    async def auto_download_enabled(self) -> bool: ...


class ChannelProvisioner(Protocol):
    async def create_text_channel(self, name: str, parent_id: Optional[str]) -> str:
        """
        Create a text channel on the primary platform and return its id.

        Raises ProvisioningError on failure.
        """
        ...


class MessageAcknowledger(Protocol):
    async def acknowledge(self, message: InboundMessage, signal: AckSignal) -> None: ...


class Downloader(Protocol):
    async def download(self, url: str) -> DownloadResult: ...


class DeliveryAdapter(Protocol):
    @property
    def name(self) -> str: ...

    async def deliver(
        self,
        notification: Notification,
        media: Optional[DownloadResult],
        target: DeliveryTarget,
    ) -> None: ...
