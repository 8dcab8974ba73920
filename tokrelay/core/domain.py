# tokrelay/core/domain.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class ContentType(str, Enum):
    LIVE = "live"
    VIDEO = "video"
    PHOTO = "photo"
    UNKNOWN = "unknown"


class MediaKind(str, Enum):
    VIDEO = "video"
    IMAGE = "image"


class AckSignal(str, Enum):
    """Reaction left on the inbound message once it has been handled"""
    PRIMARY_ORIGIN = "📬"
    CROSS_ORIGIN = "🌐"
    ERROR = "❌"


# ============================================================================
# INBOUND
# ============================================================================

@dataclass
class InboundMessage:
    """
    Transport-neutral view of a chat message that may carry a notification.

    embed_texts holds title/description/author text per embed; embed_urls
    and button_urls keep display order.
    """
    message_id: str
    author_id: str
    guild_id: Optional[str] = None
    guild_name: Optional[str] = None
    content: str = ""
    embed_texts: list[str] = field(default_factory=list)
    embed_urls: list[str] = field(default_factory=list)
    button_urls: list[str] = field(default_factory=list)
    raw: Any = None  # transport object, used only for acknowledgement


@dataclass(frozen=True)
class Notification:
    username: str
    url: str
    content_type: ContentType = ContentType.UNKNOWN

    def to_dict(self) -> dict[str, str]:
        return {
            "username": self.username,
            "url": self.url,
            "content_type": self.content_type.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Notification":
        return cls(
            username=data["username"],
            url=data["url"],
            content_type=ContentType(data.get("content_type", ContentType.UNKNOWN.value)),
        )


# ============================================================================
# QUEUE PAYLOAD
# ============================================================================

@dataclass(frozen=True)
class QueuePayload:
    """
    Everything a delivery job needs, frozen at enqueue time.

    Stored as JSONB in message_queue.payload and never rewritten.
    """
    url: str
    username: str
    channel_id: str
    notification: Notification
    role_id: Optional[str] = None
    source_label: Optional[str] = None
    is_cross_origin: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "username": self.username,
            "channel_id": self.channel_id,
            "role_id": self.role_id,
            "notification": self.notification.to_dict(),
            "source_label": self.source_label,
            "is_cross_origin": self.is_cross_origin,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QueuePayload":
        notification_data = data.get("notification") or {
            "username": data["username"],
            "url": data["url"],
        }
        return cls(
            url=data["url"],
            username=data["username"],
            channel_id=str(data["channel_id"]),
            notification=Notification.from_dict(notification_data),
            role_id=data.get("role_id"),
            source_label=data.get("source_label"),
            is_cross_origin=bool(data.get("is_cross_origin", False)),
        )


# ============================================================================
# DOWNLOAD / DELIVERY
# ============================================================================

@dataclass
class DownloadResult:
    """
    Media retrieved by an engine.

    An empty payloads list means link-only delivery; source_urls is always
    usable as the fallback link.
    """
    media_kind: MediaKind
    payloads: list[bytes] = field(default_factory=list)
    source_urls: list[str] = field(default_factory=list)

    @property
    def is_link_only(self) -> bool:
        return not self.payloads

    @property
    def total_bytes(self) -> int:
        return sum(len(p) for p in self.payloads)

    @classmethod
    def link_only(cls, url: str) -> "DownloadResult":
        return cls(media_kind=MediaKind.VIDEO, payloads=[], source_urls=[url])


@dataclass(frozen=True)
class DeliveryTarget:
    """Where a job is delivered on the primary platform, plus display context"""
    username: str
    channel_id: str
    role_id: Optional[str] = None
    source_label: Optional[str] = None
    is_cross_origin: bool = False

    @classmethod
    def from_payload(cls, payload: QueuePayload) -> "DeliveryTarget":
        return cls(
            username=payload.username,
            channel_id=payload.channel_id,
            role_id=payload.role_id,
            source_label=payload.source_label,
            is_cross_origin=payload.is_cross_origin,
        )
