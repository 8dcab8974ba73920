# tokrelay/core/app_constants.py
"""Presentation constants shared by the delivery adapters."""
from __future__ import annotations

from dataclasses import dataclass

from tokrelay.core.domain import ContentType


@dataclass(frozen=True)
class EmbedStyle:
    status_text: str
    action_text: str
    color: int


EMBED_STYLES: dict[ContentType, EmbedStyle] = {
    ContentType.LIVE: EmbedStyle("🔴 Live Now", "Watch Stream", 0xFF0050),
    ContentType.VIDEO: EmbedStyle("🎬 New Video", "Watch Video", 0x00F2EA),
    ContentType.PHOTO: EmbedStyle("📸 New Photo", "View Photos", 0xFFD700),
    ContentType.UNKNOWN: EmbedStyle("❓ Unknown", "View Content", 0x808080),
}

EMBED_TITLE = "📬 TikTok Notification"
EMBED_TITLE_CROSS_ORIGIN = "📬 TikTok {kind} Notification"
EMBED_FOOTER = "TikTok Alert System"
EMBED_FOOTER_CROSS_ORIGIN = "From {source}"

VIDEO_FILENAME = "video.mp4"
IMAGE_FILENAME = "image_{index}.jpg"

# Secondary platform (forum topics)
TOPIC_TITLE = "🎥 {username}"
TOPIC_ICON_COLOR = 0x6FB9F0
TOPIC_PAGE_SIZE = 100
CAPTION_IMAGE = "📸 New Photo: {url}"
CAPTION_LINK = "🔗 {url}"


def role_mention(role_id: str | None) -> str:
    return f"<@&{role_id}> " if role_id else ""
