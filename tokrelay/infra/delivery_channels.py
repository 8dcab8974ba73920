# tokrelay/infra/delivery_channels.py
"""
Delivery channels: turn a notification plus optional media into platform
messages.

- DiscordDeliveryChannel  - primary platform: embed, role mention, file
  attachments split across messages by count and size.
- TelegramDeliveryChannel - secondary platform: one forum topic per
  username, video as a streaming file, everything else as a link.

Usage:
    channel = DiscordDeliveryChannel(sender)
    await channel.deliver(notification, media, target)
"""
from __future__ import annotations

import abc
from typing import Optional

import discord

from tokrelay.config import settings
from tokrelay.core.app_constants import (
    CAPTION_IMAGE,
    CAPTION_LINK,
    EMBED_FOOTER,
    EMBED_FOOTER_CROSS_ORIGIN,
    EMBED_STYLES,
    EMBED_TITLE,
    EMBED_TITLE_CROSS_ORIGIN,
    IMAGE_FILENAME,
    TOPIC_TITLE,
    VIDEO_FILENAME,
    role_mention,
)
from tokrelay.core.domain import DeliveryTarget, DownloadResult, MediaKind, Notification
from tokrelay.core.errors import DeliveryError
from tokrelay.core.ports import MappingRepository
from tokrelay.infra.logging_config import get_logger
from tokrelay.transport.discord_sender import (
    ChannelNotFoundError,
    DiscordSender,
    DiscordSendError,
    PayloadTooLargeError,
)
from tokrelay.transport.telegram_topics import TelegramTopicClient

logger = get_logger(__name__)


class DeliveryChannel(abc.ABC):
    """Abstract base class for delivery channels"""

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Channel name for logging/metrics"""

    @abc.abstractmethod
    async def deliver(
        self,
        notification: Notification,
        media: Optional[DownloadResult],
        target: DeliveryTarget,
    ) -> None:
        """
        Deliver one notification.

        Raises:
            DeliveryError: if the platform rejected the delivery
        """


# ============================================================================
# PRIMARY (DISCORD)
# ============================================================================

def build_embed(notification: Notification, target: DeliveryTarget) -> discord.Embed:
    style = EMBED_STYLES[notification.content_type]
    cross_origin = target.is_cross_origin and bool(target.source_label)

    if cross_origin:
        title = EMBED_TITLE_CROSS_ORIGIN.format(kind=notification.content_type.value.capitalize())
        footer = EMBED_FOOTER_CROSS_ORIGIN.format(source=target.source_label)
    else:
        title = EMBED_TITLE
        footer = EMBED_FOOTER

    embed = discord.Embed(title=title, color=style.color, timestamp=discord.utils.utcnow())
    embed.set_footer(text=footer)
    embed.add_field(name="Creator", value=f"@{notification.username}", inline=True)
    embed.add_field(name="Status", value=style.status_text, inline=True)
    if cross_origin:
        embed.add_field(name="Source", value=target.source_label, inline=False)
    embed.add_field(name="Link", value=f"[{style.action_text}]({notification.url})", inline=False)
    return embed


def attachment_names(media: DownloadResult) -> list[str]:
    if media.media_kind is MediaKind.VIDEO and len(media.payloads) == 1:
        return [VIDEO_FILENAME]
    if media.media_kind is MediaKind.VIDEO:
        return [f"video_{i + 1}.mp4" for i in range(len(media.payloads))]
    return [IMAGE_FILENAME.format(index=i + 1) for i in range(len(media.payloads))]


def chunk_attachments(sizes: list[int], max_count: int, max_bytes: int) -> list[list[int]]:
    """
    Group attachment indexes into messages.

    Each group holds at most max_count files whose sizes add up to at most
    max_bytes. Order is preserved. Callers must reject single files above
    max_bytes first.
    """
    groups: list[list[int]] = []
    current: list[int] = []
    current_bytes = 0

    for index, size in enumerate(sizes):
        if current and (len(current) >= max_count or current_bytes + size > max_bytes):
            groups.append(current)
            current, current_bytes = [], 0
        current.append(index)
        current_bytes += size

    if current:
        groups.append(current)
    return groups


class DiscordDeliveryChannel(DeliveryChannel):
    """
    Primary platform delivery.

    A stale mapping (channel deleted out of band) is delivered to the
    fallback channel and logged; the mapping row is left for an operator.
    """

    def __init__(
        self,
        sender: DiscordSender,
        *,
        fallback_channel_id: Optional[str] = None,
        max_upload_bytes: Optional[int] = None,
        max_attachments: Optional[int] = None,
    ):
        self._sender = sender
        self._fallback_channel_id = fallback_channel_id
        self._max_upload_bytes = max_upload_bytes or settings.discord_max_upload_bytes
        self._max_attachments = max_attachments or settings.discord_max_attachments

    @property
    def name(self) -> str:
        return "discord"

    async def deliver(
        self,
        notification: Notification,
        media: Optional[DownloadResult],
        target: DeliveryTarget,
    ) -> None:
        try:
            await self._deliver_to(target.channel_id, notification, media, target)
        except ChannelNotFoundError:
            if not self._fallback_channel_id or self._fallback_channel_id == target.channel_id:
                raise DeliveryError(self.name, f"channel {target.channel_id} not found")
            logger.warning(
                f"stale destination mapping: channel {target.channel_id} for "
                f"@{target.username} no longer exists, delivering to fallback "
                f"{self._fallback_channel_id}",
                extra={"username": target.username, "channel": self.name},
            )
            try:
                await self._deliver_to(self._fallback_channel_id, notification, media, target)
            except DiscordSendError as e:
                raise DeliveryError(self.name, f"fallback delivery failed: {e}") from e
        except DiscordSendError as e:
            raise DeliveryError(self.name, str(e)) from e

    async def _deliver_to(
        self,
        channel_id: str,
        notification: Notification,
        media: Optional[DownloadResult],
        target: DeliveryTarget,
    ) -> None:
        embed = build_embed(notification, target)
        mention = role_mention(target.role_id)

        if media is None or media.is_link_only:
            await self._send_link_only(channel_id, notification, embed, mention)
            return

        oversized = [len(p) for p in media.payloads if len(p) > self._max_upload_bytes]
        if oversized:
            logger.info(
                f"Payload of {max(oversized)} bytes exceeds {self._max_upload_bytes}, sending link only",
                extra={"username": target.username, "channel": self.name},
            )
            await self._send_link_only(channel_id, notification, embed, mention)
            return

        try:
            await self._send_attachments(channel_id, media, embed, mention)
        except PayloadTooLargeError:
            logger.info(
                "Upload rejected as too large, sending link only",
                extra={"username": target.username, "channel": self.name},
            )
            await self._send_link_only(channel_id, notification, embed, mention)

    async def _send_attachments(
        self,
        channel_id: str,
        media: DownloadResult,
        embed: discord.Embed,
        mention: str,
    ) -> None:
        names = attachment_names(media)
        groups = chunk_attachments(
            [len(p) for p in media.payloads],
            self._max_attachments,
            self._max_upload_bytes,
        )

        for position, group in enumerate(groups):
            files = [(names[i], media.payloads[i]) for i in group]
            if position == 0:
                await self._sender.send(
                    channel_id,
                    content=mention.strip() or None,
                    embed=embed,
                    files=files,
                )
            else:
                await self._sender.send(channel_id, files=files)

    async def _send_link_only(
        self,
        channel_id: str,
        notification: Notification,
        embed: discord.Embed,
        mention: str,
    ) -> None:
        await self._sender.send(
            channel_id,
            content=f"{mention}{notification.url}",
            embed=embed,
        )


# ============================================================================
# SECONDARY (TELEGRAM FORUM TOPICS)
# ============================================================================

class TelegramDeliveryChannel(DeliveryChannel):
    """
    Secondary platform delivery into one forum topic per username.

    Topic lookup is read-through: cached id from the mapping store, then
    the forum's own topic list, then creation. Found or created ids are
    written back to the mapping store. An unavailable client or an
    unresolvable topic is logged and skipped, never raised.
    """

    def __init__(self, client: TelegramTopicClient, mappings: MappingRepository):
        self._client = client
        self._mappings = mappings

    @property
    def name(self) -> str:
        return "telegram"

    async def resolve_topic(self, username: str) -> Optional[int]:
        mapping = await self._mappings.find_by_username(username)
        if mapping is not None and mapping.telegram_topic_id:
            return int(mapping.telegram_topic_id)

        title = TOPIC_TITLE.format(username=username)
        topic_id = await self._client.find_topic(title)
        if topic_id is not None:
            logger.info(f"Found existing topic {topic_id} for @{username}", extra={"username": username})
        else:
            topic_id = await self._client.create_topic(title)
            logger.info(f"Created topic {topic_id} for @{username}", extra={"username": username})

        if mapping is not None:
            await self._mappings.update_telegram_topic(username, str(topic_id))
        return topic_id

    async def deliver(
        self,
        notification: Notification,
        media: Optional[DownloadResult],
        target: DeliveryTarget,
    ) -> None:
        if not await self._client.is_ready():
            logger.warning(
                "Telegram client not ready, skipping secondary delivery",
                extra={"username": target.username, "channel": self.name},
            )
            return

        try:
            topic_id = await self.resolve_topic(target.username)
        except Exception as e:
            logger.warning(
                f"Could not resolve topic for @{target.username}, skipping: {e}",
                extra={"username": target.username, "channel": self.name},
            )
            return

        if topic_id is None:
            logger.warning(
                f"No topic for @{target.username}, skipping",
                extra={"username": target.username, "channel": self.name},
            )
            return

        url = notification.url
        try:
            if media is not None and not media.is_link_only and media.media_kind is MediaKind.VIDEO:
                await self._client.send_video(topic_id, media.payloads[0], caption=url)
            elif media is not None and not media.is_link_only:
                await self._client.send_text(topic_id, CAPTION_IMAGE.format(url=url))
            else:
                await self._client.send_text(topic_id, CAPTION_LINK.format(url=url))
        except Exception as e:
            raise DeliveryError(self.name, f"send to topic {topic_id} failed: {e}") from e
