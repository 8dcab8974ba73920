# tokrelay/transport/telegram_topics.py
"""
Telegram forum-topic client (Telethon, user session).

Wraps a TelegramClient built from a pre-generated StringSession. Login
flows are handled elsewhere; when the session is missing or no longer
authorized this client reports not ready and the secondary adapter skips
delivery.
"""
from __future__ import annotations

import io
from typing import AsyncIterator, Optional

from telethon import TelegramClient, functions, types
from telethon.sessions import StringSession

from tokrelay.config import settings
from tokrelay.core.app_constants import TOPIC_ICON_COLOR, TOPIC_PAGE_SIZE
from tokrelay.infra.logging_config import get_logger

logger = get_logger(__name__)


class TelegramTopicError(Exception):
    """Telegram request against the forum group failed."""


class TelegramTopicClient:
    """Forum topic listing, creation and posting in one supergroup."""

    def __init__(
        self,
        client: Optional[TelegramClient] = None,
        group_id: Optional[int] = None,
    ):
        self._client = client
        self._group_id = group_id if group_id is not None else settings.telegram_core_group_id
        self._group = None

    @classmethod
    def from_settings(cls) -> "TelegramTopicClient":
        if not settings.telegram_enabled:
            return cls(client=None)
        client = TelegramClient(
            StringSession(settings.telegram_session),
            settings.telegram_api_id,
            settings.telegram_api_hash,
        )
        return cls(client=client, group_id=settings.telegram_core_group_id)

    @property
    def configured(self) -> bool:
        return self._client is not None and self._group_id is not None

    async def connect(self) -> None:
        if not self.configured:
            logger.warning("Telegram session not configured, secondary delivery disabled")
            return
        await self._client.connect()
        if not await self._client.is_user_authorized():
            logger.warning("Telegram session is not authorized, secondary delivery disabled")
            return
        logger.info(f"Telegram client connected (group={self._group_id})")

    async def disconnect(self) -> None:
        if self._client is not None and self._client.is_connected():
            await self._client.disconnect()

    async def is_ready(self) -> bool:
        if not self.configured or not self._client.is_connected():
            return False
        return await self._client.is_user_authorized()

    async def _group_peer(self):
        if self._group is None:
            self._group = await self._client.get_input_entity(self._group_id)
        return self._group

    async def iter_topics(self) -> AsyncIterator[tuple[int, str]]:
        """Yield (topic_id, title) for every forum topic, page by page."""
        group = await self._group_peer()
        offset_topic = 0

        while True:
            result = await self._client(functions.channels.GetForumTopicsRequest(
                channel=group,
                offset_date=None,
                offset_id=0,
                offset_topic=offset_topic,
                limit=TOPIC_PAGE_SIZE,
            ))
            topics = [t for t in result.topics if isinstance(t, types.ForumTopic)]
            for topic in topics:
                yield topic.id, topic.title

            if len(result.topics) < TOPIC_PAGE_SIZE or not result.topics:
                return
            offset_topic = result.topics[-1].id

    async def find_topic(self, title: str) -> Optional[int]:
        async for topic_id, topic_title in self.iter_topics():
            if topic_title == title:
                return topic_id
        return None

    async def create_topic(self, title: str) -> int:
        group = await self._group_peer()
        updates = await self._client(functions.channels.CreateForumTopicRequest(
            channel=group,
            title=title,
            icon_color=TOPIC_ICON_COLOR,
        ))

        # The topic id is the id of the service message that opened it
        for update in getattr(updates, "updates", []):
            if isinstance(update, types.UpdateMessageID):
                return update.id
            if isinstance(update, (types.UpdateNewChannelMessage, types.UpdateNewMessage)):
                return update.message.id

        raise TelegramTopicError(f"topic creation for '{title}' returned no message id")

    async def send_video(self, topic_id: int, data: bytes, caption: str) -> None:
        group = await self._group_peer()
        file = io.BytesIO(data)
        file.name = "video.mp4"
        await self._client.send_file(
            group,
            file,
            caption=caption,
            reply_to=topic_id,
            supports_streaming=True,
        )

    async def send_text(self, topic_id: int, text: str) -> None:
        group = await self._group_peer()
        await self._client.send_message(group, text, reply_to=topic_id)
