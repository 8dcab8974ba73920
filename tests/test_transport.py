# tests/test_transport.py
"""Tests for the Discord adapters/bot helpers and the Telegram topic client."""
from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from telethon import types

from tokrelay.core.domain import AckSignal
from tokrelay.core.errors import ProvisioningError
from tokrelay.transport.adapters import to_inbound_message
from tokrelay.transport.discord_bot import DiscordAcknowledger, DiscordChannelProvisioner
from tokrelay.transport.discord_sender import DiscordSender
from tokrelay.transport.telegram_topics import TelegramTopicClient, TelegramTopicError


# ============================================================================
# Discord -> InboundMessage
# ============================================================================

def _discord_message(**overrides):
    embed = SimpleNamespace(
        title="@jane_doe is live",
        description=None,
        author=SimpleNamespace(name="TikTok"),
        url="https://www.tiktok.com/@jane_doe/live",
    )
    button = SimpleNamespace(url="https://www.tiktok.com/@jane_doe/live")
    data = {
        "id": 555,
        "author": SimpleNamespace(id=1000),
        "guild": SimpleNamespace(id=900, name="Core"),
        "content": "",
        "embeds": [embed],
        "components": [SimpleNamespace(children=[button, SimpleNamespace(url=None)])],
    }
    data.update(overrides)
    return SimpleNamespace(**data)


class TestToInboundMessage:
    def test_fields_copied(self):
        raw = _discord_message()
        msg = to_inbound_message(raw)

        assert msg.message_id == "555"
        assert msg.author_id == "1000"
        assert msg.guild_id == "900"
        assert msg.guild_name == "Core"
        assert msg.embed_texts == ["@jane_doe is live TikTok"]
        assert msg.embed_urls == ["https://www.tiktok.com/@jane_doe/live"]
        assert msg.button_urls == ["https://www.tiktok.com/@jane_doe/live"]
        assert msg.raw is raw

    def test_direct_message_has_no_guild(self):
        msg = to_inbound_message(_discord_message(guild=None, embeds=[], components=[], content=None))
        assert msg.guild_id is None
        assert msg.guild_name is None
        assert msg.content == ""


# ============================================================================
# Ports implemented with DiscordSender
# ============================================================================

class TestDiscordPorts:
    @pytest.mark.asyncio
    async def test_provisioner_uses_core_guild(self):
        sender = AsyncMock(spec=DiscordSender)
        sender.create_text_channel = AsyncMock(return_value="777")

        channel_id = await DiscordChannelProvisioner(sender, "900").create_text_channel("janedoe", "cat1")

        assert channel_id == "777"
        sender.create_text_channel.assert_awaited_once_with("900", "janedoe", "cat1")

    @pytest.mark.asyncio
    async def test_provisioner_without_guild(self):
        sender = AsyncMock(spec=DiscordSender)
        with pytest.raises(ProvisioningError):
            await DiscordChannelProvisioner(sender, None).create_text_channel("janedoe", None)

    @pytest.mark.asyncio
    async def test_acknowledger_reacts(self, make_message):
        sender = AsyncMock(spec=DiscordSender)
        raw = object()

        await DiscordAcknowledger(sender).acknowledge(make_message(raw=raw), AckSignal.CROSS_ORIGIN)

        sender.add_reaction.assert_awaited_once_with(raw, "🌐")

    @pytest.mark.asyncio
    async def test_acknowledger_without_raw_message(self, make_message):
        sender = AsyncMock(spec=DiscordSender)
        await DiscordAcknowledger(sender).acknowledge(make_message(), AckSignal.ERROR)
        sender.add_reaction.assert_not_called()


# ============================================================================
# Telegram topics
# ============================================================================

def _topic(topic_id: int, title: str):
    topic = MagicMock(spec=types.ForumTopic)
    topic.id = topic_id
    topic.title = title
    return topic


def _telegram_client(pages: list[list] | None = None, updates=None) -> TelegramTopicClient:
    raw = AsyncMock()
    raw.get_input_entity = AsyncMock(return_value="group-peer")
    raw.is_connected = MagicMock(return_value=True)
    raw.is_user_authorized = AsyncMock(return_value=True)

    responses = [SimpleNamespace(topics=page) for page in (pages or [])]
    if updates is not None:
        responses.append(updates)
    raw.side_effect = responses
    return TelegramTopicClient(client=raw, group_id=-100123)


class TestTelegramTopicClient:
    @pytest.mark.asyncio
    async def test_not_configured_is_not_ready(self):
        client = TelegramTopicClient(client=None, group_id=None)
        assert not client.configured
        assert await client.is_ready() is False

    @pytest.mark.asyncio
    async def test_ready_when_connected_and_authorized(self):
        assert await _telegram_client().is_ready() is True

    @pytest.mark.asyncio
    async def test_find_topic_across_pages(self):
        first_page = [_topic(i, f"🎥 user{i}") for i in range(1, 101)]
        second_page = [_topic(200, "🎥 jane_doe")]
        client = _telegram_client(pages=[first_page, second_page])

        with patch("tokrelay.transport.telegram_topics.functions"):
            assert await client.find_topic("🎥 jane_doe") == 200

    @pytest.mark.asyncio
    async def test_find_topic_missing(self):
        client = _telegram_client(pages=[[_topic(1, "🎥 other")]])

        with patch("tokrelay.transport.telegram_topics.functions"):
            assert await client.find_topic("🎥 jane_doe") is None

    @pytest.mark.asyncio
    async def test_create_topic_reads_message_id(self):
        updates = SimpleNamespace(updates=[types.UpdateMessageID(id=321, random_id=1)])
        client = _telegram_client(updates=updates)

        with patch("tokrelay.transport.telegram_topics.functions"):
            assert await client.create_topic("🎥 jane_doe") == 321

    @pytest.mark.asyncio
    async def test_create_topic_without_id(self):
        client = _telegram_client(updates=SimpleNamespace(updates=[]))

        with patch("tokrelay.transport.telegram_topics.functions"):
            with pytest.raises(TelegramTopicError):
                await client.create_topic("🎥 jane_doe")

    @pytest.mark.asyncio
    async def test_send_video_replies_in_topic(self):
        client = _telegram_client()
        await client.send_video(55, b"v" * 10, caption="https://x")

        call = client._client.send_file.await_args
        assert call.args[0] == "group-peer"
        assert call.args[1].name == "video.mp4"
        assert call.kwargs["reply_to"] == 55
        assert call.kwargs["supports_streaming"] is True
