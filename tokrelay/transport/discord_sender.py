# tokrelay/transport/discord_sender.py
"""
Discord outbound operations (discord.py).

Thin wrapper over a connected discord.Client so delivery and provisioning
code never touches gateway objects directly.

Error classification:
- Unknown channel (404)         → ChannelNotFoundError   (stale mapping)
- Request entity too large (413)→ PayloadTooLargeError   (deliver link only)
- Anything else from the API    → DiscordSendError
"""
from __future__ import annotations

import io
from typing import Optional

import discord

from tokrelay.core.errors import ProvisioningError
from tokrelay.infra.logging_config import get_logger
from tokrelay.infra.metrics import RelayMetrics

logger = get_logger(__name__)


class DiscordSendError(Exception):
    """Error sending to Discord.

    Attributes:
        status: HTTP status code (0 for client-side errors).
    """

    def __init__(self, status: int, message: str):
        self.status = status
        super().__init__(f"Discord API error {status}: {message}")


class ChannelNotFoundError(DiscordSendError):
    def __init__(self, channel_id: str):
        self.channel_id = channel_id
        super().__init__(404, f"channel {channel_id} not found")


class PayloadTooLargeError(DiscordSendError):
    def __init__(self, message: str = "request entity too large"):
        super().__init__(413, message)


def _is_too_large(exc: discord.HTTPException) -> bool:
    return exc.status == 413 or "too large" in str(exc).lower()


class DiscordSender:
    """Outbound calls against a discord.Client."""

    def __init__(self, client: discord.Client):
        self._client = client

    async def _text_channel(self, channel_id: str) -> discord.abc.Messageable:
        channel = self._client.get_channel(int(channel_id))
        if channel is None:
            try:
                channel = await self._client.fetch_channel(int(channel_id))
            except discord.NotFound as e:
                raise ChannelNotFoundError(channel_id) from e
            except discord.HTTPException as e:
                raise DiscordSendError(e.status, str(e)) from e

        if not isinstance(channel, discord.abc.Messageable):
            raise DiscordSendError(0, f"channel {channel_id} is not text-based")
        return channel

    async def send(
        self,
        channel_id: str,
        *,
        content: Optional[str] = None,
        embed: Optional[discord.Embed] = None,
        files: Optional[list[tuple[str, bytes]]] = None,
    ) -> None:
        """
        Send one message.

        Args:
            files: (filename, data) pairs, at most 10
        """
        channel = await self._text_channel(channel_id)

        kwargs: dict = {}
        if content:
            kwargs["content"] = content
        if embed is not None:
            kwargs["embed"] = embed
        if files:
            kwargs["files"] = [discord.File(io.BytesIO(data), filename=name) for name, data in files]

        try:
            await channel.send(**kwargs)
        except discord.NotFound as e:
            raise ChannelNotFoundError(channel_id) from e
        except discord.HTTPException as e:
            if _is_too_large(e):
                raise PayloadTooLargeError(str(e)) from e
            raise DiscordSendError(e.status, str(e)) from e

        RelayMetrics.discord_message_sent(bool(files))

    async def create_text_channel(
        self,
        guild_id: str,
        name: str,
        parent_id: Optional[str] = None,
    ) -> str:
        """Create a text channel, optionally under a category. Returns the channel id."""
        guild = self._client.get_guild(int(guild_id))
        if guild is None:
            raise ProvisioningError(f"guild {guild_id} is not available to the bot")

        category = None
        if parent_id:
            category = guild.get_channel(int(parent_id))
            if not isinstance(category, discord.CategoryChannel):
                raise ProvisioningError(f"category {parent_id} not found in guild {guild_id}")

        try:
            channel = await guild.create_text_channel(
                name,
                category=category,
                reason="tokrelay auto-provisioning",
            )
        except discord.HTTPException as e:
            raise ProvisioningError(f"channel creation failed: {e}") from e

        return str(channel.id)

    async def add_reaction(self, message: discord.Message, emoji: str) -> None:
        await message.add_reaction(emoji)
