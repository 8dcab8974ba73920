# tokrelay/transport/discord_bot.py
"""
Discord gateway client.

Receives messages from every guild the bot is in and hands them to the
Forwarder. Also provides the provisioning and acknowledgement ports the
Forwarder needs, implemented with DiscordSender.
"""
from __future__ import annotations

import asyncio
from typing import Optional

import discord

from tokrelay.core.domain import AckSignal, InboundMessage
from tokrelay.core.errors import ProvisioningError
from tokrelay.core.forwarder import Forwarder
from tokrelay.infra.logging_config import get_logger
from tokrelay.transport.adapters import to_inbound_message
from tokrelay.transport.discord_sender import DiscordSender

logger = get_logger(__name__)


class DiscordChannelProvisioner:
    """ChannelProvisioner backed by the bot account in the core guild."""

    def __init__(self, sender: DiscordSender, guild_id: Optional[str]):
        self._sender = sender
        self._guild_id = guild_id

    async def create_text_channel(self, name: str, parent_id: Optional[str]) -> str:
        if not self._guild_id:
            raise ProvisioningError("core_server_id is not configured")
        return await self._sender.create_text_channel(self._guild_id, name, parent_id)


class DiscordAcknowledger:
    """MessageAcknowledger that reacts on the original message."""

    def __init__(self, sender: DiscordSender):
        self._sender = sender

    async def acknowledge(self, message: InboundMessage, signal: AckSignal) -> None:
        if message.raw is None:
            return
        await self._sender.add_reaction(message.raw, signal.value)


def build_intents() -> discord.Intents:
    intents = discord.Intents.default()
    intents.guilds = True
    intents.guild_messages = True
    intents.message_content = True
    return intents


class RelayBot(discord.Client):
    """discord.Client that feeds inbound messages to a Forwarder."""

    def __init__(self, *, forwarder: Optional[Forwarder] = None, **options):
        options.setdefault("intents", build_intents())
        super().__init__(**options)
        self.forwarder = forwarder
        self.sender = DiscordSender(self)

    async def on_ready(self) -> None:
        logger.info(f"Discord connected as {self.user} ({len(self.guilds)} guild(s))")

    async def on_message(self, message: discord.Message) -> None:
        if self.forwarder is None:
            return
        if self.user is not None and message.author.id == self.user.id:
            return
        await self.forwarder.process_message(to_inbound_message(message))

    async def on_error(self, event_method: str, *args, **kwargs) -> None:
        logger.error(f"Unhandled error in Discord event '{event_method}'", exc_info=True)


async def run_bot(bot: RelayBot, token: str) -> None:
    """Run the gateway connection until cancelled."""
    try:
        await bot.start(token)
    except asyncio.CancelledError:
        raise
    except discord.LoginFailure:
        logger.critical("Discord login failed: check DISCORD_TOKEN")
        raise
    finally:
        if not bot.is_closed():
            await bot.close()
