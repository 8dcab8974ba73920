# tokrelay/transport/adapters.py
"""
Adapters converting discord.py objects into domain models.
Pure converters: no domain logic.
"""
from __future__ import annotations

import discord

from tokrelay.core.domain import InboundMessage


def _embed_text(embed: discord.Embed) -> str:
    parts = [embed.title, embed.description, embed.author.name if embed.author else None]
    return " ".join(p for p in parts if p)


def _button_urls(message: discord.Message) -> list[str]:
    urls: list[str] = []
    for row in message.components:
        for component in getattr(row, "children", []):
            url = getattr(component, "url", None)
            if url:
                urls.append(url)
    return urls


def to_inbound_message(message: discord.Message) -> InboundMessage:
    """discord.Message -> InboundMessage"""
    guild = message.guild
    return InboundMessage(
        message_id=str(message.id),
        author_id=str(message.author.id),
        guild_id=str(guild.id) if guild else None,
        guild_name=guild.name if guild else None,
        content=message.content or "",
        embed_texts=[text for text in (_embed_text(e) for e in message.embeds) if text],
        embed_urls=[e.url for e in message.embeds if e.url],
        button_urls=_button_urls(message),
        raw=message,
    )
