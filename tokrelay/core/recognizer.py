# tokrelay/core/recognizer.py
"""
Pattern-based notification recognition.

Pure functions over InboundMessage: no I/O, no transport types.
"""
from __future__ import annotations

import re
from typing import Optional

from tokrelay.core.domain import ContentType, InboundMessage, Notification

LIVE_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"@([\w.]+)\s+is\s+live", re.IGNORECASE),
    re.compile(r"@([\w.]+)\s+started\s+live", re.IGNORECASE),
    re.compile(r"@([\w.]+)\s+went\s+live", re.IGNORECASE),
    re.compile(r"live.*@([\w.]+)", re.IGNORECASE),
    re.compile(r"@([\w.]+).*live", re.IGNORECASE),
)

# Creator URLs carry the username as an "/@name" path segment
CREATOR_URL_PATTERN = re.compile(r"https?://[^\s/]+/@([\w.]+)[^\s<>()\[\]]*", re.IGNORECASE)

PROFILE_URL_TEMPLATE = "https://www.tiktok.com/@{username}"

MIN_DESTINATION_NAME_LENGTH = 2


def _normalize_username(raw: str) -> str:
    return raw.strip().lower()


def _username_from_text(text: str) -> Optional[str]:
    for pattern in LIVE_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1)
    return None


def _creator_url(candidate: str) -> Optional[re.Match]:
    return CREATOR_URL_PATTERN.search(candidate or "")


def _from_embeds(message: InboundMessage) -> tuple[Optional[str], Optional[str]]:
    username: Optional[str] = None
    url: Optional[str] = None

    for text in message.embed_texts:
        username = _username_from_text(text)
        if username:
            break

    for candidate in message.embed_urls:
        match = _creator_url(candidate)
        if match:
            username = username or match.group(1)
            url = match.group(0)
            break

    return username, url


def _from_buttons(message: InboundMessage) -> tuple[Optional[str], Optional[str]]:
    for candidate in message.button_urls:
        match = _creator_url(candidate)
        if match:
            return match.group(1), match.group(0)
    return None, None


def _from_content(message: InboundMessage) -> tuple[Optional[str], Optional[str]]:
    match = _creator_url(message.content)
    if match:
        return _username_from_text(message.content) or match.group(1), match.group(0)
    return _username_from_text(message.content), None


def determine_content_type(url: Optional[str], text: str) -> ContentType:
    """Classify by URL path first, then by live phrasing in the text."""
    if url:
        if "/video/" in url:
            return ContentType.VIDEO
        if "/photo/" in url:
            return ContentType.PHOTO
        if "/live" in url:
            return ContentType.LIVE

    if any(pattern.search(text or "") for pattern in LIVE_PATTERNS):
        return ContentType.LIVE

    return ContentType.UNKNOWN


def extract_notification(message: InboundMessage) -> Optional[Notification]:
    """
    Extract {username, url} from a message.

    Order: embeds (text, then urls), link buttons, message content. The
    first source yielding a username wins. The URL is the first creator URL
    found by any source, so scanning continues past the username when the
    sources seen so far carried none. When no URL is present at all (bare
    live announcement) the creator's profile URL is used.

    Returns None when nothing matches.
    """
    username: Optional[str] = None
    url: Optional[str] = None

    for recognizer in (_from_embeds, _from_buttons, _from_content):
        found_username, found_url = recognizer(message)
        username = username or found_username
        url = url or found_url
        if username and url:
            break

    if not username:
        return None

    username = _normalize_username(username)
    if not username:
        return None

    text = " ".join([message.content, *message.embed_texts])
    content_type = determine_content_type(url, text)

    return Notification(
        username=username,
        url=url or PROFILE_URL_TEMPLATE.format(username=username),
        content_type=content_type,
    )


def sanitize_destination_name(username: str) -> Optional[str]:
    """
    Channel-safe name: lower case, letters a-z only.

    Returns None when fewer than two letters survive, meaning the
    notification goes to the fallback channel instead.
    """
    cleaned = re.sub(r"[^a-z]", "", username.lower())
    if len(cleaned) < MIN_DESTINATION_NAME_LENGTH:
        return None
    return cleaned
