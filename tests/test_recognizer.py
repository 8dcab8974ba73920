# tests/test_recognizer.py
"""Tests for tokrelay/core/recognizer.py: notification extraction and naming."""
from __future__ import annotations

import pytest

from tokrelay.core.domain import ContentType
from tokrelay.core.recognizer import (
    determine_content_type,
    extract_notification,
    sanitize_destination_name,
)


# ============================================================================
# Content type
# ============================================================================

class TestDetermineContentType:
    def test_video_url(self):
        url = "https://www.tiktok.com/@jane_doe/video/7301234567890"
        assert determine_content_type(url, "") == ContentType.VIDEO

    def test_photo_url(self):
        url = "https://www.tiktok.com/@jane_doe/photo/7301234567890"
        assert determine_content_type(url, "") == ContentType.PHOTO

    def test_live_url(self):
        assert determine_content_type("https://www.tiktok.com/@jane_doe/live", "") == ContentType.LIVE

    def test_live_phrase_without_url(self):
        assert determine_content_type(None, "@jane_doe is live now!") == ContentType.LIVE

    def test_url_beats_text(self):
        url = "https://www.tiktok.com/@jane_doe/video/1"
        assert determine_content_type(url, "@jane_doe went live") == ContentType.VIDEO

    def test_unknown(self):
        assert determine_content_type("https://www.tiktok.com/@jane_doe", "hello") == ContentType.UNKNOWN


# ============================================================================
# Extraction
# ============================================================================

class TestExtractNotification:
    def test_live_announcement_in_content(self, make_message):
        msg = make_message(content="🔴 @Jane_Doe is LIVE https://www.tiktok.com/@jane_doe/live")
        n = extract_notification(msg)
        assert n is not None
        assert n.username == "jane_doe"
        assert n.url == "https://www.tiktok.com/@jane_doe/live"
        assert n.content_type == ContentType.LIVE

    def test_video_url_only(self, make_message):
        msg = make_message(content="new post https://www.tiktok.com/@some.creator/video/123?lang=en")
        n = extract_notification(msg)
        assert n.username == "some.creator"
        assert n.url == "https://www.tiktok.com/@some.creator/video/123?lang=en"
        assert n.content_type == ContentType.VIDEO

    def test_bare_live_text_uses_profile_url(self, make_message):
        msg = make_message(content="@jane_doe started live")
        n = extract_notification(msg)
        assert n.username == "jane_doe"
        assert n.url == "https://www.tiktok.com/@jane_doe"
        assert n.content_type == ContentType.LIVE

    def test_embed_wins_over_content(self, make_message):
        msg = make_message(
            content="https://www.tiktok.com/@other/video/1",
            embed_texts=["@jane_doe is live"],
            embed_urls=["https://www.tiktok.com/@jane_doe/live"],
        )
        n = extract_notification(msg)
        assert n.username == "jane_doe"
        assert n.url == "https://www.tiktok.com/@jane_doe/live"

    def test_embed_url_without_text(self, make_message):
        msg = make_message(embed_urls=["https://www.tiktok.com/@jane_doe/photo/42"])
        n = extract_notification(msg)
        assert n.username == "jane_doe"
        assert n.content_type == ContentType.PHOTO

    def test_button_url(self, make_message):
        msg = make_message(
            content="Watch now!",
            button_urls=["https://www.tiktok.com/@button.user/live"],
        )
        n = extract_notification(msg)
        assert n.username == "button.user"
        assert n.url == "https://www.tiktok.com/@button.user/live"

    def test_embed_username_with_button_url(self, make_message):
        msg = make_message(
            embed_texts=["@jane_doe is live now"],
            button_urls=["https://www.tiktok.com/@jane_doe/live"],
        )
        n = extract_notification(msg)
        assert n.username == "jane_doe"
        assert n.url == "https://www.tiktok.com/@jane_doe/live"
        assert n.content_type == ContentType.LIVE

    def test_embed_username_with_content_url(self, make_message):
        msg = make_message(
            content="new post https://www.tiktok.com/@jane_doe/video/9",
            embed_texts=["@jane_doe went live earlier"],
        )
        n = extract_notification(msg)
        assert n.username == "jane_doe"
        assert n.url == "https://www.tiktok.com/@jane_doe/video/9"
        assert n.content_type == ContentType.VIDEO

    def test_buttons_checked_before_content(self, make_message):
        msg = make_message(
            content="https://www.tiktok.com/@from_content/video/1",
            button_urls=["https://www.tiktok.com/@from_button/video/2"],
        )
        assert extract_notification(msg).username == "from_button"

    def test_nothing_recognized(self, make_message):
        msg = make_message(content="hello everyone, no links here")
        assert extract_notification(msg) is None

    def test_empty_message(self, make_message):
        assert extract_notification(make_message()) is None

    def test_username_is_lowercased(self, make_message):
        msg = make_message(content="https://www.tiktok.com/@MiXeD/video/1")
        assert extract_notification(msg).username == "mixed"


# ============================================================================
# Destination names
# ============================================================================

class TestSanitizeDestinationName:
    @pytest.mark.parametrize("username,expected", [
        ("jane_doe", "janedoe"),
        ("User.Name_1", "username"),
        ("ab", "ab"),
    ])
    def test_letters_only(self, username, expected):
        assert sanitize_destination_name(username) == expected

    def test_digits_only_is_rejected(self):
        assert sanitize_destination_name("123") is None

    def test_single_letter_is_rejected(self):
        assert sanitize_destination_name("a_1") is None
