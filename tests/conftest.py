# tests/conftest.py
"""Pytest configuration and fixtures"""
import pytest
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from tokrelay.core.domain import InboundMessage  # noqa: E402


@pytest.fixture
def source_bot_id():
    """Author id of the upstream notification bot"""
    return "1000"


@pytest.fixture
def core_server_id():
    """Guild id of the core server"""
    return "900"


@pytest.fixture
def make_message(source_bot_id, core_server_id):
    """Factory for InboundMessage with sensible defaults"""
    def _make(**overrides) -> InboundMessage:
        data = {
            "message_id": "555",
            "author_id": source_bot_id,
            "guild_id": core_server_id,
            "guild_name": "Core",
            "content": "",
        }
        data.update(overrides)
        return InboundMessage(**data)

    return _make
