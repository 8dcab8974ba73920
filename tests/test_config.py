# tests/test_config.py
"""Tests for tokrelay/config.py derived settings."""
from __future__ import annotations

from tokrelay.config import Settings, warn_on_risky_config


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


class TestSettings:
    def test_allowed_authors_include_owner(self):
        s = _settings(source_bot_ids=" 1000, 2000,, ", owner_id="42")
        assert s.source_bot_id_list == ["1000", "2000"]
        assert s.allowed_author_ids == {"1000", "2000", "42"}

    def test_dsn_from_parts(self):
        s = _settings(database_url=None, pguser="u", pgpassword="p", pghost="db", pgport=5433, pgdatabase="relay")
        assert s.database_dsn == "postgresql://u:p@db:5433/relay"

    def test_explicit_database_url_wins(self):
        s = _settings(database_url="postgresql://x/y")
        assert s.database_dsn == "postgresql://x/y"

    def test_telegram_needs_every_field(self):
        assert not _settings(telegram_api_id=1, telegram_api_hash="h").telegram_enabled
        assert _settings(
            telegram_api_id=1,
            telegram_api_hash="h",
            telegram_session="s",
            telegram_core_group_id=-100123,
        ).telegram_enabled

    def test_json_logs_default_in_prod(self):
        assert _settings(app_env="prod").use_json_logs is True
        assert _settings(app_env="dev").use_json_logs is False
        assert _settings(app_env="dev", log_json=True).use_json_logs is True

    def test_production_requirements(self):
        missing = _settings(app_env="prod").validate_required_for_production()
        assert {"admin_token", "discord_token", "core_server_id"} <= set(missing)

    def test_risky_config_is_a_list(self):
        assert isinstance(warn_on_risky_config(_settings()), list)
