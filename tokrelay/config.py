# tokrelay/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: Literal["dev", "staging", "prod"] = "dev"
    log_level: str = "INFO"
    log_json: bool | None = None  # None = JSON in prod, console elsewhere

    # Database
    database_url: str | None = None
    pghost: str = "localhost"
    pgport: int = 5432
    pguser: str = "postgres"
    pgpassword: str = ""
    pgdatabase: str = "postgres"
    pg_pool_min: int = 1
    pg_pool_max: int = 10
    pg_connect_timeout: int = 5
    run_migrations_on_start: bool = True

    # Security
    admin_token: str | None = None

    # Discord (primary platform)
    discord_token: str | None = None
    core_server_id: str | None = None  # Guild treated as primary origin
    owner_id: str | None = None
    source_bot_ids: str = ""  # Comma-separated author ids allowed to trigger forwarding
    fallback_channel_id: str | None = None
    auto_create_category_id: str | None = None  # Parent category for auto-provisioned channels
    discord_max_upload_bytes: int = 25 * 1024 * 1024
    discord_max_attachments: int = 10

    # Telegram (secondary platform, user session via Telethon)
    telegram_api_id: int | None = None
    telegram_api_hash: str | None = None
    telegram_session: str | None = None  # StringSession, generated out of band
    telegram_core_group_id: int | None = None  # Forum-enabled supergroup

    # Downloads
    # Defaults only: the live values are read from system_config on every use
    download_engine: str = "ytdlp"
    auto_download: bool = True
    min_media_bytes: int = 5000
    tikwm_api_url: str = "https://www.tikwm.com/api/"

    # Queue processor
    queue_processor_enabled: bool = True
    queue_poll_interval: float = 5.0
    queue_batch_size: int = 5
    queue_max_attempts: int = 3

    @property
    def is_production(self) -> bool:
        return self.app_env == "prod"

    @property
    def use_json_logs(self) -> bool:
        if self.log_json is None:
            return self.is_production
        return self.log_json

    @property
    def database_dsn(self) -> str:
        if self.database_url:
            return self.database_url

        return (
            f"postgresql://{self.pguser}:{self.pgpassword}"
            f"@{self.pghost}:{self.pgport}/{self.pgdatabase}"
        )

    @property
    def source_bot_id_list(self) -> list[str]:
        """Parsed SOURCE_BOT_IDS (blank entries dropped)"""
        return [part.strip() for part in self.source_bot_ids.split(",") if part.strip()]

    @property
    def allowed_author_ids(self) -> set[str]:
        """Source bots plus the owner"""
        allowed = set(self.source_bot_id_list)
        if self.owner_id:
            allowed.add(self.owner_id)
        return allowed

    @property
    def discord_enabled(self) -> bool:
        return bool(self.discord_token)

    @property
    def telegram_enabled(self) -> bool:
        """Check if the Telegram user session is configured"""
        return bool(
            self.telegram_api_id
            and self.telegram_api_hash
            and self.telegram_session
            and self.telegram_core_group_id
        )

    def validate_required_for_production(self) -> list[str]:
        """Validate that required settings exist for production"""
        if not self.is_production:
            return []

        required_fields = [
            ("admin_token", self.admin_token),
            ("discord_token", self.discord_token),
            ("core_server_id", self.core_server_id),
        ]

        return [name for name, value in required_fields if not value]


def warn_on_risky_config(s: "Settings") -> list[str]:
    warnings: list[str] = []

    if not s.admin_token:
        warnings.append("admin_token is missing (admin endpoints will answer 503).")

    if not s.discord_token:
        warnings.append("discord_token is missing (no notifications will be ingested or delivered).")

    if not s.source_bot_id_list and not s.owner_id:
        warnings.append("source_bot_ids and owner_id are empty: every inbound message will be ignored.")

    if not s.fallback_channel_id:
        warnings.append(
            "fallback_channel_id is not set: unmappable usernames and failed provisioning "
            "will drop notifications."
        )

    if not s.auto_create_category_id:
        warnings.append("auto_create_category_id is not set: new channels are created at the guild root.")

    if not s.telegram_enabled:
        warnings.append("Telegram session is not configured (secondary delivery disabled).")

    if s.queue_max_attempts < 1:
        warnings.append("queue_max_attempts < 1: jobs will be marked failed on their first error.")

    return warnings


def validate_or_warn(s: "Settings") -> None:
    """
    In prod: enforce required settings (hard fail).
    In non-prod: warn only.
    """
    missing = s.validate_required_for_production()

    if missing:
        raise RuntimeError(f"Missing required settings for production: {', '.join(missing)}")

    for msg in warn_on_risky_config(s):
        print(f"[WARN][config] {msg}")


settings = Settings()
validate_or_warn(settings)
