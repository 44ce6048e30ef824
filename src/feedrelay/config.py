"""Configuration module using Pydantic Settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Shard settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_url: str = "sqlite:///data/feedrelay.db"
    database_required: bool = True  # Connect eagerly during startup
    store_watch_interval_seconds: int = 30
    store_max_reconnect_attempts: int = 10

    # Feeds
    refresh_rate_minutes: int = 10
    article_rate_limit: int = 0  # 0 = unlimited
    max_feeds: int = 5

    # Supporter tiers
    supporters_enabled: bool = False

    # Bot behaviour
    enable_commands: bool = True
    exit_on_socket_issues: bool = True
    bot_status: str = "online"
    bot_activity_type: str | None = None
    bot_activity_name: str | None = None
    bot_stream_activity_url: str | None = None

    # Usage stats
    stats_flush_interval_seconds: int = 10

    # Developer switches
    dev_disable_commands: bool = False
    dev_dump_heap: bool = False
    heap_dump_interval_minutes: int = 15
    heap_dump_dir: str = "data/heap"

    # Identity directory
    directory_base_url: str = "https://discord.com/api/v8"
    directory_token: str | None = None

    # HTTP Client
    http_timeout_connect: float = 10.0
    http_timeout_read: float = 30.0
    http_max_retries: int = 3

    # Logging
    log_level: str = "INFO"

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def commands_disabled(self) -> bool:
        """Commands are off if either the developer switch or the config says so."""
        return self.dev_disable_commands or not self.enable_commands


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
