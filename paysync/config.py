"""
paysync Configuration

Settings for the sync engine, the webhook API and the daemon.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """paysync settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PAYSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # HTTP Transport
    http_timeout: float = 10.0  # Seconds per request
    oauth_expiry_margin: float = 5.0  # Refresh tokens this close to expiry

    # Sync Settings
    default_page_size: int = 100
    max_pages_per_run: int = 50  # Page budget of one stream run

    # Storage
    database_url: str = "sqlite:///./paysync.db"

    # Connectors file (JSON) used by the CLI and the daemon
    connectors_file: str = "./connectors.json"

    # Scheduler Settings
    sync_interval_minutes: int = 15
    sync_enabled: bool = True

    # Webhooks
    webhook_base_url: str = ""  # Public URL the provider posts to
    webhook_host: str = "0.0.0.0"
    webhook_port: int = 8000

    # Metrics Settings
    metrics_enabled: bool = True
    metrics_port: int = 9090

    # Logging
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
