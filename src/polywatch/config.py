"""Configuration management using Pydantic Settings."""

from functools import lru_cache
from pathlib import Path
from typing import cast

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from polywatch import __version__

SURVEILLANCE_INTERVALS = (5, 15, 30, 60, 120)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="POLYWATCH_",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Data directory for SQLite and other persistent files
    data_dir: Path = Field(
        default=Path("/data"),
        description="Directory for persistent data (SQLite DB, etc.)",
    )

    # Database (defaults to SQLite in data_dir if not set)
    database_url: str | None = Field(
        default=None,
        description="Database connection URL (PostgreSQL or SQLite). If not set, uses SQLite in data_dir.",
    )

    @model_validator(mode="after")
    def set_default_database_url(self) -> "Settings":
        """Set default database URL if not provided."""
        if self.database_url is None:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            db_path = self.data_dir / "polywatch.db"
            object.__setattr__(self, "database_url", f"sqlite+aiosqlite:///{db_path}")
        return self

    @property
    def is_sqlite(self) -> bool:
        """Check if using SQLite database."""
        return self.database_url is not None and self.database_url.startswith("sqlite")

    # Remote translation API
    api_base_url: str = Field(
        default="https://translate.wordpress.org/api/projects",
        description="Base URL of the translation stats API",
    )
    site_base_url: str = Field(
        default="https://translate.wordpress.org/projects",
        description="Base URL for human-facing project links",
    )
    translation_set: str = Field(default="default", description="Translation set slug")
    request_timeout: float = Field(default=30.0, gt=0, description="HTTP timeout in seconds")
    user_agent: str = Field(
        default=f"polywatch/{__version__}",
        description="User-Agent sent to remote services",
    )
    retry_pause_seconds: float = Field(default=0.25, ge=0, description="Pause before the single retry")

    # Backoff
    backoff_default_seconds: int = Field(default=300, description="Cooldown when no Retry-After is given")
    backoff_max_seconds: int = Field(default=600, description="Upper bound for Retry-After")
    backoff_min_seconds: int = Field(default=60, description="Lower bound for any cooldown")

    # Surveillance
    surveillance_enabled: bool = Field(default=True, description="Run scheduled scrape ticks")
    surveillance_interval: int = Field(default=15, description="Minutes between ticks")
    max_projects_per_check: int = Field(default=10, ge=1, description="Projects checked per tick")
    recheck_jitter_seconds: int = Field(default=300, ge=0, description="Random delay added to next check")
    worker_concurrency: int = Field(default=4, ge=1, le=8, description="Parallel checks within a tick")
    tick_timeout_seconds: float = Field(default=600.0, gt=0, description="Hard ceiling for one tick")

    @field_validator("surveillance_interval")
    @classmethod
    def validate_interval(cls, value: int) -> int:
        """Only accept the supported tick cadences."""
        if value not in SURVEILLANCE_INTERVALS:
            msg = f"surveillance_interval must be one of {SURVEILLANCE_INTERVALS}"
            raise ValueError(msg)
        return value

    # Digests
    digest_queue_ttl_hours: int = Field(default=12, ge=1, description="Retention of unflushed digest queues")
    digest_max_items: int = Field(default=20, ge=1, description="Lines in one bulk digest message")
    digest_window_minutes: int = Field(default=15, ge=1, description="Acceptance window for fixed-time digests")
    default_timezone: str = Field(default="UTC", description="Timezone for fixed-time digests")

    # Slack
    slack_webhook_url: SecretStr | None = Field(
        default=None,
        description="Default Slack incoming webhook",
    )

    # Encryption key for webhook URLs stored in the settings document
    encryption_key: SecretStr | None = Field(
        default=None,
        description="Fernet encryption key for webhook URLs",
    )

    # API settings
    api_host: str = Field(default="127.0.0.1", description="API host")
    api_port: int = Field(default=8000, description="API port")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_json: bool = Field(default=False, description="Use JSON logging format")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return cast("Settings", Settings.__call__())

