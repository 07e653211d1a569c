"""Application configuration settings."""

import logging
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./servicarr.db"
    database_echo: bool = False

    # Security
    encryption_key: str = ""

    # API
    api_title: str = "Servicarr API"
    api_version: str = "0.1.0"

    # CORS
    cors_origins: list[str] = ["http://localhost:4555"]

    # Scheduler
    enable_scheduler: bool = True
    poll_interval_seconds: int = 60
    scheduler_tick_seconds: int = 5
    log_prune_interval_seconds: int = 300
    log_retention_count: int = 10000

    # Checks
    default_check_timeout_seconds: float = 5.0
    failure_threshold: int = 2
    degraded_latency_ms: int = 200

    # Statistics
    stats_cache_ttl_seconds: float = 30.0

    # Notifications
    status_page_url: str = ""
    notification_timeout_seconds: float = 10.0

    # Logging
    log_level: str = "INFO"

    @field_validator("encryption_key")
    @classmethod
    def validate_encryption_key(cls, v: str) -> str:
        """Validate ENCRYPTION_KEY is a valid Fernet key when provided."""
        if not v:
            return v
        from cryptography.fernet import Fernet

        try:
            Fernet(v.encode())
        except ValueError as e:
            raise ValueError(
                "ENCRYPTION_KEY is invalid: expected a url-safe base64 encoded 32-byte Fernet key"
            ) from e
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize LOG_LEVEL to an upper-case standard level name."""
        level = v.strip().upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"LOG_LEVEL must be a standard logging level, got {v!r}")
        return level

    @field_validator(
        "poll_interval_seconds",
        "scheduler_tick_seconds",
        "failure_threshold",
        "degraded_latency_ms",
        "log_retention_count",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be >= 1")
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Cached Settings instance.
    """
    return Settings()
