"""
Module: settings.py
Description: Application configuration using pydantic-settings.

Loads all scheduler settings from environment variables (or a .env
file for local development). The Redis URL, auth token, listen port,
retry limit and retry interval are required: a missing value is a
fatal startup error, never a silent default.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Sentinel value for RETRIES meaning "retry forever"
UNLIMITED_RETRIES = -1


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application settings
    app_name: str = Field(default="Redis Scheduler", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    log_level: str = Field(default="INFO", description="Logging level")

    # Redis settings
    redis_url: str = Field(
        ...,
        description="Redis connection URL, e.g. redis://localhost:6379/0"
    )
    key_namespace: str = Field(
        default="rsch",
        min_length=1,
        description="Prefix for record keys; timer keys use '<prefix>-ref'"
    )
    configure_keyspace_events: bool = Field(
        default=True,
        description="Run CONFIG SET notify-keyspace-events Ex at startup"
    )

    # Server settings
    api_auth: str = Field(
        ...,
        min_length=1,
        description="Token expected in the Authorization header and sent to webhooks"
    )
    port: int = Field(
        ...,
        ge=1,
        le=65535,
        description="HTTP listen port"
    )

    # Delivery settings
    retries: int = Field(
        ...,
        ge=UNLIMITED_RETRIES,
        description="Maximum failed deliveries before a schedule is dropped (-1 = unlimited)"
    )
    retry_time: int = Field(
        ...,
        ge=1,
        description="Seconds to wait before retrying a failed delivery"
    )
    delivery_timeout: int = Field(
        default=10,
        ge=1,
        le=30,
        description="HTTP timeout in seconds for delivery attempts"
    )
    max_concurrent_deliveries: Optional[int] = Field(
        default=None,
        ge=1,
        description="Cap on in-flight deliveries (unset = unbounded)"
    )
    shutdown_grace_seconds: float = Field(
        default=10.0,
        ge=0,
        description="Seconds to wait for in-flight deliveries on shutdown"
    )
    repair_timers_on_startup: bool = Field(
        default=True,
        description="Re-arm timers for records that lost theirs while the service was down"
    )

    @field_validator('key_namespace')
    @classmethod
    def validate_key_namespace(cls, v: str) -> str:
        """Validate the namespace cannot collide with the key separator or globs."""
        import re
        if not re.fullmatch(r'[A-Za-z0-9_.-]+', v):
            raise ValueError(
                "key_namespace must contain only letters, numbers, dots, underscores, and hyphens"
            )
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid logging level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(valid_levels)}")
        return v.upper()


@lru_cache
def get_settings() -> Settings:
    """
    Load settings once per process.

    Raises:
        pydantic.ValidationError: If a required variable is missing or invalid
    """
    return Settings()
