"""
Configuration settings for the edge gateway.

Uses pydantic-settings for environment variable management with validation.
Every section can be overridden through its own env prefix or a local .env file.
"""

from functools import lru_cache
from typing import Literal
from uuid import uuid4

from pydantic import Field, SecretStr, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from edge_gateway.exceptions import ConfigError


class DatabaseSettings(BaseSettings):
    """Local reading store configuration."""

    model_config = SettingsConfigDict(env_prefix="DB_")

    url: str = "sqlite+aiosqlite:///./sensor_data.db"
    echo: bool = False


class SyncSettings(BaseSettings):
    """Cloud synchronization configuration."""

    model_config = SettingsConfigDict(env_prefix="SYNC_")

    enabled: bool = True
    cloud_url: str = "http://localhost:8080/api/v1/gateway/ingest"
    api_key: SecretStr = SecretStr("change-me")
    batch_size: int = 50
    interval_seconds: float = 300.0
    max_interval_seconds: float = 3600.0
    timeout_seconds: float = 30.0
    connect_attempts: int = 3
    connect_backoff_seconds: float = 0.5

    @field_validator(
        "batch_size",
        "interval_seconds",
        "max_interval_seconds",
        "timeout_seconds",
        "connect_attempts",
    )
    @classmethod
    def must_be_positive(cls, value):
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @model_validator(mode="after")
    def ceiling_above_interval(self) -> "SyncSettings":
        if self.max_interval_seconds < self.interval_seconds:
            raise ValueError("max_interval_seconds must be >= interval_seconds")
        return self


class ProcessingSettings(BaseSettings):
    """Edge processing tunables (trend, anomaly and quality policy)."""

    model_config = SettingsConfigDict(env_prefix="PROCESSING_")

    history_window: int = 10
    trend_epsilon: float = 0.1
    max_temperature_delta: float = 10.0
    max_humidity_delta: float = 30.0
    detect_stuck_sensor: bool = True
    stuck_window: int = 5
    low_battery_threshold: float = 20.0
    low_signal_threshold: float = -85.0

    @field_validator("history_window", "stuck_window")
    @classmethod
    def window_at_least_two(cls, value: int) -> int:
        if value < 2:
            raise ValueError("window must hold at least two samples")
        return value

    @field_validator("trend_epsilon", "max_temperature_delta", "max_humidity_delta")
    @classmethod
    def non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("must not be negative")
        return value


class RetentionSettings(BaseSettings):
    """Retention of already-synced readings."""

    model_config = SettingsConfigDict(env_prefix="RETENTION_")

    days: int = 7
    cleanup_interval_seconds: float = 3600.0

    @field_validator("days", "cleanup_interval_seconds")
    @classmethod
    def must_be_positive(cls, value):
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value


class Settings(BaseSettings):
    """Main gateway settings aggregating all configuration sections."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Environmental Edge Gateway"
    app_version: str = "1.0.0"
    gateway_id: str = Field(default_factory=lambda: f"gateway-{uuid4()}")
    api_prefix: str = "/api/v1"

    # Server
    host: str = "0.0.0.0"
    port: int = 3000

    # Logging
    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "json"

    # Sub-configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    processing: ProcessingSettings = Field(default_factory=ProcessingSettings)
    retention: RetentionSettings = Field(default_factory=RetentionSettings)


def load_settings(**overrides) -> Settings:
    """
    Build a Settings instance, converting validation failures to ConfigError.

    Args:
        overrides: Explicit values taking precedence over the environment

    Raises:
        ConfigError: If any tunable is invalid
    """
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        raise ConfigError(f"Invalid gateway configuration: {exc}") from exc


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Clear cache with get_settings.cache_clear() if needed.
    """
    return load_settings()
