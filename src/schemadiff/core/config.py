"""Configuration management for schemadiff.

This module uses Pydantic Settings to load and validate configuration from
environment variables and .env files. Configuration is loaded once and is
immutable during runtime.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine configuration settings.

    Settings are loaded from environment variables and .env files.
    All configuration values are validated at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SCHEMADIFF_",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Settings
    app_name: str = "schemadiff"
    app_version: str = "0.1.0"
    environment: Literal["development", "production", "testing"] = "development"

    # Logging Settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["json", "console"] = "json"

    # Introspection Settings
    introspection_schema: str = "public"
    include_security: bool = Field(
        default=True,
        description="Track row-level-security policies and column grants",
    )
    inline_create_columns: bool = Field(
        default=True,
        description="Emit full column definitions in CREATE TABLE instead of an empty shell",
    )

    # Sandbox Settings
    sandbox_backend: Literal["memory", "hybrid", "container"] = "memory"
    sandbox_inactivity_minutes: float = 30
    sandbox_reaper_interval_seconds: float = 300

    # Container Sandbox Settings
    container_image: str = "postgres:16-alpine"
    container_user: str = "preview"
    container_password: str = "preview"
    container_database: str = "preview"
    container_base_port: int = 55432
    container_port_range: int = 1000
    container_ready_timeout_seconds: float = 30
    container_probe_interval_seconds: float = 0.5
    container_apply_mode: Literal["statement", "atomic"] = "statement"

    # Hybrid Sandbox Settings
    hybrid_database_url: str | None = Field(
        default=None,
        description="Live database whose schema seeds each hybrid sandbox; read only",
    )

    @field_validator(
        "sandbox_inactivity_minutes",
        "sandbox_reaper_interval_seconds",
        "container_ready_timeout_seconds",
        "container_probe_interval_seconds",
    )
    @classmethod
    def validate_positive_duration(cls, v: float) -> float:
        """Reject zero or negative durations."""
        if v <= 0:
            raise ValueError("Duration must be positive")
        return v

    @field_validator("container_base_port")
    @classmethod
    def validate_base_port(cls, v: int) -> int:
        """Keep the container port range inside the unprivileged port space."""
        if not 1024 <= v <= 65535:
            raise ValueError("Base port must be between 1024 and 65535")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_testing(self) -> bool:
        """Check if running in testing environment."""
        return self.environment == "testing"

    @property
    def sandbox_inactivity_seconds(self) -> float:
        """Inactivity threshold after which the reaper discards a sandbox."""
        return self.sandbox_inactivity_minutes * 60


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings: Cached settings instance.
    """
    return Settings()
