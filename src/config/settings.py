# src/config/settings.py — v2
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for all deployment-specific settings: cache backend
and limits, pipeline bounds, logging.
"""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Cache ===
    cache_enabled: bool = True
    cache_backend: Literal["memory", "json", "sqlite", "redis"] = "json"
    cache_root: Path = Path("~/.seoanalyzer/cache")
    cache_redis_url: str = ""
    cache_key_prefix: str = "seo-analyzer-cache-v1"
    cache_ttl_days: float = 7
    cache_max_entries: int = 50
    cache_evict_batch: int = 5
    cache_cleanup_interval_seconds: int = 3600
    cache_max_bytes: int | None = None

    # === Pipeline ===
    pipeline_max_urls: int = 100
    pipeline_strict_transitions: bool = True

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator(
        "cache_max_entries",
        "cache_evict_batch",
        "cache_cleanup_interval_seconds",
        "pipeline_max_urls",
    )
    @classmethod
    def validate_positive(cls, v: int, info) -> int:  # noqa: N805
        if v < 1:
            raise ValueError(f"{info.field_name} must be >= 1")
        return v

    @field_validator("cache_ttl_days")
    @classmethod
    def validate_ttl(cls, v: float) -> float:  # noqa: N805
        if v <= 0:
            raise ValueError("cache_ttl_days must be > 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.cache_backend == "redis" and not self.cache_redis_url:
            errors.append("CACHE_BACKEND=redis requires CACHE_REDIS_URL")

        if self.cache_max_bytes is not None and self.cache_max_bytes < 1:
            errors.append("CACHE_MAX_BYTES must be positive when set")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def cache_ttl(self) -> timedelta:
        """Default entry lifetime."""
        return timedelta(days=self.cache_ttl_days)

    @property
    def cache_cleanup_interval(self) -> timedelta:
        """Minimum spacing between expired-entry sweeps."""
        return timedelta(seconds=self.cache_cleanup_interval_seconds)


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or per-run config).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
