"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

All durations are expressed in seconds.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level (DEBUG, INFO, WARNING, ...)")
    format: str = Field("json", description="Log format: 'json' or 'plain'")
    output: str = Field("stdout", description="Log destination: 'stdout' or 'file'")
    file_path: str | None = Field(
        None,
        description="Log file path when output is 'file' (default: logs/skycache.log)",
    )
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Number of rotated log files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to accept and propagate request correlation ids",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Request governor configuration.

    Two endpoint classes are recognised. ``standard`` covers cheap cache
    reads, ``intensive`` covers requests that may reach the upstream
    provider.
    """

    enabled: bool = Field(True, description="Enable the request governor")
    standard_max_requests: int = Field(
        100,
        description="Maximum requests per window for standard endpoints",
        ge=1,
    )
    standard_window_seconds: float = Field(
        60.0,
        description="Window length for standard endpoints",
        gt=0,
    )
    intensive_max_requests: int = Field(
        900,
        description="Maximum requests per window for upstream-bound endpoints",
        ge=1,
    )
    intensive_window_seconds: float = Field(
        3600.0,
        description="Window length for upstream-bound endpoints",
        gt=0,
    )
    ban_threshold: int = Field(
        5,
        description="Violations (over-quota requests) before an identity is banned",
        ge=1,
    )
    ban_duration_seconds: float = Field(
        900.0,
        description="Ban length, refreshed by every violation while banned",
        gt=0,
    )
    violation_retention_seconds: float = Field(
        3600.0,
        description="Violation history older than this is forgotten",
        gt=0,
    )
    sweep_interval_seconds: float = Field(
        60.0,
        description="Minimum time between opportunistic bookkeeping sweeps",
        ge=0,
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers on governed responses",
    )
    trust_forwarded_for: bool = Field(
        True,
        description="Use X-Forwarded-For / X-Real-IP to identify clients behind a proxy",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def _retention_covers_ban(self) -> "RateLimitSettings":
        if self.violation_retention_seconds < self.ban_duration_seconds:
            raise ValueError(
                "violation_retention_seconds must be >= ban_duration_seconds"
            )
        return self


class CacheSettings(BaseSettings):
    """Artifact cache configuration (tiers, lifetime, capacity)."""

    max_age_seconds: float = Field(
        7 * 24 * 60 * 60,
        description="Lifetime of a cached artifact",
        gt=0,
    )
    max_items_per_category: int = Field(
        100,
        description="Live entries kept per category before oldest-first eviction",
        ge=1,
    )
    durable_enabled: bool = Field(True, description="Enable the on-disk SQLite tier")
    durable_path: str = Field(
        "data/cache/artifacts.sqlite3",
        description="SQLite file backing the durable tier",
    )
    durable_max_bytes: int | None = Field(
        512 * 1024 * 1024,
        description="Total payload bytes the durable tier accepts (None for unlimited)",
        ge=1,
    )
    degraded_enabled: bool = Field(True, description="Enable the last-resort JSON tier")
    degraded_dir: str = Field(
        "data/cache/degraded",
        description="Directory backing the degraded tier",
    )
    degraded_max_item_bytes: int = Field(
        4096,
        description="Maximum serialized size of one degraded record",
        ge=256,
    )
    degraded_max_items: int = Field(
        1000,
        description="Maximum number of records held by the degraded tier",
        ge=1,
    )
    tier_timeout_seconds: float = Field(
        2.0,
        description="Upper bound on a single durable/degraded tier operation",
        gt=0,
    )
    sweep_interval_seconds: float = Field(
        60.0,
        description="Minimum time between opportunistic expiry sweeps",
        ge=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        case_sensitive=False,
    )


class UpstreamSettings(BaseSettings):
    """Upstream data provider client configuration."""

    timeout_seconds: float = Field(15.0, description="Per-request timeout", gt=0)
    max_payload_bytes: int = Field(
        20 * 1024 * 1024,
        description="Maximum artifact size accepted from upstream",
        ge=1,
    )
    allowed_hosts: str | None = Field(
        None,
        description="Comma-separated host allow-list for source locators (empty allows any)",
    )
    user_agent: str = Field("skycache/0.1", description="User-Agent sent upstream")
    max_retries: int = Field(3, description="Attempts per fetch, including the first", ge=1)
    backoff_base_seconds: float = Field(1.0, description="First retry delay", ge=0)
    backoff_max_seconds: float = Field(30.0, description="Retry delay ceiling", ge=0)
    backoff_multiplier: float = Field(2.0, description="Exponential backoff factor", ge=1)

    model_config = SettingsConfigDict(
        env_prefix="UPSTREAM_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    admin_api_key_required: bool = Field(
        True,
        description="Whether admin endpoints require an X-API-Key",
    )
    admin_api_keys: str | None = Field(
        None,
        description="Comma-separated list of valid admin API keys",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=AppSettings)
    log: LogSettings = Field(default_factory=LogSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    upstream: UpstreamSettings = Field(default_factory=UpstreamSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
