"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before anything imports
``skycache.core.config``, which instantiates the global settings at import
time. Persistent cache tiers are disabled by default so importing the app
never touches the working directory; tests that need them build their own
settings pointing at ``tmp_path``.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("APP_ADMIN_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_ADMIN_API_KEYS", "test-admin-key-123,test-admin-key-456")
os.environ.setdefault("CACHE_DURABLE_ENABLED", "false")
os.environ.setdefault("CACHE_DEGRADED_ENABLED", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from pathlib import Path
from typing import Any, Callable

import pytest

from skycache.adapters.upstream.base import AbstractUpstreamClient, UpstreamPayload
from skycache.core.config import (
    AppSettings,
    CacheSettings,
    LogSettings,
    RateLimitSettings,
    Settings,
    UpstreamSettings,
)

ADMIN_KEY = "test-admin-key-123"


class FakeClock:
    """Deterministic clock; call it to read, ``advance`` to move forward."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


class StubUpstream(AbstractUpstreamClient):
    """Upstream client returning fixed bytes and recording requested locators."""

    def __init__(self, content: bytes = b"\x89PNG-fake-image", content_type: str = "image/png") -> None:
        self.content = content
        self.content_type = content_type
        self.calls: list[str] = []
        self.error: Exception | None = None
        self.closed = False

    async def fetch(self, source_locator: str) -> UpstreamPayload:
        self.calls.append(source_locator)
        if self.error is not None:
            raise self.error
        return UpstreamPayload(
            content=self.content,
            content_type=self.content_type,
            source_locator=source_locator,
        )

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def upstream() -> StubUpstream:
    return StubUpstream()


@pytest.fixture
def make_settings(tmp_path: Path) -> Callable[..., Settings]:
    """Build isolated settings; keyword groups override the defaults.

    Example:
        make_settings(rate_limit={"standard_max_requests": 3})
    """

    def _make(
        *,
        rate_limit: dict[str, Any] | None = None,
        cache: dict[str, Any] | None = None,
        app: dict[str, Any] | None = None,
    ) -> Settings:
        cache_values: dict[str, Any] = {
            "durable_enabled": True,
            "durable_path": str(tmp_path / "cache" / "artifacts.sqlite3"),
            "degraded_enabled": True,
            "degraded_dir": str(tmp_path / "cache" / "degraded"),
        }
        cache_values.update(cache or {})
        return Settings(
            app=AppSettings(**(app or {})),
            log=LogSettings(level="WARNING"),
            rate_limit=RateLimitSettings(**(rate_limit or {})),
            cache=CacheSettings(**cache_values),
            upstream=UpstreamSettings(),
        )

    return _make
