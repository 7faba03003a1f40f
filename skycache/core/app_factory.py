"""Application factory for the FastAPI app.

Builds the long-lived components (rate governor, tiered artifact cache,
upstream client) for one app instance and stores them on ``app.state``;
the lifespan closes them on shutdown. Nothing is kept in module globals,
so tests can build isolated apps with their own settings, clock and
upstream stub.
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from fastapi import FastAPI

from skycache.adapters.cache_tiers.base import TierStore
from skycache.adapters.cache_tiers.degraded import DegradedTier
from skycache.adapters.cache_tiers.durable import DurableTier
from skycache.adapters.cache_tiers.volatile import VolatileTier
from skycache.adapters.upstream.base import AbstractUpstreamClient
from skycache.adapters.upstream.factory import create_upstream_client
from skycache.api.routes import admin_router, artifacts_router, health_router
from skycache.core.config import CacheSettings, Settings, settings as default_settings
from skycache.core.exception_handlers import setup_exception_handlers
from skycache.core.logging import configure_logging
from skycache.core.middleware import rate_limit_headers_middleware, request_id_middleware
from skycache.core.openapi import apply_openapi_customizations
from skycache.core.rate_limit import create_rate_governor
from skycache.services.artifact_cache import ArtifactCache
from skycache.services.artifact_service import ArtifactService


def create_artifact_cache(
    cache_settings: CacheSettings,
    clock: Callable[[], float] | None = None,
) -> ArtifactCache:
    """Build the tier chain described by ``settings.cache``.

    Disabled persistent tiers are left out; tiers that fail to initialize
    stay in the chain and report themselves unavailable.
    """
    durable: TierStore | None = None
    if cache_settings.durable_enabled:
        durable = DurableTier(cache_settings.durable_path, max_bytes=cache_settings.durable_max_bytes)

    degraded: TierStore | None = None
    if cache_settings.degraded_enabled:
        degraded = DegradedTier(
            cache_settings.degraded_dir,
            max_item_bytes=cache_settings.degraded_max_item_bytes,
            max_items=cache_settings.degraded_max_items,
        )

    return ArtifactCache(
        volatile=VolatileTier(),
        durable=durable,
        degraded=degraded,
        max_age_seconds=cache_settings.max_age_seconds,
        max_items_per_category=cache_settings.max_items_per_category,
        tier_timeout_seconds=cache_settings.tier_timeout_seconds,
        sweep_interval_seconds=cache_settings.sweep_interval_seconds,
        clock=clock or time.time,
    )


def create_app(
    app_settings: Settings | None = None,
    *,
    upstream: AbstractUpstreamClient | None = None,
    clock: Callable[[], float] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        app_settings: Settings to use (defaults to the global settings).
        upstream: Upstream client override (tests pass a stub).
        clock: Time source shared by the governor and the cache.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    cfg = app_settings or default_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            yield
        finally:
            await app.state.upstream.aclose()
            app.state.artifact_cache.close()

    app = FastAPI(
        title="skycache",
        description=(
            "Caching and rate limiting layer in front of a space-data provider. "
            "Serves large artifacts (images and similar payloads) from a tiered "
            "cache (memory, SQLite, reduced JSON records), fetches misses from "
            "upstream, and governs clients per endpoint class with sliding bans."
        ),
        version="0.1.0",
        debug=cfg.app.debug,
        lifespan=lifespan,
    )

    artifact_cache = create_artifact_cache(cfg.cache, clock)
    upstream_client = upstream or create_upstream_client(cfg.upstream)

    app.state.settings = cfg
    app.state.rate_governor = create_rate_governor(cfg.rate_limit, clock)
    app.state.artifact_cache = artifact_cache
    app.state.upstream = upstream_client
    app.state.artifact_service = ArtifactService(cache=artifact_cache, upstream=upstream_client)

    # Middleware (last registered runs first)
    app.middleware("http")(rate_limit_headers_middleware)
    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(artifacts_router, prefix="/v1")
    app.include_router(admin_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
