from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool

from skycache.core.auth import verify_admin_api_key
from skycache.schemas.admin import (
    CacheStatsResponse,
    ForgetIdentityResponse,
    RateLimitStatsResponse,
    RemovedResponse,
)

router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    dependencies=[Depends(verify_admin_api_key)],
)


@router.get("/cache/stats", response_model=CacheStatsResponse)
async def cache_stats(request: Request) -> CacheStatsResponse:
    stats = await run_in_threadpool(request.app.state.artifact_cache.stats)
    return CacheStatsResponse.model_validate(stats)


@router.post("/cache/purge", response_model=RemovedResponse)
async def purge_cache(request: Request) -> RemovedResponse:
    """Delete expired entries from every tier now."""
    removed = await run_in_threadpool(request.app.state.artifact_cache.purge_expired)
    return RemovedResponse(removed=removed)


@router.get("/rate-limit/stats", response_model=RateLimitStatsResponse)
async def rate_limit_stats(request: Request) -> RateLimitStatsResponse:
    return RateLimitStatsResponse.model_validate(request.app.state.rate_governor.stats())


@router.delete("/rate-limit/identities/{identity}", response_model=ForgetIdentityResponse)
async def forget_identity(identity: str, request: Request) -> ForgetIdentityResponse:
    """Lift a ban and reset every counter held for ``identity``.

    Identities use the governor's namespaced form, e.g. ``ip:203.0.113.7``.
    """
    forgotten = request.app.state.rate_governor.forget(identity)
    return ForgetIdentityResponse(identity=identity, forgotten=forgotten)
