from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request) -> dict:
    """Liveness check.

    Always answers ``ok`` while the process serves requests; a failed
    persistent cache tier degrades caching but not availability, so tier
    status is reported alongside.
    """
    cache = request.app.state.artifact_cache
    return {
        "status": "ok",
        "tiers": {tier.name.value: tier.available for tier in cache.tiers},
    }
