"""Pydantic schemas for administrative endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field


class TierStatus(BaseModel):
    available: bool
    entries: int | None = Field(default=None, description="None when the tier did not answer.")


class CacheStatsResponse(BaseModel):
    """Artifact cache counters since start (or the last full clear)."""

    max_age_seconds: float
    max_items_per_category: int
    hits: int
    hits_by_tier: dict[str, int]
    misses: int
    evictions: int
    expirations: int
    tier_failures: dict[str, int]
    tiers: dict[str, TierStatus]


class RateLimitStatsResponse(BaseModel):
    """Request governor bookkeeping (identities are never exposed)."""

    windows_active: int
    identities_tracked: int
    identities_banned: int
    allowed: int
    denied: int
    banned: int
    fail_open: int


class RemovedResponse(BaseModel):
    """Outcome of a purge or clear operation."""

    removed: int = Field(..., ge=0, description="Records removed across tiers.")


class ForgetIdentityResponse(BaseModel):
    identity: str
    forgotten: bool = Field(..., description="False when nothing was tracked for the identity.")
