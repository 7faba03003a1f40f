"""Pydantic schemas for artifact endpoints."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from skycache.adapters.cache_tiers.base import CacheEntry


class ArtifactResponse(BaseModel):
    """Cached artifact descriptor (payload served separately)."""

    id: str = Field(..., description="Artifact id, unique within its category.")
    category: str = Field(..., description="Grouping key (e.g., rover or instrument name).")
    source_locator: str = Field(..., description="Upstream address used to refetch the artifact.")
    cached_at: float = Field(..., description="UNIX time the artifact was cached.")
    expires_at: float = Field(..., description="UNIX time after which the entry is dead.")
    content_type: str | None = Field(default=None, description="MIME type reported upstream.")
    size_bytes: int = Field(..., ge=0, description="Payload size (0 on reduced records).")
    fidelity: Literal["full", "reduced"] = Field(
        ...,
        description="'reduced' records carry no payload and must be refetched for content.",
    )
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Caller-supplied fields stored alongside the artifact.",
    )

    @classmethod
    def from_entry(cls, entry: CacheEntry) -> "ArtifactResponse":
        return cls(
            id=entry.id,
            category=entry.category,
            source_locator=entry.source_locator,
            cached_at=entry.cached_at,
            expires_at=entry.expires_at,
            content_type=entry.content_type,
            size_bytes=entry.size_bytes,
            fidelity=entry.fidelity.value,
            metadata=entry.metadata,
        )


class ArtifactListResponse(BaseModel):
    """Live artifacts of one category, most recently cached first."""

    category: str
    count: int = Field(..., ge=0)
    items: list[ArtifactResponse] = Field(default_factory=list)


class FetchArtifactRequest(BaseModel):
    """Request to fetch an artifact from upstream and cache it."""

    source_locator: str = Field(
        ...,
        min_length=1,
        max_length=2048,
        description="Absolute http(s) URL of the artifact.",
    )
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Auxiliary fields stored with the artifact (not interpreted).",
    )
    refresh: bool = Field(
        default=False,
        description="Fetch even when a live full-fidelity copy is cached.",
    )


class FetchArtifactResponse(ArtifactResponse):
    """Descriptor returned after a fetch, with how it was served."""

    cached: bool = Field(..., description="True when served from cache without an upstream call.")
    stored: bool = Field(
        ...,
        description="False when no cache tier accepted the artifact (served but not cached).",
    )
