"""Read-through artifact service.

Sits between the HTTP routes and the artifact cache:
- Validates category and artifact id path parameters
- Serves cached artifacts, fetching from upstream on a miss
- Refetches reduced records (seen before, payload lost) from their stored locator
- Caches fetched artifacts; a cache that cannot store them does not fail the request

Cache calls block on tier I/O, so they run in the threadpool.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Mapping

from fastapi.concurrency import run_in_threadpool

from skycache.adapters.cache_tiers.base import CacheEntry, Fidelity
from skycache.adapters.upstream.base import AbstractUpstreamClient
from skycache.core.errors import ArtifactNotFoundAppError, ValidationAppError
from skycache.services.artifact_cache import ArtifactCache

logger = logging.getLogger(__name__)

_CATEGORY_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,63}$")
_MAX_ID_CHARS = 256


def validate_key(category: str, artifact_id: str | None = None) -> None:
    """Validate path parameters addressing an artifact.

    Raises:
        ValidationAppError: If the category or id is malformed.
    """
    if not _CATEGORY_PATTERN.match(category):
        raise ValidationAppError(
            code="invalid_category",
            message="Category must be 1-64 characters: letters, digits, '_', '.', '-'",
            details={"category": category[:80]},
        )
    if artifact_id is None:
        return
    if not artifact_id.strip() or len(artifact_id) > _MAX_ID_CHARS or not artifact_id.isprintable():
        raise ValidationAppError(
            code="invalid_artifact_id",
            message=f"Artifact id must be 1-{_MAX_ID_CHARS} printable characters",
            details={"category": category},
        )


@dataclass(frozen=True)
class FetchOutcome:
    """An artifact with payload, and how it was obtained.

    Attributes:
        entry: Full-fidelity entry (payload present).
        cached: True when served from cache without an upstream call.
        stored: False when no cache tier accepted a fetched artifact.
    """

    entry: CacheEntry
    cached: bool
    stored: bool


class ArtifactService:
    """Service fronting the artifact cache with upstream read-through.

    Attributes:
        cache: Tiered artifact cache.
        upstream: Client for the upstream data provider.
    """

    def __init__(self, cache: ArtifactCache, upstream: AbstractUpstreamClient) -> None:
        self.cache = cache
        self.upstream = upstream

    async def list_artifacts(self, category: str, limit: int | None = None) -> list[CacheEntry]:
        validate_key(category)
        return await run_in_threadpool(self.cache.list_by_category, category, limit)

    async def describe(self, category: str, artifact_id: str) -> CacheEntry:
        """Return the cached descriptor of an artifact.

        Raises:
            ValidationAppError: If the key is malformed.
            ArtifactNotFoundAppError: If no tier holds a live copy.
        """
        validate_key(category, artifact_id)
        entry = await run_in_threadpool(self.cache.get, category, artifact_id)
        if entry is None:
            raise ArtifactNotFoundAppError(
                code="artifact_not_found",
                message="Artifact is not cached",
                details={"category": category, "artifact_id": artifact_id},
            )
        return entry

    async def fetch(
        self,
        category: str,
        artifact_id: str,
        *,
        source_locator: str | None = None,
        metadata: Mapping[str, Any] | None = None,
        refresh: bool = False,
    ) -> FetchOutcome:
        """Return the artifact with its payload, fetching upstream if needed.

        A live full-fidelity copy is served from cache unless ``refresh``.
        Otherwise the artifact is fetched from ``source_locator`` (or the
        locator stored on a reduced record) and cached.

        Args:
            category: Artifact category.
            artifact_id: Artifact id.
            source_locator: Upstream address to fetch from on a miss.
            metadata: Fields stored with a freshly fetched artifact.
            refresh: Bypass the cached copy.

        Returns:
            FetchOutcome with the full-fidelity entry.

        Raises:
            ValidationAppError: If the key or locator is malformed.
            ArtifactNotFoundAppError: On a miss without any known locator.
            UpstreamAppError: If the upstream provider fails.
        """
        validate_key(category, artifact_id)

        entry = await run_in_threadpool(self.cache.get, category, artifact_id)
        if entry is not None and entry.fidelity is Fidelity.FULL and not refresh:
            return FetchOutcome(entry=entry, cached=True, stored=True)

        locator = source_locator or (entry.source_locator if entry is not None else None)
        if not locator:
            raise ArtifactNotFoundAppError(
                code="artifact_not_found",
                message="Artifact is not cached and no source locator was provided",
                details={
                    "category": category,
                    "artifact_id": artifact_id,
                    "hint": "Pass the upstream URL as 'source'",
                },
            )

        fetched = await self.upstream.fetch(locator)

        merged: dict[str, Any] = dict(entry.metadata) if entry is not None else {}
        merged.update(metadata or {})

        stored = await run_in_threadpool(
            lambda: self.cache.put(
                category,
                artifact_id,
                fetched.content,
                source_locator=locator,
                content_type=fetched.content_type,
                metadata=merged,
            )
        )
        if stored is not None:
            return FetchOutcome(entry=stored, cached=False, stored=True)

        logger.warning(
            "artifact.not_cached",
            extra={"category": category, "artifact_id": artifact_id},
        )
        now = self.cache.now()
        transient = CacheEntry(
            id=artifact_id,
            category=category,
            source_locator=locator,
            cached_at=now,
            expires_at=now,
            payload=fetched.content,
            content_type=fetched.content_type,
            metadata=merged,
        )
        return FetchOutcome(entry=transient, cached=False, stored=False)

    async def clear_category(self, category: str) -> int:
        validate_key(category)
        return await run_in_threadpool(self.cache.clear_category, category)
