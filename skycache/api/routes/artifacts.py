from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, Response

from skycache.adapters.rate_limit.base import EndpointClass
from skycache.core.auth import verify_admin_api_key
from skycache.core.rate_limit import rate_limited
from skycache.schemas.admin import RemovedResponse
from skycache.schemas.artifacts import (
    ArtifactListResponse,
    ArtifactResponse,
    FetchArtifactRequest,
    FetchArtifactResponse,
)
from skycache.services.artifact_service import ArtifactService

router = APIRouter(prefix="/artifacts", tags=["Artifacts"])

_standard = Depends(rate_limited(EndpointClass.STANDARD))
_intensive = Depends(rate_limited(EndpointClass.INTENSIVE))


def get_artifact_service(request: Request) -> ArtifactService:
    return request.app.state.artifact_service


@router.get("/{category}", response_model=ArtifactListResponse, dependencies=[_standard])
async def list_artifacts(
    category: str,
    limit: int | None = Query(default=None, ge=1, le=1000, description="Maximum items returned."),
    service: ArtifactService = Depends(get_artifact_service),
) -> ArtifactListResponse:
    """List live cached artifacts of a category, most recently cached first."""
    entries = await service.list_artifacts(category, limit)
    return ArtifactListResponse(
        category=category,
        count=len(entries),
        items=[ArtifactResponse.from_entry(entry) for entry in entries],
    )


@router.get(
    "/{category}/{artifact_id}",
    response_model=ArtifactResponse,
    dependencies=[_standard],
)
async def describe_artifact(
    category: str,
    artifact_id: str,
    service: ArtifactService = Depends(get_artifact_service),
) -> ArtifactResponse:
    """Return the cached descriptor of an artifact (404 when not cached)."""
    entry = await service.describe(category, artifact_id)
    return ArtifactResponse.from_entry(entry)


@router.get(
    "/{category}/{artifact_id}/content",
    dependencies=[_intensive],
    responses={200: {"content": {"application/octet-stream": {}}}},
)
async def get_artifact_content(
    category: str,
    artifact_id: str,
    source: str | None = Query(
        default=None,
        max_length=2048,
        description="Upstream URL to fetch from when the artifact is not cached.",
    ),
    service: ArtifactService = Depends(get_artifact_service),
) -> Response:
    """Serve the artifact bytes, fetching and caching them on a miss.

    The ``X-Cache`` header reports ``HIT`` or ``MISS``.
    """
    outcome = await service.fetch(category, artifact_id, source_locator=source)
    return Response(
        content=outcome.entry.payload or b"",
        media_type=outcome.entry.content_type or "application/octet-stream",
        headers={"X-Cache": "HIT" if outcome.cached else "MISS"},
    )


@router.post(
    "/{category}/{artifact_id}",
    response_model=FetchArtifactResponse,
    dependencies=[_intensive],
)
async def fetch_artifact(
    category: str,
    artifact_id: str,
    body: FetchArtifactRequest,
    service: ArtifactService = Depends(get_artifact_service),
) -> FetchArtifactResponse:
    """Fetch an artifact from upstream into the cache.

    A live cached copy is reused unless ``refresh`` is set.
    """
    outcome = await service.fetch(
        category,
        artifact_id,
        source_locator=body.source_locator,
        metadata=body.metadata,
        refresh=body.refresh,
    )
    return FetchArtifactResponse(
        **ArtifactResponse.from_entry(outcome.entry).model_dump(),
        cached=outcome.cached,
        stored=outcome.stored,
    )


@router.delete(
    "/{category}",
    response_model=RemovedResponse,
    dependencies=[Depends(verify_admin_api_key)],
)
async def clear_category(
    category: str,
    service: ArtifactService = Depends(get_artifact_service),
) -> RemovedResponse:
    """Delete every cached artifact of a category (admin)."""
    return RemovedResponse(removed=await service.clear_category(category))
