"""Rate limiting dependency for FastAPI routes.

Routes declare their endpoint class with ``Depends(rate_limited(...))``.
The dependency resolves the client identity, asks the governor stored on
``app.state`` for a verdict, and leaves the verdict on ``request.state`` so
the quota-header middleware can decorate the response. Blocked requests
raise ``QuotaExceededAppError`` or ``BannedAppError`` (both HTTP 429).

Identity resolution order:
1. ``X-API-Key`` header (hashed, never stored in clear)
2. First ``X-Forwarded-For`` hop, then ``X-Real-IP`` (when proxies are trusted)
3. Socket peer address
4. ``"anonymous"``
"""

from __future__ import annotations

from typing import Awaitable, Callable

from fastapi import Request

from skycache.adapters.rate_limit.base import (
    AbstractRateGovernor,
    AdmissionResult,
    EndpointClass,
    Quota,
    Verdict,
)
from skycache.adapters.rate_limit.governor import InMemoryRateGovernor
from skycache.core.config import RateLimitSettings
from skycache.core.errors import BannedAppError, ErrorDetails, QuotaExceededAppError
from skycache.core.logging import short_hash

ANONYMOUS = "anonymous"


def create_rate_governor(
    rate_settings: RateLimitSettings,
    clock: Callable[[], float] | None = None,
) -> AbstractRateGovernor:
    """Build the governor described by ``settings.rate_limit``."""
    quotas = {
        EndpointClass.STANDARD: Quota(
            max_requests=rate_settings.standard_max_requests,
            window_seconds=rate_settings.standard_window_seconds,
        ),
        EndpointClass.INTENSIVE: Quota(
            max_requests=rate_settings.intensive_max_requests,
            window_seconds=rate_settings.intensive_window_seconds,
        ),
    }
    kwargs = {"clock": clock} if clock is not None else {}
    return InMemoryRateGovernor(
        quotas=quotas,
        ban_threshold=rate_settings.ban_threshold,
        ban_duration_seconds=rate_settings.ban_duration_seconds,
        violation_retention_seconds=rate_settings.violation_retention_seconds,
        sweep_interval_seconds=rate_settings.sweep_interval_seconds,
        **kwargs,
    )


def client_identity(request: Request, *, trust_forwarded_for: bool = True) -> str:
    """Resolve the identity a request is governed under.

    Args:
        request: Incoming request.
        trust_forwarded_for: Honour proxy headers (disable when the service
            is exposed directly, since clients can forge them).

    Returns:
        Namespaced identity, e.g. ``"key:3f2a..."`` or ``"ip:203.0.113.7"``.
    """
    api_key = request.headers.get("X-API-Key")
    if api_key:
        return f"key:{short_hash(api_key)}"

    if trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return f"ip:{first_hop}"
        real_ip = request.headers.get("X-Real-IP", "").strip()
        if real_ip:
            return f"ip:{real_ip}"

    if request.client and request.client.host:
        return f"ip:{request.client.host}"
    return ANONYMOUS


def quota_headers(result: AdmissionResult) -> dict[str, str]:
    """Headers describing the caller's quota after ``result``."""
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset_at),
    }
    if result.retry_after_seconds is not None:
        headers["Retry-After"] = str(result.retry_after_seconds)
    return headers


def rate_limited(endpoint_class: EndpointClass) -> Callable[[Request], Awaitable[None]]:
    """Create a dependency that governs a route under ``endpoint_class``.

    Usage:
        @router.get("/things", dependencies=[Depends(rate_limited(EndpointClass.STANDARD))])

    Args:
        endpoint_class: Quota tier of the route.

    Returns:
        Async FastAPI dependency.
    """

    async def enforce_rate_limit(request: Request) -> None:
        rate_settings: RateLimitSettings = request.app.state.settings.rate_limit
        if not rate_settings.enabled:
            return

        governor: AbstractRateGovernor = request.app.state.rate_governor
        identity = client_identity(
            request, trust_forwarded_for=rate_settings.trust_forwarded_for
        )
        result = governor.admit(identity, endpoint_class)
        request.state.rate_limit = result

        if result.allowed:
            return

        details: ErrorDetails = {
            "endpoint_class": endpoint_class.value,
            "limit": result.limit,
            "remaining": result.remaining,
            "reset_at": result.reset_at,
            "retry_after": result.retry_after_seconds or 1,
        }
        if result.verdict is Verdict.BAN:
            raise BannedAppError(
                code="client_banned",
                message="Too many rate limit violations. Client temporarily banned.",
                details=details,
            )
        raise QuotaExceededAppError(
            code="rate_limit_exceeded",
            message="Rate limit exceeded. Try again later.",
            details=details,
        )

    return enforce_rate_limit
