"""Error types shared by the cache, the governor, the upstream client and the API.

Client-facing errors subclass ``AppError`` and are rendered by the exception
handlers. Two errors never reach clients: ``TierUnavailableError`` is captured
by the artifact cache and ``ClockAnomalyError`` is absorbed by the rate
governor (fail-open) or the cache (fail-safe).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured context attached to an error response.

    Every field is optional; quota errors fill ``limit``, ``remaining``,
    ``reset_at`` and ``retry_after``.
    """

    code: str
    message: str
    hint: str
    http_status: int
    retry_after: int
    limit: int
    remaining: int
    reset_at: int
    endpoint_class: str
    category: str
    artifact_id: str
    source_locator: str
    tier: str
    max_bytes: int
    actual_bytes: int
    attempts: int
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error carrying a stable code for clients and logs.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when a path parameter, body field or locator is malformed."""


class AuthenticationAppError(AppError):
    """Raised when an admin request lacks a valid API key."""


class ArtifactNotFoundAppError(AppError):
    """Raised when an artifact is neither cached nor fetchable."""


class UpstreamAppError(AppError):
    """Raised when the upstream data provider cannot deliver an artifact."""


class RateLimitAppError(AppError):
    """Base for client-facing admission failures; details carry quota figures."""


class QuotaExceededAppError(RateLimitAppError):
    """Raised when a client exceeds its quota for the current window."""


class BannedAppError(RateLimitAppError):
    """Raised while a client is serving a temporary ban."""


class TierUnavailableError(AppError):
    """Raised by a cache tier when it cannot serve a read or write."""


class ClockAnomalyError(AppError):
    """Raised when a time computation yields a negative or nonsensical duration."""
