"""Rate governor interfaces.

The API should depend on this abstraction (not the concrete implementation)
so we can swap storage backends later (e.g., Redis) with minimal changes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


class EndpointClass(str, Enum):
    """Quota tier selected by a route."""

    STANDARD = "standard"
    INTENSIVE = "intensive"


class Verdict(str, Enum):
    """Outcome of an admission check."""

    ALLOW = "allow"
    DENY = "deny"
    BAN = "ban"


@dataclass(frozen=True)
class Quota:
    """Request budget for one endpoint class.

    Attributes:
        max_requests: Requests allowed per window.
        window_seconds: Window length, starting at the first request.
    """

    max_requests: int
    window_seconds: float

    def __post_init__(self) -> None:
        if self.max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")


@dataclass(frozen=True)
class AdmissionResult:
    """Result of an admission check.

    Attributes:
        verdict: Allow, deny (over quota) or ban.
        limit: Max requests per window for the endpoint class.
        remaining: Remaining requests in the current window (0 when blocked).
        reset_at: UNIX epoch seconds when the current window (or ban) ends.
        retry_after_seconds: Suggested wait time in seconds when blocked.
    """

    verdict: Verdict
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None = None

    @property
    def allowed(self) -> bool:
        return self.verdict is Verdict.ALLOW


class AbstractRateGovernor(ABC):
    """Interface for request governors."""

    @abstractmethod
    def admit(
        self,
        identity: str,
        endpoint_class: EndpointClass,
        *,
        now: float | None = None,
    ) -> AdmissionResult:
        """Decide whether a request may proceed.

        Implementations must never raise: internal failures degrade to an
        allow verdict.

        Args:
            identity: Client identity (API key hash, IP address, ...).
            endpoint_class: Quota tier of the requested endpoint.
            now: Optional UNIX time override (defaults to the governor clock).

        Returns:
            AdmissionResult describing the decision and quota figures.
        """
        raise NotImplementedError

    @abstractmethod
    def forget(self, identity: str) -> bool:
        """Drop all counters, violations and bans held for ``identity``."""
        raise NotImplementedError

    @abstractmethod
    def stats(self) -> dict[str, int]:
        """Return lightweight bookkeeping metrics."""
        raise NotImplementedError
