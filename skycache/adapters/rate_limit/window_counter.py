"""Per-key request window.

A window opens on the first request for a key and lasts ``window_seconds``.
The first request at or after ``window_end`` replaces the window instead of
incrementing it.

Not thread-safe on its own; the governor serializes access.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from skycache.core.errors import ClockAnomalyError


@dataclass
class WindowCounter:
    """Request count for one (identity, endpoint class) pair."""

    count: int
    window_start: float
    window_end: float

    @classmethod
    def start(cls, now: float, window_seconds: float) -> "WindowCounter":
        """Start a fresh window holding the current request."""
        return cls(count=1, window_start=now, window_end=now + window_seconds)

    def is_expired(self, now: float) -> bool:
        return now >= self.window_end

    def hit(self, now: float) -> int:
        """Count one request inside the active window.

        Args:
            now: UNIX time of the request.

        Returns:
            The updated request count.

        Raises:
            ClockAnomalyError: If ``now`` precedes the window start.
        """
        if now < self.window_start:
            raise ClockAnomalyError(
                code="clock_went_backwards",
                message="Request timestamp precedes the active window",
                details={"context": {"now": now, "window_start": self.window_start}},
            )
        self.count += 1
        return self.count

    def seconds_until_reset(self, now: float) -> int:
        """Whole seconds until the window closes (at least 1 while open)."""
        return max(1, int(math.ceil(self.window_end - now)))
