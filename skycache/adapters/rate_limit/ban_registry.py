"""Violation history and sliding bans per client identity.

Notes:
- A ban is active while ``violation_count >= threshold`` and the last
  violation happened less than ``ban_duration_seconds`` ago.
- Every violation recorded during a ban refreshes ``last_violation_at``,
  so a client that keeps hammering stays banned.
- History older than ``retention_seconds`` is forgotten.
- Not thread-safe on its own; the governor serializes access.
"""

from __future__ import annotations

from dataclasses import dataclass

from skycache.core.errors import ClockAnomalyError


@dataclass
class ViolationRecord:
    violation_count: int
    last_violation_at: float


class BanRegistry:
    """Tracks repeated quota violations and derives ban status."""

    def __init__(
        self,
        *,
        threshold: int,
        ban_duration_seconds: float,
        retention_seconds: float = 3600.0,
    ) -> None:
        """Initialize the registry.

        Args:
            threshold: Violations needed before a ban becomes active.
            ban_duration_seconds: Ban length measured from the last violation.
            retention_seconds: Age after which a record is purged.

        Raises:
            ValueError: If the arguments are invalid.
        """
        if threshold < 1:
            raise ValueError("threshold must be >= 1")
        if ban_duration_seconds <= 0:
            raise ValueError("ban_duration_seconds must be > 0")
        if retention_seconds < ban_duration_seconds:
            raise ValueError("retention_seconds must be >= ban_duration_seconds")

        self._threshold = threshold
        self._ban_duration = ban_duration_seconds
        self._retention = retention_seconds
        self._records: dict[str, ViolationRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    @property
    def ban_duration_seconds(self) -> float:
        return self._ban_duration

    def _elapsed(self, record: ViolationRecord, now: float) -> float:
        elapsed = now - record.last_violation_at
        if elapsed < 0:
            raise ClockAnomalyError(
                code="clock_went_backwards",
                message="Current time precedes the last recorded violation",
                details={"context": {"now": now, "last_violation_at": record.last_violation_at}},
            )
        return elapsed

    def record_violation(self, identity: str, now: float) -> ViolationRecord:
        """Register one violation for ``identity``.

        A violation arriving after the retention horizon restarts the count.
        """
        record = self._records.get(identity)
        if record is None or self._elapsed(record, now) >= self._retention:
            record = ViolationRecord(violation_count=1, last_violation_at=now)
            self._records[identity] = record
            return record

        record.violation_count += 1
        record.last_violation_at = now
        return record

    def ban_remaining(self, identity: str, now: float) -> float:
        """Seconds left on the ban for ``identity`` (0.0 when not banned)."""
        record = self._records.get(identity)
        if record is None or record.violation_count < self._threshold:
            return 0.0
        remaining = self._ban_duration - self._elapsed(record, now)
        return remaining if remaining > 0 else 0.0

    def is_banned(self, identity: str, now: float) -> bool:
        return self.ban_remaining(identity, now) > 0

    def banned_count(self, now: float) -> int:
        return sum(
            1
            for record in self._records.values()
            if record.violation_count >= self._threshold
            and 0 <= now - record.last_violation_at < self._ban_duration
        )

    def forget(self, identity: str) -> bool:
        return self._records.pop(identity, None) is not None

    def forget_if_after(self, identity: str, now: float) -> bool:
        """Drop the record for ``identity`` if it is dated after ``now``."""
        record = self._records.get(identity)
        if record is not None and record.last_violation_at > now:
            del self._records[identity]
            return True
        return False

    def purge(self, now: float) -> int:
        """Drop records whose last violation is past the retention horizon."""
        stale = [
            identity
            for identity, record in self._records.items()
            if now - record.last_violation_at >= self._retention
        ]
        for identity in stale:
            del self._records[identity]
        return len(stale)
