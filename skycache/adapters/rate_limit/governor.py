"""In-memory request governor.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: one lock guards counters and ban history, so the
  read-check-increment sequence is atomic.
- Self-cleaning: expired windows and stale violation history are swept on
  the admission path, no background timer involved.
- Fail-open: internal errors are logged and converted to an allow verdict.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from typing import Callable, Mapping

from skycache.adapters.rate_limit.ban_registry import BanRegistry
from skycache.adapters.rate_limit.base import (
    AbstractRateGovernor,
    AdmissionResult,
    EndpointClass,
    Quota,
    Verdict,
)
from skycache.adapters.rate_limit.window_counter import WindowCounter
from skycache.core.errors import ClockAnomalyError
from skycache.core.logging import short_hash

logger = logging.getLogger(__name__)


class InMemoryRateGovernor(AbstractRateGovernor):
    """Governor combining per-class request windows with sliding bans.

    Important:
        State lives in this instance only. A deployment behind a load
        balancer needs a shared store to enforce global limits.
    """

    def __init__(
        self,
        *,
        quotas: Mapping[EndpointClass, Quota],
        ban_threshold: int,
        ban_duration_seconds: float,
        violation_retention_seconds: float = 3600.0,
        sweep_interval_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the governor.

        Args:
            quotas: Request budget per endpoint class (every class required).
            ban_threshold: Violations before an identity is banned.
            ban_duration_seconds: Sliding ban length.
            violation_retention_seconds: Age at which violation history is purged.
            sweep_interval_seconds: Minimum time between bookkeeping sweeps.
            clock: Time source function returning UNIX time in seconds.

        Raises:
            ValueError: If a quota is missing or arguments are invalid.
        """
        missing = [cls.value for cls in EndpointClass if cls not in quotas]
        if missing:
            raise ValueError(f"missing quota for endpoint classes: {', '.join(missing)}")
        if sweep_interval_seconds < 0:
            raise ValueError("sweep_interval_seconds must be >= 0")

        self._quotas = dict(quotas)
        self._bans = BanRegistry(
            threshold=ban_threshold,
            ban_duration_seconds=ban_duration_seconds,
            retention_seconds=violation_retention_seconds,
        )
        self._sweep_interval = sweep_interval_seconds
        self._clock = clock
        self._lock = threading.RLock()
        self._counters: dict[tuple[str, EndpointClass], WindowCounter] = {}
        self._last_sweep: float | None = None
        self._decisions = {verdict: 0 for verdict in Verdict}
        self._fail_open = 0

    def quota_for(self, endpoint_class: EndpointClass) -> Quota:
        return self._quotas[endpoint_class]

    def admit(
        self,
        identity: str,
        endpoint_class: EndpointClass,
        *,
        now: float | None = None,
    ) -> AdmissionResult:
        """Decide whether a request may proceed.

        Checks the ban registry first, then counts the request in the
        (identity, endpoint class) window. Exceeding the quota records a
        violation and denies the request until the window closes.

        Args:
            identity: Client identity string.
            endpoint_class: Quota tier of the requested endpoint.
            now: Optional UNIX time override.

        Returns:
            AdmissionResult. Never raises.
        """
        now = self._clock() if now is None else now

        try:
            endpoint_class = EndpointClass(endpoint_class)
            with self._lock:
                self._maybe_sweep_locked(now)
                result = self._admit_locked(identity, endpoint_class, now)
                self._decisions[result.verdict] += 1
        except ClockAnomalyError as exc:
            logger.warning(
                "rate_limit.fail_open",
                extra={
                    "reason": exc.code,
                    "identity_hash": short_hash(identity),
                    "endpoint_class": getattr(endpoint_class, "value", endpoint_class),
                },
            )
            with self._lock:
                self._drop_anomalous_locked(identity, now)
            return self._fail_open_result(endpoint_class, now)
        except Exception as exc:
            logger.exception(
                "rate_limit.fail_open",
                extra={
                    "reason": "internal_error",
                    "error_type": type(exc).__name__,
                    "identity_hash": short_hash(identity),
                    "endpoint_class": getattr(endpoint_class, "value", endpoint_class),
                },
            )
            return self._fail_open_result(endpoint_class, now)

        if result.verdict is Verdict.BAN:
            logger.warning(
                "rate_limit.banned",
                extra={
                    "identity_hash": short_hash(identity),
                    "endpoint_class": endpoint_class.value,
                    "retry_after_s": result.retry_after_seconds,
                },
            )
        elif result.verdict is Verdict.DENY:
            logger.warning(
                "rate_limit.denied",
                extra={
                    "identity_hash": short_hash(identity),
                    "endpoint_class": endpoint_class.value,
                    "limit": result.limit,
                    "retry_after_s": result.retry_after_seconds,
                },
            )
        return result

    def _admit_locked(
        self,
        identity: str,
        endpoint_class: EndpointClass,
        now: float,
    ) -> AdmissionResult:
        quota = self._quotas[endpoint_class]

        if self._bans.is_banned(identity, now):
            # Sliding ban: hammering while banned keeps the ban fresh.
            self._bans.record_violation(identity, now)
            retry_after = max(1, int(math.ceil(self._bans.ban_duration_seconds)))
            return AdmissionResult(
                verdict=Verdict.BAN,
                limit=quota.max_requests,
                remaining=0,
                reset_at=int(math.ceil(now + self._bans.ban_duration_seconds)),
                retry_after_seconds=retry_after,
            )

        key = (identity, endpoint_class)
        counter = self._counters.get(key)
        if counter is None or counter.is_expired(now):
            counter = WindowCounter.start(now, quota.window_seconds)
            self._counters[key] = counter
        else:
            counter.hit(now)

        reset_at = int(math.ceil(counter.window_end))
        if counter.count > quota.max_requests:
            self._bans.record_violation(identity, now)
            return AdmissionResult(
                verdict=Verdict.DENY,
                limit=quota.max_requests,
                remaining=0,
                reset_at=reset_at,
                retry_after_seconds=counter.seconds_until_reset(now),
            )

        return AdmissionResult(
            verdict=Verdict.ALLOW,
            limit=quota.max_requests,
            remaining=quota.max_requests - counter.count,
            reset_at=reset_at,
        )

    def _fail_open_result(self, endpoint_class: EndpointClass | str, now: float) -> AdmissionResult:
        with self._lock:
            self._fail_open += 1
        quota = self._quotas.get(endpoint_class, self._quotas[EndpointClass.STANDARD])
        return AdmissionResult(
            verdict=Verdict.ALLOW,
            limit=quota.max_requests,
            remaining=quota.max_requests,
            reset_at=int(math.ceil(now + quota.window_seconds)),
        )

    def _drop_anomalous_locked(self, identity: str, now: float) -> None:
        """Forget state that lies in the future relative to ``now``."""
        for key in [k for k in self._counters if k[0] == identity]:
            if self._counters[key].window_start > now:
                del self._counters[key]
        self._bans.forget_if_after(identity, now)

    def _maybe_sweep_locked(self, now: float) -> None:
        if self._last_sweep is not None and 0 <= now - self._last_sweep < self._sweep_interval:
            return
        expired = [key for key, counter in self._counters.items() if counter.is_expired(now)]
        for key in expired:
            del self._counters[key]
        purged = self._bans.purge(now)
        self._last_sweep = now
        if expired or purged:
            logger.debug(
                "rate_limit.swept",
                extra={
                    "windows_removed": len(expired),
                    "violations_removed": purged,
                    "windows_active": len(self._counters),
                },
            )

    def forget(self, identity: str) -> bool:
        """Drop all counters, violations and bans held for ``identity``."""
        with self._lock:
            keys = [key for key in self._counters if key[0] == identity]
            for key in keys:
                del self._counters[key]
            had_record = self._bans.forget(identity)
        return bool(keys) or had_record

    def stats(self) -> dict[str, int]:
        """Return lightweight bookkeeping metrics without exposing identities."""
        now = self._clock()
        with self._lock:
            return {
                "windows_active": len(self._counters),
                "identities_tracked": len(self._bans),
                "identities_banned": self._bans.banned_count(now),
                "allowed": self._decisions[Verdict.ALLOW],
                "denied": self._decisions[Verdict.DENY],
                "banned": self._decisions[Verdict.BAN],
                "fail_open": self._fail_open,
            }
