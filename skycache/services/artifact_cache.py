"""Tiered artifact cache with per-category capacity and lazy expiry.

The cache walks three tiers in order of preference:

- volatile: process memory, written synchronously on every put
- durable: SQLite file, survives restarts
- degraded: small JSON records, written only when durable refuses a write

Durable and degraded operations run on one single-worker executor per tier
and are awaited for at most ``tier_timeout_seconds``. A slow or failing tier
yields a failed ``TierResult``; the walk moves on and the caller never sees
the storage error. A write that times out keeps running in the background.

Expired entries are removed lazily when a lookup meets them and by sweeps
triggered from the hot path at most once per ``sweep_interval_seconds``.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, Mapping, TypeVar

from skycache.adapters.cache_tiers.base import (
    CacheEntry,
    Fidelity,
    TierName,
    TierResult,
    TierStore,
)
from skycache.adapters.cache_tiers.volatile import VolatileTier
from skycache.core.errors import TierUnavailableError
from skycache.utils.expiry import CategoryIndex, is_live

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ArtifactCache:
    """Write-through cache over a volatile tier and optional persistent tiers.

    Attributes:
        max_age_seconds: Lifetime applied to every entry.
        max_items_per_category: Live entries kept per category.
    """

    def __init__(
        self,
        *,
        max_age_seconds: float,
        max_items_per_category: int,
        volatile: VolatileTier | None = None,
        durable: TierStore | None = None,
        degraded: TierStore | None = None,
        tier_timeout_seconds: float = 2.0,
        sweep_interval_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the cache.

        Args:
            max_age_seconds: Entry lifetime.
            max_items_per_category: Capacity of each category.
            volatile: In-memory tier (a fresh one is created when omitted).
            durable: Optional persistent tier holding full payloads.
            degraded: Optional last-resort tier holding reduced records.
            tier_timeout_seconds: Upper bound on one persistent tier call.
            sweep_interval_seconds: Minimum time between expiry sweeps.
            clock: Time source function returning UNIX time in seconds.

        Raises:
            ValueError: If limits or timeouts are invalid.
        """
        if max_age_seconds <= 0:
            raise ValueError("max_age_seconds must be > 0")
        if max_items_per_category < 1:
            raise ValueError("max_items_per_category must be >= 1")
        if tier_timeout_seconds <= 0:
            raise ValueError("tier_timeout_seconds must be > 0")

        self.max_age_seconds = max_age_seconds
        self.max_items_per_category = max_items_per_category
        self._volatile = volatile if volatile is not None else VolatileTier()
        self._durable = durable
        self._degraded = degraded
        self._tier_timeout = tier_timeout_seconds
        self._sweep_interval = sweep_interval_seconds
        self._clock = clock

        self._executors: dict[TierName, ThreadPoolExecutor] = {
            tier.name: ThreadPoolExecutor(
                max_workers=1,
                thread_name_prefix=f"skycache-{tier.name.value}",
            )
            for tier in (durable, degraded)
            if tier is not None
        }

        self._locks_guard = threading.Lock()
        self._category_locks: dict[str, threading.RLock] = {}
        # Bumped by every write or delete; a promotion only lands if nothing
        # changed in its category since the tier walk started.
        self._generations: dict[str, int] = {}
        self._epoch = 0
        self._stats_lock = threading.Lock()
        self._hits: dict[TierName, int] = {name: 0 for name in TierName}
        self._tier_failures: dict[TierName, int] = {name: 0 for name in TierName}
        self._misses = 0
        self._evictions = 0
        self._expirations = 0
        self._last_sweep: float | None = None

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"ArtifactCache(max_age_seconds={self.max_age_seconds}, "
            f"max_items_per_category={self.max_items_per_category}, "
            f"tiers={[tier.name.value for tier in self.tiers]})"
        )

    @property
    def tiers(self) -> list[TierStore]:
        """Configured tiers in order of preference."""
        return [tier for tier in (self._volatile, self._durable, self._degraded) if tier is not None]

    def now(self) -> float:
        """Current UNIX time on the cache clock."""
        return self._clock()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def get(self, category: str, entry_id: str, *, now: float | None = None) -> CacheEntry | None:
        """Return the live entry for ``(category, entry_id)`` or None on a miss.

        Tiers are read in order. A live durable hit is promoted into the
        volatile tier unless the category was written, evicted or cleared
        while the read was in flight; a degraded hit is a reduced record
        without payload. Dead entries met along the way are deleted from
        their tier.

        Args:
            category: Entry category.
            entry_id: Entry id.
            now: Optional UNIX time override.

        Returns:
            The entry, or None when no tier holds a live copy.
        """
        now = self._now(now)
        found: CacheEntry | None = None
        found_in: TierName | None = None
        generation = self._generation(category)

        for tier in self.tiers:
            result = self._call(tier, "get", tier.get, category, entry_id)
            entry = result.value if result.ok else None
            if entry is None:
                continue
            if not self._is_live(entry, now):
                self._call(tier, "delete", tier.delete, category, entry_id)
                self._record(expirations=1)
                continue
            if tier is not self._volatile and entry.fidelity is Fidelity.FULL:
                self._promote(entry, generation)
            found, found_in = entry, tier.name
            break

        if found_in is not None:
            self._record(hit=found_in)
            logger.debug(
                "cache.hit",
                extra={"category": category, "artifact_id": entry_id, "tier": found_in.value},
            )
        else:
            self._record(misses=1)
            logger.debug("cache.miss", extra={"category": category, "artifact_id": entry_id})

        self._maybe_sweep(now)
        return found

    def put(
        self,
        category: str,
        entry_id: str,
        payload: bytes | None,
        *,
        source_locator: str,
        content_type: str | None = None,
        metadata: Mapping[str, Any] | None = None,
        now: float | None = None,
    ) -> CacheEntry | None:
        """Store an artifact and enforce the category capacity.

        The volatile write always happens first. The durable tier is tried
        next; if it refuses, a reduced record goes to the degraded tier.

        Args:
            category: Entry category.
            entry_id: Entry id (may replace a previous entry with the same id).
            payload: Artifact bytes.
            source_locator: Upstream address used to refetch the artifact.
            content_type: Optional MIME type.
            metadata: Caller-supplied auxiliary fields.
            now: Optional UNIX time override.

        Returns:
            The stored entry, or None if no tier accepted it.
        """
        now = self._now(now)
        entry = CacheEntry(
            id=entry_id,
            category=category,
            source_locator=source_locator,
            cached_at=now,
            expires_at=now + self.max_age_seconds,
            payload=payload,
            content_type=content_type,
            metadata=dict(metadata or {}),
        )

        with self._category_lock(category):
            stored_in: list[str] = []
            if self._call(self._volatile, "put", self._volatile.put, entry).ok:
                stored_in.append(TierName.VOLATILE.value)

            durable_ok = False
            if self._durable is not None:
                durable_ok = self._call(self._durable, "put", self._durable.put, entry).ok
                if durable_ok:
                    stored_in.append(TierName.DURABLE.value)

            if not durable_ok and self._degraded is not None:
                reduced = entry.reduced()
                if self._call(self._degraded, "put", self._degraded.put, reduced).ok:
                    stored_in.append(TierName.DEGRADED.value)

            self._bump(category)
            if not stored_in:
                logger.error(
                    "cache.unavailable",
                    extra={"category": category, "artifact_id": entry_id},
                )
                return None

            self._evict_locked(category, now)

        logger.debug(
            "cache.set",
            extra={
                "category": category,
                "artifact_id": entry_id,
                "size": entry.size_bytes,
                "tiers": stored_in,
                "ttl_s": self.max_age_seconds,
            },
        )
        self._maybe_sweep(now)
        return entry

    def list_by_category(
        self,
        category: str,
        limit: int | None = None,
        *,
        now: float | None = None,
    ) -> list[CacheEntry]:
        """Return live entries of ``category``, most recently cached first.

        Merges every tier that answers, keeping one copy per id (full
        fidelity preferred).

        Args:
            category: Entry category.
            limit: Maximum entries returned, capped at the category capacity
                (entries beyond it are pending eviction).
            now: Optional UNIX time override.
        """
        now = self._now(now)
        index = self._build_index(category, now)
        self._maybe_sweep(now)
        capacity = self.max_items_per_category
        return index.newest(capacity if limit is None else min(limit, capacity))

    def evict_category(self, category: str, *, now: float | None = None) -> int:
        """Delete the oldest live entries beyond the category capacity.

        Returns:
            Number of entries evicted.
        """
        now = self._now(now)
        with self._category_lock(category):
            return self._evict_locked(category, now)

    def purge_expired(self, *, now: float | None = None) -> int:
        """Delete dead entries from every tier.

        Returns:
            Number of records removed across tiers.
        """
        now = self._now(now)
        removed = 0
        for tier in self.tiers:
            result = self._call(
                tier, "purge", tier.purge_expired, now, self.max_age_seconds
            )
            if result.ok and result.value:
                removed += result.value
        self._bump()

        with self._stats_lock:
            self._last_sweep = now
            self._expirations += removed

        if removed:
            logger.info("cache.purged", extra={"removed": removed})
        return removed

    def clear_category(self, category: str) -> int:
        """Delete every entry of ``category`` from every tier.

        Returns:
            Number of records removed across tiers.
        """
        with self._category_lock(category):
            removed = 0
            for tier in self.tiers:
                result = self._call(tier, "clear", tier.clear, category)
                if result.ok and result.value:
                    removed += result.value
            self._bump(category)

        logger.info("cache.category_cleared", extra={"category": category, "removed": removed})
        return removed

    def clear(self) -> int:
        """Delete every entry from every tier and reset counters."""
        removed = 0
        for tier in self.tiers:
            result = self._call(tier, "clear", tier.clear, None)
            if result.ok and result.value:
                removed += result.value
        self._bump()

        with self._stats_lock:
            self._hits = {name: 0 for name in TierName}
            self._tier_failures = {name: 0 for name in TierName}
            self._misses = 0
            self._evictions = 0
            self._expirations = 0
        return removed

    def stats(self) -> dict[str, Any]:
        """Return lightweight cache metrics without exposing payloads."""
        tiers: dict[str, dict[str, Any]] = {}
        for tier in self.tiers:
            result = self._call(tier, "count", tier.count)
            tiers[tier.name.value] = {
                "available": tier.available,
                "entries": result.value if result.ok else None,
            }

        with self._stats_lock:
            return {
                "max_age_seconds": self.max_age_seconds,
                "max_items_per_category": self.max_items_per_category,
                "hits": sum(self._hits.values()),
                "hits_by_tier": {name.value: count for name, count in self._hits.items()},
                "misses": self._misses,
                "evictions": self._evictions,
                "expirations": self._expirations,
                "tier_failures": {
                    name.value: count for name, count in self._tier_failures.items()
                },
                "tiers": tiers,
            }

    def close(self) -> None:
        """Wait for pending tier writes, then release tier resources."""
        for executor in self._executors.values():
            executor.shutdown(wait=True)
        for tier in self.tiers:
            tier.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _now(self, now: float | None) -> float:
        return self.now() if now is None else now

    def _is_live(self, entry: CacheEntry, now: float) -> bool:
        return is_live(entry, now, max_age_seconds=self.max_age_seconds)

    def _category_lock(self, category: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._category_locks.get(category)
            if lock is None:
                lock = threading.RLock()
                self._category_locks[category] = lock
            return lock

    def _generation(self, category: str) -> tuple[int, int]:
        with self._locks_guard:
            return self._epoch, self._generations.get(category, 0)

    def _bump(self, category: str | None = None) -> None:
        """Mark ``category`` (or every category) as changed."""
        with self._locks_guard:
            if category is None:
                self._epoch += 1
            else:
                self._generations[category] = self._generations.get(category, 0) + 1

    def _promote(self, entry: CacheEntry, generation: tuple[int, int]) -> bool:
        """Copy a persistent hit into the volatile tier.

        Skipped when the category changed after ``generation`` was taken, so
        a cleared, evicted or overwritten entry is never written back.
        """
        with self._category_lock(entry.category):
            if self._generation(entry.category) != generation:
                logger.debug(
                    "cache.promotion_skipped",
                    extra={"category": entry.category, "artifact_id": entry.id},
                )
                return False
            return self._call(self._volatile, "promote", self._volatile.put, entry).ok

    def _record(
        self,
        *,
        hit: TierName | None = None,
        misses: int = 0,
        evictions: int = 0,
        expirations: int = 0,
        failure: TierName | None = None,
    ) -> None:
        with self._stats_lock:
            if hit is not None:
                self._hits[hit] += 1
            if failure is not None:
                self._tier_failures[failure] += 1
            self._misses += misses
            self._evictions += evictions
            self._expirations += expirations

    def _call(
        self,
        tier: TierStore,
        operation: str,
        fn: Callable[..., T],
        *args: Any,
    ) -> TierResult[T]:
        """Run one tier operation and capture its outcome as a TierResult.

        Volatile operations run inline. Persistent tier operations run on
        the tier's executor and are abandoned (not cancelled) after the
        tier timeout.
        """
        if tier is self._volatile:
            try:
                return TierResult.success(tier.name, fn(*args))
            except TierUnavailableError as exc:
                return self._failed(tier, operation, exc.code, exc)
            except Exception as exc:
                return self._failed(tier, operation, "internal_error", exc)

        if not tier.available:
            return TierResult.failure(tier.name, "unavailable")

        try:
            future = self._executors[tier.name].submit(fn, *args)
        except RuntimeError as exc:
            # Executor already shut down.
            return self._failed(tier, operation, "closed", exc)

        try:
            return TierResult.success(tier.name, future.result(timeout=self._tier_timeout))
        except FutureTimeoutError as exc:
            return self._failed(tier, operation, "timeout", exc)
        except TierUnavailableError as exc:
            return self._failed(tier, operation, exc.code, exc)
        except Exception as exc:
            return self._failed(tier, operation, "internal_error", exc)

    def _failed(
        self,
        tier: TierStore,
        operation: str,
        reason: str,
        exc: BaseException,
    ) -> TierResult[Any]:
        self._record(failure=tier.name)
        logger.warning(
            "cache.tier_failed",
            extra={
                "tier": tier.name.value,
                "operation": operation,
                "reason": reason,
                "error_type": type(exc).__name__,
                "error_msg": str(exc),
            },
        )
        return TierResult.failure(tier.name, reason)

    def _build_index(self, category: str, now: float) -> CategoryIndex:
        sources: list[list[CacheEntry]] = []
        for tier in self.tiers:
            result = self._call(tier, "list", tier.list_category, category)
            if result.ok and result.value is not None:
                sources.append(result.value)
        return CategoryIndex.build(
            category, sources, now, max_age_seconds=self.max_age_seconds
        )

    def _evict_locked(self, category: str, now: float) -> int:
        victims = self._build_index(category, now).overflow(self.max_items_per_category)
        for victim in victims:
            for tier in self.tiers:
                self._call(tier, "evict", tier.delete, category, victim.id)

        if victims:
            self._bump(category)
            self._record(evictions=len(victims))
            logger.info(
                "cache.evicted",
                extra={
                    "category": category,
                    "evicted": len(victims),
                    "capacity": self.max_items_per_category,
                },
            )
        return len(victims)

    def _maybe_sweep(self, now: float) -> None:
        with self._stats_lock:
            last = self._last_sweep
        if last is not None and 0 <= now - last < self._sweep_interval:
            return
        self.purge_expired(now=now)
