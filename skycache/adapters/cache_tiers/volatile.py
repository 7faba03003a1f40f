"""In-process memory tier.

Fastest tier and the only one written synchronously. Lost on restart and
without a hard capacity limit; the artifact cache's per-category eviction
keeps it bounded.
"""

from __future__ import annotations

import threading

from skycache.adapters.cache_tiers.base import CacheEntry, TierName, TierStore
from skycache.utils.expiry import is_live


class VolatileTier(TierStore):
    """Thread-safe dict of categories to entries."""

    name = TierName.VOLATILE

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._store: dict[str, dict[str, CacheEntry]] = {}

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"VolatileTier(categories={len(self._store)}, entries={self.count()})"

    def get(self, category: str, entry_id: str) -> CacheEntry | None:
        with self._lock:
            return self._store.get(category, {}).get(entry_id)

    def put(self, entry: CacheEntry) -> None:
        with self._lock:
            self._store.setdefault(entry.category, {})[entry.id] = entry

    def delete(self, category: str, entry_id: str) -> bool:
        with self._lock:
            bucket = self._store.get(category)
            if not bucket or entry_id not in bucket:
                return False
            del bucket[entry_id]
            if not bucket:
                del self._store[category]
            return True

    def list_category(self, category: str) -> list[CacheEntry]:
        with self._lock:
            return list(self._store.get(category, {}).values())

    def categories(self) -> list[str]:
        with self._lock:
            return list(self._store)

    def purge_expired(self, now: float, max_age_seconds: float | None = None) -> int:
        removed = 0
        with self._lock:
            for category in list(self._store):
                bucket = self._store[category]
                dead = [
                    entry_id
                    for entry_id, entry in bucket.items()
                    if not is_live(entry, now, max_age_seconds=max_age_seconds)
                ]
                for entry_id in dead:
                    del bucket[entry_id]
                removed += len(dead)
                if not bucket:
                    del self._store[category]
        return removed

    def clear(self, category: str | None = None) -> int:
        with self._lock:
            if category is None:
                removed = sum(len(bucket) for bucket in self._store.values())
                self._store.clear()
                return removed
            return len(self._store.pop(category, {}))

    def count(self) -> int:
        with self._lock:
            return sum(len(bucket) for bucket in self._store.values())
