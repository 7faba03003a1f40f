"""Expiry and eviction helpers shared by the cache tiers.

Ordering rules:
- Newest first is ``(cached_at, id)`` descending.
- Eviction is the exact reverse, ``(cached_at, id)`` ascending, so ties on
  ``cached_at`` are broken by id and the policy stays deterministic.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from skycache.adapters.cache_tiers.base import CacheEntry, Fidelity


def is_live(entry: CacheEntry, now: float, *, max_age_seconds: float | None = None) -> bool:
    """Return True if ``entry`` may be served at ``now``.

    Fail-safe on clock anomalies: an entry stamped in the future, or one
    whose lifetime exceeds the configured maximum age, is treated as dead.
    """
    if entry.cached_at > now:
        return False
    if entry.expires_at < entry.cached_at:
        return False
    if max_age_seconds is not None and now >= entry.cached_at + max_age_seconds:
        return False
    return now < entry.expires_at


def eviction_key(entry: CacheEntry) -> tuple[float, str]:
    return (entry.cached_at, entry.id)


def prefer(current: CacheEntry, candidate: CacheEntry) -> CacheEntry:
    """Pick the better of two copies of the same id.

    Full-fidelity copies win over reduced ones; between equal fidelity the
    most recently cached copy wins, and ``current`` wins a complete tie
    (callers feed tiers in preference order).
    """
    if current.fidelity != candidate.fidelity:
        return current if current.fidelity is Fidelity.FULL else candidate
    if candidate.cached_at > current.cached_at:
        return candidate
    return current


@dataclass(frozen=True)
class CategoryIndex:
    """Ordered view over the live entries of one category.

    Derived from tier contents on demand; never stored.
    """

    category: str
    entries: tuple[CacheEntry, ...]

    @classmethod
    def build(
        cls,
        category: str,
        sources: Iterable[Iterable[CacheEntry]],
        now: float,
        *,
        max_age_seconds: float | None = None,
    ) -> "CategoryIndex":
        """Merge entry lists (in tier preference order) into one index.

        Dead entries are skipped and duplicate ids are resolved with
        ``prefer``.
        """
        by_id: dict[str, CacheEntry] = {}
        for source in sources:
            for entry in source:
                if entry.category != category:
                    continue
                if not is_live(entry, now, max_age_seconds=max_age_seconds):
                    continue
                current = by_id.get(entry.id)
                by_id[entry.id] = entry if current is None else prefer(current, entry)
        ordered = sorted(by_id.values(), key=eviction_key, reverse=True)
        return cls(category=category, entries=tuple(ordered))

    def __len__(self) -> int:
        return len(self.entries)

    def newest(self, limit: int | None = None) -> list[CacheEntry]:
        if limit is None:
            return list(self.entries)
        return list(self.entries[: max(0, limit)])

    def overflow(self, capacity: int) -> list[CacheEntry]:
        """Entries beyond ``capacity``, oldest first."""
        if len(self.entries) <= capacity:
            return []
        return list(reversed(self.entries[capacity:]))
