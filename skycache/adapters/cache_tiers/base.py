"""Cache tier interfaces and the shared entry model.

Every tier stores ``CacheEntry`` objects keyed by ``(category, id)``.
Tiers raise ``TierUnavailableError`` when they cannot serve an operation;
the artifact cache turns those into failed ``TierResult`` values.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")

_SCALAR_TYPES = (str, int, float, bool, type(None))


class TierName(str, Enum):
    """Tiers in order of preference."""

    VOLATILE = "volatile"
    DURABLE = "durable"
    DEGRADED = "degraded"


class Fidelity(str, Enum):
    """How much of the artifact a record carries."""

    FULL = "full"
    REDUCED = "reduced"


@dataclass(frozen=True)
class CacheEntry:
    """One cached artifact.

    Attributes:
        id: Opaque key, stable across tiers.
        category: Grouping key used for capacity limits and listing.
        source_locator: Upstream address used to refetch the artifact.
        cached_at: UNIX time the artifact was stored.
        expires_at: UNIX time after which the entry is dead.
        payload: Artifact bytes (None on reduced records).
        content_type: MIME type reported by the upstream provider.
        metadata: Caller-supplied fields, not interpreted by the cache.
        fidelity: Whether the payload is present.
    """

    id: str
    category: str
    source_locator: str
    cached_at: float
    expires_at: float
    payload: bytes | None = None
    content_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    fidelity: Fidelity = Fidelity.FULL

    @property
    def size_bytes(self) -> int:
        return len(self.payload) if self.payload is not None else 0

    def reduced(self) -> "CacheEntry":
        """Return the identifying part of this entry.

        Drops the payload and any non-scalar metadata so the record fits
        size-limited storage.
        """
        essential = {k: v for k, v in self.metadata.items() if isinstance(v, _SCALAR_TYPES)}
        return replace(self, payload=None, metadata=essential, fidelity=Fidelity.REDUCED)

    def to_record(self) -> dict[str, Any]:
        """Serialize everything except the payload to JSON-compatible types."""
        return {
            "id": self.id,
            "category": self.category,
            "source_locator": self.source_locator,
            "cached_at": self.cached_at,
            "expires_at": self.expires_at,
            "content_type": self.content_type,
            "metadata": self.metadata,
            "fidelity": self.fidelity.value,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any], payload: bytes | None = None) -> "CacheEntry":
        return cls(
            id=record["id"],
            category=record["category"],
            source_locator=record["source_locator"],
            cached_at=float(record["cached_at"]),
            expires_at=float(record["expires_at"]),
            payload=payload,
            content_type=record.get("content_type"),
            metadata=dict(record.get("metadata") or {}),
            fidelity=Fidelity(record.get("fidelity", Fidelity.FULL.value)),
        )


@dataclass(frozen=True)
class TierResult(Generic[T]):
    """Tagged outcome of one tier operation: ``Ok(value)`` or ``Err(reason)``."""

    tier: TierName
    value: T | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, tier: TierName, value: T | None = None) -> "TierResult[T]":
        return cls(tier=tier, value=value)

    @classmethod
    def failure(cls, tier: TierName, reason: str) -> "TierResult[T]":
        return cls(tier=tier, error=reason)


class TierStore(ABC):
    """Uniform key-value storage for cache entries."""

    name: TierName

    @property
    def available(self) -> bool:
        """Whether the tier initialized correctly and can take requests."""
        return True

    @abstractmethod
    def get(self, category: str, entry_id: str) -> CacheEntry | None:
        """Return the stored entry (live or not) or None."""
        raise NotImplementedError

    @abstractmethod
    def put(self, entry: CacheEntry) -> None:
        """Store ``entry``, replacing any entry with the same key.

        Raises:
            TierUnavailableError: If the tier rejects the write.
        """
        raise NotImplementedError

    @abstractmethod
    def delete(self, category: str, entry_id: str) -> bool:
        """Remove one entry. Returns True if something was removed."""
        raise NotImplementedError

    @abstractmethod
    def list_category(self, category: str) -> list[CacheEntry]:
        """Return every stored entry of ``category`` (live or not, any order)."""
        raise NotImplementedError

    @abstractmethod
    def categories(self) -> list[str]:
        raise NotImplementedError

    @abstractmethod
    def purge_expired(self, now: float, max_age_seconds: float | None = None) -> int:
        """Delete dead entries. Returns the number removed."""
        raise NotImplementedError

    @abstractmethod
    def clear(self, category: str | None = None) -> int:
        """Delete all entries, or all entries of one category."""
        raise NotImplementedError

    def count(self) -> int:
        return sum(len(self.list_category(category)) for category in self.categories())

    def close(self) -> None:
        """Release resources held by the tier."""
