"""Last-resort tier: one small JSON file per entry.

Only reduced records are kept (no payload, scalar metadata only), each
capped at ``max_item_bytes`` once serialized, with at most ``max_items``
records overall. Used when the durable tier cannot take a write, so a later
lookup can still report that an artifact was seen and where to refetch it.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import threading
from pathlib import Path

from skycache.adapters.cache_tiers.base import CacheEntry, Fidelity, TierName, TierStore
from skycache.core.errors import TierUnavailableError
from skycache.utils.expiry import is_live

logger = logging.getLogger(__name__)


def _file_name(category: str, entry_id: str) -> str:
    digest = hashlib.sha256(f"{category}\x00{entry_id}".encode()).hexdigest()[:32]
    return f"{digest}.json"


class DegradedTier(TierStore):
    """Size-limited JSON file store for reduced records."""

    name = TierName.DEGRADED

    def __init__(
        self,
        directory: str | Path,
        *,
        max_item_bytes: int = 4096,
        max_items: int = 1000,
    ) -> None:
        self.directory = Path(directory)
        self.max_item_bytes = max_item_bytes
        self.max_items = max_items
        self._lock = threading.RLock()
        self._available = True

        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            self._available = False
            logger.warning(
                "cache.tier_init_failed",
                extra={
                    "tier": self.name.value,
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"DegradedTier(directory={str(self.directory)!r}, available={self._available})"

    @property
    def available(self) -> bool:
        return self._available

    def _require_available(self) -> None:
        if not self._available:
            raise TierUnavailableError(
                code="degraded_unavailable",
                message="Degraded tier directory is not usable",
                details={"tier": self.name.value},
            )

    def _path(self, category: str, entry_id: str) -> Path:
        return self.directory / _file_name(category, entry_id)

    def _read(self, path: Path) -> CacheEntry | None:
        try:
            record = json.loads(path.read_text(encoding="utf-8"))
            return CacheEntry.from_record(record)
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise TierUnavailableError(
                code="degraded_io_error",
                message=f"Degraded record unreadable: {exc}",
                details={"tier": self.name.value},
            ) from exc
        except (ValueError, KeyError, TypeError) as exc:
            # Corrupt record: drop it so it stops failing reads.
            logger.warning(
                "cache.degraded_record_dropped",
                extra={"file": path.name, "error_type": type(exc).__name__},
            )
            path.unlink(missing_ok=True)
            return None

    def _iter_entries(self) -> list[tuple[Path, CacheEntry]]:
        found: list[tuple[Path, CacheEntry]] = []
        for path in self.directory.glob("*.json"):
            entry = self._read(path)
            if entry is not None:
                found.append((path, entry))
        return found

    def get(self, category: str, entry_id: str) -> CacheEntry | None:
        with self._lock:
            self._require_available()
            return self._read(self._path(category, entry_id))

    def put(self, entry: CacheEntry) -> None:
        if entry.fidelity is not Fidelity.REDUCED:
            entry = entry.reduced()
        data = json.dumps(entry.to_record(), default=str, ensure_ascii=True).encode("utf-8")
        if len(data) > self.max_item_bytes:
            raise TierUnavailableError(
                code="degraded_item_too_large",
                message="Record exceeds the degraded tier item limit",
                details={
                    "tier": self.name.value,
                    "max_bytes": self.max_item_bytes,
                    "actual_bytes": len(data),
                },
            )

        with self._lock:
            self._require_available()
            path = self._path(entry.category, entry.id)
            if not path.exists() and sum(1 for _ in self.directory.glob("*.json")) >= self.max_items:
                raise TierUnavailableError(
                    code="degraded_quota_exceeded",
                    message="Degraded tier is full",
                    details={"tier": self.name.value},
                )
            tmp_path = path.with_suffix(".tmp")
            try:
                tmp_path.write_bytes(data)
                os.replace(tmp_path, path)
            except OSError as exc:
                tmp_path.unlink(missing_ok=True)
                raise TierUnavailableError(
                    code="degraded_io_error",
                    message=f"Degraded tier write failed: {exc}",
                    details={"tier": self.name.value},
                ) from exc

    def delete(self, category: str, entry_id: str) -> bool:
        with self._lock:
            self._require_available()
            path = self._path(category, entry_id)
            try:
                path.unlink()
            except FileNotFoundError:
                return False
            except OSError as exc:
                raise TierUnavailableError(
                    code="degraded_io_error",
                    message=f"Degraded tier delete failed: {exc}",
                    details={"tier": self.name.value},
                ) from exc
            return True

    def list_category(self, category: str) -> list[CacheEntry]:
        with self._lock:
            self._require_available()
            return [entry for _, entry in self._iter_entries() if entry.category == category]

    def categories(self) -> list[str]:
        with self._lock:
            self._require_available()
            return sorted({entry.category for _, entry in self._iter_entries()})

    def purge_expired(self, now: float, max_age_seconds: float | None = None) -> int:
        removed = 0
        with self._lock:
            self._require_available()
            for path, entry in self._iter_entries():
                if not is_live(entry, now, max_age_seconds=max_age_seconds):
                    path.unlink(missing_ok=True)
                    removed += 1
        return removed

    def clear(self, category: str | None = None) -> int:
        removed = 0
        with self._lock:
            self._require_available()
            for path, entry in self._iter_entries():
                if category is None or entry.category == category:
                    path.unlink(missing_ok=True)
                    removed += 1
        return removed

    def count(self) -> int:
        with self._lock:
            self._require_available()
            return sum(1 for _ in self.directory.glob("*.json"))
