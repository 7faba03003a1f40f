"""On-disk SQLite tier.

Survives restarts and holds full payloads up to an optional byte quota.
A tier whose database cannot be opened stays registered but reports itself
unavailable; every operation then raises ``TierUnavailableError``.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any

from skycache.adapters.cache_tiers.base import CacheEntry, TierName, TierStore
from skycache.core.errors import TierUnavailableError

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS artifacts (
    category TEXT NOT NULL,
    id TEXT NOT NULL,
    source_locator TEXT NOT NULL,
    cached_at REAL NOT NULL,
    expires_at REAL NOT NULL,
    content_type TEXT,
    metadata TEXT NOT NULL,
    fidelity TEXT NOT NULL,
    payload BLOB,
    size_bytes INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (category, id)
);
CREATE INDEX IF NOT EXISTS idx_artifacts_category_cached
    ON artifacts (category, cached_at DESC);
CREATE INDEX IF NOT EXISTS idx_artifacts_expires
    ON artifacts (expires_at);
"""

_COLUMNS = (
    "id, category, source_locator, cached_at, expires_at, "
    "content_type, metadata, fidelity, payload"
)


def _row_to_entry(row: tuple[Any, ...]) -> CacheEntry:
    (entry_id, category, locator, cached_at, expires_at, content_type, metadata, fidelity, payload) = row
    record = {
        "id": entry_id,
        "category": category,
        "source_locator": locator,
        "cached_at": cached_at,
        "expires_at": expires_at,
        "content_type": content_type,
        "metadata": json.loads(metadata) if metadata else {},
        "fidelity": fidelity,
    }
    return CacheEntry.from_record(record, payload=bytes(payload) if payload is not None else None)


class DurableTier(TierStore):
    """SQLite-backed persistent tier.

    Attributes:
        path: Database file (``":memory:"`` is accepted for tests).
        max_bytes: Total payload bytes accepted (None for unlimited).
    """

    name = TierName.DURABLE

    def __init__(self, path: str | Path, *, max_bytes: int | None = None) -> None:
        self.path = str(path)
        self.max_bytes = max_bytes
        self._lock = threading.RLock()
        self._conn: sqlite3.Connection | None = None

        try:
            self._conn = self._connect()
        except (sqlite3.Error, OSError) as exc:
            logger.warning(
                "cache.tier_init_failed",
                extra={
                    "tier": self.name.value,
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"DurableTier(path={self.path!r}, max_bytes={self.max_bytes}, available={self.available})"

    def _connect(self) -> sqlite3.Connection:
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.path, check_same_thread=False)
        conn.executescript(_SCHEMA)
        conn.commit()
        return conn

    @property
    def available(self) -> bool:
        return self._conn is not None

    def _require_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise TierUnavailableError(
                code="durable_unavailable",
                message="Durable tier is not initialized",
                details={"tier": self.name.value},
            )
        return self._conn

    def _failed(self, operation: str, exc: sqlite3.Error) -> TierUnavailableError:
        return TierUnavailableError(
            code="durable_io_error",
            message=f"Durable tier {operation} failed: {exc}",
            details={"tier": self.name.value},
        )

    def get(self, category: str, entry_id: str) -> CacheEntry | None:
        with self._lock:
            conn = self._require_conn()
            try:
                row = conn.execute(
                    f"SELECT {_COLUMNS} FROM artifacts WHERE category = ? AND id = ?",
                    (category, entry_id),
                ).fetchone()
            except sqlite3.Error as exc:
                raise self._failed("read", exc) from exc
        return _row_to_entry(row) if row else None

    def put(self, entry: CacheEntry) -> None:
        with self._lock:
            conn = self._require_conn()
            try:
                if self.max_bytes is not None:
                    (stored,) = conn.execute(
                        "SELECT COALESCE(SUM(size_bytes), 0) FROM artifacts "
                        "WHERE NOT (category = ? AND id = ?)",
                        (entry.category, entry.id),
                    ).fetchone()
                    if stored + entry.size_bytes > self.max_bytes:
                        raise TierUnavailableError(
                            code="durable_quota_exceeded",
                            message="Durable tier quota exceeded",
                            details={
                                "tier": self.name.value,
                                "max_bytes": self.max_bytes,
                                "actual_bytes": stored + entry.size_bytes,
                            },
                        )
                with conn:
                    conn.execute(
                        "INSERT OR REPLACE INTO artifacts "
                        "(id, category, source_locator, cached_at, expires_at, content_type, "
                        "metadata, fidelity, payload, size_bytes) "
                        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                        (
                            entry.id,
                            entry.category,
                            entry.source_locator,
                            entry.cached_at,
                            entry.expires_at,
                            entry.content_type,
                            json.dumps(entry.metadata, default=str),
                            entry.fidelity.value,
                            entry.payload,
                            entry.size_bytes,
                        ),
                    )
            except sqlite3.Error as exc:
                raise self._failed("write", exc) from exc

    def delete(self, category: str, entry_id: str) -> bool:
        with self._lock:
            conn = self._require_conn()
            try:
                with conn:
                    cursor = conn.execute(
                        "DELETE FROM artifacts WHERE category = ? AND id = ?",
                        (category, entry_id),
                    )
            except sqlite3.Error as exc:
                raise self._failed("delete", exc) from exc
        return cursor.rowcount > 0

    def list_category(self, category: str) -> list[CacheEntry]:
        with self._lock:
            conn = self._require_conn()
            try:
                rows = conn.execute(
                    f"SELECT {_COLUMNS} FROM artifacts WHERE category = ? "
                    "ORDER BY cached_at DESC, id DESC",
                    (category,),
                ).fetchall()
            except sqlite3.Error as exc:
                raise self._failed("list", exc) from exc
        return [_row_to_entry(row) for row in rows]

    def categories(self) -> list[str]:
        with self._lock:
            conn = self._require_conn()
            try:
                rows = conn.execute("SELECT DISTINCT category FROM artifacts").fetchall()
            except sqlite3.Error as exc:
                raise self._failed("list", exc) from exc
        return [row[0] for row in rows]

    def purge_expired(self, now: float, max_age_seconds: float | None = None) -> int:
        # Mirrors utils.expiry.is_live
        clauses = ["expires_at <= ?", "cached_at > ?", "expires_at < cached_at"]
        params: list[float] = [now, now]
        if max_age_seconds is not None:
            clauses.append("cached_at + ? <= ?")
            params.extend([max_age_seconds, now])

        with self._lock:
            conn = self._require_conn()
            try:
                with conn:
                    cursor = conn.execute(
                        f"DELETE FROM artifacts WHERE {' OR '.join(clauses)}",
                        params,
                    )
            except sqlite3.Error as exc:
                raise self._failed("purge", exc) from exc
        return cursor.rowcount

    def clear(self, category: str | None = None) -> int:
        with self._lock:
            conn = self._require_conn()
            try:
                with conn:
                    if category is None:
                        cursor = conn.execute("DELETE FROM artifacts")
                    else:
                        cursor = conn.execute(
                            "DELETE FROM artifacts WHERE category = ?", (category,)
                        )
            except sqlite3.Error as exc:
                raise self._failed("clear", exc) from exc
        return cursor.rowcount

    def count(self) -> int:
        with self._lock:
            conn = self._require_conn()
            try:
                (total,) = conn.execute("SELECT COUNT(*) FROM artifacts").fetchone()
            except sqlite3.Error as exc:
                raise self._failed("count", exc) from exc
        return int(total)

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
