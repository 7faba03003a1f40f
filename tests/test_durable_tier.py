"""Unit tests for the SQLite-backed cache tier."""

from pathlib import Path

import pytest

from skycache.adapters.cache_tiers.base import CacheEntry, Fidelity
from skycache.adapters.cache_tiers.durable import DurableTier
from skycache.core.errors import TierUnavailableError


def _entry(entry_id: str, cached_at: float = 1000.0, *, payload: bytes = b"\x00\x01image", **kwargs) -> CacheEntry:
    return CacheEntry(
        id=entry_id,
        category=kwargs.pop("category", "curiosity"),
        source_locator=f"https://images.example.org/{entry_id}.jpg",
        cached_at=cached_at,
        expires_at=cached_at + 100.0,
        payload=payload,
        content_type="image/jpeg",
        **kwargs,
    )


@pytest.fixture
def tier(tmp_path: Path):
    durable = DurableTier(tmp_path / "artifacts.sqlite3")
    yield durable
    durable.close()


def test_round_trip_preserves_fields(tier: DurableTier) -> None:
    entry = _entry("a", metadata={"camera": "MAST", "sol": 3000})
    tier.put(entry)

    stored = tier.get("curiosity", "a")

    assert stored == entry
    assert stored.fidelity is Fidelity.FULL
    assert tier.get("curiosity", "missing") is None


def test_survives_reopen(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "artifacts.sqlite3"
    first = DurableTier(path)
    first.put(_entry("a"))
    first.close()

    second = DurableTier(path)
    try:
        assert second.get("curiosity", "a").payload == b"\x00\x01image"
    finally:
        second.close()


def test_list_category_newest_first(tier: DurableTier) -> None:
    tier.put(_entry("a", 1000.0))
    tier.put(_entry("b", 1002.0))
    tier.put(_entry("c", 1001.0))
    tier.put(_entry("x", 1003.0, category="opportunity"))

    assert [e.id for e in tier.list_category("curiosity")] == ["b", "c", "a"]
    assert sorted(tier.categories()) == ["curiosity", "opportunity"]
    assert tier.count() == 4


def test_quota_rejects_writes_beyond_max_bytes(tmp_path: Path) -> None:
    tier = DurableTier(tmp_path / "small.sqlite3", max_bytes=10)
    try:
        tier.put(_entry("a", payload=b"12345678"))
        # Replacing the same key does not count its previous size
        tier.put(_entry("a", payload=b"1234567890"))

        with pytest.raises(TierUnavailableError) as exc_info:
            tier.put(_entry("b", payload=b"1"))

        assert exc_info.value.code == "durable_quota_exceeded"
        assert tier.get("curiosity", "b") is None
    finally:
        tier.close()


def test_purge_expired_matches_liveness_rules(tier: DurableTier) -> None:
    tier.put(_entry("expired", 900.0))
    tier.put(_entry("live", 1000.0))
    tier.put(_entry("future", 5000.0))

    assert tier.purge_expired(1050.0) == 2
    assert [e.id for e in tier.list_category("curiosity")] == ["live"]
    assert tier.purge_expired(1050.0) == 0


def test_purge_expired_applies_max_age(tier: DurableTier) -> None:
    tier.put(_entry("a", 1000.0))

    assert tier.purge_expired(1050.0, max_age_seconds=50.0) == 1


def test_delete_and_clear(tier: DurableTier) -> None:
    tier.put(_entry("a"))
    tier.put(_entry("b"))
    tier.put(_entry("c", category="opportunity"))

    assert tier.delete("curiosity", "a") is True
    assert tier.delete("curiosity", "a") is False
    assert tier.clear("curiosity") == 1
    assert tier.clear() == 1


def test_in_memory_database_is_supported() -> None:
    tier = DurableTier(":memory:")
    tier.put(_entry("a"))

    assert tier.get("curiosity", "a") is not None
    tier.close()


def test_unusable_path_marks_tier_unavailable(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")

    tier = DurableTier(blocker / "artifacts.sqlite3")

    assert tier.available is False
    with pytest.raises(TierUnavailableError) as exc_info:
        tier.put(_entry("a"))
    assert exc_info.value.code == "durable_unavailable"


def test_closed_tier_is_unavailable(tmp_path: Path) -> None:
    tier = DurableTier(tmp_path / "artifacts.sqlite3")
    tier.close()

    assert tier.available is False
    with pytest.raises(TierUnavailableError):
        tier.get("curiosity", "a")
