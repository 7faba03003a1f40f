"""Unit tests for liveness, ordering and category index helpers."""

from skycache.adapters.cache_tiers.base import CacheEntry, Fidelity
from skycache.utils.expiry import CategoryIndex, is_live, prefer


def _entry(entry_id: str, cached_at: float, *, ttl: float = 100.0, category: str = "curiosity", **kwargs) -> CacheEntry:
    return CacheEntry(
        id=entry_id,
        category=category,
        source_locator=f"https://images.example.org/{entry_id}.jpg",
        cached_at=cached_at,
        expires_at=cached_at + ttl,
        payload=kwargs.pop("payload", b"bytes"),
        **kwargs,
    )


def test_live_between_cached_at_and_expires_at() -> None:
    entry = _entry("a", 1000.0)

    assert is_live(entry, 1000.0) is True
    assert is_live(entry, 1099.999) is True
    assert is_live(entry, 1100.0) is False


def test_future_dated_entry_is_dead() -> None:
    entry = _entry("a", 2000.0)

    assert is_live(entry, 1000.0) is False


def test_entry_with_inverted_lifetime_is_dead() -> None:
    entry = CacheEntry(
        id="a",
        category="curiosity",
        source_locator="https://images.example.org/a.jpg",
        cached_at=1000.0,
        expires_at=900.0,
    )

    assert is_live(entry, 950.0) is False
    assert is_live(entry, 1000.0) is False


def test_max_age_bounds_entries_with_longer_lifetime() -> None:
    entry = _entry("a", 1000.0, ttl=10_000.0)

    assert is_live(entry, 1050.0, max_age_seconds=100.0) is True
    assert is_live(entry, 1100.0, max_age_seconds=100.0) is False


def test_prefer_full_fidelity_over_newer_reduced_copy() -> None:
    full = _entry("a", 1000.0)
    reduced = _entry("a", 1005.0).reduced()

    assert prefer(reduced, full) is full
    assert prefer(full, reduced) is full


def test_prefer_newer_copy_then_current_on_tie() -> None:
    older = _entry("a", 1000.0)
    newer = _entry("a", 1001.0)
    twin = _entry("a", 1000.0)

    assert prefer(older, newer) is newer
    assert prefer(older, twin) is older


def test_index_orders_newest_first_with_id_tiebreak() -> None:
    entries = [_entry("b", 1000.0), _entry("a", 1000.0), _entry("c", 1001.0)]

    index = CategoryIndex.build("curiosity", [entries], now=1050.0)

    assert [e.id for e in index.newest()] == ["c", "b", "a"]
    assert [e.id for e in index.newest(2)] == ["c", "b"]


def test_index_skips_dead_entries_and_other_categories() -> None:
    entries = [
        _entry("live", 1000.0),
        _entry("dead", 900.0),
        _entry("other", 1000.0, category="opportunity"),
    ]

    index = CategoryIndex.build("curiosity", [entries], now=1050.0)

    assert [e.id for e in index.newest()] == ["live"]


def test_index_deduplicates_across_sources() -> None:
    volatile = [_entry("a", 1000.0)]
    degraded = [_entry("a", 1000.0).reduced(), _entry("b", 990.0).reduced()]

    index = CategoryIndex.build("curiosity", [volatile, degraded], now=1050.0)

    assert len(index) == 2
    by_id = {e.id: e for e in index.newest()}
    assert by_id["a"].fidelity is Fidelity.FULL
    assert by_id["b"].fidelity is Fidelity.REDUCED


def test_overflow_returns_oldest_first() -> None:
    entries = [_entry(str(i), 1000.0 + i) for i in range(5)]

    index = CategoryIndex.build("curiosity", [entries], now=1050.0)

    assert [e.id for e in index.overflow(3)] == ["0", "1"]
    assert index.overflow(5) == []


def test_reduced_drops_payload_and_nested_metadata() -> None:
    entry = _entry("a", 1000.0, metadata={"camera": "NAVCAM", "sol": 1000, "extra": {"x": 1}})

    reduced = entry.reduced()

    assert reduced.payload is None
    assert reduced.size_bytes == 0
    assert reduced.fidelity is Fidelity.REDUCED
    assert reduced.metadata == {"camera": "NAVCAM", "sol": 1000}
    assert reduced.source_locator == entry.source_locator
