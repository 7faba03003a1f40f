"""Unit tests for violation tracking and sliding bans."""

import pytest

from skycache.adapters.rate_limit.ban_registry import BanRegistry
from skycache.core.errors import ClockAnomalyError


def _registry(**overrides) -> BanRegistry:
    kwargs = {"threshold": 3, "ban_duration_seconds": 100.0, "retention_seconds": 1000.0}
    kwargs.update(overrides)
    return BanRegistry(**kwargs)


def test_not_banned_below_threshold() -> None:
    registry = _registry()

    registry.record_violation("ip:1", 0.0)
    registry.record_violation("ip:1", 1.0)

    assert registry.is_banned("ip:1", 2.0) is False


def test_banned_at_threshold_until_duration_elapses() -> None:
    registry = _registry()
    for t in (0.0, 1.0, 2.0):
        registry.record_violation("ip:1", t)

    assert registry.is_banned("ip:1", 2.0) is True
    assert registry.ban_remaining("ip:1", 52.0) == pytest.approx(50.0)
    assert registry.is_banned("ip:1", 101.999) is True
    assert registry.is_banned("ip:1", 102.0) is False


def test_violation_while_banned_extends_ban() -> None:
    registry = _registry()
    for t in (0.0, 1.0, 2.0):
        registry.record_violation("ip:1", t)

    registry.record_violation("ip:1", 90.0)

    # Ban now runs until 190, never shorter than before
    assert registry.is_banned("ip:1", 150.0) is True
    assert registry.ban_remaining("ip:1", 150.0) == pytest.approx(40.0)


def test_violation_after_retention_restarts_count() -> None:
    registry = _registry()
    registry.record_violation("ip:1", 0.0)
    registry.record_violation("ip:1", 1.0)

    record = registry.record_violation("ip:1", 1001.0)

    assert record.violation_count == 1
    assert registry.is_banned("ip:1", 1001.0) is False


def test_purge_drops_records_past_retention() -> None:
    registry = _registry()
    registry.record_violation("ip:old", 0.0)
    registry.record_violation("ip:new", 500.0)

    assert registry.purge(1000.0) == 1
    assert len(registry) == 1
    assert registry.purge(1000.0) == 0


def test_identities_are_isolated() -> None:
    registry = _registry(threshold=1)
    registry.record_violation("ip:1", 0.0)

    assert registry.is_banned("ip:1", 1.0) is True
    assert registry.is_banned("ip:2", 1.0) is False
    assert registry.banned_count(1.0) == 1


def test_forget_lifts_ban() -> None:
    registry = _registry(threshold=1)
    registry.record_violation("ip:1", 0.0)

    assert registry.forget("ip:1") is True
    assert registry.is_banned("ip:1", 1.0) is False
    assert registry.forget("ip:1") is False


def test_clock_before_last_violation_is_anomaly() -> None:
    registry = _registry(threshold=1)
    registry.record_violation("ip:1", 50.0)

    with pytest.raises(ClockAnomalyError):
        registry.is_banned("ip:1", 10.0)

    assert registry.forget_if_after("ip:1", 10.0) is True
    assert registry.is_banned("ip:1", 10.0) is False


@pytest.mark.parametrize(
    "kwargs",
    [
        {"threshold": 0},
        {"ban_duration_seconds": 0},
        {"ban_duration_seconds": 100.0, "retention_seconds": 50.0},
    ],
)
def test_invalid_constructor_args(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        _registry(**kwargs)
