"""Unit tests for the per-key request window."""

import pytest

from skycache.adapters.rate_limit.window_counter import WindowCounter
from skycache.core.errors import ClockAnomalyError


def test_start_opens_window_holding_first_request() -> None:
    counter = WindowCounter.start(100.0, 60.0)

    assert counter.count == 1
    assert counter.window_start == 100.0
    assert counter.window_end == 160.0


def test_hit_increments_inside_window() -> None:
    counter = WindowCounter.start(100.0, 60.0)

    assert counter.hit(130.0) == 2
    assert counter.hit(159.9) == 3


def test_window_expires_exactly_at_window_end() -> None:
    counter = WindowCounter.start(100.0, 60.0)

    assert counter.is_expired(159.999) is False
    assert counter.is_expired(160.0) is True


def test_hit_before_window_start_is_clock_anomaly() -> None:
    counter = WindowCounter.start(100.0, 60.0)

    with pytest.raises(ClockAnomalyError) as exc_info:
        counter.hit(99.0)

    assert exc_info.value.code == "clock_went_backwards"
    assert counter.count == 1


@pytest.mark.parametrize(
    ("now", "expected"),
    [
        (3.0, 57),
        (2.5, 58),
        (59.5, 1),
        (60.0, 1),
    ],
)
def test_seconds_until_reset_rounds_up_and_is_at_least_one(now: float, expected: int) -> None:
    counter = WindowCounter.start(0.0, 60.0)

    assert counter.seconds_until_reset(now) == expected
