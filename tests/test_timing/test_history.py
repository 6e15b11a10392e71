"""
Tests for PerformanceHistory.

The window is the single source of truth: averages and success rates are
always derived from whatever samples are currently in it.
"""

import pytest

from models.enums import OperationCategory
from timing.history import PerformanceHistory


def test_window_evicts_oldest(clock):
    history = PerformanceHistory(window_size=3, clock=clock)
    for duration in [100, 200, 300, 400, 500]:
        history.record("navigation", duration, True)

    samples = history.samples("navigation")
    assert [s.duration_ms for s in samples] == [300, 400, 500]


def test_recorded_counts_every_sample_not_just_window(clock):
    history = PerformanceHistory(window_size=3, clock=clock)
    for _ in range(7):
        history.record("save", 100, True)

    state = history.state("save")
    assert state.samples == 3
    assert state.recorded == 7


def test_average_and_success_rate_from_window(history):
    history.record("network", 1000, True)
    history.record("network", 3000, False)
    history.record("network", 2000, True)
    history.record("network", 2000, True)

    state = history.state("network")
    assert state.average_ms == 2000
    assert state.success_rate == 0.75


def test_empty_state_defaults(history):
    state = history.state("interaction")
    assert state.samples == 0
    assert state.average_ms == 0.0
    assert state.success_rate == 1.0


def test_aliases_share_one_category(history):
    history.record("click", 100, True)
    history.record("fill", 200, True)
    history.record(OperationCategory.INTERACTION, 300, True)

    assert history.state("interaction").samples == 3
    assert history.categories() == [OperationCategory.INTERACTION]


def test_negative_duration_is_clamped(history):
    history.record("save", -50, True)
    assert history.samples("save")[0].duration_ms == 0.0


def test_sample_timestamp_comes_from_clock(history, clock):
    clock.advance(42)
    history.record("save", 10, True)
    assert history.samples("save")[0].timestamp == clock.now


def test_samples_returns_a_copy(history):
    history.record("save", 10, True)
    samples = history.samples("save")
    samples.clear()
    assert history.state("save").samples == 1


def test_clear(history):
    history.record("save", 10, True)
    history.clear()
    assert history.categories() == []


def test_invalid_window_size():
    with pytest.raises(ValueError):
        PerformanceHistory(window_size=-1)


def test_zero_window_size_is_rejected():
    with pytest.raises(ValueError):
        PerformanceHistory(window_size=0)
