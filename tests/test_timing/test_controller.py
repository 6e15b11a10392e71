"""
Tests for the AdaptiveTimingController.

Covers the level table, the recompute triggers (every k-th sample and the
time threshold), the minimum-sample rule and the monotonicity guarantee.
"""

import pytest

from models.enums import PerformanceLevel
from timing.controller import (
    LEVEL_MULTIPLIERS,
    AdaptiveTimingController,
    LevelThresholds,
    classify_level,
)
from timing.history import PerformanceHistory


def _feed(controller, category, duration_ms, success, count):
    for _ in range(count):
        controller.record(category, duration_ms, success)


@pytest.mark.parametrize(
    "average_ms, success_rate, expected",
    [
        (200, 1.0, PerformanceLevel.ULTRA_FAST),
        (200, 0.92, PerformanceLevel.FAST),
        (1000, 0.95, PerformanceLevel.FAST),
        (1000, 0.90, PerformanceLevel.NORMAL),
        (3000, 1.0, PerformanceLevel.NORMAL),
        (6000, 1.0, PerformanceLevel.SLOW),
        (200, 0.70, PerformanceLevel.SLOW),
        (12000, 1.0, PerformanceLevel.VERY_SLOW),
        (200, 0.50, PerformanceLevel.VERY_SLOW),
    ],
)
def test_classify_level(average_ms, success_rate, expected):
    assert classify_level(average_ms, success_rate) is expected


@pytest.mark.parametrize("average_ms", [100, 400, 1000, 3000, 7000, 15000])
def test_multiplier_never_decreases_as_success_rate_drops(average_ms):
    previous = 0.0
    for step in range(100, -1, -1):
        level = classify_level(average_ms, step / 100)
        multiplier = LEVEL_MULTIPLIERS[level]
        assert multiplier >= previous
        previous = multiplier


def test_starts_normal(controller):
    assert controller.level_for("navigation") is PerformanceLevel.NORMAL
    assert controller.multiplier_for("navigation") == 1.0


def test_recomputes_on_every_tenth_sample(controller):
    _feed(controller, "interaction", 200, True, 9)
    assert controller.level_for("interaction") is PerformanceLevel.NORMAL

    controller.record("interaction", 200, True)
    assert controller.level_for("interaction") is PerformanceLevel.ULTRA_FAST
    assert controller.multiplier_for("interaction") == 0.4


def test_recomputes_after_time_threshold(controller, clock):
    _feed(controller, "interaction", 200, True, 6)
    assert controller.level_for("interaction") is PerformanceLevel.NORMAL

    clock.advance(301)
    controller.record("interaction", 200, True)
    assert controller.level_for("interaction") is PerformanceLevel.ULTRA_FAST


def test_stays_normal_below_min_samples(controller):
    _feed(controller, "save", 20000, False, 4)
    assert controller.recompute("save") is PerformanceLevel.NORMAL


def test_very_slow_doubles_delays(controller):
    _feed(controller, "navigation", 12000, True, 10)
    assert controller.level_for("navigation") is PerformanceLevel.VERY_SLOW
    assert controller.scale_delay(1.5, "navigation") == pytest.approx(3.0)


def test_categories_are_independent(controller):
    _feed(controller, "navigation", 12000, True, 10)
    assert controller.level_for("network") is PerformanceLevel.NORMAL


def test_level_recovers_from_window(history):
    controller = AdaptiveTimingController(
        PerformanceHistory(window_size=10, clock=history.now),
        recompute_every=10, recompute_interval=300.0, min_samples=5, enabled=True,
    )
    _feed(controller, "network", 100, False, 10)
    assert controller.level_for("network") is PerformanceLevel.VERY_SLOW

    # Ten good samples push every bad one out of the window
    _feed(controller, "network", 100, True, 10)
    assert controller.level_for("network") is PerformanceLevel.ULTRA_FAST


def test_disabled_controller_is_always_normal(history):
    controller = AdaptiveTimingController(
        history, recompute_every=10, recompute_interval=300.0, min_samples=5, enabled=False
    )
    _feed(controller, "network", 20000, False, 10)
    assert controller.level_for("network") is PerformanceLevel.NORMAL
    assert controller.multiplier_for("network") == 1.0


def test_scale_timeout_grows_with_attempts(controller):
    assert controller.scale_timeout(10, "save") == pytest.approx(10)
    assert controller.scale_timeout(10, "save", attempt=2) == pytest.approx(13)
    assert controller.scale_timeout(10, "save", attempt=3) == pytest.approx(16)
    # Capped at 2.5x
    assert controller.scale_timeout(10, "save", attempt=20) == pytest.approx(25)


def test_scale_timeout_clamps(controller):
    assert controller.scale_timeout(10, "save", attempt=3, maximum=12) == 12
    _feed(controller, "save", 100, True, 10)  # ultra fast → 0.4
    assert controller.scale_timeout(10, "save", minimum=5) == 5


def test_snapshot(controller):
    _feed(controller, "navigation", 12000, True, 10)
    controller.record("click", 300, True)

    snapshot = {t.category: t for t in controller.snapshot()}
    assert set(snapshot) == {"navigation", "interaction"}
    assert snapshot["navigation"].level is PerformanceLevel.VERY_SLOW
    assert snapshot["navigation"].multiplier == 2.0
    assert snapshot["navigation"].samples == 10
    assert snapshot["interaction"].recorded == 1


def test_reset(controller):
    _feed(controller, "navigation", 12000, True, 10)
    controller.reset()
    assert controller.level_for("navigation") is PerformanceLevel.NORMAL
    assert controller.snapshot()[0].samples == 0


def test_custom_thresholds(controller):
    strict = AdaptiveTimingController(
        controller.history,
        LevelThresholds(ultra_fast_ms=50, fast_ms=100, slow_ms=150, very_slow_ms=200),
        recompute_every=10, recompute_interval=300.0, min_samples=5, enabled=True,
    )
    _feed(strict, "save", 175, True, 10)
    assert strict.level_for("save") is PerformanceLevel.SLOW


def test_thresholds_must_be_ordered():
    with pytest.raises(ValueError):
        LevelThresholds(fast_ms=100, ultra_fast_ms=500)
    with pytest.raises(ValueError):
        LevelThresholds(slow_success=0.5, very_slow_success=0.6)


@pytest.mark.parametrize("knob", ["recompute_every", "min_samples"])
def test_zero_knobs_are_rejected_not_defaulted(history, knob):
    with pytest.raises(ValueError):
        AdaptiveTimingController(history, **{knob: 0})
