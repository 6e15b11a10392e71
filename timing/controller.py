"""
Adaptive timing controller — turns recent performance into a delay/timeout multiplier.

The remote service is sometimes fast, sometimes crawling. Fixed delays are
either too slow on a good day or too aggressive on a bad one. This
controller watches the PerformanceHistory of each operation category and
classifies it into one of five levels:

    level        multiplier   meaning
    ───────────  ──────────   ───────────────────────────────────────
    ultra_fast   0.4          fast AND almost never failing → shrink waits
    fast         0.6
    normal       1.0          not enough data, or nothing remarkable
    slow         1.5          slow OR failing often → wait longer
    very_slow    2.0

The multiplier is ADVISORY: the retry manager multiplies its backoff delay
by it, and the executor can scale the per-job timeout with it. The
controller itself never sleeps and never does I/O.

When is the level recomputed?
    - every `recompute_every`-th sample of a category (default 10), or
    - when more than `recompute_interval` seconds (default 300) have passed
      since that category was last recomputed
Between recomputations the level is stable, so a single slow click doesn't
make every delay jump around.

Monotonicity: for a fixed average duration, a lower success rate can only
move the level towards very_slow, never towards ultra_fast. Each threshold
on success rate is checked from the worst level down, so the multiplier is
non-decreasing as reliability drops.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Union

from config.settings import settings
from models.enums import OperationCategory, PerformanceLevel
from models.report import CategoryTiming
from timing.history import PerformanceHistory, PerformanceState

logger = logging.getLogger(__name__)


LEVEL_MULTIPLIERS: dict[PerformanceLevel, float] = {
    PerformanceLevel.ULTRA_FAST: 0.4,
    PerformanceLevel.FAST: 0.6,
    PerformanceLevel.NORMAL: 1.0,
    PerformanceLevel.SLOW: 1.5,
    PerformanceLevel.VERY_SLOW: 2.0,
}

# Timeouts grow with the attempt number, up to this factor
MAX_ATTEMPT_TIMEOUT_FACTOR = 2.5
ATTEMPT_TIMEOUT_STEP = 0.3


@dataclass(frozen=True)
class LevelThresholds:
    """Bounds used to classify a window. Durations in milliseconds."""

    ultra_fast_ms: float = 500.0
    fast_ms: float = 1500.0
    slow_ms: float = 5000.0
    very_slow_ms: float = 10000.0
    ultra_fast_success: float = 0.95
    fast_success: float = 0.90
    slow_success: float = 0.75
    very_slow_success: float = 0.60

    def __post_init__(self):
        if not (self.ultra_fast_ms <= self.fast_ms <= self.slow_ms <= self.very_slow_ms):
            raise ValueError("duration thresholds must be ascending")
        if not (self.very_slow_success <= self.slow_success <= self.fast_success <= self.ultra_fast_success):
            raise ValueError("success thresholds must be ascending from very_slow to ultra_fast")


def classify_level(
    average_ms: float,
    success_rate: float,
    thresholds: LevelThresholds = LevelThresholds(),
) -> PerformanceLevel:
    """Pure classification of a window's numbers into a PerformanceLevel."""
    if average_ms > thresholds.very_slow_ms or success_rate < thresholds.very_slow_success:
        return PerformanceLevel.VERY_SLOW
    if average_ms > thresholds.slow_ms or success_rate < thresholds.slow_success:
        return PerformanceLevel.SLOW
    if average_ms < thresholds.ultra_fast_ms and success_rate >= thresholds.ultra_fast_success:
        return PerformanceLevel.ULTRA_FAST
    if average_ms < thresholds.fast_ms and success_rate > thresholds.fast_success:
        return PerformanceLevel.FAST
    return PerformanceLevel.NORMAL


class AdaptiveTimingController:

    def __init__(
        self,
        history: Optional[PerformanceHistory] = None,
        thresholds: Optional[LevelThresholds] = None,
        *,
        recompute_every: Optional[int] = None,
        recompute_interval: Optional[float] = None,
        min_samples: Optional[int] = None,
        enabled: Optional[bool] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.history = history or PerformanceHistory(clock=clock)
        self.thresholds = thresholds or LevelThresholds()
        self.recompute_every = (
            settings.RECOMPUTE_EVERY if recompute_every is None else recompute_every
        )
        self.recompute_interval = (
            settings.RECOMPUTE_INTERVAL if recompute_interval is None else recompute_interval
        )
        self.min_samples = settings.MIN_SAMPLES if min_samples is None else min_samples
        if self.recompute_every < 1:
            raise ValueError("recompute_every must be at least 1")
        if self.min_samples < 1:
            raise ValueError("min_samples must be at least 1")
        self.enabled = settings.ADAPTIVE_TIMING_ENABLED if enabled is None else enabled

    # ── Recording ───────────────────────────────────────────────

    def record(
        self,
        category: Union[str, OperationCategory],
        duration_ms: float,
        success: bool,
    ) -> None:
        """Add one sample and recompute the level if a trigger fired."""
        with self.history.lock:
            state = self.history.record(category, duration_ms, success)
            if self._should_recompute(state):
                self._recompute_locked(state)

    def _should_recompute(self, state: PerformanceState) -> bool:
        if state.recorded % self.recompute_every == 0:
            return True
        return self.history.now() - state.last_recomputed_at > self.recompute_interval

    def recompute(self, category: Union[str, OperationCategory]) -> PerformanceLevel:
        """Force a recomputation for one category and return the new level."""
        with self.history.lock:
            state = self.history.state(category)
            self._recompute_locked(state)
            return state.level

    def _recompute_locked(self, state: PerformanceState) -> None:
        if state.samples < self.min_samples:
            level = PerformanceLevel.NORMAL
        else:
            level = classify_level(state.average_ms, state.success_rate, self.thresholds)

        previous = state.level
        state.level = level
        state.multiplier = LEVEL_MULTIPLIERS[level]
        state.last_recomputed_at = self.history.now()

        if level is not previous:
            state.level_changes += 1
            logger.info(
                f"Performance level for '{state.category.value}': {previous.value} -> {level.value} "
                f"(avg {state.average_ms:.0f}ms, success {state.success_rate:.0%}, "
                f"multiplier {state.multiplier})"
            )

    # ── Queries ─────────────────────────────────────────────────

    def level_for(self, category: Union[str, OperationCategory]) -> PerformanceLevel:
        if not self.enabled:
            return PerformanceLevel.NORMAL
        with self.history.lock:
            return self.history.state(category).level

    def multiplier_for(self, category: Union[str, OperationCategory]) -> float:
        if not self.enabled:
            return 1.0
        with self.history.lock:
            return self.history.state(category).multiplier

    def scale_delay(self, base: float, category: Union[str, OperationCategory]) -> float:
        return max(0.0, base) * self.multiplier_for(category)

    def scale_timeout(
        self,
        base: float,
        category: Union[str, OperationCategory],
        attempt: int = 1,
        minimum: float = 0.0,
        maximum: Optional[float] = None,
    ) -> float:
        """
        Timeout for an operation, scaled by the current level.

        Later attempts get progressively more room (×1.3, ×1.6, ... up to
        ×2.5) because a retry usually means the remote side is struggling.
        """
        factor = self.multiplier_for(category)
        if attempt > 1:
            factor *= min(1 + (attempt - 1) * ATTEMPT_TIMEOUT_STEP, MAX_ATTEMPT_TIMEOUT_FACTOR)

        timeout = base * factor
        if maximum is not None:
            timeout = min(timeout, maximum)
        return max(minimum, timeout)

    def snapshot(self) -> list[CategoryTiming]:
        """Current view of every category seen so far."""
        with self.history.lock:
            result = []
            for category in self.history.categories():
                state = self.history.state(category)
                result.append(
                    CategoryTiming(
                        category=category.value,
                        level=state.level if self.enabled else PerformanceLevel.NORMAL,
                        multiplier=state.multiplier if self.enabled else 1.0,
                        samples=state.samples,
                        recorded=state.recorded,
                        average_ms=round(state.average_ms, 2),
                        success_rate=round(state.success_rate, 4),
                    )
                )
            return result

    def reset(self) -> None:
        self.history.clear()
        logger.info("Adaptive timing state reset")
