"""
Performance history — rolling window of timed-operation samples per category.

Every completed attempt (success or failure) becomes a PerformanceSample.
Samples are grouped by operation category, and each category keeps only the
most recent `window_size` samples:

    category "interaction"
    ┌────────────────────────────────────────────┐
    │ oldest ... ... ... ... ... ... ... newest  │  deque(maxlen=window_size)
    └────────────────────────────────────────────┘
       ↑ evicted automatically when a new sample arrives and the window is full

The derived numbers (average duration, success rate) are always computed
FROM the window, so they can never drift away from the samples.
The level/multiplier stored on PerformanceState is written only by the
AdaptiveTimingController (timing/controller.py) while it holds `lock`.

Thread safety: every worker thread records into the same history, so all
access goes through one lock. Each operation is a single short critical
section — nobody holds this lock while sleeping or calling user code.
"""

import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional, Union

from config.settings import settings
from models.enums import OperationCategory, PerformanceLevel, resolve_category


@dataclass(frozen=True)
class PerformanceSample:
    category: OperationCategory
    duration_ms: float
    success: bool
    timestamp: float


@dataclass
class PerformanceState:
    """Everything known about one category. Mutated only under PerformanceHistory.lock."""

    category: OperationCategory
    window: deque
    last_recomputed_at: float
    recorded: int = 0                       # total samples ever recorded (not just in window)
    level: PerformanceLevel = PerformanceLevel.NORMAL
    multiplier: float = 1.0
    level_changes: int = 0

    @property
    def samples(self) -> int:
        return len(self.window)

    @property
    def average_ms(self) -> float:
        if not self.window:
            return 0.0
        return sum(s.duration_ms for s in self.window) / len(self.window)

    @property
    def success_rate(self) -> float:
        if not self.window:
            return 1.0
        return sum(1 for s in self.window if s.success) / len(self.window)


class PerformanceHistory:

    def __init__(
        self,
        window_size: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window_size = (
            settings.PERFORMANCE_WINDOW_SIZE if window_size is None else window_size
        )
        if self.window_size < 1:
            raise ValueError("window_size must be at least 1")
        self._clock = clock
        self._states: dict[OperationCategory, PerformanceState] = {}
        # RLock: the controller takes it around record() + recompute as one step
        self.lock = threading.RLock()

    def now(self) -> float:
        return self._clock()

    def state(self, category: Union[str, OperationCategory]) -> PerformanceState:
        """Return the (live) state for a category, creating it on first use."""
        key = resolve_category(category)
        with self.lock:
            state = self._states.get(key)
            if state is None:
                state = PerformanceState(
                    category=key,
                    window=deque(maxlen=self.window_size),
                    last_recomputed_at=self._clock(),
                )
                self._states[key] = state
            return state

    def record(
        self,
        category: Union[str, OperationCategory],
        duration_ms: float,
        success: bool,
    ) -> PerformanceState:
        """Append one sample and return the category's state."""
        key = resolve_category(category)
        with self.lock:
            state = self.state(key)
            state.window.append(
                PerformanceSample(
                    category=key,
                    duration_ms=max(0.0, float(duration_ms)),
                    success=bool(success),
                    timestamp=self._clock(),
                )
            )
            state.recorded += 1
            return state

    def samples(self, category: Union[str, OperationCategory]) -> list[PerformanceSample]:
        """Copy of the current window, oldest first."""
        with self.lock:
            return list(self.state(category).window)

    def categories(self) -> list[OperationCategory]:
        with self.lock:
            return list(self._states)

    def clear(self) -> None:
        with self.lock:
            self._states.clear()
