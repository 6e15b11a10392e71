"""
Shared test fixtures.

These replace real time with controllable stand-ins:
- FakeClock → the timing controller's "now", advanced by hand
- recorded sleeps → the retry manager's backoff waits, captured instead of slept

This means tests:
- Run in milliseconds (no real backoff delays)
- Are deterministic (no jitter unless a test asks for it, fixed RNG seed)
- Are fully isolated (each test gets fresh timing state)
"""

import random

import pytest

from retry.manager import RetryManager
from timing.controller import AdaptiveTimingController
from timing.history import PerformanceHistory
from worker.pool import WorkerPool


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def history(clock):
    return PerformanceHistory(window_size=50, clock=clock)


@pytest.fixture
def controller(history):
    """Controller with the default knobs, independent of any .env file."""
    return AdaptiveTimingController(
        history,
        recompute_every=10,
        recompute_interval=300.0,
        min_samples=5,
        enabled=True,
    )


@pytest.fixture
def sleeps():
    """Every backoff delay the retry manager asked for, in order."""
    return []


@pytest.fixture
def retry_manager(controller, sleeps):
    return RetryManager(controller, min_delay=0.1, sleep=sleeps.append, rng=random.Random(0))


@pytest.fixture
def pool(controller):
    """A pool whose retries don't actually sleep."""
    manager = RetryManager(controller, min_delay=0.1, sleep=lambda seconds: None)
    return WorkerPool(retry_manager=manager)
