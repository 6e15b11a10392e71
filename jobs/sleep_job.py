"""
Simulated workload job.

Stands in for the real remote-UI work in tests and benchmarks because:
- You control exactly how long it takes (duration parameter)
- You control whether and how it fails

Payload keys:
    duration          seconds to sleep (default 1.0)
    fail_probability  chance of failing each attempt (default 0.0)
    fail_times        fail the first N attempts, then succeed (default 0)
    error_type        what to raise: "runtime" (default), "timeout",
                      "network", "element", "session", "fatal"
    error_message     override the exception message

Example payloads:
    {"duration": 3.0}                                  → sleeps 3 seconds, always succeeds
    {"duration": 0.1, "fail_probability": 1.0}         → fails every attempt, not retryable
    {"duration": 0.1, "fail_times": 2,
     "error_type": "timeout"}                          → 2 retryable failures, then success
    {"duration": 0.1, "fail_probability": 1.0,
     "error_type": "fatal"}                            → "browser has been closed", tried once
"""

import random
import time
from typing import Any, Optional

from jobs.base import AbstractJobHandler
from models.errors import ElementNotFound, FatalDriverError, NetworkError, SessionExpired

_ERROR_TYPES: dict[str, type[Exception]] = {
    "runtime": RuntimeError,
    "timeout": TimeoutError,
    "network": NetworkError,
    "element": ElementNotFound,
    "session": SessionExpired,
    "fatal": FatalDriverError,
}

_DEFAULT_MESSAGES: dict[str, str] = {
    "timeout": "Simulated timeout waiting for page",
    "network": "Simulated network failure",
    "element": "Simulated element not found",
    "session": "Simulated session expired",
    "fatal": "Simulated failure: browser has been closed",
}


class SleepJob(AbstractJobHandler):

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    def run(self, payload: Any, attempt: int = 1) -> dict:
        payload = payload or {}
        duration = payload.get("duration", 1.0)
        fail_probability = payload.get("fail_probability", 0.0)
        fail_times = payload.get("fail_times", 0)

        time.sleep(duration)

        if attempt <= fail_times or self._rng.random() < fail_probability:
            raise self._make_error(payload, fail_probability)

        return {
            "slept_for": duration,
            "attempt": attempt,
            "message": f"Completed sleep of {duration}s",
        }

    @staticmethod
    def _make_error(payload: dict, fail_probability: float) -> Exception:
        error_type = payload.get("error_type", "runtime")
        exc_cls = _ERROR_TYPES.get(error_type)
        if exc_cls is None:
            raise ValueError(
                f"Unknown error_type: '{error_type}'. Available: {list(_ERROR_TYPES)}"
            )
        message = payload.get("error_message") or _DEFAULT_MESSAGES.get(
            error_type, f"Simulated failure (fail_probability={fail_probability})"
        )
        return exc_cls(message)

    @property
    def job_type(self) -> str:
        return "sleep"
