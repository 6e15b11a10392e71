"""
Job — one unit of externally executed work.

Lifecycle:
    QUEUED → RUNNING → SUCCEEDED
                     → FAILED     (fatal / exhausted / non-retryable)
                     → TIMED_OUT  (per-job timeout)
    QUEUED → FAILED               (batch timeout or cancellation before start)

Key design decisions:
- payload is opaque: the engine never looks inside it, it only hands the
  job to the caller's work function
- The terminal transition happens EXACTLY ONCE. finish() takes the job's
  lock and returns False if somebody already finished the job. That is what
  keeps a late result from a timed-out attempt (or a worker racing the batch
  timeout) from being counted twice.
- Timestamps are time.monotonic() values: they are only used for durations,
  never shown as wall-clock dates
"""

import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

from models.enums import DEFAULT_CATEGORY, FailureKind, JobState, OperationCategory, resolve_category


@dataclass(eq=False)
class Job:
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    payload: Any = None
    category: OperationCategory = DEFAULT_CATEGORY
    name: Optional[str] = None

    # ── Execution state ─────────────────────────────────────────
    state: JobState = JobState.QUEUED
    attempts: int = 0
    started_at: Optional[float] = None
    ended_at: Optional[float] = None
    worker_id: Optional[int] = None

    # ── Outcome ─────────────────────────────────────────────────
    result: Any = None
    error: Optional[BaseException] = None
    failure_kind: Optional[FailureKind] = None

    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self):
        # Accept category names and aliases ("click", "pje", ...)
        self.category = resolve_category(self.category)

    @property
    def label(self) -> str:
        """Human-readable name for logs and progress events."""
        return self.name or self.job_id

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def duration(self) -> float:
        """Seconds between start and end, 0.0 if the job never ran."""
        if self.started_at is None or self.ended_at is None:
            return 0.0
        return max(0.0, self.ended_at - self.started_at)

    def start(self, worker_id: int, now: Optional[float] = None) -> bool:
        """Mark the job RUNNING. Returns False if it is no longer QUEUED."""
        with self._lock:
            if self.state is not JobState.QUEUED:
                return False
            self.state = JobState.RUNNING
            self.worker_id = worker_id
            self.started_at = time.monotonic() if now is None else now
            return True

    def record_attempt(self, attempt_number: int) -> None:
        """Called at the start of every attempt; ignored once the job is terminal."""
        with self._lock:
            if not self.state.is_terminal:
                self.attempts = max(self.attempts, attempt_number)

    def finish(
        self,
        state: JobState,
        *,
        result: Any = None,
        error: Optional[BaseException] = None,
        failure_kind: Optional[FailureKind] = None,
        now: Optional[float] = None,
    ) -> bool:
        """
        Move the job into a terminal state.

        Returns True if this call performed the transition, False if the job
        was already terminal (the caller must then discard its outcome).
        """
        if not state.is_terminal:
            raise ValueError(f"{state} is not a terminal state")

        with self._lock:
            if self.state.is_terminal:
                return False
            self.state = state
            self.result = result
            self.error = error
            self.failure_kind = failure_kind
            self.ended_at = time.monotonic() if now is None else now
            return True

    def __repr__(self) -> str:
        return f"<Job {self.job_id} [{self.category.value}] {self.state.value}>"
