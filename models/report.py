"""
Pydantic schemas for everything the engine hands back to the caller.

These are NOT live objects — they are immutable snapshots:
- AggregateReport: final outcome of one batch run (built once, at the end)
- ProgressSnapshot: point-in-time view of a running batch
- CategoryTiming: what the adaptive timing controller currently believes

Using pydantic here instead of plain dicts means the report serializes
with report.model_dump_json() and a caller gets validation errors
instead of silently missing keys.
"""

from typing import Optional

from pydantic import BaseModel, Field

from models.enums import FailureKind, PerformanceLevel


class FailureDetail(BaseModel):
    """One failed job, with enough context for a caller to decide whether to re-submit it."""

    job_id: str
    label: str
    kind: FailureKind
    error: str
    attempts: int = 0
    worker_id: Optional[int] = None


class WorkerReport(BaseModel):
    worker_id: int
    succeeded: int
    failed: int
    busy_time: float = Field(description="Seconds this worker spent executing jobs")


class DurationStats(BaseModel):
    minimum: float = 0.0
    maximum: float = 0.0
    mean: float = 0.0


class AggregateReport(BaseModel):
    """Consolidated result of a batch. Totals are order-independent sums."""

    submitted: int
    succeeded: int
    failed: int
    skipped: int = 0

    # Overall verdict: False only when NOTHING succeeded and something failed
    success: bool
    error: Optional[str] = None

    workers: list[WorkerReport] = Field(default_factory=list)
    worker_count: int
    failures_by_kind: dict[FailureKind, int] = Field(default_factory=dict)
    failures: list[FailureDetail] = Field(default_factory=list)

    # ── Timing ──────────────────────────────────────────────────
    wall_clock_time: float = 0.0   # run start → last completion (seconds)
    sequential_time: float = 0.0   # sum of per-job durations (seconds)
    speedup: float = 0.0           # sequential_time / wall_clock_time
    efficiency: float = 0.0        # speedup / worker_count
    time_reduction_pct: float = 0.0
    duration_stats: DurationStats = Field(default_factory=DurationStats)

    cancelled: bool = False
    batch_timed_out: bool = False

    @property
    def completed(self) -> int:
        return self.succeeded + self.failed

    def failed_job_ids(self, *kinds: FailureKind) -> list[str]:
        """Ids of failed jobs, optionally limited to some failure kinds (e.g. for re-submission)."""
        return [f.job_id for f in self.failures if not kinds or f.kind in kinds]


class WorkerStatus(BaseModel):
    worker_id: int
    busy: bool
    current_job: Optional[str] = None
    succeeded: int = 0
    failed: int = 0


class ProgressSnapshot(BaseModel):
    workers: list[WorkerStatus] = Field(default_factory=list)
    completed: int = 0
    total: int = 0
    percentage: float = 0.0
    elapsed: float = 0.0      # seconds since the run started
    throughput: float = 0.0   # completed jobs per second
    eta: float = 0.0          # estimated seconds until the queue drains
    running: bool = False
    paused: bool = False


class CategoryTiming(BaseModel):
    category: str
    level: PerformanceLevel
    multiplier: float
    samples: int
    recorded: int
    average_ms: float
    success_rate: float
