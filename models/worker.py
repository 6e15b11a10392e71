"""
Worker — one logical execution slot in the pool.

A Worker is only DATA: the thread that drives it lives in worker/pool.py.
Each slot is written by exactly one thread (its own), so the lists here
need no locking. The pool and the aggregator only read them, either through
a snapshot while the run is going or after the run has finished.
"""

from dataclasses import dataclass, field
from typing import Optional

from models.enums import JobState
from models.job import Job


@dataclass(eq=False)
class Worker:
    worker_id: int
    busy: bool = False
    current_job: Optional[Job] = None
    succeeded: list[Job] = field(default_factory=list)
    failed: list[Job] = field(default_factory=list)
    busy_time: float = 0.0               # seconds spent executing jobs
    first_started_at: Optional[float] = None
    last_ended_at: Optional[float] = None

    @property
    def processed(self) -> int:
        return len(self.succeeded) + len(self.failed)

    def assign(self, job: Job) -> None:
        self.busy = True
        self.current_job = job

    def release(self, job: Job) -> None:
        """Fold a terminal job into this worker's results and free the slot."""
        if job.state is JobState.SUCCEEDED:
            self.succeeded.append(job)
        else:
            self.failed.append(job)

        self.busy_time += job.duration
        if job.started_at is not None and (
            self.first_started_at is None or job.started_at < self.first_started_at
        ):
            self.first_started_at = job.started_at
        if job.ended_at is not None and (
            self.last_ended_at is None or job.ended_at > self.last_ended_at
        ):
            self.last_ended_at = job.ended_at

        self.busy = False
        self.current_job = None

    def reset(self) -> None:
        self.busy = False
        self.current_job = None
        self.succeeded = []
        self.failed = []
        self.busy_time = 0.0
        self.first_started_at = None
        self.last_ended_at = None

    def __repr__(self) -> str:
        return (
            f"<Worker {self.worker_id} busy={self.busy} "
            f"ok={len(self.succeeded)} failed={len(self.failed)}>"
        )
