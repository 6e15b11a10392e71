"""
Result aggregator — folds every worker's results into one AggregateReport.

consolidate() is a PURE function of its inputs: it only reads the workers'
job lists and never mutates them, so calling it twice on the same workers
gives identical reports. That lets the pool hand out the report and still
keep the workers around for inspection.

How the timing numbers relate:

    wall_clock_time = last job end - run start
    sequential_time = Σ job durations          (what one worker would have needed)
    speedup         = sequential_time / wall_clock_time
    efficiency      = speedup / worker_count   (1.0 = every worker busy all the time)
    time_reduction  = 1 - wall_clock_time / sequential_time

Example: 8 jobs of 1s on 4 workers → wall clock ≈ 2s, sequential 8s,
speedup 4.0, efficiency 1.0, time reduction 75%.

Verdict: the batch is a failure only if NOTHING succeeded and at least one
job failed. Partial success is still success; the failures list tells the
caller which jobs to look at (or re-submit).
"""

import logging
from collections import Counter
from typing import Iterable, Optional, Sequence

from models.enums import FailureKind, JobState
from models.job import Job
from models.report import AggregateReport, DurationStats, FailureDetail, WorkerReport
from models.worker import Worker

logger = logging.getLogger(__name__)


class ResultAggregator:

    def consolidate(
        self,
        workers: Sequence[Worker],
        *,
        unassigned: Iterable[Job] = (),
        started_at: Optional[float] = None,
        submitted: Optional[int] = None,
        skipped: int = 0,
        worker_count: Optional[int] = None,
        cancelled: bool = False,
        batch_timed_out: bool = False,
    ) -> AggregateReport:
        """
        Build the final report.

        Args:
            workers: the pool's worker slots after the run
            unassigned: jobs that were finished without ever reaching a
                        worker (cancelled or batch-timed-out while queued)
            started_at: monotonic timestamp of the run start
            submitted: jobs handed to the pool (defaults to everything seen)
            skipped: jobs filtered out before queueing
            worker_count: N used for efficiency (defaults to len(workers))
        """
        succeeded_jobs = [job for w in workers for job in w.succeeded]
        failed_jobs = [job for w in workers for job in w.failed]
        # A force-failed job may also have been released by its worker in the meantime.
        # Compare objects: job_id is caller-chosen and need not be unique
        seen = {id(job) for job in succeeded_jobs + failed_jobs}
        failed_jobs += [job for job in unassigned if id(job) not in seen]

        succeeded = len(succeeded_jobs)
        failed = len(failed_jobs)
        worker_count = worker_count or len(workers) or 1
        if submitted is None:
            submitted = succeeded + failed

        # ── Timing ──────────────────────────────────────────────
        ran = [job for job in succeeded_jobs + failed_jobs if job.started_at is not None]
        durations = [job.duration for job in ran]
        sequential_time = sum(durations)

        wall_clock_time = 0.0
        end_times = [job.ended_at for job in ran if job.ended_at is not None]
        if end_times:
            start = started_at if started_at is not None else min(j.started_at for j in ran)
            wall_clock_time = max(0.0, max(end_times) - start)

        speedup = sequential_time / wall_clock_time if wall_clock_time > 0 else 0.0
        efficiency = speedup / worker_count
        time_reduction = (
            (1 - wall_clock_time / sequential_time) * 100 if sequential_time > 0 else 0.0
        )

        duration_stats = DurationStats()
        if durations:
            duration_stats = DurationStats(
                minimum=round(min(durations), 4),
                maximum=round(max(durations), 4),
                mean=round(sum(durations) / len(durations), 4),
            )

        # ── Failures ────────────────────────────────────────────
        failures = [self._failure_detail(job) for job in failed_jobs]
        failures_by_kind = dict(Counter(f.kind for f in failures))

        success = not (succeeded == 0 and failed > 0)
        error = None
        if not success:
            error = f"Processing failed: all {failed} job(s) failed"

        return AggregateReport(
            submitted=submitted,
            succeeded=succeeded,
            failed=failed,
            skipped=skipped,
            success=success,
            error=error,
            workers=[
                WorkerReport(
                    worker_id=w.worker_id,
                    succeeded=len(w.succeeded),
                    failed=len(w.failed),
                    busy_time=round(w.busy_time, 4),
                )
                for w in workers
            ],
            worker_count=worker_count,
            failures_by_kind=failures_by_kind,
            failures=failures,
            wall_clock_time=round(wall_clock_time, 4),
            sequential_time=round(sequential_time, 4),
            speedup=round(speedup, 4),
            efficiency=round(efficiency, 4),
            time_reduction_pct=round(time_reduction, 2),
            duration_stats=duration_stats,
            cancelled=cancelled,
            batch_timed_out=batch_timed_out,
        )

    @staticmethod
    def _failure_detail(job: Job) -> FailureDetail:
        kind = job.failure_kind
        if kind is None:
            # A failed job without a kind can only come from a timeout state
            kind = FailureKind.TIMEOUT if job.state is JobState.TIMED_OUT else FailureKind.EXHAUSTED
        return FailureDetail(
            job_id=job.job_id,
            label=job.label,
            kind=kind,
            error=f"{type(job.error).__name__}: {job.error}" if job.error else "",
            attempts=job.attempts,
            worker_id=job.worker_id,
        )


def log_report(report: AggregateReport) -> None:
    """One-line summary plus the failure breakdown, at INFO."""
    logger.info(
        f"Batch finished: {report.succeeded}/{report.submitted} succeeded, "
        f"{report.failed} failed, {report.skipped} skipped in {report.wall_clock_time:.2f}s "
        f"(speedup {report.speedup:.2f}x, efficiency {report.efficiency:.0%})"
    )
    for kind, count in report.failures_by_kind.items():
        logger.info(f"  {kind.value}: {count}")
