"""
Worker pool — runs a batch of jobs on N worker threads and reports the outcome.

Architecture:
    ┌─────────────────────────────────────────────────────────────┐
    │                        WorkerPool.run()                     │
    │                                                             │
    │   JobQueue (FIFO, shared)   [job][job][job][job][job]...    │
    │          │ get()                                            │
    │          ▼                                                  │
    │  ┌───────────────────────────────────────────────┐          │
    │  │ ThreadPoolExecutor (N threads)                │          │
    │  │  ┌─────────┐ ┌─────────┐ ┌─────────┐          │          │
    │  │  │Worker 1 │ │Worker 2 │ │Worker N │          │          │
    │  │  │ execute │ │ execute │ │ (idle)  │          │          │
    │  │  └────┬────┘ └────┬────┘ └─────────┘          │          │
    │  └───────┼───────────┼───────────────────────────┘          │
    │          ▼           ▼                                      │
    │     JobExecutor → RetryManager → work_fn(job)               │
    │          │                                                  │
    │          └── progress snapshot after every job ──► sink     │
    │                                                             │
    │   main thread: waits for the workers, up to BATCH_TIMEOUT   │
    └─────────────────────────────────────────────────────────────┘

Each worker loops: check cancellation → wait while paused → take the next
job → execute it → record the outcome in its OWN result lists. Workers never
share result lists, so no locking is needed on the hot path; the aggregator
sums them at the end.

Stopping a run early, three ways:

    cancel()          stop dequeuing; queued jobs → FAILED (cancelled);
                      running jobs finish normally (bounded by JOB_TIMEOUT)
    max_failures      same as cancel(), triggered by the N-th failed job
    batch timeout     stop dequeuing, wait BATCH_GRACE_PERIOD for running jobs,
                      then seal the batch: running AND queued jobs →
                      FAILED (batch_timeout). run() still returns a report.

A job failure never raises out of run(). Only a broken pool does
(PoolStateError: already running) or bad arguments (ValueError).
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable, Iterable, Mapping, Optional

from config.settings import settings
from jobs.filters import partition_jobs
from models.enums import FailureKind, JobState, OperationCategory
from models.errors import BatchTimeoutError, JobCancelledError, PoolStateError
from models.job import Job
from models.report import AggregateReport, ProgressSnapshot, WorkerStatus
from models.worker import Worker
from reporting.aggregator import ResultAggregator, log_report
from reporting.progress import ProgressReporter, ProgressSink
from retry.manager import RetryManager
from retry.policy import RetryPolicy
from scheduler.job_queue import JobQueue, QueueClosed
from timing.controller import AdaptiveTimingController
from worker.cancellation import CancellationToken
from worker.executor import JobExecutor, WorkFn

logger = logging.getLogger(__name__)


class WorkerPool:

    def __init__(
        self,
        timing: Optional[AdaptiveTimingController] = None,
        retry_manager: Optional[RetryManager] = None,
        aggregator: Optional[ResultAggregator] = None,
    ):
        if retry_manager is not None and timing is None:
            timing = retry_manager.timing
        self.timing = timing or AdaptiveTimingController()
        self.retry = retry_manager or RetryManager(self.timing)
        self.aggregator = aggregator or ResultAggregator()

        self._state_lock = threading.Lock()
        self._publish_lock = threading.Lock()
        self._running = False
        self._workers: list[Worker] = []
        self._queue: Optional[JobQueue] = None
        self._run_token: Optional[CancellationToken] = None
        self._unpaused = threading.Event()
        self._unpaused.set()
        self._cancelled = False
        self._started_at: Optional[float] = None
        self._total = 0
        self._completed = 0
        self._failures = 0
        self._unassigned: list[Job] = []
        self._max_failures: Optional[int] = None
        self._reporter: Optional[ProgressReporter] = None
        self.last_report: Optional[AggregateReport] = None

    # ── Run ─────────────────────────────────────────────────────

    def run(
        self,
        jobs: Iterable[Job],
        work_fn: WorkFn,
        concurrency: Optional[int] = None,
        *,
        job_timeout: Optional[float] = None,
        batch_timeout: Optional[float] = None,
        grace_period: Optional[float] = None,
        max_failures: Optional[int] = None,
        adaptive_timeout: Optional[bool] = None,
        policies: Optional[Mapping[OperationCategory, RetryPolicy]] = None,
        skip: Optional[Callable[[Job], bool]] = None,
        on_progress: Optional[ProgressSink] = None,
    ) -> AggregateReport:
        """
        Execute every job with at most `concurrency` running at once.

        Any argument left as None falls back to config.settings.
        `policies` replaces the retry policy of the categories it names,
        for this run only.
        Blocks until the batch drains, is cancelled, or times out, and
        always returns the AggregateReport.
        """
        concurrency = settings.WORKER_POOL_SIZE if concurrency is None else concurrency
        if not isinstance(concurrency, int) or isinstance(concurrency, bool) or concurrency < 1:
            raise ValueError(f"concurrency must be a positive integer, got {concurrency!r}")

        jobs = list(jobs)
        seen = set()
        for job in jobs:
            if job.state is not JobState.QUEUED:
                raise ValueError(
                    f"Job {job.label} is {job.state.value}; only queued jobs can be submitted"
                )
            if id(job) in seen:
                raise ValueError(f"Job {job.label} was submitted twice")
            seen.add(id(job))

        if policies is not None:
            for category, policy in policies.items():
                if not isinstance(policy, RetryPolicy):
                    raise ValueError(
                        f"Policy for {category!r} must be a RetryPolicy, got {type(policy).__name__}"
                    )

        with self._state_lock:
            if self._running:
                raise PoolStateError("WorkerPool is already running")
            self._running = True
            # From here on cancel() and pause() act on THIS run, even while
            # the skip predicate is still sorting the jobs
            self._run_token = CancellationToken()
            self._cancelled = False
            self._unpaused.set()

        try:
            return self._run(
                jobs,
                work_fn,
                concurrency,
                job_timeout=job_timeout,
                batch_timeout=settings.BATCH_TIMEOUT if batch_timeout is None else batch_timeout,
                grace_period=settings.BATCH_GRACE_PERIOD if grace_period is None else grace_period,
                max_failures=settings.MAX_FAILURES if max_failures is None else max_failures,
                adaptive_timeout=adaptive_timeout,
                policies=policies,
                skip=skip,
                on_progress=on_progress,
            )
        finally:
            with self._state_lock:
                self._running = False

    def _run(
        self,
        jobs: list[Job],
        work_fn: WorkFn,
        concurrency: int,
        *,
        job_timeout: Optional[float],
        batch_timeout: float,
        grace_period: float,
        max_failures: Optional[int],
        adaptive_timeout: Optional[bool],
        policies: Optional[Mapping[OperationCategory, RetryPolicy]],
        skip: Optional[Callable[[Job], bool]],
        on_progress: Optional[ProgressSink],
    ) -> AggregateReport:
        to_run, skipped = partition_jobs(jobs, skip)

        # ── Fresh per-run state ─────────────────────────────────
        self._workers = [Worker(worker_id=i + 1) for i in range(concurrency)]
        self._queue = JobQueue(to_run)
        self._queue.close()  # the batch is fixed up front; workers exit when it is empty
        self._total = len(to_run)
        self._completed = 0
        self._failures = 0
        self._unassigned = []
        self._max_failures = max_failures
        self._started_at = time.monotonic()
        self._reporter = ProgressReporter(on_progress)
        self._reporter.start()

        sealed: Future = Future()
        sealed.set_running_or_notify_cancel()
        executor = JobExecutor(
            self.retry,
            job_timeout=job_timeout,
            adaptive_timeout=adaptive_timeout,
            policies=policies,
        )

        logger.info(
            f"Worker pool started: {len(to_run)} jobs on {concurrency} workers "
            f"({len(skipped)} skipped)"
        )
        self._publish_progress()

        threads = ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="job-worker")
        futures = []
        if self._run_token.cancelled:
            # cancel() arrived while the jobs were being partitioned
            logger.info("Batch cancelled before any worker started")
        else:
            for worker in self._workers:
                future = threads.submit(
                    self._worker_loop, worker, work_fn, executor, sealed
                )
                future.add_done_callback(self._on_worker_done)
                futures.append(future)

        # ── Wait for the batch, up to the batch timeout ─────────
        _, not_done = wait(futures, timeout=batch_timeout)
        batch_timed_out = bool(not_done)
        forced: list[Job] = []

        if batch_timed_out:
            logger.warning(
                f"Batch timeout of {batch_timeout:.1f}s reached, "
                f"waiting {grace_period:.1f}s for running jobs"
            )
            self._stop_dequeuing("batch timeout")
            _, not_done = wait(not_done, timeout=grace_period)
            # Seal: workers still waiting on a job give it up right away
            sealed.set_result(batch_timeout)
            _, not_done = wait(not_done, timeout=max(grace_period, 1.0))
            if not_done:
                forced = self._force_finish_stuck(batch_timeout)

        threads.shutdown(wait=False, cancel_futures=True)

        # ── Whatever is still queued never ran ──────────────────
        unassigned = self._finish_unassigned(self._queue.drain(), batch_timed_out, batch_timeout)
        self._unassigned = unassigned + forced

        self._publish_progress()
        self._reporter.close()

        report = self.aggregator.consolidate(
            self._workers,
            unassigned=self._unassigned,
            started_at=self._started_at,
            submitted=len(jobs),
            skipped=len(skipped),
            worker_count=concurrency,
            cancelled=self._cancelled,
            batch_timed_out=batch_timed_out,
        )
        log_report(report)
        self.last_report = report
        return report

    def _worker_loop(
        self,
        worker: Worker,
        work_fn: WorkFn,
        executor: JobExecutor,
        sealed: Future,
    ) -> None:
        """One worker slot: take jobs until the queue is empty or the run stops."""
        token = self._run_token
        while not token.cancelled:
            self._unpaused.wait()
            if token.cancelled:
                break

            try:
                job = self._queue.get(block=False)
            except QueueClosed:
                break
            if job is None:
                break

            worker.assign(job)
            try:
                executor.execute(
                    job, work_fn, worker.worker_id, run_token=token, sealed=sealed
                )
            except Exception as e:
                # Bug in the engine itself: keep the accounting intact anyway
                logger.error(f"Worker {worker.worker_id} crashed on job {job.label}: {e}", exc_info=True)
                job.finish(JobState.FAILED, error=e, failure_kind=FailureKind.NON_RETRYABLE)
            worker.release(job)
            self._on_job_done(job)

            if sealed.done():
                break

        logger.debug(f"Worker {worker.worker_id} exiting after {worker.processed} jobs")

    def _on_worker_done(self, future: Future) -> None:
        """Done-callback on each worker thread, only for logging unexpected exceptions."""
        if future.cancelled():
            return
        exc = future.exception()
        if exc:
            logger.error(f"Unhandled worker exception: {exc}")

    def _on_job_done(self, job: Job) -> None:
        with self._state_lock:
            self._completed += 1
            if job.state is not JobState.SUCCEEDED:
                self._failures += 1
            hit_limit = (
                self._max_failures is not None
                and self._failures >= self._max_failures
                and not self._run_token.cancelled
            )

        if hit_limit:
            logger.warning(
                f"{self._failures} jobs failed (max_failures={self._max_failures}), "
                f"cancelling the rest of the batch"
            )
            self.cancel()
        self._publish_progress()

    def _stop_dequeuing(self, reason: str) -> None:
        self._run_token.cancel(reason)
        # Paused workers must wake up to see the cancellation
        self._unpaused.set()

    def _finish_unassigned(
        self,
        remaining: list[Job],
        batch_timed_out: bool,
        batch_timeout: float,
    ) -> list[Job]:
        for job in remaining:
            if batch_timed_out:
                job.finish(
                    JobState.FAILED,
                    error=BatchTimeoutError(job.job_id, batch_timeout),
                    failure_kind=FailureKind.BATCH_TIMEOUT,
                )
            else:
                job.finish(
                    JobState.FAILED,
                    error=JobCancelledError(job.job_id, self._run_token.reason or "run cancelled"),
                    failure_kind=FailureKind.CANCELLED,
                )
        if remaining:
            logger.warning(f"{len(remaining)} queued jobs were never started")
        return remaining

    def _force_finish_stuck(self, batch_timeout: float) -> list[Job]:
        """Last resort for worker threads that did not react to the seal."""
        forced = []
        for worker in self._workers:
            job = worker.current_job
            if job is None:
                continue
            if job.finish(
                JobState.FAILED,
                error=BatchTimeoutError(job.job_id, batch_timeout),
                failure_kind=FailureKind.BATCH_TIMEOUT,
            ):
                logger.error(f"Worker {worker.worker_id} is stuck, force-failed job {job.label}")
                forced.append(job)
        return forced

    # ── Control ─────────────────────────────────────────────────

    def cancel(self) -> None:
        """Stop taking new jobs. Running jobs finish; queued jobs are marked cancelled."""
        with self._state_lock:
            if not self._running or self._run_token is None:
                return
            self._cancelled = True
        logger.info("Cancelling batch: no new jobs will be started")
        self._stop_dequeuing("run cancelled")

    def pause(self) -> None:
        """Workers finish their current job, then wait before taking the next one."""
        if self._running:
            self._unpaused.clear()
            logger.info("Worker pool paused")

    def resume(self) -> None:
        if not self._unpaused.is_set():
            self._unpaused.set()
            logger.info("Worker pool resumed")

    @property
    def running(self) -> bool:
        return self._running

    @property
    def paused(self) -> bool:
        return self._running and not self._unpaused.is_set()

    @property
    def workers(self) -> list[Worker]:
        return list(self._workers)

    # ── Progress ────────────────────────────────────────────────

    def progress(self) -> ProgressSnapshot:
        """Point-in-time view of the current (or last) run."""
        workers = list(self._workers)
        # A force-failed job can also land in its worker's lists once the worker
        # comes back, so count distinct jobs
        finished = {id(job) for w in workers for job in w.succeeded + w.failed}
        finished.update(id(job) for job in self._unassigned)
        completed = len(finished)
        total = self._total
        elapsed = time.monotonic() - self._started_at if self._started_at is not None else 0.0
        throughput = completed / elapsed if elapsed > 0 else 0.0
        remaining = max(0, total - completed)
        eta = remaining / throughput if throughput > 0 else 0.0

        statuses = []
        for w in workers:
            current = w.current_job
            statuses.append(
                WorkerStatus(
                    worker_id=w.worker_id,
                    busy=w.busy,
                    current_job=current.label if current is not None else None,
                    succeeded=len(w.succeeded),
                    failed=len(w.failed),
                )
            )

        return ProgressSnapshot(
            workers=statuses,
            completed=completed,
            total=total,
            percentage=round(completed / total * 100, 2) if total else 100.0,
            elapsed=round(elapsed, 3),
            throughput=round(throughput, 3),
            eta=round(eta, 3),
            running=self._running,
            paused=self.paused,
        )

    def _publish_progress(self) -> None:
        # Build and queue under one lock so the sink sees `completed` only go up
        with self._publish_lock:
            if self._reporter is not None:
                self._reporter.publish(self.progress())


def run_batch(
    jobs: Iterable[Job],
    work_fn: WorkFn,
    concurrency: Optional[int] = None,
    **kwargs,
) -> AggregateReport:
    """
    One-shot convenience: a fresh WorkerPool (and fresh timing state) per call.

    Keyword arguments go straight to WorkerPool.run(), including `policies`
    for a per-category retry table.
    """
    return WorkerPool().run(jobs, work_fn, concurrency, **kwargs)
