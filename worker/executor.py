"""
Job executor — runs a single job inside a worker thread.

This is the code that actually DOES THE WORK. Each worker thread calls
executor.execute(job, work_fn, ...), and this method handles the full
lifecycle of one job:

    1. Mark the job RUNNING (Job.start)
    2. Start a runner thread that calls work_fn through the RetryManager
    3. Wait for whichever comes first:
         ┌──────────────────┬──────────────────────────────────────────┐
         │ runner finished  │ SUCCEEDED, or FAILED with fatal /         │
         │                  │ exhausted / non_retryable                 │
         │ per-job timeout  │ TIMED_OUT, job token cancelled            │
         │ batch sealed     │ FAILED with batch_timeout                 │
         └──────────────────┴──────────────────────────────────────────┘
    4. Return the (now terminal) job to the worker

Why a separate runner thread per job?
Python can't interrupt a thread that is blocked inside someone else's code.
So the worker doesn't run work_fn itself: it WAITS on it with a deadline.
If the deadline passes, the worker moves on and the runner is left to
finish in the background. Its result is thrown away (Job.finish is
exactly-once) and its cancellation token stops the retry loop at the next
backoff, so an abandoned job never starts another attempt on its own.

Thread safety:
- Job.start / Job.finish take the job's own lock
- The RetryManager and the timing history lock their own state
So any number of workers can call execute() at the same time.
"""

import logging
import threading
from concurrent.futures import FIRST_COMPLETED, Future, wait
from typing import Any, Callable, Mapping, Optional

from config.settings import settings
from models.enums import ErrorClass, FailureKind, JobState, OperationCategory, resolve_category
from models.errors import BatchTimeoutError, JobTimeoutError
from models.job import Job
from retry.classifier import classify_error
from retry.manager import RetryManager
from retry.policy import RetryPolicy, get_policy
from worker.cancellation import CancellationToken

logger = logging.getLogger(__name__)

WorkFn = Callable[[Job], Any]


class JobExecutor:

    def __init__(
        self,
        retry_manager: RetryManager,
        *,
        job_timeout: Optional[float] = None,
        min_job_timeout: Optional[float] = None,
        adaptive_timeout: Optional[bool] = None,
        policies: Optional[Mapping[OperationCategory, RetryPolicy]] = None,
    ):
        self.retry = retry_manager
        # Per-run overrides on top of the manager's own table
        self.policies = dict(retry_manager.policies)
        if policies:
            self.policies.update({resolve_category(c): p for c, p in policies.items()})
        self.job_timeout = settings.JOB_TIMEOUT if job_timeout is None else job_timeout
        self.min_job_timeout = (
            settings.MIN_JOB_TIMEOUT if min_job_timeout is None else min_job_timeout
        )
        self.adaptive_timeout = (
            settings.ADAPTIVE_JOB_TIMEOUT if adaptive_timeout is None else adaptive_timeout
        )

    def policy_for(self, job: Job) -> RetryPolicy:
        return get_policy(job.category, policies=self.policies)

    def timeout_for(self, job: Job) -> float:
        """Per-job timeout. With adaptive timeouts, fast categories get less room."""
        if not self.adaptive_timeout:
            return self.job_timeout
        return self.retry.timing.scale_timeout(
            self.job_timeout,
            job.category,
            minimum=min(self.min_job_timeout, self.job_timeout),
            maximum=self.job_timeout,
        )

    def execute(
        self,
        job: Job,
        work_fn: WorkFn,
        worker_id: int,
        *,
        run_token: CancellationToken,
        sealed: Future,
    ) -> Job:
        """
        Execute a single job. Called by WorkerPool from a worker thread.

        Args:
            job: a QUEUED job taken from the queue
            work_fn: the caller's work function
            worker_id: id of the calling worker slot
            run_token: the run's cancellation token (a child is made per job)
            sealed: resolved by the pool when the batch timeout hits;
                    its result is the batch timeout in seconds

        Returns:
            the job, in a terminal state
        """
        if not job.start(worker_id):
            logger.debug(f"Job {job.label} was already {job.state.value}, skipping")
            return job

        job_token = run_token.child()
        outcome: Future = Future()
        outcome.set_running_or_notify_cancel()

        runner = threading.Thread(
            target=self._run_attempts,
            args=(job, work_fn, job_token, outcome),
            name=f"job-runner-{job.job_id}",
            daemon=True,
        )
        runner.start()

        timeout = self.timeout_for(job)
        done, _ = wait([outcome, sealed], timeout=timeout, return_when=FIRST_COMPLETED)

        if outcome in done:
            self._finish_from_outcome(job, outcome, run_token)
        elif sealed in done:
            job_token.cancel("batch timeout")
            error = BatchTimeoutError(job.job_id, sealed.result())
            if job.finish(JobState.FAILED, error=error, failure_kind=FailureKind.BATCH_TIMEOUT):
                logger.warning(f"Job {job.label} abandoned by batch timeout")
        else:
            job_token.cancel("job timeout")
            error = JobTimeoutError(job.job_id, timeout)
            if job.finish(JobState.TIMED_OUT, error=error, failure_kind=FailureKind.TIMEOUT):
                logger.warning(f"Job {job.label} timed out after {timeout:.1f}s")

        return job

    def _run_attempts(
        self,
        job: Job,
        work_fn: WorkFn,
        job_token: CancellationToken,
        outcome: Future,
    ) -> None:
        """Runner thread body: the whole retry loop for one job."""
        try:
            result = self.retry.execute(
                lambda: work_fn(job),
                job.category,
                self.policy_for(job),
                cancel_token=job_token,
                on_attempt=job.record_attempt,
            )
        except Exception as e:
            outcome.set_exception(e)
        else:
            outcome.set_result(result)

    def _finish_from_outcome(self, job: Job, outcome: Future, run_token: CancellationToken) -> None:
        error = outcome.exception()
        if error is None:
            if job.finish(JobState.SUCCEEDED, result=outcome.result()):
                logger.info(
                    f"Job {job.label} completed in {job.duration:.3f}s "
                    f"({job.attempts} attempt{'s' if job.attempts != 1 else ''})"
                )
            return

        kind = self.failure_kind(job, error, run_token)
        if job.finish(JobState.FAILED, error=error, failure_kind=kind):
            logger.error(
                f"Job {job.label} failed ({kind.value}) after {job.attempts} attempt(s): "
                f"{type(error).__name__}: {error}"
            )

    def failure_kind(
        self,
        job: Job,
        error: BaseException,
        run_token: Optional[CancellationToken] = None,
    ) -> FailureKind:
        """Map the final error of a job onto the report's failure kinds."""
        policy = self.policy_for(job)
        error_class = classify_error(error, policy)
        if error_class is ErrorClass.FATAL:
            return FailureKind.FATAL
        if error_class is ErrorClass.NON_RETRYABLE:
            return FailureKind.NON_RETRYABLE
        # Retryable: either every attempt was used, or the run was cancelled mid-backoff
        if run_token is not None and run_token.cancelled and job.attempts < policy.max_attempts:
            return FailureKind.CANCELLED
        return FailureKind.EXHAUSTED
