"""
Tests for the JobExecutor: one job, start to terminal state.

The retry manager comes from conftest with recorded sleeps, so retry paths
run instantly. Timeouts use real (short) sleeps inside the work function.
"""

import time
from concurrent.futures import Future

import pytest

from models.enums import FailureKind, JobState
from models.errors import BatchTimeoutError, JobTimeoutError
from models.job import Job
from worker.cancellation import CancellationToken
from worker.executor import JobExecutor


def _make_job(category="interaction", **kwargs) -> Job:
    return Job(payload=kwargs.pop("payload", {}), category=category, **kwargs)


def _open_future() -> Future:
    future = Future()
    future.set_running_or_notify_cancel()
    return future


def _execute(executor, job, work_fn, run_token=None, sealed=None):
    return executor.execute(
        job, work_fn, worker_id=1,
        run_token=run_token or CancellationToken(),
        sealed=sealed or _open_future(),
    )


class _FailTimes:
    def __init__(self, error, times):
        self.error = error
        self.times = times
        self.calls = 0

    def __call__(self, job):
        self.calls += 1
        if self.times < 0 or self.calls <= self.times:
            raise self.error
        return {"job": job.job_id}


@pytest.fixture
def executor(retry_manager):
    return JobExecutor(retry_manager, job_timeout=5.0, min_job_timeout=1.0, adaptive_timeout=False)


def test_success(executor):
    job = _make_job()
    _execute(executor, job, lambda j: {"job": j.job_id})

    assert job.state is JobState.SUCCEEDED
    assert job.result == {"job": job.job_id}
    assert job.attempts == 1
    assert job.worker_id == 1
    assert job.duration >= 0


def test_payload_is_passed_through_unmodified(executor):
    payload = {"cpf": "123", "items": [1, 2]}
    seen = []
    job = _make_job(payload=payload)
    _execute(executor, job, lambda j: seen.append(j.payload))

    assert seen[0] is payload


def test_transient_failures_then_success(executor):
    job = _make_job()
    work = _FailTimes(TimeoutError("slow page"), times=2)
    _execute(executor, job, work)

    assert job.state is JobState.SUCCEEDED
    assert job.attempts == 3


def test_fatal_failure(executor):
    job = _make_job()
    work = _FailTimes(RuntimeError("page has been closed"), times=-1)
    _execute(executor, job, work)

    assert job.state is JobState.FAILED
    assert job.failure_kind is FailureKind.FATAL
    assert work.calls == 1


def test_non_retryable_failure(executor):
    job = _make_job()
    _execute(executor, job, _FailTimes(ValueError("bad input"), times=-1))

    assert job.state is JobState.FAILED
    assert job.failure_kind is FailureKind.NON_RETRYABLE
    assert isinstance(job.error, ValueError)


def test_exhausted_retries(executor):
    job = _make_job(category="interaction")  # 3 retries
    work = _FailTimes(TimeoutError("still slow"), times=-1)
    _execute(executor, job, work)

    assert job.failure_kind is FailureKind.EXHAUSTED
    assert job.attempts == 4
    assert work.calls == 4


def test_per_job_timeout_discards_late_result(retry_manager):
    executor = JobExecutor(retry_manager, job_timeout=0.05, adaptive_timeout=False)
    job = _make_job()

    def slow(j):
        time.sleep(0.3)
        return "late"

    started = time.monotonic()
    _execute(executor, job, slow)

    assert time.monotonic() - started < 0.25
    assert job.state is JobState.TIMED_OUT
    assert job.failure_kind is FailureKind.TIMEOUT
    assert isinstance(job.error, JobTimeoutError)

    time.sleep(0.4)  # let the abandoned attempt finish
    assert job.state is JobState.TIMED_OUT
    assert job.result is None


def test_sealed_batch_abandons_running_job(executor):
    sealed = _open_future()
    sealed.set_result(30.0)
    job = _make_job()

    def slow(j):
        time.sleep(0.3)

    _execute(executor, job, slow, sealed=sealed)

    assert job.state is JobState.FAILED
    assert job.failure_kind is FailureKind.BATCH_TIMEOUT
    assert isinstance(job.error, BatchTimeoutError)


def test_cancelled_run_stops_retrying(executor):
    token = CancellationToken()
    token.cancel("run cancelled")
    job = _make_job()
    work = _FailTimes(TimeoutError("slow"), times=-1)

    _execute(executor, job, work, run_token=token)

    assert work.calls == 1
    assert job.failure_kind is FailureKind.CANCELLED


def test_terminal_job_is_not_run_again(executor):
    job = _make_job()
    job.finish(JobState.FAILED, failure_kind=FailureKind.CANCELLED)
    calls = []

    _execute(executor, job, calls.append)

    assert calls == []
    assert job.failure_kind is FailureKind.CANCELLED


def test_adaptive_timeout_follows_category_level(retry_manager, controller):
    executor = JobExecutor(retry_manager, job_timeout=60.0, min_job_timeout=5.0, adaptive_timeout=True)
    assert executor.timeout_for(_make_job("save")) == pytest.approx(60.0)

    for _ in range(10):
        controller.record("save", 100, True)  # ultra fast → 0.4
    assert executor.timeout_for(_make_job("save")) == pytest.approx(24.0)

    for _ in range(10):
        controller.record("navigation", 20000, True)  # very slow, but never above the ceiling
    assert executor.timeout_for(_make_job("navigation")) == pytest.approx(60.0)


def test_fixed_timeout_ignores_level(retry_manager, controller):
    executor = JobExecutor(retry_manager, job_timeout=60.0, adaptive_timeout=False)
    for _ in range(10):
        controller.record("save", 100, True)
    assert executor.timeout_for(_make_job("save")) == 60.0
