"""Tests for the SleepJob simulated workload."""

import random

import pytest

from jobs.sleep_job import SleepJob
from models.enums import ErrorClass, OperationCategory
from models.errors import FatalDriverError, NetworkError
from models.job import Job
from retry.classifier import classify_error


def test_sleep_completes_with_result():
    handler = SleepJob()
    result = handler.run({"duration": 0.01})  # very short sleep for fast tests

    assert result["slept_for"] == 0.01
    assert result["attempt"] == 1
    assert "Completed" in result["message"]


def test_zero_duration_returns_immediately():
    handler = SleepJob()
    result = handler.run({"duration": 0.0})
    assert result["slept_for"] == 0.0


def test_guaranteed_failure():
    """fail_probability=1.0 should always raise."""
    handler = SleepJob()
    with pytest.raises(RuntimeError, match="Simulated failure"):
        handler.run({"duration": 0.0, "fail_probability": 1.0})


def test_guaranteed_success():
    handler = SleepJob(rng=random.Random(1))
    for _ in range(10):
        assert handler.run({"duration": 0.0, "fail_probability": 0.0})["slept_for"] == 0.0


def test_fail_times_then_succeed():
    handler = SleepJob()
    payload = {"duration": 0.0, "fail_times": 2, "error_type": "timeout"}

    with pytest.raises(TimeoutError):
        handler.run(payload, attempt=1)
    with pytest.raises(TimeoutError):
        handler.run(payload, attempt=2)
    assert handler.run(payload, attempt=3)["attempt"] == 3


@pytest.mark.parametrize(
    "error_type, exc_cls, expected_class",
    [
        ("timeout", TimeoutError, ErrorClass.RETRYABLE),
        ("network", NetworkError, ErrorClass.RETRYABLE),
        ("fatal", FatalDriverError, ErrorClass.FATAL),
        ("runtime", RuntimeError, ErrorClass.NON_RETRYABLE),
    ],
)
def test_error_types_classify_as_expected(error_type, exc_cls, expected_class):
    handler = SleepJob()
    with pytest.raises(exc_cls) as exc_info:
        handler.run({"duration": 0.0, "fail_probability": 1.0, "error_type": error_type})
    assert classify_error(exc_info.value) is expected_class


def test_custom_error_message():
    with pytest.raises(RuntimeError, match="CPF already registered"):
        SleepJob().run(
            {"duration": 0.0, "fail_probability": 1.0, "error_message": "CPF already registered"}
        )


def test_unknown_error_type():
    with pytest.raises(ValueError, match="Unknown error_type"):
        SleepJob().run({"duration": 0.0, "fail_probability": 1.0, "error_type": "gremlins"})


def test_callable_uses_job_attempts():
    handler = SleepJob()
    job = Job(payload={"duration": 0.0, "fail_times": 1})
    job.record_attempt(2)
    assert handler(job)["attempt"] == 2


def test_make_job():
    job = SleepJob().make_job({"duration": 0.1}, name="sleepy", category="network")
    assert job.name == "sleepy"
    assert job.category is OperationCategory.NETWORK
    assert job.payload == {"duration": 0.1}


def test_job_type():
    assert SleepJob().job_type == "sleep"
