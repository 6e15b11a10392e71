"""Tests for the Job lifecycle, especially the exactly-once terminal transition."""

import threading

import pytest

from models.enums import FailureKind, JobState, OperationCategory, resolve_category
from models.job import Job


def test_defaults():
    job = Job(payload={"id": 7})
    assert job.state is JobState.QUEUED
    assert job.category is OperationCategory.INTERACTION
    assert job.label == job.job_id
    assert job.duration == 0.0


def test_category_aliases_are_resolved():
    assert Job(category="pje").category is OperationCategory.REMOTE_OPERATION
    assert Job(category="Navigation").category is OperationCategory.NAVIGATION


def test_start_only_from_queued():
    job = Job()
    assert job.start(1, now=10.0) is True
    assert job.start(2, now=11.0) is False
    assert job.worker_id == 1
    assert job.state is JobState.RUNNING


def test_finish_exactly_once():
    job = Job()
    job.start(1, now=10.0)

    assert job.finish(JobState.TIMED_OUT, failure_kind=FailureKind.TIMEOUT, now=12.0) is True
    assert job.finish(JobState.SUCCEEDED, result="late", now=13.0) is False

    assert job.state is JobState.TIMED_OUT
    assert job.result is None
    assert job.duration == 2.0


def test_concurrent_finish_has_one_winner():
    job = Job()
    job.start(1)
    barrier = threading.Barrier(8)
    wins = []

    def racer(i):
        barrier.wait()
        if job.finish(JobState.SUCCEEDED, result=i):
            wins.append(i)

    threads = [threading.Thread(target=racer, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(wins) == 1
    assert job.result == wins[0]


def test_finish_requires_terminal_state():
    with pytest.raises(ValueError):
        Job().finish(JobState.RUNNING)


def test_attempts_frozen_after_finish():
    job = Job()
    job.start(1)
    job.record_attempt(1)
    job.finish(JobState.FAILED, failure_kind=FailureKind.EXHAUSTED)
    job.record_attempt(2)
    assert job.attempts == 1


def test_unknown_category_falls_back_with_warning(caplog):
    with caplog.at_level("WARNING"):
        assert resolve_category("teleport") is OperationCategory.INTERACTION
    assert "Unknown operation category" in caplog.text
