"""Tests for partition_jobs, the pre-queue skip hook."""

from jobs.filters import partition_jobs
from models.job import Job


def _make_jobs(*names):
    return [Job(name=name) for name in names]


def test_no_predicate_runs_everything():
    jobs = _make_jobs("a", "b")
    to_run, skipped = partition_jobs(jobs)
    assert to_run == jobs
    assert skipped == []


def test_split_keeps_order():
    jobs = _make_jobs("a", "b", "c", "d")
    already_registered = {"b", "d"}

    to_run, skipped = partition_jobs(jobs, lambda job: job.name in already_registered)

    assert [j.name for j in to_run] == ["a", "c"]
    assert [j.name for j in skipped] == ["b", "d"]


def test_failing_predicate_runs_the_job():
    def skip(job):
        if job.name == "b":
            raise ConnectionError("cache unavailable")
        return True

    to_run, skipped = partition_jobs(_make_jobs("a", "b"), skip)

    assert [j.name for j in to_run] == ["b"]
    assert [j.name for j in skipped] == ["a"]
