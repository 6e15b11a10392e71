"""
Throughput benchmark — measures speedup and efficiency at each concurrency level.

How it works:
1. Build N simulated jobs (SleepJob, short sleeps, optional flaky failures)
2. Run the whole batch through a WorkerPool with 1, 2, 4, ... workers
3. Read wall clock, speedup and efficiency straight from the AggregateReport

This answers the practical question "how many browser instances are worth
it?": speedup should grow almost linearly while the remote side keeps up,
and efficiency drops once workers start waiting on each other.

Each level gets a FRESH pool, so the adaptive timing state of one level
doesn't leak into the next.
"""

import random

from jobs.sleep_job import SleepJob
from models.job import Job
from models.report import AggregateReport
from worker.pool import WorkerPool

DEFAULT_LEVELS = (1, 2, 4, 8)


class ThroughputBenchmark:

    def __init__(
        self,
        num_jobs: int = 40,
        duration: float = 0.05,
        fail_probability: float = 0.0,
        seed: int = 42,
    ):
        self.num_jobs = num_jobs
        self.duration = duration
        self.fail_probability = fail_probability
        self.seed = seed

    def make_jobs(self) -> list[Job]:
        """Jobs with slightly varied durations so workers don't run in lockstep."""
        rng = random.Random(self.seed)
        handler = SleepJob()
        return [
            handler.make_job(
                {
                    "duration": round(self.duration * rng.uniform(0.5, 1.5), 4),
                    "fail_probability": self.fail_probability,
                    "error_type": "timeout",
                },
                name=f"bench-{i}",
                category="interaction",
            )
            for i in range(self.num_jobs)
        ]

    def run(self, concurrency: int) -> dict:
        """Run the benchmark for a single concurrency level."""
        handler = SleepJob(rng=random.Random(self.seed))
        report: AggregateReport = WorkerPool().run(self.make_jobs(), handler, concurrency)
        throughput = report.completed / report.wall_clock_time if report.wall_clock_time else 0.0

        return {
            "concurrency": concurrency,
            "num_jobs": self.num_jobs,
            "succeeded": report.succeeded,
            "failed": report.failed,
            "wall_clock_sec": report.wall_clock_time,
            "throughput_jobs_per_sec": round(throughput, 2),
            "speedup": report.speedup,
            "efficiency": report.efficiency,
        }

    def run_all_levels(self, levels=DEFAULT_LEVELS) -> list[dict]:
        results = []
        for concurrency in levels:
            print(f"\n--- Benchmarking {concurrency} worker(s) ---")
            result = self.run(concurrency)
            results.append(result)
            print(
                f"  {result['throughput_jobs_per_sec']} jobs/sec "
                f"({result['wall_clock_sec']}s wall clock, speedup {result['speedup']}x)"
            )
        return results
