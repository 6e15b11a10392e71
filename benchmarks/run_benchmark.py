"""
CLI entry point for running throughput benchmarks.

Usage:
    python -m benchmarks.run_benchmark                          # 1, 2, 4, 8 workers, 40 jobs
    python -m benchmarks.run_benchmark --concurrency 4          # single level
    python -m benchmarks.run_benchmark --num-jobs 200 --duration 0.02
    python -m benchmarks.run_benchmark --fail-probability 0.2   # exercise the retry path

Everything runs in-process with simulated jobs; nothing external is needed.
"""

import argparse
import json
import logging

from benchmarks.throughput import DEFAULT_LEVELS, ThroughputBenchmark
from config.settings import settings


def main():
    parser = argparse.ArgumentParser(description="Job Engine Throughput Benchmark")
    parser.add_argument(
        "--num-jobs", type=int, default=40,
        help="Number of jobs per run (default: 40)",
    )
    parser.add_argument(
        "--concurrency", type=int, default=None,
        help="Single concurrency level to benchmark (default: 1, 2, 4, 8)",
    )
    parser.add_argument(
        "--duration", type=float, default=0.05,
        help="Average simulated job duration in seconds (default: 0.05)",
    )
    parser.add_argument(
        "--fail-probability", type=float, default=0.0,
        help="Chance that an attempt fails with a retryable timeout (default: 0)",
    )
    parser.add_argument(
        "--json", action="store_true",
        help="Also print the raw results as JSON",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    # Per-job log lines drown the table at INFO
    logging.getLogger("worker.executor").setLevel(logging.WARNING)

    levels = [args.concurrency] if args.concurrency else list(DEFAULT_LEVELS)

    print("=== Job Engine Throughput Benchmark ===")
    print(f"Jobs: {args.num_jobs} | Levels: {levels} | Duration: {args.duration}s\n")

    bench = ThroughputBenchmark(
        num_jobs=args.num_jobs,
        duration=args.duration,
        fail_probability=args.fail_probability,
    )
    results = bench.run_all_levels(levels)

    if args.json:
        print("\n=== RESULTS ===")
        print(json.dumps(results, indent=2))

    # Summary table
    print("\n{:<8} {:>10} {:>14} {:>9} {:>11} {:>8}".format(
        "Workers", "Time (s)", "Throughput", "Speedup", "Efficiency", "Failed"
    ))
    print("-" * 65)
    for r in results:
        print("{:<8} {:>10.3f} {:>10.2f} j/s {:>8.2f}x {:>10.0%} {:>8}".format(
            r["concurrency"], r["wall_clock_sec"], r["throughput_jobs_per_sec"],
            r["speedup"], r["efficiency"], r["failed"],
        ))


if __name__ == "__main__":
    main()
