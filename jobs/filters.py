"""
Job classification hook — decide up front which jobs need no work at all.

In the registration workflow most entities are often already registered
from a previous run. Checking that is cheap compared to driving the remote
UI, so the caller can pass a `skip` predicate and those jobs never reach a
worker. They are counted as skipped in the report, not as successes.

A predicate that raises does NOT skip the job: when in doubt, do the work.
"""

import logging
from typing import Callable, Iterable, Optional

from models.job import Job

logger = logging.getLogger(__name__)


def partition_jobs(
    jobs: Iterable[Job],
    skip: Optional[Callable[[Job], bool]] = None,
) -> tuple[list[Job], list[Job]]:
    """Split jobs into (to_run, skipped), keeping the original order in both."""
    to_run: list[Job] = []
    skipped: list[Job] = []

    for job in jobs:
        if skip is None:
            to_run.append(job)
            continue
        try:
            should_skip = bool(skip(job))
        except Exception as e:
            logger.warning(f"Skip check failed for job {job.label}, running it anyway: {e}")
            should_skip = False

        (skipped if should_skip else to_run).append(job)

    if skipped:
        logger.info(f"Skipping {len(skipped)} of {len(to_run) + len(skipped)} jobs")
    return to_run, skipped
