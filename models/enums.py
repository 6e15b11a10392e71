"""
Shared enumerations used across the entire project.

Using Python enums (inheriting from str) means:
- They serialize to JSON automatically ("succeeded", not "JobState.SUCCEEDED")
- They work as pydantic field values in the reports
- They can be compared directly against plain strings
- Typos become immediate errors instead of silent bugs
"""

import enum
import logging
from typing import Union

from config.settings import settings

logger = logging.getLogger(__name__)


class JobState(str, enum.Enum):
    QUEUED = "queued"        # submitted, waiting for a worker
    RUNNING = "running"      # a worker is executing it
    SUCCEEDED = "succeeded"  # work function returned
    FAILED = "failed"        # gave up (fatal, exhausted, batch timeout, cancelled)
    TIMED_OUT = "timed_out"  # exceeded the per-job timeout, result discarded

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.SUCCEEDED, JobState.FAILED, JobState.TIMED_OUT)


class FailureKind(str, enum.Enum):
    FATAL = "fatal"                  # driver/host torn down, never retried
    EXHAUSTED = "exhausted"          # retryable, but every attempt failed
    NON_RETRYABLE = "non_retryable"  # matched no retryable rule, tried once
    TIMEOUT = "timeout"              # per-job timeout
    BATCH_TIMEOUT = "batch_timeout"  # the whole run ran out of time
    CANCELLED = "cancelled"          # run cancelled before the job started


class ErrorClass(str, enum.Enum):
    FATAL = "fatal"
    RETRYABLE = "retryable"
    NON_RETRYABLE = "non_retryable"


class PerformanceLevel(str, enum.Enum):
    ULTRA_FAST = "ultra_fast"
    FAST = "fast"
    NORMAL = "normal"
    SLOW = "slow"
    VERY_SLOW = "very_slow"


class OperationCategory(str, enum.Enum):
    NAVIGATION = "navigation"              # page loads, redirects
    INTERACTION = "interaction"            # clicks, typing, selects
    ELEMENT_SEARCH = "element_search"      # waiting for / locating elements
    NETWORK = "network"                    # raw network calls
    REMOTE_OPERATION = "remote_operation"  # multi-step operations on the remote service
    SAVE = "save"                          # persisting a form


DEFAULT_CATEGORY = OperationCategory(settings.DEFAULT_CATEGORY)

# Short names the automation code uses for the same categories
_CATEGORY_ALIASES: dict[str, OperationCategory] = {
    "click": OperationCategory.INTERACTION,
    "fill": OperationCategory.INTERACTION,
    "select": OperationCategory.INTERACTION,
    "search": OperationCategory.ELEMENT_SEARCH,
    "wait": OperationCategory.ELEMENT_SEARCH,
    "pje": OperationCategory.REMOTE_OPERATION,
    "remote": OperationCategory.REMOTE_OPERATION,
}


def resolve_category(
    name: Union[str, OperationCategory, None],
    default: OperationCategory = DEFAULT_CATEGORY,
) -> OperationCategory:
    """
    Turn a category name (or alias) into an OperationCategory.

    Unknown names fall back to `default` (interaction) with a warning
    instead of raising, so a typo in a caller never kills a job.
    """
    if isinstance(name, OperationCategory):
        return name
    if name is None:
        return default

    key = name.strip().lower()
    try:
        return OperationCategory(key)
    except ValueError:
        pass

    alias = _CATEGORY_ALIASES.get(key)
    if alias is not None:
        return alias

    logger.warning(f"Unknown operation category '{name}', using '{default.value}'")
    return default
