"""
Abstract base class for job handlers.

The pool only needs a work function: any callable that takes a Job and
either returns a result or raises. A handler class is the tidier way to
write one when the work has configuration of its own:

    class RegisterEntity(AbstractJobHandler):
        category = OperationCategory.REMOTE_OPERATION

        def run(self, payload, attempt=1):
            ... drive the remote UI with payload ...
            return {"registered": payload["id"]}

    pool.run(jobs, RegisterEntity())

Same Strategy pattern as everywhere else in the project:
- AbstractJobHandler = interface
- SleepJob (and the caller's own handlers) = implementations

Raising from run() means the attempt failed. Whether it is retried is up to
the retry manager (retry/classifier.py), not the handler.
"""

from abc import ABC, abstractmethod
from typing import Any

from models.enums import DEFAULT_CATEGORY, OperationCategory
from models.job import Job


class AbstractJobHandler(ABC):

    # Category used for jobs built with make_job(); the pool itself uses job.category
    category: OperationCategory = DEFAULT_CATEGORY

    @abstractmethod
    def run(self, payload: Any, attempt: int = 1) -> Any:
        """
        Execute one attempt of the job.

        Args:
            payload: the job's opaque payload, passed through unmodified
            attempt: 1 for the first try, 2 for the first retry, ...

        Returns:
            anything; stored as Job.result on success

        Raises:
            Any exception → the retry manager decides what happens next.
        """
        ...

    @property
    @abstractmethod
    def job_type(self) -> str:
        """Short name for logs (e.g., 'sleep')."""
        ...

    def make_job(self, payload: Any = None, name: str = None, **kwargs) -> Job:
        """Build a Job for this handler with the handler's category."""
        kwargs.setdefault("category", self.category)
        return Job(payload=payload, name=name, **kwargs)

    def __call__(self, job: Job) -> Any:
        return self.run(job.payload, attempt=max(job.attempts, 1))
