"""
Shared job queue — the one place all workers take work from.

Jobs leave in the order they were put in (FIFO). That fixes the START order,
not the completion order: with N workers, a short job submitted later can
finish before a long job submitted earlier.

Data structure: collections.deque guarded by a threading.Condition
- put:  append to right  → O(1), wakes one waiting worker
- get:  pop from left    → O(1), blocks while empty (unless closed)

Why not queue.Queue? Because the pool needs two extra operations that
queue.Queue doesn't have:
- close(): wake EVERY blocked worker and tell it no more work is coming
- drain(): atomically take whatever is left, so the pool can mark those
  jobs as cancelled / batch-timed-out without a worker grabbing one halfway
"""

import threading
from collections import deque
from typing import Iterable, Optional

from models.job import Job


class QueueClosed(Exception):
    """get() on a closed, empty queue."""


class JobQueue:

    def __init__(self, jobs: Optional[Iterable[Job]] = None):
        self._queue: deque[Job] = deque(jobs or ())
        self._cond = threading.Condition()
        self._closed = False

    def put(self, job: Job) -> None:
        with self._cond:
            if self._closed:
                raise QueueClosed("queue is closed")
            self._queue.append(job)
            self._cond.notify()

    def put_many(self, jobs: Iterable[Job]) -> None:
        with self._cond:
            if self._closed:
                raise QueueClosed("queue is closed")
            self._queue.extend(jobs)
            self._cond.notify_all()

    def get(self, block: bool = True, timeout: Optional[float] = None) -> Optional[Job]:
        """
        Remove and return the next job.

        Returns None when the queue is empty and either `block` is False or
        `timeout` expired. Raises QueueClosed once the queue is closed AND
        empty, so a worker can tell "nothing right now" from "nothing ever".
        """
        with self._cond:
            if block:
                self._cond.wait_for(lambda: self._queue or self._closed, timeout=timeout)
            if self._queue:
                return self._queue.popleft()
            if self._closed:
                raise QueueClosed("queue is closed")
            return None

    def peek(self) -> Optional[Job]:
        with self._cond:
            return self._queue[0] if self._queue else None

    def drain(self) -> list[Job]:
        """Take every remaining job at once."""
        with self._cond:
            remaining = list(self._queue)
            self._queue.clear()
            return remaining

    def close(self) -> None:
        """No more puts. Blocked getters wake up; they still receive what's left."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        return self._closed

    def size(self) -> int:
        with self._cond:
            return len(self._queue)

    def __len__(self) -> int:
        return self.size()
