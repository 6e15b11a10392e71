"""
Exception types raised by the engine and understood by the retry classifier.

Two groups:

1. Engine errors — raised by the engine itself. Only PoolStateError ever
   escapes WorkerPool.run(); the others end up attached to a Job as its
   final error so the report can tell failures apart.

2. Driver errors — convenience types a work function can raise. Their class
   names match the default retryable names in retry/policy.py, so raising
   ElementNotFound from a click helper makes it retryable without any
   message matching. FatalDriverError is never retried.
"""


class EngineError(Exception):
    """Base class for errors raised by the engine."""


class PoolStateError(EngineError):
    """The pool's own bookkeeping is broken (not initialized, already running)."""


class JobTimeoutError(EngineError):
    def __init__(self, job_id: str, timeout: float):
        self.job_id = job_id
        self.timeout = timeout
        super().__init__(f"Job {job_id} exceeded timeout of {timeout:.1f}s")


class BatchTimeoutError(EngineError):
    def __init__(self, job_id: str, batch_timeout: float):
        self.job_id = job_id
        self.batch_timeout = batch_timeout
        super().__init__(
            f"Job {job_id} not finished before batch timeout of {batch_timeout:.1f}s"
        )


class JobCancelledError(EngineError):
    def __init__(self, job_id: str, reason: str = "run cancelled"):
        self.job_id = job_id
        self.reason = reason
        super().__init__(f"Job {job_id} not started: {reason}")


class OperationCancelled(EngineError):
    """Raised by a cancellation-aware sleep when its token is cancelled."""


# ── Driver errors ───────────────────────────────────────────────


class DriverError(Exception):
    """Base class for errors coming from the automation driver."""


class FatalDriverError(DriverError):
    """The browser/page/context is gone. Retrying cannot help."""


class NetworkError(DriverError):
    pass


class ElementNotFound(DriverError):
    pass


class SessionExpired(DriverError):
    pass
