"""
Cancellation token — a cooperative "please stop" flag.

Nothing in the engine is ever killed from outside. Instead, long waits go
through token.wait(seconds), which returns early (True) as soon as the token
is cancelled, and loops check token.cancelled between steps.

Tokens form a tree:

    run token (WorkerPool.cancel(), batch timeout)
      ├── job token A   ← cancelled alone when job A hits its per-job timeout
      └── job token B

Cancelling a parent cancels every child; cancelling a child leaves the
parent and its siblings alone.
"""

import threading
from typing import Optional


class CancellationToken:

    def __init__(self, parent: Optional["CancellationToken"] = None):
        self._event = threading.Event()
        self._children: list[CancellationToken] = []
        self._lock = threading.Lock()
        self.reason: Optional[str] = None
        if parent is not None:
            parent._adopt(self)

    def _adopt(self, child: "CancellationToken") -> None:
        with self._lock:
            if not self._event.is_set():
                self._children.append(child)
                return
        child.cancel(self.reason)

    def child(self) -> "CancellationToken":
        return CancellationToken(parent=self)

    def cancel(self, reason: Optional[str] = None) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self.reason = reason
            self._event.set()
            children, self._children = self._children, []
        for child in children:
            child.cancel(reason)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Sleep up to `timeout` seconds. True means the token was cancelled."""
        return self._event.wait(timeout)

    def __repr__(self) -> str:
        return f"<CancellationToken cancelled={self.cancelled}>"
