"""
Progress reporter — delivers ProgressSnapshots to the caller's sink.

Workers must never wait on a slow UI or a broken callback, so delivery is
decoupled through a bounded buffer:

    worker threads ──publish()──► queue.Queue(maxsize) ──► delivery thread ──► sink(snapshot)
                         │
                    buffer full? → drop the snapshot, count it in `dropped`

publish() never blocks. A later snapshot always supersedes an earlier one
(every snapshot carries the full picture), so dropping one loses nothing
that the next snapshot won't show.

A sink that raises is logged and ignored; the exception never reaches the
worker that published the snapshot.
"""

import logging
import queue
import threading
from typing import Callable, Optional

from config.settings import settings
from models.report import ProgressSnapshot

logger = logging.getLogger(__name__)

ProgressSink = Callable[[ProgressSnapshot], None]

# Marks the end of the stream for the delivery thread
_STOP = object()


class ProgressReporter:

    def __init__(self, sink: Optional[ProgressSink] = None, buffer_size: Optional[int] = None):
        self.sink = sink
        self.buffer_size = settings.PROGRESS_BUFFER_SIZE if buffer_size is None else buffer_size
        if self.buffer_size < 1:
            raise ValueError("buffer_size must be at least 1")
        self._buffer: queue.Queue = queue.Queue(maxsize=self.buffer_size)
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self.published = 0
        self.delivered = 0
        self.dropped = 0
        self.sink_errors = 0
        self.last: Optional[ProgressSnapshot] = None

    def start(self) -> None:
        if self.sink is None or self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._deliver_loop, name="progress-reporter", daemon=True
        )
        self._thread.start()

    def publish(self, snapshot: ProgressSnapshot) -> bool:
        """Queue a snapshot for delivery. Returns False if it was dropped."""
        with self._lock:
            self.published += 1
            self.last = snapshot
        if self.sink is None:
            return True

        try:
            self._buffer.put_nowait(snapshot)
            return True
        except queue.Full:
            with self._lock:
                self.dropped += 1
                dropped = self.dropped
            logger.warning(f"Progress buffer full, dropped snapshot ({dropped} dropped so far)")
            return False

    def _deliver_loop(self) -> None:
        while True:
            item = self._buffer.get()
            if item is _STOP:
                break
            try:
                self.sink(item)
                with self._lock:
                    self.delivered += 1
            except Exception as e:
                with self._lock:
                    self.sink_errors += 1
                logger.error(f"Progress sink raised: {e}", exc_info=True)

    def close(self, timeout: Optional[float] = 5.0) -> None:
        """Deliver what is buffered, then stop the delivery thread."""
        if self._thread is None:
            return
        # Blocking put: the stop marker must not be dropped while the sink is keeping up
        try:
            self._buffer.put(_STOP, timeout=timeout)
        except queue.Full:
            logger.warning("Progress sink is stuck, abandoning the delivery thread")
            self._thread = None
            return
        self._thread.join(timeout)
        if self._thread.is_alive():
            logger.warning("Progress delivery thread did not stop in time")
        self._thread = None
