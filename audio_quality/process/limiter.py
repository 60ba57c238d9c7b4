import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from .. import config


class ProcessLimiter:
    """
    Counting semaphore bounding how many external processes run at once.

    Shared across every file being analyzed, so the total number of live
    ffmpeg/ffprobe processes stays bounded regardless of the file-level
    worker pool size. Waiters are not served in any particular order.
    """

    def __init__(self, max_processes: Optional[int] = None):
        if max_processes is None:
            max_processes = config.default_parallelism()
        self.max_processes = max(1, int(max_processes))
        self._active = 0
        self._cond = threading.Condition(threading.Lock())

    @property
    def active(self) -> int:
        """Number of slots currently held."""
        with self._cond:
            return self._active

    @contextmanager
    def acquire(self) -> Iterator[None]:
        """
        Blocks until a slot is free, holds it for the duration of the
        `with` block, and releases it on every exit path.
        """
        with self._cond:
            while self._active >= self.max_processes:
                self._cond.wait()
            self._active += 1
        try:
            yield
        finally:
            with self._cond:
                self._active -= 1
                self._cond.notify()
