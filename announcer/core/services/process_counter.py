"""
In-flight operation counter.

Every handler, plugin call and worker tick that touches shared state or does
I/O is wrapped in track(). On shutdown the app waits until the count drops
back to zero before closing storage.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class ProcessCounter:
    def __init__(self) -> None:
        self._count = 0
        self._cond = threading.Condition()

    def start(self) -> None:
        with self._cond:
            self._count += 1

    def end(self) -> None:
        with self._cond:
            self._count -= 1
            if self._count <= 0:
                self._count = 0
                self._cond.notify_all()

    @contextmanager
    def track(self) -> Iterator[None]:
        self.start()
        try:
            yield
        finally:
            self.end()

    @property
    def count(self) -> int:
        with self._cond:
            return self._count

    def wait_idle(self, poll_interval: float = 1.0, timeout: float | None = None) -> bool:
        """
        Block until no operation is in flight.

        Returns False if timeout elapsed first.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while self._count > 0:
                logger.info("Waiting for %d running operation(s)", self._count)
                wait_for = poll_interval
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return False
                    wait_for = min(poll_interval, remaining)
                self._cond.wait(timeout=wait_for)
        return True
