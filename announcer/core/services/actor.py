"""
Actor: a mailbox thread that owns a plugin's mutable state.

All reads and writes of a plugin's configuration, subscriber list and queues
run as messages on one thread, so no two config changes or send cycles ever
interleave. Callers either wait for a result (ask / call) or fire and forget
(tell). A periodic tick is posted to the same mailbox by a timer thread.

With threaded=False messages run inline on the caller's thread under a lock
and no timer is started; tests drive ticks by hand.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable
from concurrent.futures import Future
from typing import Any, TypeVar

from announcer.core.services.process_counter import ProcessCounter

logger = logging.getLogger(__name__)

T = TypeVar("T")

_STOP = object()


class ActorStoppedError(RuntimeError):
    """Message posted to an actor that is no longer running."""


class Actor:
    def __init__(
        self,
        name: str,
        counter: ProcessCounter | None = None,
        on_error: Callable[[str], None] | None = None,
        threaded: bool = True,
    ) -> None:
        self.name = name
        self._counter = counter
        self._on_error = on_error
        self._threaded = threaded
        self._mailbox: queue.Queue[Any] = queue.Queue()
        self._inline_lock = threading.RLock()
        self._stop_event = threading.Event()
        self._timers: list[threading.Thread] = []
        self._thread: threading.Thread | None = None
        if threaded:
            self._thread = threading.Thread(target=self._run, name=f"actor-{name}", daemon=True)
            self._thread.start()

    # --- Messaging ---

    def ask(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> Future[T]:
        """Run fn on the actor and return a future for its result."""
        future: Future[T] = Future()
        if self._stop_event.is_set():
            future.set_exception(ActorStoppedError(f"actor {self.name} stopped"))
            return future
        if not self._threaded or threading.current_thread() is self._thread:
            with self._inline_lock:
                self._execute(fn, args, kwargs, future)
            return future
        self._mailbox.put((fn, args, kwargs, future))
        return future

    def call(self, fn: Callable[..., T], *args: Any, timeout: float | None = None, **kwargs: Any) -> T:
        """Run fn on the actor and wait for its result (exceptions propagate)."""
        return self.ask(fn, *args, **kwargs).result(timeout=timeout)

    def tell(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        """Run fn on the actor without waiting; failures are logged and reported."""
        future = self.ask(fn, *args, **kwargs)
        future.add_done_callback(self._report_failure)

    # --- Timers ---

    def every(self, interval: float, fn: Callable[[], Any]) -> None:
        """Post fn to the mailbox every interval seconds until stopped."""
        if not self._threaded:
            return

        def loop() -> None:
            while not self._stop_event.wait(timeout=interval):
                self.tell(fn)

        timer = threading.Thread(target=loop, name=f"actor-{self.name}-timer", daemon=True)
        timer.start()
        self._timers.append(timer)

    def after(self, delay: float, fn: Callable[[], Any]) -> None:
        """Post fn to the mailbox once, delay seconds from now, unless stopped first."""
        if not self._threaded:
            return

        def wait() -> None:
            if not self._stop_event.wait(timeout=delay):
                self.tell(fn)

        threading.Thread(target=wait, name=f"actor-{self.name}-after", daemon=True).start()

    def stop(self, timeout: float = 5.0) -> None:
        if self._stop_event.is_set():
            return
        self._stop_event.set()
        if self._thread is not None:
            self._mailbox.put(_STOP)
            if threading.current_thread() is not self._thread:
                self._thread.join(timeout=timeout)

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    # --- Internals ---

    def _run(self) -> None:
        while True:
            item = self._mailbox.get()
            if item is _STOP:
                break
            fn, args, kwargs, future = item
            self._execute(fn, args, kwargs, future)
        # Fail whatever is still queued
        while True:
            try:
                item = self._mailbox.get_nowait()
            except queue.Empty:
                break
            if item is not _STOP:
                item[3].set_exception(ActorStoppedError(f"actor {self.name} stopped"))

    def _execute(self, fn: Callable[..., Any], args: Any, kwargs: Any, future: Future[Any]) -> None:
        if not future.set_running_or_notify_cancel():
            return
        if self._counter is not None:
            self._counter.start()
        try:
            result = fn(*args, **kwargs)
        except Exception as exc:  # delivered to the waiting caller
            future.set_exception(exc)
        else:
            future.set_result(result)
        finally:
            if self._counter is not None:
                self._counter.end()

    def _report_failure(self, future: Future[Any]) -> None:
        exc = future.exception()
        if exc is None or isinstance(exc, ActorStoppedError):
            return
        logger.error("%s: %s", self.name, exc, exc_info=exc)
        if self._on_error is not None:
            self._on_error(f"{self.name}: {exc}")
