#!/usr/bin/env python3
"""
Background worker and timers for sync work.
All shared-file I/O runs on a single worker thread, one task at a time.
"""

import threading
import traceback
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional


class SyncWorker:
    """Single background thread that runs sync tasks strictly in order."""

    def __init__(self, name: str = "typing-stats-sync"):
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def submit(self, fn: Callable, *args, **kwargs) -> Optional[Future]:
        """Queue a task. Returns None once the worker has been shut down."""
        with self._lock:
            if self._closed:
                return None
            future = self._executor.submit(fn, *args, **kwargs)
        future.add_done_callback(self._report_failure)
        return future

    @staticmethod
    def _report_failure(future: Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            print(f"Error in sync task: {error}")
            traceback.print_exception(type(error), error, error.__traceback__)

    def shutdown(self) -> None:
        """Stop accepting tasks and run everything already queued to completion."""
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=True)


class RepeatingTask:
    """Calls a function every interval seconds until cancelled.

    The function is only dispatched here; long-running work belongs on the
    SyncWorker so that cancelling never interrupts a write.
    """

    def __init__(self, interval: float, fn: Callable[[], None]):
        self.interval = interval
        self.fn = fn
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        with self._lock:
            self._running = True
            self._schedule()

    def _schedule(self) -> None:
        self._timer = threading.Timer(self.interval, self._run)
        self._timer.daemon = True
        self._timer.start()

    def _run(self) -> None:
        with self._lock:
            if not self._running:
                return
        try:
            self.fn()
        except Exception:
            traceback.print_exc()
        with self._lock:
            if self._running:
                self._schedule()

    def cancel(self) -> None:
        with self._lock:
            self._running = False
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
