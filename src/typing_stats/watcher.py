#!/usr/bin/env python3
"""
Filesystem change notifications for the shared sync file.

Delivery is best effort: bursts of events collapse into one debounced
callback, and a missed event is covered by the next periodic sync.
"""

import os
import threading
import traceback
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer


class Debouncer:
    """Runs fn once, delay seconds after the last of a burst of triggers."""

    def __init__(self, delay: float, fn: Callable[[], None]):
        self.delay = delay
        self.fn = fn
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()

    def trigger(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.delay, self._run)
            self._timer.daemon = True
            self._timer.start()

    def _run(self) -> None:
        try:
            self.fn()
        except Exception:
            traceback.print_exc()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None


class SharedFileEventHandler(FileSystemEventHandler):
    """Forwards events that touch the shared file to a debouncer."""

    def __init__(self, path, debouncer: Debouncer):
        super().__init__()
        self.path = os.path.realpath(str(path))
        self.debouncer = debouncer

    def _matches(self, event: FileSystemEvent) -> bool:
        if event.is_directory:
            return False
        candidates = [event.src_path, getattr(event, "dest_path", "")]
        return any(
            os.path.realpath(os.fsdecode(p)) == self.path for p in candidates if p
        )

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type in ("created", "modified", "moved", "deleted") and (
            self._matches(event)
        ):
            self.debouncer.trigger()


class ChangeWatcher:
    """Signals when the shared sync file changes on disk."""

    def __init__(
        self,
        path,
        on_change: Callable[[], None],
        debounce_delay: float = 0.5,
        observer_factory: Callable = Observer,
    ):
        self.path = Path(path)
        self.debouncer = Debouncer(debounce_delay, on_change)
        self.handler = SharedFileEventHandler(self.path, self.debouncer)
        self._observer_factory = observer_factory
        self._observer = None

    @property
    def running(self) -> bool:
        return self._observer is not None

    def start(self) -> bool:
        """Begin watching. Returns False if the directory cannot be watched."""
        if self._observer is not None:
            return True

        watch_dir = self.path.parent
        try:
            watch_dir.mkdir(parents=True, exist_ok=True)
            observer = self._observer_factory()
            observer.schedule(self.handler, str(watch_dir), recursive=False)
            observer.start()
        except OSError as e:
            print(f"Warning: Could not watch {watch_dir}: {e}")
            return False

        self._observer = observer
        return True

    def stop(self) -> None:
        self.debouncer.cancel()
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=5)
        self._observer = None
