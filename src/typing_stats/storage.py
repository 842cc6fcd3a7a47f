#!/usr/bin/env python3
"""
Data storage and persistence for Typing Stats.
Handles file I/O for the shared sync file and the local count snapshot.
"""

import json
import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, Dict, Optional

from .models import LocalSnapshot, SyncData


def atomic_write_bytes(path: Path, payload: bytes) -> None:
    """Write payload to path via a temporary file and rename.

    Readers see either the old file or the complete new one, never a partial
    write. Raises OSError on failure after removing the temporary file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
    )
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
    except BaseException:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise


class SharedStore:
    """Reads and writes the shared JSON document holding every device's counts."""

    def __init__(self, path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def read_bytes(self) -> Optional[bytes]:
        """Get the raw file contents, or None if the file does not exist."""
        try:
            return self.path.read_bytes()
        except FileNotFoundError:
            return None

    @staticmethod
    def decode(raw: Optional[bytes]) -> SyncData:
        """Decode raw file contents. Missing content is an empty store.

        Raises ValueError when the content is not a valid sync document.
        """
        if raw is None or not raw.strip():
            return SyncData()
        try:
            payload = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ValueError(f"sync file is not valid JSON: {e}") from e
        return SyncData.from_dict(payload)

    @staticmethod
    def encode(data: SyncData) -> bytes:
        return json.dumps(
            data.to_dict(), indent=2, ensure_ascii=False, sort_keys=True
        ).encode("utf-8")

    def load(self) -> SyncData:
        """Load the store for reading; unreadable or corrupt files read as empty."""
        try:
            return self.decode(self.read_bytes())
        except (ValueError, OSError) as e:
            print(f"Warning: Could not read sync file {self.path}: {e}")
            return SyncData()

    def save(self, data: SyncData) -> None:
        """Persist the store atomically. Raises OSError on failure."""
        atomic_write_bytes(self.path, self.encode(data))

    def backup_corrupt(self, raw: bytes) -> Path:
        """Keep a copy of unreadable contents next to the sync file."""
        stamp = time.strftime("%Y%m%d-%H%M%S")
        backup_path = self.path.with_name(f"{self.path.name}.corrupt-{stamp}")
        atomic_write_bytes(backup_path, raw)
        return backup_path


class LocalCache:
    """This device's running count for the current day.

    Increments happen in memory; the count is persisted as a small snapshot on
    flush() so a restart on the same day resumes where it left off.
    """

    def __init__(self, snapshot_path, today: str = ""):
        self.snapshot_path = Path(snapshot_path)
        self._lock = threading.Lock()
        self._date = today
        self._count = 0
        self._app_counts: Dict[str, int] = {}

    @property
    def date(self) -> str:
        return self._date

    @property
    def count(self) -> int:
        return self._count

    @property
    def app_counts(self) -> Dict[str, int]:
        with self._lock:
            return self._app_counts.copy()

    def increment(self, app_id: Optional[str] = None) -> int:
        """Add one keystroke, optionally attributed to an application."""
        with self._lock:
            self._count += 1
            if app_id:
                self._app_counts[app_id] = self._app_counts.get(app_id, 0) + 1
            return self._count

    def _read_snapshot(self) -> Optional[LocalSnapshot]:
        if not self.snapshot_path.exists():
            return None
        try:
            with open(self.snapshot_path, "r", encoding="utf-8") as f:
                return LocalSnapshot.from_dict(json.load(f))
        except (json.JSONDecodeError, IOError, ValueError) as e:
            print(f"Warning: Could not load local snapshot: {e}")
            return None

    def load_or_reset(self, today: str) -> int:
        """Restore today's count from the snapshot, or start from 0 on a new day.

        Keystrokes already counted in memory for today are kept when the
        snapshot holds fewer.
        """
        snapshot = self._read_snapshot()
        if snapshot is not None and snapshot.date != today:
            snapshot = None
        with self._lock:
            if self._date != today:
                self._date = today
                self._count = 0
                self._app_counts = {}
            if snapshot is not None and snapshot.count > self._count:
                self._count = snapshot.count
                self._app_counts = dict(snapshot.app_counts)
            return self._count

    def roll_over(self, today: str) -> Optional[LocalSnapshot]:
        """Switch to a new day and hand back the finished day's count.

        The swap happens under the lock, so every keystroke lands either in
        the returned snapshot or in the new day. Returns None when the cache
        is already on today or has no day yet.
        """
        with self._lock:
            if self._date == today:
                return None
            if not self._date:
                self._date = today
                return None
            finished = LocalSnapshot(
                date=self._date, count=self._count, app_counts=self._app_counts
            )
            self._date = today
            self._count = 0
            self._app_counts = {}
            return finished

    def reset(self, today: str) -> None:
        """Zero the count for the given day."""
        with self._lock:
            self._date = today
            self._count = 0
            self._app_counts = {}

    def pull_up(self, count: int, app_counts: Optional[Dict[str, int]] = None) -> bool:
        """Raise the count to a larger value seen elsewhere. Never lowers it."""
        with self._lock:
            if count <= self._count:
                return False
            self._count = count
            if app_counts is not None:
                self._app_counts = dict(app_counts)
            return True

    def snapshot(self) -> LocalSnapshot:
        with self._lock:
            return LocalSnapshot(
                date=self._date, count=self._count, app_counts=self._app_counts.copy()
            )

    def flush(self) -> bool:
        """Persist the current count. Returns False if the write failed."""
        snapshot = self.snapshot()
        payload: Dict[str, Any] = snapshot.to_dict()
        try:
            atomic_write_bytes(
                self.snapshot_path,
                json.dumps(payload, ensure_ascii=False).encode("utf-8"),
            )
            return True
        except OSError as e:
            print(f"Warning: Could not save local snapshot: {e}")
            return False
