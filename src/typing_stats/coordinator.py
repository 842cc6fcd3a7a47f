#!/usr/bin/env python3
"""
Coordinated read-modify-write access to the shared sync file.

Writers in this process are serialized with a thread lock, and processes on
this machine cooperate through an advisory flock on a side lock file. Writers
on other devices cannot be locked out, so every update re-reads the file just
before committing and merges in anything that landed in the meantime.
"""

import fcntl
import hashlib
import tempfile
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Optional

from .merge import merge_sync_data
from .models import SyncData
from .retention import Pruner
from .storage import SharedStore

Transform = Callable[[SyncData], SyncData]


class CoordinationError(Exception):
    """Exclusive access to the sync file could not be obtained."""


def default_lock_path(shared_path: Path) -> Path:
    """Lock file for a shared path, kept out of the synced folder."""
    digest = hashlib.sha1(
        str(shared_path.expanduser().resolve()).encode("utf-8")
    ).hexdigest()[:12]
    return Path(tempfile.gettempdir()) / f"typing_stats_{digest}.lock"


class FileCoordinator:
    """Serializes updates of the shared sync file."""

    def __init__(
        self,
        store: SharedStore,
        lock_path: Optional[str] = None,
        lock_timeout: float = 5.0,
        pruner: Optional[Pruner] = None,
        poll_interval: float = 0.05,
    ):
        self.store = store
        self.lock_path = Path(lock_path) if lock_path else default_lock_path(store.path)
        self.lock_timeout = lock_timeout
        self.pruner = pruner
        self.poll_interval = poll_interval
        self._thread_lock = threading.Lock()

    @contextmanager
    def _locked(self, shared: bool = False):
        if not self._thread_lock.acquire(timeout=self.lock_timeout):
            raise CoordinationError("timed out waiting for another sync in this process")
        try:
            try:
                self.lock_path.parent.mkdir(parents=True, exist_ok=True)
                lock_file = open(self.lock_path, "a+")
            except OSError as e:
                raise CoordinationError(f"cannot open lock file {self.lock_path}: {e}")

            try:
                mode = fcntl.LOCK_SH if shared else fcntl.LOCK_EX
                deadline = time.monotonic() + self.lock_timeout
                while True:
                    try:
                        fcntl.flock(lock_file.fileno(), mode | fcntl.LOCK_NB)
                        break
                    except BlockingIOError:
                        if time.monotonic() >= deadline:
                            raise CoordinationError(
                                f"timed out waiting for {self.lock_path}"
                            )
                        time.sleep(self.poll_interval)

                try:
                    yield
                finally:
                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
            finally:
                lock_file.close()
        finally:
            self._thread_lock.release()

    def _decode_or_recover(self, raw: Optional[bytes]) -> SyncData:
        """Decode file contents, setting aside a corrupt file and starting empty."""
        try:
            return self.store.decode(raw)
        except ValueError as e:
            backup_path = self.store.backup_corrupt(raw)
            print(f"Warning: Sync file is corrupt ({e}); saved a copy to {backup_path}")
            return SyncData()

    def coordinated_update(
        self, transform: Transform, force_merge: bool = True
    ) -> Optional[SyncData]:
        """Apply transform to the shared file and commit the result.

        Args:
            transform: Receives a private copy of the current contents and
                returns the desired contents.
            force_merge: When another writer changed the file while transform
                ran, merge its data into the result. Pass False for
                transforms that must win even against larger counts (resets);
                transform is then re-applied to the fresh contents instead.

        Returns:
            The data that was written, or None when the update was abandoned
            for this cycle.
        """
        try:
            with self._locked():
                raw = self.store.read_bytes()
                candidate = transform(self._decode_or_recover(raw))

                fresh_raw = self.store.read_bytes()
                if fresh_raw != raw:
                    fresh = self._decode_or_recover(fresh_raw)
                    if force_merge:
                        candidate = merge_sync_data(candidate, fresh)
                    else:
                        candidate = transform(fresh)

                if self.pruner is not None:
                    candidate = self.pruner.prune(candidate)

                self.store.save(candidate)
                return candidate
        except CoordinationError as e:
            print(f"Warning: File coordination failed, will retry: {e}")
        except OSError as e:
            print(f"Warning: Could not write sync file, will retry: {e}")
        return None

    def read(self) -> SyncData:
        """Read the shared file under a shared lock. Never raises."""
        try:
            with self._locked(shared=True):
                return self.store.load()
        except CoordinationError as e:
            # Writes are atomic renames, so an unlocked read is still whole.
            print(f"Warning: File coordination failed, reading without lock: {e}")
            return self.store.load()
