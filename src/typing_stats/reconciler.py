#!/usr/bin/env python3
"""
Reconciliation of this device's local count with the shared sync file.

Every entry point (startup, periodic sync, shutdown, external change, reset)
ends the same way: this device's slot for today is written to the shared file
and today's total is recomputed from the merged result.
"""

from datetime import date, datetime
from typing import Callable, Dict, List, Optional

from .coordinator import FileCoordinator
from .models import SyncData, date_key
from .storage import LocalCache

TotalListener = Callable[[int], None]


class SyncLogger:
    """Handles logging and output for sync and reconciliation."""

    def __init__(self, verbose: bool = True):
        self.verbose = verbose

    def _log(self, message: str) -> None:
        if not self.verbose:
            return

        now_str = datetime.now().strftime("%H:%M:%S")
        print(f"[{now_str}] {message}")

    def log_startup(self, local_count: int, total: int) -> None:
        self._log(f"Reconciled at startup: device {local_count}, all devices {total}")

    def log_sync(self, local_count: int, total: int) -> None:
        self._log(f"Synced: device {local_count}, all devices {total}")

    def log_sync_skipped(self, reason: str) -> None:
        self._log(f"[WARN] Sync skipped ({reason}) - retrying on next cycle")

    def log_external_change(self, old_total: int, new_total: int) -> None:
        self._log(f"Sync file changed: total {old_total} -> {new_total}")

    def log_pulled_from_cloud(self, old_count: int, new_count: int) -> None:
        self._log(f"Local count raised from sync file: {old_count} -> {new_count}")

    def log_reset(self, day_key: str) -> None:
        self._log(f"Reset count for {day_key} on this device")

    def log_day_change(self, old_day: str, new_day: str) -> None:
        self._log(f"Day changed: {old_day or '-'} -> {new_day}")

    def log_shutdown(self, local_count: int) -> None:
        self._log(f"Final sync before exit: device {local_count}")


class Reconciler:
    """Decides the canonical value of this device's count for today."""

    def __init__(
        self,
        device_id: str,
        local_cache: LocalCache,
        coordinator: FileCoordinator,
        clock: Callable[[], date] = date.today,
        logger: Optional[SyncLogger] = None,
    ):
        self.device_id = device_id
        self.local_cache = local_cache
        self.coordinator = coordinator
        self.clock = clock
        self.logger = logger or SyncLogger(verbose=False)

        self._others_total = 0
        self._published_total: Optional[int] = None
        self._listeners: List[TotalListener] = []

    # Totals

    @property
    def today_total(self) -> int:
        """Today's total: other devices' counts plus this device's live count."""
        return self._others_total + self.local_cache.count

    def on_total_changed(self, listener: TotalListener) -> None:
        """Register a callback receiving the new total whenever it changes."""
        self._listeners.append(listener)

    def _publish(self) -> None:
        total = self.today_total
        if total == self._published_total:
            return
        self._published_total = total
        for listener in list(self._listeners):
            try:
                listener(total)
            except Exception as e:
                print(f"Error in total listener: {e}")

    def _update_others(self, data: SyncData, day_key: str) -> None:
        self._others_total = data.total_count(day_key) - data.device_count(
            self.device_id, day_key
        )

    def _today_key(self) -> str:
        return date_key(self.clock())

    # Transforms

    def _max_write(
        self, day_key: str, count: int, app_counts: Dict[str, int]
    ) -> Callable[[SyncData], SyncData]:
        def transform(data: SyncData) -> SyncData:
            device = data.device(self.device_id)
            if count > device.count(day_key):
                device.set_count(day_key, count, app_counts)
            return data

        return transform

    def _force_write(
        self, day_key: str, count: int
    ) -> Callable[[SyncData], SyncData]:
        def transform(data: SyncData) -> SyncData:
            data.device(self.device_id).set_count(day_key, count)
            return data

        return transform

    def _pull_up_from(self, data: SyncData, day_key: str) -> bool:
        device = data.devices.get(self.device_id)
        entry = device.daily_counts.get(day_key) if device else None
        if entry is None:
            return False

        old_count = self.local_cache.count
        if self.local_cache.pull_up(entry.count, entry.app_counts):
            self.logger.log_pulled_from_cloud(old_count, entry.count)
            return True
        return False

    def _write_today(self) -> Optional[SyncData]:
        day_key = self._today_key()
        snapshot = self.local_cache.snapshot()
        result = self.coordinator.coordinated_update(
            self._max_write(day_key, snapshot.count, snapshot.app_counts)
        )
        if result is None:
            return None

        if self._pull_up_from(result, day_key):
            self.local_cache.flush()
        self._update_others(result, day_key)
        return result

    # Entry points

    def startup(self) -> bool:
        """Restore the local count and reconcile it with the shared file.

        A day still held in memory from before midnight is committed first.
        """
        day_key = self._today_key()
        self._close_finished_day(day_key)
        self.local_cache.load_or_reset(day_key)
        return self._reconcile_today(day_key)

    def _reconcile_today(self, day_key: str) -> bool:
        """Bring this device's slot for today in line with the local count.

        A zero local count means a fresh day or a reset, and then this
        device's slot for today is forced to 0 rather than trusting a stale
        value left in the shared file. Otherwise the larger of the local and
        shared values wins and the local count is pulled up if needed.
        """
        if self.local_cache.count == 0:
            result = self.coordinator.coordinated_update(
                self._force_write(day_key, 0), force_merge=False
            )
            if result is not None:
                self._update_others(result, day_key)
        else:
            result = self._write_today()

        if result is None:
            self.logger.log_sync_skipped("startup")
            self._update_others(self.coordinator.read(), day_key)

        self.local_cache.flush()
        self.logger.log_startup(self.local_cache.count, self.today_total)
        self._publish()
        return result is not None

    def periodic_sync(self) -> bool:
        """Write max(local, shared) for today. Never writes a smaller value."""
        self.check_day_change()

        result = self._write_today()
        if result is None:
            self.logger.log_sync_skipped("periodic")
            return False

        self.logger.log_sync(self.local_cache.count, self.today_total)
        self._publish()
        return True

    def shutdown(self) -> bool:
        """Persist the local count, then make the last write to the shared file."""
        self.check_day_change()
        self.local_cache.flush()

        self.logger.log_shutdown(self.local_cache.count)
        result = self._write_today()
        if result is None:
            self.logger.log_sync_skipped("shutdown")
            return False
        return True

    def on_external_change(self) -> bool:
        """Pick up changes another device made to the shared file.

        The local count only moves up, guarding against a stale read. Returns
        True if the published total changed.
        """
        self.check_day_change()

        day_key = self._today_key()
        data = self.coordinator.read()

        if self._pull_up_from(data, day_key):
            self.local_cache.flush()

        old_total = self._published_total or 0
        self._update_others(data, day_key)
        new_total = self.today_total
        if new_total == old_total:
            return False

        self.logger.log_external_change(old_total, new_total)
        self._publish()
        return True

    def reset_today(self) -> bool:
        """Set this device's count for today to 0 locally and in the shared file."""
        day_key = self._today_key()
        self.local_cache.reset(day_key)
        self.local_cache.flush()

        result = self.coordinator.coordinated_update(
            self._force_write(day_key, 0), force_merge=False
        )
        if result is not None:
            self._update_others(result, day_key)
        else:
            self.logger.log_sync_skipped("reset")

        self.logger.log_reset(day_key)
        self._publish()
        return result is not None

    def _close_finished_day(self, day_key: str) -> bool:
        """Move the local cache to day_key and commit the day it leaves behind."""
        finished = self.local_cache.roll_over(day_key)
        if finished is None:
            return False

        self.local_cache.flush()
        if finished.count > 0:
            self.coordinator.coordinated_update(
                self._max_write(finished.date, finished.count, finished.app_counts)
            )

        self.logger.log_day_change(finished.date, day_key)
        self._others_total = 0
        return True

    def check_day_change(self) -> bool:
        """Handle midnight: close out the finished day and start the new one.

        Keystrokes counted while the finished day is being written belong to
        the new day and are kept.
        """
        day_key = self._today_key()
        if not self._close_finished_day(day_key):
            return False
        self._reconcile_today(day_key)
        return True
