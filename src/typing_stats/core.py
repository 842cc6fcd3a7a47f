#!/usr/bin/env python3
"""
Typing Stats service.
Counts keystrokes per day on this device and keeps the count in sync with the
user's other devices through a shared file.
"""

import signal
import threading
import time
from concurrent.futures import Future
from datetime import date
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from .aggregator import Aggregator
from .config import Config, load_config
from .coordinator import FileCoordinator
from .device import DeviceIdentity
from .models import SyncData, date_key
from .reconciler import Reconciler, SyncLogger
from .retention import Pruner
from .storage import LocalCache, SharedStore
from .utils import format_count, format_count_full, format_date_short
from .watcher import ChangeWatcher
from .worker import RepeatingTask, SyncWorker

LOCAL_SNAPSHOT_FILENAME = "local_count.json"


class TypingStats:
    """
    Typing Stats - wires the counter, sync and statistics components together.

    Construct one instance per process and hand it to the capture source
    (which calls increment()) and the UI (which reads totals and statistics).
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        shared_file: Optional[str] = None,
        data_dir: Optional[str] = None,
        verbose: Optional[bool] = None,
        device_id: Optional[str] = None,
        clock: Callable[[], date] = date.today,
    ):
        """
        Initialize the service.

        Args:
            config (Optional[Config]): Settings; loaded from disk and environment if None.
            shared_file (Optional[str]): Override for the shared sync file path.
            data_dir (Optional[str]): Override for the local data directory.
            verbose (Optional[bool]): Override for verbose logging.
            device_id (Optional[str]): Override for the persisted device ID.
            clock (Callable[[], date]): Source of the current date.
        """
        self.config = config or load_config()
        self.clock = clock

        self.data_dir = Path(data_dir) if data_dir else self.config.data_dir
        self.data_dir.mkdir(parents=True, exist_ok=True)

        self.device = DeviceIdentity(self.data_dir)
        self.device_id = device_id or self.device.get_device_id()

        if verbose is None:
            verbose = self.config.verbose_logging
        self.logger = SyncLogger(verbose=verbose)

        self.store = SharedStore(shared_file or self.config.shared_file)
        self.pruner = Pruner(self.config.retention_days, clock)
        self.coordinator = FileCoordinator(
            self.store, lock_timeout=self.config.lock_timeout, pruner=self.pruner
        )
        self.local_cache = LocalCache(self.data_dir / LOCAL_SNAPSHOT_FILENAME)
        self.local_cache.load_or_reset(date_key(clock()))
        self.reconciler = Reconciler(
            self.device_id,
            self.local_cache,
            self.coordinator,
            clock=clock,
            logger=self.logger,
        )

        self.worker: Optional[SyncWorker] = None
        self.sync_timer: Optional[RepeatingTask] = None
        self.watcher: Optional[ChangeWatcher] = None
        self.running = False

        self._rollover_lock = threading.Lock()
        self._rollover_pending = False

    # Background dispatch

    def _dispatch(self, fn: Callable, *args) -> Optional[Future]:
        """Queue fn on the sync worker. Returns None when no worker is active."""
        if self.worker is None:
            return None
        return self.worker.submit(fn, *args)

    def _run_and_wait(self, fn: Callable, *args):
        if self.worker is not None:
            future = self.worker.submit(fn, *args)
            if future is not None:
                return future.result()
        return fn(*args)

    def _rollover(self) -> None:
        try:
            self.reconciler.check_day_change()
        finally:
            with self._rollover_lock:
                self._rollover_pending = False

    def _request_rollover(self) -> None:
        with self._rollover_lock:
            if self._rollover_pending:
                return
            self._rollover_pending = True
        if self._dispatch(self._rollover) is None:
            # Picked up by start() instead
            with self._rollover_lock:
                self._rollover_pending = False

    def _on_file_changed(self) -> None:
        self._dispatch(self.reconciler.on_external_change)

    # Capture source interface

    def increment(self, app_id: Optional[str] = None) -> int:
        """Count one keystroke, optionally tagged with the frontmost application."""
        if self.local_cache.date != date_key(self.clock()):
            self._request_rollover()

        count = self.local_cache.increment(app_id)

        if count % self.config.local_save_every == 0:
            self.local_cache.flush()
        if count % self.config.sync_every == 0:
            self.request_sync()
        return count

    # Lifecycle

    def start(self, watch: bool = True) -> None:
        """Reconcile with the shared file and start background syncing."""
        if self.running:
            return

        self.worker = SyncWorker()
        self._run_and_wait(self.reconciler.startup)

        self.sync_timer = RepeatingTask(self.config.sync_interval, self.request_sync)
        self.sync_timer.start()

        if watch:
            self.watcher = ChangeWatcher(
                self.store.path, self._on_file_changed, self.config.watch_debounce
            )
            self.watcher.start()

        self.running = True

    def stop(self) -> None:
        """Finish pending sync work and make the final write before exit."""
        if not self.running:
            return
        self.running = False

        if self.sync_timer is not None:
            self.sync_timer.cancel()
            self.sync_timer = None
        if self.watcher is not None:
            self.watcher.stop()
            self.watcher = None
        if self.worker is not None:
            self.worker.shutdown()
            self.worker = None

        self.reconciler.shutdown()

    # Commands and queries for the UI

    def request_sync(self) -> None:
        """Schedule a sync of today's count with the shared file.

        Before start() and after stop() there is no sync worker, and the
        count is only saved locally; start() reconciles it later.
        """
        if self._dispatch(self.reconciler.periodic_sync) is None:
            self.local_cache.flush()

    def sync_now(self) -> bool:
        """Sync immediately and wait for the result."""
        self.local_cache.flush()
        return bool(self._run_and_wait(self.reconciler.periodic_sync))

    def reset_today(self) -> bool:
        """Reset this device's count for today to 0, locally and in the shared file."""
        return bool(self._run_and_wait(self.reconciler.reset_today))

    def on_total_changed(self, listener: Callable[[int], None]) -> None:
        self.reconciler.on_total_changed(listener)

    @property
    def today_total(self) -> int:
        return self.reconciler.today_total

    def read_sync_data(self) -> SyncData:
        return self.coordinator.read()

    def aggregator(self) -> Aggregator:
        return Aggregator(self.read_sync_data())

    def stats(self) -> Dict:
        """Headline statistics: today, yesterday, averages and record day."""
        summary = self.aggregator().summary(self.clock())
        summary["today"] = max(summary["today"], self.today_total)
        return summary

    def history(self, days: int = 30) -> List[Tuple[str, int]]:
        return self.aggregator().history(days, self.clock())


def print_status(stats: TypingStats) -> None:
    summary = stats.stats()
    print("Typing Stats")
    print(f"  Today: {format_count_full(summary['today'])}")
    print(f"  Yesterday: {format_count_full(summary['yesterday'])}")
    print(f"  7-day average: {format_count_full(int(round(summary['avg7'])))}")
    print(f"  30-day average: {format_count_full(int(round(summary['avg30'])))}")
    if summary["record_date"]:
        print(
            f"  Record: {format_count_full(summary['record_count'])} "
            f"({format_date_short(summary['record_date'])})"
        )
    print(f"  Device: {stats.device_id[:8]}... ({stats.device.get_device_name()})")
    print(f"  Sync file: {stats.store.path}")


def print_history(stats: TypingStats, days: int) -> None:
    history = stats.history(days)
    peak = max((count for _, count in history), default=0)
    print(f"Keystroke history (last {days} days)")
    for day_key, count in history:
        bar = "#" * int(40 * count / peak) if peak else ""
        print(f"  {day_key}  {count:>9,}  {bar}")


def print_devices(stats: TypingStats) -> None:
    today = date_key(stats.clock())
    counts = stats.aggregator().device_counts(today)
    print(f"Devices for {today}:")
    if not counts:
        print("  No data yet")
        return
    for device_id, count in sorted(counts.items(), key=lambda x: x[1], reverse=True):
        marker = " (this device)" if device_id == stats.device_id else ""
        print(f"  {device_id[:8]}...  {count:>9,}{marker}")


def run_service(stats: TypingStats) -> None:
    """Run the sync service in the foreground until interrupted."""

    def _signal_handler(signum, frame):
        raise SystemExit(0)

    signal.signal(signal.SIGTERM, _signal_handler)

    stats.on_total_changed(
        lambda total: print(f"Today: {format_count(total)} keystrokes")
    )
    try:
        stats.start()
        print(f"Syncing with {stats.store.path} (Ctrl-C to stop)")
        while stats.running:
            time.sleep(1.0)
    finally:
        stats.stop()


def main():
    """Main entry point."""
    import sys

    args = sys.argv[1:]

    if "--help" in args or "-h" in args:
        print("Typing Stats")
        print("Usage: typing-stats [command] [options]")
        print("Commands:")
        print("  status            Show today's total, averages and record (default)")
        print("  history [DAYS]    Show daily totals for the last DAYS days (default: 30)")
        print("  devices           Show each device's count for today")
        print("  sync              Sync this device's count with the shared file")
        print("  reset             Reset today's count on this device to 0")
        print("  run               Keep syncing in the foreground until interrupted")
        print("Options:")
        print("  --shared-file PATH   Use PATH as the shared sync file")
        print("  --quiet, -q          Disable verbose logging")
        print("  --help, -h           Show this help message")
        return

    verbose = True
    shared_file = None
    positional = []

    i = 0
    while i < len(args):
        arg = args[i]
        if arg in ("--quiet", "-q"):
            verbose = False
        elif arg == "--shared-file":
            if i + 1 >= len(args):
                print("Missing value for --shared-file")
                return
            shared_file = args[i + 1]
            i += 1
        else:
            positional.append(arg)
        i += 1

    command = positional[0] if positional else "status"

    days = 30
    if command == "history" and len(positional) > 1:
        try:
            days = int(positional[1])
        except ValueError:
            print(f"Invalid number of days: {positional[1]}")
            return
        if days <= 0:
            print(f"Invalid number of days: {positional[1]}")
            return

    if command not in ("status", "history", "devices", "sync", "reset", "run"):
        print(f"Unknown command: {command}")
        print("Use --help for usage information")
        return

    stats = TypingStats(shared_file=shared_file, verbose=verbose)

    if command == "status":
        print_status(stats)
    elif command == "history":
        print_history(stats, days)
    elif command == "devices":
        print_devices(stats)
    elif command == "sync":
        stats.start(watch=False)
        stats.stop()
        print(f"Sync completed: today {format_count_full(stats.today_total)} keystrokes")
    elif command == "reset":
        if stats.reset_today():
            print("Today's count on this device was reset to 0")
        else:
            print("Reset saved locally; the sync file will be reset on next start")
    elif command == "run":
        try:
            run_service(stats)
        except KeyboardInterrupt:
            print("\nReceived interrupt signal")
        finally:
            print("Typing Stats stopped")


if __name__ == "__main__":
    main()
