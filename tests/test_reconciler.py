"""Tests for reconciliation between the local count and the shared file."""

import json
import tempfile
import unittest
from datetime import date
from pathlib import Path
from unittest.mock import MagicMock, patch

from conftest import make_sync_data

from typing_stats.coordinator import FileCoordinator
from typing_stats.reconciler import Reconciler, SyncLogger
from typing_stats.storage import LocalCache, SharedStore

TODAY = "2024-01-01"


class ReconcilerTestCase(unittest.TestCase):
    """Builds a reconciler for device A against a temporary shared file."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.today = date(2024, 1, 1)
        self.store = SharedStore(Path(self.temp_dir) / "cloud" / "typing-stats.json")
        self.reconciler = self._make_reconciler("A")

    def tearDown(self):
        import shutil

        shutil.rmtree(self.temp_dir)

    def _make_reconciler(self, device_id):
        coordinator = FileCoordinator(
            self.store,
            lock_path=str(Path(self.temp_dir) / "sync.lock"),
            lock_timeout=1.0,
        )
        cache = LocalCache(Path(self.temp_dir) / f"local_{device_id}.json")
        return Reconciler(device_id, cache, coordinator, clock=lambda: self.today)

    def _write_snapshot(self, device_id, day_key, count):
        path = Path(self.temp_dir) / f"local_{device_id}.json"
        path.write_text(json.dumps({"date": day_key, "count": count}))

    def _type(self, reconciler, n, app_id=None):
        for _ in range(n):
            reconciler.local_cache.increment(app_id)

    def _shared_count(self, device_id, day_key=TODAY):
        return self.store.load().device_count(device_id, day_key)


class TestStartup(ReconcilerTestCase):
    """Startup reconciliation."""

    def test_fresh_day_resets_stale_shared_value(self):
        self.store.save(make_sync_data({"A": {TODAY: 500}, "B": {TODAY: 40}}))

        self.assertTrue(self.reconciler.startup())

        self.assertEqual(self._shared_count("A"), 0)
        self.assertEqual(self._shared_count("B"), 40)
        self.assertEqual(self.reconciler.today_total, 40)

    def test_snapshot_from_previous_day_counts_as_fresh(self):
        self._write_snapshot("A", "2023-12-31", 900)
        self.store.save(make_sync_data({"A": {TODAY: 500}}))

        self.reconciler.startup()

        self.assertEqual(self.reconciler.local_cache.count, 0)
        self.assertEqual(self._shared_count("A"), 0)

    def test_shared_value_larger_pulls_local_up(self):
        self._write_snapshot("A", TODAY, 100)
        self.store.save(make_sync_data({"A": {TODAY: 300}}))

        self.reconciler.startup()

        self.assertEqual(self.reconciler.local_cache.count, 300)
        self.assertEqual(self._shared_count("A"), 300)
        snapshot = json.loads((Path(self.temp_dir) / "local_A.json").read_text())
        self.assertEqual(snapshot["count"], 300)

    def test_local_value_larger_is_written(self):
        self._write_snapshot("A", TODAY, 100)
        self.store.save(make_sync_data({"A": {TODAY: 30}, "B": {TODAY: 5}}))

        self.reconciler.startup()

        self.assertEqual(self._shared_count("A"), 100)
        self.assertEqual(self.reconciler.today_total, 105)

    def test_creates_shared_file(self):
        self.reconciler.startup()
        self.assertTrue(self.store.exists())
        self.assertIn("A", self.store.load().devices)

    def test_corrupt_shared_file_is_replaced(self):
        self._write_snapshot("A", TODAY, 10)
        self.store.path.parent.mkdir(parents=True)
        self.store.path.write_text("not json")

        with patch("builtins.print"):
            self.assertTrue(self.reconciler.startup())

        self.assertEqual(self.reconciler.local_cache.count, 10)
        self.assertEqual(self._shared_count("A"), 10)
        backups = list(self.store.path.parent.glob("*.corrupt-*"))
        self.assertEqual(len(backups), 1)

    def test_day_left_in_memory_is_committed(self):
        self.reconciler.startup()
        self._type(self.reconciler, 9)

        self.today = date(2024, 1, 2)
        self.reconciler.startup()

        self.assertEqual(self._shared_count("A", "2024-01-01"), 9)
        self.assertEqual(self._shared_count("A", "2024-01-02"), 0)
        self.assertEqual(self.reconciler.local_cache.date, "2024-01-02")

    def test_publishes_total(self):
        listener = MagicMock()
        self.reconciler.on_total_changed(listener)
        self.store.save(make_sync_data({"B": {TODAY: 12}}))

        self.reconciler.startup()

        listener.assert_called_once_with(12)


class TestPeriodicSync(ReconcilerTestCase):
    """Periodic and shutdown writes."""

    def test_writes_local_count(self):
        self.reconciler.startup()
        self._type(self.reconciler, 15, "Xcode")

        self.assertTrue(self.reconciler.periodic_sync())

        entry = self.store.load().devices["A"].daily_counts[TODAY]
        self.assertEqual(entry.count, 15)
        self.assertEqual(entry.app_counts, {"Xcode": 15})

    def test_never_writes_smaller_value(self):
        self.reconciler.startup()
        self._type(self.reconciler, 10)
        # A stale run of this device left a larger value behind
        data = self.store.load()
        data.device("A").set_count(TODAY, 50)
        self.store.save(data)

        self.reconciler.periodic_sync()

        self.assertEqual(self._shared_count("A"), 50)
        self.assertEqual(self.reconciler.local_cache.count, 50)

    def test_monotonic_across_many_syncs(self):
        self.reconciler.startup()
        seen = []
        for batch in [3, 0, 7, 1]:
            self._type(self.reconciler, batch)
            self.reconciler.periodic_sync()
            seen.append(self._shared_count("A"))
        self.assertEqual(seen, sorted(seen))
        self.assertEqual(seen[-1], 11)

    def test_failed_sync_keeps_local_count(self):
        self.reconciler.startup()
        self._type(self.reconciler, 4)
        self.reconciler.coordinator.coordinated_update = MagicMock(return_value=None)

        self.assertFalse(self.reconciler.periodic_sync())
        self.assertEqual(self.reconciler.local_cache.count, 4)

    def test_shutdown_flushes_and_writes(self):
        self.reconciler.startup()
        self._type(self.reconciler, 7)

        self.assertTrue(self.reconciler.shutdown())

        self.assertEqual(self._shared_count("A"), 7)
        snapshot = json.loads((Path(self.temp_dir) / "local_A.json").read_text())
        self.assertEqual(snapshot, {"date": TODAY, "count": 7})


class TestExternalChange(ReconcilerTestCase):
    """Reacting to the shared file changing on disk."""

    def test_other_device_change_updates_total(self):
        self.reconciler.startup()
        self._type(self.reconciler, 5)
        listener = MagicMock()
        self.reconciler.on_total_changed(listener)

        data = self.store.load()
        data.device("B").set_count(TODAY, 25)
        self.store.save(data)

        self.assertTrue(self.reconciler.on_external_change())
        self.assertEqual(self.reconciler.today_total, 30)
        listener.assert_called_with(30)

    def test_duplicate_notification_is_harmless(self):
        self.reconciler.startup()
        self.reconciler.on_external_change()
        self.assertFalse(self.reconciler.on_external_change())

    def test_pulls_local_up_from_larger_shared_value(self):
        self.reconciler.startup()
        self._type(self.reconciler, 5)
        data = self.store.load()
        data.device("A").set_count(TODAY, 40)
        self.store.save(data)

        self.reconciler.on_external_change()

        self.assertEqual(self.reconciler.local_cache.count, 40)

    def test_stale_shared_value_does_not_lower_local(self):
        self.reconciler.startup()
        self._type(self.reconciler, 50)

        self.reconciler.on_external_change()

        self.assertEqual(self.reconciler.local_cache.count, 50)
        self.assertEqual(self.reconciler.today_total, 50)


class TestResetAndDayChange(ReconcilerTestCase):
    """Explicit reset and midnight rollover."""

    def test_reset_today(self):
        self.store.save(make_sync_data({"B": {TODAY: 9}}))
        self.reconciler.startup()
        self._type(self.reconciler, 30)
        self.reconciler.periodic_sync()

        self.assertTrue(self.reconciler.reset_today())

        self.assertEqual(self.reconciler.local_cache.count, 0)
        self.assertEqual(self._shared_count("A"), 0)
        self.assertEqual(self.reconciler.today_total, 9)

    def test_day_change_commits_finished_day(self):
        self.reconciler.startup()
        self._type(self.reconciler, 12)

        self.today = date(2024, 1, 2)
        self.reconciler.periodic_sync()

        self.assertEqual(self._shared_count("A", "2024-01-01"), 12)
        self.assertEqual(self._shared_count("A", "2024-01-02"), 0)
        self.assertEqual(self.reconciler.local_cache.date, "2024-01-02")
        self.assertEqual(self.reconciler.local_cache.count, 0)

    def test_keystrokes_during_finished_day_write_are_kept(self):
        self.reconciler.startup()
        self._type(self.reconciler, 100)
        commit = self.reconciler.coordinator.coordinated_update
        typed_during_write = []

        def slow_commit(transform, force_merge=True):
            if not typed_during_write:
                # The capture thread keeps counting while the write blocks
                self._type(self.reconciler, 5)
                typed_during_write.append(5)
            return commit(transform, force_merge=force_merge)

        self.reconciler.coordinator.coordinated_update = slow_commit
        self.today = date(2024, 1, 2)
        self.reconciler.check_day_change()
        self.reconciler.periodic_sync()

        self.assertEqual(self._shared_count("A", "2024-01-01"), 100)
        self.assertEqual(self.reconciler.local_cache.count, 5)
        self.assertEqual(self._shared_count("A", "2024-01-02"), 5)

    def test_same_day_is_not_a_day_change(self):
        self.reconciler.startup()
        self.assertFalse(self.reconciler.check_day_change())


class TestTwoDevices(ReconcilerTestCase):
    """Two devices sharing one file."""

    def test_two_device_convergence(self):
        device_b = self._make_reconciler("B")
        self.reconciler.startup()
        device_b.startup()

        self._type(self.reconciler, 50)
        self._type(device_b, 30)
        self.reconciler.periodic_sync()
        device_b.periodic_sync()
        self.reconciler.on_external_change()

        self.assertEqual(self.store.load().total_count(TODAY), 80)
        self.assertEqual(self.reconciler.today_total, 80)
        self.assertEqual(device_b.today_total, 80)


class TestSyncLogger(unittest.TestCase):
    """Test cases for SyncLogger."""

    def test_quiet_logger_prints_nothing(self):
        logger = SyncLogger(verbose=False)
        with patch("builtins.print") as mock_print:
            logger.log_sync(1, 2)
        mock_print.assert_not_called()

    def test_verbose_logger_prints_timestamped_line(self):
        logger = SyncLogger(verbose=True)
        with patch("builtins.print") as mock_print:
            logger.log_reset(TODAY)
        message = mock_print.call_args[0][0]
        self.assertTrue(message.startswith("["))
        self.assertIn(TODAY, message)


if __name__ == "__main__":
    unittest.main()
