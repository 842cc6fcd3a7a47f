"""
Typing Stats - per-day keystroke counts kept in sync across devices.

This package provides the counting and synchronization engine for a
menu bar keystroke counter, with features including:

- Per-device, per-day counters stored in one shared JSON file
- Conflict-free merging of concurrent writers (largest count wins)
- Reconciliation at startup, shutdown, on a timer and on file changes
- Totals, averages, record day and per-application breakdowns
- Retention window pruning of old days
"""

__version__ = "1.0.0"
__license__ = "MIT"

from .aggregator import Aggregator
from .core import TypingStats
from .merge import merge_sync_data
from .models import DailyCount, DeviceData, LocalSnapshot, SyncData

__all__ = [
    "Aggregator",
    "DailyCount",
    "DeviceData",
    "LocalSnapshot",
    "SyncData",
    "TypingStats",
    "merge_sync_data",
]
