#!/usr/bin/env python3
"""
Retention window garbage collection for the shared sync data.
"""

from datetime import date, timedelta
from typing import Callable, Optional

from .models import DeviceData, SyncData, parse_date_key

DEFAULT_RETENTION_DAYS = 60


def prune_sync_data(
    data: SyncData, keeping_days: int = DEFAULT_RETENTION_DAYS, today: Optional[date] = None
) -> SyncData:
    """Return a copy of data without dates that fell out of the retention window.

    A date exactly ``keeping_days`` before today is removed; every newer date is
    kept. Keys that do not parse as dates are left alone. Devices whose maps
    become empty stay in the document so their identity is not forgotten.
    """
    if today is None:
        today = date.today()
    cutoff = today - timedelta(days=keeping_days)

    pruned = SyncData(version=data.version)
    for device_id, device in data.devices.items():
        kept = DeviceData()
        for key, entry in device.daily_counts.items():
            day = parse_date_key(key)
            if day is not None and day <= cutoff:
                continue
            kept.daily_counts[key] = entry.copy()
        pruned.devices[device_id] = kept
    return pruned


class Pruner:
    """Applies the configured retention window using an injectable clock."""

    def __init__(
        self,
        keeping_days: int = DEFAULT_RETENTION_DAYS,
        clock: Callable[[], date] = date.today,
    ):
        self.keeping_days = keeping_days
        self.clock = clock

    def prune(self, data: SyncData) -> SyncData:
        return prune_sync_data(data, self.keeping_days, self.clock())
