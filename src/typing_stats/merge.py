#!/usr/bin/env python3
"""
Merging of shared sync data.

Each (device, date) slot is a max-register: when two snapshots disagree, the
slot with the larger count wins. The merge is commutative, associative and
idempotent, so any number of uncoordinated writers converge on the same state.
"""

from typing import Optional, Tuple

from .models import DailyCount, DeviceData, SyncData


def _slot_rank(entry: DailyCount) -> Tuple:
    # Equal counts fall back to lastModified, then the app breakdown, so the
    # winner never depends on argument order.
    return (entry.count, entry.last_modified, sorted(entry.app_counts.items()))


def merge_daily_count(
    a: Optional[DailyCount], b: Optional[DailyCount]
) -> Optional[DailyCount]:
    """Pick the winning slot of two candidates for the same device and date."""
    if a is None:
        return b.copy() if b is not None else None
    if b is None:
        return a.copy()
    return (b if _slot_rank(b) > _slot_rank(a) else a).copy()


def merge_device_data(a: Optional[DeviceData], b: Optional[DeviceData]) -> DeviceData:
    """Merge two views of one device's daily counts."""
    a_counts = a.daily_counts if a is not None else {}
    b_counts = b.daily_counts if b is not None else {}

    merged = DeviceData()
    for key in set(a_counts) | set(b_counts):
        winner = merge_daily_count(a_counts.get(key), b_counts.get(key))
        if winner is not None:
            merged.daily_counts[key] = winner
    return merged


def merge_sync_data(a: SyncData, b: SyncData) -> SyncData:
    """
    Combine two snapshots of the shared store into one.

    Neither input is modified. Devices and dates present in only one input are
    carried over unchanged; overlapping slots keep the larger count.
    """
    merged = SyncData(version=max(a.version, b.version))
    for device_id in set(a.devices) | set(b.devices):
        merged.devices[device_id] = merge_device_data(
            a.devices.get(device_id), b.devices.get(device_id)
        )
    return merged
