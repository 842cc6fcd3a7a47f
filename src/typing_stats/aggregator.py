#!/usr/bin/env python3
"""
Read-only statistics over the shared sync data.
Totals, averages, record day and per-application breakdowns.
"""

from datetime import date, timedelta
from typing import Dict, List, Optional, Tuple, Union

from .models import SyncData, date_key, parse_date_key

DayLike = Union[date, str]


def _key(day: DayLike) -> str:
    return day if isinstance(day, str) else date_key(day)


def trailing_days(days: int, from_date: date) -> List[str]:
    """Date keys for the trailing window ending at from_date, newest first."""
    return [date_key(from_date - timedelta(days=offset)) for offset in range(days)]


class Aggregator:
    """Answers statistics queries against one SyncData snapshot."""

    def __init__(self, data: SyncData):
        self.data = data

    def total_count(self, day: DayLike) -> int:
        """Total keystrokes across all devices for a date."""
        return self.data.total_count(_key(day))

    def average_count(self, last_n_days: int, from_date: Optional[date] = None) -> float:
        """Mean daily total over the trailing window, skipping days with no data."""
        if from_date is None:
            from_date = date.today()

        total = 0
        days_with_data = 0
        for key in trailing_days(last_n_days, from_date):
            count = self.data.total_count(key)
            if count > 0:
                total += count
                days_with_data += 1

        return total / days_with_data if days_with_data > 0 else 0.0

    def record_day(self) -> Optional[Tuple[str, int]]:
        """Date with the highest total as (date_key, total).

        Equal totals resolve to the earliest date. Returns None when no date
        has any keystrokes.
        """
        record: Optional[Tuple[str, int]] = None
        for key in sorted(self.data.date_keys()):
            if parse_date_key(key) is None:
                continue
            count = self.data.total_count(key)
            if count > 0 and (record is None or count > record[1]):
                record = (key, count)
        return record

    def total_app_counts(
        self,
        day: Optional[DayLike] = None,
        for_days: Optional[int] = None,
        from_date: Optional[date] = None,
    ) -> Dict[str, int]:
        """Per-application totals for one date or a trailing window.

        Keystrokes without an application tag are not included; callers that
        want an "untracked" bucket derive it from total_count().
        """
        if for_days is not None:
            keys = trailing_days(for_days, from_date or date.today())
        elif day is not None:
            keys = [_key(day)]
        else:
            keys = [date_key(from_date or date.today())]

        totals: Dict[str, int] = {}
        for device in self.data.devices.values():
            for key in keys:
                entry = device.daily_counts.get(key)
                if entry is None:
                    continue
                for app_id, count in entry.app_counts.items():
                    totals[app_id] = totals.get(app_id, 0) + count
        return totals

    def history(self, days: int, from_date: Optional[date] = None) -> List[Tuple[str, int]]:
        """Daily totals for the trailing window, newest first."""
        keys = trailing_days(days, from_date or date.today())
        return [(key, self.data.total_count(key)) for key in keys]

    def device_counts(self, day: DayLike) -> Dict[str, int]:
        """Each device's contribution to a date's total."""
        key = _key(day)
        return {
            device_id: device.count(key)
            for device_id, device in self.data.devices.items()
            if key in device.daily_counts
        }

    def summary(self, today: Optional[date] = None) -> Dict:
        """Headline statistics shown in the status menu."""
        if today is None:
            today = date.today()
        record = self.record_day()
        return {
            "today": self.total_count(today),
            "yesterday": self.total_count(today - timedelta(days=1)),
            "avg7": self.average_count(7, today),
            "avg30": self.average_count(30, today),
            "record_count": record[1] if record else 0,
            "record_date": record[0] if record else None,
        }
