#!/usr/bin/env python3
"""
Data models for Typing Stats.
Per-device, per-day keystroke counters and their JSON representation.
"""

import time
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterator, Optional, Set

SCHEMA_VERSION = 2
DATE_FORMAT = "%Y-%m-%d"


def date_key(day: date) -> str:
    """Convert a date to its "yyyy-MM-dd" key."""
    return day.strftime(DATE_FORMAT)


def parse_date_key(key: str) -> Optional[date]:
    """Parse a "yyyy-MM-dd" key, returning None when it is malformed."""
    try:
        return datetime.strptime(key, DATE_FORMAT).date()
    except (TypeError, ValueError):
        return None


def _parse_count(value: Any, what: str) -> int:
    # bool is an int subclass; reject it along with strings and fractions
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{what} must be an integer, got {value!r}")
    if value < 0:
        raise ValueError(f"{what} must be non-negative, got {value}")
    return value


@dataclass
class DailyCount:
    """One device's keystroke count for one calendar day."""

    count: int = 0
    last_modified: float = field(default_factory=time.time)
    app_counts: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "count": self.count,
            "lastModified": self.last_modified,
        }
        if self.app_counts:
            data["appCounts"] = dict(self.app_counts)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DailyCount":
        if not isinstance(data, dict):
            raise ValueError(f"daily count must be an object, got {data!r}")

        count = _parse_count(data.get("count"), "count")
        last_modified = data.get("lastModified", 0.0)
        if isinstance(last_modified, bool) or not isinstance(
            last_modified, (int, float)
        ):
            raise ValueError(f"lastModified must be a number, got {last_modified!r}")

        app_counts: Dict[str, int] = {}
        raw_apps = data.get("appCounts") or {}
        if not isinstance(raw_apps, dict):
            raise ValueError(f"appCounts must be an object, got {raw_apps!r}")
        for app_id, app_count in raw_apps.items():
            app_counts[str(app_id)] = _parse_count(app_count, f"appCounts[{app_id}]")

        return cls(count=count, last_modified=float(last_modified), app_counts=app_counts)

    def copy(self) -> "DailyCount":
        return DailyCount(
            count=self.count,
            last_modified=self.last_modified,
            app_counts=dict(self.app_counts),
        )


@dataclass
class DeviceData:
    """All daily counts written by a single device."""

    daily_counts: Dict[str, DailyCount] = field(default_factory=dict)

    def count(self, day_key: str) -> int:
        """Get the count for a date key, 0 when the device has no entry."""
        entry = self.daily_counts.get(day_key)
        return entry.count if entry else 0

    def set_count(
        self,
        day_key: str,
        count: int,
        app_counts: Optional[Dict[str, int]] = None,
        timestamp: Optional[float] = None,
    ) -> None:
        """Replace the slot for a date key with a freshly stamped count."""
        self.daily_counts[day_key] = DailyCount(
            count=count,
            last_modified=time.time() if timestamp is None else timestamp,
            app_counts=dict(app_counts or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dailyCounts": {
                key: entry.to_dict() for key, entry in self.daily_counts.items()
            }
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeviceData":
        if not isinstance(data, dict):
            raise ValueError(f"device data must be an object, got {data!r}")
        raw_counts = data.get("dailyCounts") or {}
        if not isinstance(raw_counts, dict):
            raise ValueError("dailyCounts must be an object")
        return cls(
            daily_counts={
                str(key): DailyCount.from_dict(value)
                for key, value in raw_counts.items()
            }
        )

    def copy(self) -> "DeviceData":
        return DeviceData(
            daily_counts={key: entry.copy() for key, entry in self.daily_counts.items()}
        )


@dataclass
class SyncData:
    """Contents of the shared sync file: every known device's counters."""

    devices: Dict[str, DeviceData] = field(default_factory=dict)
    version: int = SCHEMA_VERSION

    def device(self, device_id: str) -> DeviceData:
        """Get a device's data, creating an empty entry on first use."""
        if device_id not in self.devices:
            self.devices[device_id] = DeviceData()
        return self.devices[device_id]

    def device_count(self, device_id: str, day_key: str) -> int:
        """Get one device's count for a date without creating the device."""
        device = self.devices.get(device_id)
        return device.count(day_key) if device else 0

    def total_count(self, day_key: str) -> int:
        """Sum of every device's count for the date."""
        return sum(device.count(day_key) for device in self.devices.values())

    def date_keys(self) -> Set[str]:
        """All date keys present in any device's map."""
        keys: Set[str] = set()
        for device in self.devices.values():
            keys.update(device.daily_counts.keys())
        return keys

    def slots(self) -> Iterator:
        """Iterate over (device_id, date_key, DailyCount) for every slot."""
        for device_id, device in self.devices.items():
            for key, entry in device.daily_counts.items():
                yield device_id, key, entry

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "devices": {
                device_id: device.to_dict()
                for device_id, device in self.devices.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyncData":
        if not isinstance(data, dict):
            raise ValueError("sync data must be a JSON object")
        raw_devices = data.get("devices") or {}
        if not isinstance(raw_devices, dict):
            raise ValueError("devices must be an object")
        version = data.get("version", SCHEMA_VERSION)
        if isinstance(version, bool) or not isinstance(version, int):
            raise ValueError(f"version must be an integer, got {version!r}")
        return cls(
            devices={
                str(device_id): DeviceData.from_dict(device)
                for device_id, device in raw_devices.items()
            },
            version=version,
        )

    def copy(self) -> "SyncData":
        return SyncData(
            devices={
                device_id: device.copy() for device_id, device in self.devices.items()
            },
            version=self.version,
        )


@dataclass
class LocalSnapshot:
    """This device's fast-resume record of today's count."""

    date: str
    count: int = 0
    app_counts: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"date": self.date, "count": self.count}
        if self.app_counts:
            data["appCounts"] = dict(self.app_counts)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LocalSnapshot":
        if not isinstance(data, dict):
            raise ValueError("local snapshot must be a JSON object")
        day = data.get("date")
        if not isinstance(day, str) or parse_date_key(day) is None:
            raise ValueError(f"invalid snapshot date: {day!r}")
        raw_apps = data.get("appCounts") or {}
        if not isinstance(raw_apps, dict):
            raise ValueError("appCounts must be an object")
        return cls(
            date=day,
            count=_parse_count(data.get("count"), "count"),
            app_counts={
                str(app_id): _parse_count(value, f"appCounts[{app_id}]")
                for app_id, value in raw_apps.items()
            },
        )
