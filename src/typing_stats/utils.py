#!/usr/bin/env python3
"""
Path and formatting helpers for Typing Stats.
"""

import os
import sys
from pathlib import Path

from .models import parse_date_key

SHARED_FILENAME = "typing-stats.json"


def get_data_directory() -> Path:
    """Get the local data directory, creating it if needed."""
    if sys.platform == "darwin":
        data_dir = (
            Path.home() / "Library" / "Application Support" / "TypingStats" / "data"
        )
    else:
        xdg_data = os.getenv("XDG_DATA_HOME")
        base = Path(xdg_data) if xdg_data else Path.home() / ".local" / "share"
        data_dir = base / "typing-stats"

    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def get_icloud_drive_directory() -> Path:
    return Path.home() / "Library" / "Mobile Documents" / "com~apple~CloudDocs"


def get_shared_file_path(fallback_dir: Path) -> Path:
    """Pick the shared sync file location.

    iCloud Drive is used when it exists on this machine so that every device
    of the user sees the same file; otherwise the file lives in fallback_dir
    and only this device uses it.
    """
    icloud = get_icloud_drive_directory()
    if icloud.is_dir():
        return icloud / "TypingStats" / SHARED_FILENAME
    return Path(fallback_dir) / SHARED_FILENAME


def format_count(count: int) -> str:
    """Compact count for the menu bar title, e.g. 12.35k or 1.20M."""
    if count >= 1_000_000:
        return f"{count / 1_000_000:.2f}M"
    if count >= 1000:
        return f"{count / 1000:.2f}k"
    return str(count)


def format_count_full(count: int) -> str:
    """Count with thousands separators."""
    return f"{count:,}"


def format_date_short(day_key: str) -> str:
    """Convert a "yyyy-MM-dd" key to "MM/dd"; unparseable keys pass through."""
    day = parse_date_key(day_key)
    if day is None:
        return day_key
    return day.strftime("%m/%d")
