#!/usr/bin/env python3
"""
Device identification for Typing Stats.
Each installation gets a random ID once and keeps it for its lifetime.
"""

import platform
import socket
import uuid
from pathlib import Path
from typing import Optional

from .storage import atomic_write_bytes

DEVICE_ID_FILENAME = "device_id"


class DeviceIdentity:
    """Generates and persists this installation's device ID."""

    def __init__(self, data_dir):
        self.id_file = Path(data_dir) / DEVICE_ID_FILENAME
        self._device_id: Optional[str] = None

    def get_device_id(self) -> str:
        """Get the stable device ID, creating it on first use."""
        if self._device_id is not None:
            return self._device_id

        try:
            existing = self.id_file.read_text(encoding="utf-8").strip()
        except (FileNotFoundError, UnicodeDecodeError):
            existing = ""
        except OSError as e:
            print(f"Warning: Could not read device ID: {e}")
            existing = ""

        if existing:
            self._device_id = existing
            return existing

        new_id = str(uuid.uuid4()).upper()
        try:
            atomic_write_bytes(self.id_file, new_id.encode("utf-8"))
        except OSError as e:
            print(f"Warning: Could not save device ID: {e}")
        self._device_id = new_id
        return new_id

    @staticmethod
    def get_device_name() -> str:
        """Name of this machine for status output."""
        try:
            name = socket.gethostname()
        except OSError:
            name = ""
        if not name or name in ("localhost", "unknown"):
            name = platform.node()
        if name.endswith(".local"):
            name = name[: -len(".local")]
        return name or "this device"
