"""Pytest configuration and fixtures."""

import shutil
import tempfile

import pytest

from typing_stats.models import DailyCount, DeviceData, SyncData


def make_sync_data(counts):
    """Build SyncData from {device_id: {date_key: count}}."""
    data = SyncData()
    for device_id, days in counts.items():
        device = DeviceData()
        for day_key, count in days.items():
            device.daily_counts[day_key] = DailyCount(count=count, last_modified=1000.0)
        data.devices[device_id] = device
    return data


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    temp_path = tempfile.mkdtemp()
    yield temp_path
    shutil.rmtree(temp_path)


@pytest.fixture
def sample_sync_dict():
    """Shared sync file contents for two devices."""
    return {
        "version": 2,
        "devices": {
            "DEVICE-A": {
                "dailyCounts": {
                    "2024-01-01": {"count": 50, "lastModified": 1704100000.0},
                    "2024-01-02": {
                        "count": 120,
                        "lastModified": 1704190000.5,
                        "appCounts": {"com.apple.Terminal": 70, "com.apple.Safari": 30},
                    },
                }
            },
            "DEVICE-B": {
                "dailyCounts": {
                    "2024-01-01": {"count": 30, "lastModified": 1704110000.0},
                }
            },
        },
    }


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")
    config.addinivalue_line("markers", "unit: mark test as unit test")
