"""Configuration management for Typing Stats."""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from .utils import get_data_directory, get_shared_file_path

DEFAULT_CONFIG = {
    "shared_file": "",  # empty: iCloud Drive if available, else local data dir
    "data_dir": "",
    "retention_days": 60,
    "local_save_every": 50,  # keystrokes between local snapshot writes
    "sync_every": 1000,  # keystrokes between shared file syncs
    "sync_interval": 300,  # 5 minutes
    "watch_debounce": 0.5,
    "lock_timeout": 5.0,
    "verbose_logging": True,
}

INT_KEYS = ["retention_days", "local_save_every", "sync_every", "sync_interval"]
FLOAT_KEYS = ["watch_debounce", "lock_timeout"]
BOOL_KEYS = ["verbose_logging"]


class Config:
    """Configuration manager for Typing Stats."""

    def __init__(self, config_dir: Optional[str] = None):
        """Initialize configuration manager.

        Args:
            config_dir: Custom configuration directory path
        """
        if config_dir:
            self.config_dir = Path(config_dir)
        else:
            self.config_dir = (
                Path.home() / "Library" / "Application Support" / "TypingStats" / "config"
            )

        self.config_file = self.config_dir / "settings.json"
        self.config_dir.mkdir(parents=True, exist_ok=True)

        self._config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from file or create default."""
        if self.config_file.exists():
            try:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    config = json.load(f)
                if not isinstance(config, dict):
                    raise ValueError("settings must be a JSON object")
                merged_config = DEFAULT_CONFIG.copy()
                merged_config.update(config)
                return merged_config
            except (json.JSONDecodeError, IOError, ValueError) as e:
                print(f"Warning: Could not load config file: {e}")
                print("Using default configuration.")

        return DEFAULT_CONFIG.copy()

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value.

        Args:
            key: Configuration key
            default: Default value if key not found

        Returns:
            Configuration value
        """
        return self._config.get(key, default)

    def update(self, config_dict: Dict[str, Any]) -> None:
        """Update multiple configuration values."""
        self._config.update(config_dict)

    @property
    def retention_days(self) -> int:
        return int(self.get("retention_days", 60))

    @property
    def local_save_every(self) -> int:
        return max(1, int(self.get("local_save_every", 50)))

    @property
    def sync_every(self) -> int:
        return max(1, int(self.get("sync_every", 1000)))

    @property
    def sync_interval(self) -> float:
        return float(self.get("sync_interval", 300))

    @property
    def watch_debounce(self) -> float:
        return float(self.get("watch_debounce", 0.5))

    @property
    def lock_timeout(self) -> float:
        return float(self.get("lock_timeout", 5.0))

    @property
    def verbose_logging(self) -> bool:
        """Get verbose logging setting."""
        return bool(self.get("verbose_logging", True))

    @property
    def data_dir(self) -> Path:
        """Get the local data directory (device ID, local snapshot)."""
        data_dir = self.get("data_dir")
        if data_dir:
            return Path(data_dir)
        return get_data_directory()

    @property
    def shared_file(self) -> Path:
        """Get the path of the shared sync file."""
        shared_file = self.get("shared_file")
        if shared_file:
            return Path(shared_file).expanduser()
        return get_shared_file_path(self.data_dir)


def load_config_from_env() -> Dict[str, Any]:
    """Load configuration from environment variables.

    Returns:
        Configuration dictionary from environment
    """
    env_config: Dict[str, Any] = {}

    env_mappings = {
        "TYPING_STATS_DATA_DIR": "data_dir",
        "TYPING_STATS_SHARED_FILE": "shared_file",
        "TYPING_STATS_RETENTION_DAYS": "retention_days",
        "TYPING_STATS_SYNC_INTERVAL": "sync_interval",
        "TYPING_STATS_SYNC_EVERY": "sync_every",
        "TYPING_STATS_LOCK_TIMEOUT": "lock_timeout",
        "TYPING_STATS_VERBOSE": "verbose_logging",
    }

    for env_var, config_key in env_mappings.items():
        value = os.getenv(env_var)
        if value is None:
            continue

        if config_key in INT_KEYS:
            try:
                env_config[config_key] = int(value)
            except ValueError:
                print(f"Warning: Invalid integer value for {env_var}: {value}")
        elif config_key in FLOAT_KEYS:
            try:
                env_config[config_key] = float(value)
            except ValueError:
                print(f"Warning: Invalid number for {env_var}: {value}")
        elif config_key in BOOL_KEYS:
            env_config[config_key] = value.lower() in ("true", "1", "yes", "on")
        else:
            env_config[config_key] = value

    return env_config


def load_config(config_dir: Optional[str] = None) -> Config:
    """Build a Config from the settings file with environment overrides applied."""
    config = Config(config_dir)
    env_config = load_config_from_env()
    if env_config:
        config.update(env_config)
    return config
