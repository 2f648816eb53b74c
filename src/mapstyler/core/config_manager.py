"""Configuration Manager - Persistent storage for pipeline settings and preferences."""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

CONFIG_DIR_ENV = "MAPSTYLER_CONFIG_DIR"

DEFAULT_CONFIG = {
    "fetch": {
        "timeout_seconds": 30.0,
        "max_size_mb": 200.0,
    },
    "cache": {
        "max_entries": None,
        "ttl_seconds": None,
    },
    "pipeline": {
        "layer_timeout_seconds": 60.0,
    },
    "geotiff": {
        "stream_remote": True,
    },
    "loading": {
        "stop_delay_seconds": 0.8,
    },
    "projection": {
        "target_crs": "EPSG:3857",
    },
    "window": {},
    "preferences": {},
}


def _merge_defaults(defaults: dict, loaded: dict) -> dict:
    """Overlay loaded values on the defaults so new keys appear in old files."""
    merged = copy.deepcopy(defaults)
    for key, value in loaded.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge_defaults(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigManager:
    """Singleton configuration manager for pipeline settings and user preferences."""

    _instance: Optional['ConfigManager'] = None

    def __new__(cls):
        """Ensure only one instance exists (singleton pattern)."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        """Initialize configuration manager."""
        if self._initialized:
            return

        self._initialized = True
        self._config: dict = {}
        override = os.environ.get(CONFIG_DIR_ENV)
        self._config_dir = Path(override) if override else Path.home() / ".mapstyler"
        self._config_file = self._config_dir / "config.json"

        # Load existing config or create new one
        self.load()

    @property
    def config_file(self) -> Path:
        return self._config_file

    def load(self):
        """Load configuration from JSON file."""
        try:
            if self._config_file.exists():
                with open(self._config_file, 'r', encoding='utf-8') as f:
                    loaded = json.load(f)
                if not isinstance(loaded, dict):
                    raise ConfigError(f"{self._config_file} does not contain a JSON object")
                self._config = _merge_defaults(DEFAULT_CONFIG, loaded)
            else:
                self._config = copy.deepcopy(DEFAULT_CONFIG)
                self.save()
        except (json.JSONDecodeError, IOError, ConfigError) as e:
            logger.warning(f"Failed to load config file: {e}")
            logger.warning("Creating new configuration with defaults")
            self._config = copy.deepcopy(DEFAULT_CONFIG)

    def save(self):
        """Save configuration to JSON file."""
        try:
            # Create config directory if it doesn't exist
            self._config_dir.mkdir(parents=True, exist_ok=True)

            with open(self._config_file, 'w', encoding='utf-8') as f:
                json.dump(self._config, f, indent=2, ensure_ascii=False)
        except IOError as e:
            logger.warning(f"Failed to save config file: {e}")

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by hierarchical key.

        Args:
            key: Hierarchical key using '/' separator (e.g., 'fetch/timeout_seconds')
            default: Default value if key doesn't exist or is null

        Returns:
            Configuration value or default
        """
        keys = key.split('/')
        value = self._config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return default if value is None else value

    def set(self, key: str, value: Any):
        """Set configuration value by hierarchical key.

        Args:
            key: Hierarchical key using '/' separator (e.g., 'cache/max_entries')
            value: Value to store

        Raises:
            ConfigError: If an intermediate key holds a non-mapping value
        """
        keys = key.split('/')
        config = self._config

        # Navigate to the parent dictionary
        for k in keys[:-1]:
            if k not in config or config[k] is None:
                config[k] = {}
            if not isinstance(config[k], dict):
                raise ConfigError(f"Cannot set '{key}': '{k}' is not a section")
            config = config[k]

        # Set the final value
        config[keys[-1]] = value

        # Auto-save after setting
        self.save()

    def get_float(self, key: str, default: float) -> float:
        """Get a numeric setting, falling back to default on bad values."""
        value = self.get(key, default)
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning(f"Config value {key}={value!r} is not a number, using {default}")
            return default

    def reset(self):
        """Reset configuration to defaults."""
        self._config = copy.deepcopy(DEFAULT_CONFIG)
        self.save()


# Global singleton instance
_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Get the global configuration manager instance.

    Returns:
        ConfigManager singleton instance
    """
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager


def reset_config_manager() -> None:
    """Drop the singleton so the next access reloads from disk."""
    global _config_manager
    _config_manager = None
    ConfigManager._instance = None
