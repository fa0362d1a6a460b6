"""
DocRectify - Configuration Manager

This module provides centralized JSON-based configuration management.
It handles loading and saving settings and turning the ``scanner``
section into a validated ScannerConfig.
"""

import copy
import json
import os
from typing import TYPE_CHECKING, Any, Final

from docrectify.config import CONFIG_FILE_PATH
from docrectify.utils.exceptions import ConfigurationError
from docrectify.utils.logger import logger

if TYPE_CHECKING:
    from docrectify.services.config import ScannerConfig

# Default configuration values; the scanner section is filled from ScannerConfig
DEFAULT_CONFIG: Final[dict[str, Any]] = {
    "version": 1,
    "scanner": {},
    "output": {
        "default_mode": "bw",
        "preview_dir": "",
    },
}


class ConfigManager:
    """Manages engine configuration in JSON format.

    The file is only read on construction and written on ``save()``;
    nothing touches the filesystem at import time.
    """

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize the configuration manager.

        Args:
            config_path: Optional path to the configuration file.
                        Defaults to CONFIG_FILE_PATH.
        """
        self.config_path = config_path or CONFIG_FILE_PATH
        self._config: dict[str, Any] = {}

        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from file or fall back to defaults."""
        self._config = self._get_default_config()

        if not os.path.exists(self.config_path):
            logger.debug(f"No configuration file at {self.config_path}, using defaults")
            return

        try:
            with open(self.config_path, encoding="utf-8") as f:
                loaded = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading config: {e}")
            return

        if not isinstance(loaded, dict):
            logger.error(f"Ignoring configuration file {self.config_path}: not a JSON object")
            return

        self._merge_defaults(loaded, self._config)
        self._config = loaded
        logger.info("Configuration loaded from JSON")

    def _get_default_config(self) -> dict[str, Any]:
        """Get a copy of the default configuration.

        Returns:
            Deep copy of default configuration dictionary.
        """
        return copy.deepcopy(DEFAULT_CONFIG)

    def _merge_defaults(self, config: dict, defaults: dict) -> None:
        """Merge default values into config for missing keys.

        Args:
            config: Current configuration dictionary.
            defaults: Default configuration dictionary.
        """
        for key, value in defaults.items():
            if key not in config:
                config[key] = copy.deepcopy(value)
            elif isinstance(value, dict) and isinstance(config.get(key), dict):
                self._merge_defaults(config[key], value)

    def save(self) -> bool:
        """Save configuration to file.

        Returns:
            True if save was successful, False otherwise.
        """
        try:
            directory = os.path.dirname(self.config_path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self.config_path, "w", encoding="utf-8") as f:
                json.dump(self._config, f, indent=2, ensure_ascii=False)
            logger.debug("Configuration saved to JSON")
            return True
        except OSError as e:
            logger.error(f"Error saving config: {e}")
            return False

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get a configuration value by dot-separated path.

        Args:
            key_path: Dot-separated path to the config value (e.g., "scanner.seed")
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split(".")
        value = self._config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def set(self, key_path: str, value: Any, save_immediately: bool = True) -> None:
        """Set a configuration value by dot-separated path.

        Args:
            key_path: Dot-separated path to the config value
            value: Value to set
            save_immediately: Whether to save to file immediately
        """
        keys = key_path.split(".")
        config = self._config

        # Navigate to parent key
        for key in keys[:-1]:
            if not isinstance(config.get(key), dict):
                config[key] = {}
            config = config[key]

        config[keys[-1]] = value

        if save_immediately:
            self.save()

    def to_scanner_config(self) -> "ScannerConfig":
        """Build a validated ScannerConfig from the ``scanner`` section.

        Unknown keys are ignored with a warning.

        Returns:
            ScannerConfig with file values applied over the defaults

        Raises:
            ConfigurationError: If the section is malformed or a value is invalid
        """
        from dataclasses import fields

        from docrectify.services.config import ScannerConfig

        section = self.get("scanner", {})
        if not isinstance(section, dict):
            raise ConfigurationError("scanner", "section must be a JSON object")

        known = {f.name for f in fields(ScannerConfig)}
        kwargs: dict[str, Any] = {}
        for key, value in section.items():
            if key not in known:
                logger.warning(f"Ignoring unknown scanner setting '{key}'")
                continue
            kwargs[key] = tuple(value) if isinstance(value, list) else value

        try:
            config = ScannerConfig(**kwargs)
        except TypeError as e:
            raise ConfigurationError("scanner", str(e)) from e

        config.validate()
        return config


# Singleton instance for global access
_config_manager: ConfigManager | None = None


def get_config_manager() -> ConfigManager:
    """Get the global configuration manager instance.

    Returns:
        The singleton ConfigManager instance
    """
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager
