"""
Reads widget configuration files and YAML daemon settings from disk.
"""

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..utils.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Maximum config file size (1MB is far more than any widget config needs)
MAX_CONFIG_SIZE = 1024 * 1024

CONFIG_EXTENSIONS = [".yuck", ".wisp"]
SETTINGS_EXTENSIONS = [".yaml", ".yml"]

DEFAULT_SETTINGS: Dict[str, Dict[str, Any]] = {
    "engine": {
        "coalesce_window": 0.01,
        "poll_timeout": 5.0,
        "poll_workers": 4,
    },
    "watch": {
        "enabled": True,
        "debounce": 0.5,
    },
    "logging": {
        "level": "INFO",
        "file": None,
    },
}

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _resolve(path: str, extensions) -> Path:
    """
    Resolve a path and check it is safe to read.

    Raises:
        ConfigurationError: If the file is missing, a directory or too large
    """
    resolved_path = Path(path).expanduser().resolve()

    if resolved_path.is_dir():
        raise ConfigurationError(f"Path is a directory, not a file: {resolved_path}")

    if not resolved_path.exists():
        raise ConfigurationError(f"Configuration file not found: {resolved_path}")

    if resolved_path.suffix.lower() not in extensions:
        logger.warning(
            f"Configuration file has unexpected extension: {resolved_path.suffix}. "
            f"Expected {' or '.join(extensions)}"
        )

    file_size = resolved_path.stat().st_size
    if file_size > MAX_CONFIG_SIZE:
        raise ConfigurationError(
            f"Configuration file too large: {file_size} bytes "
            f"(maximum {MAX_CONFIG_SIZE} bytes)"
        )

    return resolved_path


def read_config(path: str) -> str:
    """
    Read the text of a widget configuration file.

    Args:
        path: Path to the configuration file

    Returns:
        File contents

    Raises:
        ConfigurationError: If the file cannot be read
    """
    resolved_path = _resolve(path, CONFIG_EXTENSIONS)
    try:
        with open(resolved_path, "r", encoding="utf-8") as f:
            text = f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Cannot read configuration file: {e}") from e

    logger.debug(f"Read {len(text)} characters from {resolved_path}")
    return text


class SettingsLoader:
    """Loads and validates YAML daemon settings"""

    def load(self, settings_path: Optional[str] = None) -> Dict[str, Any]:
        """
        Load daemon settings.

        Args:
            settings_path: Path to a YAML file, or None for the defaults

        Returns:
            Validated settings dictionary with defaults applied

        Raises:
            ConfigurationError: If the file is invalid or unreadable
        """
        if settings_path is None:
            return self._apply_defaults({})

        resolved_path = _resolve(settings_path, SETTINGS_EXTENSIONS)
        try:
            with open(resolved_path, "r", encoding="utf-8") as f:
                settings = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in settings file: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Cannot read settings file: {e}") from e

        # An empty file means "all defaults"
        if settings is None:
            settings = {}

        settings = self.from_dict(settings)
        logger.info(f"Loaded settings from {resolved_path}")
        return settings

    def from_dict(self, settings: Any) -> Dict[str, Any]:
        """Validate an in-memory settings mapping and fill in defaults."""
        self._validate(settings)
        return self._apply_defaults(copy.deepcopy(settings))

    def _validate(self, settings: Any) -> None:
        """Validate settings structure"""
        if not isinstance(settings, dict):
            raise ConfigurationError("Settings must be a dictionary")

        for section, values in settings.items():
            if section not in DEFAULT_SETTINGS:
                raise ConfigurationError(f"Unknown settings section '{section}'")
            if not isinstance(values, dict):
                raise ConfigurationError(f"Settings section '{section}' must be a dictionary")
            for key in values:
                if key not in DEFAULT_SETTINGS[section]:
                    raise ConfigurationError(f"Unknown setting '{section}.{key}'")

        engine = settings.get("engine", {})
        for key in ("coalesce_window", "poll_timeout"):
            if key in engine and not _is_number(engine[key], minimum=0):
                raise ConfigurationError(f"'engine.{key}' must be a non-negative number")
        if "poll_workers" in engine:
            workers = engine["poll_workers"]
            if isinstance(workers, bool) or not isinstance(workers, int) or workers < 1:
                raise ConfigurationError("'engine.poll_workers' must be a positive integer")

        watch = settings.get("watch", {})
        if "enabled" in watch and not isinstance(watch["enabled"], bool):
            raise ConfigurationError("'watch.enabled' must be true or false")
        if "debounce" in watch and not _is_number(watch["debounce"], minimum=0):
            raise ConfigurationError("'watch.debounce' must be a non-negative number")

        log_settings = settings.get("logging", {})
        level = log_settings.get("level")
        if level is not None and str(level).upper() not in LOG_LEVELS:
            raise ConfigurationError(f"'logging.level' must be one of {', '.join(LOG_LEVELS)}")
        log_file = log_settings.get("file")
        if log_file is not None and not isinstance(log_file, str):
            raise ConfigurationError("'logging.file' must be a path")

    def _apply_defaults(self, settings: Dict[str, Any]) -> Dict[str, Any]:
        """Apply default values to settings"""
        for section, defaults in DEFAULT_SETTINGS.items():
            values = settings.setdefault(section, {})
            for key, default in defaults.items():
                values.setdefault(key, default)

        settings["logging"]["level"] = str(settings["logging"]["level"]).upper()
        return settings


def load_settings(settings_path: Optional[str] = None) -> Dict[str, Any]:
    """Load daemon settings, see SettingsLoader.load()."""
    return SettingsLoader().load(settings_path)


def _is_number(value: Any, minimum: float) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value >= minimum
