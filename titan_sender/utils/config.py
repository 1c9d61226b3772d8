"""Engine settings stored as a flat JSON object.

The file lives in a per-user config directory. Keys missing from the file
take their default, unknown keys are kept, and a file whose values would
misconfigure the engine is rejected on load.
"""

import json
import os
import sys
import shutil
import logging
from typing import Dict, Any, Optional
from pathlib import Path

from .constants import (
    BAUD_DEFAULT,
    DEFAULT_JOG_FEED,
    DEFAULT_PROBE_DISTANCE,
    DEFAULT_PROBE_FEED,
    RX_BUFFER_SAFE_CAPACITY,
    RX_BUFFER_SIZE,
    SETTINGS_FILENAME,
    SETTINGS_BACKUP_SUFFIX,
    SETTINGS_TEMP_SUFFIX,
    STATUS_POLL_DEFAULT,
    STATUS_QUERY_FAILURE_LIMIT_DEFAULT,
    STATUS_QUERY_FAILURE_LIMIT_MIN,
    STOP_GRACE_DELAY,
    TCP_PORT_DEFAULT,
)
from .exceptions import (
    SettingsLoadError,
    SettingsSaveError,
    SettingsValidationError,
    ValidationException,
)
from .validation import validate_baud_rate, validate_interval, validate_wcs_index

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS: Dict[str, Any] = {
    "baud_rate": BAUD_DEFAULT,
    "bluetooth_address": "",
    "default_wcs": 0,
    "jog_feed": float(DEFAULT_JOG_FEED),
    "last_port": "",
    "probe_distance": DEFAULT_PROBE_DISTANCE,
    "probe_feed": float(DEFAULT_PROBE_FEED),
    "rx_buffer_safe_capacity": RX_BUFFER_SAFE_CAPACITY,
    "rx_buffer_size": RX_BUFFER_SIZE,
    "status_poll_interval": STATUS_POLL_DEFAULT,
    "status_query_failure_limit": STATUS_QUERY_FAILURE_LIMIT_DEFAULT,
    "stop_grace_delay": STOP_GRACE_DELAY,
    "tcp_host": "",
    "tcp_port": TCP_PORT_DEFAULT,
    "websocket_url": "",
}


def check_settings(data: Dict[str, Any]) -> None:
    """Reject values the session or transports would refuse at startup.

    Raises:
        SettingsValidationError: Naming the first bad key
    """
    try:
        validate_baud_rate(data["baud_rate"])
        validate_interval(data["status_poll_interval"])
        validate_wcs_index(data["default_wcs"])
    except ValidationException as e:
        raise SettingsValidationError(str(e)) from e

    limit = data["status_query_failure_limit"]
    if not isinstance(limit, int) or limit < STATUS_QUERY_FAILURE_LIMIT_MIN:
        raise SettingsValidationError(f"Invalid failure limit: {limit}")

    size = data["rx_buffer_size"]
    capacity = data["rx_buffer_safe_capacity"]
    if not isinstance(size, int) or not isinstance(capacity, int):
        raise SettingsValidationError("Buffer sizes must be integers")
    if not (0 < capacity < size):
        raise SettingsValidationError(
            f"Safe capacity {capacity} must be positive and below buffer size {size}"
        )


def get_default_settings_dir() -> str:
    """``TITAN_SENDER_CONFIG_DIR``, else the platform config dir, else home."""
    env_dir = os.getenv("TITAN_SENDER_CONFIG_DIR")
    if env_dir:
        return env_dir

    if sys.platform.startswith("win"):
        base = os.getenv("LOCALAPPDATA") or os.getenv("APPDATA")
    else:
        base = os.getenv("XDG_CONFIG_HOME")

    if not base:
        base = os.path.expanduser("~")

    return os.path.join(base, "TitanSender")


def get_settings_path() -> str:
    """Path of the settings file; the directory is created on demand.

    Falls back to ``~/.titan_sender`` when the config dir is not writable.
    """
    base_dir = get_default_settings_dir()

    try:
        os.makedirs(base_dir, exist_ok=True)
    except OSError as e:
        logger.warning(f"Failed to create settings directory: {e}")
        base_dir = os.path.join(os.path.expanduser("~"), ".titan_sender")
        os.makedirs(base_dir, exist_ok=True)

    return os.path.join(base_dir, SETTINGS_FILENAME)


class Settings:
    """Engine settings backed by one JSON file.

    Example:
        settings = Settings()
        settings.load()
        settings.set("last_port", "/dev/ttyUSB0")
        settings.save()
    """

    def __init__(self, filepath: Optional[str] = None):
        self.filepath = filepath or get_settings_path()
        self.data: Dict[str, Any] = dict(DEFAULT_SETTINGS)
        logger.info(f"Settings file: {self.filepath}")

    def load(self) -> bool:
        """Read the file over the defaults.

        The current values are left untouched if the file is unusable.

        Returns:
            True if a file was read, False if none exists yet

        Raises:
            SettingsLoadError: If the file cannot be read or parsed
            SettingsValidationError: If a value is out of range
        """
        if not os.path.exists(self.filepath):
            logger.info("No settings file found, using defaults")
            return False

        try:
            with open(self.filepath, "r", encoding="utf-8") as f:
                loaded = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in settings file: {e}")
            raise SettingsLoadError(f"Invalid JSON: {e}")
        except OSError as e:
            logger.error(f"Failed to read settings file: {e}")
            raise SettingsLoadError(f"Failed to read file: {e}")

        if not isinstance(loaded, dict):
            raise SettingsLoadError("Settings file must contain a JSON object")

        merged = {**DEFAULT_SETTINGS, **loaded}
        check_settings(merged)
        self.data = merged
        logger.info("Settings loaded successfully")
        return True

    def save(self) -> None:
        """Write atomically, keeping the previous file as a backup.

        Raises:
            SettingsSaveError: If the file cannot be written
        """
        filepath = Path(self.filepath)
        temp_path = Path(str(filepath) + SETTINGS_TEMP_SUFFIX)
        backup_path = Path(str(filepath) + SETTINGS_BACKUP_SUFFIX)

        try:
            filepath.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(self.data, f, indent=2, sort_keys=True)
            if filepath.exists():
                shutil.copy2(filepath, backup_path)
            temp_path.replace(filepath)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to write settings: {e}")
            if temp_path.exists():
                temp_path.unlink()
            raise SettingsSaveError(f"Failed to save: {e}")
        logger.info("Settings saved")

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value

    def validate(self) -> bool:
        """Check the current values.

        Raises:
            SettingsValidationError: If a value is out of range
        """
        check_settings(self.data)
        return True
