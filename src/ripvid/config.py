"""
Configuration loading for ripvid.

The configuration is a flat YAML mapping stored in the platformdirs-managed
user configuration directory. Every key is optional; the getters below
validate values and fall back to defaults with a warning instead of failing.
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import platformdirs
import yaml

from ripvid.constants import (
    APP_NAME,
    BINARIES_DIR_NAME,
    CONFIG_FILE_NAME,
    CREDENTIAL_BROWSERS,
    DEFAULT_BACKOFF_ATTEMPTS,
    DEFAULT_INITIAL_BACKOFF_DELAY,
    DEFAULT_REQUEST_TIMEOUT,
    LOGS_DIR_NAME,
    REFRESH_INTERVAL_SECONDS,
)
from ripvid.exceptions import ConfigurationError
from ripvid.log_utils import logger
from ripvid.utils import atomic_write

DEFAULT_CONFIG: Dict[str, Any] = {
    "LOG_LEVEL": "INFO",
    "LOG_TO_FILE": True,
    "MAX_DOWNLOAD_RETRIES": DEFAULT_BACKOFF_ATTEMPTS,
    "DOWNLOAD_RETRY_DELAY": DEFAULT_INITIAL_BACKOFF_DELAY,
    "REFRESH_INTERVAL_HOURS": REFRESH_INTERVAL_SECONDS / 3600,
    "REQUEST_TIMEOUT": DEFAULT_REQUEST_TIMEOUT,
    "CREDENTIAL_BROWSERS": list(CREDENTIAL_BROWSERS),
}


def get_config_file() -> Path:
    """Return the path of the YAML configuration file in the user config directory."""
    return Path(platformdirs.user_config_dir(APP_NAME)) / CONFIG_FILE_NAME


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load the ripvid configuration YAML merged over the defaults.

    Parameters:
        config_path (Optional[Path]): Explicit file to read; defaults to `get_config_file()`.

    Returns:
        Dict[str, Any]: Defaults updated with the keys found in the file. A missing file yields the defaults.

    Raises:
        ConfigurationError: If the file exists but cannot be read or is not a YAML mapping.
    """
    path = Path(config_path) if config_path else get_config_file()
    config = dict(DEFAULT_CONFIG)

    if not path.exists():
        logger.debug(f"No configuration file at {path}; using defaults")
        return config

    try:
        with open(path, "r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(
            f"Failed to load configuration from {path}", str(e)
        ) from e

    if loaded is None:
        return config
    if not isinstance(loaded, dict):
        raise ConfigurationError(
            f"Configuration in {path} must be a mapping",
            f"got {type(loaded).__name__}",
        )

    config.update(loaded)
    return config


def save_config(config: Dict[str, Any], config_path: Optional[Path] = None) -> bool:
    """
    Atomically write the configuration mapping as YAML.

    Returns:
        bool: `True` on success, `False` if the file could not be written.
    """
    path = Path(config_path) if config_path else get_config_file()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"Could not create configuration directory {path.parent}: {e}")
        return False
    return atomic_write(
        str(path),
        lambda f: yaml.safe_dump(config, f, default_flow_style=False),
        suffix=".yaml",
    )


def get_data_dir(config: Dict[str, Any]) -> Path:
    """Return the application data directory (`DATA_DIR` or the platformdirs default)."""
    configured = config.get("DATA_DIR")
    if configured:
        return Path(os.path.expanduser(str(configured)))
    return Path(platformdirs.user_data_dir(APP_NAME))


def get_binaries_dir(config: Dict[str, Any]) -> Path:
    return get_data_dir(config) / BINARIES_DIR_NAME


def get_log_dir(config: Dict[str, Any]) -> Path:
    return get_data_dir(config) / LOGS_DIR_NAME


def get_max_retries(config: Dict[str, Any]) -> int:
    """
    Maximum number of attempts for backoff-wrapped operations.

    Reads `MAX_DOWNLOAD_RETRIES`, uses the default when it is not an integer and
    clamps values below 1 to 1 (a single attempt, no retry).
    """
    raw_value = config.get("MAX_DOWNLOAD_RETRIES", DEFAULT_BACKOFF_ATTEMPTS)
    try:
        parsed_value = int(raw_value)
    except (TypeError, ValueError):
        logger.warning(
            "Invalid MAX_DOWNLOAD_RETRIES value %r; using default %d",
            raw_value,
            DEFAULT_BACKOFF_ATTEMPTS,
        )
        return DEFAULT_BACKOFF_ATTEMPTS

    if parsed_value < 1:
        logger.warning("MAX_DOWNLOAD_RETRIES must be >= 1; clamping %d to 1", parsed_value)
        return 1
    return parsed_value


def get_retry_delay(config: Dict[str, Any]) -> float:
    """
    Initial backoff delay in seconds.

    Reads `DOWNLOAD_RETRY_DELAY`, defaults to 1.0 on missing or invalid values and
    clamps negative values to 0.0.
    """
    raw_value = config.get("DOWNLOAD_RETRY_DELAY", DEFAULT_INITIAL_BACKOFF_DELAY)
    try:
        parsed_value = float(raw_value)
    except (TypeError, ValueError):
        logger.warning(
            "Invalid DOWNLOAD_RETRY_DELAY value %r; using default %.1f",
            raw_value,
            DEFAULT_INITIAL_BACKOFF_DELAY,
        )
        return DEFAULT_INITIAL_BACKOFF_DELAY

    if parsed_value < 0.0:
        logger.warning(
            "DOWNLOAD_RETRY_DELAY must be >= 0.0; clamping %.3f to 0.0", parsed_value
        )
        return 0.0
    return parsed_value


def get_refresh_interval(config: Dict[str, Any]) -> int:
    """
    Refresh interval in seconds, read from `REFRESH_INTERVAL_HOURS`.

    Invalid or non-positive values fall back to one day.
    """
    raw_value = config.get("REFRESH_INTERVAL_HOURS", REFRESH_INTERVAL_SECONDS / 3600)
    try:
        hours = float(raw_value)
    except (TypeError, ValueError):
        logger.warning("Invalid REFRESH_INTERVAL_HOURS value %r; using 24", raw_value)
        return REFRESH_INTERVAL_SECONDS

    if hours <= 0:
        logger.warning("REFRESH_INTERVAL_HOURS must be > 0; using 24")
        return REFRESH_INTERVAL_SECONDS
    return int(hours * 3600)


def get_request_timeout(config: Dict[str, Any]) -> float:
    raw_value = config.get("REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT)
    try:
        parsed_value = float(raw_value)
    except (TypeError, ValueError):
        logger.warning(
            "Invalid REQUEST_TIMEOUT value %r; using default %d",
            raw_value,
            DEFAULT_REQUEST_TIMEOUT,
        )
        return float(DEFAULT_REQUEST_TIMEOUT)
    if parsed_value <= 0:
        return float(DEFAULT_REQUEST_TIMEOUT)
    return parsed_value


def get_credential_browsers(config: Dict[str, Any]) -> List[str]:
    """
    Ordered list of browser names used as credential sources.

    Accepts a list or a single string; unknown types fall back to the default order.
    """
    value = config.get("CREDENTIAL_BROWSERS")
    if not value:
        return list(CREDENTIAL_BROWSERS)
    if isinstance(value, str):
        return [value.strip().lower()]
    if isinstance(value, (list, tuple)):
        return [str(item).strip().lower() for item in value if str(item).strip()]

    logger.warning(
        "Invalid CREDENTIAL_BROWSERS value %r; using default order", value
    )
    return list(CREDENTIAL_BROWSERS)
