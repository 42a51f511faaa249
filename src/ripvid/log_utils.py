import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from rich.logging import RichHandler

from ripvid.constants import (
    DEBUG_LOG_FORMAT,
    DISABLE_FILE_LOGGING_ENV_VAR,
    INFO_LOG_FORMAT,
    LOG_DATE_FORMAT,
    LOG_FILE_BACKUP_COUNT,
    LOG_FILE_MAX_BYTES,
    LOG_FILE_NAME,
    LOG_LEVEL_ENV_VAR,
    LOGGER_NAME,
)

logger = logging.getLogger(LOGGER_NAME)

# Kept so file logging can be reconfigured without stacking handlers
_file_handler: Optional[RotatingFileHandler] = None


def _resolve_level(level_name: str) -> Optional[int]:
    """
    Translate a level name such as "debug" or "INFO" into a logging level.

    Returns:
        Optional[int]: The numeric level, or None if the name is not a logging level.
    """
    level = getattr(logging, str(level_name).upper(), None)
    return level if isinstance(level, int) else None


def _formatter_for(handler: logging.Handler, level: int) -> logging.Formatter:
    """
    Pick the formatter for a handler at the given level.

    The console (RichHandler) renders time and level itself, so it only gets the
    message. Plain handlers get the informational format at INFO and above and the
    more verbose debug format below INFO.
    """
    if isinstance(handler, RichHandler):
        return logging.Formatter("%(message)s")
    if level >= logging.INFO:
        return logging.Formatter(INFO_LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    return logging.Formatter(DEBUG_LOG_FORMAT, datefmt=LOG_DATE_FORMAT)


def set_log_level(level_name: str) -> None:
    """
    Set the log level for the ripvid logger and reconfigure all attached handlers.

    If `level_name` is not a valid logging level name, a warning is logged and the
    current configuration is left unchanged.

    Parameters:
        level_name (str): Case-insensitive name of the desired level (e.g. "debug").
    """
    level = _resolve_level(level_name)
    if level is None:
        logger.warning(f"Invalid log level name: {level_name}. Using current level.")
        return

    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)
        handler.setFormatter(_formatter_for(handler, level))

    logger.log(level, f"Log level set to {logging.getLevelName(level)}")


def add_file_logging(log_dir_path: Path, level_name: str = "INFO") -> Optional[Path]:
    """
    Enable rotating file logging for the ripvid logger.

    Creates the directory if necessary and attaches a RotatingFileHandler writing to
    `ripvid.log` inside it. Any file handler previously configured by this module is
    removed and closed first. Setting the RIPVID_DISABLE_FILE_LOGGING environment
    variable turns this into a no-op (used by the test suite).

    Parameters:
        log_dir_path (Path): Directory that will hold the log file.
        level_name (str): Level for the file handler; invalid names fall back to INFO.

    Returns:
        Optional[Path]: The log file path, or None when file logging is disabled.
    """
    global _file_handler

    if os.environ.get(DISABLE_FILE_LOGGING_ENV_VAR):
        logger.debug("File logging disabled by environment")
        return None

    if _file_handler is not None and _file_handler in logger.handlers:
        logger.removeHandler(_file_handler)
        _file_handler.close()

    log_dir_path.mkdir(parents=True, exist_ok=True)
    log_file = log_dir_path / LOG_FILE_NAME

    file_log_level = _resolve_level(level_name)
    if file_log_level is None:
        logger.warning(
            f"Invalid file log level name: {level_name}. Defaulting to INFO."
        )
        file_log_level = logging.INFO

    _file_handler = RotatingFileHandler(
        log_file,
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUP_COUNT,
        encoding="utf-8",
    )
    _file_handler.setLevel(file_log_level)
    _file_handler.setFormatter(_formatter_for(_file_handler, file_log_level))
    logger.addHandler(_file_handler)

    logger.info(
        f"File logging enabled at {log_file} with level {logging.getLevelName(file_log_level)}"
    )
    return log_file


def _initialize_logger() -> None:
    """
    Attach the console RichHandler and apply the initial level.

    Existing handlers are removed (interactive sessions may import twice) and
    propagation to the root logger is disabled. The initial level comes from the
    RIPVID_LOG_LEVEL environment variable and defaults to INFO.
    """
    logger.propagate = False

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    console_handler = RichHandler(
        rich_tracebacks=True,
        show_time=True,
        show_level=True,
        show_path=False,
        markup=False,
        log_time_format=LOG_DATE_FORMAT,
    )

    requested = os.environ.get(LOG_LEVEL_ENV_VAR, "INFO")
    initial_level = _resolve_level(requested)
    if initial_level is None:
        logger.warning(f"Invalid {LOG_LEVEL_ENV_VAR}={requested}; defaulting to INFO.")
        initial_level = logging.INFO

    console_handler.setFormatter(_formatter_for(console_handler, initial_level))
    logger.addHandler(console_handler)

    logger.setLevel(initial_level)
    console_handler.setLevel(initial_level)


_initialize_logger()
