"""
Small shared helpers: user agent, clock, and atomic file writes.
"""

import importlib.metadata
import json
import os
import tempfile
import time
from typing import Any, Callable, Dict, Optional

from ripvid.constants import APP_NAME
from ripvid.log_utils import logger

_USER_AGENT_CACHE: Optional[str] = None


def get_user_agent() -> str:
    """
    Get the User-Agent string used for HTTP requests.

    Returns:
        The string `ripvid/{version}`, where `{version}` is the installed package
        version or `unknown` if the version cannot be determined.
    """
    global _USER_AGENT_CACHE

    if _USER_AGENT_CACHE is None:
        try:
            app_version = importlib.metadata.version(APP_NAME)
        except importlib.metadata.PackageNotFoundError:
            app_version = "unknown"

        _USER_AGENT_CACHE = f"{APP_NAME}/{app_version}"

    return _USER_AGENT_CACHE


def epoch_seconds() -> int:
    """Current wall-clock time as whole seconds since the Unix epoch."""
    return int(time.time())


def atomic_write(
    file_path: str, writer_func: Callable[[Any], None], suffix: str = ".tmp"
) -> bool:
    """
    Write data to a file atomically by writing to a temporary file and replacing the target on success.

    Parameters:
        file_path (str): Destination file path to be written.
        writer_func (Callable[[Any], None]): Callable that receives an open text file-like object and writes the content.
        suffix (str): Suffix to use for the temporary file name.

    Returns:
        bool: `True` if the temporary write and atomic replace succeeded, `False` on any error.
    """
    try:
        temp_fd, temp_path = tempfile.mkstemp(
            dir=os.path.dirname(file_path) or ".", prefix="tmp-", suffix=suffix
        )
    except OSError as e:
        logger.error(f"Could not create temporary file for {file_path}: {e}")
        return False

    try:
        with os.fdopen(temp_fd, "w", encoding="utf-8") as temp_f:
            writer_func(temp_f)
        os.replace(temp_path, file_path)
    except (UnicodeEncodeError, OSError, TypeError, ValueError) as e:
        logger.error(f"Could not write to {file_path}: {e}")
        return False
    finally:
        if os.path.exists(temp_path):
            try:
                os.remove(temp_path)
            except OSError:
                pass
    return True


def atomic_write_json(file_path: str, data: Dict[str, Any]) -> bool:
    """
    Atomically write the given dictionary to the target file as pretty-printed JSON.

    Returns:
        bool: `True` if the file was written and moved into place, `False` on error.
    """
    return atomic_write(
        file_path, lambda f: json.dump(data, f, indent=2), suffix=".json"
    )


def read_json(file_path: str) -> Optional[Any]:
    """
    Read and parse a JSON file.

    Returns:
        The parsed value, or None if the file is missing, unreadable or not valid JSON.
    """
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        logger.debug(f"Could not read JSON from {file_path}: {e}")
        return None
