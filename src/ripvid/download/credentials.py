"""
Detection of installed browsers usable as yt-dlp cookie sources.
"""

import os
import platform
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ripvid.constants import CREDENTIAL_BROWSERS
from ripvid.log_utils import logger


@dataclass(frozen=True)
class CredentialSource:
    """A browser whose cookie store may be passed to `--cookies-from-browser`."""

    name: str
    usable: bool = True


_WINDOWS_INSTALL_PATHS: Dict[str, List[str]] = {
    "firefox": [
        r"C:\Program Files\Mozilla Firefox\firefox.exe",
        r"C:\Program Files (x86)\Mozilla Firefox\firefox.exe",
    ],
    "chrome": [
        r"C:\Program Files\Google\Chrome\Application\chrome.exe",
        r"C:\Program Files (x86)\Google\Chrome\Application\chrome.exe",
    ],
    "edge": [
        r"C:\Program Files\Microsoft\Edge\Application\msedge.exe",
        r"C:\Program Files (x86)\Microsoft\Edge\Application\msedge.exe",
    ],
}

_WINDOWS_LOCALAPPDATA_PATHS: Dict[str, str] = {
    "firefox": r"Mozilla Firefox\firefox.exe",
    "chrome": r"Google\Chrome\Application\chrome.exe",
}

_WINDOWS_PATH_EXECUTABLES: Dict[str, str] = {"edge": "msedge.exe"}

_MACOS_APPLICATIONS: Dict[str, str] = {
    "firefox": "/Applications/Firefox.app",
    "chrome": "/Applications/Google Chrome.app",
    "edge": "/Applications/Microsoft Edge.app",
}

_LINUX_EXECUTABLES: Dict[str, List[str]] = {
    "firefox": ["firefox"],
    "chrome": ["google-chrome", "google-chrome-stable", "chrome"],
    "edge": ["microsoft-edge", "microsoft-edge-stable", "edge"],
}


def _windows_installed(browser: str) -> bool:
    for candidate in _WINDOWS_INSTALL_PATHS.get(browser, []):
        if os.path.exists(candidate):
            logger.debug(f"Found {browser} at {candidate}")
            return True

    local_appdata = os.environ.get("LOCALAPPDATA")
    relative = _WINDOWS_LOCALAPPDATA_PATHS.get(browser)
    if local_appdata and relative:
        candidate = os.path.join(local_appdata, relative)
        if os.path.exists(candidate):
            logger.debug(f"Found {browser} at {candidate}")
            return True

    executable = _WINDOWS_PATH_EXECUTABLES.get(browser)
    return bool(executable and shutil.which(executable))


def _macos_installed(browser: str) -> bool:
    app_path = _MACOS_APPLICATIONS.get(browser)
    return bool(app_path and Path(app_path).exists())


def _linux_installed(browser: str) -> bool:
    candidates = _LINUX_EXECUTABLES.get(browser, [browser])
    return any(shutil.which(candidate) for candidate in candidates)


def is_browser_installed(browser: str, system: Optional[str] = None) -> bool:
    """
    Check whether `browser` (firefox, chrome or edge) is installed.

    Windows checks the standard install locations, macOS the `/Applications`
    bundles and other systems look for the executable on PATH.
    """
    current = (system or platform.system()).lower()
    if current == "windows":
        return _windows_installed(browser)
    if current == "darwin":
        return _macos_installed(browser)
    return _linux_installed(browser)


def detect_credential_sources(
    browsers: Sequence[str] = CREDENTIAL_BROWSERS, system: Optional[str] = None
) -> List[CredentialSource]:
    """
    Probe each browser in order and report whether it can be used.

    Returns:
        List[CredentialSource]: One entry per requested browser, same order.
    """
    logger.debug("Starting browser detection for cookie extraction")
    sources = []
    for browser in browsers:
        usable = is_browser_installed(browser, system)
        logger.debug(f"Browser {browser}: {'found' if usable else 'not found'}")
        sources.append(CredentialSource(name=browser, usable=usable))

    if not any(source.usable for source in sources):
        logger.warning("No supported browser found for cookie extraction")
    return sources
