"""
Classification of yt-dlp diagnostics into failure kinds and user messages.
"""

import asyncio
from enum import Enum
from typing import Optional

from ripvid.constants import (
    AUTH_ERROR_PATTERNS,
    DECRYPTION_ERROR_PATTERNS,
    FFMPEG_ERROR_SUBJECTS,
    FFMPEG_ERROR_SYMPTOMS,
    MSG_AUTH_REQUIRED,
    MSG_COOKIE_DECRYPTION,
    MSG_EXIT_CODE,
    MSG_FFMPEG_MISSING,
    MSG_NETWORK,
    MSG_NO_EXIT_CODE,
    MSG_RATE_LIMITED,
    NETWORK_ERROR_PATTERNS,
    RATE_LIMIT_ERROR_PATTERNS,
)
from ripvid.exceptions import DownloadError


class FailureKind(Enum):
    # Declaration order is classification priority
    FFMPEG_MISSING = "ffmpeg_missing"
    COOKIE_DECRYPTION = "cookie_decryption"
    AUTHENTICATION_REQUIRED = "authentication_required"
    RATE_LIMITED = "rate_limited"
    NETWORK = "network"
    GENERIC = "generic"


def _contains_any(text: str, patterns) -> bool:
    return any(pattern in text for pattern in patterns)


def is_auth_error(text: str) -> bool:
    return _contains_any(text, AUTH_ERROR_PATTERNS)


def is_decryption_error(text: str) -> bool:
    """Cookie store decryption failure (DPAPI on Windows Chrome/Edge)."""
    return _contains_any(text, DECRYPTION_ERROR_PATTERNS) or (
        "decrypt" in text and "cookie" in text
    )


def is_rate_limit_error(text: str) -> bool:
    return _contains_any(text, RATE_LIMIT_ERROR_PATTERNS)


def is_network_error(text: str) -> bool:
    return _contains_any(text, NETWORK_ERROR_PATTERNS)


def is_ffmpeg_error(text: str) -> bool:
    """A merge/post-processing step failed because ffmpeg is missing or unusable."""
    return _contains_any(text, FFMPEG_ERROR_SUBJECTS) and _contains_any(
        text, FFMPEG_ERROR_SYMPTOMS
    )


def classify_failure(text: str) -> FailureKind:
    """
    Map accumulated diagnostic output to the first matching failure kind.

    Parameters:
        text (str): All stderr lines of a failed attempt joined with newlines.

    Returns:
        FailureKind: The highest-priority kind whose patterns match, else GENERIC.
    """
    if is_ffmpeg_error(text):
        return FailureKind.FFMPEG_MISSING
    if is_decryption_error(text):
        return FailureKind.COOKIE_DECRYPTION
    if is_auth_error(text):
        return FailureKind.AUTHENTICATION_REQUIRED
    if is_rate_limit_error(text):
        return FailureKind.RATE_LIMITED
    if is_network_error(text):
        return FailureKind.NETWORK
    return FailureKind.GENERIC


_MESSAGES = {
    FailureKind.FFMPEG_MISSING: MSG_FFMPEG_MISSING,
    FailureKind.COOKIE_DECRYPTION: MSG_COOKIE_DECRYPTION,
    FailureKind.AUTHENTICATION_REQUIRED: MSG_AUTH_REQUIRED,
    FailureKind.RATE_LIMITED: MSG_RATE_LIMITED,
    FailureKind.NETWORK: MSG_NETWORK,
}


def failure_message(kind: FailureKind, exit_code: Optional[int]) -> str:
    """
    User-facing message for a failed attempt.

    GENERIC failures report the exit code, or that the process ended without one.
    """
    if kind in _MESSAGES:
        return _MESSAGES[kind]
    if exit_code is None:
        return MSG_NO_EXIT_CODE
    return MSG_EXIT_CODE.format(code=exit_code)


def is_retryable_error(exc: BaseException) -> bool:
    """
    Decide whether a failed operation is worth another backoff attempt.

    DownloadError subclasses carry their own `is_retryable` flag; bare timeouts
    and connection errors are retryable; everything else is permanent.
    """
    if isinstance(exc, DownloadError):
        return exc.is_retryable
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return True
    return bool(getattr(exc, "is_retryable", False))
