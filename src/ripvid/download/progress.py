"""
Parsing of yt-dlp `--newline` progress output.
"""

import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from ripvid.constants import (
    POST_PROCESSING_MARKERS,
    PROGRESS_MARKER,
    STATUS_MARKERS,
    UNKNOWN_ETA,
    UNKNOWN_SPEED,
)

_PERCENT_RE = re.compile(r"(\d+(?:\.\d+)?)%")
_SPEED_RE = re.compile(r"\bat\s+(\S+)")
_ETA_RE = re.compile(r"\bETA\s+(\S+)")


@dataclass(frozen=True)
class ProgressRecord:
    percent: float
    speed: str = UNKNOWN_SPEED
    eta: str = UNKNOWN_ETA

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def parse_progress(line: str) -> Optional[ProgressRecord]:
    """
    Parse a yt-dlp progress line such as
    `[download]  45.2% of 10.00MiB at 1.23MiB/s ETA 00:05`.

    Returns:
        Optional[ProgressRecord]: The record, or None when the line is not a
        progress line or carries no parseable percentage.
    """
    if PROGRESS_MARKER not in line or "%" not in line:
        return None

    percent_match = _PERCENT_RE.search(line)
    if percent_match is None:
        return None
    try:
        percent = float(percent_match.group(1))
    except ValueError:
        return None
    percent = min(max(percent, 0.0), 100.0)

    speed_match = _SPEED_RE.search(line)
    eta_match = _ETA_RE.search(line)
    return ProgressRecord(
        percent=percent,
        speed=speed_match.group(1) if speed_match else UNKNOWN_SPEED,
        eta=eta_match.group(1) if eta_match else UNKNOWN_ETA,
    )


def is_post_processing(line: str) -> bool:
    """True for merger/ffmpeg lines that mark the post-processing phase."""
    return any(marker in line for marker in POST_PROCESSING_MARKERS)


def is_status_line(line: str) -> bool:
    return any(marker in line for marker in STATUS_MARKERS)
