"""
yt-dlp command line construction.
"""

import platform
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union
from urllib.parse import urlparse

from ripvid.constants import WINDOWS_EXTENDED_PATH_PREFIX
from ripvid.download.credentials import CredentialSource
from ripvid.log_utils import logger

KIND_VIDEO = "video"
KIND_AUDIO = "audio"

_BEST_FORMAT = "bestvideo[ext=mp4][vcodec^=avc]+bestaudio[ext=m4a]/best[ext=mp4]/best"

QUALITY_FORMATS = {
    "best": _BEST_FORMAT,
    "1080p": "bestvideo[height<=1080][ext=mp4][vcodec^=avc]+bestaudio[ext=m4a]/best[ext=mp4]",
    "720p": "bestvideo[height<=720][ext=mp4][vcodec^=avc]+bestaudio[ext=m4a]/best[ext=mp4]",
    "480p": "bestvideo[height<=480][ext=mp4][vcodec^=avc]+bestaudio[ext=m4a]/best[ext=mp4]",
    "360p": "bestvideo[height<=360][ext=mp4]+bestaudio[ext=m4a]/best[ext=mp4]",
}

# Checked in order; a host matches a domain or any of its subdomains
PLATFORM_DOMAINS = (
    ("youtube", ("youtube.com", "youtu.be")),
    ("x", ("x.com", "twitter.com")),
    ("facebook", ("facebook.com", "fb.watch")),
    ("instagram", ("instagram.com",)),
    ("tiktok", ("tiktok.com",)),
)


@dataclass(frozen=True)
class DownloadRequest:
    url: str
    output_path: str
    kind: str = KIND_VIDEO
    quality: str = "best"

    def __post_init__(self) -> None:
        if self.kind not in (KIND_VIDEO, KIND_AUDIO):
            raise ValueError(f"Unknown download kind: {self.kind!r}")


def quality_format(quality: str) -> str:
    """
    Map a quality label (`best`, `1080p`/`1080`, ... `360p`) to a yt-dlp format selector.

    Unknown labels fall back to `best` with a warning.
    """
    key = quality.strip().lower()
    if key.isdigit():
        key = f"{key}p"
    selector = QUALITY_FORMATS.get(key)
    if selector is None:
        logger.warning(f"Unknown quality '{quality}', using 'best'")
        return _BEST_FORMAT
    return selector


def detect_platform(url: str) -> Optional[str]:
    """
    Name the video platform a URL belongs to (`youtube`, `x`, `facebook`,
    `instagram` or `tiktok`), or None for anything else.
    """
    candidate = url.strip()
    if "://" not in candidate:
        candidate = f"https://{candidate}"
    host = (urlparse(candidate).hostname or "").lower()
    for name, domains in PLATFORM_DOMAINS:
        if any(host == domain or host.endswith(f".{domain}") for domain in domains):
            return name
    logger.warning(f"Unsupported platform: {url}")
    return None


def strip_extended_path_prefix(
    path: Union[str, Path], system: Optional[str] = None
) -> str:
    """
    Make a path acceptable to yt-dlp.

    On Windows the `\\\\?\\` extended-length prefix is removed and separators are
    turned into forward slashes. Elsewhere the path is returned unchanged.
    """
    path_str = str(path)
    if (system or platform.system()).lower() != "windows":
        return path_str
    if path_str.startswith(WINDOWS_EXTENDED_PATH_PREFIX):
        path_str = path_str[len(WINDOWS_EXTENDED_PATH_PREFIX):]
    return path_str.replace("\\", "/")


def build_ytdlp_args(
    request: DownloadRequest,
    credential: Optional[CredentialSource] = None,
    ffmpeg_location: Optional[Union[str, Path]] = None,
) -> List[str]:
    """
    Build the yt-dlp argument vector for one attempt.

    Parameters:
        request (DownloadRequest): What to download and where.
        credential (Optional[CredentialSource]): Browser whose cookies to use, if any.
        ffmpeg_location (Optional[Union[str, Path]]): Directory holding ffmpeg and ffprobe.

    Returns:
        List[str]: Arguments, not including the executable.
    """
    args = [request.url, "--no-playlist"]

    if ffmpeg_location:
        args += ["--ffmpeg-location", strip_extended_path_prefix(ffmpeg_location)]
    else:
        logger.debug("No managed ffmpeg; yt-dlp will use a system ffmpeg if available")

    if request.kind == KIND_AUDIO:
        args += [
            "-x",
            "--audio-format",
            "mp3",
            "--audio-quality",
            "0",
            "--embed-thumbnail",
            "--add-metadata",
        ]
    else:
        args += ["-f", quality_format(request.quality), "--merge-output-format", "mp4"]

    if credential is not None:
        args += ["--cookies-from-browser", credential.name]
        logger.info(f"Using cookies from browser: {credential.name}")

    args += ["-o", request.output_path, "--progress", "--newline"]
    return args
