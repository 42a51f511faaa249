"""
Per-platform download sources for the managed binaries.

The catalog is a plain table keyed by (operating system, architecture). It is
resolved once at startup into a SourceCatalog holding, for every managed
binary, the ordered list of sources to try (primary first, then fallbacks).
"""

import platform
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ripvid.constants import (
    ARCHIVE_TAR,
    ARCHIVE_ZIP,
    FFMPEG_BINARY,
    FFPROBE_BINARY,
    MANAGED_BINARIES,
    WINDOWS_EXECUTABLE_SUFFIX,
    YTDLP_BINARY,
    YTDLP_CHECKSUM_MANIFEST_URL,
    YTDLP_LATEST_RELEASE_URL,
)

PlatformKey = Tuple[str, str]

_SYSTEM_ALIASES = {
    "windows": "windows",
    "win32": "windows",
    "cygwin": "windows",
    "darwin": "darwin",
    "macos": "darwin",
    "linux": "linux",
}

_MACHINE_ALIASES = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "x64": "x86_64",
    "aarch64": "aarch64",
    "arm64": "aarch64",
    "armv8": "aarch64",
}


@dataclass(frozen=True)
class DownloadSource:
    """One candidate origin for a managed binary."""

    name: str
    """Human-readable origin name, used in logs and progress events"""

    url: str
    """Asset URL, or the release metadata URL when `from_release` is set"""

    version: str
    """Version tag recorded after install ("latest" for rolling builds)"""

    packaged: bool = False
    """Whether the download is an archive the executable must be extracted from"""

    asset_name: Optional[str] = None
    """Release asset to pick (release sources) or manifest entry to look up"""

    checksum_manifest: Optional[str] = None
    """URL of a `<digest> <filename>` manifest; `{tag}` is filled for release sources"""

    from_release: bool = False
    """Resolve `url` as GitHub release metadata before downloading"""


def normalize_platform(
    system: Optional[str] = None, machine: Optional[str] = None
) -> PlatformKey:
    """
    Map raw `platform.system()` / `platform.machine()` values to catalog keys.

    Returns:
        PlatformKey: (os, arch) with os in windows/darwin/linux and arch in
        x86_64/aarch64; unknown values are passed through lowercased.
    """
    raw_system = (system if system is not None else platform.system()).lower()
    raw_machine = (machine if machine is not None else platform.machine()).lower()
    return (
        _SYSTEM_ALIASES.get(raw_system, raw_system),
        _MACHINE_ALIASES.get(raw_machine, raw_machine),
    )


def _ytdlp_source(asset_name: str) -> DownloadSource:
    return DownloadSource(
        name="yt-dlp/yt-dlp",
        url=YTDLP_LATEST_RELEASE_URL,
        version="latest",
        asset_name=asset_name,
        checksum_manifest=YTDLP_CHECKSUM_MANIFEST_URL,
        from_release=True,
    )


_GYAN_ESSENTIALS = DownloadSource(
    name="GyanD/codexffmpeg",
    url="https://github.com/GyanD/codexffmpeg/releases/download/6.0/ffmpeg-6.0-essentials_build.zip",
    version="6.0",
    packaged=True,
)
_BTBN_WIN64 = DownloadSource(
    name="BtbN/FFmpeg-Builds",
    url="https://github.com/BtbN/FFmpeg-Builds/releases/download/latest/ffmpeg-master-latest-win64-gpl.zip",
    version="latest",
    packaged=True,
)
_EVERMEET_FFMPEG = DownloadSource(
    name="evermeet.cx",
    url="https://evermeet.cx/ffmpeg/ffmpeg-6.0.zip",
    version="6.0",
    packaged=True,
)
_EVERMEET_FFPROBE = DownloadSource(
    name="evermeet.cx",
    url="https://evermeet.cx/ffmpeg/ffprobe-6.0.zip",
    version="6.0",
    packaged=True,
)
_JVS_AMD64 = DownloadSource(
    name="johnvansickle.com",
    url="https://johnvansickle.com/ffmpeg/releases/ffmpeg-release-amd64-static.tar.xz",
    version="latest",
    packaged=True,
)
_JVS_ARM64 = DownloadSource(
    name="johnvansickle.com",
    url="https://johnvansickle.com/ffmpeg/releases/ffmpeg-release-arm64-static.tar.xz",
    version="latest",
    packaged=True,
)

# (os, arch) -> binary -> ordered sources
SOURCE_TABLE: Dict[PlatformKey, Dict[str, Tuple[DownloadSource, ...]]] = {
    ("windows", "x86_64"): {
        YTDLP_BINARY: (_ytdlp_source("yt-dlp.exe"),),
        FFMPEG_BINARY: (_GYAN_ESSENTIALS, _BTBN_WIN64),
        FFPROBE_BINARY: (_GYAN_ESSENTIALS,),
    },
    ("windows", "aarch64"): {
        YTDLP_BINARY: (_ytdlp_source("yt-dlp.exe"),),
        FFMPEG_BINARY: (_GYAN_ESSENTIALS, _BTBN_WIN64),
        FFPROBE_BINARY: (_GYAN_ESSENTIALS,),
    },
    ("darwin", "x86_64"): {
        YTDLP_BINARY: (_ytdlp_source("yt-dlp_macos"),),
        FFMPEG_BINARY: (_EVERMEET_FFMPEG,),
        FFPROBE_BINARY: (_EVERMEET_FFPROBE,),
    },
    ("darwin", "aarch64"): {
        YTDLP_BINARY: (_ytdlp_source("yt-dlp_macos"),),
        FFMPEG_BINARY: (_EVERMEET_FFMPEG,),
        FFPROBE_BINARY: (_EVERMEET_FFPROBE,),
    },
    ("linux", "x86_64"): {
        YTDLP_BINARY: (_ytdlp_source("yt-dlp"),),
        FFMPEG_BINARY: (_JVS_AMD64,),
        FFPROBE_BINARY: (_JVS_AMD64,),
    },
    ("linux", "aarch64"): {
        YTDLP_BINARY: (_ytdlp_source("yt-dlp_linux_aarch64"),),
        FFMPEG_BINARY: (_JVS_ARM64,),
        FFPROBE_BINARY: (_JVS_ARM64,),
    },
}

# Platforms missing from the table still get the generic yt-dlp build
_FALLBACK_SOURCES: Dict[str, Tuple[DownloadSource, ...]] = {
    YTDLP_BINARY: (_ytdlp_source("yt-dlp"),),
}


class SourceCatalog:
    """
    Ordered download sources for every managed binary on one platform.

    Parameters:
        platform_key (PlatformKey): The (os, arch) pair this catalog was built for.
        sources (Dict[str, Tuple[DownloadSource, ...]]): Binary name to ordered sources.
    """

    def __init__(
        self,
        platform_key: PlatformKey,
        sources: Dict[str, Tuple[DownloadSource, ...]],
    ):
        self.platform_key = platform_key
        self._sources = dict(sources)

    @property
    def is_windows(self) -> bool:
        return self.platform_key[0] == "windows"

    @property
    def binaries(self) -> Tuple[str, ...]:
        return MANAGED_BINARIES

    def sources_for(self, binary_name: str) -> List[DownloadSource]:
        """Return the sources for `binary_name` in fallback order (possibly empty)."""
        return list(self._sources.get(binary_name, ()))

    def executable_name(self, binary_name: str) -> str:
        """Filename of the installed executable (`.exe` appended on Windows)."""
        if self.is_windows:
            return f"{binary_name}{WINDOWS_EXECUTABLE_SUFFIX}"
        return binary_name

    def __repr__(self) -> str:
        return f"SourceCatalog(platform={self.platform_key[0]}/{self.platform_key[1]})"


def build_source_catalog(
    system: Optional[str] = None, machine: Optional[str] = None
) -> SourceCatalog:
    """
    Resolve the source table for the given (or current) platform.

    Parameters:
        system (Optional[str]): Override for `platform.system()`.
        machine (Optional[str]): Override for `platform.machine()`.

    Returns:
        SourceCatalog: The catalog for that platform. Unsupported platforms get the
        generic yt-dlp source and no ffmpeg/ffprobe sources.
    """
    key = normalize_platform(system, machine)
    return SourceCatalog(key, SOURCE_TABLE.get(key, _FALLBACK_SOURCES))


def archive_format_for(url: str) -> str:
    """
    Infer the container format from a source URL.

    Returns:
        str: `ARCHIVE_ZIP` for `.zip`, `ARCHIVE_TAR` for `.tar`, `.tar.xz`, `.tar.gz`,
        `.tgz` and `.txz`. Anything else is assumed to be a zip.
    """
    path = url.split("?", 1)[0].lower()
    if path.endswith((".tar", ".tar.xz", ".tar.gz", ".tar.bz2", ".tgz", ".txz")):
        return ARCHIVE_TAR
    return ARCHIVE_ZIP
