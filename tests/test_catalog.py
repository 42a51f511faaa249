"""
Tests for the per-platform source catalog.
"""

import pytest

from ripvid.binaries.catalog import (
    archive_format_for,
    build_source_catalog,
    normalize_platform,
)
from ripvid.constants import (
    ARCHIVE_TAR,
    ARCHIVE_ZIP,
    FFMPEG_BINARY,
    FFPROBE_BINARY,
    MANAGED_BINARIES,
    YTDLP_BINARY,
)

pytestmark = [pytest.mark.unit, pytest.mark.binaries]


class TestNormalizePlatform:
    @pytest.mark.parametrize(
        "system,machine,expected",
        [
            ("Windows", "AMD64", ("windows", "x86_64")),
            ("Darwin", "arm64", ("darwin", "aarch64")),
            ("Linux", "x86_64", ("linux", "x86_64")),
            ("Linux", "aarch64", ("linux", "aarch64")),
            ("FreeBSD", "riscv64", ("freebsd", "riscv64")),
        ],
    )
    def test_aliases(self, system, machine, expected):
        assert normalize_platform(system, machine) == expected


class TestSourceCatalog:
    """Test catalog resolution per platform."""

    @pytest.mark.parametrize(
        "system,machine,asset",
        [
            ("Windows", "AMD64", "yt-dlp.exe"),
            ("Darwin", "arm64", "yt-dlp_macos"),
            ("Darwin", "x86_64", "yt-dlp_macos"),
            ("Linux", "x86_64", "yt-dlp"),
            ("Linux", "aarch64", "yt-dlp_linux_aarch64"),
        ],
    )
    def test_ytdlp_release_asset(self, system, machine, asset):
        catalog = build_source_catalog(system, machine)
        sources = catalog.sources_for(YTDLP_BINARY)
        assert len(sources) == 1
        source = sources[0]
        assert source.from_release is True
        assert source.asset_name == asset
        assert source.checksum_manifest is not None
        assert "{tag}" in source.checksum_manifest
        assert source.checksum_manifest.endswith("SHA2-256SUMS")

    def test_windows_ffmpeg_has_fallback(self):
        catalog = build_source_catalog("Windows", "AMD64")
        sources = catalog.sources_for(FFMPEG_BINARY)
        assert [s.name for s in sources] == ["GyanD/codexffmpeg", "BtbN/FFmpeg-Builds"]
        assert all(s.packaged for s in sources)
        assert catalog.executable_name(FFMPEG_BINARY) == "ffmpeg.exe"

    def test_macos_uses_separate_zips(self):
        catalog = build_source_catalog("Darwin", "arm64")
        ffmpeg = catalog.sources_for(FFMPEG_BINARY)[0]
        ffprobe = catalog.sources_for(FFPROBE_BINARY)[0]
        assert ffmpeg.url.endswith("ffmpeg-6.0.zip")
        assert ffprobe.url.endswith("ffprobe-6.0.zip")
        assert ffmpeg.version == "6.0"

    def test_linux_tarballs_are_packaged(self):
        catalog = build_source_catalog("Linux", "aarch64")
        for name in (FFMPEG_BINARY, FFPROBE_BINARY):
            source = catalog.sources_for(name)[0]
            assert source.packaged is True
            assert "arm64" in source.url
            assert archive_format_for(source.url) == ARCHIVE_TAR
        assert catalog.executable_name(FFMPEG_BINARY) == "ffmpeg"

    def test_unsupported_platform_only_has_ytdlp(self):
        catalog = build_source_catalog("FreeBSD", "riscv64")
        assert catalog.sources_for(YTDLP_BINARY)[0].asset_name == "yt-dlp"
        assert catalog.sources_for(FFMPEG_BINARY) == []
        assert catalog.binaries == MANAGED_BINARIES

    def test_sources_for_returns_copy(self):
        catalog = build_source_catalog("Linux", "x86_64")
        catalog.sources_for(YTDLP_BINARY).clear()
        assert len(catalog.sources_for(YTDLP_BINARY)) == 1


class TestArchiveFormat:
    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://example.com/ffmpeg.zip", ARCHIVE_ZIP),
            ("https://example.com/ffmpeg-release-amd64-static.tar.xz", ARCHIVE_TAR),
            ("https://example.com/ffmpeg.tar.gz?x=1", ARCHIVE_TAR),
            ("https://example.com/ffmpeg.tgz", ARCHIVE_TAR),
            ("https://example.com/ffmpeg", ARCHIVE_ZIP),
        ],
    )
    def test_inferred_from_suffix(self, url, expected):
        assert archive_format_for(url) == expected
