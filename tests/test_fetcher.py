"""
Tests for single-source binary installs.
"""

import hashlib
import io
import json
import os
import sys
import zipfile
from unittest.mock import AsyncMock, Mock

import pytest

from ripvid.binaries.catalog import DownloadSource, build_source_catalog
from ripvid.binaries.client import Release, ReleaseAsset
from ripvid.binaries.fetcher import Fetcher
from ripvid.binaries.metadata import MetadataStore
from ripvid.exceptions import (
    AssetNotFoundError,
    ChecksumMismatchError,
    ExecutablePermissionError,
    HTTPError,
    InstallWriteError,
    NetworkError,
    NotFoundInArchiveError,
)

pytestmark = [pytest.mark.unit, pytest.mark.binaries]

YTDLP_BYTES = b"#!/bin/sh\necho yt-dlp\n"
YTDLP_SOURCE = DownloadSource(
    name="yt-dlp/yt-dlp",
    url="https://api.github.com/repos/yt-dlp/yt-dlp/releases/latest",
    version="latest",
    asset_name="yt-dlp",
    checksum_manifest="https://github.com/yt-dlp/yt-dlp/releases/download/{tag}/SHA2-256SUMS",
    from_release=True,
)
FFMPEG_ZIP_SOURCE = DownloadSource(
    name="evermeet.cx",
    url="https://evermeet.cx/ffmpeg/ffmpeg-6.0.zip",
    version="6.0",
    packaged=True,
)


def _release(tag="2024.03.10"):
    return Release(
        tag,
        [
            ReleaseAsset("yt-dlp.exe", "https://x/yt-dlp.exe"),
            ReleaseAsset("yt-dlp", f"https://x/{tag}/yt-dlp"),
        ],
    )


def _manifest(data=YTDLP_BYTES, name="yt-dlp"):
    return f"{hashlib.sha256(data).hexdigest()}  {name}\n{'0' * 64}  yt-dlp.exe\n"


def _client(release=None, data=YTDLP_BYTES, manifest=None):
    client = Mock()
    client.get_release = AsyncMock(return_value=release or _release())
    client.get_bytes = AsyncMock(return_value=data)
    client.get_text = AsyncMock(return_value=manifest if manifest is not None else _manifest())
    return client


def _fetcher(client, data_dir, notifier=None):
    return Fetcher(
        client,
        MetadataStore(data_dir),
        build_source_catalog("Linux", "x86_64"),
        notifier=notifier,
    )


class TestResolve:
    """Test turning catalog entries into concrete downloads."""

    @pytest.mark.asyncio
    async def test_release_source_fills_tag(self, data_dir, no_backoff_sleep):
        fetcher = _fetcher(_client(), data_dir)

        resolved = await fetcher.resolve(YTDLP_SOURCE)

        assert resolved.version == "2024.03.10"
        assert resolved.url == "https://x/2024.03.10/yt-dlp"
        assert resolved.asset_name == "yt-dlp"
        assert resolved.checksum_manifest.endswith("/2024.03.10/SHA2-256SUMS")

    @pytest.mark.asyncio
    async def test_direct_source_uses_url_basename(self, data_dir):
        client = _client()
        resolved = await _fetcher(client, data_dir).resolve(FFMPEG_ZIP_SOURCE)

        assert resolved.url == FFMPEG_ZIP_SOURCE.url
        assert resolved.asset_name == "ffmpeg-6.0.zip"
        assert resolved.version == "6.0"
        client.get_release.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_asset(self, data_dir, no_backoff_sleep):
        client = _client(release=Release("v1", []))
        with pytest.raises(AssetNotFoundError):
            await _fetcher(client, data_dir).resolve(YTDLP_SOURCE)

    @pytest.mark.asyncio
    async def test_transient_metadata_failure_is_retried(self, data_dir, no_backoff_sleep):
        client = _client()
        client.get_release.side_effect = [NetworkError("reset"), _release()]

        resolved = await _fetcher(client, data_dir).resolve(YTDLP_SOURCE)

        assert resolved.version == "2024.03.10"
        assert no_backoff_sleep == [1.0]


class TestInstall:
    """Test the download/verify/install pipeline."""

    @pytest.mark.asyncio
    async def test_verified_install(self, data_dir, event_recorder, no_backoff_sleep):
        fetcher = _fetcher(_client(), data_dir, notifier=event_recorder)

        record = await fetcher.install("yt-dlp", YTDLP_SOURCE)

        target = data_dir / "yt-dlp"
        assert target.read_bytes() == YTDLP_BYTES
        if sys.platform != "win32":
            assert target.stat().st_mode & 0o777 == 0o755
        assert record.version == "2024.03.10"
        assert record.path == str(target)

        stored = json.loads((data_dir / "yt-dlp-info.json").read_text())
        assert stored["version"] == "2024.03.10"
        assert (data_dir / "last-check.json").exists()

        progress = event_recorder.of("binary-download-progress")
        assert [p["progress"] for p in progress] == [0.0, 25.0, 50.0, 75.0, 100.0]
        assert all(p["binary"] == "yt-dlp" for p in progress)
        assert progress[-1]["status"] == "Ready!"

    @pytest.mark.asyncio
    async def test_checksum_mismatch_keeps_previous_install(self, data_dir, no_backoff_sleep):
        target = data_dir / "yt-dlp"
        target.write_bytes(b"old")
        flipped = bytearray(YTDLP_BYTES)
        flipped[0] ^= 1
        client = _client(data=bytes(flipped))

        with pytest.raises(ChecksumMismatchError):
            await _fetcher(client, data_dir).install("yt-dlp", YTDLP_SOURCE)

        assert target.read_bytes() == b"old"
        assert not (data_dir / "yt-dlp-info.json").exists()

    @pytest.mark.asyncio
    async def test_checksum_failure_is_not_retried(self, data_dir, no_backoff_sleep):
        client = _client(data=b"tampered")

        with pytest.raises(ChecksumMismatchError):
            await _fetcher(client, data_dir).install("yt-dlp", YTDLP_SOURCE)

        assert client.get_bytes.await_count == 1
        assert no_backoff_sleep == []

    @pytest.mark.asyncio
    async def test_transient_download_failure_is_retried(self, data_dir, no_backoff_sleep):
        client = _client()
        client.get_bytes.side_effect = [
            HTTPError("HTTP error 503", status_code=503, is_retryable=True),
            NetworkError("reset"),
            YTDLP_BYTES,
        ]

        await _fetcher(client, data_dir).install("yt-dlp", YTDLP_SOURCE)

        assert (data_dir / "yt-dlp").read_bytes() == YTDLP_BYTES
        assert no_backoff_sleep == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_permanent_http_error_fails_fast(self, data_dir, no_backoff_sleep):
        client = _client()
        client.get_bytes.side_effect = HTTPError("HTTP error 404", status_code=404)

        with pytest.raises(HTTPError):
            await _fetcher(client, data_dir).install("yt-dlp", YTDLP_SOURCE)

        assert client.get_bytes.await_count == 1

    @pytest.mark.asyncio
    async def test_packaged_source_is_extracted(self, data_dir, event_recorder):
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as archive:
            archive.writestr("ffmpeg", b"ffmpeg-binary")
        client = _client(data=buffer.getvalue())

        fetcher = _fetcher(client, data_dir, notifier=event_recorder)
        record = await fetcher.install("ffmpeg", FFMPEG_ZIP_SOURCE)

        assert (data_dir / "ffmpeg").read_bytes() == b"ffmpeg-binary"
        assert record.version == "6.0"
        client.get_text.assert_not_awaited()
        statuses = [p["status"] for p in event_recorder.of("binary-download-progress")]
        assert "Extracting..." in statuses

    @pytest.mark.asyncio
    async def test_packaged_source_without_member(self, data_dir):
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as archive:
            archive.writestr("README.txt", b"nothing here")

        with pytest.raises(NotFoundInArchiveError):
            await _fetcher(_client(data=buffer.getvalue()), data_dir).install(
                "ffmpeg", FFMPEG_ZIP_SOURCE
            )
        assert not (data_dir / "ffmpeg").exists()

    @pytest.mark.asyncio
    @pytest.mark.skipif(sys.platform == "win32", reason="chmod is skipped on Windows")
    async def test_permission_failure_rolls_back(self, data_dir, mocker, no_backoff_sleep):
        target = data_dir / "yt-dlp"
        target.write_bytes(b"old")
        real_chmod = os.chmod
        denied = []

        def _chmod(path, mode, *args, **kwargs):
            # Only the freshly installed binary is refused; backup copies still work
            if os.fspath(path) == os.fspath(target) and not denied:
                denied.append(path)
                raise PermissionError("denied")
            return real_chmod(path, mode, *args, **kwargs)

        mocker.patch("ripvid.binaries.fetcher.os.chmod", side_effect=_chmod)

        with pytest.raises(ExecutablePermissionError):
            await _fetcher(_client(), data_dir).install("yt-dlp", YTDLP_SOURCE)

        assert target.read_bytes() == b"old"
        assert not (data_dir / "yt-dlp.backup").exists()

    @pytest.mark.asyncio
    @pytest.mark.skipif(sys.platform == "win32", reason="chmod is skipped on Windows")
    async def test_permission_failure_on_fresh_install_removes_file(
        self, data_dir, mocker, no_backoff_sleep
    ):
        target = data_dir / "yt-dlp"
        mocker.patch(
            "ripvid.binaries.fetcher.os.chmod", side_effect=PermissionError("denied")
        )
        metadata = MetadataStore(data_dir)
        fetcher = Fetcher(
            _client(), metadata, build_source_catalog("Linux", "x86_64")
        )

        with pytest.raises(ExecutablePermissionError):
            await fetcher.install("yt-dlp", YTDLP_SOURCE)

        assert not target.exists()
        assert metadata.read("yt-dlp") is None
        assert not [p for p in data_dir.iterdir() if p.name.startswith(".yt-dlp")]

    @pytest.mark.asyncio
    async def test_write_failure_keeps_previous_install(self, data_dir, mocker, no_backoff_sleep):
        target = data_dir / "yt-dlp"
        target.write_bytes(b"old")
        real_replace = os.replace

        def _replace(src, dst, *args, **kwargs):
            if os.fspath(dst) == os.fspath(target):
                raise OSError(28, "No space left on device")
            return real_replace(src, dst, *args, **kwargs)

        mocker.patch("ripvid.binaries.fetcher.os.replace", side_effect=_replace)

        with pytest.raises(InstallWriteError):
            await _fetcher(_client(), data_dir).install("yt-dlp", YTDLP_SOURCE)

        assert target.read_bytes() == b"old"
        assert not (data_dir / "yt-dlp.backup").exists()
        assert not [p for p in data_dir.iterdir() if p.name.endswith(".tmp")]

    @pytest.mark.asyncio
    async def test_successful_replace_removes_backup(self, data_dir, no_backoff_sleep):
        target = data_dir / "yt-dlp"
        target.write_bytes(b"old")

        await _fetcher(_client(), data_dir).install("yt-dlp", YTDLP_SOURCE)

        assert target.read_bytes() == YTDLP_BYTES
        assert not (data_dir / "yt-dlp.backup").exists()
        assert not [p for p in data_dir.iterdir() if p.name.endswith(".tmp")]
