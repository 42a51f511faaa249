"""
Tests for the command line entry point.
"""

import hashlib
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

import ripvid.cli as cli
from ripvid.binaries.catalog import build_source_catalog
from ripvid.config import get_config_file
from ripvid.download.arguments import KIND_AUDIO
from ripvid.download.coordinator import DownloadOutcome
from ripvid.exceptions import NetworkError, ProcessError, ProvisionError

pytestmark = [pytest.mark.unit, pytest.mark.infrastructure]


class FakeEngine:
    """Async context manager standing in for Engine."""

    def __init__(self, *_args, **_kwargs):
        self.provisioner = MagicMock()
        self.provisioner.ensure_all_present = AsyncMock()
        self.provisioner.wait_for_refresh = AsyncMock()
        self.coordinator = MagicMock()
        self.coordinator.download = AsyncMock()
        self.coordinator.get_video_info = AsyncMock()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *_exc):
        return None


@pytest.fixture
def fake_engine(mocker):
    engine = FakeEngine()
    mocker.patch("ripvid.cli.Engine", return_value=engine)
    return engine


# =============================================================================
# Argument parsing and dispatch
# =============================================================================


class TestMain:
    def test_no_command_prints_help(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.main([])

        assert exc_info.value.code == 0
        assert "usage: ripvid" in capsys.readouterr().out

    def test_download_arguments(self, mocker):
        run_download = mocker.patch("ripvid.cli.run_download", new=AsyncMock(return_value=0))

        with pytest.raises(SystemExit) as exc_info:
            cli.main(
                ["download", "https://v.example/1", "-o", "/tmp/a.mp3", "--audio", "--quality", "720p"]
            )

        assert exc_info.value.code == 0
        request = run_download.await_args[0][1]
        assert request.url == "https://v.example/1"
        assert request.output_path == "/tmp/a.mp3"
        assert request.kind == KIND_AUDIO
        assert request.quality == "720p"

    def test_download_requires_output(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["download", "https://v.example/1"])
        assert exc_info.value.code == 2

    def test_log_level_flag(self, mocker):
        mocker.patch("ripvid.cli.run_status", new=AsyncMock(return_value=0))
        set_level = mocker.patch("ripvid.cli.log_utils.set_log_level")

        with pytest.raises(SystemExit):
            cli.main(["--log-level", "DEBUG", "status"])

        set_level.assert_called_once_with("DEBUG")

    def test_invalid_config_exits_with_error(self):
        path = get_config_file()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("- not\n- a mapping\n")

        with pytest.raises(SystemExit) as exc_info:
            cli.main(["status"])

        assert exc_info.value.code == 1

    def test_keyboard_interrupt_exit_code(self, mocker):
        mocker.patch("ripvid.cli.run_setup", new=MagicMock(return_value=None))
        mocker.patch("ripvid.cli.asyncio.run", side_effect=KeyboardInterrupt)

        with pytest.raises(SystemExit) as exc_info:
            cli.main(["setup"])

        assert exc_info.value.code == 130


# =============================================================================
# Subcommands
# =============================================================================


class TestSubcommands:
    """Test the async subcommand bodies."""

    @pytest.mark.asyncio
    async def test_setup_success(self, fake_engine):
        assert await cli.run_setup({}) == 0
        fake_engine.provisioner.ensure_all_present.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_setup_failure(self, fake_engine):
        fake_engine.provisioner.ensure_all_present.side_effect = ProvisionError(
            [("ffmpeg", NetworkError("reset"))]
        )
        assert await cli.run_setup({}) == 1

    @pytest.mark.asyncio
    async def test_download_continues_without_tools(self, fake_engine):
        fake_engine.provisioner.ensure_all_present.side_effect = ProvisionError(
            [("ffmpeg", NetworkError("reset"))]
        )
        fake_engine.coordinator.download.return_value = DownloadOutcome(
            id="x", success=True, path="/tmp/a.mp4"
        )

        request = cli.DownloadRequest("https://v.example/1", "/tmp/a.mp4")
        assert await cli.run_download({}, request) == 0
        assert fake_engine.coordinator.download.await_args[0][0] is request

    @pytest.mark.asyncio
    async def test_download_failure_exit_code(self, fake_engine):
        fake_engine.coordinator.download.return_value = DownloadOutcome(
            id="x", success=False, path="/tmp/a.mp4", error="Exit code: 1"
        )
        request = cli.DownloadRequest("https://v.example/1", "/tmp/a.mp4")
        assert await cli.run_download({}, request) == 1

    @pytest.mark.asyncio
    async def test_info_prints_json(self, fake_engine, capsys):
        fake_engine.coordinator.get_video_info.return_value = {"title": "Sample"}

        assert await cli.run_info({}, "https://v.example/1") == 0
        assert json.loads(capsys.readouterr().out) == {"title": "Sample"}

    @pytest.mark.asyncio
    async def test_info_failure(self, fake_engine):
        fake_engine.coordinator.get_video_info.side_effect = ProcessError("Exit code: 1")
        assert await cli.run_info({}, "https://v.example/1") == 1

    @pytest.mark.asyncio
    async def test_status_table(self, tmp_path, capsys):
        config = {"DATA_DIR": str(tmp_path)}
        binaries = tmp_path / "binaries"
        binaries.mkdir()

        assert await cli.run_status(config) == 0

        out = capsys.readouterr().out
        assert "yt-dlp" in out
        assert "ffprobe" in out
        assert "Refresh due: yes" in out

    @pytest.mark.asyncio
    async def test_status_shows_installed_digest(self, tmp_path, capsys):
        config = {"DATA_DIR": str(tmp_path)}
        binaries = tmp_path / "binaries"
        binaries.mkdir()
        name = build_source_catalog().executable_name("yt-dlp")
        (binaries / name).write_bytes(b"yt-dlp build")

        assert await cli.run_status(config) == 0

        digest = hashlib.sha256(b"yt-dlp build").hexdigest()
        assert digest[:12] in capsys.readouterr().out


class TestRenderEvent:
    @pytest.mark.parametrize(
        "event,payload,expected",
        [
            ("download-progress", {"percent": 42.0, "speed": "1MiB/s", "eta": "00:10"}, "42.0%"),
            ("binary-download-progress", {"binary": "ffmpeg", "progress": 50.0, "status": "Extracting..."}, "Extracting..."),
            ("download-status", {"message": "Sleeping 5 seconds"}, "Sleeping 5 seconds"),
            ("download-cancelled", {"id": "x", "path": ""}, "Download cancelled"),
            ("download-complete", {"success": True, "path": "/tmp/a.mp4"}, "/tmp/a.mp4"),
            ("download-complete", {"success": False, "error": "Exit code: 2"}, "Exit code: 2"),
        ],
    )
    def test_renders(self, capsys, event, payload, expected):
        cli._render_event(event, payload)
        assert expected in capsys.readouterr().out
