import sys
import textwrap
from pathlib import Path

import platformdirs
import pytest

_ASYNC_NETWORK_BLOCK_MSG = (
    "Async network access is blocked during tests. Mock aiohttp.ClientSession."
)


async def _async_block_network(*_args, **_kwargs):
    """
    Prevent async network calls during tests by raising a RuntimeError.

    Raises:
        RuntimeError: `_ASYNC_NETWORK_BLOCK_MSG`.
    """
    raise RuntimeError(_ASYNC_NETWORK_BLOCK_MSG)


def pytest_configure(config):
    """Register the markers used across the suite."""
    config.addinivalue_line("markers", "asyncio: mark test as an asyncio test")
    config.addinivalue_line("markers", "unit: fast isolated tests")
    config.addinivalue_line("markers", "integration: tests spawning real processes")
    config.addinivalue_line("markers", "binaries: binary provisioning tests")
    config.addinivalue_line("markers", "downloads: download supervision tests")
    config.addinivalue_line("markers", "infrastructure: config, logging and CLI tests")


@pytest.fixture(autouse=True)
def _isolate_test_environment(tmp_path_factory, monkeypatch):
    """
    Point platformdirs and the XDG variables at a temporary directory tree and
    disable file logging.
    """
    base = tmp_path_factory.mktemp("ripvid")
    cache_dir = base / "cache"
    config_dir = base / "config"
    data_dir = base / "data"
    log_dir = base / "log"

    for path in (cache_dir, config_dir, data_dir, log_dir):
        path.mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("XDG_CACHE_HOME", str(cache_dir))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_dir))
    monkeypatch.setenv("XDG_DATA_HOME", str(data_dir))
    monkeypatch.setenv("RIPVID_DISABLE_FILE_LOGGING", "1")

    monkeypatch.setattr(
        platformdirs, "user_cache_dir", lambda *_args, **_kwargs: str(cache_dir)
    )
    monkeypatch.setattr(
        platformdirs, "user_config_dir", lambda *_args, **_kwargs: str(config_dir)
    )
    monkeypatch.setattr(
        platformdirs, "user_data_dir", lambda *_args, **_kwargs: str(data_dir)
    )
    monkeypatch.setattr(
        platformdirs, "user_log_dir", lambda *_args, **_kwargs: str(log_dir)
    )


def pytest_runtest_setup():
    """Replace aiohttp's HTTP entry points with a blocker so no test reaches the network."""
    import aiohttp

    aiohttp.request = _async_block_network
    aiohttp.ClientSession.request = _async_block_network  # type: ignore[assignment]
    aiohttp.ClientSession.get = _async_block_network  # type: ignore[assignment]
    aiohttp.ClientSession.post = _async_block_network  # type: ignore[assignment]
    aiohttp.ClientSession.head = _async_block_network  # type: ignore[assignment]


@pytest.fixture
def no_backoff_sleep(monkeypatch):
    """Make asyncio.sleep inside the backoff helper return immediately; returns the recorded delays."""
    delays = []

    async def _fake_sleep(delay, *_args, **_kwargs):
        delays.append(delay)

    monkeypatch.setattr("ripvid.download.retry.asyncio.sleep", _fake_sleep)
    return delays


@pytest.fixture
def fake_ytdlp(tmp_path):
    """
    Write an executable Python script standing in for yt-dlp.

    The script's behaviour is chosen per run from the arguments it receives:
    the URL (first argument) selects a scenario and `--cookies-from-browser`
    is recorded to `calls.log` next to the script.

    Returns:
        Path: The script path.
    """
    if sys.platform == "win32":
        pytest.skip("shebang scripts are not executable on Windows")

    script = tmp_path / "yt-dlp"
    calls = tmp_path / "calls.log"
    script.write_text(
        textwrap.dedent(
            f"""\
            #!{sys.executable}
            import json
            import sys
            import time

            args = sys.argv[1:]
            url = args[0] if args else ""
            browser = None
            if "--cookies-from-browser" in args:
                browser = args[args.index("--cookies-from-browser") + 1]
            with open({str(calls)!r}, "a") as log:
                log.write((browser or "none") + "\\n")

            if "--dump-json" in args:
                print(json.dumps({{"title": "Sample", "id": "abc"}}))
                sys.exit(0)

            if url.endswith("/ok"):
                print("[download] Destination: out.mp4", flush=True)
                print("[download]  50.0% of 10.00MiB at 1.00MiB/s ETA 00:05", flush=True)
                print("[download] 100.0% of 10.00MiB at 2.00MiB/s ETA 00:00", flush=True)
                print("[Merger] Merging formats into out.mp4", flush=True)
                sys.exit(0)
            if url.endswith("/private"):
                if browser == "chrome":
                    print("[download] 100.0% of 1.00MiB at 1.00MiB/s ETA 00:00", flush=True)
                    sys.exit(0)
                print("ERROR: Private video. Sign in if you've been granted access", file=sys.stderr)
                sys.exit(1)
            if url.endswith("/ratelimited"):
                print("WARNING: Sleeping 5 seconds", file=sys.stderr, flush=True)
                print("ERROR: HTTP Error 429: Too Many Requests", file=sys.stderr)
                sys.exit(1)
            if url.endswith("/slow"):
                print("[download]   1.0% of 10.00MiB at 1.00KiB/s ETA 10:00", flush=True)
                time.sleep(30)
                sys.exit(0)
            print("ERROR: Unsupported URL", file=sys.stderr)
            sys.exit(2)
            """
        )
    )
    script.chmod(0o755)
    return script


@pytest.fixture
def event_recorder():
    """A CallbackNotifier-compatible recorder: `recorder.events` is a list of (event, payload)."""

    class _Recorder:
        def __init__(self):
            self.events = []

        def emit(self, event, payload):
            self.events.append((event, dict(payload)))

        def names(self):
            return [event for event, _payload in self.events]

        def of(self, name):
            return [payload for event, payload in self.events if event == name]

    return _Recorder()


@pytest.fixture
def data_dir(tmp_path) -> Path:
    path = tmp_path / "binaries"
    path.mkdir()
    return path

