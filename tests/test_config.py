"""
Tests for YAML configuration loading and the typed getters.
"""

from pathlib import Path

import pytest
import yaml

from ripvid import config as config_module
from ripvid.config import (
    DEFAULT_CONFIG,
    get_binaries_dir,
    get_config_file,
    get_credential_browsers,
    get_log_dir,
    get_max_retries,
    get_refresh_interval,
    get_request_timeout,
    get_retry_delay,
    load_config,
    save_config,
)
from ripvid.exceptions import ConfigurationError

pytestmark = [pytest.mark.unit, pytest.mark.infrastructure]


class TestLoadConfig:
    """Test reading and writing the configuration file."""

    def test_missing_file_yields_defaults(self, tmp_path):
        assert load_config(tmp_path / "missing.yaml") == DEFAULT_CONFIG

    def test_file_overrides_defaults(self, tmp_path):
        path = tmp_path / "ripvid.yaml"
        path.write_text("LOG_LEVEL: DEBUG\nMAX_DOWNLOAD_RETRIES: 5\n")

        config = load_config(path)

        assert config["LOG_LEVEL"] == "DEBUG"
        assert config["MAX_DOWNLOAD_RETRIES"] == 5
        assert config["REQUEST_TIMEOUT"] == DEFAULT_CONFIG["REQUEST_TIMEOUT"]

    def test_empty_file(self, tmp_path):
        path = tmp_path / "ripvid.yaml"
        path.write_text("")
        assert load_config(path) == DEFAULT_CONFIG

    def test_non_mapping_is_rejected(self, tmp_path):
        path = tmp_path / "ripvid.yaml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(ConfigurationError, match="must be a mapping"):
            load_config(path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "ripvid.yaml"
        path.write_text("LOG_LEVEL: [unterminated\n")

        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_save_then_load(self, tmp_path):
        path = tmp_path / "nested" / "ripvid.yaml"
        config = dict(DEFAULT_CONFIG, LOG_LEVEL="WARNING")

        assert save_config(config, path) is True

        assert yaml.safe_load(path.read_text())["LOG_LEVEL"] == "WARNING"
        assert load_config(path)["LOG_LEVEL"] == "WARNING"

    def test_default_location_uses_platformdirs(self):
        path = get_config_file()
        assert path.name == "ripvid.yaml"
        assert load_config() == DEFAULT_CONFIG


class TestDirectories:
    def test_data_dir_override(self, tmp_path):
        config = {"DATA_DIR": str(tmp_path / "data")}
        assert get_binaries_dir(config) == tmp_path / "data" / "binaries"
        assert get_log_dir(config) == tmp_path / "data" / "logs"

    def test_platformdirs_default(self, monkeypatch, tmp_path):
        monkeypatch.setattr(
            config_module.platformdirs, "user_data_dir", lambda *_a, **_k: str(tmp_path)
        )
        assert get_binaries_dir({}) == Path(tmp_path) / "binaries"


class TestGetters:
    """Test validation and clamping of numeric settings."""

    @pytest.mark.parametrize(
        "raw,expected", [(5, 5), ("4", 4), (0, 1), (-3, 1), ("many", 3), (None, 3)]
    )
    def test_max_retries(self, raw, expected):
        assert get_max_retries({"MAX_DOWNLOAD_RETRIES": raw}) == expected

    @pytest.mark.parametrize(
        "raw,expected", [(2.5, 2.5), ("0.5", 0.5), (-1, 0.0), ("soon", 1.0)]
    )
    def test_retry_delay(self, raw, expected):
        assert get_retry_delay({"DOWNLOAD_RETRY_DELAY": raw}) == expected

    @pytest.mark.parametrize(
        "raw,expected", [(1, 3600), ("12", 43200), (0, 86400), ("daily", 86400)]
    )
    def test_refresh_interval(self, raw, expected):
        assert get_refresh_interval({"REFRESH_INTERVAL_HOURS": raw}) == expected

    def test_refresh_interval_default(self):
        assert get_refresh_interval({}) == 86400

    @pytest.mark.parametrize("raw,expected", [(30, 30.0), (0, 300.0), ("x", 300.0)])
    def test_request_timeout(self, raw, expected):
        assert get_request_timeout({"REQUEST_TIMEOUT": raw}) == expected

    @pytest.mark.parametrize(
        "raw,expected",
        [
            (None, ["firefox", "chrome", "edge"]),
            ("Chrome", ["chrome"]),
            (["Edge", " firefox ", ""], ["edge", "firefox"]),
            (42, ["firefox", "chrome", "edge"]),
        ],
    )
    def test_credential_browsers(self, raw, expected):
        assert get_credential_browsers({"CREDENTIAL_BROWSERS": raw}) == expected
