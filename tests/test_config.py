"""
Tests for configuration loading and command line overrides.
"""

from pathlib import Path

import pytest

from bravia_remote import config as config_module
from bravia_remote.__main__ import build_config, parse_args
from bravia_remote.config import ConfigError, get_config, load_config, reload_config


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "bravia.toml"
    path.write_text(text)
    return path


class TestLoadConfig:
    """Tests for load_config()."""

    def test_defaults(self) -> None:
        config = load_config()
        assert config.discovery.interval == 10.0
        assert config.discovery.missing_threshold == 3
        assert config.discovery.search_target == "urn:schemas-sony-com:service:ScalarWebAPI:1"
        assert config.device.control_port == 20060
        assert config.device.response_timeout is None
        assert config.device.serialize_commands is True
        assert config.web.enabled is True
        assert config.web.port == 8060

    def test_user_file_merged_over_defaults(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "[discovery]\ninterval = 2.5\n\n[device]\nresponse_timeout = 3\n")
        config = load_config(path)

        assert config.discovery.interval == 2.5
        # Untouched keys keep their defaults
        assert config.discovery.missing_threshold == 3
        assert config.device.response_timeout == 3.0
        assert config.device.control_port == 20060

    @pytest.mark.parametrize(
        "text",
        [
            "[discovery]\ninterval = 0\n",
            "[discovery]\nmissing_threshold = 0\n",
            "[device]\nresponse_timeout = -1\n",
            "[web]\nport = \"http\"\n",
            "[web]\nenabled = \"false\"\n",
            "[device]\nserialize_commands = 0\n",
        ],
    )
    def test_invalid_values(self, tmp_path: Path, text: str) -> None:
        with pytest.raises(ConfigError):
            load_config(_write(tmp_path, text))

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(OSError):
            load_config(tmp_path / "nope.toml")


class TestGlobalConfig:
    """Tests for the lazily loaded singleton."""

    def test_get_config_is_cached(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(config_module, "_config", None)
        assert get_config() is get_config()

    def test_reload_config(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(config_module, "_config", None)
        first = get_config()

        reloaded = reload_config(_write(tmp_path, "[web]\nport = 9999\n"))
        assert reloaded is not first
        assert get_config() is reloaded
        assert reloaded.web.port == 9999


class TestCommandLine:
    """Tests for argument parsing and overrides."""

    def test_no_arguments(self) -> None:
        args = parse_args([])
        config = build_config(args)
        assert config.discovery.interval == 10.0
        assert config.web.enabled

    def test_overrides(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "[discovery]\ninterval = 4.0\n")
        args = parse_args(
            [
                "--config", str(path),
                "--missing-threshold", "5",
                "--web-host", "127.0.0.1",
                "--web-port", "8100",
                "--no-web",
            ]
        )
        config = build_config(args)

        assert config.discovery.interval == 4.0
        assert config.discovery.missing_threshold == 5
        assert config.web.host == "127.0.0.1"
        assert config.web.port == 8100
        assert config.web.enabled is False

    def test_interval_override(self) -> None:
        config = build_config(parse_args(["--interval", "1.5", "-v"]))
        assert config.discovery.interval == 1.5

    def test_invalid_override(self) -> None:
        with pytest.raises(ConfigError):
            build_config(parse_args(["--interval", "0"]))
