"""
Unit tests for configuration loading.
"""

import dataclasses

import pytest

from dirserve import __version__
from dirserve.config import ServerConfig, load_config, normalize_prefix, parse_args


class TestServerConfig:
    """Tests for the ServerConfig value object."""

    def test_defaults(self):
        config = ServerConfig()
        assert config.buffer_size_kb == 8
        assert config.server_root == "."
        assert config.listen == ":8080"
        assert config.prefix == "/"
        assert config.enable_upload is False
        assert config.header_timeout == 30.0

    def test_buffer_size_in_bytes(self):
        assert ServerConfig(buffer_size_kb=16).buffer_size == 16 * 1024

    def test_frozen(self):
        config = ServerConfig()
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.listen = ":9090"

    def test_prefix_gets_leading_slash(self, caplog):
        """'files' becomes '/files' with a warning."""
        with caplog.at_level("WARNING", logger="dirserve"):
            config = ServerConfig(prefix="files")

        assert config.prefix == "/files"
        record = next(r for r in caplog.records if r.message == "Prefix must begin with '/'")
        assert record.fields == {"prefix": "files"}

    def test_with_listen_returns_copy(self):
        original = ServerConfig(listen="eth0:8080", prefix="/files")
        resolved = original.with_listen("192.168.1.20:8080")

        assert resolved.listen == "192.168.1.20:8080"
        assert resolved.prefix == "/files"
        assert original.listen == "eth0:8080"

    @pytest.mark.parametrize("overrides", [
        {"buffer_size_kb": -1},
        {"header_timeout": 0},
        {"keep_alive_timeout": -5.0},
        {"max_header_size": 100},
        {"log_level": "VERBOSE"},
        {"log_format": "xml"},
    ])
    def test_validate_rejects(self, overrides):
        with pytest.raises(ValueError):
            ServerConfig(**overrides).validate()

    def test_validate_accepts_defaults(self):
        ServerConfig().validate()


class TestNormalizePrefix:

    def test_unchanged_with_slash(self):
        assert normalize_prefix("/files/") == "/files/"

    def test_empty_becomes_root(self):
        assert normalize_prefix("") == "/"


class TestLoadConfig:
    """Tests for flag and environment parsing."""

    def test_flags(self):
        config = load_config(
            ["-b", "64", "-d", "/srv", "-l", "eth0:80", "-p", "/files", "-u"],
            environ={},
        )
        assert config.buffer_size_kb == 64
        assert config.server_root == "/srv"
        assert config.listen == "eth0:80"
        assert config.prefix == "/files"
        assert config.enable_upload is True

    def test_long_flags(self):
        config = load_config(
            ["--client-body-buffer-size", "1", "--server-root", "/data",
             "--listen", ":1", "--prefix", "/x", "--enable-upload"],
            environ={},
        )
        assert (config.buffer_size_kb, config.server_root, config.listen) == (1, "/data", ":1")
        assert config.enable_upload is True

    def test_environment(self):
        config = load_config([], environ={
            "DIRSERVE_SERVER_ROOT": "/srv/share",
            "DIRSERVE_LISTEN": "127.0.0.1:9000",
            "DIRSERVE_PREFIX": "/share",
            "DIRSERVE_ENABLE_UPLOAD": "Yes",
            "DIRSERVE_LOG_LEVEL": "debug",
            "DIRSERVE_LOG_FORMAT": "json",
        })
        assert config.server_root == "/srv/share"
        assert config.listen == "127.0.0.1:9000"
        assert config.prefix == "/share"
        assert config.enable_upload is True
        assert config.log_level == "DEBUG"
        assert config.log_format == "json"

    @pytest.mark.parametrize("value", ["0", "false", "no", "off", ""])
    def test_environment_flag_false(self, value):
        config = load_config([], environ={"DIRSERVE_ENABLE_UPLOAD": value})
        assert config.enable_upload is False

    def test_flags_override_environment(self):
        config = load_config(["-l", ":7000"], environ={"DIRSERVE_LISTEN": ":9000"})
        assert config.listen == ":7000"

    def test_from_env(self):
        config = ServerConfig.from_env({"DIRSERVE_PREFIX": "pub"})
        assert config.prefix == "/pub"

    def test_log_level_case_insensitive(self):
        args = parse_args(["--log-level", "warning"], environ={})
        assert args.log_level == "WARNING"

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc:
            load_config(["--version"], environ={})
        assert exc.value.code == 0
        assert capsys.readouterr().out.strip() == f"dirserve version {__version__}"

    def test_invalid_buffer_size(self, capsys):
        with pytest.raises(SystemExit) as exc:
            load_config(["-b", "-3"], environ={})
        assert exc.value.code == 2
