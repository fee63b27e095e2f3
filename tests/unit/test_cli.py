"""
Unit tests for the command-line entry point.
"""

import pytest

from signalclient.__main__ import build_parser, load_config, main


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("SIGNAL_SERVER", "SIGNAL_PORT", "SIGNAL_CLIENT_NAME",
                 "SIGNAL_RECONNECT_DELAY", "SIGNAL_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


class TestLoadConfig:
    """Tests for layering defaults, environment, file and flags."""

    def test_defaults(self):
        config = load_config(build_parser().parse_args([]))

        assert config.server == "localhost"
        assert config.port == 8888

    def test_flags(self):
        args = build_parser().parse_args(
            ["--server", "10.0.0.5", "-p", "9000", "-n", "bob", "-l", "DEBUG"]
        )

        config = load_config(args)

        assert config.server == "10.0.0.5"
        assert config.port == 9000
        assert config.client_name == "bob"
        assert config.log_level == "DEBUG"

    def test_flags_override_file_and_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SIGNAL_SERVER", "env-host")
        monkeypatch.setenv("SIGNAL_CLIENT_NAME", "env-name")
        path = tmp_path / "client.cfg"
        path.write_text("server_ip: file-host\nserver_port: 7000\n")

        config = load_config(build_parser().parse_args(["-c", str(path), "-p", "7001"]))

        assert config.server == "file-host"
        assert config.client_name == "env-name"
        assert config.port == 7001

    def test_invalid_port(self):
        with pytest.raises(ValueError):
            load_config(build_parser().parse_args(["--port", "70000"]))


class TestMain:
    """Tests for main() exit codes."""

    def test_bad_config_exits_2(self, capsys):
        assert main(["--port", "0"]) == 2
        assert "Invalid port" in capsys.readouterr().err

    def test_missing_config_file_exits_2(self, tmp_path):
        assert main(["--config", str(tmp_path / "missing.cfg")]) == 2
