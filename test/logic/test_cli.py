from unittest.mock import patch

import click.testing
import pytest

from uhdbridge.cli import cli
from uhdbridge.types import DeviceError
from uhdbridge.util import BridgeSettings


@pytest.fixture
def cli_runner():
    return click.testing.CliRunner()


@pytest.fixture
def no_config_file(tmp_path, monkeypatch):
    monkeypatch.setattr(
        "uhdbridge.util.config.default_config_path", lambda: tmp_path / "bridge.ini"
    )
    return tmp_path / "bridge.ini"


def test_tree(cli_runner):
    result = cli_runner.invoke(cli, ["--tree"])
    assert result.exit_code == 0
    for name in ("config", "init", "show", "kill", "list", "server"):
        assert f"└── {name}" in result.output


class TestServerCLI:
    @patch("uhdbridge.cli.base.start_server")
    def test_default_values(self, mock_start_server, cli_runner, no_config_file):
        result = cli_runner.invoke(cli, ["server", "--device", "mock"])
        assert result.exit_code == 0, result.output
        mock_start_server.assert_called_once()

        settings = mock_start_server.call_args.args[0]
        assert settings == BridgeSettings(device="mock")
        kwargs = mock_start_server.call_args.kwargs
        assert kwargs["log_level"] == "INFO"
        assert kwargs["log_to_file"] is True

    @patch("uhdbridge.cli.base.start_server")
    def test_all_arguments(self, mock_start_server, cli_runner, no_config_file):
        result = cli_runner.invoke(
            cli,
            [
                "server",
                "-d",
                "addr=192.168.10.2",
                "--host-address",
                "127.0.0.1",
                "--scpi-port",
                "6025",
                "--waveform-port",
                "6026",
                "--capture-timeout",
                "1.5",
                "--no-log-to-file",
                "--no-log-to-stdout",
                "--log-path",
                "/tmp/test.log",
                "--no-clear-prev-log",
                "--debug",
            ],
        )
        assert result.exit_code == 0, result.output
        settings = mock_start_server.call_args.args[0]
        assert settings.device == "addr=192.168.10.2"
        assert settings.host == "127.0.0.1"
        assert settings.scpi_port == 6025
        assert settings.waveform_port == 6026
        assert settings.capture_timeout == 1.5
        kwargs = mock_start_server.call_args.kwargs
        assert kwargs == {
            "log_to_file": False,
            "log_to_stdout": False,
            "log_path": "/tmp/test.log",
            "clear_prev_log": False,
            "log_level": "DEBUG",
        }

    @patch("uhdbridge.cli.base.start_server")
    def test_quiet(self, mock_start_server, cli_runner, no_config_file):
        result = cli_runner.invoke(cli, ["server", "-d", "mock", "-q"])
        assert result.exit_code == 0, result.output
        assert mock_start_server.call_args.kwargs["log_level"] == "WARNING"

    @patch("uhdbridge.cli.base.start_server")
    def test_missing_device_prints_help(
        self, mock_start_server, cli_runner, no_config_file
    ):
        result = cli_runner.invoke(cli, ["server"])
        assert result.exit_code == 1
        assert "no capture device given" in result.output
        assert "--device" in result.output
        mock_start_server.assert_not_called()

    @patch("uhdbridge.cli.base.start_server")
    def test_config_file_supplies_device(self, mock_start_server, cli_runner, tmp_path):
        config_file = tmp_path / "bridge.ini"
        config_file.write_text("[bridge]\ndevice = mock\nscpi_port = 7000\n")
        result = cli_runner.invoke(
            cli, ["server", "--config", str(config_file), "--scpi-port", "7001"]
        )
        assert result.exit_code == 0, result.output
        settings = mock_start_server.call_args.args[0]
        assert settings.device == "mock"
        assert settings.scpi_port == 7001

    @patch("uhdbridge.cli.base.start_server")
    def test_missing_config_file(self, mock_start_server, cli_runner, tmp_path):
        result = cli_runner.invoke(
            cli, ["server", "--config", str(tmp_path / "nope.ini"), "-d", "mock"]
        )
        assert result.exit_code != 0
        mock_start_server.assert_not_called()

    @patch("uhdbridge.cli.base.start_server")
    def test_bad_log_level(self, mock_start_server, cli_runner, no_config_file):
        result = cli_runner.invoke(cli, ["server", "-d", "mock", "--log-level", "LOUD"])
        assert result.exit_code != 0
        mock_start_server.assert_not_called()

    @patch("uhdbridge.cli.base.start_server")
    def test_capture_source_error_is_reported(
        self, mock_start_server, cli_runner, no_config_file
    ):
        mock_start_server.side_effect = DeviceError("No UHD devices found")
        result = cli_runner.invoke(cli, ["server", "-d", "addr=10.0.0.9"])
        assert result.exit_code == 1
        assert "Could not open capture source: No UHD devices found" in result.output
        assert not isinstance(result.exception, DeviceError)

    @patch("uhdbridge.cli.base.start_server")
    def test_success_log_level(self, mock_start_server, cli_runner, no_config_file):
        result = cli_runner.invoke(
            cli, ["server", "-d", "mock", "--log-level", "SUCCESS"]
        )
        assert result.exit_code == 0, result.output
        assert mock_start_server.call_args.kwargs["log_level"] == "SUCCESS"


def test_list_command_no_servers(cli_runner):
    with patch("uhdbridge.cli.base.list_running_servers", return_value=[]):
        result = cli_runner.invoke(cli, ["list"])
    assert result.exit_code == 0
    assert "No servers found" in result.output


def test_list_command_with_servers(cli_runner):
    mock_servers = [
        {
            "pid": 12345,
            "timestamp": "2024-01-01_12:00:00",
            "host": "0.0.0.0",
            "ports": {"scpi": 5025, "waveform": 5026},
            "device": "addr=192.168.10.2",
            "running": True,
        }
    ]
    with patch("uhdbridge.cli.base.list_running_servers", return_value=mock_servers):
        result = cli_runner.invoke(cli, ["list"])

    assert result.exit_code == 0
    assert "Running uhdbridge servers:" in result.output
    assert "PID: 12345 (RUNNING)" in result.output
    assert "Started: 2024-01-01_12:00:00" in result.output
    assert "Ports: scpi=5025, waveform=5026" in result.output
    assert "Device: addr=192.168.10.2" in result.output


def test_kill_command(cli_runner):
    with patch("uhdbridge.cli.base.kill_bridge_servers", return_value=0):
        result = cli_runner.invoke(cli, ["kill"])
    assert "No running uhdbridge servers found" in result.output

    with patch("uhdbridge.cli.base.kill_bridge_servers", return_value=2):
        result = cli_runner.invoke(cli, ["kill"])
    assert result.exit_code == 0
    assert "Killed 2 uhdbridge server(s)" in result.output


def test_config_init_and_show(cli_runner, tmp_path):
    path = tmp_path / "bridge.ini"
    result = cli_runner.invoke(cli, ["config", "init", "--path", str(path)])
    assert result.exit_code == 0, result.output
    assert path.exists()

    result = cli_runner.invoke(cli, ["config", "show", "--path", str(path)])
    assert result.exit_code == 0, result.output
    assert "scpi_port = 5025" in result.output
    assert "waveform_port = 5026" in result.output


def test_config_show_missing_file(cli_runner, tmp_path):
    result = cli_runner.invoke(cli, ["config", "show", "--path", str(tmp_path / "x.ini")])
    assert result.exit_code == 1
