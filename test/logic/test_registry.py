import json
import os
from pathlib import Path
from unittest.mock import MagicMock, patch

import psutil
import pytest

from uhdbridge.server.registry import (
    cleanup_stale_servers,
    get_servers_dir,
    kill_bridge_servers,
    list_running_servers,
    register_server,
    unregister_server,
)


@pytest.fixture
def mock_servers_dir(tmp_path):
    """Create a temporary directory for test PID files."""
    servers_dir = tmp_path / ".uhdbridge" / "running_servers"
    servers_dir.mkdir(parents=True)
    with patch("uhdbridge.server.registry.get_servers_dir") as mock_get_dir:
        mock_get_dir.return_value = servers_dir
        yield servers_dir


def create_test_pid_file(
    servers_dir: Path, pid: int, timestamp: str = "2024-01-01_12:00:00"
):
    """Helper to create a test PID file."""
    server_info = {
        "pid": pid,
        "timestamp": timestamp,
        "host": "localhost",
        "ports": {"scpi": 5025, "waveform": 5026},
        "device": "mock",
    }
    pid_file = servers_dir / f"server_{pid}.json"
    with pid_file.open("w") as f:
        json.dump(server_info, f)
    return pid_file


def test_get_servers_dir(tmp_path, monkeypatch):
    monkeypatch.setattr("uhdbridge.server.registry.CONFIG_DIR", tmp_path / ".uhdbridge")
    servers_dir = get_servers_dir()
    assert servers_dir.exists()
    assert servers_dir.is_dir()
    assert str(servers_dir).endswith("running_servers")


def test_register_and_unregister(mock_servers_dir):
    pid_file = register_server("0.0.0.0", (5025, 5026), "addr=192.168.10.2")
    assert pid_file.parent == mock_servers_dir

    info = json.loads(pid_file.read_text())
    assert info["pid"] == os.getpid()
    assert info["ports"] == {"scpi": 5025, "waveform": 5026}
    assert info["device"] == "addr=192.168.10.2"

    unregister_server(pid_file)
    assert not pid_file.exists()
    unregister_server(pid_file)  # already gone
    unregister_server(None)


def test_list_running_servers_empty(mock_servers_dir):
    assert list_running_servers() == []


def test_list_running_servers_with_active(mock_servers_dir):
    current_pid = os.getpid()
    create_test_pid_file(mock_servers_dir, current_pid)

    servers = list_running_servers()
    assert len(servers) == 1
    assert servers[0]["pid"] == current_pid
    assert servers[0]["running"] is True


def test_list_running_servers_with_dead(mock_servers_dir):
    fake_pid = 999999
    create_test_pid_file(mock_servers_dir, fake_pid)

    servers = list_running_servers()
    assert len(servers) == 1
    assert servers[0]["running"] is False


def test_list_skips_corrupt_files(mock_servers_dir):
    (mock_servers_dir / "server_1.json").write_text("{not json")
    assert list_running_servers() == []


def test_kill_bridge_servers_no_servers(mock_servers_dir):
    assert kill_bridge_servers() == 0


@patch("psutil.Process")
def test_kill_bridge_servers_with_servers(mock_process, mock_servers_dir):
    mock_proc = MagicMock()
    mock_process.return_value = mock_proc
    create_test_pid_file(mock_servers_dir, 12345)

    assert kill_bridge_servers() == 1
    mock_proc.kill.assert_called_once()
    assert not (mock_servers_dir / "server_12345.json").exists()


def test_kill_skips_own_process(mock_servers_dir):
    pid_file = create_test_pid_file(mock_servers_dir, os.getpid())
    assert kill_bridge_servers() == 0
    assert pid_file.exists()


@patch("psutil.Process")
def test_kill_access_denied_keeps_file(mock_process, mock_servers_dir):
    mock_process.side_effect = psutil.AccessDenied(12345)
    pid_file = create_test_pid_file(mock_servers_dir, 12345)

    assert kill_bridge_servers() == 0
    assert pid_file.exists()


def test_cleanup_stale_servers(mock_servers_dir):
    pid_file = create_test_pid_file(mock_servers_dir, 999999)
    assert cleanup_stale_servers() == 1
    assert not pid_file.exists()


def test_cleanup_stale_servers_keeps_active(mock_servers_dir):
    pid_file = create_test_pid_file(mock_servers_dir, os.getpid())
    assert cleanup_stale_servers() == 0
    assert pid_file.exists()
