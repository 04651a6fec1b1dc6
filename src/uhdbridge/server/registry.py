"""Bookkeeping of running bridge servers, one JSON file per process."""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

import psutil
from loguru import logger

from uhdbridge.util.defaults import CONFIG_DIR


def get_servers_dir() -> Path:
    """Get the directory for storing server PID files."""
    servers_dir = CONFIG_DIR / "running_servers"
    servers_dir.mkdir(parents=True, exist_ok=True)
    return servers_dir


def register_server(host: str, ports: tuple[int, int], device: str = "") -> Path:
    """Register this process as a running server."""
    pid = os.getpid()
    timestamp = datetime.now().strftime("%Y-%m-%d_%H:%M:%S")

    server_info = {
        "pid": pid,
        "timestamp": timestamp,
        "host": host,
        "ports": {"scpi": ports[0], "waveform": ports[1]},
        "device": device,
    }

    pid_file = get_servers_dir() / f"server_{pid}.json"
    with pid_file.open("w") as f:
        json.dump(server_info, f, indent=2)

    return pid_file


def unregister_server(pid_file: Optional[Path]) -> None:
    if pid_file is None:
        return
    try:
        pid_file.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not remove server file {}: {}", pid_file, e)


def _read_server_file(pid_file: Path) -> Optional[dict]:
    try:
        with pid_file.open() as f:
            server_info = json.load(f)
        int(server_info["pid"])
    except (OSError, ValueError, KeyError, TypeError) as e:
        logger.debug("Unreadable server file {}: {}", pid_file, e)
        return None
    return server_info


def list_running_servers() -> list[dict]:
    """Get info about all registered servers, with a `running` status."""
    servers = []
    for pid_file in get_servers_dir().glob("server_*.json"):
        server_info = _read_server_file(pid_file)
        if server_info is None:
            continue
        server_info["running"] = psutil.pid_exists(server_info["pid"])
        servers.append(server_info)
    return servers


def kill_bridge_servers() -> int:
    """Find and kill all registered bridge server processes, except this one."""
    killed = 0
    for pid_file in get_servers_dir().glob("server_*.json"):
        server_info = _read_server_file(pid_file)
        if server_info is None:
            pid_file.unlink(missing_ok=True)
            continue

        pid = server_info["pid"]
        if pid == os.getpid():
            continue
        try:
            proc = psutil.Process(pid)
            logger.info(f"Killing server PID {pid} started at {server_info['timestamp']}")
            proc.kill()
            killed += 1
        except psutil.NoSuchProcess:
            logger.debug(f"Server PID {pid} no longer exists")
        except psutil.AccessDenied:
            logger.error(f"Not allowed to kill server PID {pid}")
            continue

        # Clean up stale PID file
        pid_file.unlink(missing_ok=True)

    return killed


def cleanup_stale_servers() -> int:
    """Remove PID files for servers that no longer exist."""
    removed = 0
    for pid_file in get_servers_dir().glob("server_*.json"):
        server_info = _read_server_file(pid_file)
        if server_info is None or not psutil.pid_exists(server_info["pid"]):
            pid_file.unlink(missing_ok=True)
            removed += 1
    return removed
