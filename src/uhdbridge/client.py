# -*- coding: utf-8 -*-
"""
Client for a running bridge.

Opens both planes: a line-oriented control connection (commands and
queries) and the binary data connection the waveform frames arrive on.

Examples
--------
```python
from uhdbridge.client import BridgeClient

with BridgeClient("127.0.0.1") as bridge:
    print(bridge.identify())
    bridge.send("RXFREQ 2.4e9")
    bridge.send("DEPTH 10000")
    bridge.send("SINGLE")
    frame = bridge.read_frame()
    print(frame.sample_count, frame.sample_rate_hz)
```
"""

from __future__ import annotations

import socket
from typing import Optional

from loguru import logger

from uhdbridge.server.framing import WaveformFrame, read_frame
from uhdbridge.types import BridgeError, TransportError
from uhdbridge.util import DEFAULT_SCPI_PORT, DEFAULT_WAVEFORM_PORT

DEFAULT_CLIENT_TIMEOUT = 10.0  # seconds


class BridgeClient:
    """Connection to both planes of one bridge.

    The data connection is opened first: the server only accepts it once the
    control session has started, and queues it until then.

    Parameters
    ----------
    host : str
        Bridge address
    scpi_port, waveform_port : int
        Control and data ports
    timeout : float, optional
        Socket timeout for replies and frames, in seconds. None blocks.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        scpi_port: int = DEFAULT_SCPI_PORT,
        waveform_port: int = DEFAULT_WAVEFORM_PORT,
        timeout: Optional[float] = DEFAULT_CLIENT_TIMEOUT,
    ):
        self.host = host
        self._data = socket.create_connection((host, waveform_port), timeout=timeout)
        try:
            self._control = socket.create_connection((host, scpi_port), timeout=timeout)
        except OSError:
            self._data.close()
            raise
        self._data.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        self._control_reader = self._control.makefile("rb")
        self._data_reader = self._data.makefile("rb")
        logger.info("Connected to bridge on {}", host)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # ========================================================================

    def send(self, command: str) -> None:
        """Send a command line. Commands are never answered."""
        logger.debug("*REQUEST* (client->): {}", command)
        try:
            self._control.sendall((command.strip() + "\n").encode("utf-8"))
        except OSError as e:
            raise TransportError(str(e)) from e

    def query(self, query: str) -> str:
        """Send a query and return its reply line.

        Raises
        ------
        BridgeError
            If the bridge answered with an error
        TransportError
            If the connection failed or closed before a reply arrived
        """
        if not query.strip().endswith("?"):
            raise ValueError(f"Not a query: {query!r}")
        self.send(query)
        try:
            raw = self._control_reader.readline()
        except OSError as e:
            raise TransportError(str(e)) from e
        if not raw:
            raise TransportError("Control connection closed by bridge")
        reply = raw.decode("utf-8", errors="replace").rstrip("\r\n")
        logger.debug("*RESPONSE* (client<-): {}", reply)
        if reply.startswith("ERROR:"):
            raise BridgeError(reply[len("ERROR:") :].strip())
        return reply

    def read_frame(self) -> WaveformFrame:
        """Block until the next waveform frame arrives."""
        try:
            frame = read_frame(self._data_reader)
        except OSError as e:
            raise TransportError(str(e)) from e
        if frame is None:
            raise TransportError("Data connection closed by bridge")
        return frame

    # ========================================================================

    def identify(self) -> dict[str, str]:
        make, model, serial, firmware = (
            self.query("*IDN?").split(",", 3) + ["", "", "", ""]
        )[:4]
        return {"make": make, "model": model, "serial": serial, "firmware": firmware}

    def sample_rates(self) -> list[int]:
        return _parse_list(self.query("RATES?"))

    def sample_depths(self) -> list[int]:
        return _parse_list(self.query("DEPTHS?"))

    def close(self) -> None:
        logger.info("Closing connection.")
        for f in (self._control_reader, self._data_reader):
            f.close()
        for sock in (self._control, self._data):
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass  # already disconnected
            sock.close()


def _parse_list(reply: str) -> list[int]:
    return [int(item) for item in reply.split(",") if item.strip()]
