"""
Bridge server: listeners, the accept loop and process lifecycle.

The server binds two TCP listeners, one for the control plane (SCPI text)
and one for the data plane (binary frames). Sessions are served one at a
time:

1. Accept a control connection
2. Start that session's streaming worker, which accepts one data client
3. Run the command loop until the control client leaves
4. Quit and join the worker, then accept the next control connection

A session that fails for any reason is logged and the accept loop carries
on; only a shutdown request or a broken listener ends it.
"""

from __future__ import annotations

import signal
import socket
import threading
from datetime import datetime
from typing import Optional

from loguru import logger
from setproctitle import setproctitle

import uhdbridge.util
from uhdbridge.device import open_capture_source
from uhdbridge.util import (
    DEFAULT_ACCEPT_TIMEOUT,
    DEFAULT_CAPTURE_TIMEOUT,
    DEFAULT_HOST_ADDR,
    DEFAULT_JOIN_TIMEOUT,
    DEFAULT_LOGLEVEL,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_SCPI_PORT,
    DEFAULT_WAVEFORM_PORT,
    BridgeSettings,
)

from .registry import cleanup_stale_servers, register_server, unregister_server
from .session import BridgeSession


class BridgeServer:
    """Control and data listeners plus the serialised session loop.

    Parameters
    ----------
    source : CaptureSourceProtocol
        Opened capture source shared by successive sessions
    host : str
        Address both listeners bind to
    scpi_port, waveform_port : int
        Listener ports; 0 picks a free port (see `scpi_address`)
    """

    def __init__(
        self,
        source,
        host: str = DEFAULT_HOST_ADDR,
        scpi_port: int = DEFAULT_SCPI_PORT,
        waveform_port: int = DEFAULT_WAVEFORM_PORT,
        capture_timeout: float = DEFAULT_CAPTURE_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        accept_timeout: float = DEFAULT_ACCEPT_TIMEOUT,
        join_timeout: float = DEFAULT_JOIN_TIMEOUT,
    ):
        self.source = source
        self.host = host
        self._ports = (scpi_port, waveform_port)
        self._capture_timeout = capture_timeout
        self._poll_interval = poll_interval
        self._accept_timeout = accept_timeout
        self._join_timeout = join_timeout
        self._scpi_listener: Optional[socket.socket] = None
        self._data_listener: Optional[socket.socket] = None
        self._session: Optional[BridgeSession] = None
        # reentrant: shutdown() also runs from signal handlers on this thread
        self._session_lock = threading.RLock()
        self._shutdown = threading.Event()
        self.sessions_served = 0

    def __enter__(self):
        self.bind()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()
        self.close()

    @property
    def scpi_address(self) -> tuple:
        return self._scpi_listener.getsockname()

    @property
    def waveform_address(self) -> tuple:
        return self._data_listener.getsockname()

    def bind(self) -> None:
        """Bind and listen on both ports. Data plane first, as clients expect."""
        scpi_port, waveform_port = self._ports
        self._data_listener = socket.create_server((self.host, waveform_port))
        try:
            self._scpi_listener = socket.create_server((self.host, scpi_port))
        except OSError:
            self._data_listener.close()
            raise
        self._scpi_listener.settimeout(self._accept_timeout)
        logger.info(
            "Listening on {} (control {}, data {})",
            self.host,
            self.scpi_address[1],
            self.waveform_address[1],
        )

    def serve_forever(self) -> None:
        if self._scpi_listener is None:
            self.bind()
        logger.debug("Ready")

        while not self._shutdown.is_set():
            try:
                conn, addr = self._scpi_listener.accept()
            except socket.timeout:
                continue
            except OSError:
                if self._shutdown.is_set():
                    break
                logger.exception("Control plane accept failed.")
                break

            conn.settimeout(None)
            logger.info("Client connected to control plane from {}", addr)
            self._serve_session(conn)

        logger.info("Accept loop exiting due to shutdown request")

    def _serve_session(self, conn: socket.socket) -> None:
        try:
            session = BridgeSession(
                conn,
                self.source,
                data_listener=self._data_listener,
                capture_timeout=self._capture_timeout,
                poll_interval=self._poll_interval,
                accept_timeout=self._accept_timeout,
                join_timeout=self._join_timeout,
            )
        except Exception:
            logger.exception("Could not start session.")
            conn.close()
            self._discard_pending_data_client()
            return

        with self._session_lock:
            self._session = session
        # a shutdown that raced the accept still has to end this session
        if self._shutdown.is_set():
            session.stop()
        try:
            session.run()
        except Exception:
            logger.exception("Session ended with an error.")
        finally:
            with self._session_lock:
                self._session = None
            self.sessions_served += 1

    def _discard_pending_data_client(self) -> None:
        """Drop a data connection queued for a session that never started.

        Clients connect the data plane before the control plane, so one may
        already be waiting; left queued it would be handed to the next session.
        """
        self._data_listener.settimeout(0.0)
        try:
            conn, addr = self._data_listener.accept()
        except OSError:
            return  # nothing queued
        logger.info("Dropping data plane client {} of the failed session", addr)
        conn.close()

    def shutdown(self) -> None:
        """Stop accepting and end the active session. Safe from any thread."""
        self._shutdown.set()
        with self._session_lock:
            session = self._session
        if session is not None:
            session.stop()

    def close(self) -> None:
        for listener in (self._scpi_listener, self._data_listener):
            if listener is not None:
                listener.close()
        self._scpi_listener = None
        self._data_listener = None


# ============================================================================


def start_server(
    settings: BridgeSettings,
    log_to_file: bool = True,
    log_to_stdout: bool = True,
    log_path: str = "",
    clear_prev_log: bool = True,
    log_level: str = DEFAULT_LOGLEVEL,
) -> None:
    """Run a bridge server in this process until SIGINT/SIGTERM."""
    uhdbridge.util.start_server_log(
        log_to_file=log_to_file,
        log_to_stdout=log_to_stdout,
        log_path=log_path,
        clear_prev=clear_prev_log,
        log_level=log_level,
    )

    # Format: "uhdbridge-server_2024-01-20_15:30:45"
    timestamp = datetime.now().strftime("%Y-%m-%d_%H:%M:%S")
    setproctitle(f"uhdbridge-server_{timestamp}")

    logger.info("Opening capture source {!r}", settings.device)
    source = open_capture_source(settings.device)

    server = BridgeServer(
        source,
        host=settings.host,
        scpi_port=settings.scpi_port,
        waveform_port=settings.waveform_port,
        capture_timeout=settings.capture_timeout,
        poll_interval=settings.poll_interval,
    )

    def on_quit(signum, frame):
        logger.info("Shutting down...")
        server.shutdown()

    signal.signal(signal.SIGINT, on_quit)
    signal.signal(signal.SIGTERM, on_quit)

    pid_file = None
    try:
        server.bind()
        removed = cleanup_stale_servers()
        if removed:
            logger.debug("Removed {} stale server file(s)", removed)
        pid_file = register_server(
            settings.host, (settings.scpi_port, settings.waveform_port), settings.device
        )
        server.serve_forever()
    finally:
        server.close()
        unregister_server(pid_file)
        source.close()
        uhdbridge.util.shutdown_server_log()
