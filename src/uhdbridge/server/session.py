"""One control connection plus its streaming worker."""

from __future__ import annotations

import socket
from typing import Optional

from loguru import logger

from uhdbridge.scpi import BridgeSCPIServer
from uhdbridge.util import (
    DEFAULT_ACCEPT_TIMEOUT,
    DEFAULT_CAPTURE_TIMEOUT,
    DEFAULT_JOIN_TIMEOUT,
    DEFAULT_POLL_INTERVAL,
)

from .control import UHDBridgeHandler
from .state import SessionState
from .streaming import WaveformStreamer


class BridgeSession:
    """Owns a session's config, flags, command loop and streaming worker.

    The command loop runs on the calling thread; the streaming worker runs on
    its own thread. When the command loop ends, for any reason, the worker is
    told to quit and joined before `run` returns.

    Parameters
    ----------
    control_socket : socket.socket
        Connected control-plane socket
    source : CaptureSourceProtocol
        Capture source, used by this session only
    data_listener : socket.socket, optional
        Listening data socket the worker accepts its client from
    data_socket : socket.socket, optional
        Already connected data socket (instead of data_listener)
    """

    def __init__(
        self,
        control_socket: socket.socket,
        source,
        data_listener: Optional[socket.socket] = None,
        data_socket: Optional[socket.socket] = None,
        capture_timeout: float = DEFAULT_CAPTURE_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        accept_timeout: float = DEFAULT_ACCEPT_TIMEOUT,
        join_timeout: float = DEFAULT_JOIN_TIMEOUT,
    ):
        self.state = SessionState()
        self.handler = UHDBridgeHandler(self.state, source)
        self.scpi = BridgeSCPIServer(control_socket, self.handler)
        self.streamer = WaveformStreamer(
            self.state,
            source,
            data_listener=data_listener,
            data_socket=data_socket,
            capture_timeout=capture_timeout,
            poll_interval=poll_interval,
            accept_timeout=accept_timeout,
        )
        self._control_socket = control_socket
        self._join_timeout = join_timeout

    def run(self) -> None:
        """Serve the control connection until it closes, then tear down."""
        self.streamer.start()
        try:
            self.scpi.main_loop()
        finally:
            self.teardown()

    def stop(self) -> None:
        """Ask a running session to end, from any thread."""
        self.state.flags.request_quit()
        try:
            self._control_socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # already closed

    def teardown(self) -> None:
        """Quit the worker and wait for it to exit.

        The capture source is not released to the next session while the
        worker may still use it, so this only returns once the worker is gone.
        A worker that outlives the first join has its data socket closed; a
        receive call in progress still runs to its timeout.
        """
        self.state.flags.request_quit()
        if self.streamer.is_alive():
            self.streamer.join(self._join_timeout)
        if self.streamer.is_alive():
            logger.warning("Waveform thread did not stop, closing its data socket")
            self.streamer.abort()
            while self.streamer.is_alive():
                self.streamer.join(self._join_timeout)
                if self.streamer.is_alive():
                    logger.warning("Still waiting for waveform thread to stop")
        self.scpi.close()
        logger.info("Client disconnected")
