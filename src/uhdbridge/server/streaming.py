"""
Data-plane worker: the acquisition state machine and block-streaming loop.

One `WaveformStreamer` runs per session. It accepts the data-plane client (or
is handed an already connected socket), then:

1. Waits, idle, until the session is armed or told to quit.
2. At each block boundary snapshots `block_depth` and `sample_rate` from the
   session config. Changes made while a block is in flight apply from the
   next block.
3. Requests exactly `block_depth` samples and accumulates receive results
   until the count is reached or the capture source reports anything other
   than OK. Whatever arrived, possibly nothing, is framed and sent.
4. After a one-shot block, disarms (unless re-armed meanwhile) and idles.

Capture-source errors are logged and end only the current block. A failed
write to the data socket ends the worker.
"""

from __future__ import annotations

import socket
import threading
from typing import Optional

import numpy as np
from loguru import logger

from uhdbridge.types import (
    CaptureError,
    CaptureOverflow,
    CaptureTimeout,
    DeviceError,
    RxErrorCode,
    TransportError,
)
from uhdbridge.util import (
    DEFAULT_ACCEPT_TIMEOUT,
    DEFAULT_CAPTURE_TIMEOUT,
    DEFAULT_POLL_INTERVAL,
)

from .acquisition import AcquisitionState
from .framing import SAMPLE_DTYPE, WaveformFrame, write_frame
from .state import SessionState


class WaveformStreamer(threading.Thread):
    """Streaming worker for one session.

    Parameters
    ----------
    state : SessionState
        Shared config, lock and flags of the owning session
    source : CaptureSourceProtocol
        Capture source to pull blocks from
    data_listener : socket.socket, optional
        Listening data-plane socket; the worker accepts one client from it
    data_socket : socket.socket, optional
        Already connected data-plane socket, used instead of accepting
    capture_timeout : float
        Timeout passed to every receive call, in seconds
    poll_interval : float
        Longest wait between checks of the quit flag while idle
    accept_timeout : float
        Longest wait between checks of the quit flag while accepting
    """

    def __init__(
        self,
        state: SessionState,
        source,
        data_listener: Optional[socket.socket] = None,
        data_socket: Optional[socket.socket] = None,
        capture_timeout: float = DEFAULT_CAPTURE_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        accept_timeout: float = DEFAULT_ACCEPT_TIMEOUT,
    ):
        super().__init__(name="WaveformThread", daemon=True)
        if data_listener is None and data_socket is None:
            raise ValueError("WaveformStreamer needs a data listener or a data socket")
        self._state = state
        self._source = source
        self._listener = data_listener
        self._conn = data_socket
        self._capture_timeout = capture_timeout
        self._poll_interval = poll_interval
        self._accept_timeout = accept_timeout
        self._conn_lock = threading.Lock()
        self.acq_state = AcquisitionState.IDLE
        self.frames_sent = 0
        self.samples_sent = 0
        self.last_capture_error: Optional[CaptureError] = None

    # ========================================================================

    def run(self):
        try:
            conn = self._conn if self._conn is not None else self._accept()
            if conn is None:
                return
            self._configure_socket(conn)
            self.stream(conn)
        except Exception:
            logger.exception("Waveform thread crashed.")
        finally:
            self.acq_state = AcquisitionState.STOPPED
            self.abort()
            logger.debug(
                "Client disconnected from data plane socket ({} frames, {} samples sent)",
                self.frames_sent,
                self.samples_sent,
            )

    def abort(self) -> None:
        """Close the data connection, unblocking a worker stuck in a write."""
        with self._conn_lock:
            conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            conn.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # already disconnected
        conn.close()

    def _accept(self) -> Optional[socket.socket]:
        flags = self._state.flags
        self._listener.settimeout(self._accept_timeout)
        while not flags.quit:
            try:
                conn, addr = self._listener.accept()
            except socket.timeout:
                continue
            except OSError as e:
                logger.error("Data plane accept failed: {}", e)
                return None
            conn.settimeout(None)
            logger.info("Client connected to data plane socket from {}", addr)
            with self._conn_lock:
                if flags.quit:
                    conn.close()
                    return None
                self._conn = conn
            return conn
        return None

    @staticmethod
    def _configure_socket(conn: socket.socket) -> None:
        if conn.family not in (socket.AF_INET, socket.AF_INET6):
            return
        try:
            conn.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        except OSError:
            logger.warning("Failed to disable Nagle on socket, performance may be poor")

    # ========================================================================

    def stream(self, conn: socket.socket) -> None:
        """Run the acquisition state machine until quit or disconnect."""
        flags = self._state.flags
        warned_no_depth = False

        while not flags.quit:
            if not flags.wait_for_arm(self._poll_interval):
                self.acq_state = AcquisitionState.IDLE
                continue

            block = flags.begin_block()
            if block is None:
                continue
            generation, one_shot = block
            self.acq_state = AcquisitionState.ARMED_WAITING

            depth, rate = self._state.snapshot_block_params()
            if depth <= 0:
                if not warned_no_depth:
                    logger.warning("Armed but no sample depth set, waiting for DEPTH")
                    warned_no_depth = True
                flags.wait_for_quit(self._poll_interval)
                continue
            warned_no_depth = False

            self.acq_state = AcquisitionState.BLOCK_IN_FLIGHT
            frame = self.capture_block(depth, rate)
            try:
                write_frame(conn, frame)
            except TransportError as e:
                logger.info("Data plane client gone: {}", e)
                return
            self.frames_sent += 1
            self.samples_sent += frame.sample_count

            if one_shot:
                flags.clear_if_one_shot(generation)
            self.acq_state = (
                AcquisitionState.ARMED_WAITING
                if flags.armed
                else AcquisitionState.IDLE
            )

    def capture_block(self, depth: int, rate: int) -> WaveformFrame:
        """Capture up to `depth` samples.

        Stops early on any non-OK result, and when the session is quitting.
        """
        try:
            buf = np.empty(depth, dtype=SAMPLE_DTYPE)
        except MemoryError as e:
            self.last_capture_error = CaptureError(
                f"cannot allocate a block of {depth} samples: {e}"
            )
            logger.error("{}", self.last_capture_error)
            return WaveformFrame(0, rate, np.empty(0, dtype=SAMPLE_DTYPE))
        nrx = 0
        try:
            self._source.request_block(depth)
        except DeviceError as e:
            logger.error("Failed to start block capture: {}", e)
            return WaveformFrame(0, rate, buf[:0])

        while nrx < depth:
            if self._state.flags.quit:
                logger.debug("Quit requested, ending block after {} samples", nrx)
                break
            try:
                rxsize, code = self._source.recv(buf[nrx:], self._capture_timeout)
            except DeviceError as e:
                logger.error("Capture source error: {}", e)
                break
            nrx += rxsize

            if code == RxErrorCode.OK:
                logger.trace("got {} samples for total of {}", rxsize, nrx)
                if rxsize == 0:
                    logger.warning("Capture source returned no samples, ending block")
                    break
                continue
            self.last_capture_error = _capture_error(code, nrx, depth)
            logger.error("{}", self.last_capture_error)
            break

        return WaveformFrame(nrx, rate, buf[:nrx])


def _capture_error(code: RxErrorCode, nrx: int, depth: int) -> CaptureError:
    if code == RxErrorCode.TIMEOUT:
        return CaptureTimeout(f"timeout after {nrx} of {depth} samples")
    elif code == RxErrorCode.OVERFLOW:
        return CaptureOverflow(f"overflow after {nrx} of {depth} samples")
    return CaptureError(f"unknown capture error after {nrx} of {depth} samples")
