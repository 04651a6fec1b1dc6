"""Data-plane wire format.

Each captured block is sent as one frame, in native byte order:

    uint64 sample_count
    int64  sample_rate_hz
    sample_count x { float32 I; float32 Q }

There is no delimiter beyond the fixed 16 byte header and no checksum; the
payload is always exactly sample_count * 8 bytes, so a reader finds the next
frame from the two header fields alone. The stream ends on disconnect.
"""

from __future__ import annotations

import socket
import struct
from dataclasses import dataclass
from typing import BinaryIO, Iterator, Optional

import numpy as np

from uhdbridge.types import TransportError

# "=" is native byte order with standard sizes and no padding
COUNT_STRUCT = struct.Struct("=Q")
RATE_STRUCT = struct.Struct("=q")
HEADER_SIZE = COUNT_STRUCT.size + RATE_STRUCT.size
SAMPLE_DTYPE = np.dtype(np.complex64)  # interleaved float32 I, Q
BYTES_PER_SAMPLE = SAMPLE_DTYPE.itemsize


@dataclass
class WaveformFrame:
    """One captured block, ready to be framed.

    `sample_count` may be smaller than the block depth that was requested
    when the capture ended early, but never larger.
    """

    sample_count: int
    sample_rate_hz: int
    samples: np.ndarray

    def __post_init__(self):
        self.samples = np.ascontiguousarray(self.samples, dtype=SAMPLE_DTYPE)
        if self.samples.ndim != 1 or len(self.samples) != self.sample_count:
            raise ValueError(
                f"Frame holds {self.samples.size} samples, header says {self.sample_count}"
            )

    @property
    def payload_size(self) -> int:
        return self.sample_count * BYTES_PER_SAMPLE


def encode_frame(frame: WaveformFrame) -> tuple[bytes, bytes, memoryview]:
    """Encode a frame as its three consecutive writes: count, rate, payload."""
    return (
        COUNT_STRUCT.pack(frame.sample_count),
        RATE_STRUCT.pack(int(frame.sample_rate_hz)),
        memoryview(frame.samples.view(np.uint8)),
    )


def write_frame(sock: socket.socket, frame: WaveformFrame) -> None:
    """Send one frame. Raises TransportError if the peer has gone away."""
    try:
        for chunk in encode_frame(frame):
            sock.sendall(chunk)
    except OSError as e:
        raise TransportError(f"Data socket write failed: {e}") from e


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    chunks = []
    remaining = size
    while remaining:
        chunk = stream.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def read_frame(stream: BinaryIO) -> Optional[WaveformFrame]:
    """Read one frame from a binary stream, e.g. `sock.makefile("rb")`.

    Returns
    -------
    WaveformFrame | None
        The decoded frame, or None on a clean end of stream between frames

    Raises
    ------
    TransportError
        If the stream ends part way through a frame
    """
    header = _read_exact(stream, HEADER_SIZE)
    if not header:
        return None
    if len(header) != HEADER_SIZE:
        raise TransportError(f"Truncated frame header ({len(header)} bytes)")

    (sample_count,) = COUNT_STRUCT.unpack_from(header, 0)
    (sample_rate_hz,) = RATE_STRUCT.unpack_from(header, COUNT_STRUCT.size)

    payload_size = sample_count * BYTES_PER_SAMPLE
    payload = _read_exact(stream, payload_size)
    if len(payload) != payload_size:
        raise TransportError(
            f"Truncated frame payload ({len(payload)} of {payload_size} bytes)"
        )
    samples = np.frombuffer(payload, dtype=SAMPLE_DTYPE).copy()
    return WaveformFrame(sample_count, sample_rate_hz, samples)


class FrameReader:
    """Iterate over the frames of a data-plane stream until it ends."""

    def __init__(self, stream: BinaryIO):
        self._stream = stream

    def __iter__(self) -> Iterator[WaveformFrame]:
        while True:
            frame = read_frame(self._stream)
            if frame is None:
                return
            yield frame
