from __future__ import annotations

import threading
import time
from typing import Callable, Optional, Sequence

import numpy as np
from loguru import logger

from uhdbridge.device.device import Device
from uhdbridge.types import DeviceError, RxErrorCode


def _snap(value: float, start: float, stop: float, step: float) -> float:
    """Clamp to [start, stop] then round to the nearest step above start."""
    value = min(max(value, start), stop)
    if step > 0:
        value = start + np.floor((value - start) / step + 0.5) * step
        value = min(value, stop)
    return float(value)


class MockCaptureSource(Device):  # Protocol compliance checked at session setup
    """Software receiver that behaves like a tunable SDR.

    Setters snap requests into configurable (start, stop, step) ranges so
    requested and achieved values can differ. Receive calls synthesise a
    complex tone, optionally following a script of `(count, code)` results
    so that timeouts and overflows can be provoked on demand.

    Parameters
    ----------
    gain_range, bandwidth_range, freq_range, rate_range : tuple[float, float, float]
        (start, stop, step) for each setting; step 0 means continuous
    recv_script : Sequence[tuple[int, RxErrorCode]], optional
        Results for the next receive calls, consumed in order. Once empty,
        receives fill the outstanding request with OK.
    recv_delay : float
        Seconds each receive call blocks for
    max_samples_per_recv : int, optional
        Largest number of samples a single receive returns
    tone_hz : float
        Frequency of the synthesised tone, relative to the center frequency
    rejected_clock_sources : Sequence[str]
        Clock sources that raise DeviceError when selected
    on_recv : Callable[[int], None], optional
        Called at the start of every receive with the call index
    """

    def __init__(
        self,
        gain_range: tuple[float, float, float] = (0.0, 76.0, 1.0),
        bandwidth_range: tuple[float, float, float] = (200e3, 56e6, 0.0),
        freq_range: tuple[float, float, float] = (70e6, 6e9, 0.0),
        rate_range: tuple[float, float, float] = (200e3, 61.44e6, 0.0),
        recv_script: Optional[Sequence[tuple[int, RxErrorCode]]] = None,
        recv_delay: float = 0.0,
        max_samples_per_recv: Optional[int] = None,
        tone_hz: float = 10e3,
        rejected_clock_sources: Sequence[str] = (),
        on_recv: Optional[Callable[[int], None]] = None,
        **config,
    ):
        super().__init__(**config)
        self._connected = False
        self._gain_range = gain_range
        self._bandwidth_range = bandwidth_range
        self._freq_range = freq_range
        self._rate_range = rate_range
        self._clock_source = "internal"
        self._gain = gain_range[0]
        self._bandwidth = bandwidth_range[1]
        self._freq = freq_range[0]
        self._rate = rate_range[0]
        self._recv_delay = recv_delay
        self._max_samples_per_recv = max_samples_per_recv
        self._tone_hz = tone_hz
        self._rejected_clock_sources = {s.lower() for s in rejected_clock_sources}
        self._outstanding = 0
        self._sample_index = 0
        self._recv_calls = 0
        self._block_requests: list[int] = []
        self.on_recv = on_recv
        self.__script: list[tuple[int, RxErrorCode]] = list(recv_script or [])
        self.__lock = threading.Lock()

    def open(self) -> tuple[bool, str]:
        self._connected = True
        logger.info("Connected to capture source: MockCaptureSource")
        return True, "Connected to capture source: MockCaptureSource"

    def close(self):
        self._connected = False
        logger.info("Disconnected from capture source: {}", "MockCaptureSource")

    def is_connected(self) -> bool:
        return self._connected

    def get_identity(self) -> dict[str, str]:
        return {"make": "uhdbridge", "model": "MockCaptureSource", "serial": "MOCK0001"}

    # NOTE configuration is instantaneous for the mock, no hardware round-trip.

    def set_clock_source(self, source: str) -> None:
        if source.lower() in self._rejected_clock_sources:
            raise DeviceError(f"Clock source {source!r} not available")
        self._clock_source = source.lower()

    def get_clock_source(self) -> str:
        return self._clock_source

    def set_rx_gain(self, gain_db: float) -> None:
        self._gain = _snap(gain_db, *self._gain_range)

    def get_rx_gain(self) -> float:
        return self._gain

    def set_rx_bandwidth(self, bandwidth_hz: float) -> None:
        self._bandwidth = _snap(bandwidth_hz, *self._bandwidth_range)

    def get_rx_bandwidth(self) -> float:
        return self._bandwidth

    def set_rx_freq(self, freq_hz: float) -> None:
        self._freq = _snap(freq_hz, *self._freq_range)

    def get_rx_freq(self) -> float:
        return self._freq

    def set_rx_rate(self, rate_hz: float) -> None:
        self._rate = _snap(rate_hz, *self._rate_range)

    def get_rx_rate(self) -> float:
        return self._rate

    def get_rx_rate_range(self) -> tuple[float, float, float]:
        return self._rate_range

    #################################################################
    # capture                                                       #

    def queue_results(self, *results: tuple[int, RxErrorCode]) -> None:
        """Append `(count, code)` results for upcoming receive calls."""
        with self.__lock:
            self.__script.extend(results)

    def get_block_requests(self) -> list[int]:
        with self.__lock:
            return list(self._block_requests)

    def request_block(self, num_samples: int) -> None:
        with self.__lock:
            self._outstanding = num_samples
            self._block_requests.append(num_samples)

    def recv(self, buffer: np.ndarray, timeout: float) -> tuple[int, RxErrorCode]:
        with self.__lock:
            call_idx = self._recv_calls
            self._recv_calls += 1
        if self.on_recv is not None:
            self.on_recv(call_idx)
        if self._recv_delay:
            time.sleep(min(self._recv_delay, timeout))

        with self.__lock:
            if self.__script:
                count, code = self.__script.pop(0)
                count = min(count, len(buffer))
            else:
                count, code = min(self._outstanding, len(buffer)), RxErrorCode.OK
                if self._max_samples_per_recv is not None:
                    count = min(count, self._max_samples_per_recv)
            self._outstanding = max(self._outstanding - count, 0)
            start = self._sample_index
            self._sample_index += count

        if count:
            n = np.arange(start, start + count)
            rate = self._rate if self._rate else 1.0
            buffer[:count] = np.exp(2j * np.pi * self._tone_hz * n / rate).astype(
                np.complex64
            )
        return count, code
