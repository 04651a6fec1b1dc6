"""Capture source backed by the Ettus UHD Python bindings.

The bindings ship with a system UHD install rather than from the package
index, so they are imported lazily and their absence only matters when a
`UHDSource` is actually constructed.
"""

from __future__ import annotations

from typing import Any, Optional

import numpy as np
from loguru import logger

from uhdbridge.device.device import Device
from uhdbridge.types import DeviceError, RxErrorCode

# Lazy import of UHD
try:
    import uhd

    UHD_AVAILABLE = True
except ImportError:
    logger.debug("UHD Python bindings not available - only mock sources will work")
    UHD_AVAILABLE = False


class UHDImportError(DeviceError):
    """Raised when the UHD bindings are required but cannot be imported."""

    pass


class UHDSource(Device):
    """Single-channel receive path of a UHD device (USRP, ANTSDR, ...).

    Parameters
    ----------
    device_args : str
        UHD device argument string, e.g. "addr=192.168.10.2"
    subdev : str
        RX subdevice specification
    antenna : str
        RX antenna name
    channel : int
        Channel index for all setters/getters

    Attributes
    ----------
    _usrp : uhd.usrp.MultiUSRP
        Handle to the device
    _rx_streamer : uhd.usrp.RXStreamer
        fc32 host / sc16 wire receive streamer
    """

    required_config = {"device_args": str}

    def __init__(
        self,
        device_args: str = "",
        subdev: str = "A:A",
        antenna: str = "TX/RX",
        channel: int = 0,
        **config_kwargs,
    ):
        if not UHD_AVAILABLE:
            raise UHDImportError(
                "UHD Python bindings not found. Install UHD with its Python API "
                "to use hardware capture sources."
            )
        super().__init__(device_args=device_args, **config_kwargs)
        self._subdev = subdev
        self._antenna = antenna
        self._channel = channel
        self._usrp: Optional[Any] = None
        self._rx_streamer: Optional[Any] = None
        self._metadata: Optional[Any] = None
        self._model = ""
        self._serial = ""

    def open(self) -> tuple[bool, str]:
        try:
            self._usrp = uhd.usrp.MultiUSRP(self.device_args)
            # TODO: expose subdev/antenna selection over the control plane
            self._usrp.set_rx_subdev_spec(uhd.usrp.SubdevSpec(self._subdev))
            self._usrp.set_rx_antenna(self._antenna, self._channel)

            info = self._usrp.get_usrp_rx_info(self._channel)
            self._model = info.get("mboard_name", "")
            self._serial = info.get("mboard_serial", "")

            st_args = uhd.usrp.StreamArgs("fc32", "sc16")
            st_args.channels = [self._channel]
            self._rx_streamer = self._usrp.get_rx_stream(st_args)
            self._metadata = uhd.types.RXMetadata()
        except RuntimeError as e:
            logger.exception("Error opening UHD device {}", self.device_args)
            return False, f"Failed to open UHD device {self.device_args}: {e}"

        msg = f"Connected to UHD device: {self._model} (serial {self._serial})"
        logger.info(msg)
        return True, msg

    def close(self):
        self._rx_streamer = None
        self._usrp = None
        logger.info("Disconnected from UHD device: {}", self._model)

    def is_connected(self) -> bool:
        return self._usrp is not None

    def _check_open(self):
        if self._usrp is None:
            raise DeviceError("UHD device is not open")

    def get_identity(self) -> dict[str, str]:
        make = "Microphase" if self._model.startswith("ANT") else "Ettus Research"
        return {"make": make, "model": self._model, "serial": self._serial}

    #################################################################
    # configuration                                                 #

    def _apply(self, what: str, fn, *args):
        self._check_open()
        try:
            fn(*args)
        except RuntimeError as e:
            raise DeviceError(f"UHD rejected {what}: {e}") from e

    def set_clock_source(self, source: str) -> None:
        self._apply("clock source", self._usrp.set_clock_source, source)

    def set_rx_gain(self, gain_db: float) -> None:
        self._apply("rx gain", self._usrp.set_rx_gain, gain_db, self._channel)

    def get_rx_gain(self) -> float:
        self._check_open()
        return self._usrp.get_rx_gain(self._channel)

    def set_rx_bandwidth(self, bandwidth_hz: float) -> None:
        self._apply(
            "rx bandwidth", self._usrp.set_rx_bandwidth, bandwidth_hz, self._channel
        )

    def get_rx_bandwidth(self) -> float:
        self._check_open()
        return self._usrp.get_rx_bandwidth(self._channel)

    def set_rx_freq(self, freq_hz: float) -> None:
        self._check_open()
        tune_req = uhd.types.TuneRequest(freq_hz)
        self._apply("rx frequency", self._usrp.set_rx_freq, tune_req, self._channel)

    def get_rx_freq(self) -> float:
        self._check_open()
        return self._usrp.get_rx_freq(self._channel)

    def set_rx_rate(self, rate_hz: float) -> None:
        self._apply("rx rate", self._usrp.set_rx_rate, rate_hz, self._channel)

    def get_rx_rate(self) -> float:
        self._check_open()
        return self._usrp.get_rx_rate(self._channel)

    def get_rx_rate_range(self) -> tuple[float, float, float]:
        self._check_open()
        meta_range = self._usrp.get_rx_rates(self._channel)
        return meta_range.start(), meta_range.stop(), meta_range.step()

    #################################################################
    # capture                                                       #

    def request_block(self, num_samples: int) -> None:
        self._check_open()
        stream_cmd = uhd.types.StreamCMD(uhd.types.StreamMode.num_done)
        stream_cmd.num_samps = num_samples
        stream_cmd.stream_now = True
        self._rx_streamer.issue_stream_cmd(stream_cmd)

    def recv(self, buffer: np.ndarray, timeout: float) -> tuple[int, RxErrorCode]:
        self._check_open()
        num_rx = self._rx_streamer.recv(buffer, self._metadata, timeout)
        return num_rx, self._map_error_code(self._metadata.error_code)

    @staticmethod
    def _map_error_code(error_code) -> RxErrorCode:
        codes = uhd.types.RXMetadataErrorCode
        if error_code == codes.none:
            return RxErrorCode.OK
        if error_code == codes.timeout:
            return RxErrorCode.TIMEOUT
        if error_code == codes.overflow:
            return RxErrorCode.OVERFLOW
        return RxErrorCode.UNKNOWN
