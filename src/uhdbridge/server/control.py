"""
Control-plane handler for UHD receivers.

`UHDBridgeHandler` implements the identity, channel-info and command-handler
capabilities consumed by `uhdbridge.scpi.BridgeSCPIServer`.

Device-specific commands
------------------------
    REFCLK internal|external    reference clock
    RXGAIN <dB>                 receiver gain
    RXBW <Hz>                   receiver bandwidth
    RXFREQ <Hz>                 receiver center frequency

Device-specific queries
-----------------------
    REFCLK?  RXGAIN?  RXBW?     last requested value
    RXFREQ?                     achieved center frequency (see below)

Requested vs achieved values
----------------------------
The receiver snaps requests to supported steps. The session config keeps the
*requested* value and the achieved one is only logged, matching what legacy
clients expect back. Center frequency is the exception carried over from the
legacy bridge: the achieved frequency is also cached separately and is what
RXFREQ? reports.

If the receiver rejects a value (DeviceError) the requested value is still
stored, and the error is logged. Malformed arguments (ParseError) are
rejected before anything is touched.
"""

from __future__ import annotations

import math
import re
from typing import Any, Callable, Optional

from loguru import logger

from uhdbridge.scpi import parse_float
from uhdbridge.types import (
    CaptureSourceProtocol,
    ChannelType,
    ClockSource,
    DeviceError,
    ParseError,
    validate_protocol,
)

from .state import SessionState

K = 1000
M = K * K

# the hardware has no hard cap on block size, so offer a spread of sane ones
SAMPLE_DEPTHS = [
    10 * K,
    20 * K,
    50 * K,
    100 * K,
    200 * K,
    500 * K,
    1 * M,
    2 * M,
    5 * M,
    10 * M,
    20 * M,
    50 * M,
    100 * M,
]

MIN_RATE_STEP = 500 * K  # Hz, keeps the sample rate list a sensible length

FIRMWARE_VERSION = "1.0"

_CHANNEL_RE = re.compile(r"(?:CH|C)?(\d+)")


class UHDBridgeHandler:
    """Command handling for one control session against one capture source.

    Parameters
    ----------
    state : SessionState
        Config, lock and flags shared with the session's streaming worker
    source : CaptureSourceProtocol
        The receiver

    Raises
    ------
    TypeError
        If `source` does not implement CaptureSourceProtocol
    """

    def __init__(self, state: SessionState, source):
        is_valid, error_msg = validate_protocol(source, CaptureSourceProtocol)
        if not is_valid:
            raise TypeError(error_msg)
        self.state = state
        self.source = source
        self._identity = source.get_identity()
        self._commands: dict[str, Callable[[list[str]], None]] = {
            "REFCLK": self.set_clock_source,
            "RXGAIN": self.set_rx_gain,
            "RXBW": self.set_rx_bandwidth,
            "RXFREQ": self.set_rx_frequency,
        }

    # ========================================================================
    # Identity

    def get_make(self) -> str:
        return self._identity.get("make", "")

    def get_model(self) -> str:
        return self._identity.get("model", "")

    def get_serial(self) -> str:
        return self._identity.get("serial", "")

    def get_firmware_version(self) -> str:
        return FIRMWARE_VERSION

    # ========================================================================
    # Channel info

    def get_analog_channel_count(self) -> int:
        # TODO: support multi-channel receivers (one stream per channel)
        return 1

    def get_channel_id(self, subject: str) -> Optional[int]:
        match = _CHANNEL_RE.fullmatch(subject)
        if match is None:
            return None
        index = int(match.group(1)) - 1
        if 0 <= index < self.get_analog_channel_count():
            return index
        return None

    def get_channel_type(self, channel: int) -> ChannelType:
        return ChannelType.ANALOG

    def get_sample_rates(self) -> list[int]:
        """Supported rates from the top of the range down, in >= 500 kHz steps."""
        start, stop, step = self.source.get_rx_rate_range()
        if step <= 0:
            step = MIN_RATE_STEP
        elif step < MIN_RATE_STEP:
            step *= math.ceil(MIN_RATE_STEP / step)

        rates = []
        f = stop
        while f >= start:
            rates.append(int(f))
            f -= step
        rates.reverse()
        return rates

    def get_sample_depths(self) -> list[int]:
        return list(SAMPLE_DEPTHS)

    # ========================================================================
    # Acquisition

    def acquisition_start(self, one_shot: bool = False) -> None:
        logger.debug("acquisition start (one shot: {})", one_shot)
        self.state.flags.arm(one_shot)

    def acquisition_force_trigger(self) -> None:
        # blocks are free running; there is no separate trigger to force
        logger.trace("force trigger ignored")

    def acquisition_stop(self) -> None:
        logger.debug("acquisition stop")
        self.state.flags.disarm()

    def is_trigger_armed(self) -> bool:
        return self.state.flags.armed

    # ========================================================================
    # Timebase

    def set_sample_rate(self, rate_hz: int) -> None:
        with self.state.config_lock:
            try:
                self.source.set_rx_rate(rate_hz)
                actual = self.source.get_rx_rate()
                logger.debug(
                    "set rx sample rate: requested {:.2f} Msps, got {:.2f} Msps",
                    rate_hz * 1e-6,
                    actual * 1e-6,
                )
            except DeviceError as e:
                logger.error("set rx sample rate {} failed: {}", rate_hz, e)
            self.state.config.sample_rate = rate_hz

    def set_sample_depth(self, depth: int) -> None:
        with self.state.config_lock:
            self.state.config.block_depth = depth
        logger.debug("set sample depth: {} samples (applies from next block)", depth)

    # ========================================================================
    # Channel and trigger setup
    # One always-on analog channel and no discrete trigger: accepted, ignored.

    def set_channel_enabled(self, channel: int, enabled: bool) -> None:
        pass

    def set_analog_coupling(self, channel: int, coupling: str) -> None:
        pass

    def set_analog_range(self, channel: int, range_v: float) -> None:
        pass

    def set_analog_offset(self, channel: int, offset_v: float) -> None:
        pass

    def set_digital_threshold(self, channel: int, threshold_v: float) -> None:
        pass

    def set_digital_hysteresis(self, channel: int, hysteresis: float) -> None:
        pass

    def set_trigger_delay(self, delay_fs: int) -> None:
        pass

    def set_trigger_source(self, channel: int) -> None:
        pass

    def set_trigger_level(self, level_v: float) -> None:
        pass

    def set_trigger_type_edge(self) -> None:
        # all triggers are edge, nothing to do until other types are supported
        pass

    def set_edge_trigger_edge(self, edge: str) -> None:
        pass

    # ========================================================================
    # Device-specific commands

    def on_command(self, line: str, subject: str, command: str, args: list[str]) -> bool:
        if subject or command not in self._commands:
            return False
        self._commands[command](args)
        return True

    def on_query(self, line: str, subject: str, command: str) -> Optional[str]:
        if subject:
            return None
        if command == "RXFREQ":
            with self.state.config_lock:
                return str(self.state.current_center_frequency)
        config = self.state.snapshot_config()
        if command == "REFCLK":
            return config.clock_source.value
        elif command == "RXGAIN":
            return str(config.rx_gain)
        elif command == "RXBW":
            return str(config.rx_bandwidth)
        logger.debug("Unrecognized query received: {}", line)
        return None

    def config_status(self) -> dict[str, Any]:
        return self.state.status()

    def set_clock_source(self, args: list[str]) -> None:
        if not args:
            raise ParseError("Missing argument: clock source")
        source = ClockSource.parse(args[0])
        logger.debug("set refclk: {}", source.value)
        with self.state.config_lock:
            try:
                self.source.set_clock_source(source.value)
            except DeviceError as e:
                logger.error("set refclk {} failed: {}", source.value, e)
            self.state.config.clock_source = source

    def set_rx_gain(self, args: list[str]) -> None:
        requested = parse_float(args, "rx gain")
        with self.state.config_lock:
            try:
                self.source.set_rx_gain(requested)
                actual = self.source.get_rx_gain()
                logger.debug(
                    "set rx gain: requested {:.1f} dB, got {:.1f} dB", requested, actual
                )
            except DeviceError as e:
                logger.error("set rx gain {:.1f} dB failed: {}", requested, e)
            self.state.config.rx_gain = requested

    def set_rx_bandwidth(self, args: list[str]) -> None:
        requested = parse_float(args, "rx bandwidth")
        with self.state.config_lock:
            try:
                self.source.set_rx_bandwidth(requested)
                actual = self.source.get_rx_bandwidth()
                logger.debug(
                    "set rx bandwidth: requested {:.1f} MHz, got {:.1f} MHz",
                    requested * 1e-6,
                    actual * 1e-6,
                )
            except DeviceError as e:
                logger.error("set rx bandwidth {:.1f} MHz failed: {}", requested * 1e-6, e)
            self.state.config.rx_bandwidth = requested

    def set_rx_frequency(self, args: list[str]) -> None:
        requested = parse_float(args, "rx frequency")
        with self.state.config_lock:
            try:
                self.source.set_rx_freq(requested)
                actual = self.source.get_rx_freq()
                self.state.current_center_frequency = int(round(actual))
                logger.debug(
                    "set rx frequency: requested {:.1f} MHz, got {:.1f} MHz",
                    requested * 1e-6,
                    actual * 1e-6,
                )
            except DeviceError as e:
                logger.error("set rx frequency {:.1f} MHz failed: {}", requested * 1e-6, e)
            self.state.config.center_frequency = int(round(requested))
