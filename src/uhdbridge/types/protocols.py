"""Capability protocols for the control plane and the capture hardware.

A control session does not inherit from a device-specific server class.
Instead, the object that handles a device family provides three capabilities,
each described by a protocol here:

1. `IdentityProtocol`
   - Answers `*IDN?`.

2. `ChannelInfoProtocol`
   - Channel enumeration plus the sample rate and depth catalogs.

3. `CommandHandlerProtocol`
   - Acquisition verbs, rate/depth setters, channel and trigger setters and
     any device-specific commands the generic layer does not know.

The hardware below the handler is described by `CaptureSourceProtocol`.

Protocols are `@runtime_checkable` and list their required methods as
annotations, so `validate_protocol` can report exactly which methods an
implementation is missing.

See Also
--------
uhdbridge.scpi.server : Generic command loop consuming these capabilities
uhdbridge.server.control : UHD implementation of the handler capabilities
uhdbridge.device : Capture source implementations
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Protocol, runtime_checkable

import numpy as np

from .config import ChannelType, RxErrorCode


@runtime_checkable
class IdentityProtocol(Protocol):
    """Methods required to answer the instrument identification query."""

    get_make: Callable[[], str]
    get_model: Callable[[], str]
    get_serial: Callable[[], str]
    get_firmware_version: Callable[[], str]


@runtime_checkable
class ChannelInfoProtocol(Protocol):
    """Methods required for channel enumeration and capability catalogs."""

    get_analog_channel_count: Callable[[], int]

    get_channel_id: Callable[[str], Optional[int]]
    """Map a command subject (e.g. "C1") to a channel index, or None."""

    get_channel_type: Callable[[int], ChannelType]

    get_sample_rates: Callable[[], list[int]]
    """Supported sample rates in Hz, ascending."""

    get_sample_depths: Callable[[], list[int]]
    """Supported block depths in samples, ascending."""


@runtime_checkable
class CommandHandlerProtocol(Protocol):
    """Methods required to act on control-plane commands."""

    acquisition_start: Callable[[bool], None]
    """Arm acquisition. Argument is the one-shot flag."""

    acquisition_force_trigger: Callable[[], None]
    acquisition_stop: Callable[[], None]
    is_trigger_armed: Callable[[], bool]

    set_channel_enabled: Callable[[int, bool], None]
    set_analog_coupling: Callable[[int, str], None]
    set_analog_range: Callable[[int, float], None]
    set_analog_offset: Callable[[int, float], None]
    set_digital_threshold: Callable[[int, float], None]
    set_digital_hysteresis: Callable[[int, float], None]

    set_sample_rate: Callable[[int], None]
    set_sample_depth: Callable[[int], None]

    set_trigger_delay: Callable[[int], None]
    set_trigger_source: Callable[[int], None]
    set_trigger_level: Callable[[float], None]
    set_trigger_type_edge: Callable[[], None]
    set_edge_trigger_edge: Callable[[str], None]

    on_command: Callable[[str, str, str, list[str]], bool]
    """Handle a device-specific command. Returns False if not recognised."""

    on_query: Callable[[str, str, str], Optional[str]]
    """Answer a device-specific query. Returns None if not recognised."""

    config_status: Callable[[], dict[str, Any]]
    """Serialisable view of the session's requested configuration."""


@runtime_checkable
class CaptureSourceProtocol(Protocol):
    """Methods required from the receiver hardware abstraction.

    Setters apply a requested value; getters read back what the hardware
    actually achieved, which may differ after snapping to supported steps.
    Setters raise `DeviceError` when the hardware rejects a value.
    """

    get_identity: Callable[[], dict[str, str]]
    """Keys: make, model, serial."""

    set_clock_source: Callable[[str], None]

    set_rx_gain: Callable[[float], None]
    get_rx_gain: Callable[[], float]

    set_rx_bandwidth: Callable[[float], None]
    get_rx_bandwidth: Callable[[], float]

    set_rx_freq: Callable[[float], None]
    get_rx_freq: Callable[[], float]

    set_rx_rate: Callable[[float], None]
    get_rx_rate: Callable[[], float]

    get_rx_rate_range: Callable[[], tuple[float, float, float]]
    """(start, stop, step) of the supported sample rate range in Hz."""

    request_block: Callable[[int], None]
    """Ask the hardware for exactly this many samples."""

    recv: Callable[[np.ndarray, float], tuple[int, RxErrorCode]]
    """Receive into a complex64 buffer with a timeout in seconds.

    Returns the number of samples written to the start of the buffer and the
    result code of the call.
    """


def validate_protocol(obj: object, protocol: type) -> tuple[bool, str]:
    """Check that `obj` provides every method `protocol` requires.

    Parameters
    ----------
    obj : object
        Implementation to check
    protocol : type
        One of the protocols in this module

    Returns
    -------
    tuple[bool, str]
        (is_valid, error_message)
    """
    missing_methods = []
    for method_name in protocol.__annotations__:
        if not callable(getattr(obj, method_name, None)):
            missing_methods.append(method_name)

    if missing_methods:
        return False, (
            f"{obj.__class__.__name__} does not implement {protocol.__name__}, "
            f"missing methods: {', '.join(missing_methods)}"
        )
    return True, ""
