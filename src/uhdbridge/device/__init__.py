# -*- coding: utf-8 -*-
"""
Capture source implementations for the bridge.

- `UHDSource`: Ettus UHD devices through the UHD Python bindings
- `MockCaptureSource`: software receiver for tests and demos

Each source implements `uhdbridge.types.CaptureSourceProtocol`, so the
control and streaming code never depends on a concrete class.

Examples
--------
Opening a source from a device string:
```python
from uhdbridge.device import open_capture_source
source = open_capture_source("mock,recv_delay=0.01")
source.set_rx_freq(2.4e9)
```

See Also
--------
uhdbridge.types.protocols : CaptureSourceProtocol definition
"""

from loguru import logger

from uhdbridge.types import DeviceError

from .device import Device
from .mock import MockCaptureSource
from .uhd_source import UHD_AVAILABLE, UHDImportError, UHDSource

# mock options accepted in a device string, and how to parse them
_MOCK_OPTIONS = {
    "recv_delay": float,
    "tone_hz": float,
    "max_samples_per_recv": int,
}


def _parse_mock_options(option_str: str) -> dict:
    options = {}
    for item in filter(None, (part.strip() for part in option_str.split(","))):
        key, sep, value = item.partition("=")
        if not sep or key not in _MOCK_OPTIONS:
            raise ValueError(
                f"Invalid mock option {item!r}, expected key=value with key in "
                f"{sorted(_MOCK_OPTIONS)}"
            )
        options[key] = _MOCK_OPTIONS[key](value)
    return options


def open_capture_source(device_string: str) -> Device:
    """Create and open the capture source named by a device string.

    Parameters
    ----------
    device_string : str
        "mock" or "mock,key=value,..." for a software source, otherwise a UHD
        device argument string such as "addr=192.168.10.2"

    Returns
    -------
    Device
        An opened capture source

    Raises
    ------
    DeviceError
        If the source cannot be created or opened
    """
    name, _, options = device_string.partition(",")
    if name.strip().lower() == "mock":
        try:
            source = MockCaptureSource(**_parse_mock_options(options))
        except ValueError as e:
            raise DeviceError(str(e)) from e
    else:
        source = UHDSource(device_args=device_string)

    ok, msg = source.open()
    if not ok:
        raise DeviceError(msg)
    logger.debug("Capture source attributes: {}", source.unroll_metadata())
    return source


__all__ = [
    "Device",
    "MockCaptureSource",
    "UHDSource",
    "UHDImportError",
    "UHD_AVAILABLE",
    "open_capture_source",
]
