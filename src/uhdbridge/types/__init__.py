"""
Shared types for the bridge: configuration records, enumerations, capability
protocols and exceptions.

The control plane and the data plane never call each other directly. They
share a session's `DeviceConfig` (guarded by one lock) and its acquisition
flags, so every type both sides touch lives here.

Examples
--------
Checking a handler before wiring it to a command loop:
```python
from uhdbridge.types import CommandHandlerProtocol, validate_protocol
ok, msg = validate_protocol(handler, CommandHandlerProtocol)
```

See Also
--------
uhdbridge.types.config : Configuration records and enums
uhdbridge.types.protocols : Capability protocols
uhdbridge.types.errors : Exception hierarchy
"""

from .config import ChannelType, ClockSource, DeviceConfig, RxErrorCode
from .errors import (
    BridgeError,
    CaptureError,
    CaptureOverflow,
    CaptureTimeout,
    DeviceError,
    ParseError,
    TransportError,
    UnknownCommandError,
)
from .protocols import (
    CaptureSourceProtocol,
    ChannelInfoProtocol,
    CommandHandlerProtocol,
    IdentityProtocol,
    validate_protocol,
)

__all__ = [
    "ChannelType",
    "ClockSource",
    "DeviceConfig",
    "RxErrorCode",
    "BridgeError",
    "CaptureError",
    "CaptureOverflow",
    "CaptureTimeout",
    "DeviceError",
    "ParseError",
    "TransportError",
    "UnknownCommandError",
    "CaptureSourceProtocol",
    "ChannelInfoProtocol",
    "CommandHandlerProtocol",
    "IdentityProtocol",
    "validate_protocol",
]
