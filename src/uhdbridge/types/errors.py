"""Exceptions raised across the bridge.

Configuration problems (`ParseError`, `DeviceError`) are recovered inside the
control loop. Capture problems (`CaptureTimeout`, `CaptureOverflow`) end the
current block early but never the streaming worker. `TransportError` ends the
owning session only.
"""


class BridgeError(Exception):
    """Base exception for all bridge errors."""

    pass


class ParseError(BridgeError):
    """Raised when a command argument cannot be parsed.

    The command is rejected and no state is changed.
    """

    pass


class DeviceError(BridgeError):
    """Raised when the capture source rejects a configuration value."""

    pass


class CaptureError(BridgeError):
    """Base exception for recoverable capture failures."""

    pass


class CaptureTimeout(CaptureError):
    pass


class CaptureOverflow(CaptureError):
    pass


class TransportError(BridgeError):
    """Raised when a control or data socket read/write fails."""

    pass


class UnknownCommandError(BridgeError):
    """Raised when neither the generic layer nor the device handler knows a verb."""

    pass
