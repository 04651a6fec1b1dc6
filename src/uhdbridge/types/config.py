"""Configuration and enumeration types shared by the control and data planes."""

from dataclasses import dataclass, replace
from enum import Enum

from mashumaro import DataClassDictMixin

from .errors import ParseError


class ClockSource(str, Enum):
    """Reference clock selection for the receiver."""

    INTERNAL = "internal"
    EXTERNAL = "external"

    @classmethod
    def parse(cls, value: str) -> "ClockSource":
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ParseError(
                f"Invalid clock source {value!r} (expected internal or external)"
            ) from None


class RxErrorCode(str, Enum):
    """Result code of a single receive call on a capture source."""

    OK = "OK"
    TIMEOUT = "TIMEOUT"
    OVERFLOW = "OVERFLOW"
    UNKNOWN = "UNKNOWN"


class ChannelType(str, Enum):
    ANALOG = "analog"
    DIGITAL = "digital"


@dataclass(kw_only=True)
class DeviceConfig(DataClassDictMixin):
    """Receiver settings for one session.

    Every field holds the last *requested* value. The capture source may snap
    a request to a supported step; the achieved value is logged, not stored.

    Mutated only by control-plane command handlers while holding the owning
    session's config lock. The streaming loop reads `block_depth` and
    `sample_rate` under the same lock at each block boundary.

    Attributes
    ----------
    clock_source : ClockSource
        Reference clock
    rx_gain : float
        Receiver gain in dB
    rx_bandwidth : float
        Receiver analog bandwidth in Hz
    center_frequency : int
        Receiver center frequency in Hz
    sample_rate : int
        Sample rate in Hz, reported in every frame header
    block_depth : int
        Samples per block. 0 means no depth has been configured yet.
    """

    clock_source: ClockSource = ClockSource.INTERNAL
    rx_gain: float = 0.0
    rx_bandwidth: float = 0.0
    center_frequency: int = 0
    sample_rate: int = 0
    block_depth: int = 0

    def copy(self) -> "DeviceConfig":
        return replace(self)
