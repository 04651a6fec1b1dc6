from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

from uhdbridge.types import DeviceConfig

from .acquisition import AcquisitionFlags


@dataclass
class SessionState:
    """Everything the control session and the streaming worker share.

    `config` is only touched while holding `config_lock`. The streaming worker
    takes the lock just long enough to copy the two scalars it needs, never
    across a capture call.
    """

    config: DeviceConfig = field(default_factory=DeviceConfig)
    config_lock: threading.Lock = field(default_factory=threading.Lock)
    flags: AcquisitionFlags = field(default_factory=AcquisitionFlags)
    # achieved (not requested) center frequency, for status reporting
    current_center_frequency: int = 0

    def snapshot_block_params(self) -> tuple[int, int]:
        """(block_depth, sample_rate) as of now."""
        with self.config_lock:
            return self.config.block_depth, self.config.sample_rate

    def snapshot_config(self) -> DeviceConfig:
        with self.config_lock:
            return self.config.copy()

    def status(self) -> dict[str, Any]:
        with self.config_lock:
            status = self.config.to_dict()
            status["current_center_frequency"] = self.current_center_frequency
        status["armed"] = self.flags.armed
        status["one_shot"] = self.flags.one_shot
        return status
