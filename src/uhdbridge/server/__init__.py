# -*- coding: utf-8 -*-
"""
Bridge server: control sessions, acquisition and the binary data plane.

Architecture
------------
- `BridgeServer` binds the control (SCPI) and data (waveform) listeners and
  serves one client session at a time
- `BridgeSession` runs the command loop on the accepting thread and a
  `WaveformStreamer` worker thread for the data plane
- `AcquisitionFlags` and `SessionState` are the only state shared between
  the two threads
- `framing` defines the length-prefixed waveform frame

Examples
--------
Serving a mock receiver on ephemeral ports:
```python
from uhdbridge.device import open_capture_source
from uhdbridge.server import BridgeServer

with BridgeServer(open_capture_source("mock"), host="127.0.0.1",
                  scpi_port=0, waveform_port=0) as server:
    print(server.scpi_address, server.waveform_address)
    server.serve_forever()
```

See Also
--------
uhdbridge.client : Client for both planes
uhdbridge.scpi : Control-plane command loop
"""

from .acquisition import AcquisitionFlags, AcquisitionState
from .control import SAMPLE_DEPTHS, UHDBridgeHandler
from .framing import (
    HEADER_SIZE,
    SAMPLE_DTYPE,
    FrameReader,
    WaveformFrame,
    encode_frame,
    read_frame,
    write_frame,
)
from .registry import (
    cleanup_stale_servers,
    kill_bridge_servers,
    list_running_servers,
    register_server,
    unregister_server,
)
from .server import BridgeServer, start_server
from .session import BridgeSession
from .state import SessionState
from .streaming import WaveformStreamer

__all__ = [
    "AcquisitionFlags",
    "AcquisitionState",
    "BridgeServer",
    "BridgeSession",
    "FrameReader",
    "HEADER_SIZE",
    "SAMPLE_DEPTHS",
    "SAMPLE_DTYPE",
    "SessionState",
    "UHDBridgeHandler",
    "WaveformFrame",
    "WaveformStreamer",
    "cleanup_stale_servers",
    "encode_frame",
    "kill_bridge_servers",
    "list_running_servers",
    "read_frame",
    "register_server",
    "start_server",
    "unregister_server",
    "write_frame",
]
