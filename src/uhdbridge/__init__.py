# -*- coding: utf-8 -*-
"""# uhdbridge

`SCPI/TCP bridge for UHD software-defined radio receivers`

Exposes a UHD receiver to remote oscilloscope-style clients over two TCP
sockets: a line-oriented SCPI control plane for configuration and
acquisition commands, and a binary data plane that streams captured blocks
of complex baseband samples as length-prefixed frames.

- `uhdbridge.server`: listeners, sessions, acquisition and framing
- `uhdbridge.scpi`: generic control-plane command loop
- `uhdbridge.device`: capture sources (UHD hardware, mock)
- `uhdbridge.client`: client for both planes
- `uhdbridge.cli`: the `uhdbridge` command
"""

from ._version import __version__
