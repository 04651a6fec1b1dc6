"""
Control-plane framework: line tokenising and the generic command loop.

Device families plug in through the capability protocols in
`uhdbridge.types.protocols`; this package never touches hardware.

See Also
--------
uhdbridge.scpi.parser : Line tokenising and argument parsing
uhdbridge.scpi.server : Generic command loop
"""

from .parser import ScpiLine, parse_float, parse_int, parse_line
from .server import REQUIRED_CAPABILITIES, BridgeSCPIServer

__all__ = [
    "BridgeSCPIServer",
    "REQUIRED_CAPABILITIES",
    "ScpiLine",
    "parse_float",
    "parse_int",
    "parse_line",
]
