"""Tokenising of control-plane lines and parsing of their arguments.

Lines follow the scopehal bridge dialect of SCPI:

    *IDN?                  -> subject "",     command "*IDN",     query
    RATES?                 -> subject "",     command "RATES",    query
    C1:COUP DC1M           -> subject "C1",   command "COUP",     args ["DC1M"]
    TRIG:EDGE:DIR RISING   -> subject "TRIG", command "EDGE:DIR", args ["RISING"]
    RXGAIN 20.5            -> subject "",     command "RXGAIN",   args ["20.5"]
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Optional

from uhdbridge.types import ParseError

_ARG_SPLIT = re.compile(r"[\s,]+")


@dataclass(frozen=True)
class ScpiLine:
    """One tokenised control-plane line."""

    line: str
    subject: str
    command: str
    args: list[str] = field(default_factory=list)
    is_query: bool = False


def parse_line(line: str) -> Optional[ScpiLine]:
    """Split a line into (subject, command, args). Returns None for blank lines."""
    stripped = line.strip()
    if not stripped:
        return None

    parts = stripped.split(maxsplit=1)
    head = parts[0]
    rest = parts[1] if len(parts) > 1 else ""

    is_query = head.endswith("?")
    head = head.rstrip("?").upper()

    if head.startswith("*"):
        subject, command = "", head
    else:
        subject, sep, command = head.partition(":")
        if not sep:
            subject, command = "", subject

    args = [arg for arg in _ARG_SPLIT.split(rest) if arg]
    return ScpiLine(
        line=stripped, subject=subject, command=command, args=args, is_query=is_query
    )


def _first_arg(args: list[str], what: str) -> str:
    if not args:
        raise ParseError(f"Missing argument: {what}")
    return args[0]


def parse_float(args: list[str], what: str) -> float:
    value = _first_arg(args, what)
    try:
        result = float(value)
    except ValueError:
        raise ParseError(f"Invalid {what}: {value!r} is not a number") from None
    if not math.isfinite(result):
        raise ParseError(f"Invalid {what}: {value!r} is not finite")
    return result


def parse_int(
    args: list[str],
    what: str,
    minimum: Optional[int] = None,
    maximum: Optional[int] = None,
) -> int:
    """Parse an integer argument, also accepting integral floats such as 1e6."""
    value = _first_arg(args, what)
    try:
        result = int(value)
    except ValueError:
        as_float = parse_float(args, what)
        if not as_float.is_integer():
            raise ParseError(f"Invalid {what}: {value!r} is not an integer") from None
        result = int(as_float)
    if minimum is not None and result < minimum:
        raise ParseError(f"Invalid {what}: {result} is below {minimum}")
    if maximum is not None and result > maximum:
        raise ParseError(f"Invalid {what}: {result} is above {maximum}")
    return result
