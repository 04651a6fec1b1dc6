"""
Generic control-plane command loop.

`BridgeSCPIServer` owns one control connection. It reads newline-terminated
lines, answers the generic identification and catalog queries itself, maps
the generic acquisition, timebase, channel and trigger verbs onto the
handler's `CommandHandlerProtocol` methods, and passes everything else to the
handler's `on_command` / `on_query`.

Replies
-------
Only queries are answered. Mutating commands never produce a reply, even
when they fail: the failure is logged and the loop continues, so clients
that only read replies after queries stay in step. A query that fails or is
not recognised is answered with "ERROR: <message>" so a client waiting on
it never hangs.

Generic commands
----------------
    *IDN?  CHANS?  RATES?  DEPTHS?  ARMED?  CONFIG?
    START  SINGLE  FORCE  STOP  RATE <Hz>  DEPTH <samples>
    <ch>:ON  <ch>:OFF  <ch>:COUP <mode>  <ch>:RANGE <V>  <ch>:OFFS <V>
    <ch>:THRESH <V>  <ch>:HYS <V>
    TRIG:DELAY <fs>  TRIG:SOU <ch>  TRIG:LEV <V>  TRIG:MODE EDGE
    TRIG:EDGE:DIR <edge>

RATE must fit the frame header's signed 64-bit rate field and DEPTH may not
exceed the largest DEPTHS? entry. Values outside those bounds are rejected
before anything changes.
"""

from __future__ import annotations

import json
import socket
from typing import Callable, Optional

from loguru import logger

from uhdbridge.types import (
    BridgeError,
    ChannelInfoProtocol,
    CommandHandlerProtocol,
    IdentityProtocol,
    TransportError,
    UnknownCommandError,
    validate_protocol,
)

from .parser import ScpiLine, parse_float, parse_int, parse_line

REQUIRED_CAPABILITIES = (IdentityProtocol, ChannelInfoProtocol, CommandHandlerProtocol)

# the frame header carries the rate as a signed 64-bit integer
MAX_SAMPLE_RATE = 2**63 - 1


class BridgeSCPIServer:
    """Command loop for a single control-plane client.

    Parameters
    ----------
    sock : socket.socket
        Connected control socket. Closed by `close()`.
    handler : object
        Implements IdentityProtocol, ChannelInfoProtocol and
        CommandHandlerProtocol

    Raises
    ------
    TypeError
        If the handler is missing a required capability method
    """

    def __init__(self, sock: socket.socket, handler):
        for protocol in REQUIRED_CAPABILITIES:
            is_valid, error_msg = validate_protocol(handler, protocol)
            if not is_valid:
                raise TypeError(error_msg)
        self.handler = handler
        self._sock = sock
        self._reader = sock.makefile("rb")
        self._queries: dict[str, Callable[[], str]] = {
            "*IDN": self._idn,
            "CHANS": lambda: str(self.handler.get_analog_channel_count()),
            "RATES": lambda: _as_list(self.handler.get_sample_rates()),
            "DEPTHS": lambda: _as_list(self.handler.get_sample_depths()),
            "ARMED": lambda: "1" if self.handler.is_trigger_armed() else "0",
            "CONFIG": lambda: json.dumps(self.handler.config_status()),
        }

    # ========================================================================

    def main_loop(self) -> None:
        """Process lines until the client disconnects or the socket fails."""
        while True:
            try:
                raw = self._reader.readline()
            except OSError as e:
                logger.error("Control socket read failed: {}", e)
                break
            if not raw:
                logger.info("Control client disconnected")
                break
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            try:
                self.process_line(line)
            except TransportError as e:
                logger.error("Control socket write failed: {}", e)
                break

    def process_line(self, line: str) -> None:
        parsed = parse_line(line)
        if parsed is None:
            return
        logger.debug("*REQUEST* (scpi<-): {}", parsed.line)

        if parsed.is_query:
            try:
                reply = self.on_query(parsed)
                if reply is None:
                    raise UnknownCommandError(f"Unrecognized query: {parsed.line}")
            except BridgeError as e:
                logger.error("Query {!r} failed: {}", parsed.line, e)
                reply = f"ERROR: {e}"
            self.send_reply(reply)
            return

        try:
            self.on_command(parsed)
        except BridgeError as e:
            logger.error("Command {!r} failed: {}", parsed.line, e)

    def send_reply(self, reply: str) -> None:
        logger.debug("*RESPONSE* (scpi->): {}", reply)
        try:
            self._sock.sendall((reply + "\n").encode("utf-8"))
        except OSError as e:
            raise TransportError(str(e)) from e

    def close(self) -> None:
        try:
            self._reader.close()
        finally:
            self._sock.close()

    # ========================================================================

    def _idn(self) -> str:
        return ",".join(
            (
                self.handler.get_make(),
                self.handler.get_model(),
                self.handler.get_serial(),
                self.handler.get_firmware_version(),
            )
        )

    def on_query(self, parsed: ScpiLine) -> Optional[str]:
        if not parsed.subject and parsed.command in self._queries:
            return self._queries[parsed.command]()
        return self.handler.on_query(parsed.line, parsed.subject, parsed.command)

    def on_command(self, parsed: ScpiLine) -> None:
        h = self.handler
        cmd, args = parsed.command, parsed.args

        if not parsed.subject:
            if cmd == "START":
                h.acquisition_start(False)
                return
            elif cmd == "SINGLE":
                h.acquisition_start(True)
                return
            elif cmd == "FORCE":
                h.acquisition_force_trigger()
                return
            elif cmd == "STOP":
                h.acquisition_stop()
                return
            elif cmd == "RATE":
                h.set_sample_rate(
                    parse_int(args, "sample rate", minimum=1, maximum=MAX_SAMPLE_RATE)
                )
                return
            elif cmd == "DEPTH":
                depth = parse_int(
                    args,
                    "sample depth",
                    minimum=1,
                    maximum=max(h.get_sample_depths()),
                )
                h.set_sample_depth(depth)
                return

        elif parsed.subject == "TRIG":
            if cmd == "DELAY":
                h.set_trigger_delay(parse_int(args, "trigger delay"))
                return
            elif cmd == "SOU":
                h.set_trigger_source(self._channel_arg(args))
                return
            elif cmd == "LEV":
                h.set_trigger_level(parse_float(args, "trigger level"))
                return
            elif cmd == "MODE":
                mode = args[0].upper() if args else ""
                if mode == "EDGE":
                    h.set_trigger_type_edge()
                else:
                    logger.warning("Unsupported trigger mode {!r}", mode)
                return
            elif cmd == "EDGE:DIR":
                h.set_edge_trigger_edge(args[0] if args else "")
                return

        else:
            ch = h.get_channel_id(parsed.subject)
            if ch is not None:
                if cmd == "ON":
                    h.set_channel_enabled(ch, True)
                    return
                elif cmd == "OFF":
                    h.set_channel_enabled(ch, False)
                    return
                elif cmd == "COUP":
                    h.set_analog_coupling(ch, args[0] if args else "")
                    return
                elif cmd == "RANGE":
                    h.set_analog_range(ch, parse_float(args, "range"))
                    return
                elif cmd == "OFFS":
                    h.set_analog_offset(ch, parse_float(args, "offset"))
                    return
                elif cmd == "THRESH":
                    h.set_digital_threshold(ch, parse_float(args, "threshold"))
                    return
                elif cmd == "HYS":
                    h.set_digital_hysteresis(ch, parse_float(args, "hysteresis"))
                    return

        if not h.on_command(parsed.line, parsed.subject, cmd, args):
            raise UnknownCommandError(f"Unrecognized command: {parsed.line}")

    def _channel_arg(self, args: list[str]) -> int:
        subject = args[0] if args else ""
        ch = self.handler.get_channel_id(subject.upper())
        if ch is None:
            raise UnknownCommandError(f"Unknown channel {subject!r}")
        return ch


def _as_list(values) -> str:
    return "".join(f"{v}," for v in values)
