import json
import socket
import threading
from unittest.mock import MagicMock

import pytest

from uhdbridge.device import MockCaptureSource
from uhdbridge.scpi import BridgeSCPIServer
from uhdbridge.server.control import UHDBridgeHandler
from uhdbridge.server.state import SessionState


class ScpiHarness:
    """A command loop on one end of a socketpair, a client on the other."""

    def __init__(self, handler):
        server_end, self.client = socket.socketpair()
        self.client.settimeout(5.0)
        self.reader = self.client.makefile("rb")
        self.handler = handler
        self.scpi = BridgeSCPIServer(server_end, handler)
        self.thread = threading.Thread(target=self.scpi.main_loop, daemon=True)
        self.thread.start()

    def send(self, line):
        self.client.sendall((line + "\n").encode())

    def query(self, line):
        self.send(line)
        return self.reader.readline().decode().rstrip("\n")

    def close(self):
        self.reader.close()
        self.client.close()
        self.thread.join(5.0)
        self.scpi.close()


@pytest.fixture
def harness():
    source = MockCaptureSource(rate_range=(1e6, 2e6, 0.0))
    h = ScpiHarness(UHDBridgeHandler(SessionState(), source))
    yield h
    h.close()


def test_idn(harness):
    assert harness.query("*IDN?") == "uhdbridge,MockCaptureSource,MOCK0001,1.0"


def test_catalog_queries(harness):
    assert harness.query("CHANS?") == "1"
    assert harness.query("RATES?") == "1000000,1500000,2000000,"
    depths = harness.query("DEPTHS?")
    assert depths.startswith("10000,20000,50000,")
    assert depths.endswith(",")


def test_commands_are_never_answered(harness):
    # the reply to the query must be the next line, so nothing came before it
    harness.send("RXGAIN 10")
    harness.send("RXGAIN bogus")
    harness.send("FROBNICATE 1")
    harness.send("")
    assert harness.query("RXGAIN?") == "10.0"


def test_unknown_query_gets_error_reply(harness):
    reply = harness.query("FROB?")
    assert reply.startswith("ERROR:")
    # and the loop keeps going
    assert harness.query("CHANS?") == "1"


def test_acquisition_verbs(harness):
    assert harness.query("ARMED?") == "0"
    harness.send("START")
    assert harness.query("ARMED?") == "1"
    assert harness.handler.state.flags.one_shot is False
    harness.send("STOP")
    assert harness.query("ARMED?") == "0"
    harness.send("SINGLE")
    assert harness.query("ARMED?") == "1"
    assert harness.handler.state.flags.one_shot is True
    harness.send("FORCE")
    assert harness.query("ARMED?") == "1"


def test_rate_and_depth(harness):
    harness.send("RATE 1.5e6")
    harness.send("DEPTH 20000")
    harness.send("DEPTH 0")  # rejected, below minimum
    status = json.loads(harness.query("CONFIG?"))
    assert status["sample_rate"] == 1_500_000
    assert status["block_depth"] == 20000


@pytest.mark.parametrize(
    "line",
    [
        "RATE 1e19",
        "RATE 9223372036854775808",
        "DEPTH 1e13",
        "DEPTH 100000001",
    ],
)
def test_out_of_range_rate_and_depth_change_nothing(harness, log_messages, line):
    harness.send("RATE 1e6")
    harness.send("DEPTH 10")
    harness.send(line)
    status = json.loads(harness.query("CONFIG?"))
    assert status["sample_rate"] == 1_000_000
    assert status["block_depth"] == 10
    assert any("is above" in m for m in log_messages)


def test_largest_catalog_depth_is_accepted(harness):
    harness.send("DEPTH 100000000")
    assert json.loads(harness.query("CONFIG?"))["block_depth"] == 100_000_000


def test_rxfreq_query_reports_achieved(harness):
    harness.send("RXFREQ 915e6")
    assert harness.query("RXFREQ?") == "915000000"


def test_channel_and_trigger_verbs_are_accepted(harness, log_messages):
    for line in (
        "C1:ON",
        "C1:OFF",
        "C1:COUP DC50",
        "C1:RANGE 1.0",
        "C1:OFFS 0",
        "TRIG:DELAY 1000",
        "TRIG:SOU C1",
        "TRIG:LEV 0.1",
        "TRIG:MODE EDGE",
        "TRIG:EDGE:DIR RISING",
    ):
        harness.send(line)
    assert harness.query("CHANS?") == "1"
    assert not any("failed" in m for m in log_messages)


def test_bad_channel_is_logged(harness, log_messages):
    harness.send("TRIG:SOU C9")
    harness.send("C9:ON")
    assert harness.query("CHANS?") == "1"
    assert any("Unknown channel 'C9'" in m for m in log_messages)
    assert any("Unrecognized command: C9:ON" in m for m in log_messages)


def test_loop_ends_on_disconnect():
    handler = UHDBridgeHandler(SessionState(), MockCaptureSource())
    h = ScpiHarness(handler)
    h.client.shutdown(socket.SHUT_WR)
    h.thread.join(5.0)
    assert not h.thread.is_alive()
    h.close()


def test_handler_must_provide_capabilities():
    a, b = socket.socketpair()
    try:
        with pytest.raises(TypeError, match="IdentityProtocol"):
            BridgeSCPIServer(a, MagicMock(spec=[]))
    finally:
        a.close()
        b.close()
