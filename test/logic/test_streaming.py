import socket
import time

import pytest

from uhdbridge.device import MockCaptureSource
from uhdbridge.server.acquisition import AcquisitionState
from uhdbridge.server.framing import read_frame
from uhdbridge.server.state import SessionState
from uhdbridge.server.streaming import WaveformStreamer
from uhdbridge.types import (
    CaptureError,
    CaptureOverflow,
    CaptureTimeout,
    DeviceError,
    RxErrorCode,
)

RATE = 1_000_000


class StreamHarness:
    """A streaming worker on one end of a socketpair, the test on the other."""

    def __init__(self, source, depth=0, capture_timeout=0.5):
        self.state = SessionState()
        self.state.config.block_depth = depth
        self.state.config.sample_rate = RATE
        self.source = source
        server_end, self.client = socket.socketpair()
        self.client.settimeout(5.0)
        self.reader = self.client.makefile("rb")
        self.streamer = WaveformStreamer(
            self.state,
            source,
            data_socket=server_end,
            capture_timeout=capture_timeout,
            poll_interval=0.005,
        )
        self.streamer.start()

    def read_frame(self):
        return read_frame(self.reader)

    def set_depth(self, depth):
        with self.state.config_lock:
            self.state.config.block_depth = depth

    def stop(self):
        self.state.flags.request_quit()
        self.streamer.join(5.0)
        assert not self.streamer.is_alive()

    def remaining_frames(self):
        """Frames still in the socket once the worker has stopped."""
        frames = []
        while True:
            frame = self.read_frame()
            if frame is None:
                return frames
            frames.append(frame)

    def close(self):
        self.reader.close()
        self.client.close()


@pytest.fixture
def harness_factory():
    harnesses = []

    def make(*args, **kwargs):
        harness = StreamHarness(*args, **kwargs)
        harnesses.append(harness)
        return harness

    yield make
    for harness in harnesses:
        harness.state.flags.request_quit()
        harness.streamer.join(5.0)
        harness.close()


def wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return False


def test_idle_worker_sends_nothing(harness_factory):
    h = harness_factory(MockCaptureSource(), depth=100)
    time.sleep(0.05)
    assert h.streamer.acq_state == AcquisitionState.IDLE
    h.stop()
    assert h.remaining_frames() == []
    assert h.source.get_block_requests() == []


def test_full_block(harness_factory):
    h = harness_factory(MockCaptureSource(max_samples_per_recv=300), depth=1000)
    h.state.flags.arm(one_shot=True)

    frame = h.read_frame()
    assert frame.sample_count == 1000
    assert frame.sample_rate_hz == RATE
    assert len(frame.samples) == 1000
    assert h.source.get_block_requests() == [1000]


def test_one_shot_sends_exactly_one_frame_then_disarms(harness_factory):
    h = harness_factory(MockCaptureSource(), depth=64)
    h.state.flags.arm(one_shot=True)

    assert h.read_frame().sample_count == 64
    assert wait_until(lambda: not h.state.flags.armed)
    time.sleep(0.05)
    h.stop()
    assert h.remaining_frames() == []
    assert h.streamer.frames_sent == 1
    assert h.streamer.acq_state == AcquisitionState.STOPPED


def test_rearm_during_one_shot_block_captures_again(harness_factory):
    flags_holder = {}

    def on_recv(call_idx):
        if call_idx == 0:
            flags_holder["flags"].arm(one_shot=True)

    h = harness_factory(MockCaptureSource(on_recv=on_recv), depth=16)
    flags_holder["flags"] = h.state.flags
    h.state.flags.arm(one_shot=True)

    assert h.read_frame().sample_count == 16
    assert h.read_frame().sample_count == 16
    assert wait_until(lambda: not h.state.flags.armed)
    h.stop()
    assert h.remaining_frames() == []
    assert h.streamer.frames_sent == 2


@pytest.mark.parametrize(
    "code, error_type",
    [(RxErrorCode.TIMEOUT, CaptureTimeout), (RxErrorCode.OVERFLOW, CaptureOverflow)],
)
def test_error_mid_block_sends_partial_frame(
    harness_factory, log_messages, code, error_type
):
    source = MockCaptureSource(recv_script=[(300, RxErrorCode.OK), (200, code)])
    h = harness_factory(source, depth=1000)
    h.state.flags.arm(one_shot=True)

    frame = h.read_frame()
    assert frame.sample_count == 500
    assert len(frame.samples) == 500
    assert f"{code.value.lower()} after 500 of 1000 samples" in log_messages
    assert isinstance(h.streamer.last_capture_error, error_type)


def test_timeout_with_no_samples_sends_empty_frame(harness_factory):
    source = MockCaptureSource(recv_script=[(0, RxErrorCode.TIMEOUT)])
    h = harness_factory(source, depth=100)
    h.state.flags.arm(one_shot=True)

    frame = h.read_frame()
    assert frame.sample_count == 0
    assert frame.sample_rate_hz == RATE


def test_errors_do_not_stop_the_worker(harness_factory):
    source = MockCaptureSource(
        recv_script=[(5, RxErrorCode.UNKNOWN), (0, RxErrorCode.OVERFLOW)]
    )
    h = harness_factory(source, depth=10)
    h.state.flags.arm()

    assert h.read_frame().sample_count == 5
    assert h.read_frame().sample_count == 0
    assert h.read_frame().sample_count == 10
    assert h.streamer.is_alive()


def test_device_error_ends_block_only(harness_factory):
    class FailingSource(MockCaptureSource):
        calls = 0

        def recv(self, buffer, timeout):
            FailingSource.calls += 1
            if FailingSource.calls == 2:
                raise DeviceError("USB transfer failed")
            return super().recv(buffer, timeout)

    h = harness_factory(FailingSource(max_samples_per_recv=4), depth=10)
    h.state.flags.arm()
    assert h.read_frame().sample_count == 4
    assert h.read_frame().sample_count == 10


def test_continuous_until_stop(harness_factory):
    h = harness_factory(MockCaptureSource(recv_delay=0.002), depth=32)
    h.state.flags.arm(one_shot=False)

    for _ in range(3):
        assert h.read_frame().sample_count == 32
    h.state.flags.disarm()
    # at most the block already in flight can still arrive
    sent_at_stop = h.streamer.frames_sent
    time.sleep(0.1)
    assert h.streamer.frames_sent <= sent_at_stop + 1
    h.stop()
    assert 3 + len(h.remaining_frames()) == h.streamer.frames_sent


def test_stop_during_block_still_delivers_it(harness_factory):
    flags_holder = {}

    def on_recv(call_idx):
        if call_idx == 0:
            flags_holder["flags"].disarm()

    h = harness_factory(MockCaptureSource(on_recv=on_recv), depth=10)
    flags_holder["flags"] = h.state.flags
    h.state.flags.arm(one_shot=False)

    frame = h.read_frame()
    assert frame.sample_count == 10
    time.sleep(0.05)
    h.stop()
    assert h.remaining_frames() == []
    assert h.streamer.frames_sent == 1


def test_stop_during_one_shot_block_still_delivers_it(harness_factory):
    flags_holder = {}

    def on_recv(call_idx):
        if call_idx == 0:
            flags_holder["flags"].disarm()

    h = harness_factory(MockCaptureSource(on_recv=on_recv), depth=10)
    flags_holder["flags"] = h.state.flags
    h.state.flags.arm(one_shot=True)

    frame = h.read_frame()
    assert frame.sample_count == 10
    assert wait_until(lambda: h.streamer.acq_state == AcquisitionState.IDLE)
    assert not h.state.flags.armed
    h.stop()
    assert h.remaining_frames() == []
    assert h.streamer.frames_sent == 1


def test_unallocatable_block_is_sent_empty_and_worker_survives(harness_factory):
    h = harness_factory(MockCaptureSource(), depth=10**13)
    h.state.flags.arm(one_shot=True)

    assert h.read_frame().sample_count == 0
    assert isinstance(h.streamer.last_capture_error, CaptureError)
    assert h.source.get_block_requests() == []

    assert wait_until(lambda: not h.state.flags.armed)
    h.set_depth(10)
    h.state.flags.arm(one_shot=True)
    assert h.read_frame().sample_count == 10
    assert h.streamer.is_alive()


def test_quit_ends_block_in_flight(harness_factory):
    holder = {}

    def on_recv(call_idx):
        if call_idx == 0:
            holder["flags"].request_quit()

    source = MockCaptureSource(on_recv=on_recv, max_samples_per_recv=10)
    h = harness_factory(source, depth=1000)
    holder["flags"] = h.state.flags
    h.state.flags.arm()

    h.streamer.join(5.0)
    assert not h.streamer.is_alive()
    assert [f.sample_count for f in h.remaining_frames()] == [10]


def test_depth_change_mid_block_applies_to_next_block(harness_factory):
    holder = {}

    def on_recv(call_idx):
        if call_idx == 0:
            holder["harness"].set_depth(50)

    source = MockCaptureSource(on_recv=on_recv, max_samples_per_recv=100)
    h = harness_factory(source, depth=400)
    holder["harness"] = h
    h.state.flags.arm()

    assert h.read_frame().sample_count == 400
    assert h.read_frame().sample_count == 50
    assert source.get_block_requests()[:2] == [400, 50]


def test_rate_change_is_reported_from_next_block(harness_factory):
    holder = {}

    def on_recv(call_idx):
        if call_idx == 0:
            with holder["state"].config_lock:
                holder["state"].config.sample_rate = 2 * RATE

    h = harness_factory(MockCaptureSource(on_recv=on_recv), depth=8)
    holder["state"] = h.state
    h.state.flags.arm()

    assert h.read_frame().sample_rate_hz == RATE
    assert h.read_frame().sample_rate_hz == 2 * RATE


def test_armed_without_depth_waits(harness_factory, log_messages):
    h = harness_factory(MockCaptureSource(), depth=0)
    h.state.flags.arm()
    time.sleep(0.05)
    assert h.streamer.frames_sent == 0
    assert "Armed but no sample depth set, waiting for DEPTH" in log_messages

    h.set_depth(20)
    assert h.read_frame().sample_count == 20


def test_data_client_disconnect_ends_worker(harness_factory):
    h = harness_factory(MockCaptureSource(), depth=1000)
    h.close()
    h.state.flags.arm()
    h.streamer.join(5.0)
    assert not h.streamer.is_alive()
    assert h.streamer.acq_state == AcquisitionState.STOPPED


def test_quit_while_waiting_for_data_client():
    listener = socket.create_server(("127.0.0.1", 0))
    try:
        state = SessionState()
        streamer = WaveformStreamer(
            state, MockCaptureSource(), data_listener=listener, accept_timeout=0.02
        )
        streamer.start()
        time.sleep(0.05)
        state.flags.request_quit()
        streamer.join(2.0)
        assert not streamer.is_alive()
    finally:
        listener.close()


def test_needs_listener_or_socket():
    with pytest.raises(ValueError):
        WaveformStreamer(SessionState(), MockCaptureSource())
