"""Acquisition state and the flags shared between control and streaming.

The control session and the streaming worker never call each other. They
communicate through `AcquisitionFlags`:

- the control session is the writer of `armed` / `one_shot` (arm, disarm)
- session teardown is the writer of `quit` (a one-way trip)
- the streaming worker clears `armed` after a one-shot block, but only via
  `clear_if_one_shot`, which compares the arm generation first so a re-arm
  that lands while the block is in flight is never lost

The flags sit on a `threading.Condition`, so arming wakes an idle worker
straight away instead of waiting out a poll interval.
"""

from __future__ import annotations

import threading
from enum import Enum
from typing import Optional


class AcquisitionState(str, Enum):
    """States of the streaming worker.

    IDLE -> ARMED_WAITING       armed observed
    ARMED_WAITING -> BLOCK_IN_FLIGHT
    BLOCK_IN_FLIGHT -> ARMED_WAITING | IDLE   frame sent
    any -> STOPPED              quit observed
    """

    IDLE = "IDLE"
    ARMED_WAITING = "ARMED_WAITING"
    BLOCK_IN_FLIGHT = "BLOCK_IN_FLIGHT"
    STOPPED = "STOPPED"


class AcquisitionFlags:
    """Armed / one-shot / quit flags for one session."""

    def __init__(self):
        self._cond = threading.Condition()
        self._armed = False
        self._one_shot = False
        self._quit = False
        self._generation = 0  # bumped on every arm

    # plain reads; may be stale by one poll interval
    @property
    def armed(self) -> bool:
        return self._armed

    @property
    def one_shot(self) -> bool:
        return self._one_shot

    @property
    def quit(self) -> bool:
        return self._quit

    def arm(self, one_shot: bool = False) -> None:
        with self._cond:
            self._armed = True
            self._one_shot = one_shot
            self._generation += 1
            self._cond.notify_all()

    def disarm(self) -> None:
        with self._cond:
            self._armed = False
            self._cond.notify_all()

    def request_quit(self) -> None:
        with self._cond:
            self._quit = True
            self._cond.notify_all()

    def wait_for_arm(self, timeout: float) -> bool:
        """Block until armed or quit, at most `timeout` seconds.

        Returns True if armed (and not quitting).
        """
        with self._cond:
            self._cond.wait_for(lambda: self._armed or self._quit, timeout)
            return self._armed and not self._quit

    def wait_for_quit(self, timeout: float) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: self._quit, timeout)

    def begin_block(self) -> Optional[tuple[int, bool]]:
        """Snapshot (generation, one_shot) at a block boundary.

        Returns None if the worker should not start a block.
        """
        with self._cond:
            if self._quit or not self._armed:
                return None
            return self._generation, self._one_shot

    def clear_if_one_shot(self, generation: int) -> bool:
        """Disarm after a one-shot block, unless re-armed since it began.

        Returns True if `armed` was cleared.
        """
        with self._cond:
            if self._generation != generation or not self._one_shot:
                return False
            self._armed = False
            self._cond.notify_all()
            return True
