"""Timestamp sources for timesync-testkit.

All timestamps are integer nanoseconds. A clock also owns the passage of
time between rounds (``wait``) so the driver can be run against a manual
clock in tests.

Contains:
- Clock: Protocol for injectable clocks
- SystemClock: Wall clock, blocking waits
- OffsetClock: Another clock shifted by a fixed offset (simulated peer)
- ManualClock: Deterministic clock advanced explicitly
"""

import threading
import time
from typing import Protocol

NS_PER_S = 1_000_000_000
NS_PER_MS = 1_000_000


def seconds_to_ns(seconds: float) -> int:
    """Convert seconds to integer nanoseconds."""
    return int(round(seconds * NS_PER_S))


def ns_to_ms(ns: float) -> float:
    """Convert nanoseconds to milliseconds."""
    return ns / NS_PER_MS


class Clock(Protocol):
    """Protocol for timestamp sources."""

    def now_ns(self) -> int: ...

    def wait(self, stop: threading.Event, timeout_s: float) -> bool:
        """Wait up to timeout_s. Returns True if stop was set."""
        ...


class SystemClock:
    """Wall clock backed by time.time_ns().

    Wall time (not monotonic time) is used because the offset between two
    machines' wall clocks is what is being measured.
    """

    def now_ns(self) -> int:
        return time.time_ns()

    def wait(self, stop: threading.Event, timeout_s: float) -> bool:
        return stop.wait(timeout_s)


class OffsetClock:
    """Clock reading another clock plus a fixed offset."""

    def __init__(self, base: Clock, offset_ns: int) -> None:
        self._base = base
        self.offset_ns = offset_ns

    def now_ns(self) -> int:
        return self._base.now_ns() + self.offset_ns

    def wait(self, stop: threading.Event, timeout_s: float) -> bool:
        return self._base.wait(stop, timeout_s)


class ManualClock:
    """Deterministic clock for tests and simulations.

    wait() advances the clock by the requested timeout instead of blocking,
    unless stop is already set.
    """

    def __init__(self, start_ns: int = 0) -> None:
        self._now_ns = start_ns
        self._lock = threading.Lock()

    def now_ns(self) -> int:
        with self._lock:
            return self._now_ns

    def advance(self, seconds: float) -> int:
        """Move the clock forward. Returns the new reading."""
        with self._lock:
            self._now_ns += seconds_to_ns(seconds)
            return self._now_ns

    def wait(self, stop: threading.Event, timeout_s: float) -> bool:
        if stop.is_set():
            return True
        self.advance(timeout_s)
        return stop.is_set()
