"""Unit tests for the round driver."""

import io
import threading

import pytest
import serial

from common.clock import ManualClock, seconds_to_ns
from common.config import SessionConfig
from common.encoding import Ping, decode_message
from session.buffer import RoundBuffer
from session.driver import FIRST_SEQUENCE_NUMBER, SEQUENCE_MODULUS, RoundDriver


class _StampingPort:
    """Port recording each PING with the clock reading at write time."""

    def __init__(self, clock: ManualClock, stop_after: int | None = None, stop: threading.Event | None = None) -> None:
        self._clock = clock
        self._stop_after = stop_after
        self._stop = stop
        self.pings: list[Ping] = []
        self.write_times: list[int] = []

    def write(self, data: bytes) -> int:
        ping = decode_message(io.BytesIO(data))
        assert isinstance(ping, Ping)
        self.pings.append(ping)
        self.write_times.append(self._clock.now_ns())
        if self._stop is not None and self._stop_after is not None and len(self.pings) >= self._stop_after:
            self._stop.set()
        return len(data)

    def read(self, size: int = 1, /) -> bytes:
        return b""

    @property
    def in_waiting(self) -> int:
        return 0


def _driver(port, clock: ManualClock, **config) -> tuple[RoundDriver, RoundBuffer]:
    buffer = RoundBuffer()
    return RoundDriver(port, buffer, clock, SessionConfig(**config)), buffer


@pytest.mark.unit
class TestRoundDriver:
    def test_bounded_run(self, manual_clock) -> None:
        port = _StampingPort(manual_clock)
        driver, _ = _driver(port, manual_clock, interval_s=1.0, max_rounds=3)

        assert driver.run(threading.Event()) == 3
        assert len(port.pings) == 3

    def test_sequence_numbers_start_at_zero_and_increase(self, manual_clock) -> None:
        port = _StampingPort(manual_clock)
        driver, _ = _driver(port, manual_clock, interval_s=0.5, max_rounds=50)
        driver.run(threading.Event())

        seqs = [p.sequence_number for p in port.pings]
        assert FIRST_SEQUENCE_NUMBER == 0
        assert seqs == list(range(50))
        assert len(set(seqs)) == len(seqs)

    def test_first_ping_after_one_interval(self, manual_clock) -> None:
        start = manual_clock.now_ns()
        port = _StampingPort(manual_clock)
        driver, _ = _driver(port, manual_clock, interval_s=1.0, max_rounds=3)
        driver.run(threading.Event())

        offsets = [t - start for t in port.write_times]
        assert offsets == [seconds_to_ns(1.0), seconds_to_ns(2.0), seconds_to_ns(3.0)]

    def test_outgoing_stamp_taken_at_send(self, manual_clock) -> None:
        port = _StampingPort(manual_clock)
        driver, _ = _driver(port, manual_clock, interval_s=1.0, max_rounds=4)
        driver.run(threading.Event())

        assert [p.outgoing_stamp for p in port.pings] == port.write_times
        assert port.write_times == sorted(port.write_times)

    def test_pings_are_tracked(self, manual_clock) -> None:
        port = _StampingPort(manual_clock)
        driver, buffer = _driver(port, manual_clock, interval_s=1.0, max_rounds=2)
        driver.run(threading.Event())

        for ping in port.pings:
            assert buffer.match(ping.sequence_number, ping.outgoing_stamp)

    def test_unbounded_runs_until_stopped(self, manual_clock) -> None:
        stop = threading.Event()
        port = _StampingPort(manual_clock, stop_after=7, stop=stop)
        driver, _ = _driver(port, manual_clock, interval_s=1.0, max_rounds=0)

        assert driver.run(stop) == 7

    def test_stopped_before_first_round(self, manual_clock) -> None:
        stop = threading.Event()
        stop.set()
        port = _StampingPort(manual_clock)
        driver, _ = _driver(port, manual_clock, interval_s=1.0, max_rounds=5)

        assert driver.run(stop) == 0
        assert port.pings == []

    def test_unanswered_pings_expire(self, manual_clock) -> None:
        port = _StampingPort(manual_clock)
        driver, buffer = _driver(port, manual_clock, interval_s=1.0, max_rounds=5, reply_timeout_s=2.5)
        driver.run(threading.Event())

        # Expiry runs before each send: rounds 0 and 1 are older than 2.5s by the last send
        assert buffer.lost == 2
        assert buffer.pending_count == 3

    def test_write_timeout_does_not_stop_driver(self, manual_clock) -> None:
        class TimeoutPort(_StampingPort):
            def write(self, data: bytes) -> int:
                super().write(data)
                raise serial.SerialTimeoutException("Write timeout")

        port = TimeoutPort(manual_clock)
        driver, buffer = _driver(port, manual_clock, interval_s=1.0, max_rounds=3)

        assert driver.run(threading.Event()) == 3
        assert driver.next_sequence == 3
        assert driver.sent == 3

    def test_serial_failure_propagates(self, manual_clock) -> None:
        class DeadPort(_StampingPort):
            def write(self, data: bytes) -> int:
                raise serial.SerialException("device disconnected")

        driver, _ = _driver(DeadPort(manual_clock), manual_clock, interval_s=1.0, max_rounds=3)
        with pytest.raises(serial.SerialException):
            driver.run(threading.Event())

    def test_failed_write_is_not_counted(self, manual_clock) -> None:
        """The PING whose write raised is neither sent nor pending."""

        class DyingPort(_StampingPort):
            def write(self, data: bytes) -> int:
                if len(self.pings) == 2:
                    raise serial.SerialException("device disconnected")
                return super().write(data)

        port = DyingPort(manual_clock)
        driver, buffer = _driver(port, manual_clock, interval_s=1.0, max_rounds=5)
        with pytest.raises(serial.SerialException):
            driver.run(threading.Event())

        assert driver.sent == 2
        assert driver.next_sequence == 3
        assert buffer.pending_count == 2
        assert buffer.expire_all() == [0, 1]

    def test_sequence_number_wraps_at_u32(self, manual_clock) -> None:
        port = _StampingPort(manual_clock)
        buffer = RoundBuffer()
        config = SessionConfig(interval_s=1.0, max_rounds=3)
        driver = RoundDriver(port, buffer, manual_clock, config, first_sequence=SEQUENCE_MODULUS - 2)

        assert driver.run(threading.Event()) == 3
        assert [p.sequence_number for p in port.pings] == [SEQUENCE_MODULUS - 2, SEQUENCE_MODULUS - 1, 0]
