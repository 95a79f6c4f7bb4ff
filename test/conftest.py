"""pytest configuration and fixtures for timesync-testkit tests.

Provides:
- MockSerialPort: Single-buffer mock for simple unit tests
- ConnectedMockPorts: Bidirectional mock pair with blocking reads for
  threaded exchange tests
- ScriptedPeerPort: Port that answers each PING synchronously on a
  ManualClock, for deterministic end-to-end rounds
- RecordingSink: Result sink that keeps everything it is given
- socat PTY pair fixture for integration tests
- Markers for unit vs integration tests
"""

import io
import re
import subprocess
import sys
import threading
import time
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from common.clock import ManualClock, seconds_to_ns
from common.encoding import Ping, Pong, decode_message, pong_for
from session.record import RoundResult
from session.result import SessionSummary


class MockSerialPort:
    """Mock serial port for unit testing.

    Uses a single buffer shared between read and write operations.
    Data written to the port can be read back immediately, and reads never
    block.
    """

    def __init__(self) -> None:
        self._buffer = io.BytesIO()
        self._read_pos = 0
        self._lock = threading.Lock()

    def write(self, data: bytes) -> int:
        with self._lock:
            pos = self._buffer.tell()
            self._buffer.seek(0, 2)
            written = self._buffer.write(data)
            self._buffer.seek(pos)
            return written

    def read(self, size: int = 1, /) -> bytes:
        with self._lock:
            self._buffer.seek(self._read_pos)
            data = self._buffer.read(size)
            self._read_pos = self._buffer.tell()
            return data

    @property
    def in_waiting(self) -> int:
        with self._lock:
            end_pos = self._buffer.seek(0, 2)
            return max(0, end_pos - self._read_pos)

    def written(self) -> bytes:
        """Everything written so far."""
        with self._lock:
            return self._buffer.getvalue()

    def inject(self, data: bytes) -> None:
        """Inject data into the buffer as if received from peer."""
        self.write(data)


class ConnectedMockPorts:
    """Bidirectional mock port pair for client/server tests.

    Data written to port_a appears in port_b's read buffer and vice versa.
    Reads wait up to read_timeout_s for enough data, like a serial port
    opened with a read timeout.
    """

    def __init__(self, read_timeout_s: float = 0.2) -> None:
        self.read_timeout_s = read_timeout_s
        self._a_to_b = bytearray()
        self._b_to_a = bytearray()
        self._cond = threading.Condition()

    @property
    def port_a(self) -> "_ConnectedPort":
        """Port A: writes go to B's read buffer, reads come from B's writes."""
        return _ConnectedPort(self, is_port_a=True)

    @property
    def port_b(self) -> "_ConnectedPort":
        """Port B: writes go to A's read buffer, reads come from A's writes."""
        return _ConnectedPort(self, is_port_a=False)


class _ConnectedPort:
    """One end of a ConnectedMockPorts pair."""

    def __init__(self, parent: ConnectedMockPorts, is_port_a: bool) -> None:
        self._parent = parent
        self._outbox = parent._a_to_b if is_port_a else parent._b_to_a
        self._inbox = parent._b_to_a if is_port_a else parent._a_to_b

    def write(self, data: bytes) -> int:
        with self._parent._cond:
            self._outbox.extend(data)
            self._parent._cond.notify_all()
            return len(data)

    def read(self, size: int = 1, /) -> bytes:
        with self._parent._cond:
            self._parent._cond.wait_for(
                lambda: len(self._inbox) >= size, timeout=self._parent.read_timeout_s
            )
            data = bytes(self._inbox[:size])
            del self._inbox[:size]
            return data

    @property
    def in_waiting(self) -> int:
        with self._parent._cond:
            return len(self._inbox)

    def inject(self, data: bytes) -> None:
        """Inject data as if it came from the peer."""
        with self._parent._cond:
            self._inbox.extend(data)
            self._parent._cond.notify_all()


class ScriptedPeerPort:
    """Port whose peer answers every PING before write() returns.

    The peer's clock is the local ManualClock plus offset_s. Each leg of the
    round trip advances the clock by one_way_s, and the PONG is handed to
    on_pong, standing in for the listener thread.
    """

    def __init__(
        self,
        clock: ManualClock,
        on_pong: Callable[[Pong], object],
        offset_s: float = 0.0,
        one_way_s: float = 0.0,
    ) -> None:
        self._clock = clock
        self._on_pong = on_pong
        self._offset_ns = seconds_to_ns(offset_s)
        self._one_way_s = one_way_s
        self.pings: list[Ping] = []

    def write(self, data: bytes) -> int:
        ping = decode_message(io.BytesIO(data))
        assert isinstance(ping, Ping)
        self.pings.append(ping)
        self._clock.advance(self._one_way_s)
        pong = pong_for(ping, self._clock.now_ns() + self._offset_ns)
        self._clock.advance(self._one_way_s)
        self._on_pong(pong)
        return len(data)

    def read(self, size: int = 1, /) -> bytes:
        return b""

    @property
    def in_waiting(self) -> int:
        return 0


class RecordingSink:
    """Result sink that records everything published."""

    def __init__(self) -> None:
        self.rounds: list[RoundResult] = []
        self.summaries: list[SessionSummary] = []

    def publish_round(self, result: RoundResult) -> None:
        self.rounds.append(result)

    def publish_summary(self, summary: SessionSummary) -> None:
        self.summaries.append(summary)


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as integration test (requires socat)")


@pytest.fixture
def mock_port() -> MockSerialPort:
    return MockSerialPort()


@pytest.fixture
def connected_ports() -> ConnectedMockPorts:
    return ConnectedMockPorts()


@pytest.fixture
def manual_clock() -> ManualClock:
    """ManualClock starting at an arbitrary non-zero wall time."""
    return ManualClock(start_ns=1_700_000_000 * 1_000_000_000)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def scripted_peer(manual_clock: ManualClock) -> Callable[..., ScriptedPeerPort]:
    """Factory for ScriptedPeerPort bound to the manual_clock fixture."""

    def make(on_pong: Callable[[Pong], object], offset_s: float = 0.0, one_way_s: float = 0.0) -> ScriptedPeerPort:
        return ScriptedPeerPort(manual_clock, on_pong, offset_s=offset_s, one_way_s=one_way_s)

    return make


@pytest.fixture
def pty_pair() -> Generator[tuple[str, str, subprocess.Popen[str]], None, None]:
    """Create a connected PTY pair using socat.

    Yields (pty1, pty2, socat_process).

    The PTYs are connected: data written to pty1 appears on pty2 and vice versa.
    This enables testing serial communication without real hardware.

    Requires: socat installed and Linux platform.
    """
    if sys.platform != "linux":
        pytest.skip("socat PTY fixture requires Linux")

    try:
        subprocess.run(["which", "socat"], check=True, capture_output=True)
    except subprocess.CalledProcessError:
        pytest.skip("socat not installed")

    socat = subprocess.Popen(
        ["socat", "-d", "-d", "pty,raw,echo=0", "pty,raw,echo=0"],
        stderr=subprocess.PIPE,
        text=True,
    )

    ptys: list[str] = []
    try:
        for _ in range(20):
            if socat.poll() is not None:
                raise RuntimeError(f"socat exited early with code {socat.returncode}")

            assert socat.stderr is not None
            line = socat.stderr.readline()
            if "PTY is" in line:
                match = re.search(r"/dev/pts/\d+", line)
                if match:
                    ptys.append(match.group())
            if len(ptys) == 2:
                break
            time.sleep(0.05)
        else:
            raise RuntimeError(f"Failed to get PTY pair from socat, got: {ptys}")

        yield ptys[0], ptys[1], socat

    finally:
        if socat.poll() is None:
            socat.terminate()
            socat.wait(timeout=5)
        if socat.stderr:
            socat.stderr.close()


@pytest.fixture
def script_dir() -> Path:
    """Return path to the repository root."""
    return Path(__file__).parent.parent


@pytest.fixture
def timesynctest_path(script_dir: Path) -> Path:
    """Return path to timesynctest.py."""
    return script_dir / "timesynctest.py"
