"""In-process simulated peer for timesync-testkit.

LoopbackPeer opens a pty pair. The client side is a regular pyserial port
on the pty slave; the master side is answered by server_exchange on a
background thread using a clock shifted by a simulated offset, so a full
session can run without a second machine.
"""

import fcntl
import logging
import os
import pty
import select
import struct
import sys
import termios
import threading

import serial

from common.clock import NS_PER_MS, OffsetClock, SystemClock
from common.device import SERIAL_READ_TIMEOUT_S, SERIAL_WRITE_TIMEOUT_S
from session.exchange import server_exchange
from session.result import ResponderStats

logger = logging.getLogger(__name__)

PEER_JOIN_TIMEOUT_S = 5.0


class PtyMasterPort:
    """SerialPort over a pty master file descriptor."""

    def __init__(self, fd: int, timeout_s: float = SERIAL_READ_TIMEOUT_S) -> None:
        self._fd = fd
        self._timeout_s = timeout_s

    def write(self, data: bytes, /) -> int:
        return os.write(self._fd, data)

    def read(self, size: int = 1, /) -> bytes:
        """Read up to size bytes, returning short on timeout like pyserial."""
        chunks: list[bytes] = []
        remaining = size
        while remaining > 0:
            ready, _, _ = select.select([self._fd], [], [], self._timeout_s)
            if not ready:
                break
            try:
                chunk = os.read(self._fd, remaining)
            except OSError:
                break  # slave closed
            if not chunk:
                break
            chunks.append(chunk)
            remaining -= len(chunk)
        return b"".join(chunks)

    @property
    def in_waiting(self) -> int:
        buf = fcntl.ioctl(self._fd, termios.FIONREAD, struct.pack("I", 0))
        return struct.unpack("I", buf)[0]


class LoopbackPeer:
    """Simulated remote peer on a pty pair."""

    def __init__(self, baudrate: int, offset_ms: float = 0.0, delay_ms: float = 0.0) -> None:
        if sys.platform not in ("linux", "darwin"):
            raise RuntimeError(f"Loopback mode only supported on Linux/macOS, not {sys.platform}")

        self._master_fd, slave_fd = pty.openpty()
        slave_name = os.ttyname(slave_fd)
        os.close(slave_fd)
        self.port = serial.Serial(
            slave_name,
            baudrate=baudrate,
            timeout=SERIAL_READ_TIMEOUT_S,
            write_timeout=SERIAL_WRITE_TIMEOUT_S,
            xonxoff=False,
            rtscts=False,
        )

        self.stats = ResponderStats()
        self._clock = OffsetClock(SystemClock(), offset_ns=int(round(offset_ms * NS_PER_MS)))
        self._delay_s = delay_ms / 1000.0
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._serve, name="loopback-peer", daemon=True)
        self._thread.start()
        logger.info(
            f"Loopback pty: {slave_name} (simulated offset={offset_ms:+.3f}ms, "
            f"one-way delay={delay_ms:.3f}ms)"
        )

    def _serve(self) -> None:
        self.stats = server_exchange(
            PtyMasterPort(self._master_fd), self._clock, self._stop, simulated_delay_s=self._delay_s
        )

    def close(self) -> None:
        self._stop.set()
        self._thread.join(timeout=PEER_JOIN_TIMEOUT_S)
        if self.port.is_open:
            self.port.close()
        os.close(self._master_fd)
        logger.info("Closed loopback peer")
