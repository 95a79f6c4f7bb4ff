"""Serial I/O helpers for timesync-testkit.

Contains:
- drain_input: Clear stale data from input buffer
- send_ping / send_pong: Write one encoded message
- recv_message: Read the next PING or PONG
"""

import logging

from common.encoding import Ping, Pong, decode_message, encode_ping, encode_pong
from common.protocol import SerialPort

logger = logging.getLogger(__name__)


def drain_input(port: SerialPort) -> int:
    """Drain stale data from input buffer. Returns bytes drained."""
    count = port.in_waiting
    if count > 0:
        port.read(count)
        logger.debug(f"Drained {count} stale bytes from input buffer")
    return count


def send_ping(port: SerialPort, ping: Ping) -> int | None:
    """Send a PING message. Returns bytes written."""
    return port.write(encode_ping(ping))


def send_pong(port: SerialPort, pong: Pong) -> int | None:
    """Send a PONG message. Returns bytes written."""
    return port.write(encode_pong(pong))


def recv_message(port: SerialPort) -> Ping | Pong:
    """Receive the next message.

    Raises:
        TransportError: On timeout, truncated frame or CRC mismatch.
        EncodingError: On invalid message format.
    """
    return decode_message(port)
