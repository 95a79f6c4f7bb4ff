"""Common modules for timesync-testkit.

This package contains shared code used by both client and server:
- protocol: MsgType enum, timing defaults, SerialPort Protocol
- config: Role, SessionConfig and environment overrides
- clock: Injectable nanosecond clocks
- message: Frame encoding/decoding
- encoding: PING/PONG message encoding/decoding
- io: Serial I/O helpers (drain_input, send_ping, send_pong, recv_message)
- device: Serial device setup and FTDI configuration
- report: Reporting abstraction
"""

from common.clock import Clock, ManualClock, OffsetClock, SystemClock
from common.config import ConfigError, Role, SessionConfig
from common.encoding import CrcError, EncodingError, Ping, Pong, TransportError
from common.protocol import (
    DEFAULT_INTERVAL_S,
    DEFAULT_MAX_ROUNDS,
    DEFAULT_REPLY_TIMEOUT_S,
    DEFAULT_SETTLE_S,
    MsgType,
    SerialPort,
)

__all__ = [
    # Protocol
    "MsgType",
    "SerialPort",
    "DEFAULT_INTERVAL_S",
    "DEFAULT_MAX_ROUNDS",
    "DEFAULT_REPLY_TIMEOUT_S",
    "DEFAULT_SETTLE_S",
    # Messages
    "Ping",
    "Pong",
    # Configuration
    "Role",
    "SessionConfig",
    # Clocks
    "Clock",
    "ManualClock",
    "OffsetClock",
    "SystemClock",
    # Exceptions
    "ConfigError",
    "CrcError",
    "EncodingError",
    "TransportError",
]
