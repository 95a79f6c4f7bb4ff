"""Protocol definitions for timesync-testkit.

Contains:
- MsgType enum for the ping/pong exchange
- SerialPort Protocol for type checking
- Timing defaults for the round driver and responder
- Logging configuration
"""

import logging
import os
from enum import IntEnum
from typing import Protocol

# TRACE logging level (below DEBUG)
TRACE = 5
logging.addLevelName(TRACE, "TRACE")

# Progress logging interval in rounds (configurable via envvar)
LOG_PROGRESS_INTERVAL = int(os.environ.get("TIMESYNC_LOG_INTERVAL", "10"))


class MsgType(IntEnum):
    """Message types for the timestamp exchange."""

    PING = 0x01
    PONG = 0x02


class SerialPort(Protocol):
    """Protocol for serial port operations needed by the exchange."""

    def write(self, data: bytes, /) -> int | None: ...
    def read(self, size: int = ..., /) -> bytes: ...
    @property
    def in_waiting(self) -> int: ...


# Default timing constants
DEFAULT_INTERVAL_S = 1.0  # Driver emits one PING per interval
DEFAULT_MAX_ROUNDS = 0  # 0 = run until stopped
DEFAULT_REPLY_TIMEOUT_S = 5.0  # Pending PINGs older than this are lost
DEFAULT_SETTLE_S = 2.0  # Wait for in-flight PONGs after the driver stops
