"""Round driver for timesync-testkit.

RoundDriver emits one PING per interval until max_rounds have been sent or
the stop event is set. The first PING goes out one interval after start so
the peer's listener has time to come up.
"""

import logging
import threading

import serial

from common.clock import Clock, seconds_to_ns
from common.config import SessionConfig
from common.encoding import Ping
from common.io import send_ping
from common.protocol import LOG_PROGRESS_INTERVAL, TRACE, SerialPort
from session.buffer import RoundBuffer

logger = logging.getLogger(__name__)

FIRST_SEQUENCE_NUMBER = 0

# Sequence numbers travel as u32 and wrap after 2**32 rounds
SEQUENCE_MODULUS = 1 << 32


class RoundDriver:
    """Periodically start new rounds."""

    def __init__(
        self,
        port: SerialPort,
        buffer: RoundBuffer,
        clock: Clock,
        config: SessionConfig,
        first_sequence: int = FIRST_SEQUENCE_NUMBER,
    ) -> None:
        self._port = port
        self._buffer = buffer
        self._clock = clock
        self._config = config
        self._next_sequence = first_sequence % SEQUENCE_MODULUS
        self._sent = 0

    @property
    def next_sequence(self) -> int:
        return self._next_sequence

    @property
    def sent(self) -> int:
        """PINGs handed to the port, including ones whose write timed out."""
        return self._sent

    def run(self, stop: threading.Event) -> int:
        """Emit PINGs until done or stopped. Returns the number sent.

        Raises serial.SerialException (other than write timeouts) from the
        port. The PING whose write failed is not counted or left pending.
        """
        interval_s = self._config.interval_s
        limit = "until stopped" if self._config.unbounded else f"{self._config.max_rounds} rounds"
        logger.info(f"Driver: starting ({limit}, interval={interval_s}s)")

        if self._clock.wait(stop, interval_s):
            logger.info("Driver: stopped before first round")
            return self._sent

        while not stop.is_set():
            if not self._config.unbounded and self._sent >= self._config.max_rounds:
                break

            self._buffer.expire(self._clock.now_ns(), seconds_to_ns(self._config.reply_timeout_s))
            self._emit()
            self._sent += 1

            if self._sent % LOG_PROGRESS_INTERVAL == 0:
                logger.debug(f"Driver: progress {self._sent} rounds, {self._buffer.pending_count} pending")

            if self._clock.wait(stop, interval_s):
                break

        logger.info(f"Driver: stopped after {self._sent} rounds")
        return self._sent

    def _emit(self) -> None:
        sequence_number = self._next_sequence
        self._next_sequence = (self._next_sequence + 1) % SEQUENCE_MODULUS

        outgoing_stamp = self._clock.now_ns()
        # Track before writing so a fast PONG cannot beat its table entry
        self._buffer.track(sequence_number, outgoing_stamp)
        try:
            send_ping(self._port, Ping(sequence_number, outgoing_stamp))
        except serial.SerialTimeoutException:
            logger.warning(f"Driver: write timeout on round {sequence_number}")
            return
        except OSError:
            self._buffer.untrack(sequence_number)
            raise
        logger.log(TRACE, f"Driver: sent PING {sequence_number}")
