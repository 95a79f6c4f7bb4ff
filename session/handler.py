"""Reply handling for timesync-testkit.

ReplyHandler turns each inbound PONG into a RoundRecord: it stamps the
arrival time first, correlates the PONG with its pending PING, derives the
round's offset and ping-pong time, buffers the record and publishes the
result. It is called from the listener thread, one PONG at a time.

The arrival stamp is taken when the listener hands over a fully read and
decoded frame, so the serial transfer time of the frame and its decoding
are part of the measured ping-pong time.
"""

import dataclasses
import logging

from common.clock import Clock
from common.encoding import Pong
from common.protocol import LOG_PROGRESS_INTERVAL, TRACE
from session.buffer import RoundBuffer
from session.record import Anomaly, RoundRecord, RoundResult, evaluate_round
from session.sink import ResultSink

logger = logging.getLogger(__name__)


class ReplyHandler:
    """Complete rounds from inbound PONGs."""

    def __init__(
        self,
        buffer: RoundBuffer,
        clock: Clock,
        sink: ResultSink,
        accept_unmatched: bool = False,
    ) -> None:
        self._buffer = buffer
        self._clock = clock
        self._sink = sink
        self._accept_unmatched = accept_unmatched
        self._handled = 0

    def handle(self, pong: Pong) -> RoundResult:
        """Process one PONG. Never raises for per-round anomalies."""
        received_stamp = self._clock.now_ns()

        matched = self._buffer.match(pong.sequence_number, pong.outgoing_stamp)
        record = RoundRecord(
            sequence_number=pong.sequence_number,
            outgoing_stamp=pong.outgoing_stamp,
            pong_stamp=pong.pong_stamp,
            received_stamp=received_stamp,
            anomaly=Anomaly.NONE if matched else Anomaly.UNMATCHED_REPLY,
        )
        result = evaluate_round(record)

        if matched or self._accept_unmatched:
            self._buffer.append(record)
        else:
            self._buffer.reject()
            result = dataclasses.replace(result, recorded=False)

        self._log_result(result)
        self._handled += 1

        try:
            self._sink.publish_round(result)
        except Exception:
            logger.exception(f"Result sink failed for round {result.sequence_number}")

        return result

    def _log_result(self, result: RoundResult) -> None:
        seq = result.sequence_number
        if result.anomaly & Anomaly.CLOCK_ANOMALY:
            logger.warning(
                f"Round {seq}: negative round trip ({result.ping_pong_ms:.3f}ms), "
                "local clock stepped backwards or reply is malformed"
            )
        if result.anomaly & Anomaly.UNMATCHED_REPLY:
            action = "recording anyway" if result.recorded else "rejected"
            logger.warning(f"Round {seq}: reply matches no pending request ({action})")

        logger.log(
            TRACE,
            f"Round {seq}: pingpong={result.ping_pong_ms:.5f}ms offset={result.offset_ms:.5f}ms",
        )
        if (self._handled + 1) % LOG_PROGRESS_INTERVAL == 0:
            logger.debug(f"Handled {self._handled + 1} replies ({len(self._buffer)} recorded)")
