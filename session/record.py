"""Round records for timesync-testkit.

Contains:
- Anomaly: Per-round anomaly flags
- RoundRecord: The four timestamps of one ping-pong exchange
- RoundResult: Offset and ping-pong time derived from a record
- evaluate_round: The offset/latency estimator for one record

All stamps are integer nanoseconds. outgoing_stamp and received_stamp are
on the local clock; pong_stamp is on the remote clock.
"""

from dataclasses import dataclass
from enum import Flag, auto

from common.clock import ns_to_ms


class Anomaly(Flag):
    """Conditions affecting a single round."""

    NONE = 0
    CLOCK_ANOMALY = auto()  # received before sent: local clock stepped backwards
    UNMATCHED_REPLY = auto()  # PONG for a PING not pending (stale, duplicate, unknown)


@dataclass(frozen=True)
class RoundRecord:
    """One completed ping-pong exchange."""

    sequence_number: int
    outgoing_stamp: int
    pong_stamp: int
    received_stamp: int
    anomaly: Anomaly = Anomaly.NONE

    @property
    def pong_duration_ns(self) -> int:
        """Local-clock round trip."""
        return self.received_stamp - self.outgoing_stamp


@dataclass(frozen=True)
class RoundResult:
    """Per-round measurement handed to the result sink.

    offset_ms is the remote clock minus the local clock.
    """

    sequence_number: int
    offset_ms: float
    ping_pong_ms: float
    anomaly: Anomaly = Anomaly.NONE
    recorded: bool = True  # False when the PONG was rejected, not buffered

    @property
    def flagged(self) -> bool:
        return self.anomaly != Anomaly.NONE


def evaluate_round(record: RoundRecord) -> RoundResult:
    """Estimate offset and ping-pong time from a record's raw stamps.

    Assumes symmetric legs: the remote peer observed the PING at the
    midpoint of the local round trip.
    """
    pong_duration = record.pong_duration_ns
    # pong_stamp - (received_stamp - pong_duration / 2), grouped so that
    # epoch-sized stamps cancel as ints before any float division
    offset = (record.pong_stamp - record.received_stamp) + pong_duration / 2

    anomaly = record.anomaly
    if pong_duration < 0:
        anomaly |= Anomaly.CLOCK_ANOMALY

    return RoundResult(
        sequence_number=record.sequence_number,
        offset_ms=ns_to_ms(offset),
        ping_pong_ms=ns_to_ms(pong_duration),
        anomaly=anomaly,
    )
