"""Session result types for timesync-testkit.

Contains:
- SessionError: Raised/recorded when a session cannot complete
- SessionSummary: Per-round and aggregate results of a measurement session
- aggregate_rounds: Recompute every round from raw stamps and summarise
- ResponderStats: Counters from the server-side responder loop
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from session.record import Anomaly, RoundRecord, RoundResult, evaluate_round
from session.stats import MetricStats, compute_metric_stats

logger = logging.getLogger(__name__)


class SessionError(Exception):
    """Raised when a measurement session fails."""

    pass


@dataclass
class SessionSummary:
    """Result of a measurement session.

    Attributes:
        success: True if the session ran to completion without a transport failure.
        sent: Number of PINGs emitted.
        rounds: Per-round results in arrival order, recomputed from raw stamps.
        latency: Aggregate ping-pong time statistics (None without usable rounds).
        offset: Aggregate offset statistics, remote minus local (None without usable rounds).
        lost: PINGs that never got a reply (timed out or still pending at the end).
        rejected: PONGs that matched no pending PING and were not recorded.
        elapsed_s: Session duration in seconds.
        error: Error if the session failed.
    """

    success: bool
    sent: int = 0
    rounds: list[RoundResult] = field(default_factory=list)
    latency: MetricStats | None = None
    offset: MetricStats | None = None
    lost: int = 0
    rejected: int = 0
    elapsed_s: float = 0.0
    error: Exception | None = None

    @property
    def received(self) -> int:
        """Number of recorded rounds."""
        return len(self.rounds)

    @property
    def clock_anomalies(self) -> int:
        return sum(1 for r in self.rounds if r.anomaly & Anomaly.CLOCK_ANOMALY)

    @property
    def unmatched(self) -> int:
        """Recorded rounds whose PONG matched no pending PING."""
        return sum(1 for r in self.rounds if r.anomaly & Anomaly.UNMATCHED_REPLY)


def aggregate_rounds(
    records: Sequence[RoundRecord],
    sent: int = 0,
    lost: int = 0,
    rejected: int = 0,
    elapsed_s: float = 0.0,
    error: Exception | None = None,
) -> SessionSummary:
    """Summarise a session's records.

    Offset and ping-pong time are recomputed from each record's four stamps
    rather than taken from what the reply handler published. Rounds with a
    clock anomaly are listed but left out of the aggregate statistics.
    """
    rounds = [evaluate_round(record) for record in records]
    usable = [r for r in rounds if not r.anomaly & Anomaly.CLOCK_ANOMALY]
    if len(usable) < len(rounds):
        logger.warning(
            f"Excluding {len(rounds) - len(usable)} round(s) with clock anomalies from statistics"
        )

    return SessionSummary(
        success=error is None,
        sent=sent,
        rounds=rounds,
        latency=compute_metric_stats([r.ping_pong_ms for r in usable]),
        offset=compute_metric_stats([r.offset_ms for r in usable]),
        lost=lost,
        rejected=rejected,
        elapsed_s=elapsed_s,
        error=error,
    )


@dataclass
class ResponderStats:
    """Counters from the responder (server) loop."""

    answered: int = 0
    ignored: int = 0
    errors: int = 0
    elapsed_s: float = 0.0
