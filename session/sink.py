"""Result sinks for timesync-testkit.

A sink receives each round's result as soon as it is measured, and the
session summary once aggregation is done.
"""

from typing import Protocol

from session.record import Anomaly, RoundResult
from session.report import SessionReport
from session.result import SessionSummary


class ResultSink(Protocol):
    """Receiver of per-round and session results."""

    def publish_round(self, result: RoundResult) -> None: ...
    def publish_summary(self, summary: SessionSummary) -> None: ...


def format_round(result: RoundResult) -> str:
    """One-line rendering of a round, anomalies inline."""
    line = (
        f"#{result.sequence_number}: pingpong={result.ping_pong_ms:.3f}ms "
        f"offset={result.offset_ms:+.3f}ms"
    )
    if result.anomaly & Anomaly.CLOCK_ANOMALY:
        line += " [clock anomaly: negative round trip]"
    if result.anomaly & Anomaly.UNMATCHED_REPLY:
        line += " [unmatched reply]"
    if not result.recorded:
        line += " (rejected)"
    return line


class PrintSink:
    """Print rounds as they complete and the summary report at the end."""

    def publish_round(self, result: RoundResult) -> None:
        print(format_round(result), flush=True)

    def publish_summary(self, summary: SessionSummary) -> None:
        SessionReport(summary=summary).print()
