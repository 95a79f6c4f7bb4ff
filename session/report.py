"""Session reporting for timesync-testkit.

Contains:
- SessionReport: Report after a measurement session completes
- ResponderReport: Report after the responder loop exits
"""

from dataclasses import dataclass

from common.report import Report
from session.record import Anomaly
from session.result import ResponderStats, SessionSummary
from session.stats import MetricStats


def _metric_lines(label: str, stats: MetricStats, signed: bool = False) -> list[str]:
    fmt = "+.3f" if signed else ".3f"
    return [
        f"{label}: mean={stats.mean_ms:{fmt}}ms var={stats.variance_ms2:.6f}ms^2 "
        f"stddev={stats.stddev_ms:.3f}ms",
        f"{' ' * len(label)}  min={stats.min_ms:{fmt}}ms max={stats.max_ms:{fmt}}ms "
        f"p50={stats.p50_ms:{fmt}}ms p95={stats.p95_ms:{fmt}}ms (n={stats.count})",
    ]


def _anomaly_flags(anomaly: Anomaly) -> str:
    names = []
    if anomaly & Anomaly.CLOCK_ANOMALY:
        names.append("clock anomaly")
    if anomaly & Anomaly.UNMATCHED_REPLY:
        names.append("unmatched")
    return f" ({', '.join(names)})" if names else ""


@dataclass
class SessionReport(Report):
    """Report after a measurement session completes."""

    summary: SessionSummary

    def print(self) -> None:
        """Print per-round results followed by the aggregates."""
        s = self.summary

        if s.success:
            print(
                f"Session: SUCCESS ({s.sent} sent, {s.received} recorded, "
                f"{s.lost} lost, {s.rejected} rejected)"
            )
        else:
            print(f"Session: FAILED ({s.error})")
            print(f"         ({s.sent} sent, {s.received} recorded)")

        if s.rounds:
            print("Rounds [ pingpong, offset ]:")
            for r in s.rounds:
                flags = _anomaly_flags(r.anomaly)
                print(
                    f"  {r.sequence_number} [ {r.ping_pong_ms:.2f}ms, {r.offset_ms:+.2f}ms ]{flags}"
                )

        if s.latency:
            for line in _metric_lines("Ping-pong", s.latency):
                print(line)
        if s.offset:
            for line in _metric_lines("Offset", s.offset, signed=True):
                print(line)
            print("(offset is the peer clock minus the local clock)")

        if s.clock_anomalies:
            print(f"Warning: {s.clock_anomalies} round(s) with clock anomalies excluded from statistics")
        if s.unmatched:
            print(f"Warning: {s.unmatched} round(s) recorded from unmatched replies")

    def success(self) -> bool:
        """Return True if the session completed with data and no anomalies."""
        s = self.summary
        return s.success and s.received > 0 and s.clock_anomalies == 0 and s.rejected == 0


@dataclass
class ResponderReport(Report):
    """Report after the responder loop exits."""

    stats: ResponderStats

    def print(self) -> None:
        st = self.stats
        print(
            f"Responder: answered {st.answered} PINGs in {st.elapsed_s:.1f}s "
            f"({st.ignored} ignored, {st.errors} errors)"
        )

    def success(self) -> bool:
        return self.stats.errors == 0
