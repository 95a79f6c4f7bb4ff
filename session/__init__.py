"""Measurement session package for timesync-testkit.

This package holds the timestamp-exchange core:
- Round records and the offset/latency estimator
- Mean and sample-variance statistics
- The shared round buffer with request/reply correlation
- Reply handler, round driver and session aggregation
- Client (measuring) and server (responding) exchange loops
"""

from session.buffer import RoundBuffer
from session.driver import FIRST_SEQUENCE_NUMBER, RoundDriver
from session.exchange import client_exchange, listen_for_replies, server_exchange
from session.handler import ReplyHandler
from session.record import Anomaly, RoundRecord, RoundResult, evaluate_round
from session.report import ResponderReport, SessionReport
from session.result import (
    ResponderStats,
    SessionError,
    SessionSummary,
    aggregate_rounds,
)
from session.sink import PrintSink, ResultSink
from session.stats import (
    InsufficientSamplesError,
    MetricStats,
    compute_metric_stats,
    mean,
    sample_variance,
)

__all__ = [
    "Anomaly",
    "FIRST_SEQUENCE_NUMBER",
    "InsufficientSamplesError",
    "MetricStats",
    "PrintSink",
    "ReplyHandler",
    "ResponderReport",
    "ResponderStats",
    "ResultSink",
    "RoundBuffer",
    "RoundDriver",
    "RoundRecord",
    "RoundResult",
    "SessionError",
    "SessionReport",
    "SessionSummary",
    "aggregate_rounds",
    "client_exchange",
    "compute_metric_stats",
    "evaluate_round",
    "listen_for_replies",
    "mean",
    "sample_variance",
    "server_exchange",
]
