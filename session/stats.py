"""Statistics for timesync-testkit measurements.

Contains:
- InsufficientSamplesError: Raised by strict sample_variance for n < 2
- mean / sample_variance: Estimators over a sequence of measurements
- MetricStats / compute_metric_stats: Summary of one metric in milliseconds
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass


class InsufficientSamplesError(ValueError):
    """Raised when fewer than 2 samples are given to a strict variance."""

    pass


def mean(samples: Sequence[float]) -> float:
    """Arithmetic mean. Returns 0.0 for an empty sequence."""
    if not samples:
        return 0.0
    return sum(samples) / len(samples)


def sample_variance(samples: Sequence[float], strict: bool = False) -> float:
    """Unbiased sample variance (Bessel's correction).

    With fewer than 2 samples the variance is undefined: returns 0.0, or
    raises InsufficientSamplesError when strict is True.
    """
    n = len(samples)
    if n < 2:
        if strict:
            raise InsufficientSamplesError(f"sample variance needs at least 2 samples, got {n}")
        return 0.0

    m = mean(samples)
    return sum((x - m) * (x - m) for x in samples) / (n - 1)


@dataclass
class MetricStats:
    """Summary statistics for one metric (ms, variance in ms^2)."""

    count: int
    mean_ms: float
    variance_ms2: float
    min_ms: float
    max_ms: float
    p50_ms: float
    p95_ms: float

    @property
    def stddev_ms(self) -> float:
        return math.sqrt(self.variance_ms2)


def compute_metric_stats(samples_ms: Sequence[float]) -> MetricStats | None:
    """Summarise samples in milliseconds, in the order given.

    Returns None if there are no samples.
    """
    if not samples_ms:
        return None

    ordered = sorted(samples_ms)

    def percentile(sorted_data: list[float], p: float) -> float:
        idx = int(p / 100 * (len(sorted_data) - 1))
        return sorted_data[idx]

    return MetricStats(
        count=len(samples_ms),
        mean_ms=mean(samples_ms),
        variance_ms2=sample_variance(samples_ms),
        min_ms=ordered[0],
        max_ms=ordered[-1],
        p50_ms=percentile(ordered, 50),
        p95_ms=percentile(ordered, 95),
    )
