"""Day-to-day volatility of a utilization window."""

from typing import Sequence
import math
import statistics


def coefficient_of_variation(daily: Sequence[float]) -> int:
    """
    Coefficient of variation (stdev / mean * 100) as an integer percent.

    Only non-negative entries take part. Zero-filled missing days are
    non-negative and therefore included, so a patchy window reads as volatile.
    """
    values = [v for v in daily if v is not None and not math.isnan(v) and v >= 0]
    if not values:
        return 0

    mean = statistics.mean(values)
    stdev = statistics.stdev(values) if len(values) > 1 else 0.0
    if mean <= 0:
        return 0
    return int(round(stdev / mean * 100))
