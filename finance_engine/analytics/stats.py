from __future__ import annotations

import math
import statistics
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Sequence

INSUFFICIENT_DATA = "insufficient-data"


@dataclass(frozen=True)
class TrendResult:
    trend: str
    slope: float
    n: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return statistics.fmean(values)


def population_stddev(values: Sequence[float]) -> float:
    """Population standard deviation; 0.0 for fewer than two values."""
    if len(values) < 2:
        return 0.0
    return statistics.pstdev(values)


def linear_slope(values: Sequence[float]) -> float:
    """Ordinary least-squares slope of ``values`` against their index 0..n-1."""
    n = len(values)
    if n < 2:
        return 0.0
    sum_x = n * (n - 1) / 2
    sum_xx = (n - 1) * n * (2 * n - 1) / 6
    sum_y = math.fsum(values)
    sum_xy = math.fsum(i * v for i, v in enumerate(values))
    return (n * sum_xy - sum_x * sum_y) / (n * sum_xx - sum_x * sum_x)


def classify_slope(slope: float, threshold: float) -> str:
    if slope > threshold:
        return "increasing"
    if slope < -threshold:
        return "decreasing"
    return "stable"


def estimate_trend(values: Sequence[float], threshold: float = 5.0) -> TrendResult:
    """
    Classify the direction of a series from its regression slope.

    ``threshold`` is in the series' own units (currency per period), so the
    same slope means "stable" for a large budget and "increasing" for a small one.
    """
    if len(values) < 2:
        return TrendResult(trend=INSUFFICIENT_DATA, slope=0.0, n=len(values))
    slope = linear_slope(values)
    return TrendResult(trend=classify_slope(slope, threshold), slope=slope, n=len(values))


def pearson(xs: Sequence[float], ys: Sequence[float]) -> Optional[float]:
    """Pearson correlation, or None when either series is constant or too short."""
    if len(xs) != len(ys) or len(xs) < 2:
        return None
    mean_x = statistics.fmean(xs)
    mean_y = statistics.fmean(ys)
    cov = math.fsum((x - mean_x) * (y - mean_y) for x, y in zip(xs, ys))
    var_x = math.fsum((x - mean_x) ** 2 for x in xs)
    var_y = math.fsum((y - mean_y) ** 2 for y in ys)
    denominator = math.sqrt(var_x * var_y)
    if denominator == 0:
        return None
    return max(-1.0, min(1.0, cov / denominator))


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))
