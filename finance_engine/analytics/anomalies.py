from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Sequence, Tuple

from finance_engine.analytics.stats import INSUFFICIENT_DATA, mean, population_stddev

MIN_PERIODS = 3


@dataclass
class Anomaly:
    period: str
    type: str
    amount: float
    deviation: float
    z_score: float
    severity: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def detect_anomalies(
    series: Sequence[Tuple[str, float]],
    z_threshold: float = 2.0,
    extreme_threshold: float = 3.0,
) -> Dict[str, Any]:
    """
    Flag periods whose total sits more than ``z_threshold`` population standard
    deviations away from the mean of the series.
    """
    if len(series) < MIN_PERIODS:
        return {"status": INSUFFICIENT_DATA, "anomalies": [], "count": 0, "pattern": _pattern([], series)}

    values = [value for _, value in series]
    average = mean(values)
    stdev = population_stddev(values)
    anomalies: List[Anomaly] = []
    if stdev > 0:
        for period, value in series:
            z_score = abs(value - average) / stdev
            if z_score <= z_threshold:
                continue
            anomalies.append(
                Anomaly(
                    period=period,
                    type="high-spending" if value > average else "low-spending",
                    amount=value,
                    deviation=value - average,
                    z_score=z_score,
                    severity="extreme" if z_score > extreme_threshold else "moderate",
                )
            )

    return {
        "status": "ok",
        "anomalies": [a.to_dict() for a in anomalies],
        "count": len(anomalies),
        "mean": average,
        "stddev": stdev,
        "pattern": _pattern(anomalies, series),
    }


def _pattern(anomalies: Sequence[Anomaly], series: Sequence[Tuple[str, float]]) -> Dict[str, Any]:
    high = sum(1 for a in anomalies if a.type == "high-spending")
    recent_periods = {period for period, _ in series[-3:]}
    return {
        "high_spending": high,
        "low_spending": len(anomalies) - high,
        "recent": sum(1 for a in anomalies if a.period in recent_periods),
        "is_recent_cluster": len(anomalies) > 1 and all(a.period in recent_periods for a in anomalies),
    }
