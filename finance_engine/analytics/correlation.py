from __future__ import annotations

from dataclasses import asdict, dataclass
from itertools import combinations
from typing import Any, Dict, List, Sequence

from finance_engine.analytics.aggregation import PeriodBucket, fill_month_gaps, subcategory_series
from finance_engine.analytics.stats import INSUFFICIENT_DATA, pearson

MIN_PERIODS = 3


@dataclass
class CategoryCorrelation:
    category1: str
    category2: str
    correlation: float
    strength: str
    direction: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def analyze_correlations(
    monthly_buckets: Sequence[PeriodBucket],
    threshold: float = 0.3,
    strong_threshold: float = 0.7,
) -> Dict[str, Any]:
    """Pairwise Pearson correlation of monthly spending between subcategories."""
    monthly_buckets = fill_month_gaps(monthly_buckets)
    if len(monthly_buckets) < MIN_PERIODS:
        return {"status": INSUFFICIENT_DATA, "correlations": [], "strong_correlations": [], "insights": []}

    subcategories = sorted({sub for bucket in monthly_buckets for sub in bucket.subcategories})
    series = {sub: subcategory_series(monthly_buckets, sub) for sub in subcategories}

    correlations: List[CategoryCorrelation] = []
    for first, second in combinations(subcategories, 2):
        r = pearson(series[first], series[second])
        if r is None or abs(r) <= threshold:
            continue
        correlations.append(
            CategoryCorrelation(
                category1=first,
                category2=second,
                correlation=r,
                strength="strong" if abs(r) > strong_threshold else "moderate",
                direction="positive" if r > 0 else "negative",
            )
        )

    strong = [c for c in correlations if c.strength == "strong"]
    return {
        "status": "ok",
        "correlations": [c.to_dict() for c in correlations],
        "strong_correlations": [c.to_dict() for c in strong],
        "insights": [_describe(c) for c in strong],
    }


def _describe(correlation: CategoryCorrelation) -> str:
    if correlation.direction == "positive":
        return (
            f"Spending on {correlation.category1} and {correlation.category2} tends to rise and fall together "
            f"(r={correlation.correlation:.2f})"
        )
    return (
        f"Spending on {correlation.category1} tends to drop when {correlation.category2} rises "
        f"(r={correlation.correlation:.2f})"
    )
