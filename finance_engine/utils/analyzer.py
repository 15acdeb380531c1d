from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from finance_engine.analytics import insights as insight_rules
from finance_engine.analytics.aggregation import (
    PeriodBucket,
    aggregate_by_day_of_week,
    aggregate_by_month,
    aggregate_by_week,
)
from finance_engine.analytics.anomalies import detect_anomalies
from finance_engine.analytics.correlation import analyze_correlations
from finance_engine.analytics.normalization import to_monthly
from finance_engine.analytics.recurring import detect_recurring
from finance_engine.analytics.stats import INSUFFICIENT_DATA, clamp, estimate_trend, mean, population_stddev
from finance_engine.core.config import EngineConfig
from finance_engine.models.transaction import Budget, Transaction, TransactionCategory

logger = logging.getLogger(__name__)

SEASONS = {12: "winter", 1: "winter", 2: "winter", 3: "spring", 4: "spring", 5: "spring",
           6: "summer", 7: "summer", 8: "summer", 9: "autumn", 10: "autumn", 11: "autumn"}


class PatternAnalyzer:
    """
    Runs the full pattern analysis over one transaction snapshot.

    The analyzer holds no state between calls; every method is a pure function
    of its arguments and the immutable ``EngineConfig`` it was built with.
    """

    def __init__(self, config: Optional[EngineConfig] = None) -> None:
        self._config = config or EngineConfig()

    @property
    def config(self) -> EngineConfig:
        return self._config

    def analyze(
        self,
        transactions: Sequence[Transaction],
        budget: Optional[Budget] = None,
    ) -> Dict[str, Any]:
        monthly = aggregate_by_month(transactions)
        weekly = aggregate_by_week(transactions)
        cfg = self._config

        analysis: Dict[str, Any] = {
            "seasonal_patterns": self.seasonal_patterns(transactions, monthly, weekly),
            "recurring_transactions": detect_recurring(
                transactions,
                description_max_length=cfg.description_max_length,
                amount_step=cfg.recurring_amount_rounding,
            ),
            "spending_cycles": self.spending_cycles(transactions, monthly, weekly),
            "budget_efficiency": self.budget_efficiency(monthly, budget),
            "cashflow_sustainability": self.cashflow_sustainability(monthly),
            "anomalies": detect_anomalies(
                [(b.key, b.total_expenses) for b in monthly],
                z_threshold=cfg.anomaly_z_threshold,
                extreme_threshold=cfg.extreme_z_threshold,
            ),
            "correlations": analyze_correlations(
                monthly,
                threshold=cfg.correlation_threshold,
                strong_threshold=cfg.strong_correlation_threshold,
            ),
        }
        analysis["insights"] = insight_rules.generate_pattern_insights(analysis)
        analysis["risk_factors"] = insight_rules.identify_risk_factors(analysis)
        analysis["opportunities"] = insight_rules.identify_opportunities(analysis)

        logger.info(
            "Pattern analysis over %s transactions: %s months, %s recurring, %s anomalies",
            len(transactions),
            len(monthly),
            analysis["recurring_transactions"]["confirmed"],
            analysis["anomalies"]["count"],
        )
        return analysis

    # Seasonal patterns

    def seasonal_patterns(
        self,
        transactions: Sequence[Transaction],
        monthly: List[PeriodBucket],
        weekly: List[PeriodBucket],
    ) -> Dict[str, Any]:
        threshold = self._config.trend_threshold
        expense_trend = estimate_trend([b.total_expenses for b in monthly], threshold)
        income_trend = estimate_trend([b.total_income for b in monthly], threshold)
        weekly_expenses = [b.total_expenses for b in weekly]
        day_buckets = aggregate_by_day_of_week(transactions)

        return {
            "monthly_trends": {
                "months": [b.to_dict() for b in monthly],
                "expense_trend": expense_trend.to_dict(),
                "income_trend": income_trend.to_dict(),
            },
            "weekly_patterns": {
                "weeks": len(weekly),
                "average_weekly_expense": mean(weekly_expenses),
                "peak_week": max(weekly, key=lambda b: b.total_expenses).key if weekly else None,
                "trend": estimate_trend(weekly_expenses, threshold).to_dict(),
            },
            "daily_patterns": self._daily_patterns(day_buckets),
            "seasonality": self.detect_seasonality(monthly),
            "cyclical_behavior": self.detect_cyclical_behavior(monthly),
        }

    @staticmethod
    def _daily_patterns(day_buckets) -> Dict[str, Any]:
        weekday = [d.total_expenses for d in day_buckets[:5]]
        weekend = [d.total_expenses for d in day_buckets[5:]]
        busiest = max(day_buckets, key=lambda d: d.total_expenses)
        return {
            "days": [d.to_dict() for d in day_buckets],
            "busiest_day": busiest.day_name if busiest.total_expenses > 0 else None,
            "average_weekday_expenses": mean(weekday),
            "average_weekend_expenses": mean(weekend),
        }

    @staticmethod
    def detect_seasonality(monthly: Sequence[PeriodBucket]) -> Dict[str, Any]:
        """Compare average spend per calendar month; needs at least six months."""
        if len(monthly) < 6:
            return {"detected": False, "pattern": INSUFFICIENT_DATA, "confidence": "low"}

        by_month: Dict[int, List[float]] = defaultdict(list)
        for bucket in monthly:
            by_month[int(bucket.key[5:7])].append(bucket.total_expenses)
        averages = {month: mean(values) for month, values in by_month.items()}
        overall = mean(list(averages.values()))
        if overall <= 0:
            return {"detected": False, "pattern": "none", "confidence": "low"}

        spread = (max(averages.values()) - min(averages.values())) / overall
        peak_month = max(averages, key=averages.get)
        if len(monthly) >= 24:
            confidence = "high"
        elif len(monthly) >= 12:
            confidence = "medium"
        else:
            confidence = "low"
        return {
            "detected": spread > 0.3,
            "pattern": f"{SEASONS[peak_month]}-peak" if spread > 0.3 else "none",
            "peak_month": peak_month,
            "spread": spread,
            "confidence": confidence,
        }

    @staticmethod
    def detect_cyclical_behavior(monthly: Sequence[PeriodBucket]) -> Dict[str, Any]:
        """Alternating month-over-month direction changes suggest a cycle."""
        if len(monthly) < 4:
            return {"detected": False, "reversal_ratio": 0.0}
        deltas = [b.total_expenses - a.total_expenses for a, b in zip(monthly, monthly[1:])]
        signs = [d > 0 for d in deltas if d != 0]
        if len(signs) < 2:
            return {"detected": False, "reversal_ratio": 0.0}
        reversals = sum(1 for a, b in zip(signs, signs[1:]) if a != b)
        ratio = reversals / (len(signs) - 1)
        return {"detected": ratio >= 0.7, "reversal_ratio": ratio}

    # Spending cycles

    def spending_cycles(
        self,
        transactions: Sequence[Transaction],
        monthly: List[PeriodBucket],
        weekly: List[PeriodBucket],
    ) -> Dict[str, Any]:
        return {
            "monthly_cycle": self.monthly_cycle(monthly),
            "weekly_cycle": self._cycle([b.total_expenses for b in weekly]),
            "payment_patterns": self.payment_patterns(transactions),
            "spending_rhythm": self.spending_rhythm(transactions),
        }

    def monthly_cycle(self, monthly: Sequence[PeriodBucket]) -> Dict[str, Any]:
        cycle = self._cycle([b.total_expenses for b in monthly])
        if cycle["trend"] == INSUFFICIENT_DATA:
            cycle["pattern"] = "unknown"
            return cycle
        if self.detect_cyclical_behavior(monthly)["detected"]:
            cycle["pattern"] = "alternating"
        elif cycle["average"] > 0 and cycle["volatility"] / cycle["average"] < 0.15:
            cycle["pattern"] = "steady"
        else:
            cycle["pattern"] = "irregular"
        return cycle

    def _cycle(self, expenses: Sequence[float]) -> Dict[str, Any]:
        if len(expenses) < 3:
            return {"trend": INSUFFICIENT_DATA, "trend_rate": 0.0}
        trend = estimate_trend(expenses, self._config.trend_threshold)
        return {
            "trend": trend.trend,
            "trend_rate": trend.slope,
            "average": mean(expenses),
            "volatility": population_stddev(expenses),
        }

    @staticmethod
    def payment_patterns(transactions: Sequence[Transaction]) -> Dict[str, Any]:
        """Where in the month expenses land: early (1-10), mid (11-20), late (21+)."""
        by_day: Dict[int, float] = defaultdict(float)
        for t in transactions:
            if t.category_id is TransactionCategory.EXPENSE:
                by_day[t.date.day] += t.absolute_amount
        total = sum(by_day.values())
        if total <= 0:
            return {"early_share": 0.0, "mid_share": 0.0, "late_share": 0.0, "peak_days": []}
        early = sum(v for d, v in by_day.items() if d <= 10)
        mid = sum(v for d, v in by_day.items() if 10 < d <= 20)
        return {
            "early_share": early / total,
            "mid_share": mid / total,
            "late_share": (total - early - mid) / total,
            "peak_days": sorted(by_day, key=by_day.get, reverse=True)[:3],
        }

    @staticmethod
    def spending_rhythm(transactions: Sequence[Transaction]) -> Dict[str, Any]:
        days = sorted({t.date for t in transactions if t.category_id is TransactionCategory.EXPENSE})
        if len(days) < 2:
            return {"active_days": len(days), "activity_ratio": 0.0, "average_gap_days": 0.0}
        span = (days[-1] - days[0]).days + 1
        gaps = [(b - a).days for a, b in zip(days, days[1:])]
        return {
            "active_days": len(days),
            "activity_ratio": len(days) / span,
            "average_gap_days": mean(gaps),
        }

    # Budget efficiency

    def budget_efficiency(self, monthly: Sequence[PeriodBucket], budget: Optional[Budget]) -> Dict[str, Any]:
        if budget is None or not budget.line_items:
            return {"efficiency": 0, "message": "No active budget for analysis"}

        months = max(1, len(monthly))
        spent: Dict[str, float] = defaultdict(float)
        for bucket in monthly:
            for subcategory_id, amount in bucket.subcategories.items():
                spent[subcategory_id] += amount

        categories: Dict[str, Dict[str, Any]] = {}
        for item in budget.line_items:
            monthly_budget = to_monthly(item.amount, item.period)
            average_spent = spent.get(item.subcategory_id, 0.0) / months
            utilization = average_spent / monthly_budget if monthly_budget > 0 else None
            if not utilization:
                efficiency = 0.0
            else:
                efficiency = utilization if utilization <= 1 else 1 / utilization
            categories[item.subcategory_id] = {
                "monthly_budget": monthly_budget,
                "average_spent": average_spent,
                "utilization": utilization,
                "efficiency": efficiency,
            }

        waste = [
            sub for sub, c in categories.items() if c["utilization"] is not None and c["utilization"] < 0.5
        ]
        total_budget = sum(c["monthly_budget"] for c in categories.values())
        budgeted_ids = set(categories)
        utilization_series = [
            sum(v for k, v in b.subcategories.items() if k in budgeted_ids) / total_budget
            for b in monthly
            if total_budget > 0
        ]
        return {
            "overall_efficiency": mean([c["efficiency"] for c in categories.values()]),
            "category_efficiencies": categories,
            "trends": estimate_trend(utilization_series, threshold=0.05).to_dict(),
            "waste_areas": waste,
            "optimization_potential": sum(
                categories[sub]["monthly_budget"] - categories[sub]["average_spent"] for sub in waste
            ),
        }

    # Cashflow sustainability

    def cashflow_sustainability(self, monthly: Sequence[PeriodBucket]) -> Dict[str, Any]:
        if len(monthly) < 3:
            return {
                "sustainability_score": 0,
                "risk_factors": [],
                "positive_indicators": [],
                "recommendations": [],
                "trajectory": INSUFFICIENT_DATA,
            }

        net = [b.net_cashflow for b in monthly]
        positive_share = sum(1 for flow in net if flow > 0) / len(net)
        average_net = mean(net)
        trend = estimate_trend(net, self._config.trend_threshold)

        risk_factors = []
        if positive_share < 0.5:
            risk_factors.append("Frequent negative cashflow")
        if trend.slope < -10:
            risk_factors.append("Declining cashflow trend")
        if average_net < 0:
            risk_factors.append("Negative average cashflow")

        positive = []
        if positive_share > 0.8:
            positive.append("Consistent positive cashflow")
        if trend.slope > 5:
            positive.append("Improving cashflow trend")
        if average_net > 500:
            positive.append("Strong average cashflow")

        recommendations = []
        if average_net < 0:
            recommendations.append("Reduce monthly expenses below average income")
        if positive_share < 0.5:
            recommendations.append("Build a buffer to cover months with negative cashflow")
        if trend.slope < -10:
            recommendations.append("Investigate categories driving the declining cashflow")

        trajectory = {"increasing": "improving", "decreasing": "declining"}.get(trend.trend, "stable")
        return {
            "sustainability_score": clamp(positive_share + trend.slope / 100),
            "risk_factors": risk_factors,
            "positive_indicators": positive,
            "recommendations": recommendations,
            "trajectory": trajectory,
            "average_net_cashflow": average_net,
        }


def window(transactions: Sequence[Transaction], start: Optional[date], end: Optional[date]) -> List[Transaction]:
    return [
        t for t in transactions
        if (start is None or t.date >= start) and (end is None or t.date <= end)
    ]
