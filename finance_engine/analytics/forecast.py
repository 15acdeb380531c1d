"""
Budget forecasting.

Builds a spending trajectory from recent monthly buckets, projects three fixed
scenarios over a horizon and predicts how each one lands against the budget.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from finance_engine.analytics.aggregation import PeriodBucket, aggregate_by_month, subcategory_series
from finance_engine.analytics.normalization import to_monthly
from finance_engine.analytics.stats import INSUFFICIENT_DATA, classify_slope, clamp, linear_slope, mean, population_stddev
from finance_engine.core.config import EngineConfig
from finance_engine.models.transaction import Budget, BudgetLineItem, Transaction

logger = logging.getLogger(__name__)

DAYS_PER_MONTH = 30
GOOD_MONTH_TRANSACTIONS = 10


class Horizon(str, Enum):
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"


HORIZON_MULTIPLIERS: Dict[Horizon, float] = {
    Horizon.WEEK: 1 / 4.33,
    Horizon.MONTH: 1.0,
    Horizon.QUARTER: 3.0,
}

SCENARIOS = ("optimistic", "current", "pessimistic")


def calculate_trajectory(
    monthly_buckets: Sequence[PeriodBucket],
    trend_threshold: float = 5.0,
    category_threshold: float = 2.0,
) -> Dict[str, Any]:
    if len(monthly_buckets) < 2:
        return {
            "trend": INSUFFICIENT_DATA,
            "monthly_average": 0.0,
            "growth": 0.0,
            "category_trajectories": {},
            "confidence": "low",
        }

    expenses = [bucket.total_expenses for bucket in monthly_buckets]
    growth = linear_slope(expenses)
    return {
        "trend": classify_slope(growth, trend_threshold),
        "monthly_average": mean(expenses),
        "growth": growth,
        "category_trajectories": category_trajectories(monthly_buckets, category_threshold),
        "confidence": calculate_confidence_level(monthly_buckets),
    }


def category_trajectories(monthly_buckets: Sequence[PeriodBucket], threshold: float = 2.0) -> Dict[str, Dict[str, Any]]:
    buckets = list(monthly_buckets)
    subcategories = sorted({sub for bucket in buckets for sub in bucket.subcategories})
    trajectories = {}
    for subcategory_id in subcategories:
        spending = subcategory_series(buckets, subcategory_id)
        growth = linear_slope(spending)
        trajectories[subcategory_id] = {
            "subcategory_id": subcategory_id,
            "monthly_average": mean(spending),
            "growth": growth,
            "trend": classify_slope(growth, threshold),
            "consistency": spending_consistency(spending),
        }
    return trajectories


def spending_consistency(values: Sequence[float]) -> float:
    """Inverse coefficient of variation; 0 when the mean is not positive."""
    if len(values) < 2:
        return 0.0
    average = mean(values)
    if average <= 0:
        return 0.0
    return 1 - population_stddev(values) / average


def generate_scenarios(monthly_average: float, growth: float, horizon: Horizon | str = Horizon.MONTH) -> Dict[str, Dict[str, Any]]:
    multiplier = HORIZON_MULTIPLIERS[Horizon(horizon)]
    scenarios = {
        "optimistic": {
            "name": "Optimistic",
            "description": "Spending decreases by 10%",
            "monthly_expense": monthly_average * 0.9,
            "growth_rate": min(growth - 5, -2),
            "probability": 0.25,
        },
        "current": {
            "name": "Current Trajectory",
            "description": "Spending continues at current trend",
            "monthly_expense": monthly_average,
            "growth_rate": growth,
            "probability": 0.5,
        },
        "pessimistic": {
            "name": "Pessimistic",
            "description": "Spending increases by 15%",
            "monthly_expense": monthly_average * 1.15,
            "growth_rate": growth + 8,
            "probability": 0.25,
        },
    }
    for scenario in scenarios.values():
        scenario["projected_total"] = scenario["monthly_expense"] * multiplier
        scenario["projected_variance"] = scenario["projected_total"] - monthly_average * multiplier
    return scenarios


def total_monthly_budget(budget: Optional[Budget]) -> float:
    if budget is None:
        return 0.0
    return sum(to_monthly(item.amount, item.period) for item in budget.line_items)


def predict_adherence(
    scenarios: Dict[str, Dict[str, Any]],
    total_budget: float,
    on_track_band: float = 100.0,
    high_risk_variance: float = 200.0,
) -> Dict[str, Dict[str, Any]]:
    predictions = {}
    for key, scenario in scenarios.items():
        projected = scenario["projected_total"]
        variance = projected - total_budget
        if total_budget <= 0:
            predictions[key] = {
                "projected_spending": projected,
                "budget_total": total_budget,
                "variance": variance,
                "adherence_percentage": None,
                "status": "no-budget",
                "risk_level": "low",
            }
            continue

        if variance > 0:
            status = "over-budget"
        elif variance > -on_track_band:
            status = "on-track"
        else:
            status = "under-budget"

        if variance > high_risk_variance:
            risk = "high"
        elif variance > 0:
            risk = "medium"
        else:
            risk = "low"

        predictions[key] = {
            "projected_spending": projected,
            "budget_total": total_budget,
            "variance": variance,
            "adherence_percentage": max(0.0, (total_budget - variance) / total_budget * 100),
            "status": status,
            "risk_level": risk,
        }
    return predictions


def calculate_adjustments(prediction: Dict[str, Any], line_items: Sequence[BudgetLineItem]) -> Dict[str, Any]:
    """Spread a predicted overrun across line items in proportion to their budget share."""
    variance = prediction["variance"]
    total_budget = prediction["budget_total"]
    if variance <= 0 or total_budget <= 0:
        return {"adjustment_needed": False, "message": "No budget adjustment needed"}

    adjustments: List[Dict[str, Any]] = []
    for item in line_items:
        monthly_budget = to_monthly(item.amount, item.period)
        reduction = variance * (monthly_budget / total_budget)
        adjustments.append(
            {
                "subcategory_id": item.subcategory_id,
                "subcategory_name": item.subcategory_name,
                "current_budget": monthly_budget,
                "suggested_reduction": reduction,
                "new_budget": monthly_budget - reduction,
                "percentage_reduction": reduction / monthly_budget * 100 if monthly_budget else 0.0,
            }
        )
    adjustments.sort(key=lambda a: a["suggested_reduction"], reverse=True)

    return {
        "adjustment_needed": True,
        "total_adjustment": variance,
        "daily_adjustment": variance / DAYS_PER_MONTH,
        "category_adjustments": adjustments,
        "message": f"Reduce spending by {variance:.2f} to meet budget",
    }


def generate_recommendations(prediction: Dict[str, Any], trajectory: Dict[str, Any]) -> List[Dict[str, Any]]:
    recommendations: List[Dict[str, Any]] = []

    if prediction["status"] == "over-budget":
        recommendations.append(
            {
                "type": "warning",
                "priority": "high",
                "title": "Budget Overrun Predicted",
                "description": (
                    f"Current trajectory suggests spending will exceed budget by {abs(prediction['variance']):.2f}"
                ),
                "actions": [
                    {"action": "Reduce spending in top categories", "impact": "High Impact", "difficulty": "Moderate"},
                    {"action": "Review recurring expenses", "impact": "Medium Impact", "difficulty": "Easy"},
                ],
            }
        )

    rising = sorted(
        (
            cat
            for cat in trajectory.get("category_trajectories", {}).values()
            if cat["growth"] > 5 and cat["monthly_average"] > 100
        ),
        key=lambda cat: cat["growth"],
        reverse=True,
    )[:3]
    if rising:
        recommendations.append(
            {
                "type": "info",
                "priority": "medium",
                "title": "Rising Spending Categories",
                "description": "Some categories are showing increasing spend trends",
                "actions": [
                    {"action": f"Review {cat['subcategory_id']} spending", "impact": "Medium Impact", "difficulty": "Easy"}
                    for cat in rising
                ],
            }
        )

    if prediction["status"] == "under-budget":
        recommendations.append(
            {
                "type": "success",
                "priority": "low",
                "title": "Budget On Track",
                "description": f"You're projected to be under budget by {abs(prediction['variance']):.2f}",
                "actions": [
                    {"action": "Maintain current spending habits", "impact": "High Impact", "difficulty": "Easy"},
                    {"action": "Consider additional savings goals", "impact": "Medium Impact", "difficulty": "Moderate"},
                ],
            }
        )
    return recommendations


def assess_data_quality(monthly_buckets: Sequence[PeriodBucket]) -> float:
    if not monthly_buckets:
        return 0.0

    consistency = 0.0
    if len(monthly_buckets) > 1:
        scores = []
        for previous, current in zip(monthly_buckets, monthly_buckets[1:]):
            if previous.total_expenses <= 0:
                scores.append(0.0)
                continue
            change = abs(current.total_expenses - previous.total_expenses) / previous.total_expenses
            scores.append(max(0.0, 1 - change))
        consistency = mean(scores)

    completeness = mean([clamp(b.transaction_count / GOOD_MONTH_TRANSACTIONS) for b in monthly_buckets])
    return (consistency + completeness) / 2


def calculate_confidence_level(monthly_buckets: Sequence[PeriodBucket]) -> str:
    points = len(monthly_buckets)
    if points < 2:
        return "low"
    quality = assess_data_quality(monthly_buckets)
    if points >= 3 and quality > 0.7:
        return "high"
    if quality > 0.5:
        return "medium"
    return "low"


def _months_back(day: date, months: int) -> date:
    month_index = day.year * 12 + (day.month - 1) - months
    return date(month_index // 12, month_index % 12 + 1, 1)


class BudgetForecaster:
    """Produces the forecast result for a transaction snapshot and an active budget."""

    def __init__(self, config: Optional[EngineConfig] = None) -> None:
        self._config = config or EngineConfig()

    def history(self, transactions: Sequence[Transaction], today: date) -> List[PeriodBucket]:
        start = _months_back(today, self._config.forecast_lookback_months)
        window = [t for t in transactions if start <= t.date <= today]
        return aggregate_by_month(window)

    def forecast(
        self,
        transactions: Sequence[Transaction],
        budget: Optional[Budget],
        horizon: Horizon | str = Horizon.MONTH,
        scenario: str = "current",
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        now = now or datetime.now(timezone.utc)
        if scenario not in SCENARIOS:
            raise ValueError(f"Unknown scenario: {scenario}")

        monthly = self.history(transactions, now.date())
        trajectory = calculate_trajectory(
            monthly,
            trend_threshold=self._config.trend_threshold,
            category_threshold=self._config.category_trend_threshold,
        )
        scenarios = generate_scenarios(trajectory["monthly_average"], trajectory["growth"], horizon)
        adherence = predict_adherence(
            scenarios,
            total_monthly_budget(budget),
            on_track_band=self._config.on_track_band,
            high_risk_variance=self._config.high_risk_variance,
        )
        selected = adherence[scenario]
        logger.debug("Forecast for %s months: trend=%s selected=%s", len(monthly), trajectory["trend"], scenario)

        return {
            "current_trajectory": trajectory,
            "scenarios": scenarios,
            "adherence_prediction": adherence,
            "recommendations": generate_recommendations(selected, trajectory),
            "adjustment_scenarios": calculate_adjustments(selected, budget.line_items if budget else []),
            "confidence": calculate_confidence_level(monthly),
            "last_updated": now.isoformat(),
        }
