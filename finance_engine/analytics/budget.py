"""
Budget-versus-actual analysis.

``calculate_budget_variance`` scores a single category and
``budget_compliance_score`` rolls categories up. The compliance score counts
categories, it does not weight them by amount: a category 1000 over budget
weighs the same as one that is 1 over.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence

from finance_engine.analytics.aggregation import UNCATEGORIZED
from finance_engine.analytics.normalization import normalize_period
from finance_engine.models.transaction import Budget, Period, Transaction, TransactionCategory

WARNING_BAND_PCT = -20.0
FLAT_CHANGE_PCT = 5.0


@dataclass(frozen=True)
class VarianceResult:
    variance: float
    variance_percentage: Optional[float]
    status: str
    is_over_budget: bool
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CategoryBudgetStatus:
    subcategory_id: str
    has_budget: bool
    budget_amount: float
    actual_spent: float
    variance: float
    variance_percentage: Optional[float] = None
    status: str = "no_budget"
    subcategory_name: Optional[str] = None

    @property
    def utilization_percentage(self) -> Optional[float]:
        if self.budget_amount <= 0:
            return None
        return self.actual_spent / self.budget_amount * 100

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["utilization_percentage"] = self.utilization_percentage
        return data


def calculate_budget_variance(actual: float, budgeted: float) -> VarianceResult:
    if not budgeted:
        return VarianceResult(
            variance=actual,
            variance_percentage=None,
            status="no_budget",
            is_over_budget=actual > 0,
            description="No budget set for comparison",
        )

    variance = actual - budgeted
    variance_percentage = variance / budgeted * 100
    if variance_percentage > 0:
        status = "over"
        description = f"Over budget by {variance_percentage:.1f}%"
    elif variance_percentage > WARNING_BAND_PCT:
        status = "warning"
        description = f"Close to budget limit ({100 - abs(variance_percentage):.1f}% used)"
    else:
        status = "good"
        description = f"Under budget by {abs(variance_percentage):.1f}%"

    return VarianceResult(
        variance=variance,
        variance_percentage=variance_percentage,
        status=status,
        is_over_budget=variance > 0,
        description=description,
    )


def budget_compliance_score(categories: Sequence[CategoryBudgetStatus]) -> Dict[str, Any]:
    if not categories:
        return {
            "score": 0,
            "total_categories": 0,
            "categories_with_budget": 0,
            "categories_on_track": 0,
            "categories_over_budget": 0,
            "total_budgeted": 0.0,
            "total_spent": 0.0,
            "overall_variance": 0.0,
            "overall_variance_percentage": None,
        }

    budgeted = [c for c in categories if c.has_budget]
    on_track = sum(1 for c in budgeted if c.variance <= 0)
    over = sum(1 for c in budgeted if c.variance > 0)
    total_budgeted = sum(c.budget_amount for c in budgeted)
    total_spent = sum(c.actual_spent for c in budgeted)
    overall_variance = total_spent - total_budgeted

    score = 100
    if budgeted:
        score = max(0, round(on_track / len(budgeted) * 100))

    return {
        "score": score,
        "total_categories": len(categories),
        "categories_with_budget": len(budgeted),
        "categories_on_track": on_track,
        "categories_over_budget": over,
        "total_budgeted": total_budgeted,
        "total_spent": total_spent,
        "overall_variance": overall_variance,
        "overall_variance_percentage": overall_variance / total_budgeted * 100 if total_budgeted > 0 else None,
    }


def calculate_period_comparison(current: float, previous: float) -> Dict[str, Any]:
    if not previous:
        return {
            "change": current,
            "change_percentage": None,
            "trend": "up" if current > 0 else "flat",
            "description": "No previous period data",
        }

    change = current - previous
    change_percentage = change / abs(previous) * 100
    trend = "flat"
    if abs(change_percentage) > FLAT_CHANGE_PCT:
        trend = "up" if change_percentage > 0 else "down"
    description = (
        "Similar to previous period"
        if trend == "flat"
        else f"{abs(change_percentage):.1f}% {trend} from previous period"
    )
    return {"change": change, "change_percentage": change_percentage, "trend": trend, "description": description}


def spent_by_subcategory(
    transactions: Iterable[Transaction],
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> Dict[str, float]:
    totals: Dict[str, float] = {}
    for transaction in transactions:
        if transaction.category_id is not TransactionCategory.EXPENSE:
            continue
        if start is not None and transaction.date < start:
            continue
        if end is not None and transaction.date > end:
            continue
        key = transaction.subcategory_id or UNCATEGORIZED
        totals[key] = totals.get(key, 0.0) + transaction.absolute_amount
    return totals


def budgeted_by_subcategory(budget: Optional[Budget], period: Period | str = Period.MONTHLY) -> Dict[str, float]:
    totals: Dict[str, float] = {}
    if budget is None:
        return totals
    for item in budget.line_items:
        amount = normalize_period(item.amount, item.period, period)
        totals[item.subcategory_id] = totals.get(item.subcategory_id, 0.0) + amount
    return totals


def build_category_statuses(
    transactions: Iterable[Transaction],
    budget: Optional[Budget],
    period: Period | str = Period.MONTHLY,
    start: Optional[date] = None,
    end: Optional[date] = None,
    names: Optional[Dict[str, str]] = None,
) -> List[CategoryBudgetStatus]:
    """One row per subcategory that is budgeted or has spending in the window."""
    names = dict(names or {})
    if budget is not None:
        for item in budget.line_items:
            if item.subcategory_name:
                names.setdefault(item.subcategory_id, item.subcategory_name)

    spent = spent_by_subcategory(transactions, start, end)
    budgeted = budgeted_by_subcategory(budget, period)

    rows: List[CategoryBudgetStatus] = []
    for subcategory_id in sorted(set(spent) | set(budgeted)):
        actual = spent.get(subcategory_id, 0.0)
        amount = budgeted.get(subcategory_id, 0.0)
        result = calculate_budget_variance(actual, amount)
        rows.append(
            CategoryBudgetStatus(
                subcategory_id=subcategory_id,
                subcategory_name=names.get(subcategory_id),
                has_budget=amount > 0,
                budget_amount=amount,
                actual_spent=actual,
                variance=result.variance,
                variance_percentage=result.variance_percentage,
                status=result.status,
            )
        )
    return rows
