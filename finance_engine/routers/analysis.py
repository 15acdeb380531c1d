"""
Analysis Router
Pattern analysis, budget variance, forecasts and the cashflow calendar over the current ledger snapshot.
"""
import calendar
import logging
from datetime import date, datetime, timezone
from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from finance_engine.analytics.aggregation import aggregate_calendar
from finance_engine.analytics.budget import budget_compliance_score, build_category_statuses
from finance_engine.analytics.forecast import SCENARIOS, BudgetForecaster, Horizon
from finance_engine.analytics.insights import generate_budget_insights
from finance_engine.core.config import EngineConfig
from finance_engine.core.deps import get_engine_config, get_snapshot_loader
from finance_engine.db.snapshot import SnapshotLoader
from finance_engine.models.transaction import Period
from finance_engine.utils.analyzer import PatternAnalyzer, window

router = APIRouter()
logger = logging.getLogger(__name__)


def _month_bounds(day: date):
    last = calendar.monthrange(day.year, day.month)[1]
    return day.replace(day=1), day.replace(day=last)


def _check_range(start: Optional[date], end: Optional[date]) -> None:
    if start is not None and end is not None and end < start:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="end must not be before start")


@router.get("/patterns")
def analyze_patterns(
    start: Optional[date] = None,
    end: Optional[date] = None,
    loader: SnapshotLoader = Depends(get_snapshot_loader),
    config: EngineConfig = Depends(get_engine_config),
) -> Dict:
    _check_range(start, end)
    snapshot = loader.load()
    transactions = window(snapshot.transactions, start, end)
    analysis = PatternAnalyzer(config).analyze(transactions, snapshot.active_budget)
    return {
        "data_status": snapshot.data_status,
        "errors": snapshot.errors,
        "transaction_count": len(transactions),
        "analysis": analysis,
    }


@router.get("/budget")
def analyze_budget(
    start: Optional[date] = None,
    end: Optional[date] = None,
    period: Period = Period.MONTHLY,
    loader: SnapshotLoader = Depends(get_snapshot_loader),
) -> Dict:
    """
    Per-category budget variance for the window (defaults to the current month),
    with the budget normalized to ``period``.
    """
    default_start, default_end = _month_bounds(datetime.now(timezone.utc).date())
    start = start or default_start
    end = end or default_end
    _check_range(start, end)

    snapshot = loader.load()
    budget = snapshot.active_budget
    rows = build_category_statuses(snapshot.transactions, budget, period, start, end, snapshot.subcategory_names)
    return {
        "data_status": snapshot.data_status,
        "errors": snapshot.errors,
        "budget_id": budget.id if budget else None,
        "period": period.value,
        "start": start.isoformat(),
        "end": end.isoformat(),
        "categories": [row.to_dict() for row in rows],
        "compliance": budget_compliance_score(rows),
        "insights": generate_budget_insights(rows),
    }


@router.get("/forecast")
def forecast_budget(
    horizon: Horizon = Horizon.MONTH,
    scenario: str = "current",
    loader: SnapshotLoader = Depends(get_snapshot_loader),
    config: EngineConfig = Depends(get_engine_config),
) -> Dict:
    if scenario not in SCENARIOS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"scenario must be one of {', '.join(SCENARIOS)}",
        )
    snapshot = loader.load()
    forecast = BudgetForecaster(config).forecast(
        snapshot.transactions,
        snapshot.active_budget,
        horizon=horizon,
        scenario=scenario,
        now=datetime.now(timezone.utc),
    )
    return {"data_status": snapshot.data_status, "errors": snapshot.errors, "forecast": forecast}


@router.get("/calendar")
def cashflow_calendar(
    start: Optional[date] = None,
    end: Optional[date] = None,
    loader: SnapshotLoader = Depends(get_snapshot_loader),
) -> Dict:
    """
    Dense daily cashflow, one entry per day in the range (defaults to the current month).
    """
    default_start, default_end = _month_bounds(datetime.now(timezone.utc).date())
    start = start or default_start
    end = end or default_end
    _check_range(start, end)

    snapshot = loader.load()
    days = aggregate_calendar(snapshot.transactions, start, end)
    return {
        "data_status": snapshot.data_status,
        "errors": snapshot.errors,
        "start": start.isoformat(),
        "end": end.isoformat(),
        "days": [day.to_dict() for day in days],
    }
