import math
from datetime import date

from finance_engine.analytics.stats import INSUFFICIENT_DATA
from finance_engine.models.transaction import Budget, BudgetLineItem, TransactionCategory
from finance_engine.utils.analyzer import PatternAnalyzer, window

from conftest import make_transaction

INCOME = TransactionCategory.INCOME

grocery_amounts = [150.0, 230.0, 310.0, 480.0, 90.0, 620.0]

sample_transactions = []
for month in range(1, 7):
    sample_transactions += [
        make_transaction(f"sal-{month}", date(2025, month, 1), 3000.0, INCOME, subcategory_id="salary", description="ACME PAYROLL"),
        make_transaction(f"rent-{month}", date(2025, month, 3), -1200.0, subcategory_id="rent", description="Landlord"),
        make_transaction(f"tv-{month}", date(2025, month, 5), -15.99, subcategory_id="streaming", description="NETFLIX.COM"),
        make_transaction(f"food-{month}", date(2025, month, 18), -grocery_amounts[month - 1], description="Supermarket"),
    ]

sample_budget = Budget(
    id="b1",
    line_items=[
        BudgetLineItem(subcategory_id="rent", amount=1200.0),
        BudgetLineItem(subcategory_id="groceries", amount=1000.0),
    ],
)


def test_analysis_has_every_section():
    result = PatternAnalyzer().analyze(sample_transactions, sample_budget)
    assert set(result) == {
        "seasonal_patterns",
        "recurring_transactions",
        "spending_cycles",
        "budget_efficiency",
        "cashflow_sustainability",
        "anomalies",
        "correlations",
        "insights",
        "risk_factors",
        "opportunities",
    }


def test_recurring_income_and_bills_found():
    result = PatternAnalyzer().analyze(sample_transactions)
    recurring = result["recurring_transactions"]
    assert recurring["confirmed"] == 3
    assert {p["subcategory_id"] for p in recurring["patterns"]} == {"salary", "rent", "streaming"}


def test_budget_efficiency_without_budget():
    result = PatternAnalyzer().analyze(sample_transactions, None)
    assert result["budget_efficiency"] == {"efficiency": 0, "message": "No active budget for analysis"}


def test_budget_efficiency_flags_unused_budget():
    efficiency = PatternAnalyzer().analyze(sample_transactions, sample_budget)["budget_efficiency"]
    assert efficiency["category_efficiencies"]["rent"]["efficiency"] == 1.0
    assert efficiency["waste_areas"] == ["groceries"]
    assert math.isclose(efficiency["optimization_potential"], 1000.0 - sum(grocery_amounts) / 6)

    opportunities = PatternAnalyzer().analyze(sample_transactions, sample_budget)["opportunities"]
    assert opportunities[0]["type"] == "budget-reallocation"


def test_cashflow_sustainability():
    result = PatternAnalyzer().analyze(sample_transactions)["cashflow_sustainability"]
    assert "Consistent positive cashflow" in result["positive_indicators"]
    assert "Strong average cashflow" in result["positive_indicators"]
    # grocery spend rises over the half year, so net cashflow declines
    assert "Declining cashflow trend" in result["risk_factors"]
    assert result["trajectory"] == "declining"
    assert 0 <= result["sustainability_score"] <= 1


def test_short_history_is_insufficient():
    first_two_months = [t for t in sample_transactions if t.date.month <= 2]
    result = PatternAnalyzer().analyze(first_two_months)
    assert result["cashflow_sustainability"]["trajectory"] == INSUFFICIENT_DATA
    assert result["anomalies"]["status"] == INSUFFICIENT_DATA
    assert result["correlations"]["status"] == INSUFFICIENT_DATA
    assert result["seasonal_patterns"]["seasonality"]["detected"] is False
    assert result["spending_cycles"]["monthly_cycle"]["pattern"] == "unknown"


def test_empty_snapshot():
    result = PatternAnalyzer().analyze([])
    assert result["recurring_transactions"]["coverage"] == 0.0
    assert result["seasonal_patterns"]["daily_patterns"]["busiest_day"] is None
    assert result["insights"] == []


def test_payment_patterns():
    patterns = PatternAnalyzer.payment_patterns(sample_transactions)
    assert math.isclose(patterns["early_share"] + patterns["mid_share"] + patterns["late_share"], 1.0)
    assert patterns["peak_days"][0] == 3


def test_window_is_inclusive():
    selected = window(sample_transactions, date(2025, 2, 1), date(2025, 2, 5))
    assert {t.id for t in selected} == {"sal-2", "rent-2", "tv-2"}
    assert len(window(sample_transactions, None, None)) == len(sample_transactions)
