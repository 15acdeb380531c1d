from datetime import date

from finance_engine.analytics.aggregation import (
    UNCATEGORIZED,
    aggregate,
    aggregate_by_day_of_week,
    aggregate_by_month,
    aggregate_calendar,
    fill_month_gaps,
    subcategory_series,
    week_key,
)
from finance_engine.models.transaction import TransactionCategory

from conftest import make_transaction

INCOME = TransactionCategory.INCOME
TRANSFER = TransactionCategory.TRANSFER

transactions = [
    make_transaction("t1", date(2025, 1, 3), 2500.0, INCOME, subcategory_id="salary"),
    make_transaction("t2", date(2025, 1, 5), -120.0, subcategory_id="groceries"),
    make_transaction("t3", date(2025, 1, 20), -80.0, subcategory_id=None),
    make_transaction("t4", date(2025, 1, 21), -1000.0, TRANSFER, subcategory_id=None),
    make_transaction("t5", date(2025, 3, 2), -60.0, subcategory_id="groceries"),
]


def test_monthly_buckets_are_sparse_and_sorted():
    buckets = aggregate_by_month(list(reversed(transactions)))
    assert [b.key for b in buckets] == ["2025-01", "2025-03"]


def test_transfers_excluded_from_totals_and_count():
    january = aggregate_by_month(transactions)[0]
    assert january.total_income == 2500.0
    assert january.total_expenses == 200.0
    assert january.transaction_count == 3
    assert january.net_cashflow == 2300.0


def test_expense_without_subcategory_is_uncategorized():
    january = aggregate_by_month(transactions)[0]
    assert january.subcategories == {"groceries": 120.0, UNCATEGORIZED: 80.0}


def test_iso_week_keys():
    assert week_key(date(2024, 12, 30)) == "2025-W01"
    buckets = aggregate(transactions, "week")
    assert buckets[0].key == "2025-W01"


def test_day_granularity():
    buckets = aggregate(transactions, "day")
    assert [b.key for b in buckets] == ["2025-01-03", "2025-01-05", "2025-01-20", "2025-03-02"]


def test_day_of_week_always_seven_buckets():
    buckets = aggregate_by_day_of_week([])
    assert [b.day_name for b in buckets][0] == "Monday"
    assert len(buckets) == 7
    assert all(b.average_transaction == 0.0 for b in buckets)

    buckets = aggregate_by_day_of_week(transactions)
    # 2025-01-05 and 2025-03-02 are Sundays
    assert buckets[6].transaction_count == 2
    assert buckets[6].average_transaction == 90.0


def test_calendar_is_dense():
    days = aggregate_calendar(transactions, date(2025, 1, 1), date(2025, 1, 31))
    assert len(days) == 31
    assert days[0].transaction_count == 0
    assert days[2].total_income == 2500.0
    assert days[3].is_weekend  # Saturday
    assert days[20].transaction_count == 0  # transfer only
    assert days[4].to_dict()["net_cashflow"] == -120.0


def test_calendar_empty_for_inverted_range():
    assert aggregate_calendar(transactions, date(2025, 2, 1), date(2025, 1, 1)) == []


def test_subcategory_series_zero_fills():
    buckets = aggregate_by_month(transactions)
    assert subcategory_series(buckets, "groceries") == [120.0, 60.0]
    assert subcategory_series(buckets, "rent") == [0.0, 0.0]


def test_fill_month_gaps_across_year_end():
    buckets = aggregate_by_month([
        make_transaction("t1", date(2024, 11, 5), -40),
        make_transaction("t2", date(2025, 2, 5), -60),
    ])
    filled = fill_month_gaps(buckets)
    assert [b.key for b in filled] == ["2024-11", "2024-12", "2025-01", "2025-02"]
    assert [b.total_expenses for b in filled] == [40, 0, 0, 60]
    assert fill_month_gaps([]) == []
