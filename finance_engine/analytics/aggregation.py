"""
Period aggregation of transactions.

Two modes are kept apart on purpose:

- sparse (``aggregate``): only periods that contain at least one transaction,
  used for trend and anomaly series;
- dense (``aggregate_calendar``, ``fill_month_gaps``): every period of a range,
  zero-filled, used for calendar heatmaps and correlation series.

Income and expense totals use absolute amounts. Transfers never contribute to
totals or counts.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List

from finance_engine.models.transaction import Transaction, TransactionCategory

UNCATEGORIZED = "uncategorized"
DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


class Granularity(str, Enum):
    MONTH = "month"
    WEEK = "week"
    DAY = "day"


@dataclass
class PeriodBucket:
    key: str
    total_income: float = 0.0
    total_expenses: float = 0.0
    subcategories: Dict[str, float] = field(default_factory=dict)
    transaction_count: int = 0

    @property
    def net_cashflow(self) -> float:
        return self.total_income - self.total_expenses

    def add(self, transaction: Transaction) -> None:
        amount = transaction.absolute_amount
        self.transaction_count += 1
        if transaction.category_id is TransactionCategory.INCOME:
            self.total_income += amount
        elif transaction.category_id is TransactionCategory.EXPENSE:
            self.total_expenses += amount
            subcategory = transaction.subcategory_id or UNCATEGORIZED
            self.subcategories[subcategory] = self.subcategories.get(subcategory, 0.0) + amount

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["net_cashflow"] = self.net_cashflow
        return data


@dataclass
class DayOfWeekBucket:
    day_of_week: int
    day_name: str
    total_income: float = 0.0
    total_expenses: float = 0.0
    transaction_count: int = 0

    @property
    def average_transaction(self) -> float:
        if self.transaction_count == 0:
            return 0.0
        return (self.total_income + self.total_expenses) / self.transaction_count

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["average_transaction"] = self.average_transaction
        return data


@dataclass
class CalendarDay:
    date: date
    total_income: float = 0.0
    total_expenses: float = 0.0
    transaction_count: int = 0

    @property
    def net_cashflow(self) -> float:
        return self.total_income - self.total_expenses

    @property
    def is_weekend(self) -> bool:
        return self.date.weekday() >= 5

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "total_income": self.total_income,
            "total_expenses": self.total_expenses,
            "transaction_count": self.transaction_count,
            "net_cashflow": self.net_cashflow,
            "intensity": abs(self.net_cashflow),
            "is_weekend": self.is_weekend,
        }


def month_key(day: date) -> str:
    return day.strftime("%Y-%m")


def week_key(day: date) -> str:
    iso_year, iso_week, _ = day.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def day_key(day: date) -> str:
    return day.isoformat()


_KEY_FUNCS: Dict[Granularity, Callable[[date], str]] = {
    Granularity.MONTH: month_key,
    Granularity.WEEK: week_key,
    Granularity.DAY: day_key,
}


def _counted(transactions: Iterable[Transaction]) -> Iterable[Transaction]:
    return (t for t in transactions if t.category_id is not TransactionCategory.TRANSFER)


def aggregate(transactions: Iterable[Transaction], granularity: Granularity | str) -> List[PeriodBucket]:
    """Sparse aggregation: one bucket per period that has transactions, oldest first."""
    key_func = _KEY_FUNCS[Granularity(granularity)]
    buckets: Dict[str, PeriodBucket] = {}
    for transaction in _counted(transactions):
        key = key_func(transaction.date)
        if key not in buckets:
            buckets[key] = PeriodBucket(key=key)
        buckets[key].add(transaction)
    return [buckets[key] for key in sorted(buckets)]


def aggregate_by_month(transactions: Iterable[Transaction]) -> List[PeriodBucket]:
    return aggregate(transactions, Granularity.MONTH)


def aggregate_by_week(transactions: Iterable[Transaction]) -> List[PeriodBucket]:
    return aggregate(transactions, Granularity.WEEK)


def aggregate_by_day_of_week(transactions: Iterable[Transaction]) -> List[DayOfWeekBucket]:
    """Always seven buckets, Monday first."""
    buckets = [DayOfWeekBucket(day_of_week=i, day_name=name) for i, name in enumerate(DAY_NAMES)]
    for transaction in _counted(transactions):
        bucket = buckets[transaction.date.weekday()]
        bucket.transaction_count += 1
        if transaction.category_id is TransactionCategory.INCOME:
            bucket.total_income += transaction.absolute_amount
        else:
            bucket.total_expenses += transaction.absolute_amount
    return buckets


def aggregate_calendar(transactions: Iterable[Transaction], start: date, end: date) -> List[CalendarDay]:
    """Dense aggregation: every day from ``start`` to ``end`` inclusive."""
    if end < start:
        return []
    by_day: Dict[date, CalendarDay] = {}
    days: List[CalendarDay] = []
    current = start
    while current <= end:
        day = CalendarDay(date=current)
        by_day[current] = day
        days.append(day)
        current += timedelta(days=1)

    for transaction in _counted(transactions):
        day = by_day.get(transaction.date)
        if day is None:
            continue
        day.transaction_count += 1
        if transaction.category_id is TransactionCategory.INCOME:
            day.total_income += transaction.absolute_amount
        else:
            day.total_expenses += transaction.absolute_amount
    return days


def subcategory_series(buckets: List[PeriodBucket], subcategory_id: str) -> List[float]:
    """Aligned per-period totals for one subcategory, zero where it had no spend."""
    return [bucket.subcategories.get(subcategory_id, 0.0) for bucket in buckets]


def fill_month_gaps(buckets: Iterable[PeriodBucket]) -> List[PeriodBucket]:
    """Dense monthly buckets from the first to the last month, empty months zero-filled."""
    by_key = {bucket.key: bucket for bucket in buckets}
    if not by_key:
        return []
    keys = sorted(by_key)
    year, month = (int(part) for part in keys[0].split("-"))
    last = keys[-1]
    filled: List[PeriodBucket] = []
    while True:
        key = f"{year:04d}-{month:02d}"
        filled.append(by_key.get(key) or PeriodBucket(key=key))
        if key >= last:
            return filled
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)
