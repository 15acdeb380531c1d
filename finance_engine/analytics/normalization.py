"""
Period normalization for budget amounts.

Every conversion pivots through the monthly amount so that converting there
and back returns the original value (within float tolerance).
"""
from __future__ import annotations

from finance_engine.models.transaction import Period

WEEKS_PER_MONTH = 52 / 12


def to_monthly(amount: float, period: Period | str) -> float:
    period = Period(period)
    if period is Period.WEEKLY:
        return amount * WEEKS_PER_MONTH
    if period is Period.QUARTERLY:
        return amount / 3
    if period is Period.YEARLY:
        return amount / 12
    return amount


def from_monthly(amount: float, period: Period | str) -> float:
    period = Period(period)
    if period is Period.WEEKLY:
        return amount / WEEKS_PER_MONTH
    if period is Period.QUARTERLY:
        return amount * 3
    if period is Period.YEARLY:
        return amount * 12
    return amount


def normalize_period(amount: float, from_period: Period | str, to_period: Period | str) -> float:
    """Convert ``amount`` expressed per ``from_period`` into ``to_period``."""
    if Period(from_period) is Period(to_period):
        return amount
    return from_monthly(to_monthly(amount, from_period), to_period)
