"""
Recurring transaction detection.

Transactions are clustered by a signature of subcategory, normalized
description and amount rounded to the nearest 10. A cluster is confirmed as
recurring when it has at least three occurrences spaced at a steady interval
between one week and one quarter.
"""
from __future__ import annotations

import math
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from finance_engine.analytics.stats import clamp, mean, population_stddev
from finance_engine.models.transaction import Transaction

MIN_OCCURRENCES = 3
MAX_INTERVAL_STDDEV_DAYS = 7
MIN_MEAN_INTERVAL_DAYS = 7
MAX_MEAN_INTERVAL_DAYS = 90

_DIGITS = re.compile(r"\d+")
_NON_LETTERS = re.compile(r"[^a-z\s]")

SignatureKey = Tuple[Optional[str], str, float]


@dataclass
class RecurringCandidate:
    description: str
    subcategory_id: Optional[str]
    category_id: str
    transactions: List[Transaction] = field(default_factory=list)

    @property
    def amounts(self) -> List[float]:
        return [t.absolute_amount for t in self.transactions]


@dataclass
class RecurringPattern:
    description: str
    subcategory_id: Optional[str]
    category_id: str
    frequency: int
    average_amount: float
    occurrences: int
    confidence: float
    interval_stddev: float
    amount_stddev: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def normalize_description(description: Optional[str], max_length: int = 20) -> str:
    text = (description or "").lower()
    text = _DIGITS.sub("", text)
    text = _NON_LETTERS.sub("", text)
    return text.strip()[:max_length]


def round_to_nearest(amount: float, step: float = 10.0) -> float:
    # Half-up rounding; ``round`` would use banker's rounding on exact halves.
    if step <= 0:
        return amount
    return math.floor(amount / step + 0.5) * step


def signature(transaction: Transaction, max_length: int = 20, step: float = 10.0) -> SignatureKey:
    return (
        transaction.subcategory_id,
        normalize_description(transaction.description, max_length),
        round_to_nearest(transaction.absolute_amount, step),
    )


def find_candidates(
    transactions: Sequence[Transaction],
    description_max_length: int = 20,
    amount_step: float = 10.0,
) -> List[RecurringCandidate]:
    groups: Dict[SignatureKey, RecurringCandidate] = {}
    for transaction in transactions:
        key = signature(transaction, description_max_length, amount_step)
        if key not in groups:
            groups[key] = RecurringCandidate(
                description=transaction.description or "",
                subcategory_id=transaction.subcategory_id,
                category_id=transaction.category_id.value,
            )
        groups[key].transactions.append(transaction)
    return [c for c in groups.values() if len(c.transactions) >= MIN_OCCURRENCES]


def intervals_in_days(transactions: Sequence[Transaction]) -> List[float]:
    ordered = sorted(transactions, key=lambda t: t.date)
    return [float((b.date - a.date).days) for a, b in zip(ordered, ordered[1:])]


def is_recurring(intervals: Sequence[float]) -> bool:
    if len(intervals) < 2:
        return False
    average = mean(intervals)
    return (
        population_stddev(intervals) < MAX_INTERVAL_STDDEV_DAYS
        and MIN_MEAN_INTERVAL_DAYS <= average <= MAX_MEAN_INTERVAL_DAYS
    )


def recurring_confidence(intervals: Sequence[float], amounts: Sequence[float]) -> float:
    interval_consistency = clamp(1 - population_stddev(intervals) / 30) if intervals else 0.0

    amount_stddev = population_stddev(amounts)
    largest = max(amounts) if amounts else 0.0
    if largest > 0:
        amount_consistency = clamp(1 - amount_stddev / largest)
    else:
        amount_consistency = 1.0 if amounts and amount_stddev == 0 else 0.0

    frequency_score = clamp(len(amounts) / 6)
    return clamp((interval_consistency + amount_consistency + frequency_score) / 3)


def validate_candidates(candidates: Sequence[RecurringCandidate]) -> List[RecurringPattern]:
    patterns: List[RecurringPattern] = []
    for candidate in candidates:
        intervals = intervals_in_days(candidate.transactions)
        if not is_recurring(intervals):
            continue
        amounts = candidate.amounts
        patterns.append(
            RecurringPattern(
                description=candidate.description,
                subcategory_id=candidate.subcategory_id,
                category_id=candidate.category_id,
                frequency=round(mean(intervals)),
                average_amount=mean(amounts),
                occurrences=len(candidate.transactions),
                confidence=recurring_confidence(intervals, amounts),
                interval_stddev=population_stddev(intervals),
                amount_stddev=population_stddev(amounts),
            )
        )
    patterns.sort(key=lambda p: p.confidence, reverse=True)
    return patterns


def detect_recurring(
    transactions: Sequence[Transaction],
    description_max_length: int = 20,
    amount_step: float = 10.0,
) -> Dict[str, Any]:
    candidates = find_candidates(transactions, description_max_length, amount_step)
    patterns = validate_candidates(candidates)
    return {
        "candidates": len(candidates),
        "confirmed": len(patterns),
        "patterns": [p.to_dict() for p in patterns],
        "total_recurring_amount": sum(p.average_amount for p in patterns),
        "coverage": len(patterns) / len(transactions) if transactions else 0.0,
    }
