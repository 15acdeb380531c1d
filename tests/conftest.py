from datetime import date
from typing import Optional

import pytest

from finance_engine.core.config import EngineConfig
from finance_engine.models.transaction import Transaction, TransactionCategory


def make_transaction(
    id: str,
    day: date,
    amount: float,
    category: TransactionCategory = TransactionCategory.EXPENSE,
    subcategory_id: Optional[str] = "groceries",
    description: str = "",
    account_id: Optional[str] = "acc-1",
    **extra,
) -> Transaction:
    return Transaction(
        id=id,
        date=day,
        amount=amount,
        category_id=category,
        subcategory_id=subcategory_id,
        description=description,
        account_id=account_id,
        **extra,
    )


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig()
