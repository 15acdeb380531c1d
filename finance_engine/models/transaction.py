from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class TransactionCategory(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class Period(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class AccountType(str, Enum):
    BANK = "bank"
    CREDIT_CARD = "credit_card"
    CASH = "cash"
    INVESTMENT = "investment"
    LOAN = "loan"
    OTHER = "other"


class Transaction(BaseModel):
    id: str
    date: date
    amount: float  # signed: negative for money leaving the account
    category_id: TransactionCategory
    subcategory_id: Optional[str] = None
    subcategory_name: Optional[str] = None
    description: Optional[str] = ""
    account_id: Optional[str] = None
    reconciled_at: Optional[datetime] = None
    is_templated: bool = False

    @property
    def absolute_amount(self) -> float:
        return abs(self.amount)


class Account(BaseModel):
    id: str
    name: str
    account_type: AccountType = AccountType.BANK
    balance: float = 0.0
    is_active: bool = True
    low_balance_threshold: Optional[float] = None
    last_reconciled_at: Optional[datetime] = None


class BudgetLineItem(BaseModel):
    subcategory_id: str
    subcategory_name: Optional[str] = None
    amount: float
    period: Period = Period.MONTHLY


class Budget(BaseModel):
    id: str
    name: Optional[str] = ""
    status: str = "active"
    line_items: List[BudgetLineItem] = Field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.status == "active"


class TransactionTemplate(BaseModel):
    id: str
    name: str
    description: Optional[str] = ""
