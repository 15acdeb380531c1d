from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

from pydantic import BaseModel, Field


class NotificationType(str, Enum):
    BUDGET_ALERT = "budget_alert"
    LARGE_TRANSACTION = "large_transaction"
    LOW_BALANCE = "low_balance"
    RECONCILIATION_REMINDER = "reconciliation_reminder"
    DATA_INCONSISTENCY = "data_inconsistency"
    DUPLICATE_DETECTION = "duplicate_detection"
    EXPENSE_INSIGHT = "expense_insight"
    MONTHLY_SUMMARY = "monthly_summary"
    TEMPLATE_OPPORTUNITY = "template_opportunity"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class NotificationState(str, Enum):
    UNREAD = "unread"
    READ = "read"
    EXPIRED = "expired"


class NotificationDraft(BaseModel):
    """A notification a trigger wants to raise, before the cooldown check."""

    type: NotificationType
    dedup_key: str
    title: str
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)
    priority: Priority = Priority.MEDIUM
    expires_at: Optional[datetime] = None


class Notification(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    type: NotificationType
    dedup_key: str
    priority: Priority = Priority.MEDIUM
    title: str
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    is_read: bool = False
    expires_at: Optional[datetime] = None

    @classmethod
    def from_draft(cls, draft: NotificationDraft, created_at: datetime) -> "Notification":
        return cls(created_at=created_at, **draft.model_dump())

    def state(self, now: datetime) -> NotificationState:
        if self.expires_at is not None and self.expires_at <= now:
            return NotificationState.EXPIRED
        return NotificationState.READ if self.is_read else NotificationState.UNREAD


class NotificationPublic(BaseModel):
    id: str
    type: NotificationType
    priority: Priority
    title: str
    message: str
    data: Dict[str, Any]
    created_at: datetime
    is_read: bool
    expires_at: Optional[datetime] = None
