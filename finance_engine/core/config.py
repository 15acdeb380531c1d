from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from finance_engine.models.notification import NotificationType
from finance_engine.models.transaction import TransactionCategory


DEFAULT_CATEGORY_CODES: Dict[str, TransactionCategory] = {
    "CAT_001": TransactionCategory.INCOME,
    "CAT_002": TransactionCategory.EXPENSE,
    "CAT_003": TransactionCategory.TRANSFER,
    "income": TransactionCategory.INCOME,
    "expense": TransactionCategory.EXPENSE,
    "transfer": TransactionCategory.TRANSFER,
}

DEFAULT_COOLDOWN_HOURS: Dict[NotificationType, int] = {
    NotificationType.BUDGET_ALERT: 24,
    NotificationType.LARGE_TRANSACTION: 24,
    NotificationType.LOW_BALANCE: 24,
    NotificationType.MONTHLY_SUMMARY: 24,
    NotificationType.RECONCILIATION_REMINDER: 72,
    NotificationType.DATA_INCONSISTENCY: 72,
    NotificationType.DUPLICATE_DETECTION: 72,
    NotificationType.TEMPLATE_OPPORTUNITY: 168,
    NotificationType.EXPENSE_INSIGHT: 168,
}


class EngineConfig(BaseModel):
    """
    Immutable thresholds for one analysis or notification pass.

    Amount thresholds are absolute currency units of the ledger, not ratios.
    """

    model_config = ConfigDict(frozen=True)

    # Notifications
    notifications_enabled: bool = True
    budget_alerts_enabled: bool = True
    low_balance_alerts_enabled: bool = True
    reconciliation_reminders_enabled: bool = True
    data_issues_enabled: bool = True
    insights_enabled: bool = True
    budget_alert_thresholds: List[float] = Field(default_factory=lambda: [80.0, 100.0, 120.0])
    large_transaction_amount: float = 500.0
    large_transaction_lookback_days: int = 7
    low_balance_threshold: float = 500.0
    reconciliation_overdue_days: int = 7
    notification_retention_days: int = 30
    duplicate_window_days: int = 2
    month_over_month_increase_pct: float = 30.0
    template_min_occurrences: int = 3
    template_max_suggestions: int = 3
    cooldown_hours: Dict[NotificationType, int] = Field(default_factory=lambda: dict(DEFAULT_COOLDOWN_HOURS))

    # Statistics
    trend_threshold: float = 5.0
    category_trend_threshold: float = 2.0
    anomaly_z_threshold: float = 2.0
    extreme_z_threshold: float = 3.0
    correlation_threshold: float = 0.3
    strong_correlation_threshold: float = 0.7
    description_max_length: int = 20
    recurring_amount_rounding: float = 10.0

    # Forecasting
    forecast_lookback_months: int = 3
    on_track_band: float = 100.0
    high_risk_variance: float = 200.0

    category_codes: Dict[str, TransactionCategory] = Field(default_factory=lambda: dict(DEFAULT_CATEGORY_CODES))

    def cooldown_for(self, notification_type: NotificationType) -> int:
        return self.cooldown_hours.get(notification_type, 24)

    def resolve_category(self, code: str) -> TransactionCategory:
        try:
            return self.category_codes[code]
        except KeyError:
            raise ValueError(f"Unknown category code: {code}") from None


class Settings(BaseSettings):
    # App settings
    PROJECT_NAME: str = "FinanceEngine"
    API_PREFIX: str = "/api"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8000"]

    # DynamoDB
    DYNAMO_REGION: str = "eu-west-1"
    DYNAMO_TRANSACTIONS_TABLE: str = "finance-engine-transactions"
    DYNAMO_BUDGETS_TABLE: str = "finance-engine-budgets"
    DYNAMO_ACCOUNTS_TABLE: str = "finance-engine-accounts"
    DYNAMO_TEMPLATES_TABLE: str = "finance-engine-templates"
    DYNAMO_NOTIFICATIONS_TABLE: str = "finance-engine-notifications"

    # Scheduler
    SCHEDULER_ENABLED: bool = False
    NOTIFICATION_PASS_INTERVAL_MINUTES: int = 60

    # Engine thresholds (see EngineConfig)
    BUDGET_ALERT_THRESHOLDS: List[float] = [80.0, 100.0, 120.0]
    LARGE_TRANSACTION_AMOUNT: float = 500.0
    LOW_BALANCE_THRESHOLD: float = 500.0
    RECONCILIATION_OVERDUE_DAYS: int = 7
    NOTIFICATION_RETENTION_DAYS: int = 30
    ANOMALY_Z_THRESHOLD: float = 2.0
    HIGH_RISK_VARIANCE: float = 200.0
    DESCRIPTION_MAX_LENGTH: int = 20

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    def engine_config(self) -> EngineConfig:
        return EngineConfig(
            budget_alert_thresholds=sorted(self.BUDGET_ALERT_THRESHOLDS),
            large_transaction_amount=self.LARGE_TRANSACTION_AMOUNT,
            low_balance_threshold=self.LOW_BALANCE_THRESHOLD,
            reconciliation_overdue_days=self.RECONCILIATION_OVERDUE_DAYS,
            notification_retention_days=self.NOTIFICATION_RETENTION_DAYS,
            anomaly_z_threshold=self.ANOMALY_Z_THRESHOLD,
            high_risk_variance=self.HIGH_RISK_VARIANCE,
            description_max_length=self.DESCRIPTION_MAX_LENGTH,
        )


settings = Settings()
