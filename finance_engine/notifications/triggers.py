"""
Notification Trigger Engine.

One pass evaluates every enabled trigger against a snapshot, hands the drafts
to the store (which enforces the per-type cooldown atomically) and finishes by
purging old notifications. A failing trigger is logged and skipped; the other
triggers still run.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from finance_engine.analytics.aggregation import month_key
from finance_engine.analytics.budget import budgeted_by_subcategory, calculate_budget_variance, spent_by_subcategory
from finance_engine.core.config import EngineConfig
from finance_engine.db.snapshot import Snapshot
from finance_engine.models.notification import Notification, NotificationDraft, NotificationType, Priority
from finance_engine.models.transaction import Account, AccountType, Period, TransactionCategory
from finance_engine.notifications.store import NotificationStore

logger = logging.getLogger(__name__)

NEVER_RECONCILED_DAYS = 999
UNCATEGORIZED_KEY = "uncategorized_transactions"
DUPLICATES_KEY = "duplicate_transactions"

Trigger = Callable[[Snapshot, datetime], List[NotificationDraft]]


def _previous_month(day: date) -> Tuple[date, date]:
    first_of_month = day.replace(day=1)
    last_of_previous = first_of_month - timedelta(days=1)
    return last_of_previous.replace(day=1), last_of_previous


class NotificationTriggerEngine:
    def __init__(self, store: NotificationStore, config: Optional[EngineConfig] = None) -> None:
        self._store = store
        self._config = config or EngineConfig()

    @property
    def store(self) -> NotificationStore:
        return self._store

    def _triggers(self) -> List[Tuple[str, bool, Trigger]]:
        cfg = self._config
        return [
            ("budget_threshold", cfg.budget_alerts_enabled, self.check_budget_thresholds),
            ("large_transaction", cfg.budget_alerts_enabled, self.check_large_transactions),
            ("low_balance", cfg.low_balance_alerts_enabled, self.check_low_balances),
            ("reconciliation", cfg.reconciliation_reminders_enabled, self.check_reconciliation),
            ("uncategorized", cfg.data_issues_enabled, self.check_uncategorized),
            ("duplicates", cfg.data_issues_enabled, self.check_duplicates),
            ("month_over_month", cfg.insights_enabled, self.check_month_over_month),
            ("monthly_summary", cfg.insights_enabled, self.check_monthly_summary),
            ("template_opportunity", cfg.insights_enabled, self.check_template_opportunities),
        ]

    def run_pass(self, snapshot: Snapshot, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Evaluate all enabled triggers once and persist what passes the cooldown."""
        now = _aware(now or datetime.now(timezone.utc))
        result: Dict[str, Any] = {"created": [], "skipped": 0, "failed_triggers": [], "purged": 0}
        if not self._config.notifications_enabled:
            logger.info("Notifications disabled; skipping pass")
            return result

        for name, enabled, trigger in self._triggers():
            if not enabled:
                continue
            try:
                drafts = trigger(snapshot, now)
                for draft in drafts:
                    created = self._emit(draft, now)
                    if created is None:
                        result["skipped"] += 1
                    else:
                        result["created"].append(created)
            except Exception:
                logger.exception(f"Notification trigger {name} failed")
                result["failed_triggers"].append(name)

        result["purged"] = self._store.purge(
            now,
            timedelta(days=self._config.notification_retention_days),
            dedup_horizon=timedelta(hours=max(self._config.cooldown_hours.values(), default=24)),
        )
        logger.info(
            "Notification pass: %s created, %s suppressed, %s failed triggers",
            len(result["created"]),
            result["skipped"],
            len(result["failed_triggers"]),
        )
        return result

    def _emit(self, draft: NotificationDraft, now: datetime) -> Optional[Notification]:
        cooldown = timedelta(hours=self._config.cooldown_for(draft.type))
        return self._store.create_if_absent(Notification.from_draft(draft, now), cooldown)

    # Budget

    def check_budget_thresholds(self, snapshot: Snapshot, now: datetime) -> List[NotificationDraft]:
        budget = snapshot.active_budget
        if budget is None:
            return []

        today = now.date()
        spent = spent_by_subcategory(snapshot.transactions, today.replace(day=1), today)
        names = snapshot.subcategory_names
        thresholds = sorted(self._config.budget_alert_thresholds)
        lowest = thresholds[0] if thresholds else 100.0

        drafts = []
        for subcategory_id, budgeted in budgeted_by_subcategory(budget, Period.MONTHLY).items():
            if budgeted <= 0:
                continue
            actual = spent.get(subcategory_id, 0.0)
            variance = calculate_budget_variance(actual, budgeted)
            utilization = actual / budgeted * 100
            if utilization < lowest and not variance.is_over_budget:
                continue

            crossed = [t for t in thresholds if utilization >= t]
            name = names.get(subcategory_id, subcategory_id)
            title = f"Budget Exceeded: {name}" if variance.is_over_budget else f"Budget Alert: {name}"
            drafts.append(
                NotificationDraft(
                    type=NotificationType.BUDGET_ALERT,
                    dedup_key=subcategory_id,
                    title=title,
                    message=f"{name}: {variance.description}. Spent: {actual:.2f}, Budget: {budgeted:.2f}",
                    data={
                        "subcategory_id": subcategory_id,
                        "subcategory_name": name,
                        "spent": actual,
                        "budget": budgeted,
                        "variance": variance.variance,
                        "variance_percentage": variance.variance_percentage,
                        "utilization_percentage": utilization,
                        "threshold": crossed[-1] if crossed else None,
                    },
                    priority=Priority.HIGH if utilization >= 100 else Priority.MEDIUM,
                )
            )
        return drafts

    def check_large_transactions(self, snapshot: Snapshot, now: datetime) -> List[NotificationDraft]:
        today = now.date()
        cutoff = today - timedelta(days=self._config.large_transaction_lookback_days)
        limit = self._config.large_transaction_amount

        drafts = []
        for transaction in snapshot.transactions:
            if not cutoff <= transaction.date <= today:
                continue
            if transaction.absolute_amount < limit:
                continue
            description = transaction.description or "Unknown"
            drafts.append(
                NotificationDraft(
                    type=NotificationType.LARGE_TRANSACTION,
                    dedup_key=transaction.id,
                    title="Large Transaction Detected",
                    message=(
                        f"Transaction of {transaction.absolute_amount:.2f} at {description} "
                        f"exceeds your {limit:.2f} threshold"
                    ),
                    data={
                        "transaction_id": transaction.id,
                        "amount": transaction.absolute_amount,
                        "threshold": limit,
                        "description": transaction.description,
                    },
                )
            )
        return drafts

    # Accounts

    def check_low_balances(self, snapshot: Snapshot, now: datetime) -> List[NotificationDraft]:
        drafts = []
        for account in snapshot.accounts:
            if not account.is_active:
                continue
            threshold = account.low_balance_threshold or self._config.low_balance_threshold
            if not 0 < account.balance <= threshold:
                continue
            drafts.append(
                NotificationDraft(
                    type=NotificationType.LOW_BALANCE,
                    dedup_key=account.id,
                    title="Low Balance Warning",
                    message=(
                        f"{account.name} balance ({account.balance:.2f}) is below your threshold of {threshold:.2f}"
                    ),
                    data={
                        "account_id": account.id,
                        "account_name": account.name,
                        "balance": account.balance,
                        "threshold": threshold,
                    },
                )
            )
        return drafts

    @staticmethod
    def days_since_reconciliation(account: Account, snapshot: Snapshot, now: datetime) -> int:
        moments = [
            t.reconciled_at for t in snapshot.transactions if t.account_id == account.id and t.reconciled_at
        ]
        if account.last_reconciled_at:
            moments.append(account.last_reconciled_at)
        if not moments:
            return NEVER_RECONCILED_DAYS
        latest = max(_aware(m) for m in moments)
        return max(0, (now - latest).days)

    def check_reconciliation(self, snapshot: Snapshot, now: datetime) -> List[NotificationDraft]:
        drafts = []
        for account in snapshot.accounts:
            if not account.is_active or account.account_type is not AccountType.BANK:
                continue
            days = self.days_since_reconciliation(account, snapshot, now)
            if days < self._config.reconciliation_overdue_days:
                continue
            drafts.append(
                NotificationDraft(
                    type=NotificationType.RECONCILIATION_REMINDER,
                    dedup_key=account.id,
                    title="Reconciliation Overdue",
                    message=f"{account.name} has not been reconciled for {days} days",
                    data={
                        "account_id": account.id,
                        "account_name": account.name,
                        "days_since_reconciliation": days,
                    },
                )
            )
        return drafts

    # Data quality

    def check_uncategorized(self, snapshot: Snapshot, now: datetime) -> List[NotificationDraft]:
        uncategorized = [t for t in snapshot.transactions if not t.subcategory_id]
        if not uncategorized:
            return []
        return [
            NotificationDraft(
                type=NotificationType.DATA_INCONSISTENCY,
                dedup_key=UNCATEGORIZED_KEY,
                title="Uncategorized Transactions",
                message=f"{len(uncategorized)} transactions need categorization",
                data={
                    "issue": UNCATEGORIZED_KEY,
                    "count": len(uncategorized),
                    "transaction_ids": [t.id for t in uncategorized[:10]],
                },
            )
        ]

    def find_duplicates(self, snapshot: Snapshot) -> List[Dict[str, Any]]:
        """Pairs with the same absolute amount on the same account within the duplicate window."""
        window = self._config.duplicate_window_days
        by_key: Dict[Tuple[Optional[str], float], List] = defaultdict(list)
        for transaction in snapshot.transactions:
            by_key[(transaction.account_id, round(transaction.absolute_amount, 2))].append(transaction)

        duplicates = []
        for (account_id, amount), group in by_key.items():
            group.sort(key=lambda t: t.date)
            for i, first in enumerate(group):
                for second in group[i + 1:]:
                    if (second.date - first.date).days > window:
                        break
                    duplicates.append(
                        {
                            "transaction_ids": [first.id, second.id],
                            "amount": amount,
                            "descriptions": [first.description or "No description", second.description or "No description"],
                            "dates": [first.date.isoformat(), second.date.isoformat()],
                            "account_id": account_id,
                        }
                    )
        return duplicates

    def check_duplicates(self, snapshot: Snapshot, now: datetime) -> List[NotificationDraft]:
        duplicates = self.find_duplicates(snapshot)
        if not duplicates:
            return []
        example = duplicates[0]
        description, amount = example["descriptions"][0], example["amount"]
        if len(duplicates) == 1:
            message = f'Potential duplicate found: "{description}" ({amount:.2f}) appears twice.'
        else:
            message = f'{len(duplicates)} potential duplicates found. Example: "{description}" ({amount:.2f}).'
        return [
            NotificationDraft(
                type=NotificationType.DUPLICATE_DETECTION,
                dedup_key=DUPLICATES_KEY,
                title="Potential Duplicate Transactions",
                message=message,
                data={"issue": DUPLICATES_KEY, "duplicate_count": len(duplicates), "duplicates": duplicates[:5]},
            )
        ]

    # Insights

    def check_month_over_month(self, snapshot: Snapshot, now: datetime) -> List[NotificationDraft]:
        today = now.date()
        previous_start, previous_end = _previous_month(today)
        current = spent_by_subcategory(snapshot.transactions, today.replace(day=1), today)
        previous = spent_by_subcategory(snapshot.transactions, previous_start, previous_end)
        names = snapshot.subcategory_names

        drafts = []
        for subcategory_id, previous_spent in sorted(previous.items()):
            if previous_spent <= 0:
                continue
            current_spent = current.get(subcategory_id, 0.0)
            change = (current_spent - previous_spent) / previous_spent * 100
            if change < self._config.month_over_month_increase_pct:
                continue
            name = names.get(subcategory_id, subcategory_id)
            drafts.append(
                NotificationDraft(
                    type=NotificationType.EXPENSE_INSIGHT,
                    dedup_key=subcategory_id,
                    title=f"{name} Expense Increase",
                    message=(
                        f"You spent {round(change)}% more on {name} this month "
                        f"({current_spent:.2f} vs {previous_spent:.2f} last month)"
                    ),
                    data={
                        "subcategory_id": subcategory_id,
                        "subcategory_name": name,
                        "current_amount": current_spent,
                        "previous_amount": previous_spent,
                        "change_percent": round(change),
                    },
                    priority=Priority.LOW,
                )
            )
        return drafts

    def check_monthly_summary(self, snapshot: Snapshot, now: datetime) -> List[NotificationDraft]:
        today = now.date()
        if today.day != 1:
            return []
        start, end = _previous_month(today)
        transactions = [t for t in snapshot.transactions if start <= t.date <= end]
        spent = sum(t.absolute_amount for t in transactions if t.category_id is TransactionCategory.EXPENSE)
        income = sum(t.absolute_amount for t in transactions if t.category_id is TransactionCategory.INCOME)
        month_name = start.strftime("%B")
        return [
            NotificationDraft(
                type=NotificationType.MONTHLY_SUMMARY,
                dedup_key=month_key(start),
                title=f"{month_name} Financial Summary",
                message=f"Total spent: {spent:.2f}, Total income: {income:.2f}, Net: {income - spent:.2f}",
                data={
                    "month": month_key(start),
                    "month_name": month_name,
                    "total_spent": spent,
                    "total_income": income,
                    "net_amount": income - spent,
                    "transaction_count": len(transactions),
                },
                priority=Priority.LOW,
            )
        ]

    def find_template_opportunities(self, snapshot: Snapshot) -> List[Dict[str, Any]]:
        groups: Dict[str, List] = defaultdict(list)
        for transaction in snapshot.transactions:
            if transaction.is_templated or not transaction.description:
                continue
            merchant = transaction.description.lower().strip()
            if merchant:
                groups[merchant].append(transaction)

        templates = [
            ((template.name or "").lower().strip(), (template.description or "").lower().strip())
            for template in snapshot.templates
        ]

        def has_template(merchant: str) -> bool:
            return any(
                merchant in name or (desc and merchant in desc) or (name and name in merchant)
                for name, desc in templates
            )

        opportunities = []
        for merchant, transactions in groups.items():
            if len(transactions) < self._config.template_min_occurrences or has_template(merchant):
                continue
            opportunities.append(
                {
                    "merchant_name": merchant,
                    "transaction_description": transactions[0].description,
                    "count": len(transactions),
                    "transaction_ids": [t.id for t in transactions[:5]],
                }
            )
        opportunities.sort(key=lambda o: o["count"], reverse=True)
        return opportunities[: self._config.template_max_suggestions]

    def check_template_opportunities(self, snapshot: Snapshot, now: datetime) -> List[NotificationDraft]:
        return [
            NotificationDraft(
                type=NotificationType.TEMPLATE_OPPORTUNITY,
                dedup_key=opportunity["merchant_name"],
                title="Template Suggestion",
                message=(
                    f'You have {opportunity["count"]} similar transactions for '
                    f'"{opportunity["merchant_name"]}". Create a template?'
                ),
                data=opportunity,
                priority=Priority.LOW,
            )
            for opportunity in self.find_template_opportunities(snapshot)
        ]

    # Store delegation

    def list_notifications(
        self,
        unread_only: bool = False,
        notification_type: Optional[NotificationType] = None,
        priority: Optional[Priority] = None,
    ) -> List[Notification]:
        return self._store.query(unread_only=unread_only, notification_type=notification_type, priority=priority)

    def mark_read(self, notification_id: str) -> bool:
        return self._store.mark_read(notification_id)

    def mark_all_read(self) -> int:
        return self._store.mark_all_read()

    def delete(self, notification_id: str) -> bool:
        return self._store.delete(notification_id)

    def unread_count(self) -> int:
        return self._store.unread_count()


def _aware(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)
