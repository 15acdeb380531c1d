from datetime import date, datetime, timedelta, timezone

from finance_engine.core.config import EngineConfig
from finance_engine.db.snapshot import Snapshot
from finance_engine.models.notification import NotificationType, Priority
from finance_engine.models.transaction import (
    Account,
    AccountType,
    Budget,
    BudgetLineItem,
    TransactionCategory,
    TransactionTemplate,
)
from finance_engine.notifications.store import InMemoryNotificationStore
from finance_engine.notifications.triggers import NEVER_RECONCILED_DAYS, NotificationTriggerEngine

from conftest import make_transaction

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)

grocery_budget = Budget(
    id="b1",
    name="2025",
    line_items=[BudgetLineItem(subcategory_id="groceries", subcategory_name="Groceries", amount=500.0)],
)


def engine(config=None):
    return NotificationTriggerEngine(InMemoryNotificationStore(), config or EngineConfig())


def of_type(notifications, notification_type):
    return [n for n in notifications if n.type == notification_type]


def spend(amount, day=date(2025, 6, 10), id="g1", **extra):
    return make_transaction(id, day, -amount, subcategory_id="groceries", **extra)


# Budget thresholds

def test_budget_overrun_twice_within_a_day_notifies_once():
    snapshot = Snapshot(transactions=[spend(600.0)], budgets=[grocery_budget])
    e = engine()

    first = e.run_pass(snapshot, NOW)
    second = e.run_pass(snapshot, NOW + timedelta(hours=3))

    assert len(of_type(first["created"], NotificationType.BUDGET_ALERT)) == 1
    assert of_type(second["created"], NotificationType.BUDGET_ALERT) == []
    assert len(e.list_notifications(notification_type=NotificationType.BUDGET_ALERT)) == 1

    later = e.run_pass(snapshot, NOW + timedelta(hours=25))
    assert len(of_type(later["created"], NotificationType.BUDGET_ALERT)) == 1


def test_budget_alert_levels():
    e = engine()
    cases = [(350.0, None), (425.0, (Priority.MEDIUM, 80.0)), (510.0, (Priority.HIGH, 100.0)), (625.0, (Priority.HIGH, 120.0))]
    for amount, expected in cases:
        drafts = e.check_budget_thresholds(Snapshot(transactions=[spend(amount)], budgets=[grocery_budget]), NOW)
        if expected is None:
            assert drafts == []
            continue
        (draft,) = drafts
        assert (draft.priority, draft.data["threshold"]) == expected
        assert draft.dedup_key == "groceries"


def test_budget_alert_counts_current_month_only():
    transactions = [spend(450.0, date(2025, 5, 30), "may"), spend(100.0, date(2025, 6, 2), "june")]
    drafts = engine().check_budget_thresholds(Snapshot(transactions=transactions, budgets=[grocery_budget]), NOW)
    assert drafts == []


def test_budget_alert_normalizes_weekly_budget():
    weekly = Budget(id="w", line_items=[BudgetLineItem(subcategory_id="groceries", amount=100.0, period="weekly")])
    (draft,) = engine().check_budget_thresholds(Snapshot(transactions=[spend(400.0)], budgets=[weekly]), NOW)
    assert draft.priority is Priority.MEDIUM
    assert round(draft.data["budget"], 2) == 433.33


def test_inactive_budget_ignored():
    archived = grocery_budget.model_copy(update={"status": "archived"})
    assert engine().check_budget_thresholds(Snapshot(transactions=[spend(900.0)], budgets=[archived]), NOW) == []


# Large transactions

def test_large_transactions_in_last_week():
    transactions = [
        spend(750.0, date(2025, 6, 12), "big"),
        spend(750.0, date(2025, 5, 1), "old"),
        spend(499.0, date(2025, 6, 13), "small"),
        make_transaction("xfer", date(2025, 6, 14), -1000.0, TransactionCategory.TRANSFER, subcategory_id="savings"),
    ]
    drafts = engine().check_large_transactions(Snapshot(transactions=transactions), NOW)
    assert sorted(d.dedup_key for d in drafts) == ["big", "xfer"]


# Accounts

def test_low_balance_window():
    accounts = [
        Account(id="low", name="Checking", balance=200.0),
        Account(id="zero", name="Empty", balance=0.0),
        Account(id="overdrawn", name="Overdrawn", balance=-50.0),
        Account(id="fine", name="Savings", balance=600.0),
        Account(id="custom", name="Bills", balance=800.0, low_balance_threshold=1000.0),
        Account(id="closed", name="Closed", balance=10.0, is_active=False),
    ]
    drafts = engine().check_low_balances(Snapshot(accounts=accounts), NOW)
    assert sorted(d.dedup_key for d in drafts) == ["custom", "low"]


def test_reconciliation_only_for_bank_accounts():
    accounts = [
        Account(id="never", name="Checking"),
        Account(id="card", name="Visa", account_type=AccountType.CREDIT_CARD),
        Account(id="recent", name="Savings", last_reconciled_at=NOW - timedelta(days=3)),
        Account(id="via-txn", name="Joint"),
    ]
    transactions = [spend(10.0, id="r1", account_id="via-txn", reconciled_at=NOW - timedelta(days=10))]
    drafts = engine().check_reconciliation(Snapshot(accounts=accounts, transactions=transactions), NOW)
    days = {d.dedup_key: d.data["days_since_reconciliation"] for d in drafts}
    assert days == {"never": NEVER_RECONCILED_DAYS, "via-txn": 10}


# Data issues

def test_uncategorized_transactions_single_notification():
    transactions = [make_transaction(f"u{i}", date(2025, 6, i + 1), -5.0, subcategory_id=None) for i in range(3)]
    (draft,) = engine().check_uncategorized(Snapshot(transactions=transactions), NOW)
    assert draft.dedup_key == "uncategorized_transactions"
    assert draft.data["count"] == 3


def test_duplicate_detection():
    transactions = [
        spend(42.0, date(2025, 6, 1), "a", description="Shop"),
        spend(42.0, date(2025, 6, 2), "b", description="Shop"),
        spend(42.0, date(2025, 6, 9), "c"),
        spend(42.0, date(2025, 6, 2), "d", account_id="acc-2"),
    ]
    e = engine()
    duplicates = e.find_duplicates(Snapshot(transactions=transactions))
    assert [d["transaction_ids"] for d in duplicates] == [["a", "b"]]

    (draft,) = e.check_duplicates(Snapshot(transactions=transactions), NOW)
    assert draft.message == 'Potential duplicate found: "Shop" (42.00) appears twice.'


# Insights

def test_month_over_month_increase_threshold():
    def drafts(current):
        transactions = [spend(100.0, date(2025, 5, 10), "may"), spend(current, date(2025, 6, 10), "june")]
        return engine().check_month_over_month(Snapshot(transactions=transactions), NOW)

    assert drafts(129.0) == []
    (draft,) = drafts(130.0)
    assert draft.type is NotificationType.EXPENSE_INSIGHT
    assert draft.data["change_percent"] == 30


def test_monthly_summary_only_on_first_day():
    transactions = [
        spend(300.0, date(2025, 5, 10), "may"),
        make_transaction("pay", date(2025, 5, 1), 2000.0, TransactionCategory.INCOME, subcategory_id="salary"),
    ]
    snapshot = Snapshot(transactions=transactions)
    e = engine()
    assert e.check_monthly_summary(snapshot, NOW) == []

    first_of_june = datetime(2025, 6, 1, 8, 0, tzinfo=timezone.utc)
    (draft,) = e.check_monthly_summary(snapshot, first_of_june)
    assert draft.dedup_key == "2025-05"
    assert draft.data["net_amount"] == 1700.0

    e.run_pass(snapshot, first_of_june)
    repeat = e.run_pass(snapshot, first_of_june + timedelta(hours=6))
    assert of_type(repeat["created"], NotificationType.MONTHLY_SUMMARY) == []


def test_template_opportunities():
    coffee = [spend(4.0, date(2025, 6, i), f"c{i}", description="Coffee Bar") for i in range(1, 4)]
    templated = [spend(9.0, date(2025, 6, i), f"t{i}", description="Lunch", is_templated=True) for i in range(1, 5)]
    e = engine()

    drafts = e.check_template_opportunities(Snapshot(transactions=coffee + templated), NOW)
    assert [d.dedup_key for d in drafts] == ["coffee bar"]
    assert drafts[0].priority is Priority.LOW

    template = TransactionTemplate(id="tpl", name="Coffee Bar")
    assert e.check_template_opportunities(Snapshot(transactions=coffee, templates=[template]), NOW) == []


# Pass behaviour

def test_failing_trigger_does_not_stop_the_pass(monkeypatch):
    e = engine()

    def broken(snapshot, now):
        raise RuntimeError("boom")

    monkeypatch.setattr(e, "check_low_balances", broken)
    snapshot = Snapshot(transactions=[spend(600.0)], budgets=[grocery_budget])
    result = e.run_pass(snapshot, NOW)

    assert result["failed_triggers"] == ["low_balance"]
    assert len(of_type(result["created"], NotificationType.BUDGET_ALERT)) == 1


def test_disabled_notifications_do_nothing():
    e = engine(EngineConfig(notifications_enabled=False))
    result = e.run_pass(Snapshot(transactions=[spend(600.0)], budgets=[grocery_budget]), NOW)
    assert result["created"] == []


def test_feature_flags_skip_triggers():
    e = engine(EngineConfig(budget_alerts_enabled=False))
    result = e.run_pass(Snapshot(transactions=[spend(600.0)], budgets=[grocery_budget]), NOW)
    assert of_type(result["created"], NotificationType.BUDGET_ALERT) == []
    assert of_type(result["created"], NotificationType.LARGE_TRANSACTION) == []


def test_pass_purges_old_notifications():
    e = engine()
    snapshot = Snapshot(accounts=[Account(id="low", name="Wallet", account_type=AccountType.CASH, balance=100.0)])
    e.run_pass(snapshot, NOW - timedelta(days=40))
    assert e.unread_count() == 1

    result = e.run_pass(snapshot, NOW)
    assert result["purged"] == 1
    (notification,) = e.list_notifications()
    assert notification.created_at == NOW


def test_engine_delegates_to_store():
    e = engine()
    e.run_pass(Snapshot(accounts=[Account(id="low", name="Wallet", account_type=AccountType.CASH, balance=100.0)]), NOW)
    (notification,) = e.list_notifications()
    assert e.mark_read(notification.id)
    assert e.unread_count() == 0
    assert e.delete(notification.id)
    assert e.list_notifications() == []


def test_pass_time_is_normalized_to_utc():
    e = engine()
    local_now = NOW.astimezone(timezone(timedelta(hours=2)))
    result = e.run_pass(Snapshot(accounts=[Account(id="low", name="Wallet", account_type=AccountType.CASH, balance=100.0)]), local_now)
    (notification,) = result["created"]
    assert notification.created_at == NOW
    assert notification.created_at.utcoffset() == timedelta(0)
