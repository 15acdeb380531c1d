from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest
from botocore.exceptions import ClientError

from finance_engine.models.notification import Notification, NotificationState, NotificationType, Priority
from finance_engine.notifications.store import DynamoNotificationStore, InMemoryNotificationStore

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)
DAY = timedelta(hours=24)


def _conditional_failure(operation):
    return ClientError({"Error": {"Code": "ConditionalCheckFailedException", "Message": "condition failed"}}, operation)


class FakeNotificationsTable:
    """Just enough of a boto3 Table for the notification store."""

    def __init__(self, fail=False, failing_notification_puts=0):
        self.items = {}
        self.fail = fail
        self.failing_notification_puts = failing_notification_puts

    def _check(self, operation):
        if self.fail:
            raise ClientError({"Error": {"Code": "ProvisionedThroughputExceededException", "Message": "slow down"}}, operation)

    def put_item(self, Item, ConditionExpression=None, ExpressionAttributeValues=None):
        self._check("PutItem")
        key = Item["notification_id"]
        if Item.get("record_type") == "notification" and self.failing_notification_puts:
            self.failing_notification_puts -= 1
            raise ClientError({"Error": {"Code": "InternalServerError", "Message": "try again"}}, "PutItem")
        if ConditionExpression:
            existing = self.items.get(key)
            if existing is not None and not existing["last_created_at"] < ExpressionAttributeValues[":cutoff"]:
                raise _conditional_failure("PutItem")
        self.items[key] = dict(Item)

    def get_item(self, Key):
        self._check("GetItem")
        item = self.items.get(Key["notification_id"])
        return {"Item": dict(item)} if item else {}

    def scan(self, FilterExpression=None, ExclusiveStartKey=None):
        self._check("Scan")
        items = list(self.items.values())
        if FilterExpression is not None:
            record_type = FilterExpression.get_expression()["values"][1]
            items = [i for i in items if i.get("record_type") == record_type]
        return {"Items": [dict(i) for i in items]}

    def update_item(self, Key, UpdateExpression, ConditionExpression, ExpressionAttributeValues):
        self._check("UpdateItem")
        item = self.items.get(Key["notification_id"])
        if item is None:
            raise _conditional_failure("UpdateItem")
        item["is_read"] = ExpressionAttributeValues[":read"]

    def delete_item(self, Key, ReturnValues=None, ConditionExpression=None, ExpressionAttributeValues=None):
        self._check("DeleteItem")
        if ConditionExpression:
            existing = self.items.get(Key["notification_id"])
            if existing is None or existing["last_created_at"] != ExpressionAttributeValues[":seen"]:
                raise _conditional_failure("DeleteItem")
        item = self.items.pop(Key["notification_id"], None)
        return {"Attributes": item} if item else {}


def notification(created_at=NOW, dedup_key="groceries", type=NotificationType.BUDGET_ALERT, **extra):
    return Notification(
        type=type,
        dedup_key=dedup_key,
        title="Budget Alert: Groceries",
        message="Over budget",
        created_at=created_at,
        **extra,
    )


@pytest.fixture(params=["memory", "dynamo"])
def store(request):
    if request.param == "memory":
        return InMemoryNotificationStore()
    return DynamoNotificationStore(table=FakeNotificationsTable())


def test_second_insert_within_cooldown_is_suppressed(store):
    assert store.create_if_absent(notification(), DAY) is not None
    assert store.create_if_absent(notification(NOW + timedelta(hours=23)), DAY) is None
    assert len(store.list()) == 1


def test_insert_allowed_after_cooldown(store):
    store.create_if_absent(notification(), DAY)
    assert store.create_if_absent(notification(NOW + timedelta(hours=25)), DAY) is not None
    assert len(store.list()) == 2


def test_dedup_is_per_type_and_key(store):
    store.create_if_absent(notification(), DAY)
    assert store.create_if_absent(notification(dedup_key="rent"), DAY) is not None
    assert store.create_if_absent(notification(type=NotificationType.EXPENSE_INSIGHT), DAY) is not None


def test_query_filters_and_orders_newest_first(store):
    older = store.create_if_absent(notification(NOW - timedelta(hours=2), dedup_key="a", priority=Priority.HIGH), DAY)
    newer = store.create_if_absent(notification(NOW, dedup_key="b", priority=Priority.LOW), DAY)
    assert [n.id for n in store.query()] == [newer.id, older.id]
    assert [n.id for n in store.query(priority=Priority.HIGH)] == [older.id]

    assert store.mark_read(older.id)
    assert [n.id for n in store.query(unread_only=True)] == [newer.id]
    assert store.unread_count() == 1


def test_mark_all_read_and_delete(store):
    first = store.create_if_absent(notification(dedup_key="a"), DAY)
    store.create_if_absent(notification(dedup_key="b"), DAY)
    assert store.mark_all_read() == 2
    assert store.unread_count() == 0
    assert store.delete(first.id)
    assert not store.delete(first.id)
    assert store.get(first.id) is None
    assert not store.mark_read("missing")


def test_purge_removes_old_and_expired(store):
    store.create_if_absent(notification(NOW - timedelta(days=40), dedup_key="old"), DAY)
    store.create_if_absent(notification(NOW, dedup_key="expired", expires_at=NOW - timedelta(minutes=1)), DAY)
    kept = store.create_if_absent(notification(NOW, dedup_key="fresh"), DAY)
    assert store.purge(NOW, timedelta(days=30)) == 2
    assert [n.id for n in store.list()] == [kept.id]


def test_notification_state():
    n = notification(expires_at=NOW + timedelta(days=1))
    assert n.state(NOW) is NotificationState.UNREAD
    assert n.model_copy(update={"is_read": True}).state(NOW) is NotificationState.READ
    assert n.state(NOW + timedelta(days=2)) is NotificationState.EXPIRED


def test_concurrent_inserts_create_exactly_one():
    store = InMemoryNotificationStore()
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: store.create_if_absent(notification(), DAY), range(50)))
    assert sum(1 for r in results if r is not None) == 1
    assert len(store.list()) == 1


def test_dynamo_round_trip_preserves_fields():
    table = FakeNotificationsTable()
    store = DynamoNotificationStore(table=table)
    created = store.create_if_absent(notification(data={"spent": 612.5, "budget": 500}), DAY)
    loaded = store.get(created.id)
    assert loaded == created
    # dedup marker rows never show up as notifications
    assert any(key.startswith("DEDUP#") for key in table.items)
    assert len(store.list()) == 1


def test_dynamo_errors_are_logged_not_raised():
    store = DynamoNotificationStore(table=FakeNotificationsTable(fail=True))
    assert store.create_if_absent(notification(), DAY) is None
    assert store.list() == []
    assert store.get("x") is None
    assert store.mark_read("x") is False
    assert store.delete("x") is False


def test_failed_write_releases_the_dedup_slot():
    table = FakeNotificationsTable(failing_notification_puts=1)
    store = DynamoNotificationStore(table=table)
    assert store.create_if_absent(notification(), DAY) is None
    assert not any(key.startswith("DEDUP#") for key in table.items)

    retried = store.create_if_absent(notification(NOW + timedelta(minutes=5)), DAY)
    assert retried is not None
    assert [n.id for n in store.list()] == [retried.id]


def test_cooldown_holds_across_utc_offsets(store):
    plus_two = timezone(timedelta(hours=2))
    store.create_if_absent(notification(), DAY)
    later = (NOW + timedelta(hours=23)).astimezone(plus_two)
    assert store.create_if_absent(notification(later), DAY) is None
    assert store.create_if_absent(notification(later + timedelta(hours=2)), DAY) is not None


def test_purge_prunes_stale_dedup_history(store):
    store.create_if_absent(notification(NOW - timedelta(days=10), dedup_key="tx-1"), DAY)
    store.create_if_absent(notification(NOW - timedelta(hours=1), dedup_key="tx-2"), DAY)
    store.purge(NOW, timedelta(days=30), dedup_horizon=timedelta(days=7))

    # tx-1 history is gone, tx-2 is still inside its cooldown
    assert store.create_if_absent(notification(NOW - timedelta(days=9), dedup_key="tx-1"), DAY) is not None
    assert store.create_if_absent(notification(NOW, dedup_key="tx-2"), DAY) is None


def test_dynamo_purge_deletes_stale_markers():
    table = FakeNotificationsTable()
    store = DynamoNotificationStore(table=table)
    store.create_if_absent(notification(NOW - timedelta(days=10), dedup_key="tx-1"), DAY)
    store.create_if_absent(notification(NOW, dedup_key="tx-2"), DAY)
    store.purge(NOW, timedelta(days=30), dedup_horizon=timedelta(days=7))
    assert sorted(k for k in table.items if k.startswith("DEDUP#")) == ["DEDUP#budget_alert#tx-2"]
