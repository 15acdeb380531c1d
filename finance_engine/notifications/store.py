"""
Notification persistence.

``create_if_absent`` is the only way to create a notification. It performs the
cooldown check and the insert as one atomic step, keyed by
``(type, dedup_key)``, so two concurrent passes cannot both create the same
notification inside its cooldown window.
"""
from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from botocore.exceptions import ClientError

from finance_engine.db import dynamo
from finance_engine.models.notification import Notification, NotificationType, Priority

logger = logging.getLogger(__name__)

DedupId = Tuple[NotificationType, str]


class NotificationStore(ABC):
    @abstractmethod
    def create_if_absent(self, notification: Notification, cooldown: timedelta) -> Optional[Notification]:
        """Insert unless a notification with the same type and dedup key exists within ``cooldown``."""

    @abstractmethod
    def list(self) -> List[Notification]:
        ...

    @abstractmethod
    def get(self, notification_id: str) -> Optional[Notification]:
        ...

    @abstractmethod
    def mark_read(self, notification_id: str) -> bool:
        ...

    @abstractmethod
    def delete(self, notification_id: str) -> bool:
        ...

    @abstractmethod
    def prune_dedup(self, before: datetime) -> int:
        """Forget dedup history last used before ``before``."""

    def mark_all_read(self) -> int:
        count = 0
        for notification in self.list():
            if not notification.is_read and self.mark_read(notification.id):
                count += 1
        return count

    def query(
        self,
        unread_only: bool = False,
        notification_type: Optional[NotificationType] = None,
        priority: Optional[Priority] = None,
    ) -> List[Notification]:
        notifications = sorted(self.list(), key=lambda n: n.created_at, reverse=True)
        if unread_only:
            notifications = [n for n in notifications if not n.is_read]
        if notification_type is not None:
            notifications = [n for n in notifications if n.type == notification_type]
        if priority is not None:
            notifications = [n for n in notifications if n.priority == priority]
        return notifications

    def unread_count(self) -> int:
        return sum(1 for n in self.list() if not n.is_read)

    def purge(self, now: datetime, retention: timedelta, dedup_horizon: Optional[timedelta] = None) -> int:
        """
        Delete expired notifications and those older than ``retention``.

        With ``dedup_horizon`` (the longest cooldown), dedup history older than
        it is dropped as well; it can no longer suppress anything.
        """
        cutoff = now - retention
        removed = 0
        for notification in self.list():
            expired = notification.expires_at is not None and notification.expires_at <= now
            if (expired or notification.created_at < cutoff) and self.delete(notification.id):
                removed += 1
        if removed:
            logger.info(f"Cleaned up {removed} old notifications")
        if dedup_horizon is not None:
            pruned = self.prune_dedup(now - dedup_horizon)
            if pruned:
                logger.info(f"Pruned {pruned} stale dedup entries")
        return removed


class InMemoryNotificationStore(NotificationStore):
    """Process-local store; a lock makes the dedup check and insert atomic."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._notifications: Dict[str, Notification] = {}
        self._last_created: Dict[DedupId, datetime] = {}

    def create_if_absent(self, notification: Notification, cooldown: timedelta) -> Optional[Notification]:
        key = (notification.type, notification.dedup_key)
        with self._lock:
            last = self._last_created.get(key)
            if last is not None and last >= notification.created_at - cooldown:
                return None
            self._notifications[notification.id] = notification
            self._last_created[key] = notification.created_at
        return notification

    def list(self) -> List[Notification]:
        with self._lock:
            return list(self._notifications.values())

    def get(self, notification_id: str) -> Optional[Notification]:
        with self._lock:
            return self._notifications.get(notification_id)

    def mark_read(self, notification_id: str) -> bool:
        with self._lock:
            notification = self._notifications.get(notification_id)
            if notification is None:
                return False
            self._notifications[notification_id] = notification.model_copy(update={"is_read": True})
            return True

    def delete(self, notification_id: str) -> bool:
        with self._lock:
            return self._notifications.pop(notification_id, None) is not None

    def prune_dedup(self, before: datetime) -> int:
        with self._lock:
            stale = [key for key, last in self._last_created.items() if last < before]
            for key in stale:
                del self._last_created[key]
        return len(stale)


class DynamoNotificationStore(NotificationStore):
    """
    DynamoDB-backed store.

    Deduplication uses a marker item per ``(type, dedup_key)`` written with a
    conditional put, so the check and the claim happen in one request.
    """

    def __init__(self, table=None) -> None:
        self._table = table if table is not None else dynamo.notifications_table

    def create_if_absent(self, notification: Notification, cooldown: timedelta) -> Optional[Notification]:
        dedup_id = f"{notification.type.value}#{notification.dedup_key}"
        try:
            claimed = dynamo.claim_dedup_slot(
                self._table, dedup_id, notification.created_at, notification.created_at - cooldown
            )
        except ClientError as e:
            logger.error(f"create_if_absent failed: {e.response['Error']['Message']}")
            return None
        if not claimed:
            return None
        try:
            dynamo.put_notification(self._table, _to_item(notification))
        except ClientError as e:
            logger.error(f"put notification failed, releasing {dedup_id}: {e.response['Error']['Message']}")
            self._release(dedup_id, notification.created_at)
            return None
        return notification

    def _release(self, dedup_id: str, created_at: datetime) -> None:
        try:
            dynamo.release_dedup_slot(self._table, dedup_id, created_at)
        except ClientError as e:
            logger.error(f"release of {dedup_id} failed: {e.response['Error']['Message']}")

    def list(self) -> List[Notification]:
        try:
            return [_from_item(item) for item in dynamo.scan_notifications(self._table)]
        except ClientError as e:
            logger.error(f"list notifications failed: {e.response['Error']['Message']}")
            return []

    def get(self, notification_id: str) -> Optional[Notification]:
        try:
            item = dynamo.get_notification(self._table, notification_id)
        except ClientError as e:
            logger.error(f"get notification failed: {e.response['Error']['Message']}")
            return None
        if not item or item.get("record_type") != "notification":
            return None
        return _from_item(item)

    def mark_read(self, notification_id: str) -> bool:
        try:
            return dynamo.mark_notification_read(self._table, notification_id)
        except ClientError as e:
            logger.error(f"mark_read failed: {e.response['Error']['Message']}")
            return False

    def delete(self, notification_id: str) -> bool:
        try:
            return dynamo.delete_notification(self._table, notification_id)
        except ClientError as e:
            logger.error(f"delete notification failed: {e.response['Error']['Message']}")
            return False

    def prune_dedup(self, before: datetime) -> int:
        try:
            markers = dynamo.scan_dedup_markers(self._table)
            stale = [m for m in markers if _parse_moment(m["last_created_at"]) < before]
            return sum(
                1 for m in stale if dynamo.delete_dedup_marker(self._table, m["notification_id"], m["last_created_at"])
            )
        except ClientError as e:
            logger.error(f"prune dedup markers failed: {e.response['Error']['Message']}")
            return 0


def _to_item(notification: Notification) -> Dict:
    item = notification.model_dump(mode="json")
    item["notification_id"] = item.pop("id")
    item["record_type"] = "notification"
    return item


def _parse_moment(value: str) -> datetime:
    moment = datetime.fromisoformat(value)
    return moment if moment.tzinfo is not None else moment.replace(tzinfo=timezone.utc)


def _from_item(item: Dict) -> Notification:
    data = {k: v for k, v in item.items() if k != "record_type"}
    data["id"] = data.pop("notification_id")
    return Notification.model_validate(data)
