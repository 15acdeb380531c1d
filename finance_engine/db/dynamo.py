from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError

from finance_engine.core.config import settings

# Initialize DynamoDB resource
dynamodb = boto3.resource("dynamodb", region_name=settings.DYNAMO_REGION)

# Get table references
transactions_table = dynamodb.Table(settings.DYNAMO_TRANSACTIONS_TABLE)
budgets_table = dynamodb.Table(settings.DYNAMO_BUDGETS_TABLE)
accounts_table = dynamodb.Table(settings.DYNAMO_ACCOUNTS_TABLE)
templates_table = dynamodb.Table(settings.DYNAMO_TEMPLATES_TABLE)
notifications_table = dynamodb.Table(settings.DYNAMO_NOTIFICATIONS_TABLE)

DEDUP_PREFIX = "DEDUP#"


def scan_items(table) -> List[Dict[str, Any]]:
    """
    Read every item of a table, following pagination.
    ClientError propagates so callers can tell a failed read from an empty table.
    """
    items: List[Dict[str, Any]] = []
    kwargs: Dict[str, Any] = {}
    while True:
        response = table.scan(**kwargs)
        items.extend(_from_dynamo(item) for item in response.get("Items", []))
        last_key = response.get("LastEvaluatedKey")
        if not last_key:
            return items
        kwargs["ExclusiveStartKey"] = last_key


def get_transactions() -> List[Dict[str, Any]]:
    return scan_items(transactions_table)


def get_budgets() -> List[Dict[str, Any]]:
    return scan_items(budgets_table)


def get_accounts() -> List[Dict[str, Any]]:
    return scan_items(accounts_table)


def get_templates() -> List[Dict[str, Any]]:
    return scan_items(templates_table)


def claim_dedup_slot(table, dedup_id: str, created_at: datetime, cutoff: datetime) -> bool:
    """
    Atomically record that a notification for ``dedup_id`` is being created.

    Succeeds only if no marker exists or the existing marker is older than
    ``cutoff``. Returns False when another notification holds the slot.
    """
    try:
        table.put_item(
            Item={
                "notification_id": f"{DEDUP_PREFIX}{dedup_id}",
                "record_type": "dedup",
                "last_created_at": _utc_iso(created_at),
            },
            ConditionExpression="attribute_not_exists(notification_id) OR last_created_at < :cutoff",
            ExpressionAttributeValues={":cutoff": _utc_iso(cutoff)},
        )
        return True
    except ClientError as e:
        if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
            return False
        raise


def release_dedup_slot(table, dedup_id: str, created_at: datetime) -> bool:
    """
    Drop the marker for ``dedup_id`` if it still holds ``created_at``.
    Used when the notification write after a successful claim fails.
    """
    return delete_dedup_marker(table, f"{DEDUP_PREFIX}{dedup_id}", _utc_iso(created_at))


def scan_dedup_markers(table) -> List[Dict[str, Any]]:
    items: List[Dict[str, Any]] = []
    kwargs: Dict[str, Any] = {"FilterExpression": Attr("record_type").eq("dedup")}
    while True:
        response = table.scan(**kwargs)
        items.extend(_from_dynamo(item) for item in response.get("Items", []))
        last_key = response.get("LastEvaluatedKey")
        if not last_key:
            return items
        kwargs["ExclusiveStartKey"] = last_key


def delete_dedup_marker(table, marker_id: str, last_created_at: str) -> bool:
    """Delete a marker unless a newer claim has replaced it."""
    try:
        table.delete_item(
            Key={"notification_id": marker_id},
            ConditionExpression="last_created_at = :seen",
            ExpressionAttributeValues={":seen": last_created_at},
        )
        return True
    except ClientError as e:
        if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
            return False
        raise


def put_notification(table, item: Dict[str, Any]) -> None:
    table.put_item(Item=_convert_for_dynamo(item))


def get_notification(table, notification_id: str) -> Optional[Dict[str, Any]]:
    response = table.get_item(Key={"notification_id": notification_id})
    item = response.get("Item")
    return _from_dynamo(item) if item else None


def scan_notifications(table) -> List[Dict[str, Any]]:
    items: List[Dict[str, Any]] = []
    kwargs: Dict[str, Any] = {"FilterExpression": Attr("record_type").eq("notification")}
    while True:
        response = table.scan(**kwargs)
        items.extend(_from_dynamo(item) for item in response.get("Items", []))
        last_key = response.get("LastEvaluatedKey")
        if not last_key:
            return items
        kwargs["ExclusiveStartKey"] = last_key


def mark_notification_read(table, notification_id: str) -> bool:
    try:
        table.update_item(
            Key={"notification_id": notification_id},
            UpdateExpression="SET is_read = :read",
            ConditionExpression="attribute_exists(notification_id)",
            ExpressionAttributeValues={":read": True},
        )
        return True
    except ClientError as e:
        if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
            return False
        raise


def delete_notification(table, notification_id: str) -> bool:
    response = table.delete_item(
        Key={"notification_id": notification_id},
        ReturnValues="ALL_OLD",
    )
    return "Attributes" in response


def _utc_iso(moment: datetime) -> str:
    # Markers are compared as strings, so they must share one offset
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat()


def _convert_for_dynamo(obj: Any):
    """
    Recursively convert floats to Decimal and datetimes to ISO strings for DynamoDB.
    """
    if isinstance(obj, float):
        return Decimal(str(obj))
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {k: _convert_for_dynamo(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_convert_for_dynamo(v) for v in obj]
    return obj


def _from_dynamo(obj: Any):
    """
    Recursively convert Decimal instances back to native Python numeric types.
    """
    if isinstance(obj, list):
        return [_from_dynamo(item) for item in obj]
    if isinstance(obj, dict):
        return {k: _from_dynamo(v) for k, v in obj.items()}
    if isinstance(obj, Decimal):
        if obj % 1 == 0:
            return int(obj)
        return float(obj)
    return obj
