"""
Notifications Router
Lists and manages persisted notifications, and runs a trigger pass on demand.
"""
import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from finance_engine.core.deps import get_snapshot_loader, get_trigger_engine
from finance_engine.db.snapshot import SnapshotLoader
from finance_engine.models.notification import NotificationPublic, NotificationType, Priority
from finance_engine.notifications.triggers import NotificationTriggerEngine

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("", response_model=List[NotificationPublic])
def list_notifications(
    unread_only: bool = False,
    type: Optional[NotificationType] = None,
    priority: Optional[Priority] = None,
    engine: NotificationTriggerEngine = Depends(get_trigger_engine),
):
    """
    Newest first. Filters combine.
    """
    notifications = engine.list_notifications(unread_only=unread_only, notification_type=type, priority=priority)
    return [NotificationPublic(**n.model_dump()) for n in notifications]


@router.get("/unread-count")
def unread_count(engine: NotificationTriggerEngine = Depends(get_trigger_engine)) -> Dict:
    return {"unread_count": engine.unread_count()}


@router.post("/run")
def run_notification_pass(
    loader: SnapshotLoader = Depends(get_snapshot_loader),
    engine: NotificationTriggerEngine = Depends(get_trigger_engine),
) -> Dict:
    snapshot = loader.load()
    result = engine.run_pass(snapshot)
    return {
        "data_status": snapshot.data_status,
        "created": len(result["created"]),
        "suppressed": result["skipped"],
        "failed_triggers": result["failed_triggers"],
        "purged": result["purged"],
        "notifications": [NotificationPublic(**n.model_dump()) for n in result["created"]],
    }


@router.post("/read-all")
def mark_all_read(engine: NotificationTriggerEngine = Depends(get_trigger_engine)) -> Dict:
    return {"marked_read": engine.mark_all_read()}


@router.post("/{notification_id}/read")
def mark_read(notification_id: str, engine: NotificationTriggerEngine = Depends(get_trigger_engine)) -> Dict:
    if not engine.mark_read(notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"id": notification_id, "is_read": True}


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_notification(notification_id: str, engine: NotificationTriggerEngine = Depends(get_trigger_engine)):
    if not engine.delete(notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return None
