"""
Scheduler Service
Runs the notification trigger pass periodically using APScheduler
"""
import logging
from typing import Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from finance_engine.core.config import settings
from finance_engine.db.snapshot import SnapshotLoader
from finance_engine.notifications.store import DynamoNotificationStore
from finance_engine.notifications.triggers import NotificationTriggerEngine

logger = logging.getLogger(__name__)

NOTIFICATION_JOB_ID = "notification_pass"

scheduler: Optional[BackgroundScheduler] = None


def notification_pass_job(engine: NotificationTriggerEngine, loader: SnapshotLoader) -> Dict:
    """Job function: load a fresh snapshot and run one trigger pass over it"""
    logger.info("Executing scheduled notification pass...")
    snapshot = loader.load()
    result = engine.run_pass(snapshot)
    logger.info(f"Scheduled notification pass created {len(result['created'])} notifications")
    return result


def start_scheduler(engine: Optional[NotificationTriggerEngine] = None, loader: Optional[SnapshotLoader] = None):
    """
    Start the background scheduler with the notification pass job.
    The job runs with max_instances=1, so a slow pass is never overlapped by the next one.
    """
    global scheduler

    if scheduler is not None:
        logger.warning("Scheduler is already running")
        return

    config = settings.engine_config()
    engine = engine or NotificationTriggerEngine(DynamoNotificationStore(), config)
    loader = loader or SnapshotLoader(config)

    scheduler = BackgroundScheduler(timezone="UTC")
    scheduler.add_job(
        notification_pass_job,
        args=[engine, loader],
        trigger=IntervalTrigger(minutes=settings.NOTIFICATION_PASS_INTERVAL_MINUTES),
        id=NOTIFICATION_JOB_ID,
        name="Notification trigger pass",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    scheduler.start()
    logger.info(f"Scheduler started; notification pass every {settings.NOTIFICATION_PASS_INTERVAL_MINUTES} minutes")


def stop_scheduler():
    """Stop the background scheduler"""
    global scheduler

    if scheduler is not None:
        scheduler.shutdown(wait=False)
        scheduler = None
        logger.info("Scheduler stopped")


def get_scheduler_status() -> Dict:
    """Get current scheduler status"""
    if scheduler is None:
        return {"running": False, "jobs": []}

    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run": str(job.next_run_time) if job.next_run_time else None,
        })

    return {
        "running": scheduler.running,
        "jobs": jobs,
    }
