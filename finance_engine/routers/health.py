"""
Health Check Router
Simple health check endpoint
"""
from datetime import datetime, timezone

from fastapi import APIRouter

from finance_engine.core.config import settings
from finance_engine.utils.scheduler import get_scheduler_status

router = APIRouter()


@router.get("/health")
def health_check():
    """
    Health check endpoint.
    Returns API status and whether the notification scheduler is running.
    """
    return {
        "status": "healthy",
        "service": settings.PROJECT_NAME,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "scheduler": get_scheduler_status(),
    }
