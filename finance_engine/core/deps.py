"""
Shared FastAPI dependencies.

Routers depend on these providers rather than on module globals so tests can
swap them through ``app.dependency_overrides``.
"""
from functools import lru_cache

from fastapi import Depends

from finance_engine.core.config import EngineConfig, settings
from finance_engine.db.snapshot import SnapshotLoader
from finance_engine.notifications.store import DynamoNotificationStore, NotificationStore
from finance_engine.notifications.triggers import NotificationTriggerEngine


@lru_cache()
def get_engine_config() -> EngineConfig:
    return settings.engine_config()


@lru_cache()
def get_notification_store() -> NotificationStore:
    return DynamoNotificationStore()


def get_snapshot_loader(config: EngineConfig = Depends(get_engine_config)) -> SnapshotLoader:
    return SnapshotLoader(config)


def get_trigger_engine(
    store: NotificationStore = Depends(get_notification_store),
    config: EngineConfig = Depends(get_engine_config),
) -> NotificationTriggerEngine:
    return NotificationTriggerEngine(store, config)
