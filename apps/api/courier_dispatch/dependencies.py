from collections.abc import Callable
from functools import lru_cache

from sqlalchemy.orm import Session

from courier_dispatch.clock import Clock, system_clock
from courier_dispatch.config import settings
from courier_dispatch.db.session import SessionLocal
from courier_dispatch.integrations.notification_client import NotificationSink
from courier_dispatch.integrations.notification_client import (
    get_notification_sink as build_notification_sink,
)
from courier_dispatch.services.audit_service import AuditRecorder
from courier_dispatch.services.dispatch_locks import DispatchLockRegistry
from courier_dispatch.services.dispatch_service import DispatchEngine


def get_clock() -> Clock:
    return system_clock


def get_session_factory() -> Callable[[], Session]:
    return SessionLocal


@lru_cache
def get_notification_sink() -> NotificationSink:
    return build_notification_sink()


@lru_cache
def get_lock_registry() -> DispatchLockRegistry:
    return DispatchLockRegistry(retention_s=settings.dispatch_lock_retention_s)


@lru_cache
def get_audit_recorder() -> AuditRecorder:
    return AuditRecorder(get_session_factory(), get_clock())


@lru_cache
def get_dispatch_engine() -> DispatchEngine:
    return DispatchEngine(
        session_factory=get_session_factory(),
        notifier=get_notification_sink(),
        audit=get_audit_recorder(),
        locks=get_lock_registry(),
        clock=get_clock(),
    )
