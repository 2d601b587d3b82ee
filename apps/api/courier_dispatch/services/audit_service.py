from collections.abc import Callable
from typing import Any

from fastapi.encoders import jsonable_encoder
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from courier_dispatch.clock import Clock, system_clock
from courier_dispatch.models.audit_log import AuditLog
from courier_dispatch.observability import log_failure, metrics_store

MATCHING_STARTED = "MATCHING_STARTED"
MATCHING_NO_DRIVERS = "MATCHING_NO_DRIVERS"
MATCHING_NOTIFICATION_SENT = "MATCHING_NOTIFICATION_SENT"
MATCHING_NOTIFICATIONS_SENT = "MATCHING_NOTIFICATIONS_SENT"
MATCHING_TIMEOUT = "MATCHING_TIMEOUT"
MATCHING_ACCEPTED = "MATCHING_ACCEPTED"
MATCHING_ACCEPT_REJECTED = "MATCHING_ACCEPT_REJECTED"
MATCHING_REJECTED = "MATCHING_REJECTED"
DEBT_WARNING_SENT = "DEBT_WARNING_SENT"
DRIVER_BLOCKED_DEBT = "DRIVER_BLOCKED_DEBT"


class AuditRecorder:
    """Append-only audit sink.

    Every entry is written in its own short session so a failing write never
    rolls back, blocks or fails the caller's work. Callers record entries after
    committing their own transaction.
    """

    def __init__(self, session_factory: Callable[[], Session], clock: Clock = system_clock) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def record(
        self,
        action: str,
        *,
        entity_type: str,
        entity_id: Any = None,
        actor_type: str = "system",
        actor_id: Any = None,
        details: dict[str, Any] | None = None,
        result: str | None = None,
    ) -> None:
        entry = AuditLog(
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            actor_type=actor_type,
            actor_id=str(actor_id) if actor_id is not None else None,
            details=jsonable_encoder(details or {}),
            result=result,
            created_at=self._clock.now(),
        )
        try:
            with self._session_factory() as db:
                db.add(entry)
                db.commit()
        except SQLAlchemyError:
            metrics_store.increment("audit_write_failed_total")
            log_failure(
                f"audit_write_failed:{action}",
                order_id=entity_id if entity_type == "order" else None,
                courier_id=entity_id if entity_type == "courier" else actor_id,
            )


def latest_audit_entry(
    db: Session,
    *,
    action: str,
    entity_type: str,
    entity_id: Any,
) -> AuditLog | None:
    return db.scalar(
        select(AuditLog)
        .where(
            AuditLog.action == action,
            AuditLog.entity_type == entity_type,
            AuditLog.entity_id == str(entity_id),
        )
        .order_by(AuditLog.created_at.desc())
        .limit(1)
    )


def list_audit_entries(db: Session, *, entity_type: str, entity_id: Any) -> list[AuditLog]:
    return list(
        db.scalars(
            select(AuditLog)
            .where(AuditLog.entity_type == entity_type, AuditLog.entity_id == str(entity_id))
            .order_by(AuditLog.created_at.asc())
        )
    )
