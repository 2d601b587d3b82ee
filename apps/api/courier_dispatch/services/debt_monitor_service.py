"""End-of-day sweep over couriers carrying an unpaid balance.

A courier is warned first; a courier whose latest warning is older than the
grace period is blocked. Each courier is handled in its own session so one
failure never aborts the sweep.
"""

import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from courier_dispatch.clock import Clock, as_utc, system_clock
from courier_dispatch.config import settings
from courier_dispatch.integrations.notification_client import NotificationSink, notify_best_effort
from courier_dispatch.models.courier import Courier, CourierBlockSource
from courier_dispatch.observability import log_event, log_failure, metrics_store, observe_timing
from courier_dispatch.services.audit_service import (
    DEBT_WARNING_SENT,
    DRIVER_BLOCKED_DEBT,
    AuditRecorder,
    latest_audit_entry,
)
from courier_dispatch.services.courier_directory import apply_block
from courier_dispatch.services.settlement_service import to_money


@dataclass
class WarnedCourier:
    id: uuid.UUID
    name: str | None
    phone: str | None
    debt: Decimal
    hours_until_block: float


@dataclass
class BlockedCourier:
    id: uuid.UUID
    name: str | None
    phone: str | None
    debt: Decimal


@dataclass
class DebtSweepResult:
    warned: list[WarnedCourier] = field(default_factory=list)
    blocked: list[BlockedCourier] = field(default_factory=list)
    failed: list[uuid.UUID] = field(default_factory=list)


def _indebted_courier_ids(session_factory: Callable[[], Session]) -> list[uuid.UUID]:
    with session_factory() as db:
        return list(db.scalars(select(Courier.id).where(Courier.pending_settlement > 0)))


def _sweep_courier(
    db: Session,
    courier_id: uuid.UUID,
    notifier: NotificationSink,
    audit: AuditRecorder,
    now: datetime,
    grace_h: float,
) -> WarnedCourier | BlockedCourier | None:
    courier = db.get(Courier, courier_id)
    if courier is None or courier.is_blocked:
        return None
    debt = to_money(courier.pending_settlement)
    if debt <= 0:
        return None

    last_warning = latest_audit_entry(
        db, action=DEBT_WARNING_SENT, entity_type="courier", entity_id=courier.id
    )
    warned_at = as_utc(last_warning.created_at) if last_warning else None
    elapsed_h = (now - warned_at).total_seconds() / 3600 if warned_at else None

    if elapsed_h is not None and elapsed_h >= grace_h:
        apply_block(
            courier,
            f"unpaid debt: {debt} not settled within {grace_h:g} hours",
            CourierBlockSource.DEBT,
        )
        db.commit()
        audit.record(
            DRIVER_BLOCKED_DEBT,
            entity_type="courier",
            entity_id=courier.id,
            details={"debt": debt, "hours_since_warning": round(elapsed_h, 2)},
            result="blocked",
        )
        metrics_store.increment("debt_sweep_blocked_total")
        log_event("courier_blocked_for_debt", courier_id=courier.id)
        return BlockedCourier(id=courier.id, name=courier.name, phone=courier.phone, debt=debt)

    if warned_at is not None and warned_at.date() == now.date():
        return None

    hours_until_block = grace_h if elapsed_h is None else max(0.0, grace_h - elapsed_h)
    notify_best_effort(
        notifier,
        str(courier.id),
        "تنبيه: مستحقات غير مسددة",
        f"لديك مستحقات بقيمة {debt} دينار. يرجى السداد خلال {round(hours_until_block)} ساعة لتجنب إيقاف الحساب.",
        {"type": "debt_warning", "amount": str(debt), "hoursUntilBlock": hours_until_block},
    )
    audit.record(
        DEBT_WARNING_SENT,
        entity_type="courier",
        entity_id=courier.id,
        details={"debt": debt, "hours_until_block": hours_until_block},
        result="sent",
    )
    metrics_store.increment("debt_sweep_warned_total")
    log_event("courier_debt_warning", courier_id=courier.id)
    return WarnedCourier(
        id=courier.id,
        name=courier.name,
        phone=courier.phone,
        debt=debt,
        hours_until_block=hours_until_block,
    )


def run_end_of_day_sweep(
    session_factory: Callable[[], Session],
    notifier: NotificationSink,
    audit: AuditRecorder,
    clock: Clock = system_clock,
    grace_h: float | None = None,
) -> DebtSweepResult:
    grace_h = grace_h or settings.debt_grace_period_h
    result = DebtSweepResult()

    with observe_timing("debt_sweep_seconds"):
        now = as_utc(clock.now())
        for courier_id in _indebted_courier_ids(session_factory):
            with session_factory() as db:
                try:
                    outcome = _sweep_courier(db, courier_id, notifier, audit, now, grace_h)
                except SQLAlchemyError:
                    db.rollback()
                    metrics_store.increment("debt_sweep_failed_total")
                    log_failure("debt_sweep_courier_failed", courier_id=courier_id)
                    result.failed.append(courier_id)
                    continue

            if isinstance(outcome, BlockedCourier):
                result.blocked.append(outcome)
            elif isinstance(outcome, WarnedCourier):
                result.warned.append(outcome)

    metrics_store.increment("debt_sweep_runs_total")
    log_event(f"debt_sweep_finished:warned={len(result.warned)},blocked={len(result.blocked)}")
    return result
