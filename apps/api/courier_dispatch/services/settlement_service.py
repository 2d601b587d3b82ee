import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from courier_dispatch.clock import Clock, system_clock
from courier_dispatch.config import current_commission_amount, settings
from courier_dispatch.errors import NotFoundError, StateConflictError, ValidationError
from courier_dispatch.models.courier import Courier, CourierBlockSource
from courier_dispatch.models.order import Order, OrderStatus
from courier_dispatch.models.settlement import Settlement, SettlementStatus
from courier_dispatch.observability import log_event, metrics_store
from courier_dispatch.services.courier_directory import (
    apply_block,
    clear_block,
    get_courier,
    get_courier_for_update,
)

_CENTS = Decimal("0.01")


def to_money(value: Decimal | float | int | str) -> Decimal:
    return Decimal(str(value)).quantize(_CENTS)


def debt_block_reason(balance: Decimal) -> str:
    return f"accumulated debt: {to_money(balance)}"


@dataclass
class CommissionPosting:
    order_id: uuid.UUID
    courier_id: uuid.UUID
    commission: Decimal
    total_pending: Decimal
    blocked: bool


@dataclass
class DailySettlementSummary:
    date: date
    total_pending: Decimal
    couriers: list[Courier]
    paid_total: Decimal
    paid_count: int


@dataclass
class CourierDebtStatus:
    courier_id: uuid.UUID
    has_debt: bool
    amount: Decimal
    is_blocked: bool
    block_reason: str | None
    can_receive_orders: bool


def _apply_debt_rule(courier: Courier) -> bool:
    if courier.is_blocked or to_money(courier.pending_settlement) < settings.debt_threshold:
        return False
    apply_block(courier, debt_block_reason(courier.pending_settlement), CourierBlockSource.DEBT)
    metrics_store.increment("courier_debt_blocked_total")
    return True


def post_commission(db: Session, order: Order, clock: Clock = system_clock) -> CommissionPosting:
    """Add an order's commission to its courier's balance without committing.

    The balance is incremented in SQL so concurrent completions for the same
    courier serialize on the row instead of overwriting each other.
    """
    if order.status != OrderStatus.COMPLETED:
        raise StateConflictError("Commission can only be posted for COMPLETED orders")
    if order.courier_id is None:
        raise StateConflictError("Order has no assigned courier")
    if order.commission_posted_at is not None:
        raise StateConflictError("Commission already posted for this order")

    if order.commission_amount is None:
        order.commission_amount = current_commission_amount()
    commission = to_money(order.commission_amount)

    db.execute(
        update(Courier)
        .where(Courier.id == order.courier_id)
        .values(pending_settlement=Courier.pending_settlement + commission)
        .execution_options(synchronize_session=False)
    )
    courier = get_courier_for_update(db, order.courier_id)
    db.refresh(courier)

    order.commission_posted_at = clock.now()
    blocked = _apply_debt_rule(courier)
    metrics_store.increment("commission_posted_total")
    log_event("commission_posted", order_id=order.id, courier_id=courier.id)

    return CommissionPosting(
        order_id=order.id,
        courier_id=courier.id,
        commission=commission,
        total_pending=to_money(courier.pending_settlement),
        blocked=blocked,
    )


def add_commission(
    db: Session,
    order_id: uuid.UUID,
    clock: Clock = system_clock,
) -> CommissionPosting:
    order = db.get(Order, order_id)
    if not order:
        raise NotFoundError("Order not found")
    posting = post_commission(db, order, clock)
    db.commit()
    return posting


def _previous_period_end(db: Session, courier: Courier) -> datetime:
    last_end = db.scalar(
        select(func.max(Settlement.period_end)).where(Settlement.courier_id == courier.id)
    )
    return last_end or courier.created_at


def mark_as_paid(
    db: Session,
    courier_id: uuid.UUID,
    actor_id: str,
    amount: Decimal | None = None,
    clock: Clock = system_clock,
) -> tuple[Settlement, Courier]:
    """Record a paid settlement and reduce the courier's balance.

    Amounts that are not positive or exceed the current balance are rejected,
    so the balance can never go negative.
    """
    courier = get_courier_for_update(db, courier_id)
    balance = to_money(courier.pending_settlement)

    if amount is None:
        if balance <= 0:
            raise ValidationError("Courier has no pending settlement")
        settled = balance
    else:
        settled = to_money(amount)
        if settled <= 0:
            raise ValidationError("Settlement amount must be positive")
        if settled > balance:
            raise ValidationError(
                f"Settlement amount {settled} exceeds pending balance {balance}"
            )

    now = clock.now()
    period_start = _previous_period_end(db, courier)
    orders_count = db.scalar(
        select(func.count(Order.id)).where(
            Order.courier_id == courier.id,
            Order.commission_posted_at.is_not(None),
            Order.commission_posted_at > period_start,
            Order.commission_posted_at <= now,
        )
    )

    result = db.execute(
        update(Courier)
        .where(Courier.id == courier.id, Courier.pending_settlement >= settled)
        .values(pending_settlement=Courier.pending_settlement - settled)
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        db.rollback()
        raise ValidationError("Settlement amount exceeds pending balance")
    db.refresh(courier)

    if (
        courier.is_blocked
        and courier.block_source == CourierBlockSource.DEBT
        and to_money(courier.pending_settlement) < settings.debt_threshold
    ):
        clear_block(courier)

    settlement = Settlement(
        courier_id=courier.id,
        amount=settled,
        orders_count=int(orders_count or 0),
        period_start=period_start,
        period_end=now,
        status=SettlementStatus.PAID,
        paid_at=now,
        paid_by=actor_id,
    )
    db.add(settlement)
    db.commit()
    db.refresh(settlement)
    db.refresh(courier)
    metrics_store.increment("settlement_paid_total")
    log_event("settlement_paid", courier_id=courier.id)
    return settlement, courier


def get_daily_settlements(db: Session, day: date) -> DailySettlementSummary:
    couriers = list(
        db.scalars(
            select(Courier)
            .where(Courier.pending_settlement > 0)
            .order_by(Courier.pending_settlement.desc())
        )
    )
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    end = start + timedelta(days=1)
    paid_total, paid_count = db.execute(
        select(func.coalesce(func.sum(Settlement.amount), 0), func.count(Settlement.id)).where(
            Settlement.status == SettlementStatus.PAID,
            Settlement.paid_at >= start,
            Settlement.paid_at < end,
        )
    ).one()

    return DailySettlementSummary(
        date=day,
        total_pending=to_money(sum((c.pending_settlement for c in couriers), Decimal("0"))),
        couriers=couriers,
        paid_total=to_money(paid_total),
        paid_count=int(paid_count),
    )


def get_courier_debt_status(db: Session, courier_id: uuid.UUID) -> CourierDebtStatus:
    courier = get_courier(db, courier_id)
    amount = to_money(courier.pending_settlement)
    return CourierDebtStatus(
        courier_id=courier.id,
        has_debt=amount > 0,
        amount=amount,
        is_blocked=courier.is_blocked,
        block_reason=courier.block_reason,
        can_receive_orders=courier.is_approved and not courier.is_blocked,
    )


def list_courier_settlements(db: Session, courier_id: uuid.UUID) -> list[Settlement]:
    get_courier(db, courier_id)
    return list(
        db.scalars(
            select(Settlement)
            .where(Settlement.courier_id == courier_id)
            .order_by(Settlement.created_at.desc())
        )
    )
