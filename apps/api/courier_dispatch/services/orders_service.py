import secrets
import uuid
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from courier_dispatch.clock import Clock, system_clock
from courier_dispatch.config import current_commission_amount, settings
from courier_dispatch.errors import NotFoundError, StateConflictError, ValidationError
from courier_dispatch.models.courier_rating import CourierRating
from courier_dispatch.models.order import Order, OrderStatus
from courier_dispatch.observability import log_event, metrics_store
from courier_dispatch.schemas.order import OrderCreate
from courier_dispatch.services import settlement_service
from courier_dispatch.services.courier_directory import get_courier, release_courier, touch_activity
from courier_dispatch.services.state_machine import STATUS_TIMESTAMP_FIELDS, ensure_valid_transition

MIN_RATING = 1
MAX_RATING = 5


def _generate_delivery_code() -> str:
    return f"{secrets.randbelow(10_000):04d}"


def transition_order_status(
    order: Order,
    next_status: OrderStatus,
    clock: Clock = system_clock,
) -> Order:
    """Move an order along the state machine and stamp the status timestamp.

    Does not commit; callers persist the transition together with its side
    effects.
    """
    previous_status = order.status
    ensure_valid_transition(previous_status, next_status)

    order.status = next_status
    timestamp_field = STATUS_TIMESTAMP_FIELDS.get(next_status)
    if timestamp_field:
        setattr(order, timestamp_field, clock.now())
    metrics_store.increment(f"order_transition_{next_status.value.lower()}_total")
    log_event(
        f"order_transition:{previous_status.value}->{next_status.value}",
        order_id=order.id,
        courier_id=order.courier_id,
    )
    return order


def create_order(db: Session, payload: OrderCreate, clock: Clock = system_clock) -> Order:
    now = clock.now()
    order = Order(
        customer_id=payload.customer_id,
        items_text=payload.items_text,
        estimated_price=payload.estimated_price,
        delivery_fee=settings.delivery_fee,
        commission_amount=current_commission_amount(),
        delivery_code=_generate_delivery_code(),
        pickup_address=payload.pickup_address,
        pickup_lat=payload.pickup_lat,
        pickup_lng=payload.pickup_lng,
        delivery_address=payload.delivery_address,
        delivery_lat=payload.delivery_lat,
        delivery_lng=payload.delivery_lng,
        zone=payload.zone or None,
        notes=payload.notes,
        status=OrderStatus.REQUESTED,
        created_at=now,
        updated_at=now,
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    metrics_store.increment("orders_created_total")
    log_event("order_created", order_id=order.id, zone=order.zone)
    return order


def get_order(db: Session, order_id: uuid.UUID) -> Order:
    order = db.get(Order, order_id)
    if not order:
        raise NotFoundError("Order not found")
    return order


def list_orders(
    db: Session,
    *,
    customer_id: str | None = None,
    courier_id: uuid.UUID | None = None,
    status_filter: OrderStatus | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Order], int]:
    query = select(Order)
    if customer_id:
        query = query.where(Order.customer_id == customer_id)
    if courier_id:
        query = query.where(Order.courier_id == courier_id)
    if status_filter:
        query = query.where(Order.status == status_filter)

    total = db.scalar(select(func.count()).select_from(query.subquery())) or 0
    items = db.scalars(
        query.order_by(Order.created_at.desc(), Order.id).limit(limit).offset(offset)
    )
    return list(items), int(total)


def _ensure_assigned_courier(order: Order, courier_id: uuid.UUID) -> None:
    if order.courier_id != courier_id:
        raise StateConflictError("Courier is not assigned to this order")


def pickup_order(
    db: Session,
    order_id: uuid.UUID,
    courier_id: uuid.UUID,
    invoice_image_url: str | None,
    actual_price: Decimal | None = None,
    clock: Clock = system_clock,
) -> Order:
    order = get_order(db, order_id)
    _ensure_assigned_courier(order, courier_id)
    if not invoice_image_url or not invoice_image_url.strip():
        raise ValidationError("Invoice image is required for pickup")
    ensure_valid_transition(order.status, OrderStatus.PICKED_UP)

    order.invoice_image_url = invoice_image_url.strip()
    if actual_price is not None:
        order.estimated_price = actual_price
    transition_order_status(order, OrderStatus.PICKED_UP, clock)
    touch_activity(db, courier_id, clock)
    db.commit()
    db.refresh(order)
    return order


def mark_en_route(
    db: Session,
    order_id: uuid.UUID,
    courier_id: uuid.UUID,
    clock: Clock = system_clock,
) -> Order:
    order = get_order(db, order_id)
    _ensure_assigned_courier(order, courier_id)
    transition_order_status(order, OrderStatus.EN_ROUTE, clock)
    touch_activity(db, courier_id, clock)
    db.commit()
    db.refresh(order)
    return order


def deliver_order(
    db: Session,
    order_id: uuid.UUID,
    courier_id: uuid.UUID,
    delivery_code: str | None,
    pod_image_url: str | None = None,
    clock: Clock = system_clock,
) -> Order:
    order = get_order(db, order_id)
    _ensure_assigned_courier(order, courier_id)
    ensure_valid_transition(order.status, OrderStatus.DELIVERED)
    if not delivery_code or delivery_code.strip() != order.delivery_code:
        metrics_store.increment("order_delivery_code_mismatch_total")
        raise ValidationError("Invalid delivery code")

    if pod_image_url:
        order.pod_image_url = pod_image_url
    transition_order_status(order, OrderStatus.DELIVERED, clock)
    touch_activity(db, courier_id, clock)
    db.commit()
    db.refresh(order)
    return order


def _record_rating(db: Session, order: Order, rating: int, comment: str | None) -> None:
    db.add(
        CourierRating(
            order_id=order.id,
            courier_id=order.courier_id,
            customer_id=order.customer_id,
            rating=rating,
            comment=comment,
        )
    )
    db.flush()
    average, count = db.execute(
        select(func.avg(CourierRating.rating), func.count(CourierRating.id)).where(
            CourierRating.courier_id == order.courier_id
        )
    ).one()
    courier = get_courier(db, order.courier_id)
    courier.rating = float(average)
    courier.total_deliveries = int(count)


def complete_order(
    db: Session,
    order_id: uuid.UUID,
    rating: int | None = None,
    comment: str | None = None,
    admin_override: bool = False,
    clock: Clock = system_clock,
) -> Order:
    """Close a delivered order.

    In one transaction: compute the courier's share, post the commission to the
    ledger, record the rating and hand the courier back to the available pool.
    """
    order = get_order(db, order_id)
    ensure_valid_transition(order.status, OrderStatus.COMPLETED)
    if rating is None and not admin_override:
        raise ValidationError("Rating is required to complete an order")
    if rating is not None and not MIN_RATING <= rating <= MAX_RATING:
        raise ValidationError(f"Rating must be between {MIN_RATING} and {MAX_RATING}")

    order.driver_share = settlement_service.to_money(
        (order.estimated_price or Decimal("0")) + order.delivery_fee - order.commission_amount
    )
    transition_order_status(order, OrderStatus.COMPLETED, clock)
    settlement_service.post_commission(db, order, clock)
    if rating is not None:
        _record_rating(db, order, rating, comment)
    release_courier(db, order.courier_id)

    db.commit()
    db.refresh(order)
    metrics_store.increment("orders_completed_total")
    return order


def cancel_order(
    db: Session,
    order_id: uuid.UUID,
    reason: str | None = None,
    actor: str = "system",
    clock: Clock = system_clock,
) -> Order:
    order = get_order(db, order_id)
    transition_order_status(order, OrderStatus.CANCELED, clock)

    note = f"cancellation reason: {reason or 'unspecified'} (by: {actor})"
    order.notes = f"{order.notes}\n{note}" if order.notes else note
    if order.courier_id:
        release_courier(db, order.courier_id)

    db.commit()
    db.refresh(order)
    return order


def dispute_order(
    db: Session,
    order_id: uuid.UUID,
    reason: str,
    reporter: str,
    clock: Clock = system_clock,
) -> Order:
    order = get_order(db, order_id)
    if not reason or not reason.strip():
        raise ValidationError("Dispute reason is required")
    transition_order_status(order, OrderStatus.DISPUTE, clock)
    order.dispute_flag = True
    order.dispute_reason = f"{reason.strip()} (reported by: {reporter})"
    db.commit()
    db.refresh(order)
    metrics_store.increment("orders_disputed_total")
    return order
