import uuid
from collections.abc import Iterable

from sqlalchemy import exists, select, update
from sqlalchemy.orm import Session

from courier_dispatch.clock import Clock, system_clock
from courier_dispatch.errors import NotFoundError, StateConflictError
from courier_dispatch.models.courier import Courier, CourierAccountStatus, CourierBlockSource
from courier_dispatch.models.order import ACTIVE_ORDER_STATUSES, Order
from courier_dispatch.observability import log_event
from courier_dispatch.schemas.courier import CourierRegister


def register_courier(
    db: Session,
    payload: CourierRegister,
    clock: Clock = system_clock,
) -> Courier:
    existing = db.scalar(select(Courier.id).where(Courier.user_id == payload.user_id))
    if existing:
        raise StateConflictError("Courier already registered for this user")

    courier = Courier(
        user_id=payload.user_id,
        name=payload.name,
        phone=payload.phone,
        plate_number=payload.plate_number,
        working_areas=list(payload.working_areas),
        is_available=False,
        is_approved=False,
        account_status=CourierAccountStatus.PENDING_REVIEW,
        created_at=clock.now(),
    )
    db.add(courier)
    db.commit()
    db.refresh(courier)
    log_event("courier_registered", courier_id=courier.id)
    return courier


def get_courier(db: Session, courier_id: uuid.UUID) -> Courier:
    courier = db.get(Courier, courier_id)
    if not courier:
        raise NotFoundError("Courier not found")
    return courier


def get_courier_for_update(db: Session, courier_id: uuid.UUID) -> Courier:
    courier = db.scalar(
        select(Courier)
        .where(Courier.id == courier_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    if not courier:
        raise NotFoundError("Courier not found")
    return courier


def review_courier(db: Session, courier_id: uuid.UUID, approved: bool) -> Courier:
    courier = get_courier(db, courier_id)
    courier.is_approved = approved
    courier.account_status = (
        CourierAccountStatus.APPROVED if approved else CourierAccountStatus.REJECTED
    )
    if not approved:
        courier.is_available = False
    db.commit()
    db.refresh(courier)
    log_event(f"courier_{courier.account_status.value.lower()}", courier_id=courier.id)
    return courier


def has_active_order(db: Session, courier_id: uuid.UUID) -> bool:
    return bool(
        db.scalar(
            select(
                exists().where(
                    Order.courier_id == courier_id,
                    Order.status.in_(ACTIVE_ORDER_STATUSES),
                )
            )
        )
    )


def set_availability(
    db: Session,
    courier_id: uuid.UUID,
    available: bool,
    clock: Clock = system_clock,
) -> Courier:
    courier = get_courier(db, courier_id)
    if available:
        if courier.is_blocked:
            raise StateConflictError(f"Courier is blocked: {courier.block_reason}")
        if not courier.is_approved:
            raise StateConflictError("Courier is not approved")
        if has_active_order(db, courier.id):
            raise StateConflictError("Courier has an active order")

    courier.is_available = available
    courier.last_active_at = clock.now()
    db.commit()
    db.refresh(courier)
    return courier


def update_working_areas(db: Session, courier_id: uuid.UUID, areas: Iterable[str]) -> Courier:
    courier = get_courier(db, courier_id)
    courier.working_areas = list(areas)
    db.commit()
    db.refresh(courier)
    return courier


def apply_block(courier: Courier, reason: str, source: CourierBlockSource) -> None:
    courier.is_blocked = True
    courier.is_available = False
    courier.block_reason = reason
    courier.block_source = source


def clear_block(courier: Courier) -> None:
    courier.is_blocked = False
    courier.block_reason = None
    courier.block_source = None


def block_courier(db: Session, courier_id: uuid.UUID, reason: str) -> Courier:
    courier = get_courier(db, courier_id)
    apply_block(courier, reason, CourierBlockSource.ADMIN)
    db.commit()
    db.refresh(courier)
    log_event("courier_blocked_by_admin", courier_id=courier.id)
    return courier


def unblock_courier(db: Session, courier_id: uuid.UUID) -> Courier:
    courier = get_courier(db, courier_id)
    if not courier.is_blocked:
        raise StateConflictError("Courier is not blocked")
    clear_block(courier)
    db.commit()
    db.refresh(courier)
    log_event("courier_unblocked_by_admin", courier_id=courier.id)
    return courier


def list_eligible_couriers(
    db: Session,
    exclude_ids: Iterable[uuid.UUID] = (),
) -> list[Courier]:
    query = select(Courier).where(
        Courier.is_available.is_(True),
        Courier.is_approved.is_(True),
        Courier.is_blocked.is_(False),
    )
    excluded = list(exclude_ids)
    if excluded:
        query = query.where(Courier.id.not_in(excluded))
    return list(db.scalars(query))


def release_courier(db: Session, courier_id: uuid.UUID) -> bool:
    """Make a courier available again after its order ends; blocked couriers stay offline."""
    # Pending blocks must reach the row before the conditional update reads it.
    db.flush()
    result = db.execute(
        update(Courier)
        .where(Courier.id == courier_id, Courier.is_blocked.is_(False))
        .values(is_available=True)
        .execution_options(synchronize_session="fetch")
    )
    return bool(result.rowcount)


def touch_activity(db: Session, courier_id: uuid.UUID, clock: Clock = system_clock) -> None:
    db.execute(
        update(Courier)
        .where(Courier.id == courier_id)
        .values(last_active_at=clock.now())
        .execution_options(synchronize_session="fetch")
    )
