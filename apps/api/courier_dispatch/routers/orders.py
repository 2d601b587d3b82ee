import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from courier_dispatch.auth.dependencies import (
    ADMIN,
    COURIER,
    CUSTOMER,
    AuthContext,
    ensure_acting_as_courier,
    ensure_order_customer,
    get_auth_context,
    require_roles,
)
from courier_dispatch.clock import Clock
from courier_dispatch.db.session import get_db
from courier_dispatch.dependencies import get_clock, get_dispatch_engine
from courier_dispatch.errors import ValidationError
from courier_dispatch.models.order import OrderStatus
from courier_dispatch.schemas.dispatch import (
    AcceptResponse,
    MatchingRequest,
    MatchingResponse,
    NotificationRecordResponse,
    OfferRejectedResponse,
)
from courier_dispatch.schemas.order import (
    CancelRequest,
    CompleteRequest,
    CourierActionRequest,
    DeliverRequest,
    DisputeRequest,
    OrderCreate,
    OrderListResponse,
    OrderResponse,
    PickupRequest,
    RejectOfferRequest,
)
from courier_dispatch.services import orders_service
from courier_dispatch.services.courier_directory import get_courier
from courier_dispatch.services.dispatch_service import DispatchEngine

router = APIRouter(prefix="/api/v1/orders", tags=["orders"])

courier_or_admin = require_roles(COURIER, ADMIN)


def _check_courier(db: Session, auth: AuthContext, courier_id: uuid.UUID) -> None:
    ensure_acting_as_courier(auth, get_courier(db, courier_id))


@router.post("", response_model=OrderResponse, summary="Create order", status_code=201)
async def create_order_endpoint(
    payload: OrderCreate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    engine: DispatchEngine = Depends(get_dispatch_engine),
    auth: AuthContext = Depends(require_roles(CUSTOMER, ADMIN)),
) -> OrderResponse:
    if auth.role == CUSTOMER and payload.customer_id != auth.user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your account")

    order = await run_in_threadpool(orders_service.create_order, db, payload, clock)
    if order.zone:
        engine.spawn_matching(order.id, order.zone)
    return OrderResponse.model_validate(order)


@router.get("", response_model=OrderListResponse, summary="List orders")
def list_orders_endpoint(
    db: Session = Depends(get_db),
    customer_id: str | None = Query(default=None),
    courier_id: uuid.UUID | None = Query(default=None),
    status_filter: OrderStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    auth: AuthContext = Depends(get_auth_context),
) -> OrderListResponse:
    if auth.role == CUSTOMER:
        customer_id = auth.user_id
    elif auth.role == COURIER and courier_id is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="courier_id required")
    if auth.role == COURIER:
        _check_courier(db, auth, courier_id)

    items, total = orders_service.list_orders(
        db,
        customer_id=customer_id,
        courier_id=courier_id,
        status_filter=status_filter,
        limit=limit,
        offset=offset,
    )
    return OrderListResponse(
        items=[OrderResponse.model_validate(order) for order in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{order_id}", response_model=OrderResponse, summary="Get order")
def get_order_endpoint(
    order_id: uuid.UUID,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context),
) -> OrderResponse:
    order = orders_service.get_order(db, order_id)
    ensure_order_customer(auth, order)
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/matching", response_model=MatchingResponse, summary="Run courier matching")
async def start_matching_endpoint(
    order_id: uuid.UUID,
    payload: MatchingRequest | None = None,
    db: Session = Depends(get_db),
    engine: DispatchEngine = Depends(get_dispatch_engine),
    _auth: AuthContext = Depends(require_roles(ADMIN)),
) -> MatchingResponse:
    order = await run_in_threadpool(orders_service.get_order, db, order_id)
    zone = (payload.zone if payload and payload.zone else None) or order.zone
    if not zone:
        raise ValidationError("A zone is required to match couriers")

    result = await engine.start_matching(order_id, zone)
    return MatchingResponse(
        success=result.success,
        outcome=result.outcome.value,
        notified_count=result.notified_count,
        notifications=[
            NotificationRecordResponse(
                courier_id=record.courier_id,
                position=record.position,
                score=record.score,
                proximity_score=record.proximity_score,
                sent_at=record.sent_at,
                delivered=record.delivered,
            )
            for record in result.notifications
        ],
    )


@router.post("/{order_id}/accept", response_model=AcceptResponse, summary="Accept order offer")
def accept_endpoint(
    order_id: uuid.UUID,
    payload: CourierActionRequest,
    db: Session = Depends(get_db),
    engine: DispatchEngine = Depends(get_dispatch_engine),
    auth: AuthContext = Depends(courier_or_admin),
) -> AcceptResponse:
    _check_courier(db, auth, payload.courier_id)
    order = engine.accept_order(order_id, payload.courier_id)
    return AcceptResponse(success=True, order=OrderResponse.model_validate(order))


@router.post(
    "/{order_id}/reject",
    response_model=OfferRejectedResponse,
    summary="Decline order offer",
)
def reject_endpoint(
    order_id: uuid.UUID,
    payload: RejectOfferRequest,
    db: Session = Depends(get_db),
    engine: DispatchEngine = Depends(get_dispatch_engine),
    auth: AuthContext = Depends(courier_or_admin),
) -> OfferRejectedResponse:
    _check_courier(db, auth, payload.courier_id)
    orders_service.get_order(db, order_id)
    engine.reject_order(order_id, payload.courier_id, payload.reason)
    return OfferRejectedResponse(success=True, order_id=order_id, courier_id=payload.courier_id)


@router.post("/{order_id}/pickup", response_model=OrderResponse, summary="Confirm pickup")
def pickup_endpoint(
    order_id: uuid.UUID,
    payload: PickupRequest,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    auth: AuthContext = Depends(courier_or_admin),
) -> OrderResponse:
    _check_courier(db, auth, payload.courier_id)
    order = orders_service.pickup_order(
        db,
        order_id,
        payload.courier_id,
        payload.invoice_image_url,
        actual_price=payload.actual_price,
        clock=clock,
    )
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/enroute", response_model=OrderResponse, summary="Mark en route")
def en_route_endpoint(
    order_id: uuid.UUID,
    payload: CourierActionRequest,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    auth: AuthContext = Depends(courier_or_admin),
) -> OrderResponse:
    _check_courier(db, auth, payload.courier_id)
    order = orders_service.mark_en_route(db, order_id, payload.courier_id, clock=clock)
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/deliver", response_model=OrderResponse, summary="Confirm delivery")
def deliver_endpoint(
    order_id: uuid.UUID,
    payload: DeliverRequest,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    auth: AuthContext = Depends(courier_or_admin),
) -> OrderResponse:
    _check_courier(db, auth, payload.courier_id)
    order = orders_service.deliver_order(
        db,
        order_id,
        payload.courier_id,
        payload.delivery_code,
        pod_image_url=payload.pod_image_url,
        clock=clock,
    )
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/complete", response_model=OrderResponse, summary="Rate and complete")
def complete_endpoint(
    order_id: uuid.UUID,
    payload: CompleteRequest,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    auth: AuthContext = Depends(require_roles(CUSTOMER, ADMIN)),
) -> OrderResponse:
    if payload.admin_override and not auth.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin override only")
    ensure_order_customer(auth, orders_service.get_order(db, order_id))
    order = orders_service.complete_order(
        db,
        order_id,
        rating=payload.rating,
        comment=payload.comment,
        admin_override=payload.admin_override,
        clock=clock,
    )
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/cancel", response_model=OrderResponse, summary="Cancel order")
def cancel_endpoint(
    order_id: uuid.UUID,
    payload: CancelRequest | None = None,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    engine: DispatchEngine = Depends(get_dispatch_engine),
    auth: AuthContext = Depends(require_roles(CUSTOMER, ADMIN)),
) -> OrderResponse:
    ensure_order_customer(auth, orders_service.get_order(db, order_id))
    order = orders_service.cancel_order(
        db,
        order_id,
        reason=payload.reason if payload else None,
        actor=f"{auth.role.lower()}:{auth.user_id}",
        clock=clock,
    )
    engine.cancel_matching(order_id)
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/dispute", response_model=OrderResponse, summary="Flag a dispute")
def dispute_endpoint(
    order_id: uuid.UUID,
    payload: DisputeRequest,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    auth: AuthContext = Depends(get_auth_context),
) -> OrderResponse:
    order = orders_service.get_order(db, order_id)
    ensure_order_customer(auth, order)
    order = orders_service.dispute_order(
        db,
        order_id,
        reason=payload.reason,
        reporter=f"{auth.role.lower()}:{auth.user_id}",
        clock=clock,
    )
    return OrderResponse.model_validate(order)
