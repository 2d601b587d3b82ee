import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from courier_dispatch.auth.dependencies import (
    ADMIN,
    COURIER,
    AuthContext,
    ensure_acting_as_courier,
    require_admin,
    require_roles,
)
from courier_dispatch.clock import Clock
from courier_dispatch.db.session import get_db
from courier_dispatch.dependencies import get_clock
from courier_dispatch.schemas.settlement import (
    CommissionPostingResponse,
    DailySettlementCourier,
    DailySettlementSummaryResponse,
    MarkPaidRequest,
    MarkPaidResponse,
    SettlementResponse,
)
from courier_dispatch.services import settlement_service
from courier_dispatch.services.courier_directory import get_courier

router = APIRouter(prefix="/api/v1/settlements", tags=["settlements"])


@router.post(
    "/orders/{order_id}/commission",
    response_model=CommissionPostingResponse,
    summary="Post commission for a completed order",
)
def add_commission_endpoint(
    order_id: uuid.UUID,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    _auth: AuthContext = Depends(require_admin),
) -> CommissionPostingResponse:
    posting = settlement_service.add_commission(db, order_id, clock)
    return CommissionPostingResponse(
        order_id=posting.order_id,
        courier_id=posting.courier_id,
        commission=posting.commission,
        total_pending=posting.total_pending,
        blocked=posting.blocked,
    )


@router.post(
    "/couriers/{courier_id}/paid",
    response_model=MarkPaidResponse,
    summary="Record a settlement payment",
)
def mark_paid_endpoint(
    courier_id: uuid.UUID,
    payload: MarkPaidRequest | None = None,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    auth: AuthContext = Depends(require_admin),
) -> MarkPaidResponse:
    settlement, courier = settlement_service.mark_as_paid(
        db,
        courier_id,
        actor_id=auth.user_id,
        amount=payload.amount if payload else None,
        clock=clock,
    )
    return MarkPaidResponse(
        settlement=SettlementResponse.model_validate(settlement),
        remaining_debt=settlement_service.to_money(courier.pending_settlement),
        is_blocked=courier.is_blocked,
    )


@router.get(
    "/daily",
    response_model=DailySettlementSummaryResponse,
    summary="Outstanding balances and payments for a day",
)
def daily_settlements_endpoint(
    day: date | None = Query(default=None),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    _auth: AuthContext = Depends(require_admin),
) -> DailySettlementSummaryResponse:
    summary = settlement_service.get_daily_settlements(db, day or clock.now().date())
    return DailySettlementSummaryResponse(
        date=summary.date,
        total_pending=summary.total_pending,
        couriers_count=len(summary.couriers),
        couriers=[
            DailySettlementCourier(
                id=courier.id,
                name=courier.name,
                phone=courier.phone,
                pending_settlement=settlement_service.to_money(courier.pending_settlement),
                is_blocked=courier.is_blocked,
            )
            for courier in summary.couriers
        ],
        paid_total=summary.paid_total,
        paid_count=summary.paid_count,
    )


@router.get(
    "/couriers/{courier_id}",
    response_model=list[SettlementResponse],
    summary="Settlement history for a courier",
)
def courier_settlements_endpoint(
    courier_id: uuid.UUID,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_roles(COURIER, ADMIN)),
) -> list[SettlementResponse]:
    ensure_acting_as_courier(auth, get_courier(db, courier_id))
    return [
        SettlementResponse.model_validate(settlement)
        for settlement in settlement_service.list_courier_settlements(db, courier_id)
    ]
