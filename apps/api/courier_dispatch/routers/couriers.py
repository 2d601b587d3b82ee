import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from courier_dispatch.auth.dependencies import (
    ADMIN,
    COURIER,
    AuthContext,
    ensure_acting_as_courier,
    get_auth_context,
    require_admin,
    require_roles,
)
from courier_dispatch.clock import Clock
from courier_dispatch.db.session import get_db
from courier_dispatch.dependencies import get_clock
from courier_dispatch.schemas.courier import (
    AvailabilityUpdate,
    BlockRequest,
    CourierRegister,
    CourierResponse,
    WorkingAreasUpdate,
)
from courier_dispatch.schemas.settlement import CourierDebtStatusResponse
from courier_dispatch.services import courier_directory, settlement_service

router = APIRouter(prefix="/api/v1/couriers", tags=["couriers"])


@router.post("", response_model=CourierResponse, summary="Register courier", status_code=201)
def register_endpoint(
    payload: CourierRegister,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    auth: AuthContext = Depends(require_roles(COURIER, ADMIN)),
) -> CourierResponse:
    if auth.role == COURIER and payload.user_id != auth.user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your account")
    return CourierResponse.model_validate(courier_directory.register_courier(db, payload, clock))


@router.get("/{courier_id}", response_model=CourierResponse, summary="Get courier")
def get_courier_endpoint(
    courier_id: uuid.UUID,
    db: Session = Depends(get_db),
    _auth: AuthContext = Depends(get_auth_context),
) -> CourierResponse:
    return CourierResponse.model_validate(courier_directory.get_courier(db, courier_id))


@router.post("/{courier_id}/approve", response_model=CourierResponse, summary="Approve courier")
def approve_endpoint(
    courier_id: uuid.UUID,
    db: Session = Depends(get_db),
    _auth: AuthContext = Depends(require_admin),
) -> CourierResponse:
    return CourierResponse.model_validate(courier_directory.review_courier(db, courier_id, True))


@router.post("/{courier_id}/reject", response_model=CourierResponse, summary="Reject courier")
def reject_endpoint(
    courier_id: uuid.UUID,
    db: Session = Depends(get_db),
    _auth: AuthContext = Depends(require_admin),
) -> CourierResponse:
    return CourierResponse.model_validate(courier_directory.review_courier(db, courier_id, False))


@router.post(
    "/{courier_id}/availability",
    response_model=CourierResponse,
    summary="Go online or offline",
)
def availability_endpoint(
    courier_id: uuid.UUID,
    payload: AvailabilityUpdate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    auth: AuthContext = Depends(require_roles(COURIER, ADMIN)),
) -> CourierResponse:
    ensure_acting_as_courier(auth, courier_directory.get_courier(db, courier_id))
    courier = courier_directory.set_availability(db, courier_id, payload.is_available, clock)
    return CourierResponse.model_validate(courier)


@router.post(
    "/{courier_id}/working-areas",
    response_model=CourierResponse,
    summary="Replace working areas",
)
def working_areas_endpoint(
    courier_id: uuid.UUID,
    payload: WorkingAreasUpdate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_roles(COURIER, ADMIN)),
) -> CourierResponse:
    ensure_acting_as_courier(auth, courier_directory.get_courier(db, courier_id))
    courier = courier_directory.update_working_areas(db, courier_id, payload.working_areas)
    return CourierResponse.model_validate(courier)


@router.post("/{courier_id}/block", response_model=CourierResponse, summary="Block courier")
def block_endpoint(
    courier_id: uuid.UUID,
    payload: BlockRequest,
    db: Session = Depends(get_db),
    _auth: AuthContext = Depends(require_admin),
) -> CourierResponse:
    return CourierResponse.model_validate(
        courier_directory.block_courier(db, courier_id, payload.reason)
    )


@router.post("/{courier_id}/unblock", response_model=CourierResponse, summary="Unblock courier")
def unblock_endpoint(
    courier_id: uuid.UUID,
    db: Session = Depends(get_db),
    _auth: AuthContext = Depends(require_admin),
) -> CourierResponse:
    return CourierResponse.model_validate(courier_directory.unblock_courier(db, courier_id))


@router.get(
    "/{courier_id}/debt",
    response_model=CourierDebtStatusResponse,
    summary="Courier debt status",
)
def debt_status_endpoint(
    courier_id: uuid.UUID,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_roles(COURIER, ADMIN)),
) -> CourierDebtStatusResponse:
    ensure_acting_as_courier(auth, courier_directory.get_courier(db, courier_id))
    debt = settlement_service.get_courier_debt_status(db, courier_id)
    return CourierDebtStatusResponse(
        courier_id=debt.courier_id,
        has_debt=debt.has_debt,
        amount=debt.amount,
        is_blocked=debt.is_blocked,
        block_reason=debt.block_reason,
        can_receive_orders=debt.can_receive_orders,
    )
