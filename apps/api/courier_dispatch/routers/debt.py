from collections.abc import Callable

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from courier_dispatch.auth.dependencies import AuthContext, require_admin
from courier_dispatch.clock import Clock
from courier_dispatch.dependencies import (
    get_audit_recorder,
    get_clock,
    get_notification_sink,
    get_session_factory,
)
from courier_dispatch.integrations.notification_client import NotificationSink
from courier_dispatch.schemas.debt import BlockedCourier, DebtSweepResponse, WarnedCourier
from courier_dispatch.services.audit_service import AuditRecorder
from courier_dispatch.services.debt_monitor_service import run_end_of_day_sweep

router = APIRouter(prefix="/api/v1/debt", tags=["debt"])


@router.post("/sweep", response_model=DebtSweepResponse, summary="Run the end-of-day debt sweep")
def sweep_endpoint(
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    notifier: NotificationSink = Depends(get_notification_sink),
    audit: AuditRecorder = Depends(get_audit_recorder),
    clock: Clock = Depends(get_clock),
    _auth: AuthContext = Depends(require_admin),
) -> DebtSweepResponse:
    result = run_end_of_day_sweep(session_factory, notifier, audit, clock)
    return DebtSweepResponse(
        warned_count=len(result.warned),
        blocked_count=len(result.blocked),
        warned=[
            WarnedCourier(
                id=item.id,
                name=item.name,
                phone=item.phone,
                debt=item.debt,
                hours_until_block=item.hours_until_block,
            )
            for item in result.warned
        ],
        blocked=[
            BlockedCourier(id=item.id, name=item.name, phone=item.phone, debt=item.debt)
            for item in result.blocked
        ],
        failed=result.failed,
    )
