from courier_dispatch.schemas.courier import (
    AvailabilityUpdate,
    BlockRequest,
    CourierRegister,
    CourierResponse,
    WorkingAreasUpdate,
)
from courier_dispatch.schemas.debt import DebtSweepResponse
from courier_dispatch.schemas.dispatch import (
    AcceptResponse,
    MatchingRequest,
    MatchingResponse,
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
from courier_dispatch.schemas.settlement import (
    CourierDebtStatusResponse,
    DailySettlementSummaryResponse,
    MarkPaidRequest,
    MarkPaidResponse,
    SettlementResponse,
)

__all__ = [
    "OrderCreate",
    "OrderResponse",
    "OrderListResponse",
    "CourierActionRequest",
    "PickupRequest",
    "DeliverRequest",
    "CompleteRequest",
    "CancelRequest",
    "DisputeRequest",
    "RejectOfferRequest",
    "MatchingRequest",
    "MatchingResponse",
    "AcceptResponse",
    "OfferRejectedResponse",
    "CourierRegister",
    "CourierResponse",
    "AvailabilityUpdate",
    "WorkingAreasUpdate",
    "BlockRequest",
    "MarkPaidRequest",
    "MarkPaidResponse",
    "SettlementResponse",
    "DailySettlementSummaryResponse",
    "CourierDebtStatusResponse",
    "DebtSweepResponse",
]
