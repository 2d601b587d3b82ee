import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from courier_dispatch.models.settlement import SettlementStatus


class MarkPaidRequest(BaseModel):
    amount: Decimal | None = Field(default=None, gt=0)


class SettlementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    courier_id: uuid.UUID
    amount: Decimal
    orders_count: int
    period_start: datetime
    period_end: datetime
    status: SettlementStatus
    paid_at: datetime | None
    paid_by: str | None


class CommissionPostingResponse(BaseModel):
    order_id: uuid.UUID
    courier_id: uuid.UUID
    commission: Decimal
    total_pending: Decimal
    blocked: bool


class MarkPaidResponse(BaseModel):
    settlement: SettlementResponse
    remaining_debt: Decimal
    is_blocked: bool


class DailySettlementCourier(BaseModel):
    id: uuid.UUID
    name: str | None
    phone: str | None
    pending_settlement: Decimal
    is_blocked: bool


class DailySettlementSummaryResponse(BaseModel):
    date: date
    total_pending: Decimal
    couriers_count: int
    couriers: list[DailySettlementCourier]
    paid_total: Decimal
    paid_count: int


class CourierDebtStatusResponse(BaseModel):
    courier_id: uuid.UUID
    has_debt: bool
    amount: Decimal
    is_blocked: bool
    block_reason: str | None
    can_receive_orders: bool
