import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from courier_dispatch.schemas.order import OrderResponse


class MatchingRequest(BaseModel):
    zone: str | None = Field(default=None, max_length=100)


class NotificationRecordResponse(BaseModel):
    courier_id: uuid.UUID
    position: int
    score: float
    proximity_score: int
    sent_at: datetime
    delivered: bool


class MatchingResponse(BaseModel):
    success: bool
    outcome: str
    notified_count: int
    notifications: list[NotificationRecordResponse]


class AcceptResponse(BaseModel):
    success: bool
    order: OrderResponse


class OfferRejectedResponse(BaseModel):
    success: bool
    order_id: uuid.UUID
    courier_id: uuid.UUID
