import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from courier_dispatch.models.order import OrderStatus


class OrderCreate(BaseModel):
    customer_id: str = Field(min_length=1, max_length=64)
    items_text: str = Field(min_length=1)
    estimated_price: Decimal | None = Field(default=None, ge=0)
    delivery_address: str = Field(min_length=1, max_length=255)
    delivery_lat: float | None = Field(default=None, ge=-90, le=90)
    delivery_lng: float | None = Field(default=None, ge=-180, le=180)
    pickup_address: str | None = Field(default=None, max_length=255)
    pickup_lat: float | None = Field(default=None, ge=-90, le=90)
    pickup_lng: float | None = Field(default=None, ge=-180, le=180)
    notes: str | None = None
    zone: str | None = Field(default=None, max_length=100)

    @field_validator("customer_id", "items_text", "delivery_address", "pickup_address", "zone")
    @classmethod
    def strip_strings(cls, value: str | None) -> str | None:
        if value is None:
            return value
        return value.strip()


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    customer_id: str
    courier_id: uuid.UUID | None
    items_text: str
    estimated_price: Decimal | None
    delivery_fee: Decimal
    commission_amount: Decimal
    driver_share: Decimal | None
    delivery_code: str
    invoice_image_url: str | None
    pod_image_url: str | None
    pickup_address: str | None
    delivery_address: str
    zone: str | None
    notes: str | None
    dispute_flag: bool
    dispute_reason: str | None
    status: OrderStatus
    assigned_at: datetime | None
    picked_at: datetime | None
    en_route_at: datetime | None
    delivered_at: datetime | None
    completed_at: datetime | None
    canceled_at: datetime | None
    created_at: datetime
    updated_at: datetime


class OrderListResponse(BaseModel):
    items: list[OrderResponse]
    total: int
    limit: int
    offset: int


class CourierActionRequest(BaseModel):
    courier_id: uuid.UUID


class PickupRequest(CourierActionRequest):
    invoice_image_url: str = Field(min_length=1, max_length=1024)
    actual_price: Decimal | None = Field(default=None, ge=0)


class DeliverRequest(CourierActionRequest):
    delivery_code: str
    pod_image_url: str | None = Field(default=None, max_length=1024)


class CompleteRequest(BaseModel):
    rating: int | None = None
    comment: str | None = None
    admin_override: bool = False


class CancelRequest(BaseModel):
    reason: str | None = None


class DisputeRequest(BaseModel):
    reason: str = Field(min_length=1)


class RejectOfferRequest(CourierActionRequest):
    reason: str = "rejected"
