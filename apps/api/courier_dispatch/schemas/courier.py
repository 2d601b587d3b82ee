import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from courier_dispatch.models.courier import CourierAccountStatus


def _clean_areas(values: list[str]) -> list[str]:
    seen: list[str] = []
    for value in values:
        area = value.strip()
        if area and area not in seen:
            seen.append(area)
    return seen


class CourierRegister(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    name: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=50)
    plate_number: str | None = Field(default=None, max_length=32)
    working_areas: list[str] = Field(default_factory=list)

    @field_validator("working_areas")
    @classmethod
    def normalize_areas(cls, value: list[str]) -> list[str]:
        return _clean_areas(value)


class WorkingAreasUpdate(BaseModel):
    working_areas: list[str]

    @field_validator("working_areas")
    @classmethod
    def normalize_areas(cls, value: list[str]) -> list[str]:
        return _clean_areas(value)


class AvailabilityUpdate(BaseModel):
    is_available: bool


class BlockRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=512)


class CourierResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: str
    name: str | None
    phone: str | None
    plate_number: str | None
    working_areas: list[str]
    is_available: bool
    is_approved: bool
    account_status: CourierAccountStatus
    is_blocked: bool
    block_reason: str | None
    rating: float
    total_deliveries: int
    pending_settlement: Decimal
    last_active_at: datetime | None
    created_at: datetime
