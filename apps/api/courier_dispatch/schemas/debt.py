import uuid
from decimal import Decimal

from pydantic import BaseModel


class WarnedCourier(BaseModel):
    id: uuid.UUID
    name: str | None
    phone: str | None
    debt: Decimal
    hours_until_block: float


class BlockedCourier(BaseModel):
    id: uuid.UUID
    name: str | None
    phone: str | None
    debt: Decimal


class DebtSweepResponse(BaseModel):
    warned_count: int
    blocked_count: int
    warned: list[WarnedCourier]
    blocked: list[BlockedCourier]
    failed: list[uuid.UUID]
