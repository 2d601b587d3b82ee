import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, Boolean, DateTime, Enum, Float, Integer, Numeric, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from courier_dispatch.db.base import Base


class CourierAccountStatus(str, enum.Enum):
    PENDING_REVIEW = "PENDING_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class CourierBlockSource(str, enum.Enum):
    DEBT = "DEBT"
    ADMIN = "ADMIN"


class Courier(Base):
    __tablename__ = "couriers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    plate_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    working_areas: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    account_status: Mapped[CourierAccountStatus] = mapped_column(
        Enum(CourierAccountStatus, name="courier_account_status"),
        nullable=False,
        default=CourierAccountStatus.PENDING_REVIEW,
    )
    is_blocked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    block_reason: Mapped[str | None] = mapped_column(String(512), nullable=True)
    block_source: Mapped[CourierBlockSource | None] = mapped_column(
        Enum(CourierBlockSource, name="courier_block_source"), nullable=True
    )

    rating: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_deliveries: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pending_settlement: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0")
    )
    last_active_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )
