"""Checkout-backed credit purchase records."""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import DateTime, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, CreditAmount, utc_now


class PurchaseStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    REFUNDED = "refunded"
    FAILED = "failed"


class CreditPurchase(Base):
    __tablename__ = "credit_purchases"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    entity_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    package_id: Mapped[str | None] = mapped_column(String, nullable=True)
    credit_amount: Mapped[Decimal] = mapped_column(CreditAmount, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 6), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String, nullable=False, default="usd")
    status: Mapped[PurchaseStatus] = mapped_column(
        String, nullable=False, default=PurchaseStatus.PENDING
    )
    checkout_session_id: Mapped[str | None] = mapped_column(
        String, unique=True, nullable=True
    )
    checkout_url: Mapped[str | None] = mapped_column(String, nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String, nullable=True)
    refund_reference: Mapped[str | None] = mapped_column(String, nullable=True)
    requested_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    refunded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
