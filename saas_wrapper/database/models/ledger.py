"""Credit ledger and transaction models."""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, CreditAmount, JSONType, ZERO, utc_now


class TransactionType(str, Enum):
    PURCHASE = "purchase"
    CONSUMPTION = "consumption"
    TRANSFER = "transfer"
    ALLOCATION = "allocation"
    REFUND = "refund"
    EXPIRY = "expiry"


class CreditLedgerEntry(Base):
    __tablename__ = "credits"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    entity_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    available_credits: Mapped[Decimal] = mapped_column(
        CreditAmount, nullable=False, default=ZERO
    )
    total_credits: Mapped[Decimal] = mapped_column(
        CreditAmount, nullable=False, default=ZERO
    )
    period_type: Mapped[str] = mapped_column(String, nullable=False, default="month")
    credit_expiry: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_updated_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    last_updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "entity_id", name="uq_credits_tenant_entity"),
        CheckConstraint("available_credits >= 0", name="ck_credits_available_non_negative"),
        CheckConstraint(
            "available_credits <= total_credits", name="ck_credits_available_within_total"
        ),
    )


class CreditTransaction(Base):
    __tablename__ = "credit_transactions"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    entity_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    transaction_type: Mapped[TransactionType] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(CreditAmount, nullable=False)
    previous_balance: Mapped[Decimal] = mapped_column(CreditAmount, nullable=False)
    new_balance: Mapped[Decimal] = mapped_column(CreditAmount, nullable=False)
    operation_code: Mapped[str | None] = mapped_column(String, nullable=True)
    description: Mapped[str | None] = mapped_column(String, nullable=True)
    metadata_json: Mapped[dict] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict
    )
    initiated_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    __table_args__ = (
        Index("ix_credit_transactions_tenant_created", "tenant_id", "created_at"),
        Index("ix_credit_transactions_entity", "tenant_id", "entity_id"),
    )
