"""Credit configuration models (global defaults, tenant overrides, templates)."""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, CreditAmount, JSONType, utc_now


class ConfigChangeType(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    TEMPLATE = "template"


class CreditConfiguration(Base):
    __tablename__ = "credit_configurations"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    is_global: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    operation_code: Mapped[str] = mapped_column(String, nullable=False)
    operation_name: Mapped[str | None] = mapped_column(String, nullable=True)
    module_code: Mapped[str | None] = mapped_column(String, nullable=True)
    app_code: Mapped[str | None] = mapped_column(String, nullable=True)
    credit_cost: Mapped[Decimal] = mapped_column(CreditAmount, nullable=False)
    unit: Mapped[str] = mapped_column(String, nullable=False, default="operation")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    updated_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "operation_code",
            "is_global",
            name="uq_credit_configurations_scope_operation",
        ),
        # NULL tenant_ids never collide in the constraint above
        Index(
            "uq_credit_configurations_global_operation",
            "operation_code",
            unique=True,
            postgresql_where=text("tenant_id IS NULL"),
            sqlite_where=text("tenant_id IS NULL"),
        ),
    )


class CreditConfigurationTemplate(Base):
    __tablename__ = "credit_configuration_templates"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    template_code: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    template_name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(String, nullable=True)
    # {"leads.create": {"credit_cost": "2.50", "module_code": "leads", "app_code": "crm"}}
    operation_configurations: Mapped[dict] = mapped_column(
        JSONType, nullable=False, default=dict
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )


class ConfigurationChangeLog(Base):
    __tablename__ = "configuration_change_history"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    config_type: Mapped[str] = mapped_column(String, nullable=False, default="operation")
    tenant_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    operation_code: Mapped[str | None] = mapped_column(String, nullable=True)
    change_type: Mapped[ConfigChangeType] = mapped_column(String, nullable=False)
    old_values: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    new_values: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    changed_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
