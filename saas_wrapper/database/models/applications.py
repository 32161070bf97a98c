"""Application catalog and tenant application assignments."""

import uuid
from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, JSONType, utc_now


class ApplicationStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Application(Base):
    __tablename__ = "applications"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    app_code: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    app_name: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[ApplicationStatus] = mapped_column(
        String, nullable=False, default=ApplicationStatus.ACTIVE
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )

    modules = relationship(
        "ApplicationModule",
        back_populates="application",
        cascade="all, delete-orphan",
        order_by="ApplicationModule.module_code",
    )


class ApplicationModule(Base):
    __tablename__ = "application_modules"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    app_id: Mapped[UUID] = mapped_column(
        ForeignKey("applications.id", ondelete="CASCADE"), nullable=False
    )
    module_code: Mapped[str] = mapped_column(String, nullable=False)
    module_name: Mapped[str] = mapped_column(String, nullable=False)
    # Action codes, e.g. ["view", "create"]; empty or null means module defaults
    permissions: Mapped[list | None] = mapped_column(JSONType, nullable=True)

    application = relationship("Application", back_populates="modules")

    __table_args__ = (
        UniqueConstraint("app_id", "module_code", name="uq_application_modules_code"),
    )


class TenantApplicationAssignment(Base):
    __tablename__ = "organization_applications"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    app_id: Mapped[UUID] = mapped_column(
        ForeignKey("applications.id", ondelete="CASCADE"), nullable=False
    )
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    enabled_modules: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    custom_permissions: Mapped[dict] = mapped_column(
        JSONType, nullable=False, default=dict
    )
    subscription_tier: Mapped[str | None] = mapped_column(String, nullable=True)
    max_users: Mapped[int | None] = mapped_column(Integer, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    application = relationship("Application")

    __table_args__ = (
        UniqueConstraint("tenant_id", "app_id", name="uq_organization_applications"),
    )
