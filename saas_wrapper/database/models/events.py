"""Inter-application event tracking."""

import uuid
from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import DateTime, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, JSONType, utc_now


class EventStatus(str, Enum):
    PUBLISHED = "published"
    FAILED = "failed"


class EventTrackingRecord(Base):
    __tablename__ = "event_tracking"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    event_id: Mapped[str | None] = mapped_column(String, nullable=True)
    event_type: Mapped[str] = mapped_column(String, nullable=False)
    tenant_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    entity_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    source_application: Mapped[str] = mapped_column(String, nullable=False)
    target_application: Mapped[str] = mapped_column(String, nullable=False)
    event_data: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    published_by: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[EventStatus] = mapped_column(String, nullable=False)
    error: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
