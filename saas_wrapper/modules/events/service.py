from typing import Any
from uuid import UUID

import orjson
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from saas_wrapper.core.base import BaseService
from saas_wrapper.database.models import EventStatus, EventTrackingRecord
from saas_wrapper.modules.events.publisher import EventPublisher, FanOutResult, fan_out


class InterAppEventService(BaseService):
    """Publishes inter-application events and keeps a delivery audit trail."""

    def __init__(self, db: AsyncSession, publisher: EventPublisher):
        super().__init__(db)
        self.publisher = publisher

    async def publish_to_applications(
        self,
        event_type: str,
        source_app: str,
        target_apps: list[str],
        tenant_id: UUID,
        event_data: dict[str, Any],
        published_by: str,
        entity_id: UUID | None = None,
    ) -> FanOutResult:
        result = await fan_out(
            self.publisher,
            event_type,
            source_app,
            target_apps,
            tenant_id,
            entity_id,
            event_data,
            published_by,
        )
        await self._track(result, source_app, tenant_id, entity_id, event_data, published_by)
        return result

    async def _track(
        self,
        result: FanOutResult,
        source_app: str,
        tenant_id: UUID,
        entity_id: UUID | None,
        event_data: dict[str, Any],
        published_by: str,
    ) -> None:
        # Session is not safe for concurrent use, so rows are written after the gather
        stored_data = orjson.loads(orjson.dumps(event_data, default=str))
        for delivery in result.results:
            self.db.add(
                EventTrackingRecord(
                    event_id=delivery.event_id,
                    event_type=result.event_type,
                    tenant_id=tenant_id,
                    entity_id=entity_id,
                    source_application=source_app,
                    target_application=delivery.target_app,
                    event_data=stored_data,
                    published_by=published_by,
                    status=(
                        EventStatus.PUBLISHED
                        if delivery.delivered
                        else EventStatus.FAILED
                    ),
                    error=delivery.error,
                )
            )
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            self.logger.error(f"Failed to record event tracking rows: {e}")
