"""Inter-application event publishers.

Every publisher implements ``publish`` with the same signature; the wrapper
only builds payloads and picks targets, delivery belongs to the backend.
"""

import asyncio
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

import orjson
import redis.asyncio as redis

from saas_wrapper.utils.logger import get_logger
from saas_wrapper.utils.settings.redis import RedisSettings

logger = get_logger(__name__)


class EventPublishError(Exception):
    """Raised by a publisher when a single target could not be reached."""

    def __init__(self, target_app: str, reason: str):
        self.target_app = target_app
        self.reason = reason
        super().__init__(f"Failed to publish to {target_app}: {reason}")


class EventPublisher(ABC):
    @abstractmethod
    async def publish(
        self,
        event_type: str,
        source_app: str,
        target_app: str,
        tenant_id: UUID,
        entity_id: UUID | None,
        event_data: dict[str, Any],
        published_by: str,
    ) -> str:
        """Publish one event to one target application and return its id."""


def build_envelope(
    event_id: str,
    event_type: str,
    source_app: str,
    target_app: str,
    tenant_id: UUID,
    entity_id: UUID | None,
    event_data: dict[str, Any],
    published_by: str,
) -> dict[str, Any]:
    return {
        "eventId": event_id,
        "eventType": event_type,
        "sourceApplication": source_app,
        "targetApplication": target_app,
        "tenantId": str(tenant_id),
        "entityId": str(entity_id) if entity_id else None,
        "publishedBy": published_by,
        "publishedAt": datetime.now(timezone.utc).isoformat(),
        "data": event_data,
    }


class RedisStreamEventPublisher(EventPublisher):
    """Appends events to one Redis stream per target application."""

    def __init__(
        self,
        client: redis.Redis,
        stream_prefix: str | None = None,
        maxlen: int | None = None,
    ):
        settings = RedisSettings()
        self.client = client
        self.stream_prefix = stream_prefix or settings.EVENT_STREAM_PREFIX
        self.maxlen = maxlen or settings.EVENT_STREAM_MAXLEN

    def stream_key(self, target_app: str) -> str:
        return f"{self.stream_prefix}:{target_app}"

    async def publish(
        self,
        event_type: str,
        source_app: str,
        target_app: str,
        tenant_id: UUID,
        entity_id: UUID | None,
        event_data: dict[str, Any],
        published_by: str,
    ) -> str:
        event_id = uuid.uuid4().hex
        envelope = build_envelope(
            event_id,
            event_type,
            source_app,
            target_app,
            tenant_id,
            entity_id,
            event_data,
            published_by,
        )
        try:
            await self.client.xadd(
                self.stream_key(target_app),
                {
                    "event_id": event_id,
                    "event_type": event_type,
                    "payload": orjson.dumps(envelope, default=str),
                },
                maxlen=self.maxlen,
                approximate=True,
            )
        except redis.RedisError as e:
            raise EventPublishError(target_app, str(e)) from e

        logger.debug(
            f"Published {event_type} to {self.stream_key(target_app)}",
            event_id=event_id,
        )
        return event_id


class InMemoryEventPublisher(EventPublisher):
    """Keeps published events in memory. Used for local runs and tests."""

    def __init__(self, failing_targets: set[str] | None = None):
        self.events: list[dict[str, Any]] = []
        self.failing_targets = set(failing_targets or ())

    async def publish(
        self,
        event_type: str,
        source_app: str,
        target_app: str,
        tenant_id: UUID,
        entity_id: UUID | None,
        event_data: dict[str, Any],
        published_by: str,
    ) -> str:
        if target_app in self.failing_targets:
            raise EventPublishError(target_app, "target unavailable")

        event_id = uuid.uuid4().hex
        self.events.append(
            build_envelope(
                event_id,
                event_type,
                source_app,
                target_app,
                tenant_id,
                entity_id,
                event_data,
                published_by,
            )
        )
        return event_id

    def events_for(self, target_app: str) -> list[dict[str, Any]]:
        return [e for e in self.events if e["targetApplication"] == target_app]

    def clear(self) -> None:
        self.events.clear()


@dataclass
class DeliveryResult:
    target_app: str
    event_id: str | None = None
    error: str | None = None

    @property
    def delivered(self) -> bool:
        return self.error is None


@dataclass
class FanOutResult:
    event_type: str
    results: list[DeliveryResult] = field(default_factory=list)

    @property
    def delivered(self) -> list[str]:
        return [r.target_app for r in self.results if r.delivered]

    @property
    def failed(self) -> dict[str, str]:
        return {r.target_app: r.error for r in self.results if not r.delivered}

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type,
            "delivered": self.delivered,
            "failed": self.failed,
        }


async def fan_out(
    publisher: EventPublisher,
    event_type: str,
    source_app: str,
    target_apps: list[str],
    tenant_id: UUID,
    entity_id: UUID | None,
    event_data: dict[str, Any],
    published_by: str,
) -> FanOutResult:
    """Publish the same event to every target concurrently.

    A failing target never affects the others; failures are collected in the
    result and logged, never raised.
    """
    tasks = [
        publisher.publish(
            event_type,
            source_app,
            target,
            tenant_id,
            entity_id,
            event_data,
            published_by,
        )
        for target in target_apps
    ]
    outcomes = await asyncio.gather(*tasks, return_exceptions=True)

    result = FanOutResult(event_type=event_type)
    for target, outcome in zip(target_apps, outcomes):
        if isinstance(outcome, BaseException):
            result.results.append(DeliveryResult(target_app=target, error=str(outcome)))
        else:
            result.results.append(DeliveryResult(target_app=target, event_id=outcome))

    if result.failed:
        logger.warning(
            f"Event {event_type} failed for {len(result.failed)} of {len(target_apps)} targets",
            tenant_id=str(tenant_id),
            failed=result.failed,
        )
    else:
        logger.info(
            f"Event {event_type} delivered to {len(target_apps)} targets",
            tenant_id=str(tenant_id),
        )
    return result
