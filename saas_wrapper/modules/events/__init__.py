from saas_wrapper.modules.events.publisher import (
    DeliveryResult,
    EventPublishError,
    EventPublisher,
    FanOutResult,
    InMemoryEventPublisher,
    RedisStreamEventPublisher,
    fan_out,
)
from saas_wrapper.modules.events.service import InterAppEventService

__all__ = [
    "DeliveryResult",
    "EventPublishError",
    "EventPublisher",
    "FanOutResult",
    "InMemoryEventPublisher",
    "InterAppEventService",
    "RedisStreamEventPublisher",
    "fan_out",
]
