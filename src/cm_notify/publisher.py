"""Outbound notification events over Redis Pub/Sub.

Events are published only after the owning DB transaction has committed.
Delivery is fire-and-forget: a publish failure is logged and swallowed so it
can never undo a committed financial operation. Push/email fan-out is the
notification service's job; it subscribes to settings.EVENTS_CHANNEL.
"""

import json
import logging
from typing import Protocol

from redis.exceptions import RedisError

from config.settings import settings
from src.cm_common.redis_client import get_redis
from src.cm_trade.domain.events import DomainEvent

logger = logging.getLogger(__name__)


class EventPublisherProtocol(Protocol):
    async def publish(self, event: DomainEvent) -> None: ...


def serialize_event(event: DomainEvent) -> str:
    return json.dumps(
        {
            "event_type": event.event_type,
            "occurred_at": event.occurred_at.isoformat(),
            "recipients": event.recipients,
            "payload": event.payload,
        },
        default=str,
    )


class RedisEventPublisher:
    def __init__(self, channel: str | None = None) -> None:
        self._channel = channel or settings.EVENTS_CHANNEL

    async def publish(self, event: DomainEvent) -> None:
        try:
            redis = await get_redis()
            receivers = await redis.publish(self._channel, serialize_event(event))
        except (RedisError, OSError) as exc:
            logger.warning(
                "Failed to publish %s for %s: %s",
                event.event_type, event.payload.get("offer_id"), exc,
            )
            return
        logger.debug("Published %s to %s (%d receivers)", event.event_type, self._channel, receivers)
