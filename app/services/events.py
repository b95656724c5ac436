"""Review events published to RabbitMQ after a committed mutation.

Delivery is at-most-once: a failed publish is logged and dropped, never
retried, and never turns into an error for the request that triggered it.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional, Union

import aio_pika
from aio_pika import DeliveryMode, ExchangeType
from aio_pika.exceptions import AMQPError, ChannelInvalidStateError
from pydantic import BaseModel, Field

from app.core.config import settings
from app.utils.logging import get_logger

if TYPE_CHECKING:
    from aio_pika.abc import AbstractChannel, AbstractConnection, AbstractExchange

logger = get_logger()

# ChannelInvalidStateError (no transport, e.g. mid-reconnect) is a RuntimeError.
BROKER_ERRORS = (AMQPError, ChannelInvalidStateError, OSError, asyncio.TimeoutError)


class EventType(str, Enum):
    REVIEW_CREATED = "review.created"
    REVIEW_UPDATED = "review.updated"
    REVIEW_DELETED = "review.deleted"


class ReviewEventData(BaseModel):
    review_id: str
    product_id: str
    rating: Optional[int] = None


class ReviewEvent(BaseModel):
    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    data: ReviewEventData

    @classmethod
    def build(
        cls,
        event_type: EventType,
        review_id: int,
        product_id: int,
        rating: Optional[int] = None,
    ) -> "ReviewEvent":
        return cls(
            event_type=event_type,
            data=ReviewEventData(
                review_id=str(review_id), product_id=str(product_id), rating=rating
            ),
        )

    def to_json(self) -> bytes:
        return self.model_dump_json(exclude_none=True).encode()


class EventPublishError(Exception):
    """An event could not be handed to the broker."""


class EventPublisher:
    """Publishes review events to a durable topic exchange."""

    def __init__(
        self,
        amqp_url: str,
        exchange_name: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.amqp_url = amqp_url
        self.exchange_name = exchange_name or settings.EVENTS_EXCHANGE
        self.timeout = timeout or settings.AMQP_PUBLISH_TIMEOUT
        self._connection: AbstractConnection | None = None
        self._channel: AbstractChannel | None = None
        self._exchange: AbstractExchange | None = None

    async def connect(self) -> None:
        self._connection = await aio_pika.connect_robust(self.amqp_url)
        self._channel = await self._connection.channel()
        self._exchange = await self._channel.declare_exchange(
            self.exchange_name,
            ExchangeType.TOPIC,
            durable=True,
        )
        logger.info(f"Event publisher connected (exchange={self.exchange_name})")

    async def publish(self, event: ReviewEvent) -> None:
        if self._exchange is None:
            raise EventPublishError("Publisher is not connected")

        message = aio_pika.Message(
            body=event.to_json(),
            content_type="application/json",
            delivery_mode=DeliveryMode.PERSISTENT,
        )
        try:
            await self._exchange.publish(
                message, routing_key=event.event_type.value, timeout=self.timeout
            )
        except BROKER_ERRORS as exc:
            raise EventPublishError(
                f"Failed to publish {event.event_type.value}: {exc}"
            ) from exc

    async def close(self) -> None:
        if self._connection and not self._connection.is_closed:
            await self._connection.close()
            logger.info("Event publisher connection closed")
        self._exchange = None


class NullEventPublisher:
    """Used when no broker is configured; events are dropped."""

    async def connect(self) -> None:
        return None

    async def publish(self, event: ReviewEvent) -> None:
        logger.debug(f"No broker configured, dropping {event.event_type.value}")

    async def close(self) -> None:
        return None


AnyEventPublisher = Union[EventPublisher, NullEventPublisher]


async def create_event_publisher() -> AnyEventPublisher:
    """Connect a publisher, or fall back to the null one if AMQP is unavailable."""
    if not settings.AMQP_URL:
        logger.info("AMQP_URL not configured, review events disabled")
        return NullEventPublisher()

    publisher = EventPublisher(settings.AMQP_URL)
    try:
        await publisher.connect()
    except BROKER_ERRORS as exc:
        logger.warning(f"Failed to connect event publisher, events disabled: {exc}")
        return NullEventPublisher()
    return publisher


async def publish_review_event(
    publisher: AnyEventPublisher,
    event_type: EventType,
    review_id: int,
    product_id: int,
    rating: Optional[int] = None,
) -> bool:
    event = ReviewEvent.build(event_type, review_id, product_id, rating)
    try:
        await publisher.publish(event)
    except EventPublishError as exc:
        logger.warning(f"Review event dropped: {exc}")
        return False
    except Exception as exc:
        # The mutation is already committed; the response must not fail now.
        logger.exception(f"Review event dropped after unexpected error: {exc}")
        return False
    return True
