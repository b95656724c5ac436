"""Log-only consumer for review events."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

import aio_pika
from aio_pika import ExchangeType
from pydantic import ValidationError

from app.core.config import settings
from app.services.events import ReviewEvent
from app.utils.logging import get_logger

if TYPE_CHECKING:
    from aio_pika.abc import (
        AbstractChannel,
        AbstractConnection,
        AbstractIncomingMessage,
        AbstractQueue,
    )

logger = get_logger()


def format_event(event: ReviewEvent) -> str:
    lines = [
        "=== Review Event Received ===",
        f"  Event Type: {event.event_type.value}",
        f"  Timestamp:  {event.timestamp:%Y-%m-%d %H:%M:%S}",
        f"  Review ID:  {event.data.review_id}",
        f"  Product ID: {event.data.product_id}",
    ]
    if event.data.rating:
        lines.append(f"  Rating:     {event.data.rating}")
    lines.append("=============================")
    return "\n".join(lines)


async def handle_message(message: AbstractIncomingMessage) -> Optional[ReviewEvent]:
    """Log one delivery. Undecodable bodies are logged and acknowledged."""
    async with message.process():
        try:
            event = ReviewEvent.model_validate_json(message.body)
        except ValidationError as exc:
            logger.warning(f"Skipping undecodable review event: {exc}")
            return None
        logger.info(format_event(event))
        return event


class ReviewWatcher:
    def __init__(
        self,
        amqp_url: str,
        exchange_name: Optional[str] = None,
        queue_name: Optional[str] = None,
        routing_key: Optional[str] = None,
    ) -> None:
        self.amqp_url = amqp_url
        self.exchange_name = exchange_name or settings.EVENTS_EXCHANGE
        self.queue_name = queue_name or settings.WATCHER_QUEUE
        self.routing_key = routing_key or settings.WATCHER_ROUTING_KEY
        self._connection: AbstractConnection | None = None
        self._channel: AbstractChannel | None = None
        self._queue: AbstractQueue | None = None

    async def connect(self) -> None:
        self._connection = await aio_pika.connect_robust(self.amqp_url)
        self._channel = await self._connection.channel()
        await self._channel.set_qos(prefetch_count=10)

        exchange = await self._channel.declare_exchange(
            self.exchange_name, ExchangeType.TOPIC, durable=True
        )
        self._queue = await self._channel.declare_queue(self.queue_name, durable=True)
        await self._queue.bind(exchange, routing_key=self.routing_key)
        logger.info(
            f"Review watcher bound {self.queue_name} to {self.exchange_name} "
            f"({self.routing_key})"
        )

    async def start(self) -> None:
        if self._queue is None:
            raise RuntimeError("Not connected. Call connect() first.")
        await self._queue.consume(handle_message)
        logger.info(f"Consuming review events from {self.queue_name}")

    async def close(self) -> None:
        if self._connection and not self._connection.is_closed:
            await self._connection.close()
            logger.info("Review watcher connection closed")
