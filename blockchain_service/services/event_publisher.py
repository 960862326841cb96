"""
Publishes transaction-finalized events to the platform topic exchange.
"""

import json
from typing import Optional

import aio_pika
from aio_pika.abc import AbstractExchange, AbstractRobustConnection
import structlog

from blockchain_service.core.config import settings
from blockchain_service.core.exceptions import PublisherError
from blockchain_service.schemas.events import TransactionFinalizedEvent


logger = structlog.get_logger(__name__)


class EventPublisher:
    """
    Thin AMQP publisher.

    Messages are persistent JSON on a durable topic exchange. Delivery
    guarantees beyond that belong to the broker: a failed publish is logged
    and reported to the caller as ``False``, never raised, so a job's
    terminal status is not rolled back by a broker outage.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        exchange_name: Optional[str] = None,
        exchange: Optional[AbstractExchange] = None,
    ):
        self.url = url or settings.rabbitmq_url
        self.exchange_name = exchange_name or settings.events_exchange
        self._connection: Optional[AbstractRobustConnection] = None
        self._exchange: Optional[AbstractExchange] = exchange
        self.logger = logger.bind(service="event_publisher")

    async def connect(self) -> None:
        """Open a robust connection and declare the topic exchange."""
        if self._exchange is not None:
            return
        try:
            self._connection = await aio_pika.connect_robust(self.url)
            channel = await self._connection.channel()
            self._exchange = await channel.declare_exchange(
                self.exchange_name,
                aio_pika.ExchangeType.TOPIC,
                durable=True,
            )
            self.logger.info("Connected to event bus", exchange=self.exchange_name)
        except Exception as e:
            self.logger.error("Failed to connect to event bus", error=str(e))
            raise PublisherError(f"Failed to connect to event bus: {e}") from e

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            self._exchange = None
            self.logger.info("Event bus connection closed")

    async def health_check(self) -> bool:
        if self._connection is None:
            return self._exchange is not None
        return not self._connection.is_closed

    async def publish_transaction_finalized(self, event: TransactionFinalizedEvent) -> bool:
        """Publish ``event`` with routing key ``transactions.finalized.<status>``."""
        routing_key = event.routing_key
        if self._exchange is None:
            # Start-up connect failed; the robust connection covers later drops
            try:
                await self.connect()
            except PublisherError:
                self.logger.critical(
                    "Event bus not connected, finalized event dropped",
                    job_id=event.job_id,
                    routing_key=routing_key,
                )
                return False

        message = aio_pika.Message(
            body=json.dumps(event.to_message()).encode("utf-8"),
            content_type="application/json",
            delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
            message_id=event.job_id,
        )

        try:
            await self._exchange.publish(message, routing_key=routing_key)
        except Exception as e:
            self.logger.critical(
                "Failed to publish finalized event",
                job_id=event.job_id,
                routing_key=routing_key,
                error=str(e),
            )
            return False

        self.logger.info(
            "Finalized event published",
            job_id=event.job_id,
            tx_id=event.id,
            routing_key=routing_key,
        )
        return True
