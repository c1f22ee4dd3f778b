"""Kafka producer for publishing checkout outcome events."""

import json

from confluent_kafka import Producer
from logging_utils.config import get_kafka_logger

from .schemas import OrderPlacedEvent, OrphanRecord

logger = get_kafka_logger("checkout-service")

ORDERS_CREATED_TOPIC = "orders.created"
CHECKOUT_ORPHANS_TOPIC = "checkout.orphans"


class CheckoutEventProducer:
    """Kafka producer for checkout confirmations and orphan reports.

    Confirmations go to ``orders.created`` keyed by order id; records left
    behind by failed checkouts go to ``checkout.orphans`` keyed by checkout id
    so a reconciliation consumer sees one attempt's records together.

    Attributes:
        _producer: The underlying Kafka producer instance.
    """

    def __init__(self, bootstrap_servers: str):
        """Initialize the Kafka producer with the given bootstrap servers.

        Args:
            bootstrap_servers (str): Comma-separated list of Kafka broker addresses.
        """
        self._producer = Producer(
            {
                "bootstrap.servers": bootstrap_servers,
                "message.timeout.ms": 5000,
                "partitioner": "consistent_random",  # Same key → same partition
            }
        )

    @property
    def producer(self):
        """Get the underlying Kafka producer instance.

        Returns:
            Producer: The Kafka producer instance.
        """
        return self._producer

    def _delivery_callback(self, err, msg):
        """Callback function for message delivery reports.

        Args:
            err: Error that occurred during message delivery, if any.
            msg: Message that was delivered or failed.
        """
        if err:
            logger.error(f"Message failed delivery: {err} | topic={msg.topic()} | key={msg.key()}")
        else:
            logger.debug(f"Message delivered to {msg.topic()} [p:{msg.partition()}] | offset={msg.offset()}")

    def _produce(self, topic: str, key: str, value: str) -> None:
        try:
            self._producer.produce(
                topic=topic,
                key=key.encode("utf-8"),
                value=value,
                on_delivery=self._delivery_callback,
            )
            self._producer.poll(0)  # Trigger delivery callbacks
        except BufferError:
            logger.warning("Producer buffer full, flushing...")
            self._producer.flush()
            raise

    def publish_order_placed(self, event: OrderPlacedEvent) -> None:
        """Publish a checkout confirmation.

        Args:
            event (OrderPlacedEvent): The placed order.

        Raises:
            BufferError: If the producer's internal buffer is full.
        """
        self._produce(ORDERS_CREATED_TOPIC, str(event.order_id), event.model_dump_json())

    def publish_orphans(self, checkout_id: str, orphans: list[OrphanRecord]) -> None:
        """Publish the records a failed checkout left behind.

        Args:
            checkout_id (str): The failed checkout attempt.
            orphans (list[OrphanRecord]): Records still present in the store API.

        Raises:
            BufferError: If the producer's internal buffer is full.
        """
        value = json.dumps([orphan.model_dump(mode="json") for orphan in orphans])
        self._produce(CHECKOUT_ORPHANS_TOPIC, checkout_id, value)

    def close(self, timeout: float = 10.0) -> None:
        """Flush pending messages before shutdown."""
        remaining = self._producer.flush(timeout)
        if remaining > 0:
            logger.warning(f"{remaining} messages still pending delivery")
