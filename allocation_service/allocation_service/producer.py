"""Kafka producer for publishing allocation results and placed checkouts."""

from confluent_kafka import Producer

from .logger import get_sync_logger
from .schemas import AllocationResult, OrderLine

logger = get_sync_logger("allocation-service")

ALLOCATIONS_TOPIC = "allocations.updated"
ORDERS_TOPIC = "orders.placed"


class AllocationProducer:
    """Publishes engine output for external readers (dashboards, sync workers).

    Every replay result goes to ``allocations.updated`` under one fixed key,
    so consumers reading the latest record per key always see the newest
    allocation. Placed checkouts go to ``orders.placed`` keyed by group id.

    Attributes:
        _producer: The underlying Kafka producer instance.
    """

    def __init__(self, bootstrap_servers: str, client_id: str = "allocation-service"):
        """Initialize the Kafka producer.

        Args:
            bootstrap_servers (str): Comma-separated list of Kafka broker addresses.
            client_id (str): Client id reported to the brokers.
        """
        self._producer = Producer(
            {
                "bootstrap.servers": bootstrap_servers,
                "client.id": client_id,
                "message.timeout.ms": 5000,
                "partitioner": "consistent_random",
            }
        )

    @property
    def producer(self):
        return self._producer

    def _delivery_callback(self, err, msg):
        """Delivery report callback.

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
            self._producer.poll(0)
        except BufferError:
            logger.warning("Producer buffer full, flushing...")
            self._producer.flush()
            raise

    def publish_allocation(self, result: AllocationResult) -> None:
        """Publish a replay result to ``allocations.updated``.

        Raises:
            BufferError: If the producer's internal buffer is full.
        """
        self._produce(ALLOCATIONS_TOPIC, "allocation", result.model_dump_json())

    def publish_order(self, group_id: str, lines: list[OrderLine]) -> None:
        """Publish the lines of a freshly placed checkout to ``orders.placed``."""
        payload = "[" + ",".join(line.model_dump_json() for line in lines) + "]"
        self._produce(ORDERS_TOPIC, group_id, payload)

    def close(self) -> None:
        self._producer.flush(5)
