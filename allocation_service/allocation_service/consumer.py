"""Kafka consumer feeding snapshots from the sync transport into the service."""

import json
from typing import Callable

from confluent_kafka import Consumer, KafkaError
from pydantic import ValidationError

from .ingest import parse_payload
from .logger import get_sync_logger
from .schemas import Snapshot

logger = get_sync_logger("allocation-service")

SNAPSHOTS_TOPIC = "inventory.snapshots"


def create_consumer(bootstrap_servers: str, group_id: str = "allocation-service"):
    """Create a Kafka consumer instance."""
    return Consumer(
        {
            "bootstrap.servers": bootstrap_servers,
            "group.id": group_id,
            "auto.offset.reset": "latest",
        }
    )


class SnapshotConsumer:
    """Polls ``inventory.snapshots`` and hands each decoded snapshot to a callback.

    Malformed messages are logged and skipped; the loop runs until ``stop()``.
    """

    def __init__(self, consumer, on_snapshot: Callable[[Snapshot], None]):
        self.consumer = consumer
        self.on_snapshot = on_snapshot
        self.running = False

    def handle_message(self, msg) -> bool:
        """Decode one Kafka message and apply it.

        Returns:
            bool: True if a snapshot was applied.
        """
        if msg.error():
            if msg.error().code() == KafkaError._PARTITION_EOF:
                logger.debug("Reached end of partition")
            else:
                logger.error(f"Consumer error: {msg.error()}")
            return False
        try:
            snapshot = parse_payload(json.loads(msg.value()))
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse snapshot message: {e}")
            return False
        except ValidationError as e:
            logger.error(f"Invalid snapshot payload: {e}")
            return False
        self.on_snapshot(snapshot)
        logger.info(f"Applied snapshot from {msg.topic()} [p:{msg.partition()}] offset={msg.offset()}")
        return True

    def run(self) -> None:
        """Consume until stopped."""
        self.running = True
        try:
            self.consumer.subscribe([SNAPSHOTS_TOPIC])
            while self.running:
                msg = self.consumer.poll(1.0)
                if msg is None:
                    continue
                try:
                    self.handle_message(msg)
                except Exception as e:
                    logger.error(f"Error applying snapshot: {e}")
        finally:
            self.consumer.close()

    def stop(self) -> None:
        self.running = False
