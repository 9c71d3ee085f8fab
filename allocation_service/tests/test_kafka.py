"""Tests for the Kafka producer and snapshot consumer."""

import json
from unittest.mock import MagicMock, Mock, patch

from confluent_kafka import KafkaError

from allocation_service.consumer import SNAPSHOTS_TOPIC, SnapshotConsumer, create_consumer
from allocation_service.producer import ALLOCATIONS_TOPIC, ORDERS_TOPIC, AllocationProducer
from allocation_service.schemas import AllocationResult, LineAllocation, LineStatus


def test_producer_initialization():
    """The Kafka producer is created with the expected settings."""
    mock_producer_instance = MagicMock()
    mock_producer_class = MagicMock(return_value=mock_producer_instance)

    with patch("allocation_service.producer.Producer", new=mock_producer_class):
        producer = AllocationProducer("dump:9092")

        mock_producer_class.assert_called_once_with(
            {
                "bootstrap.servers": "dump:9092",
                "client.id": "allocation-service",
                "message.timeout.ms": 5000,
                "partitioner": "consistent_random",
            }
        )
        assert producer.producer == mock_producer_instance


@patch("allocation_service.producer.Producer")
def test_publish_allocation(mock_producer_class):
    producer = AllocationProducer("localhost:9092")
    result = AllocationResult(lines=[LineAllocation(line_id="L1", status=LineStatus.CONFIRMED)])

    producer.publish_allocation(result)

    mock_producer_class.return_value.produce.assert_called_once_with(
        topic=ALLOCATIONS_TOPIC,
        key=b"allocation",
        value=result.model_dump_json(),
        on_delivery=producer._delivery_callback,
    )
    mock_producer_class.return_value.poll.assert_called_once_with(0)


@patch("allocation_service.producer.Producer")
def test_publish_order_keys_by_group(mock_producer_class, make_line):
    producer = AllocationProducer("localhost:9092")
    lines = [make_line("L1", "BEEF10", 1, "2024-06-01T10:00:00Z", group_id="ORD-9")]

    producer.publish_order("ORD-9", lines)

    kwargs = mock_producer_class.return_value.produce.call_args.kwargs
    assert kwargs["topic"] == ORDERS_TOPIC
    assert kwargs["key"] == b"ORD-9"
    assert json.loads(kwargs["value"])[0]["line_id"] == "L1"


@patch("allocation_service.consumer.Consumer")
def test_create_consumer(mock_consumer):
    create_consumer("kafka:9092")

    mock_consumer.assert_called_once_with(
        {
            "bootstrap.servers": "kafka:9092",
            "group.id": "allocation-service",
            "auto.offset.reset": "latest",
        }
    )


def _message(value, error=None):
    msg = Mock()
    msg.error.return_value = error
    msg.value.return_value = value
    msg.topic.return_value = SNAPSHOTS_TOPIC
    msg.partition.return_value = 0
    msg.offset.return_value = 1
    return msg


def test_handle_message_applies_snapshot():
    on_snapshot = Mock()
    consumer = SnapshotConsumer(Mock(), on_snapshot)
    payload = {"Inventory": [{"Mnemonic": "x1", "InitialQuantity": 3}], "Orders": []}

    assert consumer.handle_message(_message(json.dumps(payload).encode())) is True

    snapshot = on_snapshot.call_args.args[0]
    assert snapshot.items[0].mnemonic == "X1"


def test_handle_message_skips_bad_json():
    on_snapshot = Mock()
    consumer = SnapshotConsumer(Mock(), on_snapshot)

    assert consumer.handle_message(_message(b"{not json")) is False
    on_snapshot.assert_not_called()


def test_handle_message_skips_partition_eof():
    error = Mock()
    error.code.return_value = KafkaError._PARTITION_EOF
    on_snapshot = Mock()

    assert SnapshotConsumer(Mock(), on_snapshot).handle_message(_message(None, error=error)) is False
    on_snapshot.assert_not_called()


def test_run_subscribes_and_closes():
    kafka_consumer = Mock()
    snapshot_consumer = SnapshotConsumer(kafka_consumer, Mock())

    def poll(timeout):
        snapshot_consumer.stop()
        return None

    kafka_consumer.poll.side_effect = poll

    snapshot_consumer.run()

    kafka_consumer.subscribe.assert_called_once_with([SNAPSHOTS_TOPIC])
    kafka_consumer.close.assert_called_once()
