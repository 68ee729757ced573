import json

from thriftverse.infrastructure.kafka_producer import KafkaProducerClient


class RecordingProducer:
    def __init__(self, error=None):
        self.sent = []
        self.error = error

    async def send_and_wait(self, topic, key, value):
        if self.error:
            raise self.error
        self.sent.append((topic, key, value))


async def test_publish_before_start_is_rejected():
    client = KafkaProducerClient("localhost:9092", "thriftverse-order.events")
    assert not await client.publish("order.created", "o-1", {"order_id": "o-1"})


async def test_publish_sends_keyed_event():
    client = KafkaProducerClient("localhost:9092", "thriftverse-order.events")
    client._producer = RecordingProducer()

    assert await client.publish("order.created", "o-1", {"order_id": "o-1", "amount": "1170.00"})

    topic, key, value = client._producer.sent[0]
    assert topic == "thriftverse-order.events"
    assert key == b"o-1"
    assert json.loads(value) == {"event_type": "order.created", "order_id": "o-1", "amount": "1170.00"}


async def test_publish_failure_is_reported():
    client = KafkaProducerClient("localhost:9092", "thriftverse-order.events")
    client._producer = RecordingProducer(error=RuntimeError("broker down"))
    assert not await client.publish("order.created", "o-1", {})
