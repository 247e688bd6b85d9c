"""
Tests for EventProducer and the event envelope builders.
"""

from datetime import datetime, timezone

from bson import ObjectId
from confluent_kafka import KafkaException
from prometheus_client import REGISTRY

from conftest import FakeKafkaProducer
from trade_api.kafka_producer import (
    EventProducer,
    trade_offer_created_event,
    trade_status_updated_event,
    user_changed_event,
)


def published_count(topic, result):
    value = REGISTRY.get_sample_value(
        "trade_api_events_published_total", {"topic": topic, "result": result}
    )
    return value or 0.0


def sample_offer():
    return {
        "_id": ObjectId(),
        "offerer": ObjectId(),
        "receiver": ObjectId(),
        "offeredGames": [ObjectId(), ObjectId()],
        "requestedGames": [],
        "status": "pending",
        "createdAt": datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc),
    }


class TestPublish:

    def test_success(self):
        kafka = FakeKafkaProducer()
        producer = EventProducer(kafka, flush_timeout=0.1)
        before = published_count("trade-offers", "success")

        result = producer.publish("trade-offers", {"hello": "world"})

        assert result
        assert result.error is None
        assert kafka.messages == [("trade-offers", {"hello": "world"})]
        assert kafka.flush_calls == 1
        assert published_count("trade-offers", "success") == before + 1

    def test_serializes_object_ids_and_datetimes(self):
        kafka = FakeKafkaProducer()
        oid = ObjectId()
        when = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

        EventProducer(kafka).publish("t", {"id": oid, "at": when})

        assert kafka.messages[0][1] == {"id": str(oid), "at": when.isoformat()}

    def test_delivery_error_is_a_failed_result(self):
        kafka = FakeKafkaProducer(delivery_error="Broker: Topic authorization failed")
        before = published_count("user-changes", "failure")

        result = EventProducer(kafka).publish("user-changes", {"x": 1})

        assert not result
        assert "authorization" in result.error
        assert published_count("user-changes", "failure") == before + 1

    def test_produce_exceptions_do_not_propagate(self):
        for error in (BufferError("Local: Queue full"), KafkaException("boom")):
            result = EventProducer(FakeKafkaProducer(produce_error=error)).publish("t", {})

            assert not result
            assert type(error).__name__ in result.error

    def test_undelivered_after_flush_timeout(self):
        result = EventProducer(FakeKafkaProducer(undelivered=1)).publish("t", {})

        assert not result
        assert "timeout" in result.error

    def test_unserializable_payload(self):
        result = EventProducer(FakeKafkaProducer()).publish("t", {"x": object()})

        assert not result

    def test_close_flushes(self):
        kafka = FakeKafkaProducer()

        EventProducer(kafka).close()

        assert kafka.flush_calls == 1


class TestEnvelopes:

    def test_trade_offer_created(self):
        offer = sample_offer()

        event = trade_offer_created_event(offer)

        assert event == {
            "_id": str(offer["_id"]),
            "offerer": str(offer["offerer"]),
            "receiver": str(offer["receiver"]),
            "offeredGames": [str(g) for g in offer["offeredGames"]],
            "requestedGames": [],
            "status": "pending",
            "createdAt": "2024-05-01T12:30:00+00:00",
        }

    def test_trade_status_updated(self):
        offer = sample_offer()

        event = trade_status_updated_event(offer, "rejected")

        assert set(event) == {
            "tradeId", "offerer", "receiver", "offeredGames", "requestedGames", "newStatus",
        }
        assert event["tradeId"] == str(offer["_id"])
        assert event["newStatus"] == "rejected"

    def test_user_changed_never_includes_password(self):
        user = {"_id": ObjectId(), "name": "Alice", "email": "a@example.com", "password": "$2b$..."}

        event = user_changed_event(user)

        assert event == {"_id": str(user["_id"]), "name": "Alice", "email": "a@example.com"}

    def test_publish_helpers_pick_topics(self):
        kafka = FakeKafkaProducer()
        producer = EventProducer(kafka)
        offer = sample_offer()

        producer.publish_trade_offer_created(offer)
        producer.publish_trade_status_update(offer, "accepted")
        producer.publish_user_changed({"_id": ObjectId(), "name": "A", "email": "a@x.com"})

        assert [topic for topic, _ in kafka.messages] == [
            "trade-offers", "trade-status-updates", "user-changes",
        ]
