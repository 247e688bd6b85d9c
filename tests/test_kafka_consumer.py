"""
Tests for the email-service consumer loop.

FakeKafkaConsumer hands out a fixed list of messages and then sets the stop
event, so run_consumer() returns once the queue is drained.
"""

import threading

import pytest
from confluent_kafka import KafkaError, KafkaException
from prometheus_client import REGISTRY

from conftest import FakeKafkaConsumer, FakeKafkaMessage, RecordingMailer
from email_service import metrics
from email_service.errors import ConnectivityError
from email_service.kafka_consumer import check_broker, process_message, run_consumer
from email_service.notifications import NotificationService


def error_count(operation, error_type):
    value = REGISTRY.get_sample_value(
        "email_service_errors_total", {"operation": operation, "errorType": error_type}
    )
    return value or 0.0


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def notifications(collections, mailer):
    return NotificationService(collections.users, collections.games, mailer)


def run(notifications, messages):
    stop_event = threading.Event()
    consumer = FakeKafkaConsumer(messages, stop_event)
    run_consumer(notifications, stop_event, consumer=consumer)
    return consumer


def status_message(offerer, receiver, offset=0):
    return FakeKafkaMessage("trade-status-updates", {
        "tradeId": "665f1c0e8b3e4a0012345678",
        "offerer": str(offerer["_id"]),
        "receiver": str(receiver["_id"]),
        "offeredGames": [],
        "requestedGames": [],
        "newStatus": "accepted",
    }, offset=offset)


def password_message(user, offset=0):
    return FakeKafkaMessage(
        "user-changes",
        {"_id": str(user["_id"]), "name": user["name"], "email": user["email"]},
        offset=offset,
    )


class TestRunConsumer:

    def test_subscribes_to_every_topic_and_closes(self, notifications):
        consumer = run(notifications, [])

        assert sorted(consumer.subscribed) == ["trade-offers", "trade-status-updates", "user-changes"]
        assert consumer.closed

    def test_commits_each_handled_message(self, notifications, mailer, alice, bob):
        messages = [status_message(alice, bob, offset=0), password_message(bob, offset=1)]

        consumer = run(notifications, messages)

        assert consumer.committed == messages
        assert len(mailer.sent) == 3

    def test_poison_message_is_committed_and_skipped(self, notifications, mailer, alice):
        poison = FakeKafkaMessage("user-changes", b"\xff not json", offset=0)
        wrong_shape = FakeKafkaMessage("user-changes", {"unexpected": True}, offset=1)
        good = password_message(alice, offset=2)

        consumer = run(notifications, [poison, wrong_shape, good])

        assert consumer.committed == [poison, wrong_shape, good]
        assert [m["to"] for m in mailer.sent] == [alice["email"]]

    def test_missing_user_does_not_stop_the_loop(self, notifications, mailer, alice, bob, missing_id):
        orphan = status_message({"_id": missing_id}, bob, offset=0)
        later = password_message(alice, offset=1)
        before = error_count("trade-status-updates", "EnrichmentError")

        consumer = run(notifications, [orphan, later])

        assert consumer.committed == [orphan, later]
        assert [m["to"] for m in mailer.sent] == [alice["email"]]
        assert error_count("trade-status-updates", "EnrichmentError") == before + 1

    def test_redelivered_message_emails_again(self, notifications, mailer, alice, bob):
        # At-least-once delivery: a message replayed after a crash before commit
        # is handled again, and nothing deduplicates the emails.
        first = status_message(alice, bob, offset=7)
        replay = status_message(alice, bob, offset=7)

        run(notifications, [first, replay])

        assert len(mailer.sent) == 4
        assert mailer.subjects_for(alice["email"]) == ["Your Trade Offer Was Accepted"] * 2

    def test_kafka_errors_are_not_committed(self, notifications, mailer, alice):
        broken = FakeKafkaMessage("user-changes", b"", error=KafkaError(KafkaError._ALL_BROKERS_DOWN))
        good = password_message(alice)

        consumer = run(notifications, [broken, good])

        assert consumer.committed == [good]
        assert len(mailer.sent) == 1

    def test_brokers_down_clears_the_connection_gauge(self, notifications):
        broken = FakeKafkaMessage("user-changes", b"", error=KafkaError(KafkaError._ALL_BROKERS_DOWN))

        run(notifications, [broken])

        assert REGISTRY.get_sample_value("email_service_kafka_connection_status") == 0

    def test_handler_crash_is_contained(self, collections, alice):
        class ExplodingNotifications(NotificationService):
            def handle_user_change(self, event):
                raise RuntimeError("template exploded")

        notifications = ExplodingNotifications(collections.users, collections.games, RecordingMailer())
        message = password_message(alice)
        before = error_count("user-changes", "RuntimeError")

        consumer = run(notifications, [message])

        assert consumer.committed == [message]
        assert error_count("user-changes", "RuntimeError") == before + 1


class TestProcessMessage:

    def test_unknown_topic(self, notifications, mailer):
        before = error_count("dispatch", "UnknownTopic")

        process_message(FakeKafkaMessage("game-prices", {"x": 1}), notifications)

        assert mailer.sent == []
        assert error_count("dispatch", "UnknownTopic") == before + 1

    def test_records_processing_time(self, notifications, alice):
        labels = {"topic": "user-changes"}
        before = REGISTRY.get_sample_value(
            "email_service_message_processing_duration_seconds_count", labels
        ) or 0.0

        process_message(password_message(alice), notifications)

        after = REGISTRY.get_sample_value(
            "email_service_message_processing_duration_seconds_count", labels
        )
        assert after == before + 1


class TestCheckBroker:

    def test_unreachable_broker(self):
        class Unreachable:
            def list_topics(self, timeout=None):
                raise KafkaException(KafkaError(KafkaError._TRANSPORT))

        with pytest.raises(ConnectivityError):
            check_broker(Unreachable(), timeout=0.1)

        assert REGISTRY.get_sample_value("email_service_kafka_connection_status") == 0

    def test_reachable_broker(self):
        class Reachable:
            def list_topics(self, timeout=None):
                return object()

        metrics.kafka_connection_status.set(0)

        check_broker(Reachable())

        assert REGISTRY.get_sample_value("email_service_kafka_connection_status") == 1
