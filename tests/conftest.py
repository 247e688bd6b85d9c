"""
Shared pytest fixtures.

MongoDB is replaced by mongomock, Kafka by the small fakes below, SMTP by a
recording mailer. Every test gets a fresh database.
"""

import json

import mongomock
import pytest
from bson import ObjectId

from trade_api.games import GameService
from trade_api.kafka_producer import EventProducer
from trade_api.mongo import Collections
from trade_api.security import hash_password
from trade_api.trade_offers import TradeOfferService
from trade_api.users import UserService

PASSWORD = "hunter22"


# =============================================================================
# Kafka fakes
# =============================================================================

class FakeDeliveredMessage:
    def __init__(self, topic):
        self._topic = topic

    def topic(self):
        return self._topic

    def partition(self):
        return 0

    def offset(self):
        return 0


class FakeKafkaProducer:
    """
    Stand-in for confluent_kafka.Producer.

    Records every produced message and fires delivery callbacks on flush().
    """

    def __init__(self, delivery_error=None, produce_error=None, undelivered=0):
        self.delivery_error = delivery_error
        self.produce_error = produce_error
        self.undelivered = undelivered
        self.messages = []
        self.flush_calls = 0
        self._pending = []

    def produce(self, topic, value, callback=None, key=None):
        if self.produce_error is not None:
            raise self.produce_error
        self.messages.append((topic, json.loads(value.decode("utf-8"))))
        self._pending.append((topic, callback))

    def flush(self, timeout=None):
        self.flush_calls += 1
        for topic, callback in self._pending:
            if callback is not None:
                callback(self.delivery_error, FakeDeliveredMessage(topic))
        self._pending.clear()
        return self.undelivered

    def events(self, topic):
        return [payload for t, payload in self.messages if t == topic]


class FakeKafkaMessage:
    """Stand-in for confluent_kafka.Message as returned by Consumer.poll()."""

    def __init__(self, topic, value, offset=0, error=None):
        self._topic = topic
        if isinstance(value, (dict, list)):
            value = json.dumps(value)
        if isinstance(value, str):
            value = value.encode("utf-8")
        self._value = value
        self._offset = offset
        self._error = error

    def topic(self):
        return self._topic

    def value(self):
        return self._value

    def error(self):
        return self._error

    def partition(self):
        return 0

    def offset(self):
        return self._offset


class FakeKafkaConsumer:
    """
    Stand-in for confluent_kafka.Consumer.

    Hands out the queued messages one per poll(); once they run out it sets
    the stop event so run_consumer() returns.
    """

    def __init__(self, messages, stop_event):
        self.messages = list(messages)
        self.stop_event = stop_event
        self.subscribed = []
        self.committed = []
        self.closed = False

    def subscribe(self, topics):
        self.subscribed = list(topics)

    def poll(self, timeout=None):
        if not self.messages:
            self.stop_event.set()
            return None
        return self.messages.pop(0)

    def commit(self, message=None, asynchronous=True):
        self.committed.append(message)

    def close(self):
        self.closed = True


# =============================================================================
# Mail fake
# =============================================================================

class RecordingMailer:
    """Mailer that records sends; addresses in `fail_for` raise instead."""

    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.sent = []

    def send(self, to, from_addr, subject, text):
        if to in self.fail_for:
            raise ConnectionError(f"SMTP refused {to}")
        self.sent.append({"to": to, "from": from_addr, "subject": subject, "text": text})

    def subjects_for(self, to):
        return [m["subject"] for m in self.sent if m["to"] == to]


# =============================================================================
# Store fixtures
# =============================================================================

@pytest.fixture(scope="session")
def password_hash() -> str:
    """One bcrypt hash of PASSWORD, computed once per run."""
    return hash_password(PASSWORD)


@pytest.fixture
def db():
    """Fresh in-memory database for each test."""
    return mongomock.MongoClient().gameAPI


@pytest.fixture
def collections(db) -> Collections:
    return Collections(db)


@pytest.fixture
def kafka_producer() -> FakeKafkaProducer:
    return FakeKafkaProducer()


@pytest.fixture
def events(kafka_producer) -> EventProducer:
    return EventProducer(kafka_producer, flush_timeout=0.1)


@pytest.fixture
def trade_service(collections, events) -> TradeOfferService:
    return TradeOfferService(collections, events)


@pytest.fixture
def user_service(collections, events) -> UserService:
    return UserService(collections, events)


@pytest.fixture
def game_service(collections) -> GameService:
    return GameService(collections)


@pytest.fixture
def make_user(collections, password_hash):
    """Insert a user directly and return its document."""

    def _make_user(name: str) -> dict:
        user = {
            "name": name,
            "email": f"{name.lower()}@example.com",
            "password": password_hash,
            "address": f"{len(name)} Main Street",
        }
        user["_id"] = collections.users.insert_one(user).inserted_id
        return user

    return _make_user


@pytest.fixture
def make_game(collections):
    """Insert a game owned by `owner` and return its document."""

    def _make_game(title: str, owner: dict, price: float = 20.0, condition: str = "good") -> dict:
        game = {
            "title": title,
            "publisher": "Nintendo",
            "year": 1991,
            "system": "SNES",
            "condition": condition,
            "price": price,
            "rating": 9,
            "ownerId": owner["_id"],
        }
        game["_id"] = collections.games.insert_one(game).inserted_id
        return game

    return _make_game


@pytest.fixture
def alice(make_user) -> dict:
    return make_user("Alice")


@pytest.fixture
def bob(make_user) -> dict:
    return make_user("Bob")


@pytest.fixture
def carol(make_user) -> dict:
    return make_user("Carol")


@pytest.fixture
def missing_id() -> str:
    """A well-formed id that matches nothing."""
    return str(ObjectId())
