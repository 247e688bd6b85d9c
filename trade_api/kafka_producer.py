"""Kafka producer for trade-api lifecycle events.

Key points to understand:

1) One producer per process
`create_producer()` is called once at app startup; the resulting client is
wrapped in an `EventProducer` and handed to the services that publish. The
app's shutdown hook calls `close()`, which flushes anything still queued.

2) Delivery acknowledgement
`produce()` only queues the message locally. We `flush()` after each publish
so the result reflects the broker acknowledgement (or a timeout).

3) Publishing never raises
The MongoDB write that precedes a publish is authoritative. A failed publish
is reported as a falsy `PublishResult`; callers log/count it and carry on.

4) No message key
Events are appended without a partition key. Ordering is only guaranteed per
topic for this producer connection.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from bson import ObjectId
from confluent_kafka import Producer

from . import metrics
from .config import (
    KAFKA_BOOTSTRAP_SERVERS,
    KAFKA_CLIENT_ID,
    KAFKA_FLUSH_TIMEOUT,
    KAFKA_TOPIC_TRADE_OFFERS,
    KAFKA_TOPIC_TRADE_STATUS_UPDATES,
    KAFKA_TOPIC_USER_CHANGES,
)
from .models import TradeOfferCreatedEvent, TradeStatusUpdatedEvent, UserChangedEvent

logger = logging.getLogger(__name__)


def create_producer() -> Producer:
    """Create and configure a Confluent Kafka Producer."""
    conf: dict[str, Any] = {
        "bootstrap.servers": KAFKA_BOOTSTRAP_SERVERS,
        "client.id": KAFKA_CLIENT_ID,
    }
    return Producer(conf)


@dataclass(frozen=True)
class PublishResult:
    """Outcome of one publish attempt. Truthy on success."""

    ok: bool
    error: str | None = None

    def __bool__(self) -> bool:
        return self.ok


def _json_default(value: Any) -> str:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _ids(values: list[Any]) -> list[str]:
    return [str(v) for v in values]


def trade_offer_created_event(offer: dict[str, Any]) -> dict[str, Any]:
    """Build the `trade-offers` envelope from a stored offer document."""
    return TradeOfferCreatedEvent(
        id=str(offer["_id"]),
        offerer=str(offer["offerer"]),
        receiver=str(offer["receiver"]),
        offeredGames=_ids(offer.get("offeredGames", [])),
        requestedGames=_ids(offer.get("requestedGames", [])),
        status=offer["status"],
        createdAt=offer["createdAt"].isoformat(),
    ).model_dump(by_alias=True)


def trade_status_updated_event(offer: dict[str, Any], new_status: str) -> dict[str, Any]:
    """Build the `trade-status-updates` envelope."""
    return TradeStatusUpdatedEvent(
        tradeId=str(offer["_id"]),
        offerer=str(offer["offerer"]),
        receiver=str(offer["receiver"]),
        offeredGames=_ids(offer.get("offeredGames", [])),
        requestedGames=_ids(offer.get("requestedGames", [])),
        newStatus=new_status,
    ).model_dump()


def user_changed_event(user: dict[str, Any]) -> dict[str, Any]:
    """Build the `user-changes` envelope. Never carries the password hash."""
    return UserChangedEvent(
        id=str(user["_id"]),
        name=user["name"],
        email=user["email"],
    ).model_dump(by_alias=True)


class EventProducer:
    """Publishes JSON envelopes to Kafka topics through one shared producer."""

    def __init__(self, producer: Producer, flush_timeout: float = KAFKA_FLUSH_TIMEOUT) -> None:
        self._producer = producer
        self._flush_timeout = flush_timeout

    def publish(self, topic: str, payload: dict[str, Any]) -> PublishResult:
        """Serialize `payload` and append it to `topic`.

        Returns a `PublishResult`; never raises.
        """
        delivery: dict[str, Any] = {}

        def _delivery_report(err, msg) -> None:
            delivery["error"] = err
            if err is not None:
                logger.warning("[Producer] Delivery failed: %s", err)
            else:
                logger.debug(
                    "[Producer] Delivered to %s [%s] @ offset %s",
                    msg.topic(), msg.partition(), msg.offset(),
                )

        try:
            value: bytes = json.dumps(payload, default=_json_default).encode("utf-8")
            self._producer.produce(topic=topic, value=value, callback=_delivery_report)
            remaining = self._producer.flush(self._flush_timeout)
        except Exception as e:
            result = PublishResult(False, f"{type(e).__name__}: {e}")
        else:
            if remaining:
                result = PublishResult(False, f"{remaining} message(s) not delivered before timeout")
            elif delivery.get("error") is not None:
                result = PublishResult(False, str(delivery["error"]))
            else:
                result = PublishResult(True)

        metrics.events_published.labels(
            topic=topic, result="success" if result.ok else "failure"
        ).inc()
        if result.ok:
            logger.info("[Producer] Published event to %s", topic)
        else:
            logger.error("[Producer] Failed to publish event to %s: %s", topic, result.error)
        return result

    def publish_trade_offer_created(self, offer: dict[str, Any]) -> PublishResult:
        return self.publish(KAFKA_TOPIC_TRADE_OFFERS, trade_offer_created_event(offer))

    def publish_trade_status_update(self, offer: dict[str, Any], new_status: str) -> PublishResult:
        return self.publish(
            KAFKA_TOPIC_TRADE_STATUS_UPDATES, trade_status_updated_event(offer, new_status)
        )

    def publish_user_changed(self, user: dict[str, Any]) -> PublishResult:
        return self.publish(KAFKA_TOPIC_USER_CHANGES, user_changed_event(user))

    def close(self) -> None:
        """Flush anything still queued. Called once at shutdown."""
        remaining = self._producer.flush(self._flush_timeout)
        if remaining:
            logger.warning("[Producer] %s message(s) still queued at shutdown", remaining)
        logger.info("[Producer] Closed")
