"""Kafka consumer loop for email-service.

High-level flow:
    poll -> decode JSON -> dispatch by topic -> enrich -> email -> commit offset

Important Kafka concepts used here:

1) Consumer groups and offsets
- Kafka tracks the "current position" (offset) per partition per consumer group.
- `auto.offset.reset=earliest`: a group with no committed offsets starts from
  the oldest retained message, so the very first run replays history.

2) Manual offset commit, always after processing
- We set `enable.auto.commit=False` and commit each message after handling it.
- A crash between "email sent" and "offset committed" means the message is
  delivered again on restart and the emails go out twice. That is the
  at-least-once contract; nothing here deduplicates.

3) One message at a time
- Messages are processed sequentially on one thread, mail send included.
  A slow SMTP server therefore slows consumption down; that is the only
  backpressure there is.

Poison-pill handling (very important):
    A message that cannot be decoded or validated, or whose handler fails, is
    logged, counted and still committed. Otherwise we'd be stuck re-reading the
    same bad message forever. There is no retry and no dead-letter topic.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

from confluent_kafka import Consumer, KafkaError, KafkaException
from pydantic import ValidationError

from . import metrics
from .config import KAFKA_BOOTSTRAP_SERVERS, KAFKA_GROUP_ID, KAFKA_POLL_TIMEOUT
from .errors import ConnectivityError, EnrichmentError
from .models import Topic
from .notifications import NotificationService

logger = logging.getLogger(__name__)


def create_consumer() -> Consumer:
    """Create and configure a Confluent Kafka Consumer.

    - auto.offset.reset=earliest: replay from the beginning on first run.
    - enable.auto.commit=False: we commit only after handling each message.
    """
    conf: dict[str, Any] = {
        "bootstrap.servers": KAFKA_BOOTSTRAP_SERVERS,
        "group.id": KAFKA_GROUP_ID,
        "auto.offset.reset": "earliest",
        "enable.auto.commit": False,
    }
    return Consumer(conf)


def check_broker(consumer: Consumer, timeout: float = 5.0) -> None:
    """Fail fast at startup if no broker answers a metadata request."""
    try:
        consumer.list_topics(timeout=timeout)
    except KafkaException as e:
        metrics.kafka_connection_status.set(0)
        logger.error("[Consumer] Kafka unavailable: %s", e)
        raise ConnectivityError(f"Kafka unavailable: {e}") from e
    metrics.kafka_connection_status.set(1)


def process_message(msg, notifications: NotificationService) -> None:
    """Handle one Kafka message. Never raises: every failure is logged and counted."""
    topic_name = msg.topic()
    metrics.messages_processed.labels(topic=topic_name).inc()
    started = time.perf_counter()

    try:
        try:
            topic = Topic(topic_name)
        except ValueError:
            logger.warning("[Consumer] No handler for topic %s; skipping", topic_name)
            metrics.errors.labels(operation="dispatch", errorType="UnknownTopic").inc()
            return

        # --- Decode JSON payload -----------------------------------------------
        try:
            payload = json.loads((msg.value() or b"").decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error(
                "[Consumer] Bad payload (decode/json): %s. Skipping. topic=%s partition=%s offset=%s",
                e, topic_name, msg.partition(), msg.offset(),
            )
            metrics.errors.labels(operation="decode", errorType=type(e).__name__).inc()
            return

        # --- Validate + handle -------------------------------------------------
        try:
            sent = notifications.dispatch(topic, payload)
        except ValidationError as e:
            logger.error("[Consumer] Bad event schema on %s: %s. data=%s", topic_name, e, payload)
            metrics.errors.labels(operation="decode", errorType="ValidationError").inc()
        except EnrichmentError as e:
            logger.error("[Consumer] %s; no email sent", e)
            metrics.errors.labels(operation=topic_name, errorType="EnrichmentError").inc()
        except Exception as e:
            logger.exception("[Consumer] Error processing message on %s", topic_name)
            metrics.errors.labels(operation=topic_name, errorType=type(e).__name__).inc()
        else:
            logger.info(
                "[Consumer] Handled %s (p=%s o=%s): %s email(s) sent",
                topic_name, msg.partition(), msg.offset(), sent,
            )
    finally:
        metrics.message_processing_time.labels(topic=topic_name).observe(
            time.perf_counter() - started
        )


def run_consumer(notifications: NotificationService, stop_event, consumer: Consumer | None = None) -> None:
    """Run the consumer loop until `stop_event.is_set()` becomes True.

    Args:
        notifications: handlers for the three topics.
        stop_event: A threading.Event (or compatible object) used to stop the loop.
        consumer: an already created consumer; one is created when omitted.
    """
    logger.info("[Consumer] Starting Kafka consumer")

    if consumer is None:
        consumer = create_consumer()

    consumer.subscribe([topic.value for topic in Topic])

    try:
        while not stop_event.is_set():
            # Wait up to KAFKA_POLL_TIMEOUT for a message. Returns None if none arrives.
            msg = consumer.poll(KAFKA_POLL_TIMEOUT)

            if msg is None:
                continue

            # `msg.error()` indicates a Kafka-level error (not an application payload error).
            if msg.error():
                err = msg.error()
                if err.code() == KafkaError._ALL_BROKERS_DOWN:
                    metrics.kafka_connection_status.set(0)
                logger.warning("[Consumer] Kafka error: %s", err)
                continue

            metrics.kafka_connection_status.set(1)
            process_message(msg, notifications)

            # Handled (successfully or not): move past this offset.
            consumer.commit(msg)
    finally:
        consumer.close()
        logger.info("[Consumer] Closed")
