"""Prometheus metrics for email-service.

Exposed at `GET /metrics` by the FastAPI app.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

messages_processed = Counter(
    "email_service_messages_processed_total",
    "Total number of Kafka messages processed",
    ["topic"],
)

message_processing_time = Histogram(
    "email_service_message_processing_duration_seconds",
    "Duration of message processing in seconds",
    ["topic"],
    buckets=(0.1, 0.3, 0.5, 0.7, 1, 3, 5, 7, 10),
)

emails_sent = Counter(
    "email_service_emails_sent_total",
    "Total number of emails sent",
    ["type"],
)

errors = Counter(
    "email_service_errors_total",
    "Total number of errors encountered",
    ["operation", "errorType"],
)

mongo_connection_status = Gauge(
    "email_service_mongo_connection_status",
    "MongoDB connection status (1 = connected, 0 = disconnected)",
)

kafka_connection_status = Gauge(
    "email_service_kafka_connection_status",
    "Kafka connection status (1 = connected, 0 = disconnected)",
)
