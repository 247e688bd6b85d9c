"""Prometheus metrics for trade-api.

Exposed at `GET /metrics` by the FastAPI app.
"""

from __future__ import annotations

from prometheus_client import Counter

users_created = Counter(
    "trade_api_users_created_total",
    "Total number of registered users",
)

games_created = Counter(
    "trade_api_games_created_total",
    "Total number of video games created",
)

trade_offers_created = Counter(
    "trade_api_trade_offers_created_total",
    "Total number of trade offers created",
)

trade_offers_accepted = Counter(
    "trade_api_trade_offers_accepted_total",
    "Total number of trade offers accepted",
)

trade_offers_rejected = Counter(
    "trade_api_trade_offers_rejected_total",
    "Total number of trade offers rejected, by cause",
    ["cause"],
)

events_published = Counter(
    "trade_api_events_published_total",
    "Kafka publish attempts, by topic and result",
    ["topic", "result"],
)

errors = Counter(
    "trade_api_errors_total",
    "Request errors, by operation and error kind",
    ["operation", "errorType"],
)
