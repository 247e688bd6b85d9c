"""email-service configuration.

This module is intentionally "boring": it only reads environment variables.

All defaults are reasonable for development. In a deployment you should
override them with environment variables.
"""

from __future__ import annotations

import os

# --- Kafka -------------------------------------------------------------------
KAFKA_BOOTSTRAP_SERVERS: str = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "kafka:9092")

# Consumer group id:
# - Offsets in Kafka are tracked per consumer group.
# - A brand new group starts from the earliest retained offset, so the first
#   run replays every retained event.
KAFKA_GROUP_ID: str = os.getenv("KAFKA_GROUP_ID", "email-group")

KAFKA_TOPIC_TRADE_OFFERS: str = os.getenv("KAFKA_TOPIC_TRADE_OFFERS", "trade-offers")
KAFKA_TOPIC_TRADE_STATUS_UPDATES: str = os.getenv(
    "KAFKA_TOPIC_TRADE_STATUS_UPDATES", "trade-status-updates"
)
KAFKA_TOPIC_USER_CHANGES: str = os.getenv("KAFKA_TOPIC_USER_CHANGES", "user-changes")

# How long one poll waits for a message (seconds).
KAFKA_POLL_TIMEOUT: float = float(os.getenv("KAFKA_POLL_TIMEOUT", "1.0"))

# --- MongoDB -----------------------------------------------------------------
MONGO_URI: str = os.getenv("MONGO_URI", "mongodb://mongo:27017")
MONGO_DB: str = os.getenv("MONGO_DB", "gameAPI")
MONGO_USERS_COLLECTION: str = os.getenv("MONGO_USERS_COLLECTION", "users")
MONGO_GAMES_COLLECTION: str = os.getenv("MONGO_GAMES_COLLECTION", "videogames")

# --- SMTP --------------------------------------------------------------------
SMTP_HOST: str = os.getenv("SMTP_HOST", "smtp.ethereal.email")
SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER: str = os.getenv("SMTP_USER", "")
SMTP_PASSWORD: str = os.getenv("SMTP_PASSWORD", "")
SMTP_STARTTLS: bool = os.getenv("SMTP_STARTTLS", "true").lower() in ("1", "true", "yes")
SMTP_TIMEOUT: float = float(os.getenv("SMTP_TIMEOUT", "10"))

MAIL_FROM_TRADES: str = os.getenv(
    "MAIL_FROM_TRADES", '"Trade Notifications" <noreply@tradeapp.com>'
)
MAIL_FROM_SECURITY: str = os.getenv(
    "MAIL_FROM_SECURITY", '"Account Security" <security@tradeapp.com>'
)

# --- Logging -----------------------------------------------------------------
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
