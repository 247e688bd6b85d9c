"""trade-api configuration.

The trade-api is the "client-facing" service:
- It accepts user, game and trade-offer requests over HTTP.
- It commits state changes to MongoDB.
- It publishes lifecycle events to Kafka after each commit.

Everything is controlled by environment variables so this service can run
anywhere (local, EC2, Docker) without code changes.
"""

from __future__ import annotations

import os

# --- Kafka -------------------------------------------------------------------
KAFKA_BOOTSTRAP_SERVERS: str = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "kafka:9092")
KAFKA_CLIENT_ID: str = os.getenv("KAFKA_CLIENT_ID", "trade-api")

# How long a publish waits for the broker acknowledgement (seconds).
KAFKA_FLUSH_TIMEOUT: float = float(os.getenv("KAFKA_FLUSH_TIMEOUT", "5"))

KAFKA_TOPIC_TRADE_OFFERS: str = os.getenv("KAFKA_TOPIC_TRADE_OFFERS", "trade-offers")
KAFKA_TOPIC_TRADE_STATUS_UPDATES: str = os.getenv(
    "KAFKA_TOPIC_TRADE_STATUS_UPDATES", "trade-status-updates"
)
KAFKA_TOPIC_USER_CHANGES: str = os.getenv("KAFKA_TOPIC_USER_CHANGES", "user-changes")

# --- MongoDB -----------------------------------------------------------------
MONGO_URI: str = os.getenv("MONGO_URI", "mongodb://mongo:27017")
MONGO_DB: str = os.getenv("MONGO_DB", "gameAPI")

MONGO_USERS_COLLECTION: str = os.getenv("MONGO_USERS_COLLECTION", "users")
MONGO_GAMES_COLLECTION: str = os.getenv("MONGO_GAMES_COLLECTION", "videogames")
MONGO_OFFERS_COLLECTION: str = os.getenv("MONGO_OFFERS_COLLECTION", "tradeoffers")

# --- Security ----------------------------------------------------------------
# bcrypt cost factor. Lower it only for local experiments.
BCRYPT_ROUNDS: int = int(os.getenv("BCRYPT_ROUNDS", "12"))

# --- Logging -----------------------------------------------------------------
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
