"""MongoDB helper functions for trade-api.

This module has one job: handle MongoDB connection details and the small
conversions every service needs (id parsing, JSON-friendly documents).

Collections:
- users       unique `email` and unique `name`
- videogames  indexed by `ownerId`
- tradeoffers indexed by participants, status and referenced games
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from .config import (
    MONGO_DB,
    MONGO_GAMES_COLLECTION,
    MONGO_OFFERS_COLLECTION,
    MONGO_URI,
    MONGO_USERS_COLLECTION,
)
from .errors import ConnectivityError, ValidationError

logger = logging.getLogger(__name__)


class Collections:
    """The three collections trade-api works with, resolved from one database."""

    def __init__(self, db: Database) -> None:
        self.users = db[MONGO_USERS_COLLECTION]
        self.games = db[MONGO_GAMES_COLLECTION]
        self.offers = db[MONGO_OFFERS_COLLECTION]


def create_client() -> MongoClient:
    """Connect to MongoDB and verify the server answers.

    Raises:
        ConnectivityError if the server cannot be reached.
    """
    client: MongoClient = MongoClient(MONGO_URI)
    try:
        client.admin.command("ping")
    except PyMongoError as e:
        client.close()
        logger.error("[Mongo] Connection failed: %s", e)
        raise ConnectivityError("Database connection failed", str(e)) from e
    logger.info("[Mongo] Connected to %s", MONGO_DB)
    return client


def ensure_indexes(collections: Collections) -> None:
    """Create the indexes the services rely on.

    The unique indexes back the "unique name" and "unique email" rules; the
    others support the duplicate-offer and cascade queries.
    """
    collections.users.create_index([("email", ASCENDING)], unique=True)
    collections.users.create_index([("name", ASCENDING)], unique=True)
    collections.games.create_index([("ownerId", ASCENDING)])
    collections.offers.create_index([("receiver", ASCENDING), ("createdAt", DESCENDING)])
    collections.offers.create_index([("offerer", ASCENDING), ("createdAt", DESCENDING)])
    collections.offers.create_index([("offeredGames", ASCENDING), ("status", ASCENDING)])
    collections.offers.create_index([("requestedGames", ASCENDING), ("status", ASCENDING)])


def parse_object_id(value: Any, field: str) -> ObjectId:
    """Parse a client-supplied id, raising ValidationError when malformed."""
    if isinstance(value, ObjectId):
        return value
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        raise ValidationError(
            f"Invalid {field} format",
            f"{field} {value!r} is not a valid MongoDB ObjectId",
        )
    return ObjectId(value)


def to_jsonable(value: Any) -> Any:
    """Recursively convert ObjectIds and datetimes into JSON-friendly values."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def public_user(doc: dict[str, Any]) -> dict[str, Any]:
    """Return a user document without its password hash."""
    return to_jsonable({k: v for k, v in doc.items() if k != "password"})
