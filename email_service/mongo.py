"""MongoDB helper functions for email-service.

email-service only READS MongoDB: events carry ids, and we resolve them into
names, emails and game details right before rendering an email. The data is
whatever is current at consumption time, not at publish time.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from bson import ObjectId
from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from . import metrics
from .config import MONGO_DB, MONGO_GAMES_COLLECTION, MONGO_URI, MONGO_USERS_COLLECTION
from .errors import ConnectivityError

logger = logging.getLogger(__name__)


def create_client() -> MongoClient:
    """Connect to MongoDB and record the connection gauge.

    Raises:
        ConnectivityError when the server does not answer a ping. There is no
        retry here; the process supervisor restarts the service.
    """
    client: MongoClient = MongoClient(MONGO_URI)
    try:
        client.admin.command("ping")
    except PyMongoError as e:
        metrics.mongo_connection_status.set(0)
        client.close()
        logger.error("[Mongo] Connection failed: %s", e)
        raise ConnectivityError(f"MongoDB unavailable: {e}") from e

    metrics.mongo_connection_status.set(1)
    logger.info("[Mongo] Connected to %s", MONGO_DB)
    return client


def get_collections(client: MongoClient) -> tuple[Collection, Collection]:
    """Return the (users, videogames) collections."""
    db = client[MONGO_DB]
    return db[MONGO_USERS_COLLECTION], db[MONGO_GAMES_COLLECTION]


def normalize_id(value: str) -> str:
    """Canonical (lowercase hex) form of an ObjectId string; other values unchanged."""
    value = str(value)
    return str(ObjectId(value)) if ObjectId.is_valid(value) else value


def _object_ids(ids: Iterable[str]) -> list[ObjectId]:
    # Ids that are not valid ObjectIds cannot match anything; treat them as missing.
    return [ObjectId(str(i)) for i in ids if ObjectId.is_valid(str(i))]


def find_by_ids(collection: Collection, ids: Iterable[str]) -> dict[str, dict[str, Any]]:
    """Fetch documents for `ids` in one query, keyed by `normalize_id` of their id."""
    oids = _object_ids(ids)
    if not oids:
        return {}
    return {str(doc["_id"]): doc for doc in collection.find({"_id": {"$in": oids}})}
