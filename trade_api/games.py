"""Video game catalogue: creation, lookup, owner edits and deletion.

Ownership itself only changes through an accepted trade offer; owner edits
cover the descriptive fields.
"""

from __future__ import annotations

import logging
from typing import Any

from bson import ObjectId
from pymongo import ReturnDocument

from . import metrics
from .errors import AuthorizationError, NotFoundError, ValidationError
from .mongo import Collections, parse_object_id

logger = logging.getLogger(__name__)

CONDITIONS = ("mint", "good", "fair", "poor")
EDITABLE_FIELDS = ("title", "publisher", "year", "system", "condition", "price", "rating")
REQUIRED_FIELDS = EDITABLE_FIELDS + ("ownerId",)


def _clean_fields(data: dict[str, Any]) -> dict[str, Any]:
    """Validate and coerce whichever editable fields are present in `data`."""
    fields = {k: data[k] for k in EDITABLE_FIELDS if k in data}

    try:
        if "year" in fields:
            fields["year"] = int(fields["year"])
        if "price" in fields:
            fields["price"] = float(fields["price"])
    except (TypeError, ValueError):
        raise ValidationError("Invalid number", "Year and price must be numbers") from None

    if "rating" in fields:
        rating = fields["rating"]
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 10:
            raise ValidationError("Invalid rating", "Rating must be a number between 1 and 10")
    if "condition" in fields and fields["condition"] not in CONDITIONS:
        raise ValidationError(
            "Invalid condition", f"Condition must be one of: {', '.join(CONDITIONS)}"
        )
    return fields


class GameService:
    def __init__(self, collections: Collections) -> None:
        self._games = collections.games
        self._users = collections.users

    def create(self, data: dict[str, Any]) -> dict[str, Any]:
        """Create a game owned by an existing user.

        Raises:
            ValidationError: a field is missing or out of range.
            NotFoundError: the owner does not exist.
        """
        missing = [field for field in REQUIRED_FIELDS if data.get(field) in (None, "")]
        if missing:
            raise ValidationError("Missing required fields", ", ".join(missing))

        game: dict[str, Any] = _clean_fields(data)
        game["ownerId"] = self._existing_owner(data["ownerId"])
        game["_id"] = self._games.insert_one(game).inserted_id
        metrics.games_created.inc()
        logger.info("[Games] Created game %s for owner %s", game["_id"], game["ownerId"])
        return game

    def get(self, identifier: str) -> dict[str, Any]:
        """Find a game by title first, then by id."""
        game = self._games.find_one({"title": identifier})
        if game is None and ObjectId.is_valid(identifier):
            game = self._games.find_one({"_id": ObjectId(identifier)})
        if game is None:
            raise NotFoundError("Game not found", f"No game found with identifier: {identifier}")
        return game

    def update(
        self, identifier: str, owner_id: str, updates: dict[str, Any]
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        """Apply the owner's edits. Returns `(previous, updated)`.

        Raises:
            AuthorizationError: `owner_id` is not the game's owner.
        """
        game = self._owned_game(identifier, owner_id, "update")
        fields = _clean_fields({k: v for k, v in updates.items() if v not in (None, "")})
        if not fields:
            return game, game

        updated = self._games.find_one_and_update(
            {"_id": game["_id"]},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            raise NotFoundError("Game not found", f"Game {game['_id']} was deleted")
        logger.info("[Games] Updated game %s: %s", game["_id"], ", ".join(sorted(fields)))
        return game, updated

    def delete(self, identifier: str, owner_id: str) -> dict[str, Any]:
        """Delete a game on behalf of its owner and return the removed document.

        Pending offers that reference the game are left alone; accepting one
        later fails with a ConflictError because the game no longer exists.
        """
        game = self._owned_game(identifier, owner_id, "delete")
        self._games.delete_one({"_id": game["_id"]})
        logger.info("[Games] Deleted game %s", game["_id"])
        return game

    def _existing_owner(self, owner_id: Any) -> ObjectId:
        if not owner_id:
            raise ValidationError("Missing ownerId", "Owner ID is required for game changes")
        oid = parse_object_id(owner_id, "ownerId")
        if self._users.find_one({"_id": oid}, {"_id": 1}) is None:
            raise NotFoundError("Owner not found", f"No user exists with the ID: {oid}")
        return oid

    def _owned_game(self, identifier: str, owner_id: str, action: str) -> dict[str, Any]:
        game = self.get(identifier)
        if self._existing_owner(owner_id) != game["ownerId"]:
            raise AuthorizationError("Unauthorized", f"Only the owner can {action} this game")
        return game
