"""User registration, lookup and profile updates.

Only a password change publishes a `user-changes` event; other profile edits
are silent.
"""

from __future__ import annotations

import logging
from typing import Any

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from . import metrics
from .errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from .kafka_producer import EventProducer
from .mongo import Collections
from .security import hash_password, verify_password

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "email", "address")


class UserService:
    def __init__(self, collections: Collections, events: EventProducer) -> None:
        self._users = collections.users
        self._events = events

    def register(self, name: str, email: str, password: str, address: str) -> dict[str, Any]:
        """Create a user with a bcrypt-hashed password."""
        missing = [
            field
            for field, value in (("name", name), ("email", email), ("password", password), ("address", address))
            if not value
        ]
        if missing:
            raise ValidationError("All fields are required", f"Missing: {', '.join(missing)}")

        self._ensure_unique(name=name, email=email)

        user: dict[str, Any] = {
            "name": name,
            "email": email,
            "password": hash_password(password),
            "address": address,
        }
        try:
            user["_id"] = self._users.insert_one(user).inserted_id
        except DuplicateKeyError as e:
            raise ConflictError("User already exists", "Name or email already in use") from e

        metrics.users_created.inc()
        logger.info("[Users] Registered user %s", user["_id"])
        return user

    def get(self, identifier: str) -> dict[str, Any]:
        """Find a user by unique name first, then by id."""
        user = self._users.find_one({"name": identifier})
        if user is None and ObjectId.is_valid(identifier):
            user = self._users.find_one({"_id": ObjectId(identifier)})
        if user is None:
            raise NotFoundError("User not found", f"No user matches {identifier!r}")
        return user

    def update(
        self,
        identifier: str,
        password: str | None,
        updates: dict[str, Any],
        new_password: str | None = None,
    ) -> dict[str, Any]:
        """Apply profile updates after checking the current password.

        When `new_password` is given the stored hash is replaced and one
        `user-changes` event is published after the write.
        """
        user = self._authenticated(identifier, password)

        fields = {k: v for k, v in updates.items() if k in EDITABLE_FIELDS and v}
        self._ensure_unique(exclude=user["_id"], **fields)
        if new_password:
            fields["password"] = hash_password(new_password)
        if not fields:
            return user

        try:
            updated = self._users.find_one_and_update(
                {"_id": user["_id"]},
                {"$set": fields},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError as e:
            raise ConflictError("User already exists", "Name or email already in use") from e

        if new_password:
            logger.info("[Users] Password changed for user %s", user["_id"])
            self._events.publish_user_changed(updated)
        return updated

    def delete(self, identifier: str, password: str | None) -> dict[str, Any]:
        """Delete a user after confirming their current password."""
        user = self._authenticated(identifier, password)
        self._users.delete_one({"_id": user["_id"]})
        logger.info("[Users] Deleted user %s", user["_id"])
        return user

    def _authenticated(self, identifier: str, password: str | None) -> dict[str, Any]:
        user = self.get(identifier)
        if not password:
            raise ValidationError("Password is required")
        if not verify_password(password, user.get("password", "")):
            raise AuthenticationError("Authentication failed", "Incorrect password")
        return user

    def _ensure_unique(self, exclude: ObjectId | None = None, **fields: Any) -> None:
        for field in ("name", "email"):
            value = fields.get(field)
            if not value:
                continue
            query: dict[str, Any] = {field: value}
            if exclude is not None:
                query["_id"] = {"$ne": exclude}
            if self._users.find_one(query, {"_id": 1}) is not None:
                raise ConflictError("User already exists", f"{field.capitalize()} already in use")
