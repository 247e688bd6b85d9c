"""Trade-offer state machine.

    pending --accept--> accepted            (terminal)
    pending --reject--> rejected            (terminal)
    pending --other offer accepted--> rejected (cascade, terminal)

Every request-path failure is raised as a `TradeAPIError` subclass. Every
successful create/accept/reject commits to MongoDB first and then makes
exactly one publish attempt; a failed publish never undoes the commit.

Concurrency:
Requests are not serialized. Accept and reject therefore never trust the
status they read: they first *claim* the offer with a conditional update
(`status == pending` and no claim yet), move game ownership with updates
guarded on the expected current owner, and finish with a compare-and-swap on
`status == pending`. If a concurrent trade wins, the loser gets a
`StateError`/`ConflictError` instead of silently double-trading a game.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from bson import ObjectId
from pymongo import DESCENDING, ReturnDocument

from . import metrics
from .errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    StateError,
    ValidationError,
)
from .kafka_producer import EventProducer
from .mongo import Collections, parse_object_id
from .security import verify_password

logger = logging.getLogger(__name__)

PENDING = "pending"
ACCEPTED = "accepted"
REJECTED = "rejected"

CASCADE_REJECTION_REASON = "another trade involving these items was accepted"


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _same_games(field: str, game_ids: list[ObjectId]) -> dict[str, Any]:
    """Query fragment matching an array holding exactly `game_ids`, in any order."""
    if not game_ids:
        return {field: {"$size": 0}}
    return {field: {"$size": len(game_ids), "$all": game_ids}}


class TradeOfferService:
    """Creates, accepts and rejects trade offers."""

    def __init__(self, collections: Collections, events: EventProducer) -> None:
        self._users = collections.users
        self._games = collections.games
        self._offers = collections.offers
        self._events = events

    # --- create ----------------------------------------------------------------

    def create(
        self,
        offerer: str,
        receiver: str,
        offered_games: list[str] | None = None,
        requested_games: list[str] | None = None,
    ) -> dict[str, Any]:
        """Create a pending offer and publish it to `trade-offers`.

        Raises:
            ValidationError: missing/malformed ids, self-trade, empty offer,
                or a game not owned by the expected party.
            NotFoundError: a user or game does not exist.
            ConflictError: an identical offer is already pending.
        """
        if not offerer or not receiver:
            raise ValidationError(
                "Missing required fields", "Both offerer and receiver IDs are required"
            )
        offerer_id = parse_object_id(offerer, "offerer")
        receiver_id = parse_object_id(receiver, "receiver")

        if offerer_id == receiver_id:
            raise ValidationError("Invalid trade participants", "You cannot trade with yourself")

        offered_ids = self._parse_game_ids(offered_games or [], "offeredGames")
        requested_ids = self._parse_game_ids(requested_games or [], "requestedGames")
        if not offered_ids and not requested_ids:
            raise ValidationError(
                "Empty trade offer", "At least one game must be offered or requested"
            )

        if self._users.find_one({"_id": offerer_id}, {"_id": 1}) is None:
            raise NotFoundError("User not found", f"Offerer with ID {offerer_id} does not exist")
        if self._users.find_one({"_id": receiver_id}, {"_id": 1}) is None:
            raise NotFoundError("User not found", f"Receiver with ID {receiver_id} does not exist")

        games = {
            game["_id"]: game
            for game in self._games.find({"_id": {"$in": offered_ids + requested_ids}})
        }
        self._check_owned(offered_ids, games, offerer_id, "offered", "the offerer")
        self._check_owned(requested_ids, games, receiver_id, "requested", "the receiver")

        existing = self._offers.find_one(
            {
                "offerer": offerer_id,
                "receiver": receiver_id,
                "status": PENDING,
                **_same_games("offeredGames", offered_ids),
                **_same_games("requestedGames", requested_ids),
            },
            {"_id": 1},
        )
        if existing is not None:
            raise ConflictError(
                "Duplicate trade offer",
                "An identical pending trade offer already exists",
                existing_offer_id=str(existing["_id"]),
            )

        offer: dict[str, Any] = {
            "offerer": offerer_id,
            "receiver": receiver_id,
            "offeredGames": offered_ids,
            "requestedGames": requested_ids,
            "status": PENDING,
            "createdAt": now_utc(),
        }
        offer["_id"] = self._offers.insert_one(offer).inserted_id
        metrics.trade_offers_created.inc()
        logger.info("[Trade] Created offer %s (%s -> %s)", offer["_id"], offerer_id, receiver_id)

        self._events.publish_trade_offer_created(offer)
        return offer

    # --- accept ----------------------------------------------------------------

    def accept(self, trade_id: str, acting_user_id: str, credential: str) -> dict[str, Any]:
        """Accept a pending offer on behalf of its receiver.

        Order of effects:
            1. offered games -> receiver
            2. requested games -> offerer
            3. other pending offers touching any of these games -> rejected
            4. this offer -> accepted (completedAt = now)
            5. publish to `trade-status-updates`

        A crash between steps leaves the offer pending with games already moved,
        which is detectable, rather than an "accepted" offer whose games never
        moved. The claim stays set in that case.

        If a concurrent trade moved one of the games, the games already moved
        are put back and the claim is released before ConflictError is raised.
        """
        offer_id, user_id = self._parse_action_ids(trade_id, acting_user_id, credential)
        offer = self._load_pending(offer_id)
        self._authenticate_receiver(offer, user_id, credential)
        self._claim(offer)

        try:
            self._verify_ownership(offer)
            self._transfer_ownership(offer)
        except ConflictError:
            self._release(offer)
            raise

        cascaded = self._reject_conflicting(offer)

        accepted = self._offers.find_one_and_update(
            {"_id": offer["_id"], "status": PENDING},
            {"$set": {"status": ACCEPTED, "completedAt": now_utc()}, "$unset": {"claimedAt": ""}},
            return_document=ReturnDocument.AFTER,
        )
        if accepted is None:
            logger.error(
                "[Trade] Offer %s left pending during acceptance; games were already transferred",
                offer["_id"],
            )
            raise StateError(
                "Invalid trade status", "This trade offer changed state while being accepted"
            )

        metrics.trade_offers_accepted.inc()
        if cascaded:
            metrics.trade_offers_rejected.labels(cause="cascade").inc(cascaded)
        logger.info("[Trade] Accepted offer %s; %s conflicting offer(s) rejected", offer_id, cascaded)

        self._events.publish_trade_status_update(accepted, ACCEPTED)
        return accepted

    # --- reject ----------------------------------------------------------------

    def reject(
        self,
        trade_id: str,
        acting_user_id: str,
        credential: str,
        reason: str | None = None,
    ) -> dict[str, Any]:
        """Reject a pending offer on behalf of its receiver. No ownership changes."""
        offer_id, user_id = self._parse_action_ids(trade_id, acting_user_id, credential)
        offer = self._load_pending(offer_id)
        self._authenticate_receiver(offer, user_id, credential)

        update: dict[str, Any] = {"status": REJECTED, "completedAt": now_utc()}
        if reason:
            update["rejectionReason"] = reason

        rejected = self._offers.find_one_and_update(
            {"_id": offer_id, "status": PENDING, "claimedAt": None},
            {"$set": update},
            return_document=ReturnDocument.AFTER,
        )
        if rejected is None:
            raise StateError("Invalid trade status", "This trade offer is no longer pending")

        metrics.trade_offers_rejected.labels(cause="receiver").inc()
        logger.info("[Trade] Rejected offer %s", offer_id)

        self._events.publish_trade_status_update(rejected, REJECTED)
        return rejected

    # --- queries ---------------------------------------------------------------

    def get(self, trade_id: str) -> dict[str, Any]:
        offer = self._offers.find_one({"_id": parse_object_id(trade_id, "tradeId")})
        if offer is None:
            raise NotFoundError("Trade offer not found", f"No trade offer exists with ID: {trade_id}")
        return offer

    def list_for_user(self, user_id: ObjectId, role: str) -> list[dict[str, Any]]:
        """Offers where the user is the `receiver` or the `offerer`, newest first."""
        if role not in ("receiver", "offerer"):
            raise ValidationError("Invalid role", f"Unknown trade role {role!r}")
        return list(self._offers.find({role: user_id}).sort("createdAt", DESCENDING))

    # --- helpers ---------------------------------------------------------------

    @staticmethod
    def _parse_game_ids(values: list[str], field: str) -> list[ObjectId]:
        """Parse game ids, dropping repeats while keeping the caller's order."""
        ids: list[ObjectId] = []
        for value in values:
            game_id = parse_object_id(value, f"{field} game ID")
            if game_id not in ids:
                ids.append(game_id)
        return ids

    @staticmethod
    def _check_owned(
        game_ids: list[ObjectId],
        games: dict[ObjectId, dict[str, Any]],
        owner_id: ObjectId,
        label: str,
        owner_label: str,
    ) -> None:
        missing = [str(g) for g in game_ids if g not in games]
        if missing:
            raise NotFoundError(
                "Games not found",
                f"The following {label} games do not exist: {', '.join(missing)}",
            )
        not_owned = [str(g) for g in game_ids if games[g].get("ownerId") != owner_id]
        if not_owned:
            raise ValidationError(
                f"Invalid {label} games",
                f"{owner_label.capitalize()} does not own the following games: {', '.join(not_owned)}",
            )

    @staticmethod
    def _parse_action_ids(
        trade_id: str, acting_user_id: str, credential: str
    ) -> tuple[ObjectId, ObjectId]:
        if not acting_user_id or not credential:
            raise ValidationError("Missing required fields", "Both userId and password are required")
        return parse_object_id(trade_id, "tradeId"), parse_object_id(acting_user_id, "userId")

    def _load_pending(self, offer_id: ObjectId) -> dict[str, Any]:
        offer = self._offers.find_one({"_id": offer_id})
        if offer is None:
            raise NotFoundError("Trade offer not found", f"No trade offer exists with ID: {offer_id}")
        if offer["status"] != PENDING:
            raise StateError("Invalid trade status", f"This trade offer is already {offer['status']}")
        return offer

    def _authenticate_receiver(
        self, offer: dict[str, Any], user_id: ObjectId, credential: str
    ) -> None:
        user = self._users.find_one({"_id": user_id})
        if user is None:
            raise NotFoundError("User not found", "The specified user does not exist")
        if user["_id"] != offer["receiver"]:
            raise AuthorizationError(
                "Unauthorized", "Only the receiver of the trade offer can accept or reject it"
            )
        if not verify_password(credential, user.get("password", "")):
            raise AuthenticationError("Authentication failed", "Invalid password")

    def _claim(self, offer: dict[str, Any]) -> None:
        claimed = self._offers.find_one_and_update(
            {"_id": offer["_id"], "status": PENDING, "claimedAt": None},
            {"$set": {"claimedAt": now_utc()}},
        )
        if claimed is None:
            raise StateError("Invalid trade status", "This trade offer is no longer pending")

    def _release(self, offer: dict[str, Any]) -> None:
        self._offers.update_one({"_id": offer["_id"]}, {"$unset": {"claimedAt": ""}})

    def _verify_ownership(self, offer: dict[str, Any]) -> None:
        for field, owner in (("offeredGames", "offerer"), ("requestedGames", "receiver")):
            game_ids = offer.get(field, [])
            if not game_ids:
                continue
            owned = self._games.count_documents({"_id": {"$in": game_ids}, "ownerId": offer[owner]})
            if owned != len(game_ids):
                raise ConflictError(
                    "Game ownership changed",
                    f"Some {field} are no longer owned by the {owner}; the trade cannot complete",
                )

    def _transfer_ownership(self, offer: dict[str, Any]) -> None:
        """Move both game sets, or none of them.

        Each moved game is stamped with `lastTradeId`. If a concurrent trade
        took one of the games, the games this offer already moved are put back
        before the ConflictError is raised.
        """
        moves = (
            ("offeredGames", offer["offerer"], offer["receiver"]),
            ("requestedGames", offer["receiver"], offer["offerer"]),
        )
        moved: list[tuple[list[ObjectId], ObjectId, ObjectId]] = []
        for field, from_user, to_user in moves:
            game_ids = offer.get(field, [])
            if not game_ids:
                continue
            result = self._games.update_many(
                {"_id": {"$in": game_ids}, "ownerId": from_user},
                {"$set": {"ownerId": to_user, "lastTradeId": offer["_id"]}},
            )
            moved.append((game_ids, from_user, to_user))
            if result.matched_count != len(game_ids):
                logger.error(
                    "[Trade] Partial ownership transfer for offer %s: %s of %s %s moved; reverting",
                    offer["_id"], result.matched_count, len(game_ids), field,
                )
                self._revert_transfer(offer, moved)
                raise ConflictError(
                    "Game ownership changed",
                    "A concurrent trade moved some of these games; the trade cannot complete",
                )

    def _revert_transfer(
        self,
        offer: dict[str, Any],
        moved: list[tuple[list[ObjectId], ObjectId, ObjectId]],
    ) -> None:
        # Only games still carrying this offer's stamp go back.
        for game_ids, from_user, to_user in moved:
            self._games.update_many(
                {"_id": {"$in": game_ids}, "ownerId": to_user, "lastTradeId": offer["_id"]},
                {"$set": {"ownerId": from_user}, "$unset": {"lastTradeId": ""}},
            )

    def _reject_conflicting(self, offer: dict[str, Any]) -> int:
        game_ids = list(offer.get("offeredGames", [])) + list(offer.get("requestedGames", []))
        if not game_ids:
            return 0
        result = self._offers.update_many(
            {
                "_id": {"$ne": offer["_id"]},
                "status": PENDING,
                "$or": [
                    {"offeredGames": {"$in": game_ids}},
                    {"requestedGames": {"$in": game_ids}},
                ],
            },
            {
                "$set": {
                    "status": REJECTED,
                    "completedAt": now_utc(),
                    "rejectionReason": CASCADE_REJECTION_REASON,
                }
            },
        )
        return result.modified_count
