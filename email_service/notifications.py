"""Notification handlers: enrich an event, render it, email the participants.

Every handler follows the same steps:
    1. resolve the user ids (and game ids) in the event against MongoDB
    2. give up on the message if a referenced user is gone (EnrichmentError)
    3. build a display view, with placeholders for games that no longer exist
    4. render one email per recipient and send it
    5. count each send as sent or failed

A failed send to one recipient is counted and logged, and the other recipient
still gets their email.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from pymongo.collection import Collection

from . import metrics
from .config import MAIL_FROM_SECURITY, MAIL_FROM_TRADES
from .errors import EnrichmentError
from .mailer import Mailer
from .models import Topic, TradeOfferCreatedEvent, TradeStatusUpdatedEvent, UserChangedEvent
from .mongo import find_by_ids, normalize_id
from .templates import (
    GameDetails,
    RenderedEmail,
    TradeView,
    UserDetails,
    render_password_change_email,
    render_status_update_email,
    render_trade_offer_email,
)

logger = logging.getLogger(__name__)

TRADE_OFFER = "trade_offer"
STATUS_UPDATE = "status_update"
PASSWORD_CHANGE = "password_change"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_user_details(user: dict[str, Any]) -> UserDetails:
    return UserDetails(
        id=str(user["_id"]),
        name=user.get("name") or "User",
        email=user.get("email") or "No email",
    )


def _format_price(price: Any) -> str:
    if isinstance(price, bool) or price is None:
        return "N/A"
    if isinstance(price, (int, float)):
        return f"{price:.2f}"
    return str(price) or "N/A"


def format_games_list(
    game_ids: Iterable[str], games: dict[str, dict[str, Any]]
) -> tuple[GameDetails, ...]:
    """Display details for each id; ids missing from the store get placeholders."""
    details = []
    for game_id in game_ids:
        game = games.get(normalize_id(game_id))
        if game is None:
            details.append(GameDetails(id=str(game_id)))
            continue
        details.append(
            GameDetails(
                id=str(game_id),
                title=game.get("title") or "Unknown Title",
                publisher=game.get("publisher") or "Unknown Publisher",
                price=_format_price(game.get("price")),
                condition=game.get("condition") or "N/A",
            )
        )
    return tuple(details)


class NotificationService:
    """Turns consumed events into emails."""

    def __init__(
        self,
        users: Collection,
        games: Collection,
        mailer: Mailer,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._users = users
        self._games = games
        self._mailer = mailer
        self._clock = clock

    def dispatch(self, topic: Topic, payload: dict[str, Any]) -> int:
        """Validate `payload` for `topic` and run its handler.

        Returns the number of emails sent. Raises pydantic's ValidationError
        for a malformed envelope and EnrichmentError for a missing user.
        """
        match topic:
            case Topic.TRADE_OFFERS:
                return self.handle_trade_offer(TradeOfferCreatedEvent.model_validate(payload))
            case Topic.TRADE_STATUS_UPDATES:
                return self.handle_status_update(TradeStatusUpdatedEvent.model_validate(payload))
            case Topic.USER_CHANGES:
                return self.handle_user_change(UserChangedEvent.model_validate(payload))
            case _:
                raise ValueError(f"No handler for topic {topic!r}")

    def handle_trade_offer(self, event: TradeOfferCreatedEvent) -> int:
        """Tell the receiver they got an offer and the offerer that it was sent."""
        logger.info(
            "[Notify] Processing trade offer %s between %s and %s",
            event.id, event.offerer, event.receiver,
        )
        view = self._trade_view(
            event.id, event.offerer, event.receiver,
            event.offeredGames, event.requestedGames, event.status,
        )
        sent = self._send(view.receiver.email, MAIL_FROM_TRADES,
                          render_trade_offer_email(view, "received"), TRADE_OFFER)
        sent += self._send(view.offerer.email, MAIL_FROM_TRADES,
                           render_trade_offer_email(view, "sent"), TRADE_OFFER)
        return sent

    def handle_status_update(self, event: TradeStatusUpdatedEvent) -> int:
        """Tell both parties an offer was accepted or rejected."""
        logger.info("[Notify] Processing status update for trade %s: %s", event.tradeId, event.newStatus)
        view = self._trade_view(
            event.tradeId, event.offerer, event.receiver,
            event.offeredGames, event.requestedGames, event.newStatus,
        )
        sent = self._send(view.offerer.email, MAIL_FROM_TRADES,
                          render_status_update_email(view, "offerer"), STATUS_UPDATE)
        sent += self._send(view.receiver.email, MAIL_FROM_TRADES,
                           render_status_update_email(view, "receiver"), STATUS_UPDATE)
        return sent

    def handle_user_change(self, event: UserChangedEvent) -> int:
        """Confirm a password change to the affected user only."""
        logger.info("[Notify] Processing user change for user %s", event.id)
        timestamp = self._clock().strftime("%Y-%m-%d %H:%M:%S UTC")
        email = render_password_change_email(event.name, timestamp)
        return self._send(event.email, MAIL_FROM_SECURITY, email, PASSWORD_CHANGE)

    def _trade_view(
        self,
        trade_id: str,
        offerer_id: str,
        receiver_id: str,
        offered_games: list[str],
        requested_games: list[str],
        status: str,
    ) -> TradeView:
        offerer_id, receiver_id = normalize_id(offerer_id), normalize_id(receiver_id)
        users = find_by_ids(self._users, [offerer_id, receiver_id])
        missing = [uid for uid in (offerer_id, receiver_id) if uid not in users]
        if missing:
            raise EnrichmentError(
                f"Could not find user information for trade {trade_id}: {', '.join(missing)}"
            )

        games = find_by_ids(self._games, list(offered_games) + list(requested_games))
        return TradeView(
            trade_id=trade_id,
            offerer=format_user_details(users[offerer_id]),
            receiver=format_user_details(users[receiver_id]),
            offered_games=format_games_list(offered_games, games),
            requested_games=format_games_list(requested_games, games),
            status=status,
        )

    def _send(self, to: str, from_addr: str, email: RenderedEmail, kind: str) -> int:
        try:
            self._mailer.send(to, from_addr, email.subject, email.body)
        except Exception as e:
            metrics.errors.labels(operation=f"send_{kind}", errorType=type(e).__name__).inc()
            logger.error("[Notify] Failed to send %s email to %s: %s", kind, to, e)
            return 0
        metrics.emails_sent.labels(type=kind).inc()
        return 1
