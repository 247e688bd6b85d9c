"""Pydantic models for trade-api.

We validate input at the HTTP boundary so that:
- bad requests fail fast with a clear error
- Kafka only receives well-formed events
- the event contract stays consistent across services

The event models below must match the schemas expected by email-service.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Condition = Literal["mint", "good", "fair", "poor"]
OfferStatus = Literal["pending", "accepted", "rejected"]


# --- Request bodies ------------------------------------------------------------


class RegisterUserRequest(BaseModel):
    """Request body for `POST /users/register`."""

    name: str
    email: str
    password: str
    address: str


class UpdateUserRequest(BaseModel):
    """Request body for `PUT /users/{identifier}`.

    `password` is the current password; `newPassword` triggers a password change.
    """

    password: str | None = None
    newPassword: str | None = None
    name: str | None = None
    email: str | None = None
    address: str | None = None


class CreateGameRequest(BaseModel):
    """Request body for `POST /games`."""

    title: str
    publisher: str
    year: int
    system: str
    condition: Condition
    price: float
    rating: int = Field(ge=1, le=10)
    ownerId: str


class UpdateGameRequest(BaseModel):
    """Request body for `PUT`/`PATCH /games/{identifier}`.

    `ownerId` identifies the caller, who must own the game. It cannot be
    changed here; ownership moves only through an accepted trade offer.
    """

    ownerId: str
    title: str | None = None
    publisher: str | None = None
    year: int | None = None
    system: str | None = None
    condition: Condition | None = None
    price: float | None = None
    rating: int | None = Field(default=None, ge=1, le=10)


class DeleteGameRequest(BaseModel):
    """Request body for `DELETE /games/{identifier}`."""

    ownerId: str


class DeleteUserRequest(BaseModel):
    """Request body for `DELETE /users/{identifier}`."""

    password: str | None = None


class CreateTradeOfferRequest(BaseModel):
    """Request body for `POST /tradeOffers`."""

    offerer: str
    receiver: str
    offeredGames: list[str] = Field(default_factory=list)
    requestedGames: list[str] = Field(default_factory=list)


class AcceptTradeOfferRequest(BaseModel):
    """Request body for `PATCH /tradeOffers/{id}/accept`."""

    userId: str
    password: str


class RejectTradeOfferRequest(BaseModel):
    """Request body for `PATCH /tradeOffers/{id}/reject`."""

    userId: str
    password: str
    rejectionReason: str | None = None


# --- Kafka events --------------------------------------------------------------


class TradeOfferCreatedEvent(BaseModel):
    """Published to `trade-offers` once a new offer is committed."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    offerer: str
    receiver: str
    offeredGames: list[str]
    requestedGames: list[str]
    status: OfferStatus
    createdAt: str


class TradeStatusUpdatedEvent(BaseModel):
    """Published to `trade-status-updates` when an offer is accepted or rejected."""

    tradeId: str
    offerer: str
    receiver: str
    offeredGames: list[str]
    requestedGames: list[str]
    newStatus: Literal["accepted", "rejected"]


class UserChangedEvent(BaseModel):
    """Published to `user-changes` after a password change."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    name: str
    email: str
