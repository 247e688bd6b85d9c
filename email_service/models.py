"""Pydantic models for email-service.

Why do we validate Kafka events?
- Kafka is a log: it can contain old messages produced with an older schema.
- Validation prevents KeyError-style crashes on unexpected payloads.
- When a message is invalid, we log it, count it and move on.

These schemas must match what trade-api publishes.
"""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .config import (
    KAFKA_TOPIC_TRADE_OFFERS,
    KAFKA_TOPIC_TRADE_STATUS_UPDATES,
    KAFKA_TOPIC_USER_CHANGES,
)


class Topic(str, Enum):
    """The topics email-service subscribes to."""

    TRADE_OFFERS = KAFKA_TOPIC_TRADE_OFFERS
    TRADE_STATUS_UPDATES = KAFKA_TOPIC_TRADE_STATUS_UPDATES
    USER_CHANGES = KAFKA_TOPIC_USER_CHANGES


class TradeOfferCreatedEvent(BaseModel):
    """`trade-offers` envelope: snapshot of a newly created offer."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    offerer: str
    receiver: str
    offeredGames: list[str] = Field(default_factory=list)
    requestedGames: list[str] = Field(default_factory=list)
    status: str = "pending"
    createdAt: str | None = None


class TradeStatusUpdatedEvent(BaseModel):
    """`trade-status-updates` envelope."""

    tradeId: str
    offerer: str
    receiver: str
    offeredGames: list[str] = Field(default_factory=list)
    requestedGames: list[str] = Field(default_factory=list)
    newStatus: Literal["accepted", "rejected"]


class UserChangedEvent(BaseModel):
    """`user-changes` envelope, published on password change only."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    name: str | None = None
    email: str
