"""Error taxonomy for trade-api.

Every request-path failure is one of these exceptions. The HTTP layer turns
them into `{"message": ..., "details": ...}` responses with `status_code`.
"""

from __future__ import annotations

from typing import Any


class TradeAPIError(Exception):
    """Base class for user-reportable trade-api errors."""

    status_code: int = 500

    def __init__(self, message: str, details: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(TradeAPIError):
    """Malformed or missing input."""

    status_code = 400


class AuthenticationError(TradeAPIError):
    """Credential did not match the stored secret."""

    status_code = 401


class AuthorizationError(TradeAPIError):
    """The acting user is not allowed to perform the operation."""

    status_code = 403


class NotFoundError(TradeAPIError):
    """A referenced user, game or trade offer does not exist."""

    status_code = 404


class StateError(TradeAPIError):
    """Lifecycle transition attempted on an offer that is no longer pending."""

    status_code = 409


class ConflictError(TradeAPIError):
    """Duplicate pending offer, unique field clash, or a concurrent change."""

    status_code = 409

    def __init__(
        self,
        message: str,
        details: str | None = None,
        existing_offer_id: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.existing_offer_id = existing_offer_id

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        if self.existing_offer_id is not None:
            body["existingOfferId"] = self.existing_offer_id
        return body


class ConnectivityError(TradeAPIError):
    """MongoDB or Kafka is unavailable."""

    status_code = 503
