"""trade-api FastAPI application.

Responsibilities:
- Register users, manage their profiles and their video games.
- Create, accept and reject trade offers.
- Publish a Kafka event after each committed lifecycle change.

Important note:
This service does NOT send emails. Notifications happen asynchronously in
email-service, which consumes the events published here.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from . import metrics
from .config import LOG_LEVEL, MONGO_DB
from .errors import ConnectivityError, TradeAPIError
from .games import GameService
from .kafka_producer import EventProducer, create_producer
from .models import (
    AcceptTradeOfferRequest,
    CreateGameRequest,
    CreateTradeOfferRequest,
    DeleteGameRequest,
    DeleteUserRequest,
    RegisterUserRequest,
    RejectTradeOfferRequest,
    UpdateGameRequest,
    UpdateUserRequest,
)
from .mongo import Collections, create_client, ensure_indexes, public_user, to_jsonable
from .trade_offers import TradeOfferService
from .users import UserService

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Trade API")

# Set on startup; closed on shutdown.
mongo_client: MongoClient | None = None
event_producer: EventProducer | None = None

trade_offer_service: TradeOfferService | None = None
user_service: UserService | None = None
game_service: GameService | None = None


@app.on_event("startup")
def on_startup() -> None:
    """Startup hook.

    - Connect to MongoDB and make sure indexes exist.
    - Create the single Kafka producer shared by every request.
    """
    global mongo_client, event_producer, trade_offer_service, user_service, game_service

    mongo_client = create_client()
    collections = Collections(mongo_client[MONGO_DB])
    ensure_indexes(collections)

    event_producer = EventProducer(create_producer())

    trade_offer_service = TradeOfferService(collections, event_producer)
    user_service = UserService(collections, event_producer)
    game_service = GameService(collections)


@app.on_event("shutdown")
def on_shutdown() -> None:
    """Flush the producer and close the MongoDB connection."""
    if event_producer is not None:
        event_producer.close()
    if mongo_client is not None:
        mongo_client.close()


def get_trade_offer_service() -> TradeOfferService:
    return trade_offer_service


def get_user_service() -> UserService:
    return user_service


def get_game_service() -> GameService:
    return game_service


@app.exception_handler(TradeAPIError)
async def trade_api_error_handler(request: Request, exc: TradeAPIError) -> JSONResponse:
    """Render domain errors as `{"message", "details"}` with their status code."""
    route = request.scope.get("route")
    operation = route.name if route is not None else "unknown"
    metrics.errors.labels(operation=operation, errorType=type(exc).__name__).inc()
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(PyMongoError)
async def mongo_error_handler(request: Request, exc: PyMongoError) -> JSONResponse:
    """MongoDB failures on the request path are reported as 503s."""
    logger.error("[Mongo] Request failed: %s", exc)
    return await trade_api_error_handler(
        request, ConnectivityError("Database unavailable", type(exc).__name__)
    )


@app.get("/health")
def health() -> dict[str, str]:
    """Basic liveness endpoint."""
    return {"status": "ok"}


@app.get("/metrics")
def prometheus_metrics() -> Response:
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


# --- Users ---------------------------------------------------------------------


@app.post("/users/register", status_code=201)
def register_user(req: RegisterUserRequest, users: UserService = Depends(get_user_service)):
    user = users.register(req.name, req.email, req.password, req.address)
    return {"message": "User registered successfully", "user": public_user(user)}


@app.get("/users/{identifier}")
def get_user(identifier: str, users: UserService = Depends(get_user_service)):
    return {"message": "User found", "data": public_user(users.get(identifier))}


@app.put("/users/{identifier}")
def update_user(
    identifier: str,
    req: UpdateUserRequest,
    users: UserService = Depends(get_user_service),
):
    updates: dict[str, Any] = req.model_dump(include={"name", "email", "address"})
    updated = users.update(identifier, req.password, updates, new_password=req.newPassword)
    return {"message": "Updated user", "updatedData": public_user(updated)}


@app.delete("/users/{identifier}")
def delete_user(
    identifier: str,
    req: DeleteUserRequest,
    users: UserService = Depends(get_user_service),
):
    user = users.delete(identifier, req.password)
    return {"message": f"User {user['name']} deleted"}


@app.get("/users/{identifier}/offers/received")
def offers_received(
    identifier: str,
    users: UserService = Depends(get_user_service),
    offers: TradeOfferService = Depends(get_trade_offer_service),
):
    user = users.get(identifier)
    return {
        "message": f"Trade offers received by {user['name']}",
        "offers": to_jsonable(offers.list_for_user(user["_id"], "receiver")),
    }


@app.get("/users/{identifier}/offers/offered")
def offers_offered(
    identifier: str,
    users: UserService = Depends(get_user_service),
    offers: TradeOfferService = Depends(get_trade_offer_service),
):
    user = users.get(identifier)
    return {
        "message": f"Trade offers made by {user['name']}",
        "offers": to_jsonable(offers.list_for_user(user["_id"], "offerer")),
    }


# --- Games ---------------------------------------------------------------------


@app.post("/games", status_code=201)
def create_game(req: CreateGameRequest, games: GameService = Depends(get_game_service)):
    game = games.create(req.model_dump())
    return {"message": "Video game created successfully", "game": to_jsonable(game)}


@app.get("/games/{identifier}")
def get_game(identifier: str, games: GameService = Depends(get_game_service)):
    return {"game": to_jsonable(games.get(identifier))}


@app.api_route("/games/{identifier}", methods=["PUT", "PATCH"])
def update_game(
    identifier: str,
    req: UpdateGameRequest,
    games: GameService = Depends(get_game_service),
):
    updates = req.model_dump(exclude={"ownerId"}, exclude_none=True)
    previous, updated = games.update(identifier, req.ownerId, updates)
    return {
        "message": "Game updated successfully",
        "previousData": to_jsonable(previous),
        "updatedData": to_jsonable(updated),
    }


@app.delete("/games/{identifier}")
def delete_game(
    identifier: str,
    req: DeleteGameRequest,
    games: GameService = Depends(get_game_service),
):
    game = games.delete(identifier, req.ownerId)
    return {"message": "Game deleted successfully", "deletedGame": to_jsonable(game)}


# --- Trade offers --------------------------------------------------------------


@app.post("/tradeOffers", status_code=201)
def create_trade_offer(
    req: CreateTradeOfferRequest,
    offers: TradeOfferService = Depends(get_trade_offer_service),
):
    """Create a pending trade offer.

    The response is sent after the MongoDB write; the `trade-offers` event has
    been attempted but its outcome does not change the response.
    """
    offer = offers.create(req.offerer, req.receiver, req.offeredGames, req.requestedGames)
    return {"message": "Trade offer created successfully", "tradeOffer": to_jsonable(offer)}


@app.patch("/tradeOffers/{trade_id}/accept")
def accept_trade_offer(
    trade_id: str,
    req: AcceptTradeOfferRequest,
    offers: TradeOfferService = Depends(get_trade_offer_service),
):
    offer = offers.accept(trade_id, req.userId, req.password)
    return {"message": "Trade offer accepted successfully", "tradeOffer": to_jsonable(offer)}


@app.patch("/tradeOffers/{trade_id}/reject")
def reject_trade_offer(
    trade_id: str,
    req: RejectTradeOfferRequest,
    offers: TradeOfferService = Depends(get_trade_offer_service),
):
    offer = offers.reject(trade_id, req.userId, req.password, req.rejectionReason)
    return {"message": "Trade offer rejected successfully", "tradeOffer": to_jsonable(offer)}


@app.get("/tradeOffers/{trade_id}")
def get_trade_offer(trade_id: str, offers: TradeOfferService = Depends(get_trade_offer_service)):
    return {"tradeOffer": to_jsonable(offers.get(trade_id))}
