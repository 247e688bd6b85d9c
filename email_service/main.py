"""email-service FastAPI application.

Responsibilities:
- Serve `/health` and `/metrics`.
- Start a background Kafka consumer that turns trade lifecycle events into emails.

Why run the consumer inside this process?
- The HTTP side is only there for health checks and metrics scraping.
- The consumer loop blocks, so we run it in a background thread.

Startup failures (MongoDB or Kafka unreachable) are logged, recorded on the
connection gauges and re-raised so the process exits and its supervisor can
restart it.
"""

from __future__ import annotations

import logging
from threading import Event, Thread

from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pymongo import MongoClient

from .config import LOG_LEVEL
from .kafka_consumer import check_broker, create_consumer, run_consumer
from .mailer import SmtpMailer
from .mongo import create_client, get_collections
from .notifications import NotificationService

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Email Service")

# Used to signal the consumer thread to stop on shutdown.
stop_event = Event()

consumer_thread: Thread | None = None
mongo_client: MongoClient | None = None


@app.on_event("startup")
def on_startup() -> None:
    """Startup hook.

    - Connect to MongoDB (read-only lookups for enrichment).
    - Connect to Kafka and start the consumer thread.
    """
    global consumer_thread, mongo_client

    mongo_client = create_client()
    users, games = get_collections(mongo_client)

    consumer = create_consumer()
    check_broker(consumer)

    notifications = NotificationService(users, games, SmtpMailer())

    consumer_thread = Thread(
        target=run_consumer,
        args=(notifications, stop_event, consumer),
        daemon=True,  # Daemon threads won't block process exit.
    )
    consumer_thread.start()


@app.on_event("shutdown")
def on_shutdown() -> None:
    """Stop the consumer loop, then close the MongoDB connection.

    The loop finishes the message it is handling, closes the Kafka consumer
    and exits. Anything consumed but not yet committed is redelivered on
    the next start.
    """
    stop_event.set()
    if consumer_thread is not None:
        consumer_thread.join(timeout=30)
    if mongo_client is not None:
        mongo_client.close()
    logger.info("[Main] Shutdown complete")


@app.get("/health")
def health() -> dict[str, str]:
    """Basic liveness endpoint."""
    alive = consumer_thread is not None and consumer_thread.is_alive()
    return {"status": "ok" if alive else "degraded"}


@app.get("/metrics")
def prometheus_metrics() -> Response:
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
