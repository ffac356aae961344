"""FastAPI relay service.

This module provides the HTTP and WebSocket boundary of the relay: bot status
and send endpoints, the Viber webhook endpoint, the real-time socket, and the
mapping from relay exceptions to HTTP status codes.
"""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Annotated, Any

from fastapi import (
    Body,
    Depends,
    FastAPI,
    Query,
    Request,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from fastapi.responses import JSONResponse

from viber_relay.exceptions import (
    NotFoundError,
    RelayError,
    RemoteRejectedError,
    RemoteUnavailableError,
    ServiceShuttingDownError,
    ValidationError,
)
from viber_relay.models import BotInfo, BotStatusInfo, SendResult, WebhookAck
from viber_relay.service.bot_manager import BotManager
from viber_relay.service.broadcaster import EventBroadcaster
from viber_relay.service.realtime import RealtimeSession
from viber_relay.service.webhook import WebhookIngest

logger = logging.getLogger(__name__)

# Per-process instances (set by the server runner)
_bot_manager: BotManager | None = None
_broadcaster: EventBroadcaster | None = None
_started_at = time.monotonic()


def get_bot_manager() -> BotManager:
    """Dependency that provides the BotManager instance."""
    if _bot_manager is None:
        raise RuntimeError("BotManager not initialized")
    return _bot_manager


def set_bot_manager(manager: BotManager | None) -> None:
    """Set the process-wide BotManager instance."""
    global _bot_manager
    _bot_manager = manager


def get_broadcaster() -> EventBroadcaster:
    """Dependency that provides the EventBroadcaster instance."""
    if _broadcaster is None:
        raise RuntimeError("EventBroadcaster not initialized")
    return _broadcaster


def set_broadcaster(broadcaster: EventBroadcaster | None) -> None:
    """Set the process-wide EventBroadcaster instance."""
    global _broadcaster
    _broadcaster = broadcaster


def get_webhook_ingest(
    manager: Annotated[BotManager, Depends(get_bot_manager)],
    broadcaster: Annotated[EventBroadcaster, Depends(get_broadcaster)],
) -> WebhookIngest:
    return WebhookIngest(manager, broadcaster)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize bots before serving; drain sends on shutdown.

    A StoreUnavailableError raised here aborts server startup.
    """
    if _bot_manager is not None:
        report = await _bot_manager.initialize()
        logger.info(
            "Bot manager ready: %d/%d bots active", report.active, report.total
        )
    yield
    if _broadcaster is not None:
        await _broadcaster.close()
    if _bot_manager is not None:
        logger.info("Shutting down bot manager...")
        await _bot_manager.shutdown()


app = FastAPI(
    title="Viber Relay",
    description="Relay between client applications and the Viber bot API",
    version="0.1.0",
    lifespan=lifespan,
)


# =============================================================================
# Error mapping
# =============================================================================

_STATUS_CODES: dict[type[RelayError], int] = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    RemoteRejectedError: status.HTTP_400_BAD_REQUEST,
    RemoteUnavailableError: status.HTTP_502_BAD_GATEWAY,
    ServiceShuttingDownError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@app.exception_handler(RelayError)
async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    """Map relay exceptions to JSON error responses."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type in type(exc).__mro__:
        if error_type in _STATUS_CODES:
            status_code = _STATUS_CODES[error_type]
            break

    body: dict[str, Any] = {"error": str(exc)}
    if isinstance(exc, ValidationError) and exc.errors:
        body["errors"] = exc.errors
    if isinstance(exc, RemoteRejectedError):
        body["details"] = exc.detail
    if status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    return JSONResponse(status_code=status_code, content=body)


# =============================================================================
# HTTP endpoints
# =============================================================================


@app.get("/health")
def health_check() -> dict[str, Any]:
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - _started_at, 3),
    }


@app.get("/api/bot", response_model=list[BotInfo])
def list_bots(
    manager: Annotated[BotManager, Depends(get_bot_manager)],
) -> list[BotInfo]:
    """List all registered bots."""
    return manager.list_bots()


@app.get("/api/bot/{bot_id}", response_model=BotInfo)
def get_bot(
    bot_id: str,
    manager: Annotated[BotManager, Depends(get_bot_manager)],
) -> BotInfo:
    """Get account information about a specific bot."""
    return manager.get_bot(bot_id)


@app.get("/api/bot/{bot_id}/status", response_model=BotStatusInfo)
def get_bot_status(
    bot_id: str,
    manager: Annotated[BotManager, Depends(get_bot_manager)],
) -> BotStatusInfo:
    """Get the cached status of a bot (no remote call)."""
    return manager.get_bot_status(bot_id)


@app.post("/api/bot/{bot_id}/status/refresh", response_model=BotStatusInfo)
async def refresh_bot_status(
    bot_id: str,
    manager: Annotated[BotManager, Depends(get_bot_manager)],
) -> BotStatusInfo:
    """Probe a bot now and return its resulting status."""
    return await manager.refresh_bot_status(bot_id)


@app.post("/api/bot/{bot_id}/send", response_model=SendResult)
async def send_message(
    bot_id: str,
    message: Annotated[Any, Body()],
    manager: Annotated[BotManager, Depends(get_bot_manager)],
) -> SendResult:
    """Send a message through a bot."""
    return await manager.send_message(bot_id, message)


@app.post("/api/webhook", response_model=WebhookAck)
async def webhook(
    request: Request,
    ingest: Annotated[WebhookIngest, Depends(get_webhook_ingest)],
    bot_id: Annotated[str | None, Query(alias="botId")] = None,
) -> WebhookAck:
    """Receive a Viber callback addressed with ``?botId=``."""
    return await ingest.handle(bot_id, await request.body())


@app.post("/api/webhook/{bot_id}", response_model=WebhookAck)
async def webhook_for_bot(
    bot_id: str,
    request: Request,
    ingest: Annotated[WebhookIngest, Depends(get_webhook_ingest)],
) -> WebhookAck:
    """Receive a Viber callback addressed by path."""
    return await ingest.handle(bot_id, await request.body())


# =============================================================================
# Real-time endpoint
# =============================================================================


@app.websocket("/ws")
async def realtime(
    websocket: WebSocket,
    manager: Annotated[BotManager, Depends(get_bot_manager)],
    broadcaster: Annotated[EventBroadcaster, Depends(get_broadcaster)],
) -> None:
    """Real-time channel: status queries, sends, and bot event fan-out."""
    await websocket.accept()
    subscriber = broadcaster.register(websocket.send_json)
    session = RealtimeSession(manager, broadcaster, subscriber)

    try:
        while True:
            raw = await websocket.receive_text()
            await session.dispatch(raw)
    except WebSocketDisconnect:
        logger.debug("Socket %s closed by client", subscriber.subscriber_id)
    finally:
        await session.close(manager.shutdown_timeout)
        await broadcaster.unregister(subscriber.subscriber_id)
