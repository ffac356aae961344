"""Real-time session handling for the relay WebSocket.

A RealtimeSession wraps one connected client. Incoming frames are parsed into
envelopes and dispatched to the bot manager; replies are queued through the
event broadcaster so that a single pump task writes to the socket.

Send outcomes reach the client through the broadcast path: the session
subscribes the client to the bot before sending, and the bot manager
publishes ``bot:message:sent`` or ``error`` to every follower of the bot.
Only local failures (validation, unknown bot, shutdown) are replied directly.
"""

import asyncio
import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from viber_relay.exceptions import (
    NotFoundError,
    RemoteRejectedError,
    RemoteUnavailableError,
    ServiceShuttingDownError,
    ValidationError,
)
from viber_relay.models import EventTypes, RealtimeEnvelope
from viber_relay.service.bot_manager import BotManager
from viber_relay.service.broadcaster import EventBroadcaster, Subscriber


class RealtimeSession:
    """Dispatches the events of one WebSocket client."""

    def __init__(
        self,
        manager: BotManager,
        broadcaster: EventBroadcaster,
        subscriber: Subscriber,
    ) -> None:
        self._manager = manager
        self._broadcaster = broadcaster
        self._subscriber = subscriber
        self._tasks: set[asyncio.Task] = set()
        self._logger = logging.getLogger(__name__)

    @property
    def subscriber_id(self) -> str:
        return self._subscriber.subscriber_id

    async def dispatch(self, raw: str) -> None:
        """Handle one incoming frame.

        Sends run as background tasks so a slow send does not hold up
        status queries on the same connection.
        """
        try:
            envelope = RealtimeEnvelope.model_validate_json(raw)
        except PydanticValidationError:
            self._reply_error("Invalid event envelope")
            return

        bot_id = envelope.data.get("botId")
        if bot_id is not None and not isinstance(bot_id, str):
            self._reply_error("Invalid event envelope", detail="botId must be a string")
            return

        if envelope.event in (EventTypes.BOT_STATUS, EventTypes.BOT_SUBSCRIBE):
            self._handle_status(bot_id)
        elif envelope.event == EventTypes.BOT_UNSUBSCRIBE:
            if bot_id is not None:
                self._broadcaster.unsubscribe(self.subscriber_id, bot_id)
        elif envelope.event == EventTypes.BOT_MESSAGE:
            task = asyncio.create_task(
                self._handle_message(bot_id, envelope.data.get("message"))
            )
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        else:
            self._reply_error(f"Unknown event: {envelope.event}")

    async def close(self, timeout: float) -> None:
        """Wait for this session's sends; cancel any still running after ``timeout``."""
        if not self._tasks:
            return

        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            self._logger.warning(
                "Cancelled %d send(s) of closed subscriber %s",
                len(pending),
                self.subscriber_id,
            )
            await asyncio.gather(*pending, return_exceptions=True)

    def _handle_status(self, bot_id: str | None) -> None:
        try:
            info = self._manager.get_bot_status(bot_id)
        except NotFoundError as e:
            self._reply_error("Failed to fetch bot status", bot_id, str(e))
            return

        self._broadcaster.subscribe(self.subscriber_id, info.bot_id)
        self._reply(
            EventTypes.BOT_STATUS_UPDATE, info.model_dump(mode="json", by_alias=True)
        )

    async def _handle_message(self, bot_id: str | None, message: Any) -> None:
        try:
            self._manager.get_bot_status(bot_id)
            self._broadcaster.subscribe(self.subscriber_id, bot_id)
            await self._manager.send_message(bot_id, message)
        except ValidationError as e:
            self._reply_error("Failed to send message", bot_id, str(e), errors=e.errors)
        except (NotFoundError, ServiceShuttingDownError) as e:
            self._reply_error("Failed to send message", bot_id, str(e))
        except (RemoteRejectedError, RemoteUnavailableError) as e:
            # Already published to this client as an error event
            self._logger.info("Socket send via bot %s failed: %s", bot_id, e)

    def _reply(self, event: str, data: dict[str, Any]) -> None:
        if not self._broadcaster.send_to(self.subscriber_id, event, data):
            self._logger.warning(
                "Could not queue %s for subscriber %s", event, self.subscriber_id
            )

    def _reply_error(
        self,
        message: str,
        bot_id: str | None = None,
        detail: str | None = None,
        **extra: Any,
    ) -> None:
        data: dict[str, Any] = {"message": message}
        if bot_id is not None:
            data["botId"] = bot_id
        if detail is not None:
            data["detail"] = detail
        data.update(extra)
        self._reply(EventTypes.ERROR, data)
