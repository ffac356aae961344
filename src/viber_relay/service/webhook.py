"""Webhook ingest for inbound Viber callbacks.

Callbacks are folded into the bot manager as observations. Malformed bodies,
unknown event types and events for bots that are not registered (the platform
may deliver before local registration completes) are logged and acknowledged,
never raised.
"""

import json
import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from viber_relay.models import EventTypes, WebhookAck, WebhookEvent, WebhookEventTypes
from viber_relay.service.bot_manager import BotManager
from viber_relay.service.broadcaster import EventBroadcaster

logger = logging.getLogger(__name__)


class WebhookIngest:
    """Translates Viber callbacks into bot manager updates."""

    def __init__(
        self,
        manager: BotManager,
        broadcaster: EventBroadcaster | None = None,
    ) -> None:
        self._manager = manager
        self._broadcaster = broadcaster

    async def handle(
        self, bot_id: str | None, body: bytes | str | dict[str, Any]
    ) -> WebhookAck:
        """Process one callback delivery.

        Args:
            bot_id: Bot the callback was addressed to (from the webhook URL)
            body: Raw request body or already parsed JSON

        Returns:
            WebhookAck; always ``accepted``
        """
        event = self._parse(body)
        if event is None:
            return WebhookAck(bot_id=bot_id)

        ack = WebhookAck(bot_id=bot_id, event=event.event)

        if event.event not in WebhookEventTypes.ALL:
            logger.info(
                "Ignoring unknown webhook event %r for bot %s", event.event, bot_id
            )
            return ack

        if not await self._manager.record_event(bot_id, event):
            logger.info(
                "Ignoring %s event for unregistered bot %s", event.event, bot_id
            )
            return ack

        if event.event == WebhookEventTypes.MESSAGE:
            self._publish_inbound_message(bot_id, event)
        elif event.event == WebhookEventTypes.FAILED:
            logger.warning(
                "Delivery of message %s by bot %s failed: %s",
                event.message_token,
                bot_id,
                event.desc,
            )
        else:
            logger.debug(
                "Webhook %s for bot %s from %s", event.event, bot_id, event.user_ref
            )

        ack.processed = True
        return ack

    def _parse(self, body: bytes | str | dict[str, Any]) -> WebhookEvent | None:
        if isinstance(body, (bytes, str)):
            try:
                body = json.loads(body)
            except ValueError as e:
                logger.warning("Ignoring webhook with invalid JSON: %s", e)
                return None

        try:
            return WebhookEvent.model_validate(body)
        except PydanticValidationError as e:
            logger.warning(
                "Ignoring malformed webhook body: %d validation error(s)", e.error_count()
            )
            return None

    def _publish_inbound_message(self, bot_id: str, event: WebhookEvent) -> None:
        if self._broadcaster is None:
            return
        self._broadcaster.publish(
            EventTypes.BOT_MESSAGE,
            bot_id,
            {
                "sender": event.sender,
                "message": event.message,
                "messageToken": event.message_token,
                "timestamp": event.timestamp,
            },
        )
