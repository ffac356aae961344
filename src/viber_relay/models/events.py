"""Real-time and webhook event models.

This module contains the envelope exchanged over the relay WebSocket and the
lenient model for inbound Viber callbacks.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EventTypes:
    """Real-time event name constants."""

    # Client -> Server
    BOT_STATUS = "bot:status"
    BOT_MESSAGE = "bot:message"
    BOT_SUBSCRIBE = "bot:subscribe"
    BOT_UNSUBSCRIBE = "bot:unsubscribe"

    # Server -> Client
    BOT_STATUS_UPDATE = "bot:status:update"
    BOT_MESSAGE_SENT = "bot:message:sent"
    ERROR = "error"


class RealtimeEnvelope(BaseModel):
    """Envelope for every WebSocket frame in both directions."""

    model_config = ConfigDict(populate_by_name=True)

    event: str
    data: dict[str, Any] = Field(default_factory=dict)


class WebhookEventTypes:
    """Callback event names sent by the Viber platform."""

    WEBHOOK = "webhook"
    MESSAGE = "message"
    DELIVERED = "delivered"
    SEEN = "seen"
    FAILED = "failed"
    SUBSCRIBED = "subscribed"
    UNSUBSCRIBED = "unsubscribed"
    CONVERSATION_STARTED = "conversation_started"
    CLIENT_STATUS = "client_status"

    ALL = frozenset(
        {
            WEBHOOK,
            MESSAGE,
            DELIVERED,
            SEEN,
            FAILED,
            SUBSCRIBED,
            UNSUBSCRIBED,
            CONVERSATION_STARTED,
            CLIENT_STATUS,
        }
    )


class WebhookEvent(BaseModel):
    """Inbound Viber callback.

    Only ``event`` is required; the remaining fields depend on the event type
    and unknown fields are kept.
    """

    model_config = ConfigDict(extra="allow")

    event: str
    timestamp: int | None = None
    message_token: int | None = None
    chat_hostname: str | None = None
    user_id: str | None = None
    desc: str | None = None
    sender: dict[str, Any] | None = None
    user: dict[str, Any] | None = None
    message: dict[str, Any] | None = None

    @property
    def user_ref(self) -> str | None:
        """Best-effort id of the user the event concerns."""
        if self.user_id:
            return self.user_id
        for source in (self.sender, self.user):
            if source and source.get("id"):
                return str(source["id"])
        return None


class SetWebhookResponse(BaseModel):
    """Response payload of the set_webhook endpoint."""

    status: int
    status_message: str | None = None
    event_types: list[str] = Field(default_factory=list)


class WebhookAck(BaseModel):
    """Acknowledgement returned for every webhook delivery.

    ``processed`` is False when the event was logged and ignored.
    """

    model_config = ConfigDict(populate_by_name=True)

    accepted: bool = True
    processed: bool = False
    bot_id: str | None = Field(default=None, alias="botId")
    event: str | None = None
