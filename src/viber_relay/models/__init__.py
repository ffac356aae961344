"""Pydantic models for the Viber relay.

Usage:
    from viber_relay.models import BotStatus, BotStatusInfo, SendResult
    from viber_relay.models import parse_outbound_message, MESSAGE_TYPES
"""

from viber_relay.models.account import (
    AccountInfo,
    AccountLocation,
    BotCredentials,
    BotInfo,
    BotStatus,
    BotStatusInfo,
    InitializationReport,
)
from viber_relay.models.events import (
    EventTypes,
    RealtimeEnvelope,
    SetWebhookResponse,
    WebhookAck,
    WebhookEvent,
    WebhookEventTypes,
)
from viber_relay.models.messages import (
    MESSAGE_TYPES,
    BaseOutboundMessage,
    Contact,
    ContactMessage,
    FileMessage,
    Location,
    LocationMessage,
    OutboundMessage,
    PictureMessage,
    SendMessageResponse,
    SendResult,
    Sender,
    StickerMessage,
    TextMessage,
    UrlMessage,
    VideoMessage,
    parse_outbound_message,
)

__all__ = [
    # Account
    "AccountInfo",
    "AccountLocation",
    "BotCredentials",
    "BotInfo",
    "BotStatus",
    "BotStatusInfo",
    "InitializationReport",
    # Events
    "EventTypes",
    "RealtimeEnvelope",
    "SetWebhookResponse",
    "WebhookAck",
    "WebhookEvent",
    "WebhookEventTypes",
    # Messages
    "MESSAGE_TYPES",
    "BaseOutboundMessage",
    "Contact",
    "ContactMessage",
    "FileMessage",
    "Location",
    "LocationMessage",
    "OutboundMessage",
    "PictureMessage",
    "SendMessageResponse",
    "SendResult",
    "Sender",
    "StickerMessage",
    "TextMessage",
    "UrlMessage",
    "VideoMessage",
    "parse_outbound_message",
]
