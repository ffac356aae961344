"""Relay service layer - bot lifecycle, event fan-out, HTTP and WebSocket boundary."""

from viber_relay.service.bot_manager import BotManager
from viber_relay.service.broadcaster import EventBroadcaster, Subscriber
from viber_relay.service.realtime import RealtimeSession
from viber_relay.service.relay_service import (
    app,
    get_bot_manager,
    get_broadcaster,
    set_bot_manager,
    set_broadcaster,
)
from viber_relay.service.webhook import WebhookIngest

__all__ = [
    "BotManager",
    "EventBroadcaster",
    "RealtimeSession",
    "Subscriber",
    "WebhookIngest",
    "app",
    "get_bot_manager",
    "get_broadcaster",
    "set_bot_manager",
    "set_broadcaster",
]
