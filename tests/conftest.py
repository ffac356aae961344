"""Shared fixtures for viber_relay tests.

This module provides:
- Custom markers for test categorization
- Sample bot credentials and Viber API payloads
- A mock Viber API client whose calls can be scripted per test
"""

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from viber_relay.client import ViberAPIClient
from viber_relay.models import AccountInfo, BotCredentials, SendMessageResponse


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for test categorization."""
    config.addinivalue_line(
        "markers", "websocket: marks tests as WebSocket-specific tests"
    )
    config.addinivalue_line(
        "markers", "concurrency: marks tests that interleave async operations"
    )


def make_account(name: str = "Support Bot", **overrides: Any) -> AccountInfo:
    """Build an AccountInfo as returned by a successful probe."""
    data: dict[str, Any] = {
        "status": 0,
        "status_message": "ok",
        "id": "pa:75346594275468546724",
        "name": name,
        "uri": "supportbot",
        "icon": "https://example.com/icon.png",
        "category": "Support",
        "webhook": "https://relay.example.com/api/webhook/support",
        "event_types": ["delivered", "seen", "failed"],
        "subscribers_count": 12,
    }
    data.update(overrides)
    return AccountInfo.model_validate(data)


def make_send_response(message_token: int = 5741311803571721087) -> SendMessageResponse:
    """Build a successful send_message response."""
    return SendMessageResponse(
        status=0,
        status_message="ok",
        message_token=message_token,
        chat_hostname="SN-CHAT-05_",
    )


@pytest.fixture
def credentials() -> BotCredentials:
    """Credentials for a single bot named 'support'."""
    return BotCredentials(
        bot_id="support",
        token="445da6az1s345z78-dazcczb2542zv51a-e0vc5fva17480im9",
        name="Support",
    )


@pytest.fixture
def other_credentials() -> BotCredentials:
    """Credentials for a second bot with no configured sender name."""
    return BotCredentials(bot_id="sales", token="sales-token-0001")


@pytest.fixture
def mock_client() -> MagicMock:
    """Create a mock ViberAPIClient with successful defaults."""
    client = MagicMock(spec=ViberAPIClient)
    client.connect = AsyncMock()
    client.close = AsyncMock()
    client.get_account_info = AsyncMock(return_value=make_account())
    client.send_message = AsyncMock(return_value=make_send_response())
    client.set_webhook = AsyncMock()
    return client
