"""Bot account and status models.

This module contains the Pydantic models describing a registered bot: the
credentials loaded from the store, the account info returned by the Viber API,
and the status views the bot manager hands out.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class BotStatus(str, Enum):
    """Liveness state of a registered bot."""

    UNKNOWN = "unknown"
    INITIALIZING = "initializing"
    ACTIVE = "active"
    DEGRADED = "degraded"
    UNREACHABLE = "unreachable"


class BotCredentials(BaseModel):
    """A bot entry as provided by the credential store.

    Attributes:
        bot_id: Local identifier for the bot
        token: Viber auth token (never logged or serialized in clear)
        name: Default sender name for outbound messages
        avatar: Default sender avatar URL
        metadata: Free-form account metadata from the store
    """

    model_config = ConfigDict(populate_by_name=True)

    bot_id: str = Field(alias="botId", min_length=1)
    token: SecretStr
    name: str | None = None
    avatar: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class AccountLocation(BaseModel):
    """Geographic location attached to a Viber account."""

    lat: float | None = None
    lon: float | None = None


class AccountInfo(BaseModel):
    """Response payload of the get_account_info endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    status: int
    status_message: str | None = None
    id: str | None = None
    name: str | None = None
    uri: str | None = None
    icon: str | None = None
    background: str | None = None
    category: str | None = None
    subcategory: str | None = None
    location: AccountLocation | None = None
    country: str | None = None
    webhook: str | None = None
    event_types: list[str] = Field(default_factory=list)
    subscribers_count: int | None = None


class BotStatusInfo(BaseModel):
    """Cached status of a bot, as returned by status queries."""

    model_config = ConfigDict(populate_by_name=True)

    bot_id: str = Field(alias="botId")
    status: BotStatus
    last_checked_at: datetime | None = Field(default=None, alias="lastCheckedAt")
    last_error: str | None = Field(default=None, alias="lastError")


class BotInfo(BaseModel):
    """Public view of a registered bot. Never carries the token."""

    model_config = ConfigDict(populate_by_name=True)

    bot_id: str = Field(alias="botId")
    name: str | None = None
    uri: str | None = None
    icon: str | None = None
    webhook: str | None = None
    subscribers_count: int | None = Field(default=None, alias="subscribersCount")
    status: BotStatus
    last_checked_at: datetime | None = Field(default=None, alias="lastCheckedAt")
    last_event_at: datetime | None = Field(default=None, alias="lastEventAt")


class InitializationReport(BaseModel):
    """Outcome of loading and probing all bots at startup."""

    total: int = 0
    active: int = 0
    failed: dict[str, BotStatus] = Field(default_factory=dict)
