"""Custom exceptions for the Viber relay.

This module defines the exception hierarchy shared by the credential store,
the outbound client, and the bot manager. The relay service maps each type to
an HTTP status code.
"""

from typing import Any


class RelayError(Exception):
    """Base exception for relay errors."""

    pass


class ValidationError(RelayError):
    """Raised when caller input is malformed (user-correctable)."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or []


class NotFoundError(RelayError):
    """Raised when a bot_id is not registered."""

    pass


class RemoteUnavailableError(RelayError):
    """Raised on transport-level failures talking to the Viber API."""

    pass


class RemoteRejectedError(RelayError):
    """Raised when the Viber API answers with a non-zero embedded status.

    Attributes:
        status: The remote status code (None if absent)
        status_message: The remote status message, if any
        detail: The raw response body, kept for diagnostics
    """

    def __init__(
        self,
        message: str,
        status: int | None = None,
        status_message: str | None = None,
        detail: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.status = status
        self.status_message = status_message
        self.detail = detail or {}


class AuthError(RemoteRejectedError):
    """Raised when the remote rejects the bot's auth token."""

    pass


class StoreUnavailableError(RelayError):
    """Raised when the credential store cannot be read."""

    pass


class ServiceShuttingDownError(RelayError):
    """Raised when a send is attempted after shutdown began."""

    pass
