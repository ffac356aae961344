"""Async HTTP client wrapper for the Viber bot REST API.

This module translates domain-level requests into Viber API calls. It injects
the bot's auth token and normalizes the platform's embedded ``status`` field
(sent inside an HTTP 200 response) into typed results or typed exceptions.
No retries happen here; retry policy belongs to the caller.
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar

from httpx import AsyncClient, HTTPError, TimeoutException
from pydantic import BaseModel, SecretStr
from pydantic import ValidationError as PydanticValidationError

from viber_relay.exceptions import (
    AuthError,
    RemoteRejectedError,
    RemoteUnavailableError,
)
from viber_relay.models import AccountInfo, SendMessageResponse, SetWebhookResponse

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

DEFAULT_API_URL = "https://chatapi.viber.com/pa"
AUTH_HEADER = "X-Viber-Auth-Token"

STATUS_OK = 0
STATUS_INVALID_AUTH_TOKEN = 2

# Embedded status codes documented by the Viber REST API
VIBER_STATUS_NAMES: dict[int, str] = {
    0: "ok",
    1: "invalidUrl",
    2: "invalidAuthToken",
    3: "badData",
    4: "missingData",
    5: "receiverNotRegistered",
    6: "receiverNotSubscribed",
    7: "publicAccountBlocked",
    8: "publicAccountNotFound",
    9: "publicAccountSuspended",
    10: "webhookNotSet",
    11: "receiverNoSuitableDevice",
    12: "tooManyRequests",
    13: "apiVersionNotSupported",
    14: "incompatibleWithVersion",
}


def _reveal(token: SecretStr | str) -> str:
    if isinstance(token, SecretStr):
        return token.get_secret_value()
    return token


class ViberAPIClient:
    """Async HTTP client for Viber bot API interactions.

    Every call distinguishes three outcomes:

    - transport failure (timeout, DNS, refused connection, non-2xx HTTP,
      unparseable body) raises RemoteUnavailableError
    - a response whose embedded status is not 0 raises RemoteRejectedError
      (AuthError for an invalid token) with the raw body attached
    - success returns the typed payload

    Example:
        async with ViberAPIClient(timeout=5.0) as client:
            info = await client.get_account_info(token)
            result = await client.send_message(token, message.to_payload())
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        timeout: float = 5.0,
    ):
        """Initialize the client.

        Args:
            base_url: Base URL of the Viber bot API
            timeout: Per-request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client: AsyncClient | None = None

    async def __aenter__(self) -> ViberAPIClient:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.close()

    async def connect(self) -> None:
        """Create the pooled httpx.AsyncClient. Safe to call repeatedly."""
        if self._client is None:
            self._client = AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
            )
            logger.debug("Viber API client connected to %s", self.base_url)

    async def close(self) -> None:
        """Close the HTTP client and release network handles."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.debug("Viber API client closed")

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    # =========================================================================
    # Public API Methods
    # =========================================================================

    async def get_account_info(self, token: SecretStr | str) -> AccountInfo:
        """Fetch the account details of the bot owning ``token``.

        This is the liveness probe: it is read-only on the remote side.

        Raises:
            AuthError: If the token is rejected.
            RemoteRejectedError: If the remote reports another failure.
            RemoteUnavailableError: On transport failure.
        """
        return await self._post("/get_account_info", token, {}, AccountInfo)

    async def send_message(
        self, token: SecretStr | str, payload: dict[str, Any]
    ) -> SendMessageResponse:
        """Send one message.

        Args:
            token: Auth token of the sending bot
            payload: Request body built from a validated outbound message

        Raises:
            AuthError: If the token is rejected.
            RemoteRejectedError: If the remote refuses the message.
            RemoteUnavailableError: On transport failure.
        """
        return await self._post("/send_message", token, payload, SendMessageResponse)

    async def set_webhook(
        self,
        token: SecretStr | str,
        url: str,
        event_types: list[str] | None = None,
        *,
        send_name: bool = False,
        send_photo: bool = False,
    ) -> SetWebhookResponse:
        """Register the callback URL for the bot owning ``token``.

        An empty ``url`` removes the webhook.
        """
        body: dict[str, Any] = {
            "url": url,
            "send_name": send_name,
            "send_photo": send_photo,
        }
        if event_types is not None:
            body["event_types"] = event_types
        return await self._post("/set_webhook", token, body, SetWebhookResponse)

    # =========================================================================
    # Internal HTTP Methods
    # =========================================================================

    async def _post(
        self,
        endpoint: str,
        token: SecretStr | str,
        body: dict[str, Any],
        response_model: type[T],
    ) -> T:
        if self._client is None:
            raise RemoteUnavailableError("Client not connected. Call connect() first.")

        try:
            response = await self._client.request(
                "POST",
                endpoint,
                json=body,
                headers={AUTH_HEADER: _reveal(token)},
            )
        except TimeoutException as e:
            logger.warning("Viber request %s timed out: %s", endpoint, e)
            raise RemoteUnavailableError(f"Request timeout: {e}") from e
        except HTTPError as e:
            logger.warning("Viber request %s failed: %s", endpoint, e)
            raise RemoteUnavailableError(f"HTTP error: {e}") from e

        if response.status_code >= 400:
            logger.warning("Viber HTTP error %d on %s", response.status_code, endpoint)
            raise RemoteUnavailableError(
                f"Viber API returned HTTP {response.status_code}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise RemoteUnavailableError(f"Invalid JSON from Viber API: {e}") from e
        if not isinstance(data, dict):
            raise RemoteUnavailableError("Unexpected response shape from Viber API")

        status = data.get("status")
        if status != STATUS_OK:
            if not isinstance(status, int):
                status = None
            status_message = data.get("status_message")
            name = VIBER_STATUS_NAMES.get(status, "unknown") if status is not None else "missing"
            logger.warning(
                "Viber rejected %s: status=%s (%s) %s",
                endpoint,
                status,
                name,
                status_message,
            )
            error_cls = (
                AuthError if status == STATUS_INVALID_AUTH_TOKEN else RemoteRejectedError
            )
            raise error_cls(
                f"Viber rejected request: {status_message or name}",
                status=status,
                status_message=status_message,
                detail=data,
            )

        try:
            return response_model.model_validate(data)
        except PydanticValidationError as e:
            raise RemoteUnavailableError(f"Response validation error: {e}") from e
