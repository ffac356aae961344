"""Outbound client for the Viber bot REST API."""

from viber_relay.client.viber_client import (
    AUTH_HEADER,
    DEFAULT_API_URL,
    VIBER_STATUS_NAMES,
    ViberAPIClient,
)

__all__ = [
    "AUTH_HEADER",
    "DEFAULT_API_URL",
    "VIBER_STATUS_NAMES",
    "ViberAPIClient",
]
