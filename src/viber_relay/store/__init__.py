"""Credential stores consumed by the bot manager."""

from viber_relay.store.credential_store import (
    CredentialStore,
    EnvCredentialStore,
    FileCredentialStore,
    InMemoryCredentialStore,
)

__all__ = [
    "CredentialStore",
    "EnvCredentialStore",
    "FileCredentialStore",
    "InMemoryCredentialStore",
]
