"""Configuration for the relay service.

This module defines the RelayConfig dataclass holding every runtime option,
loadable from environment variables or from a YAML file.
"""

import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from viber_relay.client import DEFAULT_API_URL
from viber_relay.store import CredentialStore, EnvCredentialStore, FileCredentialStore

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class RelayConfig:
    """Runtime configuration for the relay service.

    Attributes:
        host: Interface the HTTP server binds
        port: Port the HTTP server listens on
        viber_api_url: Base URL of the Viber bot API
        request_timeout: Timeout in seconds for every Viber API call
        probe_retries: Extra liveness probe attempts after a transport failure
        subscriber_queue_size: Events buffered per real-time subscriber
        shutdown_timeout: Seconds in-flight sends get at shutdown
        credentials_path: YAML credentials file (None = read the environment)
        log_level: Root logging level

    Example:
        config = RelayConfig.from_environment()
        config = RelayConfig.from_yaml("relay.yaml")
    """

    host: str = "0.0.0.0"
    port: int = 8080
    viber_api_url: str = DEFAULT_API_URL
    request_timeout: float = 5.0
    probe_retries: int = 0
    subscriber_queue_size: int = 100
    shutdown_timeout: float = 10.0
    credentials_path: str | None = None
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not self.host:
            raise ValueError("host must not be empty")
        if not 0 < self.port < 65536:
            raise ValueError("port must be between 1 and 65535")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")
        if self.probe_retries < 0:
            raise ValueError("probe_retries must be non-negative")
        if self.subscriber_queue_size < 1:
            raise ValueError("subscriber_queue_size must be at least 1")
        if self.shutdown_timeout < 0:
            raise ValueError("shutdown_timeout must be non-negative")
        self.log_level = self.log_level.upper()
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}")

    @classmethod
    def from_environment(cls, environ: Mapping[str, str] | None = None) -> "RelayConfig":
        """Create configuration from environment variables.

        Raises:
            ValueError: If a variable does not parse or is out of range.
        """
        env = environ if environ is not None else os.environ
        return cls(
            host=env.get("RELAY_HOST", "0.0.0.0"),
            port=int(env.get("RELAY_PORT", "8080")),
            viber_api_url=env.get("VIBER_API_URL", DEFAULT_API_URL),
            request_timeout=float(env.get("VIBER_REQUEST_TIMEOUT", "5.0")),
            probe_retries=int(env.get("VIBER_PROBE_RETRIES", "0")),
            subscriber_queue_size=int(env.get("SUBSCRIBER_QUEUE_SIZE", "100")),
            shutdown_timeout=float(env.get("SHUTDOWN_TIMEOUT", "10.0")),
            credentials_path=env.get("VIBER_CREDENTIALS_PATH") or None,
            log_level=env.get("LOG_LEVEL", "INFO"),
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RelayConfig":
        """Create configuration from a mapping.

        Raises:
            TypeError: If the mapping has unknown keys.
            ValueError: If a value is out of range.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise TypeError(f"Unknown configuration keys: {', '.join(unknown)}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "RelayConfig":
        """Load configuration from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError("Configuration must be a YAML mapping")
        return cls.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def create_credential_store(self) -> CredentialStore:
        """Pick the credential store this configuration describes."""
        if self.credentials_path:
            return FileCredentialStore(self.credentials_path)
        return EnvCredentialStore()
