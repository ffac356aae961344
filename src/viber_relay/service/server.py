"""Wiring of the relay service components."""

import logging

import uvicorn

from viber_relay.client import ViberAPIClient
from viber_relay.config import RelayConfig
from viber_relay.service.bot_manager import BotManager
from viber_relay.service.broadcaster import EventBroadcaster
from viber_relay.service.relay_service import app, set_bot_manager, set_broadcaster

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)


def build_bot_manager(config: RelayConfig) -> BotManager:
    """Construct the per-process broadcaster and bot manager and install them."""
    broadcaster = EventBroadcaster(queue_size=config.subscriber_queue_size)
    manager = BotManager(
        store=config.create_credential_store(),
        client=ViberAPIClient(
            base_url=config.viber_api_url,
            timeout=config.request_timeout,
        ),
        broadcaster=broadcaster,
        probe_retries=config.probe_retries,
        shutdown_timeout=config.shutdown_timeout,
    )
    set_broadcaster(broadcaster)
    set_bot_manager(manager)
    return manager


def serve(config: RelayConfig) -> None:
    """Build the services and run uvicorn until interrupted.

    Bots are loaded and probed during application startup; if the credential
    store is unavailable uvicorn aborts with a non-zero exit.
    """
    logger = logging.getLogger(__name__)
    build_bot_manager(config)

    if config.credentials_path:
        logger.info("Credentials: %s", config.credentials_path)
    else:
        logger.info("Credentials: environment (VIBER_AUTH_TOKEN)")
    logger.info("Starting Viber relay on %s:%d", config.host, config.port)

    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )
