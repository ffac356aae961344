"""Entry point for running the relay service.

Usage:
    python -m viber_relay.service

Environment variables:
    RELAY_HOST: Host to bind (default: 0.0.0.0)
    RELAY_PORT: Port to listen on (default: 8080)
    VIBER_API_URL: Viber bot API base URL (default: https://chatapi.viber.com/pa)
    VIBER_REQUEST_TIMEOUT: Timeout per Viber call in seconds (default: 5.0)
    VIBER_PROBE_RETRIES: Extra probe attempts on transport failure (default: 0)
    SUBSCRIBER_QUEUE_SIZE: Events buffered per socket client (default: 100)
    SHUTDOWN_TIMEOUT: Seconds in-flight sends get at shutdown (default: 10.0)
    VIBER_CREDENTIALS_PATH: YAML file of bots (optional)
    VIBER_AUTH_TOKEN / VIBER_BOT_ID / VIBER_BOT_NAME: single bot when no file is set
    LOG_LEVEL: Logging level (default: INFO)
"""

import logging

from viber_relay.config import RelayConfig
from viber_relay.service.server import configure_logging, serve


def main() -> None:
    """Load configuration from the environment and run the relay."""
    configure_logging()
    logger = logging.getLogger(__name__)

    try:
        config = RelayConfig.from_environment()
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        raise

    logging.getLogger().setLevel(config.log_level)
    serve(config)


if __name__ == "__main__":
    main()
