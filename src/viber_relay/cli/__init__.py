"""CLI module for the Viber relay.

This module provides command-line tools for running the relay, inspecting
configured bots, and validating configuration.

Usage:
    viber-relay --help
    viber-relay serve --config relay.yaml
    viber-relay bots list --credentials bots.yaml
"""

from viber_relay.cli.main import app

__all__ = ["app"]
