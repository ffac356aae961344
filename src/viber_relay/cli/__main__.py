"""Entry point for running the CLI as a module.

Usage:
    python -m viber_relay.cli --help
"""

from viber_relay.cli.main import app

if __name__ == "__main__":
    app()
