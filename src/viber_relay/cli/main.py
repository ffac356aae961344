"""Main CLI application and entry point.

This module defines the main Typer application and aggregates all
command groups (bots, config) plus the ``serve`` command.
"""

from dataclasses import replace
from pathlib import Path
from typing import Annotated

import typer
import yaml

from viber_relay.cli.commands import bots as bots_commands
from viber_relay.cli.commands import config as config_commands
from viber_relay.cli.utils.output import print_error
from viber_relay.config import RelayConfig

app = typer.Typer(
    name="viber-relay",
    help="Viber bot relay service",
    no_args_is_help=True,
    pretty_exceptions_enable=True,
)

# Add command groups
app.add_typer(bots_commands.app, name="bots", help="Inspect and configure bots")
app.add_typer(config_commands.app, name="config", help="Configuration utilities")


@app.callback()
def main_callback() -> None:
    """Viber relay CLI.

    Use the subcommands to run the relay, inspect bots, and validate
    configuration files.
    """
    pass


@app.command("serve")
def serve(
    config_path: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="YAML configuration file (defaults to environment variables)",
            exists=True,
            dir_okay=False,
        ),
    ] = None,
    host: Annotated[str | None, typer.Option("--host", help="Override bind host")] = None,
    port: Annotated[int | None, typer.Option("--port", "-p", help="Override port")] = None,
) -> None:
    """Run the relay HTTP/WebSocket server.

    Examples:
        viber-relay serve
        viber-relay serve --config relay.yaml --port 9000
    """
    from viber_relay.service.server import configure_logging
    from viber_relay.service.server import serve as run_server

    try:
        if config_path is not None:
            config = RelayConfig.from_yaml(config_path)
        else:
            config = RelayConfig.from_environment()
        overrides = {
            key: value
            for key, value in (("host", host), ("port", port))
            if value is not None
        }
        config = replace(config, **overrides)
    except (TypeError, ValueError, yaml.YAMLError) as e:
        print_error(f"Invalid configuration: {e}")
        raise typer.Exit(1)

    configure_logging(config.log_level)
    run_server(config)


if __name__ == "__main__":
    app()
