"""Config subcommands for configuration management."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
import yaml
from rich.table import Table

from viber_relay.cli.utils.output import console, print_error, print_success, print_warning
from viber_relay.config import RelayConfig
from viber_relay.exceptions import StoreUnavailableError
from viber_relay.store import FileCredentialStore

app = typer.Typer(no_args_is_help=True)


@app.command("validate")
def validate(
    config_path: Annotated[
        Path,
        typer.Argument(
            help="Path to relay configuration file to validate",
            exists=True,
            dir_okay=False,
        ),
    ],
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show detailed configuration"),
    ] = False,
) -> None:
    """Validate a relay configuration file.

    Checks that the YAML file is valid and all values are within range. If
    the file names a credentials file, that file is checked too.

    Examples:
        viber-relay config validate relay.yaml
        viber-relay config validate relay.yaml --verbose
    """
    try:
        with open(config_path) as f:
            raw_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        print_error(f"Invalid YAML syntax: {e}")
        raise typer.Exit(1)

    if raw_data is None:
        print_error("Configuration file is empty")
        raise typer.Exit(1)

    if not isinstance(raw_data, dict):
        print_error("Configuration must be a YAML mapping (dictionary)")
        raise typer.Exit(1)

    try:
        config = RelayConfig.from_dict(raw_data)
    except TypeError as e:
        print_error(f"Invalid configuration: {e}")
        raise typer.Exit(1)
    except ValueError as e:
        print_error(f"Invalid configuration value: {e}")
        raise typer.Exit(1)

    if config.request_timeout > 10:
        print_warning(
            f"request_timeout ({config.request_timeout}s) is long - "
            "a hung probe holds a worker for the whole wait"
        )

    if config.credentials_path:
        try:
            bots = FileCredentialStore(config.credentials_path).load()
        except StoreUnavailableError as e:
            print_error(str(e))
            raise typer.Exit(1)
        console.print(f"Credentials file lists {len(bots)} bot(s)")
    else:
        print_warning("No credentials_path - bots will be read from VIBER_AUTH_TOKEN")

    if verbose:
        table = Table(title="Relay Configuration")
        table.add_column("Key", style="cyan")
        table.add_column("Value")
        for key, value in config.to_dict().items():
            table.add_row(key, str(value))
        console.print(table)

    print_success(f"Configuration is valid: {config_path}")


@app.command("check-credentials")
def check_credentials(
    credentials_path: Annotated[
        Path,
        typer.Argument(
            help="Path to the YAML credentials file",
            exists=True,
            dir_okay=False,
        ),
    ],
) -> None:
    """Validate a credentials file without contacting Viber.

    Examples:
        viber-relay config check-credentials bots.yaml
    """
    try:
        bots = FileCredentialStore(credentials_path).load()
    except StoreUnavailableError as e:
        print_error(str(e))
        raise typer.Exit(1)

    if not bots:
        print_warning("Credentials file lists no bots")
        return

    unnamed = [bot.bot_id for bot in bots if not bot.name]
    if unnamed:
        print_warning(
            f"No sender name for {', '.join(unnamed)} - "
            "the account name from Viber will be used"
        )
    print_success(f"{len(bots)} bot(s) in {credentials_path}")
