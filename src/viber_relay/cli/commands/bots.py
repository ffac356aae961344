"""Bot subcommands for inspecting configured bots."""

from __future__ import annotations

import asyncio
from typing import Annotated

import typer

from viber_relay.cli.utils.output import (
    console,
    create_account_panel,
    create_bot_table,
    print_error,
    print_success,
)
from viber_relay.client import DEFAULT_API_URL, ViberAPIClient
from viber_relay.exceptions import (
    RemoteRejectedError,
    RemoteUnavailableError,
    StoreUnavailableError,
)
from viber_relay.models import AccountInfo, BotCredentials, SetWebhookResponse
from viber_relay.store import CredentialStore, EnvCredentialStore, FileCredentialStore

app = typer.Typer(no_args_is_help=True)

CredentialsOption = Annotated[
    str | None,
    typer.Option(
        "--credentials",
        "-c",
        help="YAML credentials file (defaults to VIBER_AUTH_TOKEN from the environment)",
        envvar="VIBER_CREDENTIALS_PATH",
    ),
]
ApiUrlOption = Annotated[
    str,
    typer.Option("--api-url", help="Viber bot API base URL", envvar="VIBER_API_URL"),
]
TimeoutOption = Annotated[
    float,
    typer.Option("--timeout", "-t", help="Request timeout in seconds"),
]


def get_store(credentials_path: str | None) -> CredentialStore:
    """Pick the file store if a path is given, else the environment store."""
    if credentials_path:
        return FileCredentialStore(credentials_path)
    return EnvCredentialStore()


def load_bots(credentials_path: str | None) -> list[BotCredentials]:
    """Load all bots, exiting with an error if the store is unavailable."""
    try:
        return asyncio.run(get_store(credentials_path).list_bots())
    except StoreUnavailableError as e:
        print_error(str(e))
        raise typer.Exit(1)


def find_bot(credentials_path: str | None, bot_id: str) -> BotCredentials:
    for bot in load_bots(credentials_path):
        if bot.bot_id == bot_id:
            return bot
    print_error(f"Bot {bot_id} not found")
    raise typer.Exit(1)


@app.command("list")
def list_bots(credentials_path: CredentialsOption = None) -> None:
    """List the bots in the credential store (tokens are masked).

    Examples:
        viber-relay bots list --credentials bots.yaml
    """
    bots = load_bots(credentials_path)
    if not bots:
        console.print("No bots configured")
        return
    console.print(create_bot_table(bots))


async def _probe(bot: BotCredentials, api_url: str, timeout: float) -> AccountInfo:
    async with ViberAPIClient(base_url=api_url, timeout=timeout) as client:
        return await client.get_account_info(bot.token)


@app.command("probe")
def probe(
    bot_id: Annotated[str, typer.Argument(help="Bot to probe")],
    credentials_path: CredentialsOption = None,
    api_url: ApiUrlOption = DEFAULT_API_URL,
    timeout: TimeoutOption = 5.0,
) -> None:
    """Fetch account info for one bot to check its token.

    Examples:
        viber-relay bots probe support --credentials bots.yaml
    """
    bot = find_bot(credentials_path, bot_id)
    try:
        account = asyncio.run(_probe(bot, api_url, timeout))
    except RemoteRejectedError as e:
        print_error(f"Viber rejected the probe (status {e.status}): {e}")
        raise typer.Exit(1)
    except RemoteUnavailableError as e:
        print_error(f"Viber API unreachable: {e}")
        raise typer.Exit(2)

    console.print(create_account_panel(bot_id, account))


async def _set_webhook(
    bot: BotCredentials,
    url: str,
    event_types: list[str] | None,
    send_name: bool,
    api_url: str,
    timeout: float,
) -> SetWebhookResponse:
    async with ViberAPIClient(base_url=api_url, timeout=timeout) as client:
        return await client.set_webhook(
            bot.token, url, event_types, send_name=send_name
        )


@app.command("set-webhook")
def set_webhook(
    bot_id: Annotated[str, typer.Argument(help="Bot to configure")],
    url: Annotated[str, typer.Argument(help="Public callback URL (empty to remove)")],
    event_type: Annotated[
        list[str] | None,
        typer.Option("--event-type", "-e", help="Event type to subscribe (repeatable)"),
    ] = None,
    send_name: Annotated[
        bool,
        typer.Option("--send-name", help="Include user names in callbacks"),
    ] = False,
    credentials_path: CredentialsOption = None,
    api_url: ApiUrlOption = DEFAULT_API_URL,
    timeout: TimeoutOption = 5.0,
) -> None:
    """Point a bot's Viber webhook at this relay.

    Examples:
        viber-relay bots set-webhook support https://relay.example.com/api/webhook/support
        viber-relay bots set-webhook support https://... -e delivered -e seen
    """
    bot = find_bot(credentials_path, bot_id)
    try:
        response = asyncio.run(
            _set_webhook(bot, url, event_type or None, send_name, api_url, timeout)
        )
    except RemoteRejectedError as e:
        print_error(f"Viber rejected the webhook (status {e.status}): {e}")
        raise typer.Exit(1)
    except RemoteUnavailableError as e:
        print_error(f"Viber API unreachable: {e}")
        raise typer.Exit(2)

    events = ", ".join(response.event_types) or "default"
    print_success(f"Webhook for {bot_id} set to {url or '(removed)'} (events: {events})")
