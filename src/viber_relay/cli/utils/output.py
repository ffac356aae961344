"""Rich console output formatting utilities."""

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from viber_relay.models import AccountInfo, BotCredentials

console = Console()


def print_error(message: str) -> None:
    """Print an error message in red."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def print_warning(message: str) -> None:
    """Print a warning message in yellow."""
    console.print(f"[bold yellow]Warning:[/bold yellow] {message}")


def print_success(message: str) -> None:
    """Print a success message in green."""
    console.print(f"[bold green]Success:[/bold green] {message}")


def mask_token(token: str) -> str:
    """Show only the last four characters of a token."""
    if len(token) <= 4:
        return "****"
    return f"****{token[-4:]}"


def create_bot_table(bots: list[BotCredentials]) -> Table:
    """Create a rich table listing bots from a credential store.

    Args:
        bots: Credentials as loaded from the store

    Returns:
        Rich Table instance
    """
    table = Table(title="Configured Bots")

    table.add_column("Bot ID", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Token", style="magenta")
    table.add_column("Avatar", overflow="fold")

    for bot in bots:
        table.add_row(
            bot.bot_id,
            bot.name or "-",
            mask_token(bot.token.get_secret_value()),
            bot.avatar or "-",
        )

    return table


def create_account_panel(bot_id: str, account: AccountInfo) -> Panel:
    """Create a panel with the account info returned by a probe."""
    subscribers = account.subscribers_count
    lines = [
        f"[bold]Name:[/bold] {account.name or '-'}",
        f"[bold]URI:[/bold] {account.uri or '-'}",
        f"[bold]Category:[/bold] {account.category or '-'}",
        f"[bold]Subscribers:[/bold] {subscribers if subscribers is not None else '-'}",
        f"[bold]Webhook:[/bold] {account.webhook or '-'}",
        f"[bold]Events:[/bold] {', '.join(account.event_types) or '-'}",
    ]
    return Panel("\n".join(lines), title=f"Bot {bot_id}", border_style="green")
