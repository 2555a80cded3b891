# ABOUTME: The `bookswap user` command group for registering users and issuing tokens.
# ABOUTME: Provides add, ls, and token subcommands.

from datetime import timedelta
from pathlib import Path

import click
from rich.table import Table

from bookswap.auth import issue_token
from bookswap.cli.options import console, current_config, db_option, marketplace
from bookswap.db.ledger import BookLedger


@click.group("user")
def user() -> None:
    """Manage marketplace users."""


@user.command("add")
@click.argument("name")
@click.argument("email")
@click.argument("location")
@db_option
def user_add(name: str, email: str, location: str, db_path: Path | None) -> None:
    """Register a user in a location."""
    with marketplace(db_path) as conn:
        created = BookLedger(conn).add_user(name, email, location)
    console.print(f"Added user [bold]{created.name}[/bold] with id {created.id}.")


@user.command("ls")
@db_option
def user_ls(db_path: Path | None) -> None:
    """List all users."""
    with marketplace(db_path) as conn:
        users = BookLedger(conn).list_users()

    if not users:
        console.print("[yellow]No users registered.[/yellow]")
        return

    table = Table()
    table.add_column("ID", style="dim", width=4)
    table.add_column("Name", style="bold")
    table.add_column("Email")
    table.add_column("Location", style="cyan")
    for u in users:
        table.add_row(str(u.id), u.name, u.email, u.location)
    console.print(table)


@user.command("token")
@click.argument("user_id", type=int)
@click.option("--days", type=int, default=None, help="Token lifetime in days.")
@db_option
def user_token(user_id: int, days: int | None, db_path: Path | None) -> None:
    """Print a bearer token for the HTTP API."""
    with marketplace(db_path) as conn:
        BookLedger(conn).require_user(user_id)
    ttl = timedelta(days=days) if days else None
    click.echo(issue_token(user_id, current_config().auth, ttl))
