# ABOUTME: Shared Click options and helpers for bookswap CLI commands.
# ABOUTME: Provides --db and --as, the per-command database session, and error reporting.

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from functools import partial
from pathlib import Path

import click
from rich.console import Console

from bookswap.config import AppConfig, load_config
from bookswap.core.refresh import MatchRefresher
from bookswap.db.connection import DEFAULT_DB_PATH, open_marketplace
from bookswap.errors import MarketplaceError

console = Console()

db_option = click.option(
    "--db",
    "db_path",
    type=click.Path(path_type=Path),
    default=None,
    help=f"Path to marketplace database (default: {DEFAULT_DB_PATH})",
)

as_user_option = click.option(
    "--as",
    "acting_user",
    type=int,
    required=True,
    help="ID of the user performing the action.",
)


def current_config() -> AppConfig:
    """The config loaded by the root group, or a fresh load outside it."""
    ctx = click.get_current_context(silent=True)
    config = ctx.find_object(AppConfig) if ctx is not None else None
    return config if config is not None else load_config()


def resolve_db_path(db_path: Path | None) -> Path:
    return db_path or current_config().storage.db_path


@contextmanager
def marketplace(db_path: Path | None) -> Iterator[sqlite3.Connection]:
    """Open the marketplace database for one command and always close it.

    Domain errors raised inside are printed in red and end the command with
    exit status 1.
    """
    conn = open_marketplace(resolve_db_path(db_path))
    try:
        yield conn
    except MarketplaceError as exc:
        console.print(f"[red]{exc.message}[/red]")
        raise SystemExit(1) from exc
    finally:
        conn.close()


def refresher_for(db_path: Path | None) -> MatchRefresher:
    """Inline match refresh on its own connection, used as the ledger's change hook."""
    return MatchRefresher(partial(open_marketplace, resolve_db_path(db_path)))
