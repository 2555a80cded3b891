# ABOUTME: The `bookswap locks` command group for inspecting and sweeping book locks.
# ABOUTME: Provides sweep (delete expired locks now) and mine (locks on a user's books).

from pathlib import Path

import click

from bookswap.cli.commands.trade_cmd import print_locks
from bookswap.cli.options import as_user_option, console, db_option, marketplace
from bookswap.core.locks import BookLockManager


@click.group("locks")
def locks() -> None:
    """Inspect and sweep book locks."""


@locks.command("sweep")
@db_option
def locks_sweep(db_path: Path | None) -> None:
    """Delete every expired lock."""
    with marketplace(db_path) as conn:
        removed = BookLockManager(conn).cleanup_expired_locks()
    console.print(f"Removed {removed} expired lock(s).")


@locks.command("mine")
@as_user_option
@db_option
def locks_mine(acting_user: int, db_path: Path | None) -> None:
    """Show active locks on a user's books, soonest expiry first."""
    with marketplace(db_path) as conn:
        held = BookLockManager(conn).locks_for_owner(acting_user)
    print_locks(held)
