# ABOUTME: The `bookswap book` command group for managing a user's inventory and wishlist.
# ABOUTME: Provides add, ls, rm, and availability subcommands; changes refresh matches inline.

from pathlib import Path

import click
from rich.table import Table

from bookswap.cli.options import (
    as_user_option,
    console,
    db_option,
    marketplace,
    refresher_for,
)
from bookswap.core.scope import parse_scope
from bookswap.db.ledger import BookLedger
from bookswap.models import Book


def _books_table(books: list[Book]) -> Table:
    table = Table()
    table.add_column("ID", style="dim", width=4)
    table.add_column("Title", style="bold")
    table.add_column("Author")
    table.add_column("List")
    table.add_column("Scope", style="cyan")
    table.add_column("Available")
    for b in books:
        table.add_row(
            str(b.id),
            b.title,
            b.author,
            b.list_type.value,
            str(b.scope),
            "yes" if b.is_available else "[red]no[/red]",
        )
    return table


@click.group("book")
def book() -> None:
    """Manage inventory and wishlist books."""


@book.command("add")
@as_user_option
@click.argument("title")
@click.argument("author")
@click.option("--wishlist", is_flag=True, help="Add to the wishlist instead of inventory.")
@click.option("--isbn", default=None, help="ISBN of the edition.")
@click.option("--condition", default=None, help="Condition (default: used, or new for wishlist).")
@click.option("--description", default="", help="Free-text description.")
@click.option("--room", "room", default=None, help="Room id; omit for the global market.")
@db_option
def book_add(
    acting_user: int,
    title: str,
    author: str,
    wishlist: bool,
    isbn: str | None,
    condition: str | None,
    description: str,
    room: str | None,
    db_path: Path | None,
) -> None:
    """Add a book to a user's inventory or wishlist."""
    with marketplace(db_path) as conn:
        ledger = BookLedger(conn, on_change=refresher_for(db_path))
        added = ledger.add_book(
            acting_user,
            title,
            author,
            "wishlist" if wishlist else "inventory",
            isbn=isbn,
            condition=condition,
            description=description,
            scope=parse_scope(room),
        )
    console.print(
        f"Added [bold]{added.title}[/bold] to {added.list_type.value} (id {added.id})."
    )


@book.command("ls")
@as_user_option
@click.option(
    "--list",
    "list_type",
    type=click.Choice(["inventory", "wishlist"]),
    default=None,
    help="Only one list.",
)
@click.option("--room", default=None, help="Only books in this room.")
@click.option("--global", "global_only", is_flag=True, help="Only books outside every room.")
@db_option
def book_ls(
    acting_user: int,
    list_type: str | None,
    room: str | None,
    global_only: bool,
    db_path: Path | None,
) -> None:
    """List a user's books."""
    with marketplace(db_path) as conn:
        books = BookLedger(conn).list_books(
            acting_user,
            list_type,
            scope="global" if global_only else None,
            room_id=room,
        )

    if not books:
        console.print("[yellow]No books.[/yellow]")
        return
    console.print(_books_table(books))
    console.print(f"\n[dim]{len(books)} book(s)[/dim]")


@book.command("rm")
@as_user_option
@click.argument("book_id", type=int)
@db_option
def book_rm(acting_user: int, book_id: int, db_path: Path | None) -> None:
    """Delete one of a user's books."""
    with marketplace(db_path) as conn:
        BookLedger(conn, on_change=refresher_for(db_path)).remove_book(acting_user, book_id)
    console.print(f"Removed book {book_id}.")


@book.command("availability")
@as_user_option
@click.argument("book_id", type=int)
@click.argument("state", type=click.Choice(["on", "off"]))
@db_option
def book_availability(acting_user: int, book_id: int, state: str, db_path: Path | None) -> None:
    """Mark a book available (on) or unavailable (off) for trading."""
    with marketplace(db_path) as conn:
        updated = BookLedger(conn, on_change=refresher_for(db_path)).set_availability(
            acting_user, book_id, state == "on"
        )
    label = "available" if updated.is_available else "unavailable"
    console.print(f"[bold]{updated.title}[/bold] is now {label}.")
