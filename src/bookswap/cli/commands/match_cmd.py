# ABOUTME: The `bookswap match` command group for computing and browsing trade matches.
# ABOUTME: Provides refresh, ls, and hide subcommands.

from pathlib import Path

import click
from rich.table import Table

from bookswap.cli.options import as_user_option, console, db_option, marketplace
from bookswap.core.matching import MatchEngine
from bookswap.models import Match, MatchType

_TYPE_STYLE = {
    MatchType.PERFECT: "[green]perfect[/green]",
    MatchType.PARTIAL_TYPE1: "[cyan]they have[/cyan]",
    MatchType.PARTIAL_TYPE2: "[magenta]they want[/magenta]",
}


def _print_matches(matches: list[Match]) -> None:
    if not matches:
        console.print("[yellow]No matches.[/yellow]")
        return

    table = Table()
    table.add_column("ID", style="dim", width=4)
    table.add_column("With", justify="right")
    table.add_column("Type")
    table.add_column("Books")
    for m in matches:
        titles = []
        for mb in m.matching_books:
            side = "get" if mb.counterparty_book_id is not None else "give"
            titles.append(f"{side}: {mb.title} (#{mb.counterparty_book_id or mb.source_book_id})")
        table.add_row(str(m.id), str(m.counterparty_user_id), _TYPE_STYLE[m.match_type],
                      "\n".join(titles))
    console.print(table)
    console.print(f"\n[dim]{len(matches)} match(es)[/dim]")


@click.group("match")
def match() -> None:
    """Compute and browse matches."""


@match.command("refresh")
@as_user_option
@db_option
def match_refresh(acting_user: int, db_path: Path | None) -> None:
    """Recompute a user's matches now."""
    with marketplace(db_path) as conn:
        matches = MatchEngine(conn).recompute_matches(acting_user)
    _print_matches(matches)


@match.command("ls")
@as_user_option
@click.option("--global", "global_only", is_flag=True, help="Only matches outside rooms.")
@click.option("--room", default=None, help="Only matches involving this room.")
@click.option("--hidden", "include_hidden", is_flag=True, help="Include hidden matches.")
@db_option
def match_ls(
    acting_user: int,
    global_only: bool,
    room: str | None,
    include_hidden: bool,
    db_path: Path | None,
) -> None:
    """List a user's stored matches."""
    with marketplace(db_path) as conn:
        matches = MatchEngine(conn).list_matches(
            acting_user,
            scope="global" if global_only else None,
            room_id=room,
            include_hidden=include_hidden,
        )
    _print_matches(matches)


@match.command("hide")
@as_user_option
@click.argument("match_id", type=int, required=False)
@click.option("--all", "hide_everything", is_flag=True, help="Hide every current match.")
@click.option("--clear", is_flag=True, help="Unhide everything instead.")
@db_option
def match_hide(
    acting_user: int,
    match_id: int | None,
    hide_everything: bool,
    clear: bool,
    db_path: Path | None,
) -> None:
    """Hide one match, all matches, or clear hidden ones with --clear."""
    if not (match_id or hide_everything or clear):
        console.print("[red]Give a MATCH_ID, --all, or --clear.[/red]")
        raise SystemExit(1)

    with marketplace(db_path) as conn:
        engine = MatchEngine(conn)
        if clear:
            count = engine.clear_hidden(acting_user)
            console.print(f"Unhid {count} match(es).")
        elif hide_everything:
            count = engine.hide_all(acting_user)
            console.print(f"Hid {count} match(es).")
        else:
            engine.hide_match(acting_user, match_id)  # type: ignore[arg-type]
            console.print(f"Hid match {match_id}.")
