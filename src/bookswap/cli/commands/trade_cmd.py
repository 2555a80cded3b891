# ABOUTME: The `bookswap trade` command group for negotiating trades from the terminal.
# ABOUTME: Provides propose, ls, accept, reject, cancel, counter, extend, and locks subcommands.

import sqlite3
from pathlib import Path

import click
from rich.table import Table

from bookswap.cli.options import (
    as_user_option,
    console,
    current_config,
    db_option,
    marketplace,
    refresher_for,
)
from bookswap.core.locks import BookLockManager
from bookswap.core.trades import TradeService
from bookswap.core.transfer import TransferEngine
from bookswap.models import BookLock, Trade, TradeStatus

_STATUS_STYLE = {
    TradeStatus.PENDING: "yellow",
    TradeStatus.ACCEPTED: "cyan",
    TradeStatus.COMPLETED: "green",
    TradeStatus.REJECTED: "red",
    TradeStatus.CANCELLED: "dim",
}

offer_option = click.option(
    "--offer", "offered", type=int, multiple=True, help="Book id you give (repeatable)."
)
request_option = click.option(
    "--request", "requested", type=int, multiple=True, help="Book id you want (repeatable)."
)


def _service(conn: sqlite3.Connection, db_path: Path | None) -> TradeService:
    config = current_config()
    locks = BookLockManager(
        conn,
        max_extensions=config.locks.max_extensions,
        default_duration_hours=config.locks.duration_hours,
    )
    return TradeService(
        conn,
        locks=locks,
        transfer=TransferEngine(conn, on_change=refresher_for(db_path)),
    )


def _ids(ids: list[int]) -> str:
    return ", ".join(str(i) for i in ids) or "-"


def _print_trade(trade: Trade) -> None:
    style = _STATUS_STYLE[trade.status]
    console.print(
        f"Trade {trade.id}: [{style}]{trade.status.value}[/{style}] "
        f"(proposer {trade.proposer_id}, offers {_ids(trade.books_offered)}, "
        f"requests {_ids(trade.books_requested)})"
    )


def print_locks(locks: list[BookLock]) -> None:
    if not locks:
        console.print("[yellow]No locks.[/yellow]")
        return
    table = Table()
    table.add_column("Lock", style="dim", width=5)
    table.add_column("Book", justify="right")
    table.add_column("Trade", justify="right")
    table.add_column("Expires")
    table.add_column("Ext.", justify="right")
    for lock in locks:
        table.add_row(
            str(lock.id),
            str(lock.book_id),
            str(lock.trade_id),
            lock.expires_at.strftime("%Y-%m-%d %H:%M UTC"),
            str(len(lock.extension_history)),
        )
    console.print(table)


@click.group("trade")
def trade() -> None:
    """Propose and negotiate trades."""


@trade.command("propose")
@as_user_option
@click.argument("match_id", type=int)
@offer_option
@request_option
@db_option
def trade_propose(
    acting_user: int,
    match_id: int,
    offered: tuple[int, ...],
    requested: tuple[int, ...],
    db_path: Path | None,
) -> None:
    """Propose a trade to the counterparty of a match."""
    with marketplace(db_path) as conn:
        created = _service(conn, db_path).create_trade(
            acting_user, match_id, list(offered), list(requested)
        )
    _print_trade(created)


@trade.command("ls")
@as_user_option
@click.option(
    "--status",
    type=click.Choice([s.value for s in TradeStatus]),
    default=None,
    help="Only trades in this status.",
)
@db_option
def trade_ls(acting_user: int, status: str | None, db_path: Path | None) -> None:
    """List a user's trades."""
    with marketplace(db_path) as conn:
        trades = _service(conn, db_path).list_trades(acting_user, status)

    if not trades:
        console.print("[yellow]No trades.[/yellow]")
        return

    table = Table()
    table.add_column("ID", style="dim", width=4)
    table.add_column("Status")
    table.add_column("Proposer", justify="right")
    table.add_column("Offered")
    table.add_column("Requested")
    for t in trades:
        style = _STATUS_STYLE[t.status]
        table.add_row(
            str(t.id),
            f"[{style}]{t.status.value}[/{style}]",
            str(t.proposer_id),
            _ids(t.books_offered),
            _ids(t.books_requested),
        )
    console.print(table)


@trade.command("accept")
@as_user_option
@click.argument("trade_id", type=int)
@db_option
def trade_accept(acting_user: int, trade_id: int, db_path: Path | None) -> None:
    """Accept a proposal and swap the books."""
    with marketplace(db_path) as conn:
        accepted = _service(conn, db_path).accept_trade(trade_id, acting_user)
    _print_trade(accepted.trade)
    moved = len(accepted.transfer.to_proposer) + len(accepted.transfer.to_recipient)
    console.print(f"[green]Transferred {moved} book(s).[/green]")


@trade.command("reject")
@as_user_option
@click.argument("trade_id", type=int)
@click.option("--reason", default=None, help="Why the proposal is rejected.")
@db_option
def trade_reject(
    acting_user: int, trade_id: int, reason: str | None, db_path: Path | None
) -> None:
    """Reject a proposal."""
    with marketplace(db_path) as conn:
        rejected = _service(conn, db_path).reject_trade(trade_id, acting_user, reason)
    _print_trade(rejected)


@trade.command("cancel")
@as_user_option
@click.argument("trade_id", type=int)
@db_option
def trade_cancel(acting_user: int, trade_id: int, db_path: Path | None) -> None:
    """Withdraw your own proposal."""
    with marketplace(db_path) as conn:
        cancelled = _service(conn, db_path).cancel_trade(trade_id, acting_user)
    _print_trade(cancelled)


@trade.command("counter")
@as_user_option
@click.argument("trade_id", type=int)
@offer_option
@request_option
@db_option
def trade_counter(
    acting_user: int,
    trade_id: int,
    offered: tuple[int, ...],
    requested: tuple[int, ...],
    db_path: Path | None,
) -> None:
    """Answer a proposal with different terms."""
    with marketplace(db_path) as conn:
        countered = _service(conn, db_path).counter_propose(
            trade_id, acting_user, list(offered), list(requested)
        )
    _print_trade(countered)


@trade.command("extend")
@as_user_option
@click.argument("trade_id", type=int)
@click.option("--hours", type=int, default=None, help="Hours to add (default from config).")
@db_option
def trade_extend(
    acting_user: int, trade_id: int, hours: int | None, db_path: Path | None
) -> None:
    """Extend every lock held by a pending trade."""
    additional = hours or current_config().locks.extension_hours
    with marketplace(db_path) as conn:
        report = _service(conn, db_path).extend_trade_locks(trade_id, acting_user, additional)

    if report.extended:
        console.print(f"Extended {len(report.extended)} lock(s) by {additional} hours.")
    for lock, exc in report.failed:
        console.print(f"[red]Lock {lock.id} (book {lock.book_id}): {exc.message}[/red]")
    if not report.ok:
        raise SystemExit(1)


@trade.command("locks")
@as_user_option
@click.argument("trade_id", type=int)
@db_option
def trade_locks(acting_user: int, trade_id: int, db_path: Path | None) -> None:
    """Show the locks a trade holds."""
    with marketplace(db_path) as conn:
        locks = _service(conn, db_path).get_locks_for_trade(trade_id, acting_user)
    print_locks(locks)
