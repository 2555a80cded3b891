# ABOUTME: The `bookswap chat` command group.
# ABOUTME: Opens the chat two users need before they can trade.

from pathlib import Path

import click

from bookswap.cli.options import as_user_option, console, db_option, marketplace
from bookswap.db.ledger import BookLedger


@click.group("chat")
def chat() -> None:
    """Manage chats between users."""


@chat.command("open")
@as_user_option
@click.argument("other_user_id", type=int)
@db_option
def chat_open(acting_user: int, other_user_id: int, db_path: Path | None) -> None:
    """Open a chat with another user (no-op if one exists)."""
    with marketplace(db_path) as conn:
        opened = BookLedger(conn).open_chat(acting_user, other_user_id)
    console.print(
        f"Chat {opened.id} between users {opened.participant1_id} and {opened.participant2_id}."
    )
