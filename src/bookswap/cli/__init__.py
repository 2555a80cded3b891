# ABOUTME: CLI package for bookswap, built on Click.
# ABOUTME: Defines the root command group, logging setup, and registers subcommands.

import logging
from pathlib import Path

import click
from rich.logging import RichHandler

from bookswap.cli.commands import (
    book_cmd,
    chat_cmd,
    lock_cmd,
    match_cmd,
    serve_cmd,
    trade_cmd,
    user_cmd,
)
from bookswap.config import load_config


@click.group()
@click.version_option(package_name="bookswap")
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging.")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Path to a YAML config file (default: ./bookswap.yaml).",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config_path: Path | None) -> None:
    """Bookswap - a peer-to-peer book trading marketplace."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(show_path=False)],
    )
    ctx.obj = load_config(config_path)


cli.add_command(user_cmd.user)
cli.add_command(book_cmd.book)
cli.add_command(chat_cmd.chat)
cli.add_command(match_cmd.match)
cli.add_command(trade_cmd.trade)
cli.add_command(lock_cmd.locks)
cli.add_command(serve_cmd.serve)
