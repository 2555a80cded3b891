# ABOUTME: The `bookswap serve` command that runs the HTTP API under uvicorn.
# ABOUTME: Host, port, and database come from config unless overridden on the command line.

from pathlib import Path

import click
import uvicorn

from bookswap.api import create_app
from bookswap.cli.options import console, current_config, db_option


@click.command("serve")
@click.option("--host", default=None, help="Interface to bind (default from config).")
@click.option("--port", type=int, default=None, help="Port to listen on (default from config).")
@db_option
def serve(host: str | None, port: int | None, db_path: Path | None) -> None:
    """Serve the bookswap HTTP API."""
    config = current_config().model_copy(deep=True)
    if db_path is not None:
        config.storage.db_path = db_path
    host = host or config.api.host
    port = port or config.api.port

    console.print(f"Serving [bold]{config.storage.db_path}[/bold] on http://{host}:{port}")
    uvicorn.run(create_app(config), host=host, port=port)
