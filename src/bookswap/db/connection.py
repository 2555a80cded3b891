# ABOUTME: SQLite database connection management for the bookswap marketplace.
# ABOUTME: Opens or creates the database, applies schema, and provides transaction scopes.

import itertools
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from bookswap.db.schema import MIGRATIONS, SCHEMA_V1

DEFAULT_DB_PATH = Path.home() / ".bookswap" / "market.db"

# Seconds a writer waits for another connection's transaction to finish.
BUSY_TIMEOUT = 10.0

_savepoint_ids = itertools.count(1)


def _schema_exists(conn: sqlite3.Connection) -> bool:
    """Check if the schema has already been applied."""
    cursor = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
    )
    return cursor.fetchone() is not None


def _apply_schema(conn: sqlite3.Connection) -> None:
    """Execute the DDL to create all tables, indexes, and triggers."""
    conn.executescript(SCHEMA_V1)


def _get_schema_version(conn: sqlite3.Connection) -> int:
    """Read the current schema version from the database."""
    cursor = conn.execute("SELECT version FROM schema_version ORDER BY version DESC LIMIT 1")
    row = cursor.fetchone()
    return row[0] if row else 0


def _apply_migrations(conn: sqlite3.Connection) -> None:
    """Apply pending schema migrations sequentially.

    Reads the current schema version and applies any migrations with a higher
    version number. No-op if the database is already at the latest version.
    """
    current = _get_schema_version(conn)
    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)


def open_marketplace(path: Path | None = None) -> sqlite3.Connection:
    """Open or create the bookswap marketplace database.

    Creates the database file and parent directories if they don't exist.
    Applies the schema on first creation, then any pending migrations.

    The connection runs in autocommit mode: statements outside an
    ``atomic()`` block commit immediately, and every multi-statement unit of
    work opens its own transaction through ``atomic()``. It may be handed
    between threads, but must only be used by one thread at a time.

    Args:
        path: Path to the database file. Defaults to ~/.bookswap/market.db.

    Returns:
        A configured sqlite3.Connection.
    """
    db_path = path or DEFAULT_DB_PATH
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(
        str(db_path),
        timeout=BUSY_TIMEOUT,
        isolation_level=None,
        check_same_thread=False,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")

    if not _schema_exists(conn):
        _apply_schema(conn)

    _apply_migrations(conn)

    return conn


@contextmanager
def atomic(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run the enclosed statements as one all-or-nothing unit.

    The outermost block takes the database write lock up front with
    ``BEGIN IMMEDIATE``, so a check-then-write inside it cannot interleave
    with another connection's writes. Nested blocks become savepoints and
    roll back on their own without aborting the enclosing transaction,
    unless the exception propagates further.
    """
    if conn.in_transaction:
        name = f"sp_{next(_savepoint_ids)}"
        conn.execute(f"SAVEPOINT {name}")
        try:
            yield conn
        except BaseException:
            conn.execute(f"ROLLBACK TO SAVEPOINT {name}")
            conn.execute(f"RELEASE SAVEPOINT {name}")
            raise
        conn.execute(f"RELEASE SAVEPOINT {name}")
        return

    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        # Some SQLite errors already end the transaction on their own.
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")
