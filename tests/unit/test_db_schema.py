# ABOUTME: Unit tests for marketplace schema creation, migrations, and transaction scopes.
# ABOUTME: Validates tables, uniqueness guards, append-only audit triggers, and atomic() nesting.

import sqlite3
from pathlib import Path

import pytest

from bookswap.db.connection import _apply_migrations, _get_schema_version, atomic, open_marketplace
from bookswap.db.schema import MIGRATIONS


class TestOpenMarketplace:
    """Tests for open_marketplace() connection factory."""

    def test_creates_parent_directories(self, tmp_path: Path) -> None:
        """Creates parent directories if they don't exist."""
        nested = tmp_path / "deep" / "nested" / "market.db"
        conn = open_marketplace(nested)
        conn.close()
        assert nested.exists()

    def test_creates_tables(self, conn: sqlite3.Connection) -> None:
        cursor = conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        tables = {row[0] for row in cursor.fetchall()}
        expected = {
            "users", "books", "chats", "matches", "hidden_matches", "trades",
            "book_locks", "book_interests", "book_audit_log", "ratings", "schema_version",
        }
        assert expected <= tables

    def test_wal_and_foreign_keys(self, conn: sqlite3.Connection) -> None:
        assert conn.execute("PRAGMA journal_mode").fetchone()[0] == "wal"
        assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1

    def test_autocommit(self, conn: sqlite3.Connection) -> None:
        """Statements outside atomic() leave no transaction open."""
        conn.execute("INSERT INTO users (name, email, location) VALUES ('A', 'a@x', 'here')")
        assert not conn.in_transaction

    def test_reopen_keeps_data(self, db_path: Path) -> None:
        conn = open_marketplace(db_path)
        conn.execute("INSERT INTO users (name, email, location) VALUES ('A', 'a@x', 'here')")
        conn.close()

        conn = open_marketplace(db_path)
        assert conn.execute("SELECT COUNT(*) FROM users").fetchone()[0] == 1
        conn.close()

    def test_timestamps_are_fixed_width(self, conn: sqlite3.Connection) -> None:
        """Default timestamps share the width of the ones written from Python."""
        conn.execute("INSERT INTO users (name, email, location) VALUES ('A', 'a@x', 'here')")
        created = conn.execute("SELECT created_at FROM users").fetchone()[0]
        assert len(created) == len("2024-01-01T00:00:00.000000")


class TestMigrations:
    """Tests for the migration runner."""

    def test_fresh_db_has_latest_version(self, conn: sqlite3.Connection) -> None:
        assert _get_schema_version(conn) == MIGRATIONS[-1][0]

    def test_migrations_list_is_ordered(self) -> None:
        """MIGRATIONS list has strictly increasing version numbers."""
        versions = [v for v, _ in MIGRATIONS]
        assert versions == sorted(versions)
        assert len(versions) == len(set(versions))

    def test_rerun_is_noop(self, conn: sqlite3.Connection) -> None:
        _apply_migrations(conn)
        count = conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
        assert count == len(MIGRATIONS) + 1


class TestConstraints:
    """Tests for storage-level guards."""

    def test_email_unique_ignores_case(self, conn: sqlite3.Connection) -> None:
        conn.execute("INSERT INTO users (name, email, location) VALUES ('A', 'a@x.com', 'h')")
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute("INSERT INTO users (name, email, location) VALUES ('B', 'A@X.com', 'h')")

    def test_chat_participants_ordered(self, conn: sqlite3.Connection) -> None:
        conn.execute("INSERT INTO users (name, email, location) VALUES ('A', 'a@x', 'h')")
        conn.execute("INSERT INTO users (name, email, location) VALUES ('B', 'b@x', 'h')")
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute("INSERT INTO chats (participant1_id, participant2_id) VALUES (2, 1)")

    def test_audit_log_is_append_only(self, conn: sqlite3.Connection) -> None:
        """Audit rows can be inserted but never changed or removed."""
        conn.execute(
            "INSERT INTO book_audit_log (book_id, from_user_id, to_user_id, trade_id, action) "
            "VALUES (1, 1, 2, 1, 'transfer')"
        )
        with pytest.raises(sqlite3.DatabaseError, match="append-only"):
            conn.execute("UPDATE book_audit_log SET to_user_id = 3")
        with pytest.raises(sqlite3.DatabaseError, match="append-only"):
            conn.execute("DELETE FROM book_audit_log")
        assert conn.execute("SELECT COUNT(*) FROM book_audit_log").fetchone()[0] == 1


class TestAtomic:
    """Tests for the atomic() transaction scope."""

    def _users(self, conn: sqlite3.Connection) -> int:
        return conn.execute("SELECT COUNT(*) FROM users").fetchone()[0]

    def test_commits_on_success(self, conn: sqlite3.Connection) -> None:
        with atomic(conn):
            conn.execute("INSERT INTO users (name, email, location) VALUES ('A', 'a@x', 'h')")
            assert conn.in_transaction
        assert not conn.in_transaction
        assert self._users(conn) == 1

    def test_rolls_back_on_error(self, conn: sqlite3.Connection) -> None:
        with pytest.raises(RuntimeError):
            with atomic(conn):
                conn.execute("INSERT INTO users (name, email, location) VALUES ('A', 'a@x', 'h')")
                raise RuntimeError("boom")
        assert not conn.in_transaction
        assert self._users(conn) == 0

    def test_nested_failure_keeps_outer_work(self, conn: sqlite3.Connection) -> None:
        """A savepoint that fails and is caught leaves the outer transaction intact."""
        with atomic(conn):
            conn.execute("INSERT INTO users (name, email, location) VALUES ('A', 'a@x', 'h')")
            with pytest.raises(RuntimeError):
                with atomic(conn):
                    conn.execute(
                        "INSERT INTO users (name, email, location) VALUES ('B', 'b@x', 'h')"
                    )
                    raise RuntimeError("inner")
        assert self._users(conn) == 1

    def test_nested_failure_propagating_rolls_back_all(self, conn: sqlite3.Connection) -> None:
        with pytest.raises(RuntimeError):
            with atomic(conn):
                conn.execute("INSERT INTO users (name, email, location) VALUES ('A', 'a@x', 'h')")
                with atomic(conn):
                    raise RuntimeError("inner")
        assert self._users(conn) == 0
