# ABOUTME: End-to-end tests for the bookswap CLI.
# ABOUTME: Runs user, book, match, and trade workflows via Click's CliRunner on a real database.

from pathlib import Path

import pytest
from click.testing import CliRunner

from bookswap.cli import cli
from bookswap.core.matching import MatchEngine
from bookswap.db.connection import open_marketplace


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "cli.db"


@pytest.fixture()
def run(db_path: Path):
    """Invoke the CLI against the test database; returns the Click result."""
    runner = CliRunner()

    def _run(*args: str):
        return runner.invoke(cli, [*args, "--db", str(db_path)])

    return _run


def _match_id(db_path: Path, user_id: int) -> int:
    conn = open_marketplace(db_path)
    try:
        [match] = MatchEngine(conn).list_matches(user_id)
    finally:
        conn.close()
    return match.id


@pytest.fixture()
def swap(run, db_path: Path) -> int:
    """Users 1 (alice) and 2 (bob) with the Dune/Foundation swap. Returns alice's match id."""
    assert run("user", "add", "Alice", "alice@example.com", "Springfield").exit_code == 0
    assert run("user", "add", "Bob", "bob@example.com", "Springfield").exit_code == 0
    assert run("book", "add", "--as", "1", "Dune", "Frank Herbert").exit_code == 0
    assert run(
        "book", "add", "--as", "1", "Foundation", "Isaac Asimov", "--wishlist"
    ).exit_code == 0
    assert run("book", "add", "--as", "2", "Foundation", "Isaac Asimov").exit_code == 0
    assert run("book", "add", "--as", "2", "Dune", "Frank Herbert", "--wishlist").exit_code == 0
    assert run("chat", "open", "--as", "1", "2").exit_code == 0
    return _match_id(db_path, 1)


class TestVersion:
    def test_version(self) -> None:
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "version" in result.output


class TestUserAndBookCli:
    """E2E tests for user and book commands."""

    def test_user_lifecycle(self, run) -> None:
        result = run("user", "add", "Alice", "alice@example.com", "Springfield")
        assert result.exit_code == 0
        assert "with id 1" in result.output

        result = run("user", "ls")
        assert result.exit_code == 0
        assert "Alice" in result.output

        result = run("user", "token", "1")
        assert result.exit_code == 0
        assert result.output.count(".") == 2

    def test_duplicate_user_fails(self, run) -> None:
        run("user", "add", "Alice", "alice@example.com", "Springfield")
        result = run("user", "add", "Alice", "alice@example.com", "Springfield")
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_token_for_unknown_user(self, run) -> None:
        result = run("user", "token", "9")
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_book_lifecycle(self, run) -> None:
        run("user", "add", "Alice", "alice@example.com", "Springfield")
        result = run("book", "add", "--as", "1", "Dune", "Frank Herbert", "--room", "scifi")
        assert result.exit_code == 0
        assert "inventory (id 1)" in result.output

        result = run("book", "ls", "--as", "1", "--room", "scifi")
        assert "Dune" in result.output
        result = run("book", "ls", "--as", "1", "--global")
        assert "No books" in result.output

        result = run("book", "availability", "--as", "1", "1", "off")
        assert result.exit_code == 0
        assert "unavailable" in result.output

        result = run("book", "rm", "--as", "1", "1")
        assert result.exit_code == 0
        result = run("book", "ls", "--as", "1")
        assert "No books" in result.output

    def test_rm_someone_elses_book(self, run) -> None:
        run("user", "add", "Alice", "alice@example.com", "Springfield")
        run("user", "add", "Bob", "bob@example.com", "Springfield")
        run("book", "add", "--as", "1", "Dune", "Frank Herbert")
        result = run("book", "rm", "--as", "2", "1")
        assert result.exit_code == 1
        assert "not found" in result.output


class TestMatchCli:
    """E2E tests for match commands."""

    def test_books_added_produce_match(self, run, swap: int) -> None:
        result = run("match", "ls", "--as", "1")
        assert result.exit_code == 0
        assert "perfect" in result.output
        assert "1 match(es)" in result.output

    def test_hide_and_clear(self, run, swap: int) -> None:
        result = run("match", "hide", "--as", "1", str(swap))
        assert result.exit_code == 0
        assert "No matches" in run("match", "ls", "--as", "1").output
        assert "1 match(es)" in run("match", "ls", "--as", "1", "--hidden").output

        result = run("match", "hide", "--as", "1", "--clear")
        assert "Unhid 1" in result.output

    def test_hide_needs_a_target(self, run, swap: int) -> None:
        result = run("match", "hide", "--as", "1")
        assert result.exit_code == 1


class TestTradeCli:
    """E2E tests for the trade workflow."""

    def test_propose_and_accept(self, run, swap: int, db_path: Path) -> None:
        result = run("trade", "propose", "--as", "1", str(swap), "--offer", "1", "--request", "3")
        assert result.exit_code == 0
        assert "Trade 1: pending" in result.output

        result = run("trade", "locks", "--as", "2", "1")
        assert result.exit_code == 0
        assert "No locks" not in result.output
        assert "No locks" not in run("locks", "mine", "--as", "2").output

        result = run("trade", "accept", "--as", "1", "1")
        assert result.exit_code == 1
        assert "Proposer cannot accept" in result.output

        result = run("trade", "accept", "--as", "2", "1")
        assert result.exit_code == 0
        assert "completed" in result.output
        assert "Transferred 2 book(s)" in result.output

        assert "No matches" in run("match", "ls", "--as", "1").output
        assert "completed" in run("trade", "ls", "--as", "1", "--status", "completed").output

    def test_conflicting_proposal(self, run, swap: int) -> None:
        run("trade", "propose", "--as", "1", str(swap), "--offer", "1", "--request", "3")
        result = run("trade", "propose", "--as", "1", str(swap), "--request", "3")
        assert result.exit_code == 1
        assert "already locked" in result.output

    def test_reject_and_cancel(self, run, swap: int) -> None:
        run("trade", "propose", "--as", "1", str(swap), "--offer", "1", "--request", "3")
        result = run("trade", "reject", "--as", "2", "1", "--reason", "No thanks")
        assert "rejected" in result.output

        run("trade", "propose", "--as", "1", str(swap), "--offer", "1", "--request", "3")
        result = run("trade", "cancel", "--as", "2", "2")
        assert result.exit_code == 1
        result = run("trade", "cancel", "--as", "1", "2")
        assert "cancelled" in result.output

    def test_counter(self, run, swap: int) -> None:
        run("trade", "propose", "--as", "1", str(swap), "--offer", "1", "--request", "3")
        result = run("trade", "counter", "--as", "2", "1", "--offer", "3", "--request", "1")
        assert result.exit_code == 0
        assert "proposer 2" in result.output

    def test_extend_until_refused(self, run, swap: int) -> None:
        run("trade", "propose", "--as", "1", str(swap), "--offer", "1", "--request", "3")
        assert run("trade", "extend", "--as", "1", "1").exit_code == 0
        result = run("trade", "extend", "--as", "2", "1", "--hours", "6")
        assert "by 6 hours" in result.output

        result = run("trade", "extend", "--as", "1", "1")
        assert result.exit_code == 1
        assert "maximum" in result.output

    def test_sweep(self, run, swap: int) -> None:
        run("trade", "propose", "--as", "1", str(swap), "--offer", "1", "--request", "3")
        result = run("locks", "sweep")
        assert result.exit_code == 0
        assert "Removed 0 expired lock(s)" in result.output
