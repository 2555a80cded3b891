# ABOUTME: Shared pytest fixtures for bookswap tests.
# ABOUTME: Provides a temporary marketplace database, a controllable clock, and seeded traders.

import sqlite3
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from bookswap.clock import utcnow
from bookswap.core.locks import BookLockManager
from bookswap.core.matching import MatchEngine
from bookswap.core.trades import TradeService
from bookswap.db.connection import open_marketplace
from bookswap.db.ledger import BookLedger
from bookswap.models import Book, Chat, Match, User


class FakeClock:
    """A clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or utcnow()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@dataclass
class Market:
    """Two co-located traders with a chat and a perfect match between them.

    alice owns Dune and wants Foundation; bob owns Foundation and wants Dune.
    """

    alice: User
    bob: User
    dune: Book
    foundation: Book
    chat: Chat
    alice_match: Match
    bob_match: Match


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Path to a temporary marketplace database."""
    return tmp_path / "market.db"


@pytest.fixture
def conn(db_path: Path) -> Iterator[sqlite3.Connection]:
    """Open marketplace connection, closed after the test."""
    connection = open_marketplace(db_path)
    yield connection
    connection.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ledger(conn: sqlite3.Connection, clock: FakeClock) -> BookLedger:
    return BookLedger(conn, clock=clock)


@pytest.fixture
def engine(conn: sqlite3.Connection) -> MatchEngine:
    return MatchEngine(conn)


@pytest.fixture
def lock_manager(conn: sqlite3.Connection, clock: FakeClock) -> BookLockManager:
    return BookLockManager(conn, clock=clock)


@pytest.fixture
def trades(conn: sqlite3.Connection, clock: FakeClock) -> TradeService:
    return TradeService(conn, clock=clock)


@pytest.fixture
def alice(ledger: BookLedger) -> User:
    return ledger.add_user("Alice", "alice@example.com", "Springfield")


@pytest.fixture
def bob(ledger: BookLedger) -> User:
    return ledger.add_user("Bob", "bob@example.com", "Springfield")


@pytest.fixture
def carol(ledger: BookLedger) -> User:
    return ledger.add_user("Carol", "carol@example.com", "Springfield")


@pytest.fixture
def market(
    ledger: BookLedger, engine: MatchEngine, alice: User, bob: User
) -> Market:
    """The Dune/Foundation swap, ready to be proposed."""
    dune = ledger.add_book(alice.id, "Dune", "Frank Herbert", "inventory")
    ledger.add_book(alice.id, "Foundation", "Isaac Asimov", "wishlist")
    foundation = ledger.add_book(bob.id, "Foundation", "Isaac Asimov", "inventory")
    ledger.add_book(bob.id, "Dune", "Frank Herbert", "wishlist")
    chat = ledger.open_chat(alice.id, bob.id)

    [alice_match] = engine.recompute_matches(alice.id)
    [bob_match] = engine.list_matches(bob.id)
    return Market(
        alice=alice,
        bob=bob,
        dune=dune,
        foundation=foundation,
        chat=chat,
        alice_match=alice_match,
        bob_match=bob_match,
    )


@pytest.fixture
def trade_row(conn: sqlite3.Connection):
    """Factory for bare pending trade rows, for tests that drive locks directly."""

    def _make(proposer_id: int, recipient_id: int, chat_id: int) -> int:
        low, high = sorted((proposer_id, recipient_id))
        cursor = conn.execute(
            "INSERT INTO trades (participant1_id, participant2_id, proposer_id, chat_id) "
            "VALUES (?, ?, ?, ?)",
            (low, high, proposer_id, chat_id),
        )
        return cursor.lastrowid

    return _make
