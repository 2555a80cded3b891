# ABOUTME: Integration tests for the all-or-nothing ownership transfer.
# ABOUTME: Injects storage failures mid-swap and checks that no partial state survives.

import logging
import sqlite3

import pytest

from bookswap.core.locks import BookLockManager
from bookswap.core.matching import MatchEngine
from bookswap.core.trades import TradeService
from bookswap.core.transfer import TransferEngine, TransferRequest
from bookswap.db.ledger import BookLedger
from bookswap.errors import TransferFailedError, ValidationFailedError
from bookswap.models import Trade, TradeStatus, User


@pytest.fixture()
def proposal(market, trades: TradeService) -> Trade:
    return trades.create_trade(
        market.alice.id, market.alice_match.id, [market.dune.id], [market.foundation.id]
    )


def _audit_count(conn: sqlite3.Connection) -> int:
    return conn.execute("SELECT COUNT(*) FROM book_audit_log").fetchone()[0]


class TestTransferRollback:
    """A failure anywhere in the swap leaves the marketplace as it was."""

    def test_audit_failure_rolls_back_everything(
        self,
        market,
        trades: TradeService,
        ledger: BookLedger,
        lock_manager: BookLockManager,
        conn: sqlite3.Connection,
        proposal: Trade,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def broken_audit(self, *args, **kwargs):
            raise sqlite3.OperationalError("database or disk is full")

        monkeypatch.setattr(TransferEngine, "_write_audit", broken_audit)

        with pytest.raises(TransferFailedError, match="rolled back") as excinfo:
            trades.accept_trade(proposal.id, market.bob.id)

        assert excinfo.value.context["trade_id"] == proposal.id
        assert ledger.require_book(market.dune.id).owner_id == market.alice.id
        assert ledger.require_book(market.foundation.id).owner_id == market.bob.id
        assert [lk.book_id for lk in lock_manager.locks_for_trade(proposal.id)] == [
            market.foundation.id
        ]
        assert trades.get_trade(proposal.id).status is TradeStatus.PENDING
        assert _audit_count(conn) == 0
        assert not conn.in_transaction

    def test_retry_after_failure_succeeds(
        self,
        market,
        trades: TradeService,
        ledger: BookLedger,
        proposal: Trade,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def broken_close(self, trade_id, now):
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(TransferEngine, "_close_trade", broken_close)
        with pytest.raises(TransferFailedError):
            trades.accept_trade(proposal.id, market.bob.id)

        monkeypatch.undo()
        accepted = trades.accept_trade(proposal.id, market.bob.id)
        assert accepted.trade.status is TradeStatus.COMPLETED
        assert ledger.require_book(market.dune.id).owner_id == market.bob.id


class TestTransferValidation:
    """Validation runs before any write and names the offending books."""

    def test_book_sold_elsewhere(
        self,
        market,
        conn: sqlite3.Connection,
        clock,
        carol,
        proposal: Trade,
    ) -> None:
        """A book that changed hands since the proposal blocks the transfer."""
        conn.execute(
            "UPDATE books SET owner_id = ? WHERE id = ?", (carol.id, market.dune.id)
        )
        engine = TransferEngine(conn, clock=clock)
        request = TransferRequest(
            trade_id=proposal.id,
            offered_books=[market.dune.id],
            requested_books=[market.foundation.id],
            proposer_id=market.alice.id,
            recipient_id=market.bob.id,
        )
        with pytest.raises(ValidationFailedError) as excinfo:
            engine.transfer_books(request)
        assert excinfo.value.context["book_ids"] == [market.dune.id]
        assert _audit_count(conn) == 0

    def test_relocked_after_expiry(
        self,
        market,
        trades: TradeService,
        ledger: BookLedger,
        clock,
        proposal: Trade,
    ) -> None:
        """Once a lock lapses and another trade takes the book, the old trade cannot finish."""
        clock.advance(hours=49)
        newer = trades.create_trade(
            market.alice.id, market.alice_match.id, [], [market.foundation.id]
        )

        with pytest.raises(ValidationFailedError, match="locked for another trade"):
            trades.accept_trade(proposal.id, market.bob.id)
        assert trades.get_trade(proposal.id).status is TradeStatus.PENDING
        assert ledger.require_book(market.foundation.id).owner_id == market.bob.id

        trades.accept_trade(newer.id, market.bob.id)
        assert ledger.require_book(market.foundation.id).owner_id == market.alice.id

    def test_transferred_books_become_available(
        self,
        market,
        trades: TradeService,
        ledger: BookLedger,
        conn: sqlite3.Connection,
        proposal: Trade,
    ) -> None:
        accepted = trades.accept_trade(proposal.id, market.bob.id)
        assert all(b.is_available for b in accepted.transfer.to_proposer)
        assert all(b.is_available for b in accepted.transfer.to_recipient)
        engine = TransferEngine(conn)
        [entry] = engine.book_history(market.dune.id)
        assert (entry.from_user_id, entry.to_user_id) == (market.alice.id, market.bob.id)
        assert entry.action == "transfer"


class TestOfferedBookLocks:
    """Offered books carry no lock of their own, but another trade may hold one."""

    def test_swap_releases_other_trades_lock(
        self,
        market,
        trades: TradeService,
        ledger: BookLedger,
        engine: MatchEngine,
        lock_manager: BookLockManager,
        carol: User,
        proposal: Trade,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Carol asked alice for Dune, but alice's swap with bob hands Dune to bob."""
        hyperion = ledger.add_book(carol.id, "Hyperion", "Dan Simmons", "inventory")
        ledger.add_book(carol.id, "Dune", "Frank Herbert", "wishlist")
        [carol_match] = engine.recompute_matches(carol.id)
        ledger.open_chat(carol.id, market.alice.id)
        carols = trades.create_trade(carol.id, carol_match.id, [hyperion.id], [market.dune.id])
        assert not lock_manager.can_acquire(market.dune.id)

        with caplog.at_level(logging.WARNING, logger="bookswap.core.transfer"):
            trades.accept_trade(proposal.id, market.bob.id)

        assert ledger.require_book(market.dune.id).owner_id == market.bob.id
        assert lock_manager.locks_for_trade(carols.id) == []
        assert lock_manager.can_acquire(market.dune.id)
        assert "released 1 lock(s)" in caplog.text

        with pytest.raises(ValidationFailedError):
            trades.accept_trade(carols.id, market.alice.id)
