# ABOUTME: Book transfer engine: the atomic ownership swap that completes an accepted trade.
# ABOUTME: Ownership, audit rows, lock release, and trade status commit together or not at all.

import json
import logging
import sqlite3
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from bookswap.clock import Clock, to_db, utcnow
from bookswap.db.connection import atomic
from bookswap.db.mapping import row_to_audit, row_to_book
from bookswap.errors import TransferFailedError, ValidationFailedError
from bookswap.models import AuditEntry, Book, TradeStatus

logger = logging.getLogger(__name__)


@dataclass
class TransferRequest:
    """Books to swap: ``offered_books`` go proposer → recipient, ``requested_books`` back."""

    trade_id: int
    offered_books: list[int]
    requested_books: list[int]
    proposer_id: int
    recipient_id: int


@dataclass
class TransferResult:
    to_proposer: list[Book] = field(default_factory=list)
    to_recipient: list[Book] = field(default_factory=list)
    audit_log_ids: list[int] = field(default_factory=list)


class TransferEngine:
    """Executes ownership swaps for accepted trades.

    ``on_change`` is the ledger's match invalidation hook. It runs for both
    parties only after the swap has committed.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        clock: Clock = utcnow,
        on_change: Callable[[Iterable[int]], None] | None = None,
    ) -> None:
        self._conn = conn
        self._clock = clock
        self._on_change = on_change

    def _load(self, book_ids: list[int]) -> dict[int, Book]:
        if not book_ids:
            return {}
        placeholders = ", ".join("?" for _ in book_ids)
        cursor = self._conn.execute(
            f"SELECT * FROM books WHERE id IN ({placeholders})", book_ids
        )
        return {row["id"]: row_to_book(row) for row in cursor.fetchall()}

    def validate(self, request: TransferRequest) -> None:
        """Re-check ownership, availability, and lock tenure before swapping.

        Conditions may have changed since the trade was proposed: a book
        deleted, made unavailable, or (after its lock lapsed) locked by
        another trade.

        Raises:
            ValidationFailedError: Naming the offending books.
        """
        books = self._load(request.offered_books + request.requested_books)

        def check_owned(ids: list[int], owner_id: int, side: str) -> None:
            wrong = [i for i in ids if i not in books or books[i].owner_id != owner_id]
            if wrong:
                raise ValidationFailedError(
                    f"Some {side} books no longer belong to user {owner_id} "
                    f"or do not exist: {wrong}",
                    trade_id=request.trade_id,
                    book_ids=wrong,
                )

        check_owned(request.offered_books, request.proposer_id, "offered")
        check_owned(request.requested_books, request.recipient_id, "requested")

        unavailable = [b for b in books.values() if not b.is_available]
        if unavailable:
            raise ValidationFailedError(
                "Some books are not available: " + ", ".join(b.title for b in unavailable),
                trade_id=request.trade_id,
                book_ids=[b.id for b in unavailable],
            )

        if request.requested_books:
            placeholders = ", ".join("?" for _ in request.requested_books)
            stolen = [
                row["book_id"]
                for row in self._conn.execute(
                    f"SELECT book_id FROM book_locks WHERE book_id IN ({placeholders}) "
                    "AND expires_at > ? AND trade_id != ?",
                    [*request.requested_books, to_db(self._clock()), request.trade_id],
                ).fetchall()
            ]
            if stolen:
                raise ValidationFailedError(
                    f"Books {stolen} are now locked for another trade",
                    trade_id=request.trade_id,
                    book_ids=stolen,
                )

    def _reassign(self, book_ids: list[int], from_user: int, to_user: int, now: str) -> None:
        if not book_ids:
            return
        placeholders = ", ".join("?" for _ in book_ids)
        cursor = self._conn.execute(
            f"UPDATE books SET owner_id = ?, is_available = 1, updated_at = ? "
            f"WHERE id IN ({placeholders}) AND owner_id = ?",
            [to_user, now, *book_ids, from_user],
        )
        if cursor.rowcount != len(book_ids):
            raise TransferFailedError(
                f"Expected to move {len(book_ids)} book(s) from user {from_user}, "
                f"moved {cursor.rowcount}"
            )

    def _write_audit(
        self,
        trade_id: int,
        book_ids: list[int],
        from_user: int,
        to_user: int,
        transfer_type: str,
        now: str,
    ) -> list[int]:
        ids = []
        for book_id in book_ids:
            cursor = self._conn.execute(
                "INSERT INTO book_audit_log "
                "(book_id, from_user_id, to_user_id, trade_id, action, metadata, created_at) "
                "VALUES (?, ?, ?, ?, 'transfer', ?, ?)",
                (
                    book_id, from_user, to_user, trade_id,
                    json.dumps({"transfer_type": transfer_type, "timestamp": now}), now,
                ),
            )
            ids.append(cursor.lastrowid)
        return ids  # type: ignore[return-value]

    def _release_foreign_locks(self, request: TransferRequest) -> None:
        """Drop locks other trades hold on the offered books, which are changing hands."""
        if not request.offered_books:
            return
        placeholders = ", ".join("?" for _ in request.offered_books)
        cursor = self._conn.execute(
            f"DELETE FROM book_locks WHERE book_id IN ({placeholders}) AND trade_id != ?",
            [*request.offered_books, request.trade_id],
        )
        if cursor.rowcount:
            logger.warning(
                "Trade %d released %d lock(s) other trades held on its offered books",
                request.trade_id, cursor.rowcount,
            )

    def _close_trade(self, trade_id: int, now: str) -> None:
        self._conn.execute("DELETE FROM book_locks WHERE trade_id = ?", (trade_id,))
        cursor = self._conn.execute(
            "UPDATE trades SET status = ?, completed_at = ?, updated_at = ? "
            "WHERE id = ? AND status = ?",
            (TradeStatus.COMPLETED.value, now, now, trade_id, TradeStatus.PENDING.value),
        )
        if cursor.rowcount != 1:
            raise TransferFailedError(f"Trade {trade_id} is no longer pending")

    def transfer_books(self, request: TransferRequest) -> TransferResult:
        """Swap ownership of the trade's books and complete the trade.

        Validation runs first and mutates nothing. The swap itself is one
        transaction: offered books go to the recipient, requested books to
        the proposer, all end up available, one audit row is written per book,
        the trade's locks and any other trade's locks on the offered books are
        deleted, and the trade is marked completed.

        Raises:
            ValidationFailedError: Ownership, availability, or lock tenure changed.
            TransferFailedError: The transaction failed and was rolled back.
        """
        now = to_db(self._clock())
        try:
            with atomic(self._conn):
                self.validate(request)
                self._reassign(
                    request.offered_books, request.proposer_id, request.recipient_id, now
                )
                self._reassign(
                    request.requested_books, request.recipient_id, request.proposer_id, now
                )
                audit_ids = self._write_audit(
                    request.trade_id, request.offered_books,
                    request.proposer_id, request.recipient_id, "offered", now,
                )
                audit_ids += self._write_audit(
                    request.trade_id, request.requested_books,
                    request.recipient_id, request.proposer_id, "requested", now,
                )
                self._release_foreign_locks(request)
                self._close_trade(request.trade_id, now)
        except (ValidationFailedError, TransferFailedError):
            raise
        except sqlite3.Error as exc:
            logger.exception("Transfer for trade %d rolled back", request.trade_id)
            raise TransferFailedError(
                f"Failed to transfer books for trade {request.trade_id}. "
                "Transaction rolled back.",
                trade_id=request.trade_id,
            ) from exc

        logger.info(
            "Trade %d completed: %d book(s) to user %d, %d book(s) to user %d",
            request.trade_id,
            len(request.offered_books), request.recipient_id,
            len(request.requested_books), request.proposer_id,
        )
        if self._on_change is not None:
            self._on_change((request.proposer_id, request.recipient_id))

        books = self._load(request.offered_books + request.requested_books)
        return TransferResult(
            to_proposer=[books[i] for i in request.requested_books if i in books],
            to_recipient=[books[i] for i in request.offered_books if i in books],
            audit_log_ids=audit_ids,
        )

    def book_history(self, book_id: int) -> list[AuditEntry]:
        """Audit trail of a book's ownership changes, newest first."""
        cursor = self._conn.execute(
            "SELECT * FROM book_audit_log WHERE book_id = ? ORDER BY created_at DESC, id DESC",
            (book_id,),
        )
        return [row_to_audit(row) for row in cursor.fetchall()]

    def trade_history(self, trade_id: int) -> list[AuditEntry]:
        cursor = self._conn.execute(
            "SELECT * FROM book_audit_log WHERE trade_id = ? ORDER BY created_at DESC, id DESC",
            (trade_id,),
        )
        return [row_to_audit(row) for row in cursor.fetchall()]
