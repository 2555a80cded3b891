# ABOUTME: Trade negotiation state machine: propose, accept, reject, cancel, counter, extend.
# ABOUTME: Coordinates the lock manager and transfer engine and enforces who may act when.

import json
import logging
import sqlite3
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from bookswap.clock import Clock, to_db, utcnow
from bookswap.core.locks import BookLockManager
from bookswap.core.matching import MatchEngine
from bookswap.core.transfer import TransferEngine, TransferRequest, TransferResult
from bookswap.db.connection import atomic
from bookswap.db.ledger import BookLedger, ChangeHook
from bookswap.db.mapping import row_to_rating, row_to_trade
from bookswap.errors import (
    BookAlreadyLockedError,
    BookUnavailableError,
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    MarketplaceError,
    NotFoundError,
    NotOwnerError,
    ValidationFailedError,
)
from bookswap.models import AuditEntry, BookLock, Rating, Trade, TradeStatus
from bookswap.notifications import (
    TRADE_ACCEPTED,
    TRADE_CANCELLED,
    TRADE_COUNTERED,
    TRADE_PROPOSED,
    TRADE_REJECTED,
    Notifier,
    NullNotifier,
)

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION_HOURS = 24


@dataclass
class ExtensionReport:
    """Outcome of extending every lock of a trade, one lock at a time."""

    extended: list[BookLock] = field(default_factory=list)
    failed: list[tuple[BookLock, MarketplaceError]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass
class AcceptedTrade:
    trade: Trade
    transfer: TransferResult


@dataclass
class RatingSummary:
    ratings: list[Rating]
    average: float | None


def _check_proposal(offered_ids: list[int], requested_ids: list[int]) -> None:
    if not offered_ids and not requested_ids:
        raise ValidationFailedError("A trade must include at least one book")
    combined = [*offered_ids, *requested_ids]
    if len(set(combined)) != len(combined):
        dupes = sorted({i for i in combined if combined.count(i) > 1})
        raise ValidationFailedError(f"Duplicate book ids in proposal: {dupes}", book_ids=dupes)


class TradeService:
    """Runs trades through pending → completed | rejected | cancelled.

    Every transition checks the actor's role and the trade's status before it
    mutates anything, and its write only applies while the trade is still
    pending with the same proposer. Notifications go out after the transition has
    committed, and a delivery failure is logged without affecting it.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        locks: BookLockManager | None = None,
        transfer: TransferEngine | None = None,
        notifier: Notifier | None = None,
        on_change: ChangeHook | None = None,
        clock: Clock = utcnow,
        lock_duration_hours: int | None = None,
    ) -> None:
        self._conn = conn
        self._clock = clock
        self._locks = locks or BookLockManager(conn, clock=clock)
        self._transfer = transfer or TransferEngine(conn, clock=clock, on_change=on_change)
        self._notifier: Notifier = notifier or NullNotifier()
        self._ledger = BookLedger(conn, clock=clock)
        self._lock_duration = lock_duration_hours

    # --- Helpers ---

    def _notify(self, event: str, trade: Trade, recipient_id: int) -> None:
        payload: dict[str, Any] = {
            "trade_id": trade.id,
            "status": trade.status.value,
            "proposer_id": trade.proposer_id,
            "books_offered": trade.books_offered,
            "books_requested": trade.books_requested,
        }
        try:
            self._notifier.notify(event, recipient_id, payload)
        except Exception:
            logger.exception("Failed to deliver %s for trade %d", event, trade.id)

    def _require_trade(self, trade_id: int) -> Trade:
        trade = self.get_trade(trade_id)
        if trade is None:
            raise NotFoundError(f"Trade {trade_id} not found", trade_id=trade_id)
        return trade

    def _require_participant(self, trade_id: int, user_id: int) -> Trade:
        trade = self._require_trade(trade_id)
        if not trade.involves(user_id):
            raise ForbiddenError("Not authorized", trade_id=trade_id)
        return trade

    def _require_responder(self, trade_id: int, user_id: int, verb: str) -> Trade:
        """Load a pending trade the user may answer: a participant, not the proposer."""
        trade = self._require_trade(trade_id)
        if trade.proposer_id == user_id:
            raise ForbiddenError(f"Proposer cannot {verb} their own proposal", trade_id=trade_id)
        if not trade.involves(user_id):
            raise ForbiddenError("Not authorized", trade_id=trade_id)
        if trade.status is not TradeStatus.PENDING:
            raise InvalidStateError(
                f"Trade is {trade.status.value}, not pending", trade_id=trade_id
            )
        return trade

    def _update_pending(self, trade: Trade, assignments: str, params: tuple[Any, ...]) -> None:
        """Apply ``assignments`` only while the trade is still pending with the same proposer.

        The caller holds the write transaction. A transition that committed on
        another connection since ``trade`` was read leaves no row to update.
        """
        cursor = self._conn.execute(
            f"UPDATE trades SET {assignments}, updated_at = ? "
            "WHERE id = ? AND status = ? AND proposer_id = ?",
            (
                *params, to_db(self._clock()), trade.id,
                TradeStatus.PENDING.value, trade.proposer_id,
            ),
        )
        if cursor.rowcount == 1:
            return
        current = self._require_trade(trade.id)
        if current.status.is_terminal:
            raise InvalidStateError(
                f"Trade is already {current.status.value}", trade_id=trade.id
            )
        raise InvalidStateError(
            "Trade was countered in the meantime; reload it", trade_id=trade.id
        )

    def _check_books(
        self, book_ids: list[int], owner_id: int, side: str, trade_id: int | None = None
    ) -> None:
        """Each book must exist, belong to ``owner_id``, and be available."""
        books = self._ledger.get_books(book_ids)
        wrong = [i for i in book_ids if i not in books or books[i].owner_id != owner_id]
        if wrong:
            raise NotOwnerError(
                f"Some {side} books do not exist or do not belong to user {owner_id}: {wrong}",
                trade_id=trade_id,
                book_ids=wrong,
            )
        unavailable = [i for i in book_ids if not books[i].is_available]
        if unavailable:
            raise BookUnavailableError(
                f"Some {side} books are not available: {unavailable}",
                trade_id=trade_id,
                book_ids=unavailable,
            )

    def _check_lockable(self, book_ids: list[int], ignore_trade_id: int | None = None) -> None:
        for book_id in book_ids:
            if not self._locks.can_acquire(book_id, ignore_trade_id=ignore_trade_id):
                lock = self._locks.get_active_lock(book_id)
                raise BookAlreadyLockedError(
                    f"Book {book_id} is already locked for another trade",
                    book_id=book_id,
                    expires_at=lock.expires_at.isoformat() if lock else None,
                )

    def _lock_requested(
        self, trade_id: int, book_ids: list[int], owner_id: int, for_user_id: int, chat_id: int
    ) -> None:
        """Lock a trade's requested books and record interest. Caller holds the transaction."""
        try:
            self._locks.acquire_many(
                book_ids, owner_id, for_user_id, chat_id, trade_id, self._lock_duration
            )
        except ConflictError:
            raise
        except (ValidationFailedError, NotFoundError) as exc:
            raise ConflictError(
                f"Could not lock requested books: {exc.message}",
                trade_id=trade_id,
                **exc.context,
            ) from exc
        self._locks.record_interests(book_ids, for_user_id, chat_id, trade_id)

    # --- Queries ---

    def get_trade(self, trade_id: int) -> Trade | None:
        row = self._conn.execute("SELECT * FROM trades WHERE id = ?", (trade_id,)).fetchone()
        return row_to_trade(row) if row else None

    def view_trade(self, trade_id: int, acting_user_id: int) -> Trade:
        """Fetch a trade for one of its participants."""
        return self._require_participant(trade_id, acting_user_id)

    def list_trades(self, user_id: int, status: TradeStatus | str | None = None) -> list[Trade]:
        """Trades the user takes part in, newest first."""
        sql = "SELECT * FROM trades WHERE (participant1_id = ? OR participant2_id = ?)"
        params: list[object] = [user_id, user_id]
        if status is not None:
            try:
                params.append(TradeStatus(status).value)
            except ValueError as exc:
                raise ValidationFailedError(f"Unknown trade status '{status}'") from exc
            sql += " AND status = ?"
        cursor = self._conn.execute(sql + " ORDER BY created_at DESC, id DESC", params)
        return [row_to_trade(row) for row in cursor.fetchall()]

    def get_locks_for_trade(self, trade_id: int, acting_user_id: int) -> list[BookLock]:
        self._require_participant(trade_id, acting_user_id)
        return self._locks.locks_for_trade(trade_id)

    def trade_history(self, trade_id: int, acting_user_id: int) -> list[AuditEntry]:
        self._require_participant(trade_id, acting_user_id)
        return self._transfer.trade_history(trade_id)

    # --- Transitions ---

    def create_trade(
        self,
        proposer_id: int,
        match_id: int,
        offered_ids: Iterable[int],
        requested_ids: Iterable[int],
    ) -> Trade:
        """Propose a trade to the counterparty of one of the proposer's matches.

        All preconditions are checked before anything is written. The trade
        row, the locks on every requested book, and one interest record per
        requested book are then created in a single transaction.

        Raises:
            NotFoundError: The match does not exist or is not the proposer's.
            ValidationFailedError: No chat between the pair, an empty or
                duplicated proposal, or a book with the wrong owner or unavailable.
            ConflictError: A requested book is locked by another trade.
        """
        offered = list(offered_ids)
        requested = list(requested_ids)
        _check_proposal(offered, requested)

        match = MatchEngine(self._conn).get_match(match_id, proposer_id)
        counterparty_id = match.counterparty_user_id
        chat = self._ledger.find_chat(proposer_id, counterparty_id)
        if chat is None:
            raise ValidationFailedError("Chat must exist before creating trade")

        now = to_db(self._clock())
        with atomic(self._conn):
            self._check_books(offered, proposer_id, "offered")
            self._check_books(requested, counterparty_id, "requested")
            self._check_lockable(requested)

            low, high = sorted((proposer_id, counterparty_id))
            cursor = self._conn.execute(
                "INSERT INTO trades (participant1_id, participant2_id, proposer_id, chat_id, "
                "books_offered, books_requested, status, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    low, high, proposer_id, chat.id, json.dumps(offered), json.dumps(requested),
                    TradeStatus.PENDING.value, now, now,
                ),
            )
            trade_id: int = cursor.lastrowid  # type: ignore[assignment]
            self._lock_requested(trade_id, requested, counterparty_id, proposer_id, chat.id)

        trade = self._require_trade(trade_id)
        logger.info(
            "User %d proposed trade %d to user %d", proposer_id, trade_id, counterparty_id
        )
        self._notify(TRADE_PROPOSED, trade, counterparty_id)
        return trade

    def accept_trade(self, trade_id: int, acting_user_id: int) -> AcceptedTrade:
        """Accept a pending proposal and swap ownership of its books.

        If the transfer fails, the trade stays pending with its locks intact.

        Raises:
            NotFoundError, ForbiddenError, InvalidStateError: As for any response.
            ValidationFailedError: Ownership or availability changed since proposal.
            TransferFailedError: The swap did not commit.
        """
        trade = self._require_responder(trade_id, acting_user_id, "accept")
        result = self._transfer.transfer_books(
            TransferRequest(
                trade_id=trade.id,
                offered_books=trade.books_offered,
                requested_books=trade.books_requested,
                proposer_id=trade.proposer_id,
                recipient_id=trade.recipient_id,
            )
        )
        completed = self._require_trade(trade_id)
        self._notify(TRADE_ACCEPTED, completed, completed.proposer_id)
        return AcceptedTrade(trade=completed, transfer=result)

    def reject_trade(
        self, trade_id: int, acting_user_id: int, reason: str | None = None
    ) -> Trade:
        trade = self._require_responder(trade_id, acting_user_id, "reject")
        with atomic(self._conn):
            self._update_pending(
                trade, "status = ?, reject_reason = ?", (TradeStatus.REJECTED.value, reason)
            )
            self._locks.release_locks_for_trade(trade_id)
        logger.info("User %d rejected trade %d", acting_user_id, trade_id)
        rejected = self._require_trade(trade_id)
        self._notify(TRADE_REJECTED, rejected, trade.proposer_id)
        return rejected

    def cancel_trade(self, trade_id: int, acting_user_id: int) -> Trade:
        """Withdraw a pending proposal. Only its proposer may do this."""
        trade = self._require_participant(trade_id, acting_user_id)
        if trade.proposer_id != acting_user_id:
            raise ForbiddenError("Only the proposer can cancel a trade", trade_id=trade_id)
        if trade.status is not TradeStatus.PENDING:
            raise InvalidStateError(
                f"Cannot cancel a {trade.status.value} trade", trade_id=trade_id
            )
        with atomic(self._conn):
            self._update_pending(trade, "status = ?", (TradeStatus.CANCELLED.value,))
            self._locks.release_locks_for_trade(trade_id)
        logger.info("User %d cancelled trade %d", acting_user_id, trade_id)
        cancelled = self._require_trade(trade_id)
        self._notify(TRADE_CANCELLED, cancelled, trade.recipient_id)
        return cancelled

    def counter_propose(
        self,
        trade_id: int,
        acting_user_id: int,
        offered_ids: Iterable[int],
        requested_ids: Iterable[int],
    ) -> Trade:
        """Answer a proposal with different terms, updating the trade in place.

        The counter-proposer becomes the proposer: ``offered_ids`` are their
        own books, ``requested_ids`` belong to the original proposer. The old
        locks are swapped for new ones in one transaction; on conflict the
        original locks and terms remain.
        """
        trade = self._require_responder(trade_id, acting_user_id, "counter")
        offered = list(offered_ids)
        requested = list(requested_ids)
        _check_proposal(offered, requested)
        original_proposer = trade.proposer_id

        with atomic(self._conn):
            self._update_pending(
                trade,
                "proposer_id = ?, books_offered = ?, books_requested = ?",
                (acting_user_id, json.dumps(offered), json.dumps(requested)),
            )
            self._check_books(offered, acting_user_id, "offered", trade_id)
            self._check_books(requested, original_proposer, "requested", trade_id)
            self._check_lockable(requested, ignore_trade_id=trade_id)

            self._locks.release_locks_for_trade(trade_id)
            self._lock_requested(
                trade_id, requested, original_proposer, acting_user_id, trade.chat_id
            )

        logger.info("User %d countered trade %d", acting_user_id, trade_id)
        countered = self._require_trade(trade_id)
        self._notify(TRADE_COUNTERED, countered, original_proposer)
        return countered

    def extend_trade_locks(
        self,
        trade_id: int,
        acting_user_id: int,
        additional_hours: int = DEFAULT_EXTENSION_HOURS,
    ) -> ExtensionReport:
        """Extend each of a pending trade's locks independently.

        A lock that cannot be extended (expired, or out of extensions) is
        reported in ``failed`` without stopping the others.

        Raises:
            NotFoundError: The trade does not exist or holds no locks.
            ForbiddenError: The user is not a participant.
            InvalidStateError: The trade is not pending.
        """
        trade = self._require_participant(trade_id, acting_user_id)
        if trade.status is not TradeStatus.PENDING:
            raise InvalidStateError(
                "Can only extend locks on pending trades", trade_id=trade_id
            )
        if additional_hours <= 0:
            raise ValidationFailedError("additional_hours must be positive")

        locks = self._locks.locks_for_trade(trade_id)
        if not locks:
            raise NotFoundError("No locks found for this trade", trade_id=trade_id)

        report = ExtensionReport()
        for lock in locks:
            try:
                report.extended.append(self._locks.extend_lock(lock.id, additional_hours))
            except (InvalidStateError, NotFoundError) as exc:
                logger.info("Could not extend lock %d: %s", lock.id, exc.message)
                report.failed.append((lock, exc))
        return report

    # --- Ratings ---

    def rate_trade(
        self, trade_id: int, acting_user_id: int, score: int, comment: str | None = None
    ) -> Rating:
        """Rate the other participant of a completed trade. Once per participant."""
        if not 1 <= score <= 5:
            raise ValidationFailedError("Rating must be between 1 and 5")
        trade = self._require_trade(trade_id)
        if trade.status is not TradeStatus.COMPLETED:
            raise InvalidStateError("Can only rate completed trades", trade_id=trade_id)
        if not trade.involves(acting_user_id):
            raise ForbiddenError("Not authorized", trade_id=trade_id)

        rated = (
            trade.participant2_id
            if trade.participant1_id == acting_user_id
            else trade.participant1_id
        )
        try:
            cursor = self._conn.execute(
                "INSERT INTO ratings (trade_id, from_user_id, to_user_id, score, comment) "
                "VALUES (?, ?, ?, ?, ?)",
                (trade_id, acting_user_id, rated, score, comment or None),
            )
        except sqlite3.IntegrityError as exc:
            raise ConflictError("You have already rated this trade", trade_id=trade_id) from exc
        row = self._conn.execute(
            "SELECT * FROM ratings WHERE id = ?", (cursor.lastrowid,)
        ).fetchone()
        return row_to_rating(row)

    def ratings_for_user(self, user_id: int) -> RatingSummary:
        cursor = self._conn.execute(
            "SELECT * FROM ratings WHERE to_user_id = ? ORDER BY created_at DESC, id DESC",
            (user_id,),
        )
        ratings = [row_to_rating(row) for row in cursor.fetchall()]
        average = sum(r.score for r in ratings) / len(ratings) if ratings else None
        return RatingSummary(ratings=ratings, average=average)
