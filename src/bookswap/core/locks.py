# ABOUTME: Book lock manager: time-bounded exclusive holds on books tied to trade proposals.
# ABOUTME: Guarantees at most one active lock per book, even under concurrent acquisition.

import logging
import sqlite3
from collections import defaultdict
from collections.abc import Iterable
from datetime import timedelta

from bookswap.clock import Clock, to_db, utcnow
from bookswap.db.connection import atomic
from bookswap.db.mapping import history_to_json, row_to_interest, row_to_lock
from bookswap.errors import (
    BookAlreadyLockedError,
    BookUnavailableError,
    LockExpiredError,
    MaxExtensionsReachedError,
    NotFoundError,
    NotOwnerError,
    ValidationFailedError,
)
from bookswap.models import BookInterest, BookLock, LockExtension

logger = logging.getLogger(__name__)

DEFAULT_LOCK_DURATION_HOURS = 48
MAX_EXTENSIONS = 2


class BookLockManager:
    """Grants, extends, queries, and expires locks on books.

    A lock is active while ``expires_at > now``. Acquisition checks and
    inserts inside one ``BEGIN IMMEDIATE`` transaction, so two connections
    racing for the same book are serialized and the loser sees the winner's
    lock. The unique index on ``book_locks.book_id`` backs this up at the
    storage level.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        clock: Clock = utcnow,
        max_extensions: int = MAX_EXTENSIONS,
        default_duration_hours: int = DEFAULT_LOCK_DURATION_HOURS,
    ) -> None:
        self._conn = conn
        self._clock = clock
        self._max_extensions = max_extensions
        self._default_duration = default_duration_hours

    @property
    def max_extensions(self) -> int:
        return self._max_extensions

    # --- Queries ---

    def get_lock(self, lock_id: int) -> BookLock | None:
        row = self._conn.execute("SELECT * FROM book_locks WHERE id = ?", (lock_id,)).fetchone()
        return row_to_lock(row) if row else None

    def get_active_lock(self, book_id: int) -> BookLock | None:
        """The lock currently holding a book, or None if it is free."""
        row = self._conn.execute(
            "SELECT * FROM book_locks WHERE book_id = ? AND expires_at > ?",
            (book_id, to_db(self._clock())),
        ).fetchone()
        return row_to_lock(row) if row else None

    def can_acquire(self, book_id: int, *, ignore_trade_id: int | None = None) -> bool:
        """Read-only pre-check: is the book free of active locks?

        Args:
            book_id: The book to check.
            ignore_trade_id: Treat locks held by this trade as free. Used when
                a trade is about to replace its own locks.
        """
        lock = self.get_active_lock(book_id)
        if lock is None:
            return True
        return ignore_trade_id is not None and lock.trade_id == ignore_trade_id

    def locks_for_trade(self, trade_id: int) -> list[BookLock]:
        cursor = self._conn.execute(
            "SELECT * FROM book_locks WHERE trade_id = ? ORDER BY id", (trade_id,)
        )
        return [row_to_lock(row) for row in cursor.fetchall()]

    def locks_for_owner(self, owner_id: int) -> list[BookLock]:
        """Active locks on a user's books, soonest expiry first."""
        cursor = self._conn.execute(
            "SELECT * FROM book_locks WHERE owner_id = ? AND expires_at > ? "
            "ORDER BY expires_at",
            (owner_id, to_db(self._clock())),
        )
        return [row_to_lock(row) for row in cursor.fetchall()]

    # --- Acquisition ---

    def _check_and_insert(
        self,
        book_id: int,
        owner_id: int,
        locked_for_user_id: int,
        chat_id: int,
        trade_id: int,
        duration_hours: int,
    ) -> BookLock:
        """Precondition checks and insert. Caller must hold a transaction."""
        row = self._conn.execute(
            "SELECT owner_id, is_available FROM books WHERE id = ?", (book_id,)
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Book {book_id} not found", book_id=book_id)
        if not row["is_available"]:
            raise BookUnavailableError(f"Book {book_id} is not available", book_id=book_id)
        if row["owner_id"] != owner_id:
            raise NotOwnerError(
                f"User {owner_id} does not own book {book_id}", book_id=book_id
            )

        now = self._clock()
        active = self.get_active_lock(book_id)
        if active is not None:
            raise BookAlreadyLockedError(
                f"Book {book_id} is already locked for another trade",
                book_id=book_id,
                expires_at=active.expires_at.isoformat(),
            )

        # Reclaim an expired lock row so the unique index admits the new one.
        self._conn.execute(
            "DELETE FROM book_locks WHERE book_id = ? AND expires_at <= ?",
            (book_id, to_db(now)),
        )
        expires_at = now + timedelta(hours=duration_hours)
        try:
            cursor = self._conn.execute(
                "INSERT INTO book_locks "
                "(book_id, owner_id, locked_for_user_id, chat_id, trade_id, "
                "duration_hours, expires_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    book_id, owner_id, locked_for_user_id, chat_id, trade_id,
                    duration_hours, to_db(expires_at),
                ),
            )
        except sqlite3.IntegrityError as exc:
            if "UNIQUE constraint failed: book_locks.book_id" in str(exc):
                raise BookAlreadyLockedError(
                    f"Book {book_id} is already locked for another trade", book_id=book_id
                ) from exc
            raise

        lock = self.get_lock(cursor.lastrowid)  # type: ignore[arg-type]
        assert lock is not None
        return lock

    def acquire_lock(
        self,
        book_id: int,
        owner_id: int,
        locked_for_user_id: int,
        chat_id: int,
        trade_id: int,
        duration_hours: int | None = None,
    ) -> BookLock:
        """Lock a book for a trade proposal.

        Checks, in order: the book exists, it is available, ``owner_id`` owns
        it, and no active lock exists. Any failure leaves no trace.

        Raises:
            NotFoundError: The book does not exist.
            BookUnavailableError: The book is marked unavailable.
            NotOwnerError: ``owner_id`` is not the current owner.
            BookAlreadyLockedError: Another active lock holds the book.
        """
        hours = self._default_duration if duration_hours is None else duration_hours
        if hours <= 0:
            raise ValidationFailedError("Lock duration must be positive")
        with atomic(self._conn):
            lock = self._check_and_insert(
                book_id, owner_id, locked_for_user_id, chat_id, trade_id, hours
            )
        logger.info(
            "Locked book %d for trade %d until %s", book_id, trade_id, lock.expires_at.isoformat()
        )
        return lock

    def acquire_many(
        self,
        book_ids: Iterable[int],
        owner_id: int,
        locked_for_user_id: int,
        chat_id: int,
        trade_id: int,
        duration_hours: int | None = None,
    ) -> list[BookLock]:
        """Lock several books for one trade as a single all-or-nothing batch.

        Inside a caller's transaction this runs as a savepoint, so a failure
        also leaves the caller free to roll back its own writes.

        Raises:
            The first error any single acquisition raises; no lock is kept.
        """
        hours = self._default_duration if duration_hours is None else duration_hours
        if hours <= 0:
            raise ValidationFailedError("Lock duration must be positive")
        with atomic(self._conn):
            locks = [
                self._check_and_insert(
                    book_id, owner_id, locked_for_user_id, chat_id, trade_id, hours
                )
                for book_id in book_ids
            ]
        logger.info("Locked %d book(s) for trade %d", len(locks), trade_id)
        return locks

    # --- Extension ---

    def extend_lock(self, lock_id: int, additional_hours: int) -> BookLock:
        """Push a lock's expiry back by ``additional_hours``.

        Only an unexpired lock can be extended, at most ``max_extensions``
        times. Each extension is appended to the lock's history with the
        expiry it replaced.

        Raises:
            ValidationFailedError: ``additional_hours`` is not positive.
            NotFoundError: No such lock.
            LockExpiredError: The lock is already past its expiry.
            MaxExtensionsReachedError: The extension cap is used up.
        """
        if additional_hours <= 0:
            raise ValidationFailedError("additional_hours must be positive")

        with atomic(self._conn):
            lock = self.get_lock(lock_id)
            if lock is None:
                raise NotFoundError(f"Lock {lock_id} not found", lock_id=lock_id)

            now = self._clock()
            if not lock.is_active(now):
                raise LockExpiredError(
                    f"Lock {lock_id} on book {lock.book_id} has expired; "
                    "the trade must be proposed again",
                    lock_id=lock_id,
                    book_id=lock.book_id,
                )
            if len(lock.extension_history) >= self._max_extensions:
                raise MaxExtensionsReachedError(
                    f"Lock {lock_id} on book {lock.book_id} already has the maximum "
                    f"of {self._max_extensions} extensions",
                    lock_id=lock_id,
                    book_id=lock.book_id,
                )

            history = [
                *lock.extension_history,
                LockExtension(
                    extended_at=now,
                    additional_hours=additional_hours,
                    previous_expires_at=lock.expires_at,
                ),
            ]
            new_expiry = lock.expires_at + timedelta(hours=additional_hours)
            self._conn.execute(
                "UPDATE book_locks SET expires_at = ?, extension_history = ? WHERE id = ?",
                (to_db(new_expiry), history_to_json(history), lock_id),
            )

        logger.info("Extended lock %d by %dh", lock_id, additional_hours)
        extended = self.get_lock(lock_id)
        assert extended is not None
        return extended

    # --- Release ---

    def release_locks_for_trade(self, trade_id: int) -> int:
        """Delete every lock tied to a trade. Idempotent; returns the count removed."""
        cursor = self._conn.execute("DELETE FROM book_locks WHERE trade_id = ?", (trade_id,))
        if cursor.rowcount:
            logger.info("Released %d lock(s) for trade %d", cursor.rowcount, trade_id)
        return cursor.rowcount

    def cleanup_expired_locks(self) -> int:
        """Delete every lock already past its expiry. Returns the count removed."""
        cursor = self._conn.execute(
            "DELETE FROM book_locks WHERE expires_at < ?", (to_db(self._clock()),)
        )
        if cursor.rowcount:
            logger.info("Swept %d expired lock(s)", cursor.rowcount)
        return cursor.rowcount

    # --- Interests ---

    def record_interests(
        self, book_ids: Iterable[int], interested_user_id: int, chat_id: int, trade_id: int
    ) -> None:
        self._conn.executemany(
            "INSERT INTO book_interests (book_id, interested_user_id, chat_id, trade_id) "
            "VALUES (?, ?, ?, ?)",
            [(book_id, interested_user_id, chat_id, trade_id) for book_id in book_ids],
        )

    def competing_interests(self, book_id: int) -> list[BookInterest]:
        """Every recorded claim on a book, oldest first."""
        cursor = self._conn.execute(
            "SELECT * FROM book_interests WHERE book_id = ? ORDER BY created_at, id",
            (book_id,),
        )
        return [row_to_interest(row) for row in cursor.fetchall()]

    def interests_for_owner(self, owner_id: int) -> dict[int, list[BookInterest]]:
        """Claims on a user's inventory books, grouped by book id."""
        cursor = self._conn.execute(
            "SELECT bi.* FROM book_interests bi "
            "JOIN books b ON b.id = bi.book_id "
            "WHERE b.owner_id = ? AND b.list_type = 'inventory' "
            "ORDER BY bi.created_at, bi.id",
            (owner_id,),
        )
        grouped: dict[int, list[BookInterest]] = defaultdict(list)
        for row in cursor.fetchall():
            grouped[row["book_id"]].append(row_to_interest(row))
        return dict(grouped)
