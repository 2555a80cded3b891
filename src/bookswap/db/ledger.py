# ABOUTME: CRUD operations for users, books, and chats in the marketplace ledger.
# ABOUTME: Every mutation that changes match evidence notifies one central invalidation hook.

import sqlite3
from collections.abc import Callable, Iterable

from bookswap.clock import Clock, to_db, utcnow
from bookswap.db.connection import atomic
from bookswap.db.mapping import row_to_book, row_to_chat, row_to_user
from bookswap.errors import NotFoundError, ValidationFailedError
from bookswap.models import GLOBAL, Book, Chat, ListType, Scope, User

ChangeHook = Callable[[Iterable[int]], None]

# Scope filters accepted by list_books, mirroring the book listing routes.
SCOPE_FILTERS = ("global", "room", "not-room")


class DuplicateUserError(ValidationFailedError):
    """Raised when registering a user with an email that already exists."""

    kind = "duplicate_user"


class BookLedger:
    """Wraps a sqlite3 connection and provides typed CRUD for users, books, and chats.

    ``on_change`` receives the ids of users whose match evidence changed. It
    is called after the mutation has committed, so a failing hook can never
    undo or block a ledger write.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        on_change: ChangeHook | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._conn = conn
        self._on_change = on_change
        self._clock = clock

    def _invalidate(self, *user_ids: int) -> None:
        if self._on_change is not None:
            self._on_change(user_ids)

    # --- Users ---

    def add_user(self, name: str, email: str, location: str) -> User:
        """Register a user.

        Raises:
            DuplicateUserError: If the email is already registered.
        """
        try:
            cursor = self._conn.execute(
                "INSERT INTO users (name, email, location) VALUES (?, ?, ?)",
                (name, email, location),
            )
        except sqlite3.IntegrityError as exc:
            if "UNIQUE constraint failed: users.email" in str(exc):
                raise DuplicateUserError(f"User with email {email} already exists") from exc
            raise
        return self.require_user(cursor.lastrowid)  # type: ignore[arg-type]

    def get_user(self, user_id: int) -> User | None:
        cursor = self._conn.execute("SELECT * FROM users WHERE id = ?", (user_id,))
        row = cursor.fetchone()
        return row_to_user(row) if row else None

    def require_user(self, user_id: int) -> User:
        user = self.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found", user_id=user_id)
        return user

    def list_users(self) -> list[User]:
        cursor = self._conn.execute("SELECT * FROM users ORDER BY id")
        return [row_to_user(row) for row in cursor.fetchall()]

    # --- Books ---

    def add_book(
        self,
        owner_id: int,
        title: str,
        author: str,
        list_type: ListType | str,
        *,
        isbn: str | None = None,
        condition: str | None = None,
        description: str = "",
        scope: Scope = GLOBAL,
    ) -> Book:
        """Add a book to a user's inventory or wishlist.

        Wishlist entries default to condition "new", inventory to "used".

        Raises:
            NotFoundError: If the owner does not exist.
            ValidationFailedError: If title or author is blank.
        """
        list_type = ListType(list_type)
        if not title.strip() or not author.strip():
            raise ValidationFailedError("Title and author are required")
        self.require_user(owner_id)

        if condition is None:
            condition = "new" if list_type is ListType.WISHLIST else "used"

        cursor = self._conn.execute(
            "INSERT INTO books "
            "(owner_id, title, author, isbn, condition, description, list_type, room_id) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                owner_id, title.strip(), author.strip(), isbn or None, condition,
                description, list_type.value, scope.room_id,
            ),
        )
        book = self.require_book(cursor.lastrowid)  # type: ignore[arg-type]
        self._invalidate(owner_id)
        return book

    def get_book(self, book_id: int) -> Book | None:
        """Retrieve a book by its row ID."""
        cursor = self._conn.execute("SELECT * FROM books WHERE id = ?", (book_id,))
        row = cursor.fetchone()
        return row_to_book(row) if row else None

    def require_book(self, book_id: int) -> Book:
        book = self.get_book(book_id)
        if book is None:
            raise NotFoundError(f"Book {book_id} not found", book_id=book_id)
        return book

    def get_books(self, book_ids: Iterable[int]) -> dict[int, Book]:
        """Fetch several books at once, keyed by id. Missing ids are absent."""
        ids = list(book_ids)
        if not ids:
            return {}
        placeholders = ", ".join("?" for _ in ids)
        cursor = self._conn.execute(
            f"SELECT * FROM books WHERE id IN ({placeholders})", ids
        )
        return {row["id"]: row_to_book(row) for row in cursor.fetchall()}

    def list_books(
        self,
        owner_id: int,
        list_type: ListType | str | None = None,
        *,
        scope: str | None = None,
        room_id: str | None = None,
        available_only: bool = False,
    ) -> list[Book]:
        """List a user's books, newest first.

        Args:
            owner_id: Whose books to list.
            list_type: Restrict to inventory or wishlist.
            scope: "global" for books outside every room, "room" for books in
                ``room_id``, "not-room" for books not in ``room_id``.
            room_id: Room used by the room filters. A bare room_id without a
                scope behaves like scope="room".
            available_only: Skip books marked unavailable.
        """
        clauses = ["owner_id = ?"]
        params: list[object] = [owner_id]
        if list_type is not None:
            clauses.append("list_type = ?")
            params.append(ListType(list_type).value)
        if available_only:
            clauses.append("is_available = 1")

        if scope is not None and scope not in SCOPE_FILTERS:
            raise ValidationFailedError(f"Unknown scope filter '{scope}'")
        if scope == "global":
            clauses.append("room_id IS NULL")
        elif scope == "not-room" and room_id:
            clauses.append("(room_id IS NULL OR room_id != ?)")
            params.append(room_id)
        elif room_id:
            clauses.append("room_id = ?")
            params.append(room_id)

        cursor = self._conn.execute(
            f"SELECT * FROM books WHERE {' AND '.join(clauses)} ORDER BY created_at DESC, id DESC",
            params,
        )
        return [row_to_book(row) for row in cursor.fetchall()]

    def _require_owned(self, owner_id: int, book_id: int) -> Book:
        book = self.get_book(book_id)
        if book is None or book.owner_id != owner_id:
            raise NotFoundError(f"Book {book_id} not found", book_id=book_id)
        return book

    def remove_book(self, owner_id: int, book_id: int) -> None:
        """Delete one of the owner's books. Its locks and interests go with it.

        Raises:
            NotFoundError: If the book does not exist or belongs to someone else.
        """
        self._require_owned(owner_id, book_id)
        self._conn.execute("DELETE FROM books WHERE id = ?", (book_id,))
        self._invalidate(owner_id)

    def set_availability(self, owner_id: int, book_id: int, is_available: bool) -> Book:
        """Mark one of the owner's books available or unavailable for trading."""
        self._require_owned(owner_id, book_id)
        self._conn.execute(
            "UPDATE books SET is_available = ?, updated_at = ? WHERE id = ?",
            (int(is_available), to_db(self._clock()), book_id),
        )
        self._invalidate(owner_id)
        return self.require_book(book_id)

    def set_scope(
        self,
        owner_id: int,
        book_id: int,
        scope: Scope,
        description: str | None = None,
    ) -> Book:
        """Move a book between the global market and a room.

        The description text is preserved unless a new one is given.
        """
        book = self._require_owned(owner_id, book_id)
        text = book.description if description is None else description
        self._conn.execute(
            "UPDATE books SET room_id = ?, description = ?, updated_at = ? WHERE id = ?",
            (scope.room_id, text, to_db(self._clock()), book_id),
        )
        self._invalidate(owner_id)
        return self.require_book(book_id)

    # --- Chats ---

    def find_chat(self, user_a: int, user_b: int) -> Chat | None:
        """Return the chat between two users, in either order, if one exists."""
        low, high = sorted((user_a, user_b))
        cursor = self._conn.execute(
            "SELECT * FROM chats WHERE participant1_id = ? AND participant2_id = ?",
            (low, high),
        )
        row = cursor.fetchone()
        return row_to_chat(row) if row else None

    def open_chat(self, user_a: int, user_b: int) -> Chat:
        """Open a chat between two users. Idempotent per pair.

        Raises:
            ValidationFailedError: If both ids are the same user.
            NotFoundError: If either user does not exist.
        """
        if user_a == user_b:
            raise ValidationFailedError("Cannot open a chat with yourself")
        self.require_user(user_a)
        self.require_user(user_b)

        low, high = sorted((user_a, user_b))
        with atomic(self._conn):
            self._conn.execute(
                "INSERT OR IGNORE INTO chats (participant1_id, participant2_id) VALUES (?, ?)",
                (low, high),
            )
        chat = self.find_chat(low, high)
        assert chat is not None
        return chat
