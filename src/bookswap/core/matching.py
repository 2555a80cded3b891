# ABOUTME: Match engine: derives directed mutual-interest edges between co-located users.
# ABOUTME: Matches are a materialized view rebuilt wholesale per user, never edited in place.

import logging
import re
import sqlite3
from dataclasses import dataclass

from bookswap.core.scope import in_same_scope
from bookswap.db.connection import atomic
from bookswap.db.mapping import matching_books_to_json, row_to_book, row_to_match
from bookswap.errors import NotFoundError, ValidationFailedError
from bookswap.models import Book, ListType, Match, MatchingBook, MatchType

logger = logging.getLogger(__name__)

_ISBN_STRIP_RE = re.compile(r"[\s-]")

_UPSERT_MATCH = (
    "INSERT INTO matches (owner_user_id, counterparty_user_id, match_type, matching_books) "
    "VALUES (?, ?, ?, ?) "
    "ON CONFLICT (owner_user_id, counterparty_user_id) DO UPDATE SET "
    "match_type = excluded.match_type, matching_books = excluded.matching_books"
)

# Only users who list both inventory and wishlist books take part in matching.
_LISTS_BOTH_SIDES = (
    "EXISTS (SELECT 1 FROM books b WHERE b.owner_id = u.id AND b.list_type = 'inventory') "
    "AND EXISTS (SELECT 1 FROM books b WHERE b.owner_id = u.id AND b.list_type = 'wishlist')"
)

_SELECT_MATCHES = (
    "SELECT m.*, (h.owner_user_id IS NOT NULL) AS is_hidden FROM matches m "
    "LEFT JOIN hidden_matches h ON h.owner_user_id = m.owner_user_id "
    "AND h.counterparty_user_id = m.counterparty_user_id "
)


def _normalize_isbn(isbn: str) -> str:
    """Strip hyphens and spaces from an ISBN for comparison."""
    return _ISBN_STRIP_RE.sub("", isbn)


def books_match(wanted: Book, offered: Book) -> bool:
    """Whether an offered inventory book satisfies a wishlist entry.

    Same scope is required. Within it, equal ISBNs match, and so do equal
    titles and authors compared case-insensitively. A missing ISBN on either
    side falls back to title and author alone.
    """
    if not in_same_scope(wanted, offered):
        return False
    if (
        wanted.isbn
        and offered.isbn
        and _normalize_isbn(wanted.isbn) == _normalize_isbn(offered.isbn)
    ):
        return True
    return (
        wanted.title.casefold() == offered.title.casefold()
        and wanted.author.casefold() == offered.author.casefold()
    )


def find_wanted(offers: list[Book], wishes: list[Book]) -> list[Book]:
    """Inventory books from ``offers`` that match at least one of ``wishes``."""
    return [offer for offer in offers if any(books_match(wish, offer) for wish in wishes)]


def classify(they_offer_i_want: list[Book], i_offer_they_want: list[Book]) -> MatchType | None:
    if they_offer_i_want and i_offer_they_want:
        return MatchType.PERFECT
    if they_offer_i_want:
        return MatchType.PARTIAL_TYPE1
    if i_offer_they_want:
        return MatchType.PARTIAL_TYPE2
    return None


@dataclass
class MatchCandidate:
    """A computed edge from the recomputing user to one counterparty."""

    counterparty_user_id: int
    match_type: MatchType
    matching_books: list[MatchingBook]


class MatchEngine:
    """Computes, stores, and serves match edges for the marketplace."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    # --- Recompute ---

    def _books(self, user_id: int, list_type: ListType, *, available_only: bool) -> list[Book]:
        sql = "SELECT * FROM books WHERE owner_id = ? AND list_type = ?"
        if available_only:
            sql += " AND is_available = 1"
        cursor = self._conn.execute(sql + " ORDER BY id", (user_id, list_type.value))
        return [row_to_book(row) for row in cursor.fetchall()]

    def _candidate_ids(self, user_id: int, location: str) -> list[int]:
        """Co-located users with at least one inventory and one wishlist book."""
        cursor = self._conn.execute(
            "SELECT u.id FROM users u "
            "WHERE u.location = ? AND u.id != ? AND " + _LISTS_BOTH_SIDES + " ORDER BY u.id",
            (location, user_id),
        )
        return [row[0] for row in cursor.fetchall()]

    def compute_candidates(self, user_id: int) -> list[MatchCandidate]:
        """Compute the user's outgoing edges without touching stored matches.

        A user lacking either list gets none, the same as when they are
        considered as someone else's candidate.

        Raises:
            NotFoundError: If the user does not exist.
        """
        row = self._conn.execute(
            "SELECT u.location, (" + _LISTS_BOTH_SIDES + ") AS lists_both_sides "
            "FROM users u WHERE u.id = ?",
            (user_id,),
        ).fetchone()
        if row is None:
            raise NotFoundError(f"User {user_id} not found", user_id=user_id)
        if not row["lists_both_sides"]:
            logger.debug("User %d lacks an inventory or a wishlist; no matches", user_id)
            return []

        my_inventory = self._books(user_id, ListType.INVENTORY, available_only=True)
        my_wishlist = self._books(user_id, ListType.WISHLIST, available_only=False)

        results: list[MatchCandidate] = []
        for other_id in self._candidate_ids(user_id, row["location"]):
            their_inventory = self._books(other_id, ListType.INVENTORY, available_only=True)
            their_wishlist = self._books(other_id, ListType.WISHLIST, available_only=False)

            they_offer = find_wanted(their_inventory, my_wishlist)
            i_offer = find_wanted(my_inventory, their_wishlist)
            match_type = classify(they_offer, i_offer)
            if match_type is None:
                continue

            pairs = [
                MatchingBook(
                    title=book.title,
                    author=book.author,
                    counterparty_book_id=book.id,
                    room_id=book.scope.room_id,
                )
                for book in they_offer
            ]
            pairs += [
                MatchingBook(
                    title=book.title,
                    author=book.author,
                    source_book_id=book.id,
                    room_id=book.scope.room_id,
                )
                for book in i_offer
            ]
            results.append(MatchCandidate(other_id, match_type, pairs))
        return results

    def recompute_matches(self, user_id: int) -> list[Match]:
        """Rebuild every match edge touching the user, in one transaction.

        Both directions are cleared: the user's outgoing edges and every
        counterparty's edge back to the user, since they rest on the same
        evidence. Each new outgoing edge is written together with its
        reciprocal, which carries the inverse classification and mirrored
        book pairs. Hidden flags live apart and are untouched.

        Returns:
            The user's visible outgoing matches after the rebuild.

        Raises:
            NotFoundError: If the user does not exist.
        """
        with atomic(self._conn):
            candidates = self.compute_candidates(user_id)
            self._conn.execute(
                "DELETE FROM matches WHERE owner_user_id = ? OR counterparty_user_id = ?",
                (user_id, user_id),
            )
            for cand in candidates:
                self._conn.execute(
                    _UPSERT_MATCH,
                    (
                        user_id, cand.counterparty_user_id, cand.match_type.value,
                        matching_books_to_json(cand.matching_books),
                    ),
                )
                self._conn.execute(
                    _UPSERT_MATCH,
                    (
                        cand.counterparty_user_id, user_id, cand.match_type.inverse().value,
                        matching_books_to_json([mb.mirrored() for mb in cand.matching_books]),
                    ),
                )

        logger.info("Recomputed matches for user %d: %d edge(s)", user_id, len(candidates))
        return self.list_matches(user_id)

    # --- Queries ---

    def list_matches(
        self,
        user_id: int,
        *,
        scope: str | None = None,
        room_id: str | None = None,
        include_hidden: bool = False,
    ) -> list[Match]:
        """The user's outgoing matches, newest first.

        Args:
            scope: "global" keeps matches whose every book is outside rooms.
            room_id: Keeps matches with at least one book in that room.
            include_hidden: Also return matches the user has hidden.
        """
        if scope not in (None, "global", "room"):
            raise ValidationFailedError(f"Unknown scope filter '{scope}'")

        cursor = self._conn.execute(
            _SELECT_MATCHES + "WHERE m.owner_user_id = ? ORDER BY m.created_at DESC, m.id DESC",
            (user_id,),
        )
        matches = [row_to_match(row) for row in cursor.fetchall()]
        if not include_hidden:
            matches = [m for m in matches if not m.is_hidden]

        if scope == "global":
            matches = [
                m for m in matches
                if all(mb.room_id is None for mb in m.matching_books)
            ]
        elif room_id:
            matches = [
                m for m in matches
                if any(mb.room_id == room_id for mb in m.matching_books)
            ]
        return matches

    def get_match(self, match_id: int, owner_user_id: int) -> Match:
        """Fetch a match owned by the user.

        Raises:
            NotFoundError: If it does not exist or belongs to another user.
        """
        row = self._conn.execute(
            _SELECT_MATCHES + "WHERE m.id = ? AND m.owner_user_id = ?",
            (match_id, owner_user_id),
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Match {match_id} not found", match_id=match_id)
        return row_to_match(row)

    def matches_for_book(self, user_id: int, book_id: int) -> list[Match]:
        """Visible matches involving one of the user's own books.

        A wishlist book has no id on the edge, so it is found by title and author.

        Raises:
            NotFoundError: If the book does not exist or is not the user's.
        """
        row = self._conn.execute(
            "SELECT * FROM books WHERE id = ? AND owner_id = ?", (book_id, user_id)
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Book {book_id} not found", book_id=book_id)
        book = row_to_book(row)

        def involves(mb: MatchingBook) -> bool:
            return (
                book_id in (mb.source_book_id, mb.counterparty_book_id)
                or (
                    mb.title.casefold() == book.title.casefold()
                    and mb.author.casefold() == book.author.casefold()
                )
            )

        return [
            m for m in self.list_matches(user_id)
            if any(involves(mb) for mb in m.matching_books)
        ]

    # --- Hiding ---

    def hide_match(self, user_id: int, match_id: int) -> None:
        """Hide a match from the user's listings until explicitly unhidden."""
        match = self.get_match(match_id, user_id)
        self._conn.execute(
            "INSERT OR IGNORE INTO hidden_matches (owner_user_id, counterparty_user_id) "
            "VALUES (?, ?)",
            (user_id, match.counterparty_user_id),
        )

    def hide_all(self, user_id: int) -> int:
        """Hide every current match of the user. Returns how many were newly hidden."""
        cursor = self._conn.execute(
            "INSERT OR IGNORE INTO hidden_matches (owner_user_id, counterparty_user_id) "
            "SELECT owner_user_id, counterparty_user_id FROM matches WHERE owner_user_id = ?",
            (user_id,),
        )
        return cursor.rowcount

    def unhide_match(self, user_id: int, counterparty_user_id: int) -> bool:
        cursor = self._conn.execute(
            "DELETE FROM hidden_matches WHERE owner_user_id = ? AND counterparty_user_id = ?",
            (user_id, counterparty_user_id),
        )
        return cursor.rowcount > 0

    def clear_hidden(self, user_id: int) -> int:
        """Unhide everything the user has hidden. Returns the number cleared."""
        cursor = self._conn.execute(
            "DELETE FROM hidden_matches WHERE owner_user_id = ?", (user_id,)
        )
        return cursor.rowcount
