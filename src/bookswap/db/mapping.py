# ABOUTME: Converts between SQLite rows and the marketplace dataclasses.
# ABOUTME: Handles JSON serialization for list fields (book id lists, matching books, lock history).

import json
from typing import Any

from bookswap.clock import from_db, to_db
from bookswap.models import (
    AuditEntry,
    Book,
    BookInterest,
    BookLock,
    Chat,
    ListType,
    LockExtension,
    Match,
    MatchingBook,
    MatchType,
    Rating,
    Scope,
    Trade,
    TradeStatus,
    User,
)


def row_to_user(row: Any) -> User:
    return User(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        location=row["location"],
        created_at=row["created_at"],
    )


def row_to_book(row: Any) -> Book:
    """Convert a books row to a Book. A NULL room_id means the global scope."""
    return Book(
        id=row["id"],
        owner_id=row["owner_id"],
        title=row["title"],
        author=row["author"],
        list_type=ListType(row["list_type"]),
        isbn=row["isbn"],
        condition=row["condition"],
        description=row["description"] or "",
        is_available=bool(row["is_available"]),
        scope=Scope(room_id=row["room_id"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def row_to_chat(row: Any) -> Chat:
    return Chat(
        id=row["id"],
        participant1_id=row["participant1_id"],
        participant2_id=row["participant2_id"],
        status=row["status"],
        created_at=row["created_at"],
    )


def matching_books_to_json(books: list[MatchingBook]) -> str:
    """Serialize matching book pairs for the matches.matching_books column."""
    return json.dumps([
        {
            "source_book_id": mb.source_book_id,
            "counterparty_book_id": mb.counterparty_book_id,
            "title": mb.title,
            "author": mb.author,
            "room_id": mb.room_id,
        }
        for mb in books
    ])


def row_to_match(row: Any) -> Match:
    """Convert a matches row, optionally joined with hidden_matches, to a Match."""
    raw_books = json.loads(row["matching_books"]) if row["matching_books"] else []
    keys = row.keys()
    return Match(
        id=row["id"],
        owner_user_id=row["owner_user_id"],
        counterparty_user_id=row["counterparty_user_id"],
        match_type=MatchType(row["match_type"]),
        matching_books=[
            MatchingBook(
                title=item["title"],
                author=item["author"],
                source_book_id=item.get("source_book_id"),
                counterparty_book_id=item.get("counterparty_book_id"),
                room_id=item.get("room_id"),
            )
            for item in raw_books
        ],
        is_hidden=bool(row["is_hidden"]) if "is_hidden" in keys else False,
        created_at=row["created_at"],
    )


def history_to_json(history: list[LockExtension]) -> str:
    return json.dumps([
        {
            "extended_at": to_db(entry.extended_at),
            "additional_hours": entry.additional_hours,
            "previous_expires_at": to_db(entry.previous_expires_at),
        }
        for entry in history
    ])


def row_to_lock(row: Any) -> BookLock:
    """Convert a book_locks row to a BookLock with parsed expiry and history."""
    raw_history = json.loads(row["extension_history"]) if row["extension_history"] else []
    return BookLock(
        id=row["id"],
        book_id=row["book_id"],
        owner_id=row["owner_id"],
        locked_for_user_id=row["locked_for_user_id"],
        chat_id=row["chat_id"],
        trade_id=row["trade_id"],
        duration_hours=row["duration_hours"],
        expires_at=from_db(row["expires_at"]),  # type: ignore[arg-type]
        extension_history=[
            LockExtension(
                extended_at=from_db(item["extended_at"]),  # type: ignore[arg-type]
                additional_hours=item["additional_hours"],
                previous_expires_at=from_db(item["previous_expires_at"]),  # type: ignore[arg-type]
            )
            for item in raw_history
        ],
        created_at=row["created_at"],
    )


def row_to_trade(row: Any) -> Trade:
    return Trade(
        id=row["id"],
        participant1_id=row["participant1_id"],
        participant2_id=row["participant2_id"],
        proposer_id=row["proposer_id"],
        chat_id=row["chat_id"],
        books_offered=json.loads(row["books_offered"]),
        books_requested=json.loads(row["books_requested"]),
        status=TradeStatus(row["status"]),
        reject_reason=row["reject_reason"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        completed_at=row["completed_at"],
    )


def row_to_audit(row: Any) -> AuditEntry:
    return AuditEntry(
        id=row["id"],
        book_id=row["book_id"],
        from_user_id=row["from_user_id"],
        to_user_id=row["to_user_id"],
        trade_id=row["trade_id"],
        action=row["action"],
        metadata=json.loads(row["metadata"]) if row["metadata"] else {},
        created_at=row["created_at"],
    )


def row_to_interest(row: Any) -> BookInterest:
    return BookInterest(
        id=row["id"],
        book_id=row["book_id"],
        interested_user_id=row["interested_user_id"],
        chat_id=row["chat_id"],
        trade_id=row["trade_id"],
        created_at=row["created_at"],
    )


def row_to_rating(row: Any) -> Rating:
    return Rating(
        id=row["id"],
        trade_id=row["trade_id"],
        from_user_id=row["from_user_id"],
        to_user_id=row["to_user_id"],
        score=row["score"],
        comment=row["comment"],
        created_at=row["created_at"],
    )
