# ABOUTME: Unit tests for converting marketplace rows to dataclasses and stored timestamps.
# ABOUTME: Validates JSON columns, NULL handling, scope mapping, and timestamp ordering.

import json
from datetime import datetime, timedelta, timezone

import pytest

from bookswap.clock import from_db, to_db
from bookswap.db.mapping import (
    history_to_json,
    matching_books_to_json,
    row_to_book,
    row_to_lock,
    row_to_match,
)
from bookswap.models import ListType, LockExtension, MatchingBook, MatchType


def _book_row(**overrides) -> dict:
    row = {
        "id": 1, "owner_id": 2, "title": "Dune", "author": "Frank Herbert",
        "list_type": "inventory", "isbn": None, "condition": "used", "description": None,
        "is_available": 1, "room_id": None, "created_at": "", "updated_at": "",
    }
    row.update(overrides)
    return row


class TestRowToBook:
    """Tests for row_to_book conversion."""

    def test_null_room_is_global(self) -> None:
        book = row_to_book(_book_row())
        assert book.scope.is_global
        assert book.list_type is ListType.INVENTORY
        assert book.description == ""

    def test_room_and_availability(self) -> None:
        book = row_to_book(_book_row(room_id="scifi", is_available=0))
        assert book.scope.room_id == "scifi"
        assert book.is_available is False


class TestRowToMatch:
    """Tests for row_to_match conversion."""

    def test_matching_books_round_trip(self) -> None:
        pairs = [
            MatchingBook("Foundation", "Isaac Asimov", counterparty_book_id=3),
            MatchingBook("Dune", "Frank Herbert", source_book_id=1, room_id="scifi"),
        ]
        row = {
            "id": 5, "owner_user_id": 1, "counterparty_user_id": 2,
            "match_type": "perfect", "matching_books": matching_books_to_json(pairs),
            "created_at": "",
        }
        match = row_to_match(row)
        assert match.match_type is MatchType.PERFECT
        assert match.matching_books == pairs
        assert match.is_hidden is False

    def test_hidden_flag_from_join(self) -> None:
        row = {
            "id": 5, "owner_user_id": 1, "counterparty_user_id": 2,
            "match_type": "partial_type1", "matching_books": "[]",
            "created_at": "", "is_hidden": 1,
        }
        assert row_to_match(row).is_hidden is True

    def test_mirrored_swaps_sides(self) -> None:
        pair = MatchingBook("Dune", "Frank Herbert", source_book_id=1, counterparty_book_id=None)
        flipped = pair.mirrored()
        assert (flipped.source_book_id, flipped.counterparty_book_id) == (None, 1)


class TestLockHistory:
    """Tests for the lock extension history column."""

    def test_history_round_trip(self) -> None:
        now = datetime(2030, 5, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)
        history = [LockExtension(now, 24, now - timedelta(hours=1))]
        row = {
            "id": 1, "book_id": 3, "owner_id": 2, "locked_for_user_id": 1, "chat_id": 1,
            "trade_id": 1, "duration_hours": 48, "expires_at": to_db(now + timedelta(hours=23)),
            "extension_history": history_to_json(history), "created_at": "",
        }
        lock = row_to_lock(row)
        assert lock.extension_history == history
        assert json.loads(row["extension_history"])[0]["additional_hours"] == 24


class TestTimestamps:
    """Tests for stored timestamp text."""

    def test_aware_values_stored_as_utc(self) -> None:
        plus_two = timezone(timedelta(hours=2))
        moment = datetime(2030, 1, 1, 14, 0, tzinfo=plus_two)
        assert to_db(moment) == "2030-01-01T12:00:00.000000"
        assert from_db(to_db(moment)) == moment

    def test_lexical_order_is_chronological(self) -> None:
        early = datetime(2030, 1, 1, 9, 0, tzinfo=timezone.utc)
        late = early + timedelta(microseconds=1)
        assert to_db(early) < to_db(late)

    def test_seconds_only_format(self) -> None:
        assert from_db("2030-01-01T00:00:00") == datetime(2030, 1, 1, tzinfo=timezone.utc)

    def test_empty_and_garbage(self) -> None:
        assert from_db(None) is None
        with pytest.raises(ValueError):
            from_db("yesterday")
