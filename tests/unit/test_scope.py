# ABOUTME: Unit tests for scope resolution between the global market and rooms.
# ABOUTME: Covers in_same_scope, scope parsing, and the Scope value type.

import pytest

from bookswap.core.scope import in_same_scope, parse_scope, scopes_compatible
from bookswap.models import GLOBAL, Book, ListType, Scope


def _book(scope: Scope) -> Book:
    return Book(
        id=1, owner_id=1, title="Dune", author="Frank Herbert",
        list_type=ListType.INVENTORY, scope=scope,
    )


class TestInSameScope:
    """Tests for the book-to-book scope check."""

    def test_both_global(self) -> None:
        """Two global books are comparable."""
        assert in_same_scope(_book(GLOBAL), _book(GLOBAL))

    def test_same_room(self) -> None:
        """Two books in the same room are comparable."""
        assert in_same_scope(_book(Scope.room("scifi")), _book(Scope.room("scifi")))

    def test_global_versus_room(self) -> None:
        """A global book never compares with a room book, in either order."""
        assert not in_same_scope(_book(GLOBAL), _book(Scope.room("scifi")))
        assert not in_same_scope(_book(Scope.room("scifi")), _book(GLOBAL))

    def test_different_rooms(self) -> None:
        """Books in different rooms are not comparable."""
        assert not in_same_scope(_book(Scope.room("scifi")), _book(Scope.room("fantasy")))

    def test_scopes_compatible_is_symmetric(self) -> None:
        a, b = Scope.room("x"), GLOBAL
        assert scopes_compatible(a, b) == scopes_compatible(b, a)


class TestParseScope:
    """Tests for parsing scope strings from user input."""

    @pytest.mark.parametrize("value", [None, "", "  ", "global", "GLOBAL"])
    def test_global_forms(self, value: str | None) -> None:
        assert parse_scope(value).is_global

    def test_prefixed_room(self) -> None:
        assert parse_scope("room:scifi") == Scope.room("scifi")

    def test_bare_room(self) -> None:
        assert parse_scope("scifi") == Scope.room("scifi")

    def test_empty_room_prefix_rejected(self) -> None:
        """A room prefix with no id is an error, not the global market."""
        with pytest.raises(ValueError):
            parse_scope("room:")


class TestScope:
    """Tests for the Scope value type."""

    def test_str(self) -> None:
        assert str(GLOBAL) == "global"
        assert str(Scope.room("scifi")) == "room:scifi"

    def test_room_requires_id(self) -> None:
        with pytest.raises(ValueError):
            Scope.room("")
