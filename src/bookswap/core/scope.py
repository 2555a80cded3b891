# ABOUTME: Scope resolution for matching: decides whether two books share a sub-market.
# ABOUTME: The global market and each room are independent; nothing crosses between them.

from bookswap.models import Book, Scope


def in_same_scope(book_a: Book, book_b: Book) -> bool:
    """Whether two books are comparable for matching.

    True when both are global, or both declare the identical room. Global
    versus Room(X), and Room(X) versus Room(Y) with X != Y, never compare.
    """
    return scopes_compatible(book_a.scope, book_b.scope)


def scopes_compatible(a: Scope, b: Scope) -> bool:
    return a.room_id == b.room_id


def parse_scope(value: str | None) -> Scope:
    """Parse a scope from user input: "", "global", or a room id ("room:X" or "X")."""
    if value is None:
        return Scope()
    text = value.strip()
    if not text or text.lower() == "global":
        return Scope()
    if text.startswith("room:"):
        text = text[len("room:"):]
    return Scope.room(text)
