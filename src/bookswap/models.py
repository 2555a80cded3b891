# ABOUTME: Core data structures for the bookswap marketplace.
# ABOUTME: Books, scopes, matches, locks, trades, and audit records exchanged between layers.

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ListType(str, Enum):
    INVENTORY = "inventory"
    WISHLIST = "wishlist"


class MatchType(str, Enum):
    PERFECT = "perfect"
    PARTIAL_TYPE1 = "partial_type1"  # counterparty has what the owner wants
    PARTIAL_TYPE2 = "partial_type2"  # owner has what the counterparty wants

    def inverse(self) -> "MatchType":
        """Classification of the same evidence seen from the other side."""
        if self is MatchType.PARTIAL_TYPE1:
            return MatchType.PARTIAL_TYPE2
        if self is MatchType.PARTIAL_TYPE2:
            return MatchType.PARTIAL_TYPE1
        return self


class TradeStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TradeStatus.COMPLETED, TradeStatus.REJECTED, TradeStatus.CANCELLED)


@dataclass(frozen=True)
class Scope:
    """Visibility partition of a book: the global market or one room.

    A ``room_id`` of None means Global.
    """

    room_id: str | None = None

    @classmethod
    def room(cls, room_id: str) -> "Scope":
        if not room_id:
            raise ValueError("room_id must be a non-empty string")
        return cls(room_id=room_id)

    @property
    def is_global(self) -> bool:
        return self.room_id is None

    def __str__(self) -> str:
        return "global" if self.room_id is None else f"room:{self.room_id}"


GLOBAL = Scope()


@dataclass
class User:
    id: int
    name: str
    email: str
    location: str
    created_at: str


@dataclass
class Book:
    """A book record: owned by exactly one user, listed as inventory or wishlist."""

    id: int
    owner_id: int
    title: str
    author: str
    list_type: ListType
    isbn: str | None = None
    condition: str = "used"
    description: str = ""
    is_available: bool = True
    scope: Scope = GLOBAL
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Chat:
    id: int
    participant1_id: int
    participant2_id: int
    status: str
    created_at: str

    def involves(self, user_id: int) -> bool:
        return user_id in (self.participant1_id, self.participant2_id)


@dataclass
class MatchingBook:
    """One matched title on a match edge, seen from the edge owner.

    ``source_book_id`` is the owner's inventory book the counterparty wants;
    ``counterparty_book_id`` is the counterparty's inventory book the owner wants.
    """

    title: str
    author: str
    source_book_id: int | None = None
    counterparty_book_id: int | None = None
    room_id: str | None = None

    def mirrored(self) -> "MatchingBook":
        return MatchingBook(
            title=self.title,
            author=self.author,
            source_book_id=self.counterparty_book_id,
            counterparty_book_id=self.source_book_id,
            room_id=self.room_id,
        )


@dataclass
class Match:
    id: int
    owner_user_id: int
    counterparty_user_id: int
    match_type: MatchType
    matching_books: list[MatchingBook] = field(default_factory=list)
    is_hidden: bool = False
    created_at: str = ""


@dataclass
class LockExtension:
    extended_at: datetime
    additional_hours: int
    previous_expires_at: datetime


@dataclass
class BookLock:
    id: int
    book_id: int
    owner_id: int
    locked_for_user_id: int
    chat_id: int
    trade_id: int
    duration_hours: int
    expires_at: datetime
    extension_history: list[LockExtension] = field(default_factory=list)
    created_at: str = ""

    def is_active(self, now: datetime) -> bool:
        return self.expires_at > now


@dataclass
class Trade:
    """A trade proposal. Offered/requested book ids are relative to ``proposer_id``."""

    id: int
    participant1_id: int
    participant2_id: int
    proposer_id: int
    chat_id: int
    books_offered: list[int]
    books_requested: list[int]
    status: TradeStatus
    reject_reason: str | None = None
    created_at: str = ""
    updated_at: str = ""
    completed_at: str | None = None

    @property
    def recipient_id(self) -> int:
        """The participant who did not make the current proposal."""
        if self.proposer_id == self.participant1_id:
            return self.participant2_id
        return self.participant1_id

    def involves(self, user_id: int) -> bool:
        return user_id in (self.participant1_id, self.participant2_id)


@dataclass
class AuditEntry:
    id: int
    book_id: int
    from_user_id: int
    to_user_id: int
    trade_id: int
    action: str
    metadata: dict[str, Any]
    created_at: str


@dataclass
class BookInterest:
    id: int
    book_id: int
    interested_user_id: int
    chat_id: int
    trade_id: int
    created_at: str


@dataclass
class Rating:
    id: int
    trade_id: int
    from_user_id: int
    to_user_id: int
    score: int
    comment: str | None
    created_at: str
