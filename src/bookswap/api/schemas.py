# ABOUTME: Pydantic request bodies accepted by the HTTP API.
# ABOUTME: Shape checks only; ownership, availability, and state rules live in the services.

from pydantic import BaseModel, Field

from bookswap.models import ListType


class UserCreate(BaseModel):
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    location: str = Field(min_length=1)


class BookCreate(BaseModel):
    title: str
    author: str
    list_type: ListType
    isbn: str | None = None
    condition: str | None = None
    description: str = ""
    room_id: str | None = None


class AvailabilityUpdate(BaseModel):
    is_available: bool


class ScopeUpdate(BaseModel):
    """Move a book into a room, or back to the global market with room_id null."""

    room_id: str | None = None
    description: str | None = None


class ChatCreate(BaseModel):
    user_id: int


class TradeCreate(BaseModel):
    match_id: int
    offered_book_ids: list[int] = Field(default_factory=list)
    requested_book_ids: list[int] = Field(default_factory=list)


class CounterProposal(BaseModel):
    offered_book_ids: list[int] = Field(default_factory=list)
    requested_book_ids: list[int] = Field(default_factory=list)


class RejectRequest(BaseModel):
    reason: str | None = None


class ExtendLockRequest(BaseModel):
    additional_hours: int | None = None


class RatingCreate(BaseModel):
    score: int
    comment: str | None = None
