# ABOUTME: HTTP routes for the acting user's inventory and wishlist books.
# ABOUTME: Every mutation goes through the ledger, which fires match invalidation.

from fastapi import APIRouter, Depends, Query, Response

from bookswap.api.deps import get_current_user, get_ledger, get_transfer
from bookswap.api.schemas import AvailabilityUpdate, BookCreate, ScopeUpdate
from bookswap.core.transfer import TransferEngine
from bookswap.db.ledger import BookLedger
from bookswap.models import ListType, Scope

router = APIRouter(prefix="/books", tags=["books"])


@router.get("")
def list_books(
    list_type: ListType | None = None,
    scope: str | None = Query(None, description="global, room, or not-room"),
    room_id: str | None = None,
    available_only: bool = False,
    user_id: int = Depends(get_current_user),
    ledger: BookLedger = Depends(get_ledger),
):
    return ledger.list_books(
        user_id, list_type, scope=scope, room_id=room_id, available_only=available_only
    )


@router.post("", status_code=201)
def add_book(
    body: BookCreate,
    user_id: int = Depends(get_current_user),
    ledger: BookLedger = Depends(get_ledger),
):
    return ledger.add_book(
        user_id,
        body.title,
        body.author,
        body.list_type,
        isbn=body.isbn,
        condition=body.condition,
        description=body.description,
        scope=Scope(room_id=body.room_id or None),
    )


@router.get("/{book_id}")
def get_book(
    book_id: int,
    user_id: int = Depends(get_current_user),
    ledger: BookLedger = Depends(get_ledger),
):
    return ledger.require_book(book_id)


@router.patch("/{book_id}/availability")
def set_availability(
    book_id: int,
    body: AvailabilityUpdate,
    user_id: int = Depends(get_current_user),
    ledger: BookLedger = Depends(get_ledger),
):
    return ledger.set_availability(user_id, book_id, body.is_available)


@router.patch("/{book_id}/scope")
def set_scope(
    book_id: int,
    body: ScopeUpdate,
    user_id: int = Depends(get_current_user),
    ledger: BookLedger = Depends(get_ledger),
):
    return ledger.set_scope(
        user_id, book_id, Scope(room_id=body.room_id or None), body.description
    )


@router.delete("/{book_id}", status_code=204)
def remove_book(
    book_id: int,
    user_id: int = Depends(get_current_user),
    ledger: BookLedger = Depends(get_ledger),
) -> Response:
    ledger.remove_book(user_id, book_id)
    return Response(status_code=204)


@router.get("/{book_id}/history")
def book_history(
    book_id: int,
    user_id: int = Depends(get_current_user),
    transfer: TransferEngine = Depends(get_transfer),
):
    return transfer.book_history(book_id)
