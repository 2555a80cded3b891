# ABOUTME: HTTP route that opens (or returns the existing) chat with another user.
# ABOUTME: A chat between two users must exist before either can propose a trade.

from fastapi import APIRouter, Depends

from bookswap.api.deps import get_current_user, get_ledger
from bookswap.api.schemas import ChatCreate
from bookswap.db.ledger import BookLedger

router = APIRouter(prefix="/chats", tags=["chats"])


@router.post("")
def open_chat(
    body: ChatCreate,
    user_id: int = Depends(get_current_user),
    ledger: BookLedger = Depends(get_ledger),
):
    return ledger.open_chat(user_id, body.user_id)
