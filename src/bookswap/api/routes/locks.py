# ABOUTME: HTTP routes for book locks held on the acting user's books, and the expiry sweep.
# ABOUTME: Sweeping is idempotent and safe to trigger from any authenticated client.

from fastapi import APIRouter, Depends

from bookswap.api.deps import get_current_user, get_locks
from bookswap.core.locks import BookLockManager

router = APIRouter(prefix="/locks", tags=["locks"])


@router.get("/mine")
def my_locks(
    user_id: int = Depends(get_current_user),
    locks: BookLockManager = Depends(get_locks),
):
    return locks.locks_for_owner(user_id)


@router.post("/cleanup")
def cleanup_expired(
    user_id: int = Depends(get_current_user),
    locks: BookLockManager = Depends(get_locks),
) -> dict[str, int]:
    return {"removed": locks.cleanup_expired_locks()}
