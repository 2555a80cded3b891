# ABOUTME: HTTP routes for the acting user's matches: refresh, list, hide, and per-book views.
# ABOUTME: Hiding is a per-user preference that survives match recomputation.

from fastapi import APIRouter, Depends

from bookswap.api.deps import get_current_user, get_matches
from bookswap.core.matching import MatchEngine

router = APIRouter(prefix="/matches", tags=["matches"])


@router.post("/refresh")
def refresh_matches(
    user_id: int = Depends(get_current_user),
    engine: MatchEngine = Depends(get_matches),
):
    return engine.recompute_matches(user_id)


@router.get("")
def list_matches(
    scope: str | None = None,
    room_id: str | None = None,
    user_id: int = Depends(get_current_user),
    engine: MatchEngine = Depends(get_matches),
):
    return engine.list_matches(user_id, scope=scope, room_id=room_id)


@router.get("/book/{book_id}")
def matches_for_book(
    book_id: int,
    user_id: int = Depends(get_current_user),
    engine: MatchEngine = Depends(get_matches),
):
    return engine.matches_for_book(user_id, book_id)


@router.delete("/hidden")
def clear_hidden(
    user_id: int = Depends(get_current_user),
    engine: MatchEngine = Depends(get_matches),
) -> dict[str, int]:
    return {"cleared": engine.clear_hidden(user_id)}


@router.delete("")
def hide_all(
    user_id: int = Depends(get_current_user),
    engine: MatchEngine = Depends(get_matches),
) -> dict[str, int]:
    return {"hidden": engine.hide_all(user_id)}


@router.delete("/{match_id}")
def hide_match(
    match_id: int,
    user_id: int = Depends(get_current_user),
    engine: MatchEngine = Depends(get_matches),
) -> dict[str, str]:
    engine.hide_match(user_id, match_id)
    return {"detail": "Match hidden"}
