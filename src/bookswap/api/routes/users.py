# ABOUTME: HTTP routes for registering users and reading profiles and ratings.
# ABOUTME: Registration returns a bearer token; there are no passwords.

from dataclasses import asdict

from fastapi import APIRouter, Depends

from bookswap.api.deps import get_config, get_current_user, get_ledger, get_trades
from bookswap.api.schemas import UserCreate
from bookswap.auth import issue_token
from bookswap.config import AppConfig
from bookswap.core.trades import TradeService
from bookswap.db.ledger import BookLedger

router = APIRouter(prefix="/users", tags=["users"])


@router.post("", status_code=201)
def register(
    body: UserCreate,
    ledger: BookLedger = Depends(get_ledger),
    config: AppConfig = Depends(get_config),
):
    user = ledger.add_user(body.name, body.email, body.location)
    return {**asdict(user), "token": issue_token(user.id, config.auth)}


@router.get("/me")
def me(
    user_id: int = Depends(get_current_user),
    ledger: BookLedger = Depends(get_ledger),
):
    return ledger.require_user(user_id)


@router.get("/{target_id}/ratings")
def user_ratings(
    target_id: int,
    user_id: int = Depends(get_current_user),
    ledger: BookLedger = Depends(get_ledger),
    trades: TradeService = Depends(get_trades),
):
    ledger.require_user(target_id)
    return trades.ratings_for_user(target_id)
