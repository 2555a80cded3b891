# ABOUTME: HTTP routes for trade negotiation: propose, respond, counter, extend, rate.
# ABOUTME: Thin wrappers over TradeService; domain errors are translated by the app handler.

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from bookswap.api.deps import get_config, get_current_user, get_locks, get_trades
from bookswap.api.schemas import (
    CounterProposal,
    ExtendLockRequest,
    RatingCreate,
    RejectRequest,
    TradeCreate,
)
from bookswap.config import AppConfig
from bookswap.core.locks import BookLockManager
from bookswap.core.trades import TradeService

router = APIRouter(prefix="/trades", tags=["trades"])


@router.post("", status_code=201)
def create_trade(
    body: TradeCreate,
    user_id: int = Depends(get_current_user),
    trades: TradeService = Depends(get_trades),
):
    return trades.create_trade(
        user_id, body.match_id, body.offered_book_ids, body.requested_book_ids
    )


@router.get("")
def list_trades(
    status: str | None = None,
    user_id: int = Depends(get_current_user),
    trades: TradeService = Depends(get_trades),
):
    return trades.list_trades(user_id, status)


@router.get("/interests/my-books")
def my_book_interests(
    user_id: int = Depends(get_current_user),
    locks: BookLockManager = Depends(get_locks),
):
    """Every trade claim on the user's inventory, grouped by book id."""
    return {str(book_id): items for book_id, items in locks.interests_for_owner(user_id).items()}


@router.get("/{trade_id}")
def get_trade(
    trade_id: int,
    user_id: int = Depends(get_current_user),
    trades: TradeService = Depends(get_trades),
):
    return trades.view_trade(trade_id, user_id)


@router.post("/{trade_id}/accept")
def accept_trade(
    trade_id: int,
    user_id: int = Depends(get_current_user),
    trades: TradeService = Depends(get_trades),
):
    accepted = trades.accept_trade(trade_id, user_id)
    return {
        "detail": "Trade completed successfully",
        "trade": accepted.trade,
        "transferred": {
            "to_proposer": accepted.transfer.to_proposer,
            "to_recipient": accepted.transfer.to_recipient,
        },
        "audit_log_ids": accepted.transfer.audit_log_ids,
    }


@router.post("/{trade_id}/reject")
def reject_trade(
    trade_id: int,
    body: RejectRequest | None = None,
    user_id: int = Depends(get_current_user),
    trades: TradeService = Depends(get_trades),
):
    return trades.reject_trade(trade_id, user_id, body.reason if body else None)


@router.post("/{trade_id}/cancel")
def cancel_trade(
    trade_id: int,
    user_id: int = Depends(get_current_user),
    trades: TradeService = Depends(get_trades),
):
    return trades.cancel_trade(trade_id, user_id)


@router.delete("/{trade_id}")
def delete_trade(
    trade_id: int,
    user_id: int = Depends(get_current_user),
    trades: TradeService = Depends(get_trades),
):
    return trades.cancel_trade(trade_id, user_id)


@router.post("/{trade_id}/counter")
def counter_propose(
    trade_id: int,
    body: CounterProposal,
    user_id: int = Depends(get_current_user),
    trades: TradeService = Depends(get_trades),
):
    return trades.counter_propose(
        trade_id, user_id, body.offered_book_ids, body.requested_book_ids
    )


@router.post("/{trade_id}/extend-lock")
def extend_lock(
    trade_id: int,
    body: ExtendLockRequest | None = None,
    user_id: int = Depends(get_current_user),
    trades: TradeService = Depends(get_trades),
    config: AppConfig = Depends(get_config),
):
    hours = body.additional_hours if body and body.additional_hours else None
    hours = hours or config.locks.extension_hours
    report = trades.extend_trade_locks(trade_id, user_id, hours)
    if report.ok:
        return {
            "detail": f"Extended {len(report.extended)} lock(s) by {hours} hours",
            "locks": report.extended,
        }
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder({
            "detail": f"Could not extend {len(report.failed)} lock(s)",
            "error": "partial_extension",
            "trade_id": trade_id,
            "extended": report.extended,
            "failed": [
                {"lock": lock, "error": exc.kind, "detail": exc.message}
                for lock, exc in report.failed
            ],
        }),
    )


@router.get("/{trade_id}/locks")
def trade_locks(
    trade_id: int,
    user_id: int = Depends(get_current_user),
    trades: TradeService = Depends(get_trades),
):
    return trades.get_locks_for_trade(trade_id, user_id)


@router.get("/{trade_id}/history")
def trade_history(
    trade_id: int,
    user_id: int = Depends(get_current_user),
    trades: TradeService = Depends(get_trades),
):
    return trades.trade_history(trade_id, user_id)


@router.post("/{trade_id}/rate", status_code=201)
def rate_trade(
    trade_id: int,
    body: RatingCreate,
    user_id: int = Depends(get_current_user),
    trades: TradeService = Depends(get_trades),
):
    return trades.rate_trade(trade_id, user_id, body.score, body.comment)
