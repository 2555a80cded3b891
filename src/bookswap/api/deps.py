# ABOUTME: FastAPI dependencies: per-request database connection, acting user, and services.
# ABOUTME: Each request gets its own SQLite connection, closed when the response is sent.

import sqlite3
from collections.abc import Iterator

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from bookswap.auth import AuthenticationError, authenticate
from bookswap.config import AppConfig
from bookswap.core.locks import BookLockManager
from bookswap.core.matching import MatchEngine
from bookswap.core.refresh import MatchRefresher
from bookswap.core.trades import TradeService
from bookswap.core.transfer import TransferEngine
from bookswap.db.connection import open_marketplace
from bookswap.db.ledger import BookLedger

_bearer = HTTPBearer(auto_error=False)


def get_config(request: Request) -> AppConfig:
    return request.app.state.config


def get_db(config: AppConfig = Depends(get_config)) -> Iterator[sqlite3.Connection]:
    conn = open_marketplace(config.storage.db_path)
    try:
        yield conn
    finally:
        conn.close()


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    config: AppConfig = Depends(get_config),
) -> int:
    """The authenticated user id from the Authorization: Bearer header."""
    if credentials is None:
        raise AuthenticationError("Not authenticated")
    return authenticate(credentials.credentials, config.auth)


def get_refresher(request: Request) -> MatchRefresher:
    return request.app.state.refresher


def get_ledger(
    conn: sqlite3.Connection = Depends(get_db),
    refresher: MatchRefresher = Depends(get_refresher),
) -> BookLedger:
    return BookLedger(conn, on_change=refresher)


def get_matches(conn: sqlite3.Connection = Depends(get_db)) -> MatchEngine:
    return MatchEngine(conn)


def get_locks(
    conn: sqlite3.Connection = Depends(get_db),
    config: AppConfig = Depends(get_config),
) -> BookLockManager:
    return BookLockManager(
        conn,
        max_extensions=config.locks.max_extensions,
        default_duration_hours=config.locks.duration_hours,
    )


def get_transfer(
    conn: sqlite3.Connection = Depends(get_db),
    refresher: MatchRefresher = Depends(get_refresher),
) -> TransferEngine:
    return TransferEngine(conn, on_change=refresher)


def get_trades(
    request: Request,
    conn: sqlite3.Connection = Depends(get_db),
    locks: BookLockManager = Depends(get_locks),
    transfer: TransferEngine = Depends(get_transfer),
) -> TradeService:
    return TradeService(
        conn,
        locks=locks,
        transfer=transfer,
        notifier=request.app.state.notifier,
    )
