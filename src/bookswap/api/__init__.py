# ABOUTME: FastAPI application factory for the bookswap HTTP API.
# ABOUTME: Wires config, background workers, routers, and the domain error translation.

import logging
from collections.abc import AsyncIterator
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from functools import partial

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from bookswap.api.routes import ROUTERS
from bookswap.auth import AuthenticationError
from bookswap.config import AppConfig, load_config
from bookswap.core.refresh import MatchRefresher
from bookswap.core.sweeper import LockSweeper
from bookswap.db.connection import open_marketplace
from bookswap.errors import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    MarketplaceError,
    NotFoundError,
    TransferFailedError,
    ValidationFailedError,
)
from bookswap.notifications import Notifier, NullNotifier, WebhookNotifier

logger = logging.getLogger(__name__)

# Checked in order; subclasses inherit their parent's status.
_STATUS_BY_ERROR: list[tuple[type[MarketplaceError], int]] = [
    (NotFoundError, 404),
    (ForbiddenError, 403),
    (InvalidStateError, 400),
    (ValidationFailedError, 400),
    (ConflictError, 409),
    (TransferFailedError, 500),
]


def status_for(exc: MarketplaceError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


def _build_notifier(config: AppConfig) -> Notifier:
    settings = config.notifications
    if not settings.webhook_url:
        return NullNotifier()
    return WebhookNotifier(
        settings.webhook_url,
        max_retries=settings.max_retries,
        retry_delay=settings.retry_delay,
    )


def create_app(config: AppConfig | None = None, *, notifier: Notifier | None = None) -> FastAPI:
    """Build the API application.

    Args:
        config: Application configuration. Loaded from the environment and
            ./bookswap.yaml when omitted.
        notifier: Overrides the notifier built from ``config``.
    """
    config = config or load_config()
    connect = partial(open_marketplace, config.storage.db_path)

    # Create the schema once up front so per-request opens never race on it.
    connect().close()

    executor = (
        ThreadPoolExecutor(max_workers=config.matching.workers, thread_name_prefix="match-refresh")
        if config.matching.background
        else None
    )
    sweeper = (
        LockSweeper(connect, config.locks.sweep_interval_seconds)
        if config.locks.sweep_interval_seconds > 0
        else None
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if sweeper is not None:
            sweeper.start()
        yield
        if sweeper is not None:
            sweeper.stop()
        if executor is not None:
            executor.shutdown(wait=True)
        if isinstance(app.state.notifier, WebhookNotifier):
            app.state.notifier.close()

    app = FastAPI(title="Bookswap API", version="0.1.0", lifespan=lifespan)
    app.state.config = config
    app.state.refresher = MatchRefresher(connect, executor)
    app.state.notifier = notifier or _build_notifier(config)

    @app.exception_handler(MarketplaceError)
    async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
        status = status_for(exc)
        if status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=status, content=exc.to_dict())

    @app.exception_handler(AuthenticationError)
    async def auth_error_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
        return JSONResponse(
            status_code=401,
            content={"detail": str(exc), "error": "unauthorized"},
            headers={"WWW-Authenticate": "Bearer"},
        )

    for router in ROUTERS:
        app.include_router(router)

    return app
