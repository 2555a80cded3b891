# ABOUTME: HTTP routers for the bookswap API, one module per resource.
# ABOUTME: Collected here so the app factory can register them in one place.

from bookswap.api.routes.books import router as books_router
from bookswap.api.routes.chats import router as chats_router
from bookswap.api.routes.locks import router as locks_router
from bookswap.api.routes.matches import router as matches_router
from bookswap.api.routes.trades import router as trades_router
from bookswap.api.routes.users import router as users_router

ROUTERS = [
    users_router,
    books_router,
    chats_router,
    matches_router,
    trades_router,
    locks_router,
]

__all__ = ["ROUTERS"]
