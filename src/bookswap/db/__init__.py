# ABOUTME: Public API for the bookswap marketplace database layer.
# ABOUTME: Exports connection management, transaction scopes, and the book ledger.

from bookswap.db.connection import DEFAULT_DB_PATH, atomic, open_marketplace
from bookswap.db.ledger import BookLedger, DuplicateUserError

__all__ = [
    "DEFAULT_DB_PATH",
    "BookLedger",
    "DuplicateUserError",
    "atomic",
    "open_marketplace",
]
