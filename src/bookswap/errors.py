# ABOUTME: Domain error taxonomy for the bookswap marketplace core.
# ABOUTME: Every failure names the book, trade, or lock it concerns so callers can react.

from typing import Any


class MarketplaceError(Exception):
    """Base class for all expected marketplace failures.

    Subclasses set ``kind`` to a stable machine-readable string. Keyword
    context (book_id, trade_id, lock_id, expires_at, ...) is kept in
    ``context`` and surfaced verbatim by the transports.
    """

    kind = "error"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = {k: v for k, v in context.items() if v is not None}

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "error": self.kind, **self.context}


class NotFoundError(MarketplaceError):
    """An entity (user, book, match, trade, lock) does not exist."""

    kind = "not_found"


class ForbiddenError(MarketplaceError):
    """The acting user is not allowed to perform this operation."""

    kind = "forbidden"


class InvalidStateError(MarketplaceError):
    """The operation is not valid for the current trade or lock status."""

    kind = "invalid_state"


class LockExpiredError(InvalidStateError):
    """A lock is already past its expiry and can no longer be extended."""

    kind = "lock_expired"


class MaxExtensionsReachedError(InvalidStateError):
    """A lock has used up its allowed number of extensions."""

    kind = "max_extensions_reached"


class ConflictError(MarketplaceError):
    """A contended resource is held by someone else."""

    kind = "conflict"


class BookAlreadyLockedError(ConflictError):
    """A book already carries an active lock for another trade."""

    kind = "book_locked"


class ValidationFailedError(MarketplaceError):
    """An ownership or availability precondition was not met."""

    kind = "validation_failed"


class BookUnavailableError(ValidationFailedError):
    kind = "book_unavailable"


class NotOwnerError(ValidationFailedError):
    kind = "not_owner"


class TransferFailedError(MarketplaceError):
    """The atomic ownership transfer did not commit."""

    kind = "transfer_failed"
