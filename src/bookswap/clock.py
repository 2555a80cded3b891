# ABOUTME: UTC time helpers shared by the lock manager, transfer engine, and ledger.
# ABOUTME: Converts between aware datetimes and the fixed-width text stored in SQLite.

from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], datetime]

# Fixed width so that lexical order in SQL equals chronological order.
_DB_FORMAT = "%Y-%m-%dT%H:%M:%S.%f"


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_db(moment: datetime) -> str:
    """Serialize a datetime for storage. Naive values are taken to be UTC."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment.strftime(_DB_FORMAT)


def from_db(value: str | None) -> datetime | None:
    """Parse a stored timestamp back into an aware UTC datetime."""
    if not value:
        return None
    for fmt in (_DB_FORMAT, "%Y-%m-%dT%H:%M:%S"):
        try:
            return datetime.strptime(value, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    raise ValueError(f"Unrecognized timestamp: {value!r}")
