# ABOUTME: Best-effort match invalidation hook fired after ledger mutations and transfers.
# ABOUTME: Recomputes matches inline or on an executor; failures are logged, never raised.

import logging
import sqlite3
from collections.abc import Callable, Iterable
from concurrent.futures import Executor, Future

from bookswap.core.matching import MatchEngine

logger = logging.getLogger(__name__)


class MatchRefresher:
    """Callable ``on_change`` hook that recomputes matches for affected users.

    Each run opens its own connection through ``connect`` and closes it when
    done, so background refreshes never share a connection with the request
    that triggered them. With an executor the hook returns immediately.
    """

    def __init__(
        self,
        connect: Callable[[], sqlite3.Connection],
        executor: Executor | None = None,
    ) -> None:
        self._connect = connect
        self._executor = executor

    def __call__(self, user_ids: Iterable[int]) -> Future | None:
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return None
        if self._executor is None:
            self._refresh(ids)
            return None
        return self._executor.submit(self._refresh, ids)

    def _refresh(self, user_ids: list[int]) -> None:
        try:
            conn = self._connect()
        except Exception:
            logger.exception("Could not open database to refresh matches for %s", user_ids)
            return
        try:
            engine = MatchEngine(conn)
            for user_id in user_ids:
                try:
                    engine.recompute_matches(user_id)
                except Exception:
                    logger.exception("Failed to refresh matches for user %d", user_id)
        finally:
            conn.close()
