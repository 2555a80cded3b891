# ABOUTME: Delivery of trade lifecycle events to the other participant.
# ABOUTME: A no-op notifier by default; a webhook notifier with retry and injectable transport.

import logging
import time
from typing import Any, Protocol, runtime_checkable

import httpx

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

TRADE_PROPOSED = "trade.proposed"
TRADE_ACCEPTED = "trade.accepted"
TRADE_REJECTED = "trade.rejected"
TRADE_CANCELLED = "trade.cancelled"
TRADE_COUNTERED = "trade.countered"


class NotificationError(Exception):
    """Raised when an event could not be delivered."""


@runtime_checkable
class Notifier(Protocol):
    """Protocol for delivering a trade event to one user."""

    def notify(self, event: str, recipient_id: int, payload: dict[str, Any]) -> None: ...


class NullNotifier:
    """Discards every event."""

    def notify(self, event: str, recipient_id: int, payload: dict[str, Any]) -> None:
        logger.debug("Dropping %s for user %d", event, recipient_id)


class WebhookNotifier:
    """POSTs events as JSON to a single webhook URL.

    Retries transient failures (429, 5xx) with exponential backoff. Any other
    non-2xx response, or a transport error, fails immediately.
    """

    def __init__(
        self,
        url: str,
        *,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        client_kwargs: dict[str, Any] = {
            "headers": {"User-Agent": "bookswap/0.1.0"},
            "timeout": timeout,
        }
        if transport is not None:
            client_kwargs["transport"] = transport
        self._client = httpx.Client(**client_kwargs)
        self._url = url
        self._max_retries = max_retries
        self._retry_delay = retry_delay

    def notify(self, event: str, recipient_id: int, payload: dict[str, Any]) -> None:
        """Deliver one event.

        Raises:
            NotificationError: On non-retryable HTTP errors or exhausted retries.
        """
        body = {"event": event, "recipient_id": recipient_id, "data": payload}
        attempts = 1 + self._max_retries
        last_status = 0
        for attempt in range(attempts):
            try:
                response = self._client.post(self._url, json=body)
                last_status = response.status_code
            except httpx.HTTPError as exc:
                raise NotificationError(f"Webhook request failed: {exc}") from exc

            if response.is_success:
                logger.debug("Delivered %s to user %d", event, recipient_id)
                return

            if response.status_code not in _RETRYABLE_STATUS_CODES:
                raise NotificationError(f"Webhook returned HTTP {response.status_code}")

            if attempt < attempts - 1:
                delay = self._retry_delay * (2**attempt)
                logger.warning(
                    "Webhook returned HTTP %d for %s, retrying in %.1fs (attempt %d/%d)",
                    response.status_code,
                    event,
                    delay,
                    attempt + 1,
                    self._max_retries,
                )
                time.sleep(delay)

        raise NotificationError(
            f"Webhook returned HTTP {last_status} after {attempts} attempts"
        )

    def close(self) -> None:
        self._client.close()
