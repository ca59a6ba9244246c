"""Error taxonomy, retry policy and error statistics for the automation."""
from __future__ import annotations

import logging
import threading
import time
from collections import Counter, defaultdict
from typing import Any, Callable, Dict, List, Optional, TypeVar

from requests import HTTPError, RequestException
from requests.exceptions import ConnectionError as RequestsConnectionError
from requests.exceptions import Timeout

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

RATE_LIMIT_EXTRA_DELAY = 1.0

_HINTS = {
    400: "Bad Request - verify the payload",
    401: "Unauthorized - check the Zendesk email and API token",
    403: "Forbidden - the API token lacks permission",
    404: "Not Found - the ticket or endpoint may be incorrect",
    409: "Conflict - the ticket may have been updated elsewhere",
    422: "Unprocessable Entity - Zendesk rejected the field values",
    429: "Too Many Requests - rate limit exceeded",
    500: "Internal Server Error",
    502: "Bad Gateway",
    503: "Service Unavailable",
    504: "Gateway Timeout",
}


class AutomationError(RuntimeError):
    """Base class for errors raised by the automation pipeline."""


class ServiceUnavailableError(AutomationError):
    """The remote service could not be reached before any ticket was processed."""


class SlackApiError(AutomationError):
    """Slack answered with ``ok: false``."""

    def __init__(self, method: str, error: str) -> None:
        super().__init__(f"Slack API error calling {method}: {error}")
        self.method = method
        self.error = error


def status_code_of(error: BaseException) -> Optional[int]:
    response = getattr(error, "response", None)
    status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


def classify_error(error: BaseException) -> str:
    """Return a short error type used for statistics (``http_404``, ``network`` ...)."""
    status = status_code_of(error)
    if status is not None:
        return f"http_{status}"
    if isinstance(error, (RequestsConnectionError, Timeout)):
        return "network"
    if isinstance(error, RequestException):
        return "request"
    if isinstance(error, SlackApiError):
        return "slack"
    if isinstance(error, (ValueError, TypeError)):
        return "validation"
    return "client"


def should_retry(error: BaseException) -> bool:
    """Retry rate limiting, server errors and network failures, never other 4xx."""
    status = status_code_of(error)
    if status is not None:
        return status == 429 or status >= 500
    return isinstance(error, (RequestsConnectionError, Timeout))


def retry_delay(error: BaseException, attempt: int, base_delay: float) -> float:
    """Exponential backoff; rate limits honour ``Retry-After`` or wait an extra second."""
    delay = base_delay * (2 ** attempt)
    if status_code_of(error) == 429:
        headers = getattr(getattr(error, "response", None), "headers", None) or {}
        retry_after = headers.get("Retry-After") if hasattr(headers, "get") else None
        try:
            if retry_after is not None:
                return max(float(retry_after), delay)
        except (TypeError, ValueError):
            pass
        return delay + RATE_LIMIT_EXTRA_DELAY
    return delay


class ErrorTracker:
    """Accumulate error counts by type and operation. Safe to share between threads."""

    def __init__(self) -> None:
        self.total_errors = 0
        self._by_type: Counter[str] = Counter()
        self._operations: Dict[str, Counter[str]] = defaultdict(Counter)
        self._lock = threading.Lock()

    def record(self, error: BaseException, operation: str, error_type: Optional[str] = None) -> None:
        kind = error_type or classify_error(error)
        with self._lock:
            self.total_errors += 1
            self._by_type[kind] += 1
            self._operations[kind][operation] += 1
        LOGGER.debug("Recorded %s error during %s: %s", kind, operation, error)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "total_errors": self.total_errors,
                "error_types": {
                    kind: {"count": count, "operations": dict(self._operations[kind])}
                    for kind, count in self._by_type.items()
                },
                "most_frequent": [
                    {"type": kind, "count": count} for kind, count in self._by_type.most_common(10)
                ],
            }

    def reset(self) -> None:
        with self._lock:
            self.total_errors = 0
            self._by_type.clear()
            self._operations.clear()


def call_with_retry(
    operation: Callable[[], T],
    *,
    operation_name: str,
    max_retries: int = 3,
    base_delay: float = 1.0,
    tracker: Optional[ErrorTracker] = None,
    retry_if: Callable[[BaseException], bool] = should_retry,
    sleep: Optional[Callable[[float], None]] = None,
) -> T:
    """Run ``operation`` retrying retryable failures with exponential backoff.

    ``max_retries`` counts retries, so the operation runs at most
    ``max_retries + 1`` times. The last error is re-raised.
    """
    attempt = 0
    while True:
        try:
            return operation()
        except Exception as exc:
            if tracker is not None:
                tracker.record(exc, operation_name)
            if attempt >= max_retries or not retry_if(exc):
                if attempt:
                    LOGGER.error(
                        "%s failed after %s attempts: %s", operation_name, attempt + 1, exc
                    )
                raise
            delay = retry_delay(exc, attempt, base_delay)
            LOGGER.warning(
                "%s attempt %s failed, retrying in %.2fs: %s",
                operation_name,
                attempt + 1,
                delay,
                exc,
            )
            (sleep or time.sleep)(delay)
            attempt += 1


def describe_http_error(error: BaseException, ticket_id: Optional[int] = None) -> str:
    """Return a readable description of an HTTP failure including the API detail."""
    response = getattr(error, "response", None)
    status = status_code_of(error)
    reason = getattr(response, "reason", "") or ""
    prefix = "Zendesk request failed"
    if ticket_id is not None:
        prefix = f"Zendesk request failed for ticket {ticket_id}"
    if status is None:
        return f"{prefix}: {error}"

    hint = _HINTS.get(status)
    status_part = f"status {status}"
    if reason:
        status_part += f" {reason}".rstrip()
    if hint:
        status_part += f" ({hint})"
    prefix = f"{prefix} with {status_part}"

    detail = ""
    if response is not None:
        try:
            parsed = response.json()
        except ValueError:
            parsed = None
        if isinstance(parsed, dict):
            detail = _extract_detail(parsed)
        if not detail:
            text = getattr(response, "text", "")
            if isinstance(text, str) and text:
                detail = text.strip()
    if detail:
        snippet = detail if len(detail) <= 500 else detail[:497] + "..."
        prefix = f"{prefix}: {snippet}"
    return prefix


def _extract_detail(payload: Dict[str, Any]) -> str:
    # Zendesk nests detail as {"error": ..., "description": ..., "details": {...}}.
    error = payload.get("error")
    parts: List[str] = []
    if isinstance(error, dict):
        message = error.get("message") or error.get("title")
        if message:
            parts.append(str(message))
    elif error:
        parts.append(str(error))
    description = payload.get("description")
    if description:
        parts.append(str(description))
    details = payload.get("details")
    if isinstance(details, dict):
        for key, value in details.items():
            parts.append(f"{key}: {value}")
    return "; ".join(parts)


def describe_error(error: BaseException, ticket_id: Optional[int] = None) -> str:
    """Describe HTTP errors with status hints and anything else by its message."""
    if isinstance(error, HTTPError) or status_code_of(error) is not None:
        return describe_http_error(error, ticket_id)
    return str(error) or error.__class__.__name__
