"""Retry policy and remote error classification."""

from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional

import httpx

from erd2dataverse.config.settings import Settings, get_settings
from erd2dataverse.errors import PermanentRemoteError, RemoteError, TransientRemoteError

# Rate limit, internal error, bad gateway, unavailable, gateway timeout
TRANSIENT_STATUSES = {429, 500, 502, 503, 504}


@dataclass
class RetryPolicy:
    """
    Exponential backoff for transient failures.

    Attempt ``n`` (1-based) that fails transiently is followed by a wait of
    ``base_delay * 2 ** (n - 1)`` seconds, capped at ``max_delay``. A server
    supplied Retry-After value replaces the computed wait.
    """

    max_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 16.0

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "RetryPolicy":
        settings = settings or get_settings()
        return cls(
            max_attempts=settings.max_attempts,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
        )

    def delay(self, attempt: int, retry_after: Optional[float] = None) -> float:
        if retry_after is not None:
            return max(retry_after, 0.0)
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> Optional[float]:
    """
    Parse a Retry-After header: delta seconds or an HTTP date.

    Returns:
        Seconds to wait, or None when the header is absent or unreadable
    """
    if not value:
        return None
    value = value.strip()
    try:
        return max(float(value), 0.0)
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max((when - now).total_seconds(), 0.0)


def error_message(response: httpx.Response) -> str:
    """Unpack the platform error body ``{"error": {"code", "message"}}`` when present."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        code = error.get("code")
        message = error.get("message") or response.reason_phrase
        return f"{message} (code {code})" if code else message
    return response.text or response.reason_phrase


def classify_response(response: httpx.Response, url: str = "") -> RemoteError:
    """Build the matching remote error for a failed response."""
    message = error_message(response)
    if response.status_code in TRANSIENT_STATUSES:
        return TransientRemoteError(
            response.status_code,
            message,
            url,
            retry_after=parse_retry_after(response.headers.get("Retry-After")),
        )
    return PermanentRemoteError(response.status_code, message, url)


def is_transient(error: Exception) -> bool:
    """True for errors worth retrying."""
    return isinstance(error, TransientRemoteError) or isinstance(error, httpx.TransportError)


DUPLICATE_STATUSES = {409, 412}


def is_duplicate(error: Exception) -> bool:
    """True when the platform rejected a create because the object already exists."""
    if not isinstance(error, PermanentRemoteError):
        return False
    if error.status_code in DUPLICATE_STATUSES:
        return True
    return error.status_code == 400 and "already exists" in error.reason.lower()
