"""Structured errors raised when the event provider cannot be read.

Status codes are preserved so callers can tell an auth problem (retrying won't
help) from rate limiting or an outage (retry later).
"""

import httpx

MAX_ERROR_BODY_LENGTH = 500

_RETRYABLE_CODES = frozenset({"rate_limited", "unavailable", "timeout", "connection_error"})


class EventSourceError(Exception):
    """A failure talking to the event provider or monitor directory."""

    def __init__(self, message: str, *, code: str = "api_error", status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.code in _RETRYABLE_CODES

    def __repr__(self) -> str:
        return f"EventSourceError(code={self.code!r}, status_code={self.status_code!r}, message={self.message!r})"


def _error_detail(response: httpx.Response) -> str:
    """First entry of a Datadog ``{"errors": [...]}`` body, else the raw text."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:MAX_ERROR_BODY_LENGTH] or response.reason_phrase
    errors = body.get("errors") if isinstance(body, dict) else None
    if isinstance(errors, list) and errors:
        return str(errors[0])[:MAX_ERROR_BODY_LENGTH]
    return response.text[:MAX_ERROR_BODY_LENGTH] or response.reason_phrase


def from_status_error(exc: httpx.HTTPStatusError) -> EventSourceError:
    status = exc.response.status_code
    detail = _error_detail(exc.response)

    if status == 400:
        return EventSourceError(f"Invalid request: {detail}", code="invalid_request", status_code=status)
    if status == 401:
        return EventSourceError(
            "Authentication failed: Invalid Datadog API key or APP key",
            code="unauthorized",
            status_code=status,
        )
    if status == 403:
        return EventSourceError(f"Authorization denied: {detail}", code="forbidden", status_code=status)
    if status == 404:
        return EventSourceError(f"Resource not found: {detail}", code="not_found", status_code=status)
    if status == 429:
        return EventSourceError(
            "Rate limit exceeded. Retry after a short delay.", code="rate_limited", status_code=status
        )
    if status in (500, 502, 503):
        return EventSourceError(
            "Datadog service temporarily unavailable. Retry later.", code="unavailable", status_code=status
        )
    return EventSourceError(f"Datadog API error (HTTP {status}): {detail}", status_code=status)


def from_http_error(exc: httpx.HTTPError, base_url: str, timeout: float) -> EventSourceError:
    """Translate any httpx failure into an ``EventSourceError``."""
    if isinstance(exc, httpx.HTTPStatusError):
        return from_status_error(exc)
    if isinstance(exc, httpx.ConnectError):
        return EventSourceError(f"Cannot connect to Datadog at {base_url}: {exc}", code="connection_error")
    if isinstance(exc, httpx.TimeoutException):
        return EventSourceError(f"Datadog request timed out after {timeout}s: {exc}", code="timeout")
    return EventSourceError(f"Datadog request failed: {exc}")
