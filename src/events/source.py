"""Collaborators the pipeline talks to: the event source, the monitor directory and the event store.

The engine only depends on the protocols. ``DatadogEventSource``,
``DatadogMonitorDirectory`` and ``DatadogEventStore`` implement them against
the Datadog HTTP API.
"""

import logging
from typing import Any, NamedTuple, Protocol

import httpx

from src.config import get_settings
from src.events.errors import EventSourceError, from_http_error
from src.events.models import RawEvent, RawEventsResponse, RawEventV1, RawEventV1Response, RawMonitor
from src.observability.metrics import SOURCE_ERRORS_TOTAL

logger = logging.getLogger(__name__)

MONITOR_LIST_PAGE_SIZE = 1000


class EventPage(NamedTuple):
    events: list[RawEvent]
    next_cursor: str | None


class EventSource(Protocol):
    async def fetch_page(
        self,
        query: str,
        from_time: str,
        to_time: str,
        cursor: str | None,
        page_size: int,
    ) -> EventPage: ...


class MonitorRef(NamedTuple):
    name: str
    message: str


class MonitorDirectory(Protocol):
    async def get_monitor_by_id(self, monitor_id: int) -> MonitorRef: ...

    async def list_monitors(self) -> list[RawMonitor]: ...


class EventStore(Protocol):
    async def get_event(self, event_id: int) -> RawEventV1: ...

    async def create_event(self, body: dict[str, Any]) -> RawEventV1Response: ...


# --- HTTP helpers ---


def _datadog_base_url() -> str:
    return f"https://api.{get_settings().datadog_site}"


def _datadog_headers() -> dict[str, str]:
    settings = get_settings()
    return {
        "DD-API-KEY": settings.datadog_api_key,
        "DD-APPLICATION-KEY": settings.datadog_app_key,
        "Accept": "application/json",
    }


async def _datadog_request(
    method: str,
    path: str,
    *,
    params: dict[str, str] | None = None,
    json: dict[str, Any] | None = None,
) -> Any:
    """Make an authenticated request to the Datadog API, raising ``EventSourceError`` on failure."""
    base_url = _datadog_base_url()
    timeout = get_settings().request_timeout_seconds
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.request(
                method, f"{base_url}{path}", headers=_datadog_headers(), params=params, json=json
            )
            _ = response.raise_for_status()
            return response.json()  # pyright: ignore[reportAny]
    except httpx.HTTPError as e:
        error = from_http_error(e, base_url, timeout)
        SOURCE_ERRORS_TOTAL.labels(code=error.code).inc()
        logger.warning("Datadog %s %s failed: %s", method, path, error.message)
        raise error from e


# --- Implementations ---


class DatadogEventSource:
    """Cursor-paginated reads from ``POST /api/v2/events/search``."""

    async def fetch_page(
        self,
        query: str,
        from_time: str,
        to_time: str,
        cursor: str | None,
        page_size: int,
    ) -> EventPage:
        page: dict[str, Any] = {"limit": page_size}
        if cursor:
            page["cursor"] = cursor
        body = {
            "filter": {"query": query, "from": from_time, "to": to_time},
            "sort": "timestamp",
            "page": page,
        }
        data: RawEventsResponse = await _datadog_request("POST", "/api/v2/events/search", json=body)
        events = list(data.get("data") or [])
        next_cursor = (data.get("meta") or {}).get("page", {}).get("after") or None
        return EventPage(events=events, next_cursor=next_cursor)


class DatadogMonitorDirectory:
    """Monitor lookups against ``/api/v1/monitor``."""

    async def get_monitor_by_id(self, monitor_id: int) -> MonitorRef:
        data: RawMonitor = await _datadog_request("GET", f"/api/v1/monitor/{monitor_id}")
        return MonitorRef(name=data.get("name", ""), message=data.get("message", ""))

    async def list_monitors(self) -> list[RawMonitor]:
        data = await _datadog_request("GET", "/api/v1/monitor", params={"page_size": str(MONITOR_LIST_PAGE_SIZE)})
        if not isinstance(data, list):
            raise EventSourceError("Unexpected monitor list response from Datadog")
        return data


class DatadogEventStore:
    """Single-event reads and writes against ``/api/v1/events``."""

    async def get_event(self, event_id: int) -> RawEventV1:
        data: RawEventV1Response = await _datadog_request("GET", f"/api/v1/events/{event_id}")
        return data.get("event") or {}

    async def create_event(self, body: dict[str, Any]) -> RawEventV1Response:
        return await _datadog_request("POST", "/api/v1/events", json=body)


async def validate_credentials() -> bool:
    """Check the API key against ``/api/v1/validate``."""
    data = await _datadog_request("GET", "/api/v1/validate")
    return bool(isinstance(data, dict) and data.get("valid"))
