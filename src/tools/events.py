"""LangChain tools over the alert event pipeline.

Provides seven tools:
- events_aggregate: alert counts per group key
- events_top: the noisiest monitors
- events_timeseries: alert trends in fixed time buckets
- events_incidents: trigger/recovery deduplication into incidents
- events_search: one page of normalized events, optionally enriched
- events_get: a single event by id
- events_create: post a new event (refused in read-only mode)
"""

from typing import Literal

from langchain_core.tools import ToolException, tool  # pyright: ignore[reportUnknownVariableType]
from pydantic import BaseModel, Field

from src.events.aggregate import MAX_AGGREGATE_LIMIT
from src.events.errors import EventSourceError
from src.events.fetcher import MAX_EVENTS, TOP_MAX_EVENTS
from src.events.incidents import MAX_INCIDENT_LIMIT
from src.events.service import (
    aggregate_events,
    create_event,
    get_event,
    incidents_events,
    search_events,
    timeseries_events,
    top_events,
)
from src.events.source import DatadogEventSource, DatadogEventStore, DatadogMonitorDirectory

# --- Input schemas ---

_FROM_DESCRIPTION = (
    "Start of the time range: relative ('1h', '7d'), relative with clock time ('3d@11:45'), "
    "'today@09:30', ISO 8601 or a unix timestamp. Default: 24 hours ago."
)
_TO_DESCRIPTION = "End of the time range, same formats as 'from_'. Default: now."
_GROUP_BY_DESCRIPTION = (
    "Fields to group by, in order: monitor_name, monitor_id, priority, source, alert_type, "
    "host, status, or any tag key (e.g. 'service', 'env'). Default: ['monitor_name']."
)


class _EventFilterInput(BaseModel):
    query: str | None = Field(default=None, description="Event search query, e.g. 'source:alert env:prod'.")
    from_: str | None = Field(default=None, description=_FROM_DESCRIPTION)
    to: str | None = Field(default=None, description=_TO_DESCRIPTION)
    sources: list[str] | None = Field(default=None, description="Restrict to these event sources.")
    tags: list[str] | None = Field(default=None, description="Tags every event must carry, e.g. ['env:prod'].")


class EventsAggregateInput(_EventFilterInput):
    """Input for grouped alert counts."""

    group_by: list[str] | None = Field(default=None, description=_GROUP_BY_DESCRIPTION)
    limit: int | None = Field(
        default=None,
        description=f"Groups to return (default 100, max {MAX_AGGREGATE_LIMIT}).",
        ge=1,
        le=MAX_AGGREGATE_LIMIT,
    )


class EventsTopInput(_EventFilterInput):
    """Input for the noisiest monitors."""

    group_by: list[str] | None = Field(default=None, description=_GROUP_BY_DESCRIPTION)
    limit: int | None = Field(default=None, description="Entries to return (default 10).", ge=1, le=MAX_AGGREGATE_LIMIT)
    context_tags: list[str] | None = Field(
        default=None,
        description=(
            "Tag keys to report as context for each entry, in priority order. "
            "The first key with a matching tag on the sample event wins, e.g. ['service', 'queue']."
        ),
    )
    max_events: int | None = Field(
        default=None, description=f"Events to scan (default {TOP_MAX_EVENTS}).", ge=1, le=MAX_EVENTS
    )


class EventsTimeseriesInput(_EventFilterInput):
    """Input for time-bucketed alert trends."""

    group_by: list[str] | None = Field(default=None, description=_GROUP_BY_DESCRIPTION)
    interval: str | None = Field(default=None, description="Bucket width: '15m', '1h', '4h', '1d'. Default: '1h'.")
    limit: int | None = Field(default=None, description="Buckets to return, oldest first (default 100).", ge=1)


class EventsIncidentsInput(_EventFilterInput):
    """Input for deduplicated incidents."""

    dedupe_window: str | None = Field(
        default=None,
        description="Max gap between triggers merged into one incident: '5m', '15m', '1h'. Default: '5m'.",
    )
    limit: int | None = Field(
        default=None,
        description=f"Incidents to return (default 100, max {MAX_INCIDENT_LIMIT}).",
        ge=1,
        le=MAX_INCIDENT_LIMIT,
    )


class EventsSearchInput(_EventFilterInput):
    """Input for a single page of events."""

    priority: str | None = Field(default=None, description="Event priority: 'normal' or 'low'.")
    limit: int | None = Field(default=None, description="Events to return (capped by configuration).", ge=1)
    cursor: str | None = Field(default=None, description="Cursor from a previous search's meta.next_cursor.")
    enrich: bool = Field(default=False, description="Attach monitor definitions (slower).")


class EventsGetInput(BaseModel):
    """Input for fetching one event."""

    event_id: str = Field(description="Numeric Datadog event id.")


class EventsCreateInput(BaseModel):
    """Input for posting an event."""

    title: str = Field(description="Event title.")
    text: str = Field(description="Event body. Markdown is supported.")
    priority: Literal["normal", "low"] | None = Field(default=None, description="Default: 'normal'.")
    tags: list[str] | None = Field(default=None, description="Tags to attach, e.g. ['env:prod', 'team:sre'].")
    alert_type: Literal["error", "warning", "info", "success"] | None = Field(
        default=None, description="Default: 'info'."
    )


# --- Error translation ---


def _tool_error(e: EventSourceError) -> ToolException:
    status = f"HTTP {e.status_code} - " if e.status_code else ""
    return ToolException(f"Datadog events error: {status}{e.message}")


# --- Tool descriptions ---

TOOL_DESCRIPTION_AGGREGATE = (
    "Count Datadog events per group. Use this to answer 'how many alerts per monitor?' or "
    "'which hosts alerted most this week?'.\n\n"
    "Streams through up to 10,000 events and returns groups ranked by count, each with a sample "
    "event. meta.truncated=true means the event cap was hit; narrow the query or time range."
)

TOOL_DESCRIPTION_TOP = (
    "Find the noisiest monitors. Use this for 'which monitors triggered the most alerts?'.\n\n"
    "Defaults to alert events (source:alert) grouped by monitor name, top 10, scanning up to "
    "5,000 events. Use context_tags to surface e.g. the service or queue behind each entry."
)

TOOL_DESCRIPTION_TIMESERIES = (
    "Show alert trends over time. Use this for 'when did alerts spike?' or 'alerts per hour "
    "for the last day'.\n\n"
    "Returns fixed-width buckets (interval, default 1h) oldest first with per-group counts and "
    "a total. meta.total_buckets reports buckets dropped by the limit."
)

TOOL_DESCRIPTION_INCIDENTS = (
    "Deduplicate alert events into incidents. Use this for 'how many real incidents did we have?' "
    "or 'which alerts are still open?'.\n\n"
    "Triggers for the same monitor within dedupe_window (default 5m) of each other merge into one "
    "incident; recoveries close the open incident. Returns incidents newest first with trigger "
    "count, recovery time and duration."
)

TOOL_DESCRIPTION_SEARCH = (
    "Search Datadog events and return one page of normalized events with parsed monitor "
    "name/status/scope. Pass meta.next_cursor back as cursor for the next page. "
    "Set enrich=true to attach monitor definitions."
)

TOOL_DESCRIPTION_GET = (
    "Fetch a single Datadog event by its numeric id. Returns title, text, time, priority, "
    "source, tags, alert type and host."
)

TOOL_DESCRIPTION_CREATE = (
    "Post a new event to the Datadog event stream, e.g. to mark a deploy or a manual "
    "intervention. Not available when the service runs in read-only mode."
)


# --- Tool functions ---


@tool("events_aggregate", args_schema=EventsAggregateInput)  # pyright: ignore[reportUnknownParameterType]
async def events_aggregate(
    query: str | None = None,
    from_: str | None = None,
    to: str | None = None,
    sources: list[str] | None = None,
    tags: list[str] | None = None,
    group_by: list[str] | None = None,
    limit: int | None = None,
) -> str:
    """Count events per group. See TOOL_DESCRIPTION_AGGREGATE."""
    try:
        result = await aggregate_events(
            DatadogEventSource(),
            query=query,
            from_=from_,
            to=to,
            sources=sources,
            tags=tags,
            group_by=group_by,
            limit=limit,
        )
    except EventSourceError as e:
        raise _tool_error(e) from e
    return result.model_dump_json(indent=2)


events_aggregate.description = TOOL_DESCRIPTION_AGGREGATE
events_aggregate.handle_tool_error = True


@tool("events_top", args_schema=EventsTopInput)  # pyright: ignore[reportUnknownParameterType]
async def events_top(
    query: str | None = None,
    from_: str | None = None,
    to: str | None = None,
    sources: list[str] | None = None,
    tags: list[str] | None = None,
    group_by: list[str] | None = None,
    limit: int | None = None,
    context_tags: list[str] | None = None,
    max_events: int | None = None,
) -> str:
    """Rank the noisiest monitors. See TOOL_DESCRIPTION_TOP."""
    try:
        result = await top_events(
            DatadogEventSource(),
            query=query,
            from_=from_,
            to=to,
            sources=sources,
            tags=tags,
            group_by=group_by,
            limit=limit,
            context_tags=context_tags,
            max_events=max_events,
            monitor_directory=DatadogMonitorDirectory(),
        )
    except EventSourceError as e:
        raise _tool_error(e) from e
    return result.model_dump_json(indent=2)


events_top.description = TOOL_DESCRIPTION_TOP
events_top.handle_tool_error = True


@tool("events_timeseries", args_schema=EventsTimeseriesInput)  # pyright: ignore[reportUnknownParameterType]
async def events_timeseries(
    query: str | None = None,
    from_: str | None = None,
    to: str | None = None,
    sources: list[str] | None = None,
    tags: list[str] | None = None,
    group_by: list[str] | None = None,
    interval: str | None = None,
    limit: int | None = None,
) -> str:
    """Bucket alert events over time. See TOOL_DESCRIPTION_TIMESERIES."""
    try:
        result = await timeseries_events(
            DatadogEventSource(),
            query=query,
            from_=from_,
            to=to,
            sources=sources,
            tags=tags,
            group_by=group_by,
            interval=interval,
            limit=limit,
        )
    except EventSourceError as e:
        raise _tool_error(e) from e
    return result.model_dump_json(indent=2)


events_timeseries.description = TOOL_DESCRIPTION_TIMESERIES
events_timeseries.handle_tool_error = True


@tool("events_incidents", args_schema=EventsIncidentsInput)  # pyright: ignore[reportUnknownParameterType]
async def events_incidents(
    query: str | None = None,
    from_: str | None = None,
    to: str | None = None,
    sources: list[str] | None = None,
    tags: list[str] | None = None,
    dedupe_window: str | None = None,
    limit: int | None = None,
) -> str:
    """Deduplicate alerts into incidents. See TOOL_DESCRIPTION_INCIDENTS."""
    try:
        result = await incidents_events(
            DatadogEventSource(),
            query=query,
            from_=from_,
            to=to,
            sources=sources,
            tags=tags,
            dedupe_window=dedupe_window,
            limit=limit,
        )
    except EventSourceError as e:
        raise _tool_error(e) from e
    return result.model_dump_json(indent=2)


events_incidents.description = TOOL_DESCRIPTION_INCIDENTS
events_incidents.handle_tool_error = True


@tool("events_search", args_schema=EventsSearchInput)  # pyright: ignore[reportUnknownParameterType]
async def events_search(
    query: str | None = None,
    from_: str | None = None,
    to: str | None = None,
    sources: list[str] | None = None,
    tags: list[str] | None = None,
    priority: str | None = None,
    limit: int | None = None,
    cursor: str | None = None,
    enrich: bool = False,
) -> str:
    """Search one page of events. See TOOL_DESCRIPTION_SEARCH."""
    try:
        result = await search_events(
            DatadogEventSource(),
            query=query,
            from_=from_,
            to=to,
            sources=sources,
            tags=tags,
            priority=priority,
            limit=limit,
            cursor=cursor,
            enrich=enrich,
            monitor_directory=DatadogMonitorDirectory() if enrich else None,
        )
    except EventSourceError as e:
        raise _tool_error(e) from e
    return result.model_dump_json(indent=2)


events_search.description = TOOL_DESCRIPTION_SEARCH
events_search.handle_tool_error = True


@tool("events_get", args_schema=EventsGetInput)  # pyright: ignore[reportUnknownParameterType]
async def events_get(event_id: str) -> str:
    """Fetch one event. See TOOL_DESCRIPTION_GET."""
    try:
        result = await get_event(DatadogEventStore(), event_id)
    except EventSourceError as e:
        raise _tool_error(e) from e
    return result.model_dump_json(indent=2)


events_get.description = TOOL_DESCRIPTION_GET
events_get.handle_tool_error = True


@tool("events_create", args_schema=EventsCreateInput)  # pyright: ignore[reportUnknownParameterType]
async def events_create(
    title: str,
    text: str,
    priority: str | None = None,
    tags: list[str] | None = None,
    alert_type: str | None = None,
) -> str:
    """Post an event. See TOOL_DESCRIPTION_CREATE."""
    try:
        result = await create_event(
            DatadogEventStore(), title=title, text=text, priority=priority, tags=tags, alert_type=alert_type
        )
    except EventSourceError as e:
        raise _tool_error(e) from e
    return result.model_dump_json(indent=2)


events_create.description = TOOL_DESCRIPTION_CREATE
events_create.handle_tool_error = True


EVENT_TOOLS = [
    events_aggregate,
    events_top,
    events_timeseries,
    events_incidents,
    events_search,
    events_get,
    events_create,
]
