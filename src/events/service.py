"""Public operations: aggregate, top, timeseries, incidents, search, get and create.

Every operation resolves its query and time range, runs one sequential
pagination loop through ``PaginatedEventFetcher``, feeds each normalized
event into a freshly built accumulator and returns a result with a ``meta``
block. Source errors propagate and no partial result is returned.
"""

import logging
import time
from collections.abc import AsyncIterator, Sequence
from typing import Any, NamedTuple

from src.config import get_settings
from src.events.aggregate import Aggregator, TimeBucketer
from src.events.errors import EventSourceError
from src.events.fetcher import MAX_EVENTS, TOP_MAX_EVENTS, PaginatedEventFetcher
from src.events.grouping import find_context_tag
from src.events.incidents import DEFAULT_DEDUPE_WINDOW_MS, IncidentTracker
from src.events.models import (
    AggregateMeta,
    AggregateResult,
    CreatedEvent,
    CreateEventResult,
    EnrichedEvent,
    EventRecord,
    GetEventResult,
    IncidentsMeta,
    IncidentsResult,
    MonitorMetadata,
    MonitorOptions,
    RawMonitor,
    SearchMeta,
    SearchResult,
    TimeseriesMeta,
    TimeseriesResult,
    TopEntry,
    TopResult,
    TopSample,
)
from src.events.normalize import EventNormalizer, event_detail
from src.events.source import EventSource, EventStore, MonitorDirectory
from src.events.timeutils import (
    ensure_valid_time_range,
    hours_ago,
    now,
    parse_duration_ms,
    parse_time,
    to_datetime,
    to_iso,
)
from src.observability.metrics import (
    EVENTS_PROCESSED,
    OPERATION_DURATION,
    OPERATIONS_TOTAL,
    TRUNCATED_OPERATIONS_TOTAL,
)

logger = logging.getLogger(__name__)

ALERT_QUERY = "source:alert"
ALERT_TAGS = ["source:alert"]
DEFAULT_GROUP_BY = ["monitor_name"]
DEFAULT_TOP_LIMIT = 10
DEFAULT_INTERVAL = "1h"
DEFAULT_INTERVAL_MS = 3_600_000
DEFAULT_DEDUPE_WINDOW = "5m"
EVENT_ALERT_TYPES = ("error", "warning", "info", "success")
DEFAULT_ALERT_TYPE = "info"


class TimeRange(NamedTuple):
    from_ts: int
    to_ts: int

    @property
    def start_iso(self) -> str:
        return to_iso(self.from_ts)

    @property
    def end_iso(self) -> str:
        return to_iso(self.to_ts)


def resolve_time_range(from_: str | int | None, to: str | int | None) -> TimeRange:
    """Parse ``from``/``to`` (default: the last ``default_time_range_hours``) into a valid range."""
    default_from = hours_ago(get_settings().default_time_range_hours)
    from_ts, to_ts = ensure_valid_time_range(parse_time(from_, default_from), parse_time(to, now()))
    return TimeRange(from_ts, to_ts)


def build_event_query(
    query: str | None = None,
    sources: Sequence[str] | None = None,
    tags: Sequence[str] | None = None,
    priority: str | None = None,
) -> str:
    """Combine free text, sources, tags and priority into one provider query."""
    parts: list[str] = []
    if query:
        parts.append(query)
    if sources:
        parts.append("(" + " OR ".join(f"source:{s}" for s in sources) + ")")
    for tag in tags or []:
        parts.append(tag)
    if priority:
        parts.append(f"priority:{priority}")

    deduped = list(dict.fromkeys(parts))
    return " ".join(deduped) if deduped else "*"


def _base_meta(query: str, time_range: TimeRange, fetcher: PaginatedEventFetcher) -> dict[str, Any]:
    return {
        "query": query,
        "from_time": to_datetime(time_range.from_ts),
        "to_time": to_datetime(time_range.to_ts),
        "total_events": fetcher.event_count,
        "pages_fetched": fetcher.page_count,
        "truncated": fetcher.truncated,
    }


class _Operation:
    """Timing, counting and logging shared by every operation."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._start = 0.0

    def __enter__(self) -> "_Operation":
        self._start = time.monotonic()
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc: BaseException | None, tb: object) -> None:
        OPERATION_DURATION.labels(operation=self.name).observe(time.monotonic() - self._start)
        status = "success" if exc is None else "error"
        OPERATIONS_TOTAL.labels(operation=self.name, status=status).inc()
        if isinstance(exc, EventSourceError):
            logger.warning("Events %s aborted: %s", self.name, exc.message)

    def finish(self, fetcher: PaginatedEventFetcher) -> None:
        EVENTS_PROCESSED.labels(operation=self.name).inc(fetcher.event_count)
        if fetcher.truncated:
            TRUNCATED_OPERATIONS_TOTAL.labels(operation=self.name).inc()
        logger.info(
            "Events %s done: %d events over %d pages (truncated=%s)",
            self.name,
            fetcher.event_count,
            fetcher.page_count,
            fetcher.truncated,
        )


async def _normalized(fetcher: PaginatedEventFetcher, normalizer: EventNormalizer) -> AsyncIterator[EventRecord]:
    async for raw in fetcher.events():
        yield normalizer.normalize(raw)


def _fetcher(source: EventSource, query: str, time_range: TimeRange, max_events: int) -> PaginatedEventFetcher:
    return PaginatedEventFetcher(
        source,
        query,
        time_range.start_iso,
        time_range.end_iso,
        max_events=max_events,
        page_size=get_settings().events_page_size,
    )


# --- Aggregate / top ---


async def aggregate_events(
    source: EventSource,
    *,
    query: str | None = None,
    from_: str | int | None = None,
    to: str | int | None = None,
    sources: Sequence[str] | None = None,
    tags: Sequence[str] | None = None,
    group_by: Sequence[str] | None = None,
    limit: int | None = None,
    max_events: int = MAX_EVENTS,
    normalizer: EventNormalizer | None = None,
    operation: str = "aggregate",
) -> AggregateResult:
    """Count events per group key and rank groups by count."""
    time_range = resolve_time_range(from_, to)
    full_query = build_event_query(query, sources, tags)
    group_by_fields = list(group_by or DEFAULT_GROUP_BY)
    normalizer = normalizer or EventNormalizer()

    logger.info(
        "Events %s: query=%r group_by=%s from=%s to=%s",
        operation,
        full_query,
        group_by_fields,
        time_range.start_iso,
        time_range.end_iso,
    )
    with _Operation(operation) as op:
        fetcher = _fetcher(source, full_query, time_range, max_events)
        aggregator = Aggregator(group_by_fields)
        async for event in _normalized(fetcher, normalizer):
            aggregator.add(event)
        op.finish(fetcher)

    return AggregateResult(
        buckets=aggregator.buckets(limit),
        meta=AggregateMeta(
            **_base_meta(full_query, time_range, fetcher),
            group_by=group_by_fields,
            total_groups=aggregator.total_groups,
        ),
    )


async def _resolve_monitor_name(
    directory: MonitorDirectory, monitor_id: int, cache: dict[int, str]
) -> str:
    if monitor_id not in cache:
        try:
            ref = await directory.get_monitor_by_id(monitor_id)
            cache[monitor_id] = ref.name or f"Monitor {monitor_id}"
        except EventSourceError as e:
            logger.debug("Monitor %d lookup failed: %s", monitor_id, e.message)
            cache[monitor_id] = f"Monitor {monitor_id}"
    return cache[monitor_id]


async def top_events(
    source: EventSource,
    *,
    query: str | None = None,
    from_: str | int | None = None,
    to: str | int | None = None,
    sources: Sequence[str] | None = None,
    tags: Sequence[str] | None = None,
    group_by: Sequence[str] | None = None,
    limit: int | None = None,
    context_tags: Sequence[str] | None = None,
    max_events: int | None = None,
    monitor_directory: MonitorDirectory | None = None,
    normalizer: EventNormalizer | None = None,
) -> TopResult:
    """The noisiest groups (monitors by default) over alert events."""
    result = await aggregate_events(
        source,
        query=query if query is not None else ALERT_QUERY,
        from_=from_,
        to=to,
        sources=sources,
        tags=tags if tags is not None else ALERT_TAGS,
        group_by=group_by or DEFAULT_GROUP_BY,
        limit=limit or DEFAULT_TOP_LIMIT,
        max_events=max_events or TOP_MAX_EVENTS,
        normalizer=normalizer,
        operation="top",
    )

    name_cache: dict[int, str] = {}
    entries: list[TopEntry] = []
    for rank, bucket in enumerate(result.buckets, start=1):
        sample = bucket.sample
        monitor_name = sample.monitor_name
        if monitor_directory is not None and sample.monitor_info is None and sample.monitor_id is not None:
            monitor_name = await _resolve_monitor_name(monitor_directory, sample.monitor_id, name_cache)

        entries.append(
            TopEntry(
                rank=rank,
                name=bucket.key,
                monitor_name=monitor_name,
                monitor_id=sample.monitor_id,
                alert_count=bucket.count,
                last_alert=to_datetime(bucket.last_timestamp_ms / 1000) if bucket.last_timestamp_ms else None,
                context=find_context_tag(sample.tags, context_tags) if context_tags else None,
                sample=TopSample(title=sample.title, source=sample.source, alert_type=sample.alert_type),
            )
        )

    return TopResult(top=entries, meta=result.meta)


# --- Timeseries ---


async def timeseries_events(
    source: EventSource,
    *,
    query: str | None = None,
    from_: str | int | None = None,
    to: str | int | None = None,
    sources: Sequence[str] | None = None,
    tags: Sequence[str] | None = None,
    group_by: Sequence[str] | None = None,
    interval: str | None = None,
    limit: int | None = None,
    max_events: int = MAX_EVENTS,
    normalizer: EventNormalizer | None = None,
) -> TimeseriesResult:
    """Fixed-width time buckets of per-group counts, oldest first."""
    time_range = resolve_time_range(from_, to)
    full_query = build_event_query(
        query if query is not None else ALERT_QUERY, sources, tags if tags is not None else ALERT_TAGS
    )
    interval_label = interval or DEFAULT_INTERVAL
    interval_ms = parse_duration_ms(interval_label, DEFAULT_INTERVAL_MS)
    group_by_fields = list(group_by or DEFAULT_GROUP_BY)
    normalizer = normalizer or EventNormalizer()

    logger.info("Events timeseries: query=%r interval=%s group_by=%s", full_query, interval_label, group_by_fields)
    with _Operation("timeseries") as op:
        fetcher = _fetcher(source, full_query, time_range, max_events)
        bucketer = TimeBucketer(interval_ms, group_by_fields)
        async for event in _normalized(fetcher, normalizer):
            bucketer.add(event)
        op.finish(fetcher)

    return TimeseriesResult(
        timeseries=bucketer.buckets(limit),
        meta=TimeseriesMeta(
            **_base_meta(full_query, time_range, fetcher),
            interval=interval_label,
            interval_ms=interval_ms,
            group_by=group_by_fields,
            total_buckets=bucketer.total_buckets,
        ),
    )


# --- Incidents ---


async def incidents_events(
    source: EventSource,
    *,
    query: str | None = None,
    from_: str | int | None = None,
    to: str | int | None = None,
    sources: Sequence[str] | None = None,
    tags: Sequence[str] | None = None,
    dedupe_window: str | None = None,
    limit: int | None = None,
    max_events: int = MAX_EVENTS,
    normalizer: EventNormalizer | None = None,
) -> IncidentsResult:
    """Deduplicate alert events into trigger/recovery incidents."""
    time_range = resolve_time_range(from_, to)
    full_query = build_event_query(
        query if query is not None else ALERT_QUERY, sources, tags if tags is not None else ALERT_TAGS
    )
    window_label = dedupe_window or DEFAULT_DEDUPE_WINDOW
    window_ms = parse_duration_ms(window_label, DEFAULT_DEDUPE_WINDOW_MS)
    normalizer = normalizer or EventNormalizer()

    logger.info("Events incidents: query=%r dedupe_window=%s", full_query, window_label)
    with _Operation("incidents") as op:
        fetcher = _fetcher(source, full_query, time_range, max_events)
        tracker = IncidentTracker(window_ms)
        async for event in _normalized(fetcher, normalizer):
            tracker.observe(event)
        op.finish(fetcher)

    all_incidents = tracker.all_incidents()
    recovered_count = sum(1 for inc in all_incidents if inc.recovered)

    return IncidentsResult(
        incidents=tracker.summaries(limit),
        meta=IncidentsMeta(
            **_base_meta(full_query, time_range, fetcher),
            dedupe_window=window_label,
            dedupe_window_ms=window_ms,
            total_incidents=len(all_incidents),
            recovered_count=recovered_count,
            active_count=len(all_incidents) - recovered_count,
        ),
    )


# --- Search + enrichment ---


def _monitor_metadata(monitor: RawMonitor) -> MonitorMetadata:
    options = monitor.get("options") or {}
    return MonitorMetadata(
        id=monitor.get("id", 0),
        type=str(monitor.get("type", "")),
        message=monitor.get("message", ""),
        tags=list(monitor.get("tags") or []),
        options=MonitorOptions(
            thresholds=options.get("thresholds"),
            notify_no_data=options.get("notify_no_data"),
            escalation_message=options.get("escalation_message"),
        ),
    )


async def enrich_with_monitor_metadata(
    events: Sequence[EventRecord], directory: MonitorDirectory
) -> list[EnrichedEvent]:
    """Attach monitor definitions matched by parsed monitor name.

    A failed monitor listing leaves every event unenriched.
    """
    names = {e.monitor_info.name for e in events if e.monitor_info}
    if not names:
        return [EnrichedEvent(event=e) for e in events]

    try:
        monitors = await directory.list_monitors()
    except EventSourceError as e:
        logger.warning("Monitor enrichment skipped: %s", e.message)
        return [EnrichedEvent(event=e) for e in events]

    by_name = {m["name"]: m for m in monitors if m.get("name")}
    enriched: list[EnrichedEvent] = []
    for event in events:
        monitor = by_name.get(event.monitor_info.name) if event.monitor_info else None
        enriched.append(EnrichedEvent(event=event, monitor_metadata=_monitor_metadata(monitor) if monitor else None))
    return enriched


async def search_events(
    source: EventSource,
    *,
    query: str | None = None,
    from_: str | int | None = None,
    to: str | int | None = None,
    sources: Sequence[str] | None = None,
    tags: Sequence[str] | None = None,
    priority: str | None = None,
    limit: int | None = None,
    cursor: str | None = None,
    enrich: bool = False,
    monitor_directory: MonitorDirectory | None = None,
    normalizer: EventNormalizer | None = None,
) -> SearchResult:
    """One page of normalized events, with the cursor for the next one."""
    settings = get_settings()
    time_range = resolve_time_range(from_, to)
    full_query = build_event_query(query, sources, tags, priority)
    page_size = max(1, min(limit or settings.default_limit, settings.max_results))
    normalizer = normalizer or EventNormalizer()

    logger.info("Events search: query=%r limit=%d cursor=%s", full_query, page_size, cursor)
    with _Operation("search"):
        page = await source.fetch_page(full_query, time_range.start_iso, time_range.end_iso, cursor, page_size)
        records = normalizer.normalize_all(page.events)
        EVENTS_PROCESSED.labels(operation="search").inc(len(records))

        if enrich and monitor_directory is not None and records:
            events = await enrich_with_monitor_metadata(records, monitor_directory)
        else:
            events = [EnrichedEvent(event=r) for r in records]

    return SearchResult(
        events=events,
        meta=SearchMeta(
            query=full_query,
            from_time=to_datetime(time_range.from_ts),
            to_time=to_datetime(time_range.to_ts),
            total_events=len(records),
            pages_fetched=1,
            count=len(records),
            next_cursor=page.next_cursor,
        ),
    )


# --- Single events ---


def parse_event_id(event_id: str | int) -> int:
    try:
        return int(str(event_id).strip())
    except ValueError:
        raise EventSourceError(
            f"Invalid event ID: {event_id}", code="invalid_request", status_code=400
        ) from None


async def get_event(store: EventStore, event_id: str | int) -> GetEventResult:
    """Fetch one event by its numeric id."""
    parsed_id = parse_event_id(event_id)
    logger.info("Events get: id=%d", parsed_id)
    with _Operation("get"):
        raw = await store.get_event(parsed_id)
    return GetEventResult(event=event_detail(raw))


async def create_event(
    store: EventStore,
    *,
    title: str,
    text: str,
    priority: str | None = None,
    tags: Sequence[str] | None = None,
    alert_type: str | None = None,
) -> CreateEventResult:
    """Post a new event. Refused when the service runs read-only.

    Any priority other than ``low`` is sent as ``normal``.
    """
    if get_settings().read_only:
        raise EventSourceError(
            "Action 'create' is not allowed in read-only mode", code="read_only", status_code=403
        )

    body: dict[str, Any] = {
        "title": title,
        "text": text,
        "priority": "low" if priority == "low" else "normal",
        "alert_type": alert_type or DEFAULT_ALERT_TYPE,
    }
    if tags:
        body["tags"] = list(tags)

    logger.info("Events create: title=%r priority=%s", title, body["priority"])
    with _Operation("create"):
        response = await store.create_event(body)

    event = response.get("event") or {}
    return CreateEventResult(
        event=CreatedEvent(
            id=event.get("id") or 0,
            title=event.get("title") or "",
            status=response.get("status") or "",
        )
    )
