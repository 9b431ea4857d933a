"""Tests for the public event operations against an in-memory event source."""

from datetime import UTC, datetime
from typing import Any

import pytest

from src.events.errors import EventSourceError
from src.events.models import RawEvent, RawEventV1, RawEventV1Response, RawMonitor
from src.events.normalize import normalize_event
from src.events.service import (
    aggregate_events,
    build_event_query,
    create_event,
    enrich_with_monitor_metadata,
    get_event,
    incidents_events,
    resolve_time_range,
    search_events,
    timeseries_events,
    top_events,
)
from src.events.source import EventPage, MonitorRef

BASE = "2024-01-15T10:00:00Z"
FROM = "2024-01-15T00:00:00Z"
TO = "2024-01-16T00:00:00Z"


@pytest.fixture(autouse=True)
def _use_mock_settings(mock_settings: Any) -> None:
    """Automatically use mock settings for all tests in this module."""


class FakeEventSource:
    def __init__(self, pages: list[list[RawEvent]], error: EventSourceError | None = None) -> None:
        self.pages = pages
        self.error = error
        self.queries: list[str] = []
        self.ranges: list[tuple[str, str]] = []
        self.page_sizes: list[int] = []

    async def fetch_page(
        self, query: str, from_time: str, to_time: str, cursor: str | None, page_size: int
    ) -> EventPage:
        if self.error is not None:
            raise self.error
        index = len(self.queries)
        self.queries.append(query)
        self.ranges.append((from_time, to_time))
        self.page_sizes.append(page_size)
        events = self.pages[index] if index < len(self.pages) else []
        next_cursor = f"c{index + 1}" if index + 1 < len(self.pages) else None
        return EventPage(events=events, next_cursor=next_cursor)


class FakeMonitorDirectory:
    def __init__(self, monitors: list[RawMonitor] | None = None, *, fail: bool = False) -> None:
        self.monitors = monitors or []
        self.fail = fail
        self.lookups: list[int] = []

    async def get_monitor_by_id(self, monitor_id: int) -> MonitorRef:
        self.lookups.append(monitor_id)
        if self.fail:
            raise EventSourceError("Resource not found: monitor", code="not_found", status_code=404)
        for monitor in self.monitors:
            if monitor.get("id") == monitor_id:
                return MonitorRef(name=monitor.get("name", ""), message=monitor.get("message", ""))
        return MonitorRef(name="", message="")

    async def list_monitors(self) -> list[RawMonitor]:
        if self.fail:
            raise EventSourceError("Datadog service temporarily unavailable. Retry later.", code="unavailable")
        return self.monitors


def _raw(
    event_id: str,
    title: str,
    timestamp: str = BASE,
    tags: list[str] | None = None,
    message: str = "",
) -> RawEvent:
    return {
        "id": event_id,
        "type": "event",
        "attributes": {
            "title": title,
            "message": message,
            "timestamp": timestamp,
            "tags": tags if tags is not None else ["source:alert"],
        },
    }


class TestBuildEventQuery:
    def test_combines_parts(self) -> None:
        query = build_event_query("env:prod", ["alert", "monitor"], ["service:api"], "low")
        assert query == "env:prod (source:alert OR source:monitor) service:api priority:low"

    def test_empty_is_wildcard(self) -> None:
        assert build_event_query() == "*"

    def test_duplicate_parts_dropped(self) -> None:
        assert build_event_query("source:alert", tags=["source:alert"]) == "source:alert"


class TestResolveTimeRange:
    def test_explicit_range(self) -> None:
        time_range = resolve_time_range(FROM, TO)
        assert time_range.start_iso == "2024-01-15T00:00:00.000Z"
        assert time_range.end_iso == "2024-01-16T00:00:00.000Z"

    def test_default_window(self) -> None:
        time_range = resolve_time_range(None, None)
        assert abs((time_range.to_ts - time_range.from_ts) - 24 * 3600) <= 2


class TestAggregateEvents:
    async def test_groups_across_pages(self) -> None:
        source = FakeEventSource(
            [
                [_raw("1", "[Triggered] CPU High"), _raw("2", "[Triggered] Disk Full")],
                [_raw("3", "[Recovered] CPU High")],
            ]
        )

        result = await aggregate_events(source, query="source:alert", from_=FROM, to=TO)

        assert [(b.key, b.count) for b in result.buckets] == [("CPU High", 2), ("Disk Full", 1)]
        assert result.meta.total_events == 3
        assert result.meta.pages_fetched == 2
        assert result.meta.total_groups == 2
        assert result.meta.group_by == ["monitor_name"]
        assert result.meta.truncated is False
        assert source.ranges[0] == ("2024-01-15T00:00:00.000Z", "2024-01-16T00:00:00.000Z")
        assert source.page_sizes[0] == 1000

    async def test_max_events_truncates(self) -> None:
        source = FakeEventSource([[_raw(str(i), f"[Triggered] m{i}") for i in range(5)]])

        result = await aggregate_events(source, from_=FROM, to=TO, max_events=3)

        assert result.meta.total_events == 3
        assert result.meta.truncated is True

    async def test_source_error_propagates(self) -> None:
        source = FakeEventSource([], error=EventSourceError("Authentication failed", code="unauthorized"))

        with pytest.raises(EventSourceError, match="Authentication failed"):
            await aggregate_events(source, from_=FROM, to=TO)


class TestTopEvents:
    async def test_defaults_to_alert_events(self) -> None:
        source = FakeEventSource([[_raw("1", "[Triggered] CPU High")]])

        result = await top_events(source, from_=FROM, to=TO)

        assert source.queries[0] == "source:alert"
        assert result.top[0].rank == 1
        assert result.top[0].name == "CPU High"
        assert result.top[0].monitor_name == "CPU High"
        assert result.top[0].alert_count == 1

    async def test_context_and_last_alert(self) -> None:
        source = FakeEventSource(
            [
                [
                    _raw("1", "[Triggered] Queue Backlog", tags=["source:alert", "queue:billing", "service:api"]),
                    _raw("2", "[Triggered] Queue Backlog", timestamp="2024-01-15T11:00:00Z"),
                    _raw("3", "[Triggered] CPU High"),
                ]
            ]
        )

        result = await top_events(source, from_=FROM, to=TO, context_tags=["service", "queue"])

        first = result.top[0]
        assert first.name == "Queue Backlog"
        assert first.alert_count == 2
        assert first.context == "service:api"
        assert first.last_alert == datetime(2024, 1, 15, 11, 0, tzinfo=UTC)
        assert first.sample.source == "alert"
        assert result.top[1].context is None

    async def test_limit(self) -> None:
        source = FakeEventSource([[_raw(str(i), f"[Triggered] m{i}") for i in range(15)]])

        result = await top_events(source, from_=FROM, to=TO)
        assert len(result.top) == 10

    async def test_monitor_name_from_directory(self) -> None:
        source = FakeEventSource([[_raw("1", "Unstructured alert", message="see /monitors/42")]])
        directory = FakeMonitorDirectory([{"id": 42, "name": "CPU High"}])

        result = await top_events(source, from_=FROM, to=TO, monitor_directory=directory)

        assert result.top[0].monitor_name == "CPU High"
        assert result.top[0].monitor_id == 42
        assert directory.lookups == [42]

    async def test_directory_failure_uses_placeholder(self) -> None:
        source = FakeEventSource([[_raw("1", "Unstructured alert", message="see /monitors/42")]])

        result = await top_events(source, from_=FROM, to=TO, monitor_directory=FakeMonitorDirectory(fail=True))

        assert result.top[0].monitor_name == "Monitor 42"


class TestTimeseriesEvents:
    async def test_hourly_buckets(self) -> None:
        source = FakeEventSource(
            [
                [
                    _raw("1", "[Triggered] CPU High", timestamp="2024-01-15T10:05:00Z"),
                    _raw("2", "[Triggered] CPU High", timestamp="2024-01-15T10:55:00Z"),
                    _raw("3", "[Triggered] Disk Full", timestamp="2024-01-15T12:10:00Z"),
                ]
            ]
        )

        result = await timeseries_events(source, from_=FROM, to=TO)

        assert result.meta.interval == "1h"
        assert result.meta.interval_ms == 3_600_000
        assert result.meta.total_buckets == 2
        assert [b.total for b in result.timeseries] == [2, 1]
        assert result.timeseries[0].counts == {"CPU High": 2}

    async def test_custom_interval(self) -> None:
        source = FakeEventSource(
            [
                [
                    _raw("1", "[Triggered] CPU High", timestamp="2024-01-15T10:05:00Z"),
                    _raw("2", "[Triggered] CPU High", timestamp="2024-01-15T10:20:00Z"),
                ]
            ]
        )

        result = await timeseries_events(source, from_=FROM, to=TO, interval="15m")
        assert result.meta.interval_ms == 900_000
        assert len(result.timeseries) == 2


class TestIncidentsEvents:
    async def test_close_triggers_merge(self) -> None:
        source = FakeEventSource(
            [
                [
                    _raw("1", "[Triggered on {host:web}] CPU High", timestamp="2024-01-15T10:00:00Z"),
                    _raw("2", "[Triggered on {host:web}] CPU High", timestamp="2024-01-15T10:02:00Z"),
                ]
            ]
        )

        result = await incidents_events(source, from_=FROM, to=TO, dedupe_window="5m")

        assert len(result.incidents) == 1
        incident = result.incidents[0]
        assert incident.monitor_name == "CPU High"
        assert incident.trigger_count == 2
        assert incident.recovered is False
        assert result.meta.active_count == 1
        assert result.meta.dedupe_window_ms == 300_000

    async def test_trigger_then_recovery(self) -> None:
        source = FakeEventSource(
            [
                [
                    _raw("1", "[Triggered] CPU High", timestamp="2024-01-15T10:00:00Z"),
                    _raw("2", "[Recovered] CPU High", timestamp="2024-01-15T10:03:00Z"),
                ]
            ]
        )

        result = await incidents_events(source, from_=FROM, to=TO)

        incident = result.incidents[0]
        assert incident.recovered is True
        assert incident.duration == "3m"
        assert result.meta.recovered_count == 1
        assert result.meta.active_count == 0

    async def test_counts_cover_all_incidents(self) -> None:
        source = FakeEventSource(
            [[_raw(str(i), f"[Triggered] m{i}", timestamp=f"2024-01-15T1{i}:00:00Z") for i in range(4)]]
        )

        result = await incidents_events(source, from_=FROM, to=TO, limit=2)

        assert len(result.incidents) == 2
        assert result.meta.total_incidents == 4
        assert result.meta.active_count == 4


class TestSearchEvents:
    async def test_single_page(self) -> None:
        source = FakeEventSource([[_raw("1", "[Triggered] CPU High")], [_raw("2", "[Triggered] CPU High")]])

        result = await search_events(source, query="env:prod", from_=FROM, to=TO, priority="normal", limit=10)

        assert len(result.events) == 1
        assert result.meta.count == 1
        assert result.meta.next_cursor == "c1"
        assert result.meta.query == "env:prod priority:normal"
        assert source.page_sizes == [10]

    async def test_limit_capped_by_max_results(self) -> None:
        source = FakeEventSource([[]])

        await search_events(source, from_=FROM, to=TO, limit=5000)
        assert source.page_sizes == [100]

    async def test_negative_limit_requests_one(self) -> None:
        source = FakeEventSource([[]])

        await search_events(source, from_=FROM, to=TO, limit=-3)
        assert source.page_sizes == [1]

    async def test_default_limit(self) -> None:
        source = FakeEventSource([[]])

        await search_events(source, from_=FROM, to=TO)
        assert source.page_sizes == [25]

    async def test_enrichment(self) -> None:
        source = FakeEventSource([[_raw("1", "[Triggered] CPU High"), _raw("2", "Deploy done")]])
        directory = FakeMonitorDirectory(
            [
                {
                    "id": 42,
                    "name": "CPU High",
                    "type": "metric alert",
                    "message": "CPU is high",
                    "tags": ["team:sre"],
                    "options": {"thresholds": {"critical": 90.0}, "notify_no_data": False},
                }
            ]
        )

        result = await search_events(source, from_=FROM, to=TO, enrich=True, monitor_directory=directory)

        enriched, plain = result.events
        assert enriched.monitor_metadata is not None
        assert enriched.monitor_metadata.id == 42
        assert enriched.monitor_metadata.options.thresholds == {"critical": 90.0}
        assert plain.monitor_metadata is None


class TestEnrichWithMonitorMetadata:
    async def test_listing_failure_leaves_events_unenriched(self) -> None:
        events = [normalize_event(_raw("1", "[Triggered] CPU High"))]

        enriched = await enrich_with_monitor_metadata(events, FakeMonitorDirectory(fail=True))

        assert len(enriched) == 1
        assert enriched[0].monitor_metadata is None


class FakeEventStore:
    def __init__(self, event: RawEventV1 | None = None) -> None:
        self.event = event or {}
        self.requested: list[int] = []
        self.created: list[dict[str, Any]] = []

    async def get_event(self, event_id: int) -> RawEventV1:
        self.requested.append(event_id)
        return self.event

    async def create_event(self, body: dict[str, Any]) -> RawEventV1Response:
        self.created.append(body)
        return {"event": {"id": 77, "title": body["title"]}, "status": "ok"}


class TestGetEvent:
    async def test_converts_v1_event(self) -> None:
        store = FakeEventStore(
            {
                "id": 1234,
                "title": "Deploy api",
                "text": "v42",
                "date_happened": 1705312800,
                "source_type_name": "jenkins",
                "tags": ["env:prod"],
                "host": "ci-1",
            }
        )

        result = await get_event(store, " 1234 ")

        assert store.requested == [1234]
        assert result.event.date_happened == datetime(2024, 1, 15, 10, 0, tzinfo=UTC)
        assert result.event.source == "jenkins"
        assert result.event.priority == "normal"
        assert result.event.alert_type == "info"

    async def test_invalid_id(self) -> None:
        store = FakeEventStore()

        with pytest.raises(EventSourceError, match="Invalid event ID: abc") as exc_info:
            await get_event(store, "abc")

        assert exc_info.value.status_code == 400
        assert store.requested == []


class TestCreateEvent:
    async def test_defaults(self) -> None:
        store = FakeEventStore()

        result = await create_event(store, title="Deploy", text="v42", priority="urgent")

        assert store.created == [{"title": "Deploy", "text": "v42", "priority": "normal", "alert_type": "info"}]
        assert result.success is True
        assert result.event.id == 77
        assert result.event.status == "ok"

    async def test_low_priority_and_tags(self) -> None:
        store = FakeEventStore()

        await create_event(store, title="t", text="x", priority="low", tags=["team:sre"], alert_type="warning")

        assert store.created[0]["priority"] == "low"
        assert store.created[0]["tags"] == ["team:sre"]
        assert store.created[0]["alert_type"] == "warning"

    async def test_read_only_refuses(self, mock_settings: Any) -> None:
        mock_settings.read_only = True
        store = FakeEventStore()

        with pytest.raises(EventSourceError, match="read-only") as exc_info:
            await create_event(store, title="t", text="x")

        assert exc_info.value.code == "read_only"
        assert exc_info.value.status_code == 403
        assert store.created == []
