"""Models for alert events and the views derived from them.

Raw provider payloads are TypedDicts (they come straight off the wire and are
read defensively with ``.get``). Everything the pipeline produces is a
pydantic model so the surfaces can serialize it with ``model_dump``.
"""

from datetime import datetime
from typing import Any, TypedDict

from pydantic import BaseModel, ConfigDict, Field

# --- Raw provider payloads ---


class RawEventAttributes(TypedDict, total=False):
    title: str
    message: str
    timestamp: str | int | float
    tags: list[str]


class RawEvent(TypedDict, total=False):
    id: str
    type: str
    attributes: RawEventAttributes


class RawPageInfo(TypedDict, total=False):
    after: str


class RawEventsMeta(TypedDict, total=False):
    page: RawPageInfo


class RawEventsResponse(TypedDict, total=False):
    data: list[RawEvent]
    meta: RawEventsMeta


class RawEventV1(TypedDict, total=False):
    """An event as returned by the v1 events endpoints (snake_case keys, epoch seconds)."""

    id: int
    title: str
    text: str
    date_happened: int
    priority: str
    source_type_name: str
    tags: list[str]
    alert_type: str
    host: str


class RawEventV1Response(TypedDict, total=False):
    event: RawEventV1
    status: str


class RawMonitor(TypedDict, total=False):
    id: int
    name: str
    type: str
    message: str
    tags: list[str]
    options: dict[str, Any]


# --- Normalized events ---


class MonitorInfo(BaseModel):
    """Structure recovered from a monitor alert title."""

    model_config = ConfigDict(frozen=True)

    status: str = ""
    scope: str = ""
    name: str
    priority: str | None = None


class EventRecord(BaseModel):
    """A canonical alert event. Never mutated after normalization."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    message: str
    timestamp_ms: int
    tags: tuple[str, ...] = ()  # raw key:value strings, provider order
    alert_type: str = ""
    source: str = ""
    host: str = ""
    priority: str = "normal"
    monitor_id: int | None = None
    monitor_info: MonitorInfo | None = None

    @property
    def monitor_name(self) -> str:
        """Parsed monitor name, falling back to the title."""
        return self.monitor_info.name if self.monitor_info else self.title


class MonitorOptions(BaseModel):
    thresholds: dict[str, float] | None = None
    notify_no_data: bool | None = None
    escalation_message: str | None = None


class MonitorMetadata(BaseModel):
    """Monitor definition attached to an event by enrichment."""

    id: int
    type: str = ""
    message: str = ""
    tags: list[str] = Field(default_factory=list)
    options: MonitorOptions = Field(default_factory=MonitorOptions)


class EnrichedEvent(BaseModel):
    event: EventRecord
    monitor_metadata: MonitorMetadata | None = None


# --- Derived views ---


class Bucket(BaseModel):
    key: str
    count: int
    sample: EventRecord  # first event seen for the key
    last_timestamp_ms: int = 0  # newest event seen for the key


class TimeBucket(BaseModel):
    timestamp: datetime
    timestamp_ms: int  # bucket start
    counts: dict[str, int]
    total: int


class Incident(BaseModel):
    """One or more merged trigger events for a monitor.

    Mutated in place by the incident tracker while a run is in progress.
    """

    monitor_name: str
    first_trigger: datetime
    last_trigger: datetime
    trigger_count: int = 1
    recovered: bool = False
    recovered_at: datetime | None = None
    sample: EventRecord


class IncidentSummary(BaseModel):
    monitor_name: str
    first_trigger: datetime
    last_trigger: datetime
    trigger_count: int
    recovered: bool
    recovered_at: datetime | None = None
    duration: str | None = None
    sample: EventRecord


class TopSample(BaseModel):
    title: str
    source: str
    alert_type: str


class TopEntry(BaseModel):
    rank: int
    name: str
    monitor_name: str
    monitor_id: int | None = None
    alert_count: int
    last_alert: datetime | None = None
    context: str | None = None
    sample: TopSample


class EventDetail(BaseModel):
    """A single event fetched by id."""

    id: int
    title: str = ""
    text: str = ""
    date_happened: datetime | None = None
    priority: str = "normal"
    source: str = ""
    tags: list[str] = Field(default_factory=list)
    alert_type: str = "info"
    host: str = ""


class CreatedEvent(BaseModel):
    id: int
    title: str
    status: str


# --- Operation results ---


class OperationMeta(BaseModel):
    """Diagnostics shared by every operation."""

    query: str
    from_time: datetime
    to_time: datetime
    total_events: int = 0
    pages_fetched: int = 0
    truncated: bool = False


class AggregateMeta(OperationMeta):
    group_by: list[str]
    total_groups: int


class AggregateResult(BaseModel):
    buckets: list[Bucket]
    meta: AggregateMeta


class TopResult(BaseModel):
    top: list[TopEntry]
    meta: AggregateMeta


class TimeseriesMeta(OperationMeta):
    interval: str
    interval_ms: int
    group_by: list[str]
    total_buckets: int


class TimeseriesResult(BaseModel):
    timeseries: list[TimeBucket]
    meta: TimeseriesMeta


class IncidentsMeta(OperationMeta):
    dedupe_window: str
    dedupe_window_ms: int
    total_incidents: int
    recovered_count: int
    active_count: int


class IncidentsResult(BaseModel):
    incidents: list[IncidentSummary]
    meta: IncidentsMeta


class SearchMeta(OperationMeta):
    count: int
    next_cursor: str | None = None


class SearchResult(BaseModel):
    events: list[EnrichedEvent]
    meta: SearchMeta


class GetEventResult(BaseModel):
    event: EventDetail


class CreateEventResult(BaseModel):
    success: bool = True
    event: CreatedEvent
