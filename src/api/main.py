"""FastAPI backend for the alert event pipeline.

Exposes the aggregate/top/timeseries/incidents/search operations over HTTP,
plus single-event get and create.
Provider errors keep their status code so clients can decide whether to retry.
"""

import logging
import time
from collections.abc import AsyncIterator, Awaitable
from contextlib import asynccontextmanager
from typing import Literal, TypeVar

from fastapi import FastAPI, HTTPException, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, Field

from src.config import get_settings
from src.events.errors import EventSourceError
from src.events.models import (
    AggregateResult,
    CreateEventResult,
    GetEventResult,
    IncidentsResult,
    SearchResult,
    TimeseriesResult,
    TopResult,
)
from src.events.service import (
    aggregate_events,
    create_event,
    get_event,
    incidents_events,
    search_events,
    timeseries_events,
    top_events,
)
from src.events.source import DatadogEventSource, DatadogEventStore, DatadogMonitorDirectory, validate_credentials
from src.observability.metrics import APP_INFO, COMPONENT_HEALTHY, REQUEST_DURATION, REQUESTS_TOTAL

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class EventFilterRequest(BaseModel):
    """Filters shared by every events endpoint."""

    query: str | None = None
    from_: str | None = Field(default=None, alias="from")
    to: str | None = None
    sources: list[str] | None = None
    tags: list[str] | None = None

    model_config = {"populate_by_name": True}


class AggregateRequest(EventFilterRequest):
    group_by: list[str] | None = None
    limit: int | None = Field(default=None, ge=1, le=1000)


class TopRequest(AggregateRequest):
    context_tags: list[str] | None = None
    max_events: int | None = Field(default=None, ge=1, le=10_000)


class TimeseriesRequest(EventFilterRequest):
    group_by: list[str] | None = None
    interval: str | None = None
    limit: int | None = Field(default=None, ge=1)


class IncidentsRequest(EventFilterRequest):
    dedupe_window: str | None = None
    limit: int | None = Field(default=None, ge=1, le=500)


class SearchRequest(EventFilterRequest):
    priority: str | None = None
    limit: int | None = Field(default=None, ge=1)
    cursor: str | None = None
    enrich: bool = False


class CreateEventRequest(BaseModel):
    title: str = Field(min_length=1)
    text: str
    priority: Literal["normal", "low"] | None = None
    tags: list[str] | None = None
    alert_type: Literal["error", "warning", "info", "success"] | None = None


class HealthResponse(BaseModel):
    """Response body for GET /health."""

    status: str
    detail: str | None = None


# ---------------------------------------------------------------------------
# Application lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper(), format="%(levelname)s: %(message)s")
    APP_INFO.info({"version": "0.1.0", "datadog_site": settings.datadog_site})
    logger.info("Alert event API ready (site=%s)", settings.datadog_site)
    yield
    logger.info("Shutting down alert event API")


app = FastAPI(title="Alert Event Insights", lifespan=lifespan)


async def _run(endpoint: str, operation: Awaitable[T]) -> T:
    """Await an operation, recording request metrics and mapping provider errors."""
    start = time.monotonic()
    try:
        result = await operation
    except EventSourceError as exc:
        REQUESTS_TOTAL.labels(endpoint=endpoint, status="error").inc()
        REQUEST_DURATION.labels(endpoint=endpoint).observe(time.monotonic() - start)
        raise HTTPException(
            status_code=exc.status_code or 502,
            detail={"code": exc.code, "message": exc.message, "retryable": exc.retryable},
        ) from exc

    REQUEST_DURATION.labels(endpoint=endpoint).observe(time.monotonic() - start)
    REQUESTS_TOTAL.labels(endpoint=endpoint, status="success").inc()
    return result


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@app.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus metrics in exposition format."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Check that the Datadog credentials are accepted."""
    try:
        valid = await validate_credentials()
    except EventSourceError as exc:
        COMPONENT_HEALTHY.labels(component="datadog").set(0.0)
        return HealthResponse(status="unhealthy", detail=exc.message)

    COMPONENT_HEALTHY.labels(component="datadog").set(1.0 if valid else 0.0)
    if not valid:
        return HealthResponse(status="unhealthy", detail="Datadog API key rejected")
    return HealthResponse(status="healthy")


@app.post("/events/aggregate", response_model=AggregateResult)
async def aggregate(request: AggregateRequest) -> AggregateResult:
    return await _run(
        "/events/aggregate",
        aggregate_events(
            DatadogEventSource(),
            query=request.query,
            from_=request.from_,
            to=request.to,
            sources=request.sources,
            tags=request.tags,
            group_by=request.group_by,
            limit=request.limit,
        ),
    )


@app.post("/events/top", response_model=TopResult)
async def top(request: TopRequest) -> TopResult:
    return await _run(
        "/events/top",
        top_events(
            DatadogEventSource(),
            query=request.query,
            from_=request.from_,
            to=request.to,
            sources=request.sources,
            tags=request.tags,
            group_by=request.group_by,
            limit=request.limit,
            context_tags=request.context_tags,
            max_events=request.max_events,
            monitor_directory=DatadogMonitorDirectory(),
        ),
    )


@app.post("/events/timeseries", response_model=TimeseriesResult)
async def timeseries(request: TimeseriesRequest) -> TimeseriesResult:
    return await _run(
        "/events/timeseries",
        timeseries_events(
            DatadogEventSource(),
            query=request.query,
            from_=request.from_,
            to=request.to,
            sources=request.sources,
            tags=request.tags,
            group_by=request.group_by,
            interval=request.interval,
            limit=request.limit,
        ),
    )


@app.post("/events/incidents", response_model=IncidentsResult)
async def incidents(request: IncidentsRequest) -> IncidentsResult:
    return await _run(
        "/events/incidents",
        incidents_events(
            DatadogEventSource(),
            query=request.query,
            from_=request.from_,
            to=request.to,
            sources=request.sources,
            tags=request.tags,
            dedupe_window=request.dedupe_window,
            limit=request.limit,
        ),
    )


@app.post("/events/search", response_model=SearchResult)
async def search(request: SearchRequest) -> SearchResult:
    return await _run(
        "/events/search",
        search_events(
            DatadogEventSource(),
            query=request.query,
            from_=request.from_,
            to=request.to,
            sources=request.sources,
            tags=request.tags,
            priority=request.priority,
            limit=request.limit,
            cursor=request.cursor,
            enrich=request.enrich,
            monitor_directory=DatadogMonitorDirectory() if request.enrich else None,
        ),
    )


@app.get("/events/{event_id}", response_model=GetEventResult)
async def get_single_event(event_id: str) -> GetEventResult:
    return await _run("/events/{event_id}", get_event(DatadogEventStore(), event_id))


@app.post("/events", response_model=CreateEventResult)
async def create(request: CreateEventRequest) -> CreateEventResult:
    return await _run(
        "/events",
        create_event(
            DatadogEventStore(),
            title=request.title,
            text=request.text,
            priority=request.priority,
            tags=request.tags,
            alert_type=request.alert_type,
        ),
    )
