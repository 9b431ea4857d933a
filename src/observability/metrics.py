"""Prometheus metric definitions for alert event self-instrumentation.

All metrics are module-level singletons registered with the default
prometheus_client registry.  Import them wherever instrumentation is needed.
"""

from prometheus_client import Counter, Gauge, Histogram, Info

# ---------------------------------------------------------------------------
# Histogram bucket definitions
# ---------------------------------------------------------------------------

REQUEST_DURATION_BUCKETS = (0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0)
OPERATION_DURATION_BUCKETS = (0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0)

# ---------------------------------------------------------------------------
# HTTP API metrics
# ---------------------------------------------------------------------------

REQUEST_DURATION = Histogram(
    "alert_events_request_duration_seconds",
    "End-to-end request duration in seconds",
    labelnames=["endpoint"],
    buckets=REQUEST_DURATION_BUCKETS,
)

REQUESTS_TOTAL = Counter(
    "alert_events_requests_total",
    "Total number of requests",
    labelnames=["endpoint", "status"],
)

# ---------------------------------------------------------------------------
# Pipeline metrics
# ---------------------------------------------------------------------------

OPERATION_DURATION = Histogram(
    "alert_events_operation_duration_seconds",
    "Duration of aggregate/top/timeseries/incidents/search operations in seconds",
    labelnames=["operation"],
    buckets=OPERATION_DURATION_BUCKETS,
)

OPERATIONS_TOTAL = Counter(
    "alert_events_operations_total",
    "Total number of pipeline operations",
    labelnames=["operation", "status"],
)

EVENT_PAGES_FETCHED = Counter(
    "alert_events_pages_fetched_total",
    "Pages fetched from the event source",
)

EVENTS_PROCESSED = Counter(
    "alert_events_processed_total",
    "Events consumed by a pipeline operation",
    labelnames=["operation"],
)

TRUNCATED_OPERATIONS_TOTAL = Counter(
    "alert_events_truncated_operations_total",
    "Operations that stopped at the event cap before the source was exhausted",
    labelnames=["operation"],
)

SOURCE_ERRORS_TOTAL = Counter(
    "alert_events_source_errors_total",
    "Failed requests to the event source or monitor directory",
    labelnames=["code"],
)

# ---------------------------------------------------------------------------
# Health / info metrics
# ---------------------------------------------------------------------------

COMPONENT_HEALTHY = Gauge(
    "alert_events_component_healthy",
    "Whether a dependency component is healthy (1=healthy, 0=unhealthy)",
    labelnames=["component"],
)

APP_INFO = Info(
    "alert_events",
    "Alert event service build information",
)
