"""Trigger/recovery deduplication of alert events into incidents.

Each monitor name has at most one live incident. Triggers within the dedupe
window of the live incident's last trigger merge into it; a larger gap
archives it (under ``<name>::<first trigger ISO>``) and opens a fresh one.
Recoveries close the live incident if it is still open and are otherwise
dropped.
"""

import logging
import math
from collections.abc import Iterable
from datetime import UTC, datetime

from src.events.models import EventRecord, Incident, IncidentSummary
from src.events.timeutils import iso_ms

logger = logging.getLogger(__name__)

DEFAULT_DEDUPE_WINDOW_MS = 300_000
DEFAULT_INCIDENT_LIMIT = 100
MAX_INCIDENT_LIMIT = 500

TRIGGER_STATUSES = frozenset({"triggered", "alert", "re-triggered", "renotify"})
RECOVERY_STATUSES = frozenset({"recovered", "ok"})

_RECOVERY_KEYWORDS = ("recovered", "[ok]", "resolved")


def derive_status(event: EventRecord) -> str:
    """Lower-cased status for an event; empty when nothing identifies it.

    Parsed title status wins, then the alert_type tag, then (for
    ``source:alert`` events only) recovery keywords in the message. Alert
    events that match none of those count as triggers.
    """
    if event.monitor_info and event.monitor_info.status:
        return event.monitor_info.status.lower()

    alert_type = event.alert_type.lower()
    if alert_type in ("error", "warning"):
        return "triggered"
    if alert_type == "success":
        return "recovered"

    if event.source == "alert":
        message = event.message.lower()
        if any(keyword in message for keyword in _RECOVERY_KEYWORDS):
            return "recovered"
        return "triggered"

    return ""


def format_duration(duration_ms: int) -> str:
    """``45s``, ``3m`` (nearest minute, halves round up) or ``1.5h``."""
    if duration_ms < 60_000:
        return f"{math.floor(duration_ms / 1000 + 0.5)}s"
    if duration_ms < 3_600_000:
        return f"{math.floor(duration_ms / 60_000 + 0.5)}m"
    return f"{duration_ms / 3_600_000:.1f}h"


def _to_datetime(timestamp_ms: int) -> datetime:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=UTC)


class IncidentTracker:
    """Stateful merger of trigger and recovery events, fresh per run."""

    def __init__(self, dedupe_window_ms: int = DEFAULT_DEDUPE_WINDOW_MS) -> None:
        self.dedupe_window_ms = dedupe_window_ms
        self.total_events = 0
        self._live: dict[str, Incident] = {}
        self._archived: dict[str, Incident] = {}

    def observe(self, event: EventRecord) -> None:
        self.total_events += 1

        monitor_name = event.monitor_name
        if not monitor_name:
            return

        status = derive_status(event)
        if status in TRIGGER_STATUSES:
            self._on_trigger(monitor_name, event)
        elif status in RECOVERY_STATUSES:
            self._on_recovery(monitor_name, event)

    def observe_all(self, events: Iterable[EventRecord]) -> None:
        for event in events:
            self.observe(event)

    def _on_trigger(self, monitor_name: str, event: EventRecord) -> None:
        event_time = _to_datetime(event.timestamp_ms)
        live = self._live.get(monitor_name)

        if live is not None:
            gap_ms = event.timestamp_ms - _timestamp_ms(live.last_trigger)
            if gap_ms <= self.dedupe_window_ms:
                live.last_trigger = event_time
                live.trigger_count += 1
                live.sample = event
                return
            self._archived[f"{monitor_name}::{iso_ms(live.first_trigger)}"] = live.model_copy()

        self._live[monitor_name] = Incident(
            monitor_name=monitor_name,
            first_trigger=event_time,
            last_trigger=event_time,
            sample=event,
        )

    def _on_recovery(self, monitor_name: str, event: EventRecord) -> None:
        live = self._live.get(monitor_name)
        if live is None or live.recovered:
            logger.debug("Dropping recovery for %r with no open incident", monitor_name)
            return
        live.recovered = True
        live.recovered_at = _to_datetime(event.timestamp_ms)

    def all_incidents(self) -> list[Incident]:
        """Live and archived incidents, newest first trigger first."""
        incidents = [*self._live.values(), *self._archived.values()]
        incidents.sort(key=lambda inc: inc.first_trigger, reverse=True)
        return incidents

    def summaries(self, limit: int | None = None) -> list[IncidentSummary]:
        effective_limit = max(1, min(limit or DEFAULT_INCIDENT_LIMIT, MAX_INCIDENT_LIMIT))
        return [summarize(inc) for inc in self.all_incidents()[:effective_limit]]


def _timestamp_ms(dt: datetime) -> int:
    return round(dt.timestamp() * 1000)


def summarize(incident: Incident) -> IncidentSummary:
    duration = None
    if incident.recovered_at is not None:
        duration = format_duration(_timestamp_ms(incident.recovered_at) - _timestamp_ms(incident.first_trigger))
    return IncidentSummary(
        monitor_name=incident.monitor_name,
        first_trigger=incident.first_trigger,
        last_trigger=incident.last_trigger,
        trigger_count=incident.trigger_count,
        recovered=incident.recovered,
        recovered_at=incident.recovered_at,
        duration=duration,
        sample=incident.sample,
    )
