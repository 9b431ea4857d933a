"""Conversion of raw provider events into canonical ``EventRecord``s."""

import logging
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta

from src.events.grouping import tag_value
from src.events.models import EventDetail, EventRecord, MonitorInfo, RawEvent, RawEventV1
from src.events.parsing import (
    MonitorTitleParser,
    RegexTitleParser,
    extract_monitor_id,
    extract_title_from_message,
)

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = "normal"
_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def _parse_timestamp_ms(value: object) -> int:
    """Epoch milliseconds from an ISO 8601 string or a numeric ms value. 0 when unusable."""
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, int | float):
        return int(value)
    if isinstance(value, str) and value:
        if value.isdigit():
            return int(value)
        try:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.debug("Unparseable event timestamp %r", value)
            return 0
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=UTC)
        return (dt - _EPOCH) // timedelta(milliseconds=1)
    return 0


class EventNormalizer:
    """Builds ``EventRecord``s, delegating title parsing to a ``MonitorTitleParser``."""

    def __init__(self, title_parser: MonitorTitleParser | None = None) -> None:
        self.title_parser = title_parser or RegexTitleParser()

    def normalize(self, raw: RawEvent) -> EventRecord:
        attrs = raw.get("attributes") or {}
        message = attrs.get("message") or ""

        title = attrs.get("title") or ""
        if not title and message:
            title = extract_title_from_message(message)

        tags = tuple(t for t in attrs.get("tags") or [] if isinstance(t, str))

        parsed = self.title_parser.parse(title)
        monitor_info = None
        if parsed.name != title:
            monitor_info = MonitorInfo(
                status=parsed.status,
                scope=parsed.scope,
                name=parsed.name,
                priority=parsed.priority,
            )

        return EventRecord(
            id=str(raw.get("id") or ""),
            title=title,
            message=message,
            timestamp_ms=_parse_timestamp_ms(attrs.get("timestamp")),
            tags=tags,
            alert_type=tag_value(tags, "alert_type") or "",
            source=tag_value(tags, "source") or "",
            host=tag_value(tags, "host") or "",
            priority=tag_value(tags, "priority") or DEFAULT_PRIORITY,
            monitor_id=extract_monitor_id(message),
            monitor_info=monitor_info,
        )

    def normalize_all(self, raws: Iterable[RawEvent]) -> list[EventRecord]:
        return [self.normalize(raw) for raw in raws]


_default_normalizer = EventNormalizer()


def normalize_event(raw: RawEvent) -> EventRecord:
    """Normalize with the default regex title parser."""
    return _default_normalizer.normalize(raw)


def event_detail(raw: RawEventV1) -> EventDetail:
    """Convert a v1 event payload, whose ``date_happened`` is epoch seconds."""
    happened = raw.get("date_happened")
    return EventDetail(
        id=raw.get("id") or 0,
        title=raw.get("title") or "",
        text=raw.get("text") or "",
        date_happened=datetime.fromtimestamp(happened, tz=UTC) if happened else None,
        priority=str(raw.get("priority") or DEFAULT_PRIORITY),
        source=raw.get("source_type_name") or "",
        tags=[t for t in raw.get("tags") or [] if isinstance(t, str)],
        alert_type=str(raw.get("alert_type") or "info"),
        host=raw.get("host") or "",
    )
