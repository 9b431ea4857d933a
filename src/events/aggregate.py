"""Grouped counts and fixed-width time buckets over normalized events.

Both accumulators are fresh per operation; nothing is shared between calls.
"""

from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime

from src.events.grouping import build_group_key
from src.events.models import Bucket, EventRecord, TimeBucket

DEFAULT_AGGREGATE_LIMIT = 100
MAX_AGGREGATE_LIMIT = 1000
DEFAULT_TIMESERIES_LIMIT = 100


class _GroupCount:
    __slots__ = ("count", "sample", "last_timestamp_ms")

    def __init__(self, sample: EventRecord) -> None:
        self.count = 1
        self.sample = sample
        self.last_timestamp_ms = sample.timestamp_ms


class Aggregator:
    """Counts events per group key, keeping the first event seen as the sample and the newest timestamp."""

    def __init__(self, group_by: Sequence[str]) -> None:
        self.group_by = list(group_by)
        self.total_events = 0
        self._groups: dict[str, _GroupCount] = {}

    def add(self, event: EventRecord) -> None:
        key = build_group_key(event, self.group_by)
        existing = self._groups.get(key)
        if existing:
            existing.count += 1
            existing.last_timestamp_ms = max(existing.last_timestamp_ms, event.timestamp_ms)
        else:
            self._groups[key] = _GroupCount(event)
        self.total_events += 1

    def add_all(self, events: Iterable[EventRecord]) -> None:
        for event in events:
            self.add(event)

    @property
    def total_groups(self) -> int:
        return len(self._groups)

    def buckets(self, limit: int | None = None) -> list[Bucket]:
        """Buckets by count descending; ties keep first-seen order."""
        effective_limit = max(1, min(limit or DEFAULT_AGGREGATE_LIMIT, MAX_AGGREGATE_LIMIT))
        # sorted() is stable, so equal counts stay in insertion order
        ranked = sorted(self._groups.items(), key=lambda item: item[1].count, reverse=True)
        return [
            Bucket(key=key, count=group.count, sample=group.sample, last_timestamp_ms=group.last_timestamp_ms)
            for key, group in ranked[:effective_limit]
        ]


def bucket_start(timestamp_ms: int, interval_ms: int) -> int:
    return (timestamp_ms // interval_ms) * interval_ms


class TimeBucketer:
    """Per-interval, per-group event counts."""

    def __init__(self, interval_ms: int, group_by: Sequence[str]) -> None:
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")
        self.interval_ms = interval_ms
        self.group_by = list(group_by)
        self.total_events = 0
        self._buckets: dict[int, dict[str, int]] = defaultdict(dict)

    def add(self, event: EventRecord) -> None:
        start = bucket_start(event.timestamp_ms, self.interval_ms)
        key = build_group_key(event, self.group_by)
        counts = self._buckets[start]
        counts[key] = counts.get(key, 0) + 1
        self.total_events += 1

    def add_all(self, events: Iterable[EventRecord]) -> None:
        for event in events:
            self.add(event)

    @property
    def total_buckets(self) -> int:
        return len(self._buckets)

    def buckets(self, limit: int | None = None) -> list[TimeBucket]:
        """Oldest bucket first, cut to the first ``limit`` buckets."""
        effective_limit = max(1, limit or DEFAULT_TIMESERIES_LIMIT)
        result: list[TimeBucket] = []
        for start in sorted(self._buckets)[:effective_limit]:
            counts = dict(self._buckets[start])
            result.append(
                TimeBucket(
                    timestamp=datetime.fromtimestamp(start / 1000, tz=UTC),
                    timestamp_ms=start,
                    counts=counts,
                    total=sum(counts.values()),
                )
            )
        return result
