"""Time range and duration parsing for operation inputs.

Accepted ``from``/``to`` forms:
- relative: ``30s``, ``15m``, ``2h``, ``7d`` (that long ago from now)
- relative with clock time: ``3d@11:45:23``, ``1d@14:30``, ``2h@15:00``
- keywords: ``today@09:30``, ``yesterday@14:00:00``
- ISO 8601 (``2024-01-15T11:45:23Z``) or a unix timestamp in seconds
"""

import re
from datetime import UTC, datetime, timedelta

_SIMPLE_RELATIVE = re.compile(r"^(\d+)([smhd])$")
_RELATIVE_WITH_TIME = re.compile(r"^(\d+)([dh])[@\s](\d{1,2}):(\d{2})(?::(\d{2}))?$")
_KEYWORD_WITH_TIME = re.compile(r"^(today|yesterday)[@\s](\d{1,2}):(\d{2})(?::(\d{2}))?$", re.IGNORECASE)
_DURATION = re.compile(r"^(\d+(?:\.\d+)?)(ns|µs|us|ms|s|m|h|d|w)?$")

_SECONDS_PER_UNIT: dict[str, int] = {
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
}

_NS_PER_UNIT: dict[str, int] = {
    "ns": 1,
    "µs": 1_000,
    "us": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60_000_000_000,
    "h": 3_600_000_000_000,
    "d": 86_400_000_000_000,
    "w": 604_800_000_000_000,
}


def now() -> int:
    return int(datetime.now(tz=UTC).timestamp())


def hours_ago(hours: int) -> int:
    return now() - hours * 3600


def _start_of_day_ago(days: int) -> datetime:
    # Clock-time forms are interpreted in the local timezone
    today = datetime.now().astimezone()
    return (today - timedelta(days=days)).replace(hour=0, minute=0, second=0, microsecond=0)


def parse_time(value: str | int | None, default: int) -> int:
    """Resolve a time expression to epoch seconds, falling back to ``default``."""
    if value is None:
        return default
    if isinstance(value, int):
        return value

    text = value.strip()

    match = _SIMPLE_RELATIVE.match(text)
    if match:
        return now() - int(match.group(1)) * _SECONDS_PER_UNIT[match.group(2)]

    match = _RELATIVE_WITH_TIME.match(text)
    if match:
        amount, unit = int(match.group(1)), match.group(2)
        hour, minute, second = int(match.group(3)), int(match.group(4)), int(match.group(5) or 0)
        try:
            if unit == "d":
                dt = _start_of_day_ago(amount).replace(hour=hour, minute=minute, second=second)
            else:
                # Hours: go back N hours, then pin minute/second
                dt = (datetime.now().astimezone() - timedelta(hours=amount)).replace(
                    minute=minute, second=second, microsecond=0
                )
        except ValueError:
            return default
        return int(dt.timestamp())

    match = _KEYWORD_WITH_TIME.match(text)
    if match:
        days = 1 if match.group(1).lower() == "yesterday" else 0
        hour, minute, second = int(match.group(2)), int(match.group(3)), int(match.group(4) or 0)
        try:
            dt = _start_of_day_ago(days).replace(hour=hour, minute=minute, second=second)
        except ValueError:
            return default
        return int(dt.timestamp())

    if text.lstrip("-").isdigit():
        return int(text)

    try:
        dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return default
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return int(dt.timestamp())


def ensure_valid_time_range(from_ts: int, to_ts: int, min_range_seconds: int = 60) -> tuple[int, int]:
    """Swap a reversed range and widen one narrower than ``min_range_seconds``."""
    if from_ts > to_ts:
        from_ts, to_ts = to_ts, from_ts
    if to_ts - from_ts < min_range_seconds:
        to_ts = from_ts + min_range_seconds
    return from_ts, to_ts


def parse_duration_ms(value: str | int | None, default_ms: int) -> int:
    """Parse ``500ms``, ``5m``, ``1.5h`` etc. to milliseconds. Bare numbers are nanoseconds."""
    if value is None:
        return default_ms
    if isinstance(value, int):
        return value // 1_000_000 or default_ms

    text = value.strip().lower()
    match = _DURATION.match(text)
    if not match:
        return default_ms

    amount = float(match.group(1))
    unit = match.group(2) or "ns"
    ms = int(amount * _NS_PER_UNIT[unit]) // 1_000_000
    return ms if ms > 0 else default_ms


def to_datetime(ts_seconds: float) -> datetime:
    return datetime.fromtimestamp(ts_seconds, tz=UTC)


def iso_ms(dt: datetime) -> str:
    """ISO 8601 with millisecond precision and a ``Z`` suffix."""
    return dt.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def to_iso(ts_seconds: int) -> str:
    """Epoch seconds as ``2024-01-15T10:00:00.000Z``."""
    return iso_ms(to_datetime(ts_seconds))
