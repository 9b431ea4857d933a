"""Group-key construction and tag lookups."""

from collections.abc import Callable, Iterable, Sequence

from src.events.models import EventRecord

GROUP_KEY_SEPARATOR = "|"


def _tag_prefix(tag: str) -> str:
    return tag.split(":", 1)[0]


def tag_value(tags: Iterable[str], key: str) -> str | None:
    """Value (text after the first colon) of the first ``key:value`` tag, or None."""
    for tag in tags:
        if ":" in tag and _tag_prefix(tag) == key:
            return tag.split(":", 1)[1]
    return None


def find_context_tag(tags: Sequence[str], prefixes: Sequence[str]) -> str | None:
    """First tag matching the earliest possible prefix in ``prefixes``.

    Prefixes are tried in list order, so a later-listed prefix never beats an
    earlier one regardless of where the tags sit. Matching is exact on the
    part before ``:``; ``queue`` does not match ``queued:x``.
    """
    for prefix in prefixes:
        wanted = prefix.rstrip(":")
        for tag in tags:
            if ":" in tag and _tag_prefix(tag) == wanted:
                return tag
    return None


_FIELD_RESOLVERS: dict[str, Callable[[EventRecord], str]] = {
    "monitor_name": lambda e: e.monitor_name,
    "monitor_id": lambda e: "" if e.monitor_id is None else str(e.monitor_id),
    "priority": lambda e: e.monitor_info.priority if e.monitor_info and e.monitor_info.priority else e.priority,
    "source": lambda e: e.source,
    "alert_type": lambda e: e.alert_type,
    "host": lambda e: e.host,
    "status": lambda e: e.monitor_info.status if e.monitor_info else "",
}


def resolve_field(event: EventRecord, field: str) -> str:
    resolver = _FIELD_RESOLVERS.get(field)
    if resolver is not None:
        return resolver(event)
    return tag_value(event.tags, field) or ""


def build_group_key(event: EventRecord, fields: Sequence[str]) -> str:
    """Pipe-joined field values in request order; missing values stay as empty segments.

    A literal ``|`` inside a value is rewritten to ``/`` so a key always has
    exactly ``len(fields) - 1`` separators.
    """
    return GROUP_KEY_SEPARATOR.join(
        resolve_field(event, field).replace(GROUP_KEY_SEPARATOR, "/") for field in fields
    )
