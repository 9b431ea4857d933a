"""Heuristic parsing of monitor alert titles and messages.

Alert titles look like ``[P1] [Triggered on {host:prod}] CPU High`` and the
message body carries links such as ``[[Monitor Status](/monitors/67860480?...)]``.
None of this is structured data, so everything here degrades to a
best-effort answer instead of raising. The title parser sits behind the
``MonitorTitleParser`` protocol so a structured source can replace it.
"""

import re
from typing import NamedTuple, Protocol


class ParsedTitle(NamedTuple):
    status: str
    scope: str
    name: str
    priority: str | None


class MonitorTitleParser(Protocol):
    def parse(self, title: str) -> ParsedTitle: ...


_PRIORITY_PREFIX = re.compile(r"^\[P(\d+)\]\s*")

_STATUS_TITLE = re.compile(
    r"^\[(Triggered|Recovered|Warn|Alert|OK|No Data|Re-Triggered|Renotify)"
    r"(?:\s+on\s+\{([^}]+)\})?\]\s*(.+)$",
    re.IGNORECASE,
)

_MESSAGE_DELIMITER = re.compile(r"^%%%\s*\n?")
_TRAILING_BANG = re.compile(r"\s+!?\s*$")
_MONITOR_LINK = re.compile(r"/monitors/(\d+)")


class RegexTitleParser:
    """Parses ``[P<n>] [<Status> on {<scope>}] <name>`` titles."""

    def parse(self, title: str) -> ParsedTitle:
        priority_match = _PRIORITY_PREFIX.match(title)
        priority = f"P{priority_match.group(1)}" if priority_match else None
        remainder = title[priority_match.end() :] if priority_match else title

        match = _STATUS_TITLE.match(remainder)
        if not match:
            return ParsedTitle(status="", scope="", name=title, priority=priority)

        return ParsedTitle(
            status=match.group(1),
            scope=match.group(2) or "",
            name=match.group(3).strip(),
            priority=priority,
        )


def parse_monitor_title(title: str) -> ParsedTitle:
    return RegexTitleParser().parse(title)


def extract_title_from_message(message: str) -> str:
    """Derive a title from the first line of a ``%%%``-wrapped message body."""
    if not message:
        return ""
    content = _MESSAGE_DELIMITER.sub("", message, count=1).strip()
    first_line = content.split("\n", 1)[0].strip()
    return _TRAILING_BANG.sub("", first_line).strip()


def extract_monitor_id(message: str) -> int | None:
    """Return the id from the first ``/monitors/<id>`` link in a message."""
    if not message:
        return None
    match = _MONITOR_LINK.search(message)
    if not match:
        return None
    try:
        return int(match.group(1))
    except ValueError:
        return None
