"""Command-line access to the alert event operations.

Usage:
    uv run python -m src.cli top --from 7d --context-tag service
    uv run python -m src.cli incidents --from 1d --dedupe-window 15m
    uv run python -m src.cli search --query "env:prod" --limit 20
    uv run python -m src.cli get --id 1234567890
    uv run python -m src.cli create --title "Deploy api v42" --text "Rolled out" --tag env:prod

Results are printed as JSON. Provider errors go to stderr with exit code 1.
"""

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel

from src.events.errors import EventSourceError
from src.events.service import (
    EVENT_ALERT_TYPES,
    aggregate_events,
    create_event,
    get_event,
    incidents_events,
    search_events,
    timeseries_events,
    top_events,
)
from src.events.source import DatadogEventSource, DatadogEventStore, DatadogMonitorDirectory

logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s: %(message)s",
)

OPERATIONS = ("aggregate", "top", "timeseries", "incidents", "search", "get", "create")


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="alert-events", description="Datadog alert event analysis")
    parser.add_argument("operation", choices=OPERATIONS)
    parser.add_argument("--query", default=None, help="Event search query")
    parser.add_argument("--from", dest="from_", default=None, help="Range start, e.g. 7d, 1d@09:00, ISO or epoch")
    parser.add_argument("--to", default=None, help="Range end (default: now)")
    parser.add_argument("--tag", dest="tags", action="append", default=None, help="Required tag (repeatable)")
    parser.add_argument("--source", dest="sources", action="append", default=None, help="Event source (repeatable)")
    parser.add_argument("--group-by", dest="group_by", action="append", default=None, help="Grouping field")
    parser.add_argument("--limit", type=_positive_int, default=None)
    parser.add_argument("--interval", default=None, help="Timeseries bucket width, e.g. 1h")
    parser.add_argument("--dedupe-window", dest="dedupe_window", default=None, help="Incident merge window, e.g. 5m")
    parser.add_argument(
        "--context-tag", dest="context_tags", action="append", default=None, help="Context tag key for top"
    )
    parser.add_argument("--max-events", dest="max_events", type=_positive_int, default=None)
    parser.add_argument("--priority", default=None, help="Search priority filter, or the created event's priority")
    parser.add_argument("--cursor", default=None, help="Search continuation cursor")
    parser.add_argument("--enrich", action="store_true", help="Attach monitor definitions to search results")
    parser.add_argument("--id", dest="event_id", default=None, help="Event id for get")
    parser.add_argument("--title", default=None, help="Title for create")
    parser.add_argument("--text", default=None, help="Body for create")
    parser.add_argument("--alert-type", dest="alert_type", choices=EVENT_ALERT_TYPES, default=None)
    return parser


async def run(args: argparse.Namespace) -> BaseModel:
    """Dispatch parsed arguments to the matching operation."""
    if args.operation == "get":
        return await get_event(DatadogEventStore(), args.event_id)
    if args.operation == "create":
        return await create_event(
            DatadogEventStore(),
            title=args.title,
            text=args.text,
            priority=args.priority,
            tags=args.tags,
            alert_type=args.alert_type,
        )

    source = DatadogEventSource()
    common = {
        "query": args.query,
        "from_": args.from_,
        "to": args.to,
        "sources": args.sources,
        "tags": args.tags,
    }

    scan: dict[str, Any] = {"max_events": args.max_events} if args.max_events else {}

    match args.operation:
        case "aggregate":
            return await aggregate_events(source, **common, group_by=args.group_by, limit=args.limit, **scan)
        case "top":
            return await top_events(
                source,
                **common,
                group_by=args.group_by,
                limit=args.limit,
                context_tags=args.context_tags,
                max_events=args.max_events,
                monitor_directory=DatadogMonitorDirectory(),
            )
        case "timeseries":
            return await timeseries_events(
                source, **common, group_by=args.group_by, interval=args.interval, limit=args.limit, **scan
            )
        case "incidents":
            return await incidents_events(
                source, **common, dedupe_window=args.dedupe_window, limit=args.limit, **scan
            )
        case _:
            return await search_events(
                source,
                **common,
                priority=args.priority,
                limit=args.limit,
                cursor=args.cursor,
                enrich=args.enrich,
                monitor_directory=DatadogMonitorDirectory() if args.enrich else None,
            )


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.operation == "get" and not args.event_id:
        parser.error("get requires --id")
    if args.operation == "create" and not (args.title and args.text):
        parser.error("create requires --title and --text")
    try:
        result = asyncio.run(run(args))
    except EventSourceError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(1)
    print(result.model_dump_json(indent=2))


if __name__ == "__main__":
    main()
