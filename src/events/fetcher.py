"""Cursor pagination over an ``EventSource`` under hard page and event caps."""

import logging
from collections.abc import AsyncIterator

from src.events.models import RawEvent
from src.events.source import EventSource
from src.observability.metrics import EVENT_PAGES_FETCHED

logger = logging.getLogger(__name__)

MAX_PAGES = 100
MAX_EVENTS = 10_000
TOP_MAX_EVENTS = 5_000
DEFAULT_PAGE_SIZE = 1000


class PaginatedEventFetcher:
    """Pulls pages one at a time and yields their events in order.

    Stops when a page is empty, no continuation cursor comes back, or either
    cap is reached. ``truncated`` is set only when the event cap cut the
    stream short while the source still had events to give. Source errors
    propagate unchanged and end the iteration.
    """

    def __init__(
        self,
        source: EventSource,
        query: str,
        from_time: str,
        to_time: str,
        *,
        max_pages: int = MAX_PAGES,
        max_events: int = MAX_EVENTS,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self.source = source
        self.query = query
        self.from_time = from_time
        self.to_time = to_time
        self.max_pages = max_pages
        self.max_events = max_events
        self.page_size = page_size

        self.event_count = 0
        self.page_count = 0
        self.truncated = False

    async def events(self) -> AsyncIterator[RawEvent]:
        cursor: str | None = None

        while self.page_count < self.max_pages and self.event_count < self.max_events:
            page = await self.source.fetch_page(self.query, self.from_time, self.to_time, cursor, self.page_size)
            self.page_count += 1
            EVENT_PAGES_FETCHED.inc()
            logger.debug(
                "Fetched page %d (%d events, next_cursor=%s)", self.page_count, len(page.events), page.next_cursor
            )

            if not page.events:
                break

            for index, event in enumerate(page.events):
                yield event
                self.event_count += 1
                if self.event_count >= self.max_events:
                    has_more = index + 1 < len(page.events) or page.next_cursor is not None
                    self.truncated = has_more
                    if has_more:
                        logger.info("Event cap of %d reached, stopping pagination", self.max_events)
                    return

            cursor = page.next_cursor
            if not cursor:
                break
