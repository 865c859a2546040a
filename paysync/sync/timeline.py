"""
Timeline Scanner

Bidirectional cursor for providers that only offer skip/count listings
returned newest-first, with a date filter that is only usable once a
known boundary exists.

Phase A (scan backward): page through history with skip/count until a
short page marks its beginning. The newest item seen on the first page
of the scan (start_at) becomes the boundary (oldest) once the scan ends.

Phase B (stream forward): list everything created since the boundary.
The response ends with the boundary item itself; when it shows up the
pass is complete and the newest item of the pass becomes the new
boundary.

Every call returns its items in chronological order.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Generic, TypeVar

from pydantic import Field

from paysync.errors import InvalidRequestError
from paysync.sync.cursor import CursorState

logger = logging.getLogger(__name__)

T = TypeVar("T")

# fetch(skip, count, since) -> items, newest first
TimelineFetch = Callable[[int, int, datetime | None], list[T]]


class Timeline(CursorState):
    """Resume anchor (start_at) and discovered boundary (oldest)."""

    start_at_created_on: datetime | None = None
    start_at_id: str | None = Field(default=None, alias="startAtID")
    oldest_created_on: datetime | None = None
    oldest_id: str | None = Field(default=None, alias="oldestID")

    @property
    def is_caught_up(self) -> bool:
        """Whether the backward scan has found the beginning of history."""
        return self.oldest_created_on is not None


class TimelineState(CursorState):
    """Cursor of a timeline-scanned stream."""

    skip: int = 0
    timeline: Timeline = Field(default_factory=Timeline)


@dataclass
class TimelineResult(Generic[T]):
    """Output of one scanner step."""

    items: list[T]
    state: TimelineState
    has_more: bool


class TimelineScanner(Generic[T]):
    """
    Drives one provider listing through the two timeline phases.

    Args:
        fetch: Provider call taking (skip, count, since), returning items
            newest first. since is None during the backward scan.
        item_id: Extracts the stable ID of an item
        created_on: Extracts the creation time of an item
    """

    def __init__(
        self,
        fetch: TimelineFetch,
        item_id: Callable[[T], str],
        created_on: Callable[[T], datetime],
    ) -> None:
        self._fetch = fetch
        self._item_id = item_id
        self._created_on = created_on

    def scan(self, state: TimelineState, count: int) -> TimelineResult[T]:
        """
        Run one step of the scan and return the advanced state.

        The input state is not modified.
        """
        if count <= 0:
            raise InvalidRequestError(f"page size must be positive, got {count}")

        state = state.model_copy(deep=True)
        if state.timeline.is_caught_up:
            return self._scan_forward(state, count)
        return self._scan_backward(state, count)

    def _anchor(self, timeline: Timeline, item: T) -> None:
        timeline.start_at_id = self._item_id(item)
        timeline.start_at_created_on = self._created_on(item)

    def _promote(self, timeline: Timeline) -> None:
        timeline.oldest_id = timeline.start_at_id
        timeline.oldest_created_on = timeline.start_at_created_on

    # ========== Phase A ==========

    def _scan_backward(self, state: TimelineState, count: int) -> TimelineResult[T]:
        items = self._fetch(state.skip, count, None)

        if state.skip == 0 and items:
            self._anchor(state.timeline, items[0])

        if len(items) < count:
            # Beginning of history: everything up to start_at is delivered
            if state.timeline.start_at_id is not None:
                self._promote(state.timeline)
            state.skip = 0
            has_more = False
            logger.debug("Timeline scan reached beginning of history")
        else:
            state.skip += len(items)
            has_more = True

        return TimelineResult(items=list(reversed(items)), state=state, has_more=has_more)

    # ========== Phase B ==========

    def _scan_forward(self, state: TimelineState, count: int) -> TimelineResult[T]:
        timeline = state.timeline
        items = self._fetch(state.skip, count, timeline.oldest_created_on)

        if not items:
            # Boundary item vanished upstream; close the pass where we are
            if state.skip > 0:
                self._promote(timeline)
            state.skip = 0
            return TimelineResult(items=[], state=state, has_more=False)

        nothing_new = len(items) == 1 and self._item_id(items[0]) == timeline.oldest_id

        if state.skip == 0:
            self._anchor(timeline, items[0])

        if self._item_id(items[-1]) == timeline.oldest_id:
            # Caught up with the boundary, which was already delivered
            items.pop()
            self._promote(timeline)
            state.skip = 0
        else:
            state.skip += len(items)

        return TimelineResult(
            items=list(reversed(items)),
            state=state,
            has_more=not nothing_new,
        )
