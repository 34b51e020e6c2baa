"""Timeline ordering, duration derivation and per-category aggregation.

Durations are never stored. Each event lasts until the next event of the same
day starts; the last event of the day is an open interval whose end is
resolved from the event's date relative to today:

- past day: the interval runs to midnight (24:00)
- today: the interval runs to the current minute, never below its own start
- future day: the interval is empty

Everything here is a pure function of the events passed in plus the "now"
supplied per call, read fresh when omitted.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Iterable

from pydantic import BaseModel

from daylog.errors import StaleReferenceError
from daylog.events import (
    MINUTES_PER_DAY,
    TaskEvent,
    format_duration_minutes,
    is_aggregated,
    is_duration_visible,
    minute_of_day,
    parse_date,
    parse_time_string,
)

NO_DURATION = "-"


class CategoryShare(BaseModel):
    category_name: str
    minutes: int
    percentage: float


def build_timeline(events: Iterable[TaskEvent]) -> list[TaskEvent]:
    """Order a day's events by start time.

    Events with a blank start time are dropped. Events whose time does not
    parse sort after all parseable ones. The sort is stable, so ties and
    unparseable events keep their input order.
    """
    kept = [e for e in events if e.start_time and e.start_time.strip()]

    def sort_key(event: TaskEvent) -> tuple[bool, int]:
        minutes = parse_time_string(event.start_time)
        return (minutes is None, minutes or 0)

    return sorted(kept, key=sort_key)


def last_event_end_minutes(event_date: str, start_minutes: int, now: datetime) -> int | None:
    """End boundary (minutes since midnight) for the last event of a day.

    Returns None when the date does not parse.
    """
    day = parse_date(event_date)
    if day is None:
        return None

    today = now.date()
    if day < today:
        return MINUTES_PER_DAY
    if day > today:
        return start_minutes
    return max(start_minutes, minute_of_day(now))


class Timeline:
    """Ordering of one day's events with each event linked to its successor.

    Successors are looked up by event ID, so a structurally equal copy of a
    loaded event resolves the same as the original.
    """

    def __init__(self, events: Iterable[TaskEvent]) -> None:
        self.ordered = build_timeline(events)
        # Last event maps to None (no successor)
        self._successors: dict[int, TaskEvent | None] = {}
        for index, event in enumerate(self.ordered):
            if event.id is None:
                continue
            is_last = index == len(self.ordered) - 1
            self._successors[event.id] = None if is_last else self.ordered[index + 1]

    def __len__(self) -> int:
        return len(self.ordered)

    def __contains__(self, event: object) -> bool:
        return isinstance(event, TaskEvent) and event.id in self._successors

    def successor_of(self, event: TaskEvent) -> TaskEvent | None:
        """Return the next event of the day, or None for the last one.

        Raises:
            StaleReferenceError: If the event is not part of this timeline.
        """
        if event.id is None or event.id not in self._successors:
            raise StaleReferenceError(event.id)
        return self._successors[event.id]

    def resolve_minutes(self, event: TaskEvent, *, now: datetime | None = None) -> int | None:
        """Derived duration of an event in whole minutes.

        Returns None when no duration can be derived: the event is not in the
        timeline, its own time or its successor's time does not parse, its
        successor starts earlier, or its date is unreadable.
        """
        try:
            successor = self.successor_of(event)
        except StaleReferenceError:
            return None

        start = parse_time_string(event.start_time)
        if start is None:
            return None

        if successor is not None:
            next_start = parse_time_string(successor.start_time)
            if next_start is None or next_start < start:
                return None
            return next_start - start

        if now is None:
            now = datetime.now()
        end = last_event_end_minutes(event.date, start, now)
        if end is None:
            return None
        return max(0, end - start)

    def calculate_duration(self, event: TaskEvent, *, now: datetime | None = None) -> str:
        """Format the derived duration of an event, or '-' if there is none."""
        if not is_duration_visible(event.task_type):
            return NO_DURATION
        minutes = self.resolve_minutes(event, now=now)
        if minutes is None:
            return NO_DURATION
        return format_duration_minutes(minutes)

    def _aggregated_minutes(self, now: datetime | None) -> list[tuple[TaskEvent, int]]:
        if now is None:
            now = datetime.now()
        result: list[tuple[TaskEvent, int]] = []
        for event in self.ordered:
            if not is_aggregated(event.task_type):
                continue
            minutes = self.resolve_minutes(event, now=now)
            if minutes is None:
                continue
            result.append((event, minutes))
        return result

    def total_minutes_tracked(self, *, now: datetime | None = None) -> int:
        """Sum of derived durations over normal events."""
        return sum(minutes for _, minutes in self._aggregated_minutes(now))

    def category_breakdown(self, *, now: datetime | None = None) -> list[CategoryShare]:
        """Minutes and share of the total per category, largest first.

        Ties are ordered by category name. Empty when no normal event has a
        derivable duration.
        """
        totals: defaultdict[str, int] = defaultdict(int)
        for event, minutes in self._aggregated_minutes(now):
            totals[event.category_name] += minutes

        total_minutes = sum(totals.values())
        shares = [
            CategoryShare(
                category_name=name,
                minutes=minutes,
                percentage=(minutes / total_minutes) * 100 if total_minutes > 0 else 0.0,
            )
            for name, minutes in totals.items()
        ]
        shares.sort(key=lambda s: (-s.minutes, s.category_name))
        return shares
