"""Create, update and delete task events for one loaded day."""

from __future__ import annotations

import logging
import sqlite3
from datetime import date, datetime
from typing import Any

from daylog.errors import DayLogError, StaleReferenceError, StoreUnavailableError, ValidationError
from daylog.events import (
    SPECIAL_CATEGORY,
    SPECIAL_EVENT_KINDS,
    TaskEvent,
    TaskUpdate,
    current_time_string,
    is_special,
    parse_date,
    parse_time_input,
    to_ymd_local,
)
from daylog.guard import check_end_marker_available, has_end_marker, translate_store_error
from daylog.retention import evict_after_day_closed
from daylog.settings import Settings
from daylog.timeline import Timeline

logger = logging.getLogger(__name__)


def _require_text(value: str | None, field: str) -> str:
    trimmed = (value or "").strip()
    if not trimmed:
        raise ValidationError(f"{field} cannot be empty")
    return trimmed


def _normalize_date(value: str | date) -> str:
    if isinstance(value, date):
        return to_ymd_local(value)
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError(f"Invalid date '{value}'. Use YYYY-MM-DD.")
    return to_ymd_local(parsed)


def _normalize_category(value: str | None) -> str:
    category_name = _require_text(value, "Category")
    if category_name == SPECIAL_CATEGORY:
        raise ValidationError(f"'{SPECIAL_CATEGORY}' is reserved for pause and end markers")
    return category_name


class DayLog:
    """The events of one calendar date plus the write path for them.

    The loaded events are what the end-marker pre-check looks at. They are
    reloaded from the store after every successful write.

    Args:
        store: Record store, or None when unavailable.
        day: Calendar date to load ('YYYY-MM-DD' or a date).
        settings: Settings read by retention eviction.
    """

    def __init__(self, store: Any, day: str | date, settings: Settings | None = None) -> None:
        self._store = store
        self._settings = settings if settings is not None else Settings()
        self.day = _normalize_date(day)
        self.records: list[TaskEvent] = []

    def _require_store(self) -> Any:
        if self._store is None:
            raise StoreUnavailableError()
        return self._store

    def load(self) -> list[TaskEvent]:
        """Fetch the day's events from the store."""
        self.records = list(self._require_store().get_by_date(self.day))
        return self.records

    @property
    def timeline(self) -> Timeline:
        return Timeline(self.records)

    @property
    def has_end_marker(self) -> bool:
        return has_end_marker(self.records, self.day)

    def _find(self, event_id: int) -> TaskEvent:
        for record in self.records:
            if record.id == event_id:
                return record
        raise StaleReferenceError(event_id)

    def _write(self, kind: str | None, operation: Any, *args: Any) -> Any:
        try:
            return operation(*args)
        except Exception as e:
            translated = translate_store_error(e, kind)
            if translated is e:
                raise
            raise translated from e

    def add_task(self, category_name: str, task_name: str, start_time: str) -> TaskEvent:
        """Record a normal task starting at start_time on the loaded day."""
        store = self._require_store()
        event = TaskEvent(
            category_name=_normalize_category(category_name),
            task_name=_require_text(task_name, "Task name"),
            start_time=parse_time_input(start_time),
            date=self.day,
            task_type="normal",
        )
        created = self._write(event.task_type, store.insert, event)
        self.load()
        return created

    def add_special(self, kind: str, task_name: str, *, now: datetime | None = None) -> TaskEvent:
        """Record a pause or end marker stamped with the current time.

        Closing the day with an end marker runs retention eviction afterwards.

        Raises:
            DuplicateEndOfDayError: If the day already has an end marker.
        """
        if kind not in SPECIAL_EVENT_KINDS:
            raise ValidationError(f"Unknown marker type '{kind}'")
        store = self._require_store()

        if kind == "end":
            check_end_marker_available(self.records, self.day)

        if now is None:
            now = datetime.now()
        event = TaskEvent(
            category_name=SPECIAL_CATEGORY,
            task_name=_require_text(task_name, "Label"),
            start_time=current_time_string(now),
            date=self.day,
            task_type=kind,
        )
        created = self._write(kind, store.insert, event)
        self.load()

        if kind == "end":
            evict_after_day_closed(store, self._settings, today=now.date())
            # The loaded day may itself be older than the cutoff
            try:
                self.load()
            except (sqlite3.Error, DayLogError) as e:
                logger.warning("Reload after retention eviction failed: %s", e)
        return created

    def update_task(self, event_id: int, update: TaskUpdate) -> None:
        """Change the mutable fields of a loaded event. The kind never changes.

        Raises:
            StaleReferenceError: If the event is not part of the loaded day.
            DuplicateEndOfDayError: If an end marker is moved onto a closed day.
        """
        store = self._require_store()
        record = self._find(event_id)

        fields: dict[str, str] = {}
        if update.category_name is not None:
            if is_special(record.task_type):
                raise ValidationError("The category of pause and end markers cannot be changed")
            fields["category_name"] = _normalize_category(update.category_name)
        if update.task_name is not None:
            fields["task_name"] = _require_text(update.task_name, "Task name")
        if update.start_time is not None:
            fields["start_time"] = parse_time_input(update.start_time)
        if update.date is not None:
            fields["date"] = _normalize_date(update.date)

        if not fields:
            raise ValidationError("No fields to update")

        if not self._write(record.task_type, store.update, event_id, fields):
            raise StaleReferenceError(event_id)
        self.load()

    def delete_task(self, event_id: int) -> None:
        store = self._require_store()
        self._find(event_id)
        if not store.delete(event_id):
            raise StaleReferenceError(event_id)
        self.load()
