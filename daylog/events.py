"""Task event model, event type policy and time-of-day helpers."""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel

from daylog.errors import ValidationError

EventKind = Literal["normal", "pause", "end"]

EVENT_KINDS: tuple[str, ...] = ("normal", "pause", "end")
SPECIAL_EVENT_KINDS: tuple[str, ...] = ("pause", "end")

# Category used by pause/end markers instead of a real category
SPECIAL_CATEGORY = "__special__"

# Whether a derived duration is shown for each kind
DURATION_VISIBLE_BY_KIND: dict[str, bool] = {
    "normal": True,
    "pause": True,
    "end": False,
}

# Kinds counted in totals and the category breakdown
AGGREGATED_KINDS = frozenset({"normal"})

MINUTES_PER_DAY = 24 * 60

CATEGORY_CODE_MAX_LENGTH = 10

_READ_TIME_RE = re.compile(r"^(\d{1,2}):(\d{1,2})(?::(\d{1,2}))?$")
_INPUT_TIME_RE = re.compile(r"^(\d{1,2}):(\d{1,2})$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class TaskEvent(BaseModel):
    """One dated, time-stamped entry in a day's log.

    ID is assigned by the store; `task_type` never changes after creation.
    """

    id: int | None = None
    category_name: str
    task_name: str
    start_time: str
    date: str
    task_type: EventKind = "normal"
    created_at: str | None = None


class TaskUpdate(BaseModel):
    """Mutable fields of a task event. Unset fields are left alone."""

    category_name: str | None = None
    task_name: str | None = None
    start_time: str | None = None
    date: str | None = None


class Category(BaseModel):
    id: int | None = None
    name: str
    code: str = ""
    is_default: bool = False
    created_at: str | None = None


def is_special(kind: str | None) -> bool:
    """True for pause/end markers. An absent kind is not special."""
    if kind is None:
        return False
    return kind in SPECIAL_EVENT_KINDS


def is_duration_visible(kind: str | None) -> bool:
    return DURATION_VISIBLE_BY_KIND.get(kind or "", False)


def is_aggregated(kind: str | None) -> bool:
    return kind in AGGREGATED_KINDS


def parse_time_string(value: str | None) -> int | None:
    """Parse 'H:mm', 'HH:mm' or 'HH:mm:ss' into minutes since midnight.

    Seconds are truncated. Returns None for blank or invalid input.
    """
    if not value:
        return None
    match = _READ_TIME_RE.match(value.strip())
    if not match:
        return None
    hours = int(match.group(1))
    minutes = int(match.group(2))
    seconds = int(match.group(3) or 0)
    if hours > 23 or minutes > 59 or seconds > 59:
        return None
    return hours * 60 + minutes


def parse_time_input(value: str) -> str:
    """Validate user-entered time and normalize it to zero-padded 'HH:mm'.

    Raises:
        ValidationError: If the value is blank, malformed or out of range.
    """
    trimmed = (value or "").strip()
    if not trimmed:
        raise ValidationError("Time cannot be empty")

    match = _INPUT_TIME_RE.match(trimmed)
    if not match:
        raise ValidationError("Time must be in HH:mm format (e.g., 09:30 or 14:15)")

    hours = int(match.group(1))
    minutes = int(match.group(2))
    if hours > 23:
        raise ValidationError("Hours must be between 00 and 23")
    if minutes > 59:
        raise ValidationError("Minutes must be between 00 and 59")

    return f"{hours:02d}:{minutes:02d}"


def parse_date(value: str | None) -> date | None:
    """Parse a local 'YYYY-MM-DD' date, or None if it is not one."""
    if not value or not _DATE_RE.match(value.strip()):
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None


def validate_cutoff_date(value: object, *, today: date | None = None) -> str:
    """Check a retention cutoff before it reaches a bulk delete.

    Dates compare as strings in the store, so anything other than a real,
    non-future 'YYYY-MM-DD' date from 1970 on is rejected.

    Raises:
        ValidationError: If the cutoff is blank, malformed or out of range.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("Invalid cutoff date: must be a non-empty string")
    if not _DATE_RE.match(value):
        raise ValidationError("Invalid cutoff date: must match YYYY-MM-DD format")
    try:
        cutoff = date.fromisoformat(value)
    except ValueError as e:
        raise ValidationError("Invalid cutoff date: must be a valid date") from e

    if today is None:
        today = date.today()
    if cutoff.year < 1970 or cutoff.year > today.year:
        raise ValidationError("Invalid cutoff date: year must be between 1970 and the current year")
    if cutoff > today:
        raise ValidationError("Invalid cutoff date: cannot be in the future")
    return value


def to_ymd_local(value: date | datetime) -> str:
    """Format as 'YYYY-MM-DD' using the local calendar date (no UTC shift)."""
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def current_time_string(now: datetime | None = None) -> str:
    """Return the current local time as 'HH:mm'."""
    if now is None:
        now = datetime.now()
    return f"{now.hour:02d}:{now.minute:02d}"


def minute_of_day(now: datetime) -> int:
    return now.hour * 60 + now.minute


def format_duration_minutes(total_minutes: int) -> str:
    """Format whole minutes as 'Xh Ym' or 'Ym'.

    Args:
        total_minutes: Duration in minutes (non-negative).

    Returns:
        Formatted duration string, '0m' for zero.
    """
    hours = total_minutes // 60
    minutes = total_minutes % 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
