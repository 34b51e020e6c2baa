"""At most one end marker per calendar date.

Two layers report the same DuplicateEndOfDayError:

1. A pre-check against the events already loaded for the target date, run
   before the store is contacted.
2. Translation of the store's own rejection, for the case where another
   writer got there first.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable

from daylog.errors import DuplicateEndOfDayError
from daylog.events import TaskEvent

logger = logging.getLogger(__name__)

END_PER_DAY_INDEX = "idx_end_per_day"
END_DUPLICATE_CODE = "END_DUPLICATE"

# SQLITE_CONSTRAINT primary result code
SQLITE_CONSTRAINT = 19
# Extended code for UNIQUE violations only
SQLITE_CONSTRAINT_UNIQUE = 2067

_END_INDEX_VIOLATION_RE = re.compile(
    r"(?:unique.*constraint.*failed|constraint.*(?:failed|violation)).*" + END_PER_DAY_INDEX,
    re.IGNORECASE,
)


def has_end_marker(events: Iterable[TaskEvent], day: str) -> bool:
    return any(e.task_type == "end" and e.date == day for e in events)


def check_end_marker_available(events: Iterable[TaskEvent], day: str) -> None:
    """Pre-check before creating an end marker.

    Raises:
        DuplicateEndOfDayError: If an end marker is already loaded for the day.
    """
    if has_end_marker(events, day):
        raise DuplicateEndOfDayError()


def is_duplicate_end_violation(exc: BaseException) -> bool:
    """Check whether a store error is an end-of-day uniqueness violation.

    Recognizes a structured error code, the numeric SQLite constraint
    indicator (as `errno`, or a UNIQUE `sqlite_errorcode`), or a message
    naming the per-day index.
    """
    if isinstance(exc, DuplicateEndOfDayError):
        return True

    if getattr(exc, "code", None) == END_DUPLICATE_CODE:
        return True

    if getattr(exc, "errno", None) == SQLITE_CONSTRAINT:
        return True
    errorcode = getattr(exc, "sqlite_errorcode", None)
    if errorcode == SQLITE_CONSTRAINT_UNIQUE:
        return True

    return bool(_END_INDEX_VIOLATION_RE.search(str(exc)))


def translate_store_error(exc: Exception, kind: str | None) -> Exception:
    """Map a store error for a write of the given kind to the domain error.

    Only writes of end markers can violate the per-day constraint; any other
    error is returned unchanged for the caller to re-raise.
    """
    if kind == "end" and is_duplicate_end_violation(exc):
        if not isinstance(exc, DuplicateEndOfDayError):
            logger.info("Store rejected duplicate end marker: %s", exc)
        return DuplicateEndOfDayError()
    return exc
