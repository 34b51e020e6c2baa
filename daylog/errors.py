"""Error types raised by the Day Log engine."""

from __future__ import annotations

DUPLICATE_END_OF_DAY_MSG = (
    "An end marker already exists for this day. Only one end marker is allowed per day."
)

STORE_UNAVAILABLE_MSG = "Record store not available. Please reopen the database."


class DayLogError(Exception):
    """Base exception for Day Log errors."""

    pass


class ValidationError(DayLogError):
    """Raised when a required field is missing or malformed."""

    pass


class DuplicateEndOfDayError(DayLogError):
    """Raised when a second end marker is written for a date.

    The message is the same whether the in-memory pre-check or the store's
    uniqueness constraint caught it.
    """

    def __init__(self) -> None:
        super().__init__(DUPLICATE_END_OF_DAY_MSG)


class StaleReferenceError(DayLogError):
    """Raised when operating on an event that is not part of the loaded day."""

    def __init__(self, event_id: int | None) -> None:
        self.event_id = event_id
        super().__init__(f"Event {event_id} is not part of the loaded day")


class StoreUnavailableError(DayLogError):
    """Raised when no record store is attached or it cannot be reached."""

    def __init__(self, detail: str | None = None) -> None:
        message = STORE_UNAVAILABLE_MSG if detail is None else f"{STORE_UNAVAILABLE_MSG} ({detail})"
        super().__init__(message)


class EvictionFailure(DayLogError):
    """Raised when the retention delete fails.

    Always caught and logged by the caller that triggered eviction.
    """

    pass
