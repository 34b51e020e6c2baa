"""Retention eviction run after a day is closed with an end marker."""

from __future__ import annotations

import logging
import math
from datetime import date, timedelta
from typing import Any

from daylog.errors import EvictionFailure
from daylog.events import to_ymd_local
from daylog.settings import RETENTION_DAYS_MAX, RETENTION_DAYS_MIN

logger = logging.getLogger(__name__)


def retention_window(settings: Any) -> int | None:
    """Return the retention window in days, or None if eviction is off.

    Settings are expected to be validated upstream. Values that are missing,
    not finite or outside the supported range disable eviction rather than
    being clamped here.
    """
    if getattr(settings, "retention_enabled", False) is not True:
        return None

    days = getattr(settings, "retention_days", None)
    if isinstance(days, bool) or not isinstance(days, (int, float)):
        return None
    if not math.isfinite(days):
        return None
    if not RETENTION_DAYS_MIN <= days <= RETENTION_DAYS_MAX:
        return None
    return int(days)


def compute_cutoff(retention_days: int, *, today: date | None = None) -> date:
    """Date-only cutoff: events dated strictly before it are evicted."""
    if today is None:
        today = date.today()
    return today - timedelta(days=retention_days)


def evict_expired(store: Any, settings: Any, *, today: date | None = None) -> int | None:
    """Delete events older than the retention window.

    Args:
        store: Record store; must provide `bulk_delete_before(cutoff)`.
        settings: Object with `retention_enabled` and `retention_days`.
        today: Current date for testing (defaults to the local date).

    Returns:
        Number of deleted events, or None if eviction was skipped.

    Raises:
        EvictionFailure: If the store cannot delete or lacks bulk deletion.
    """
    days = retention_window(settings)
    if days is None:
        logger.debug("Retention eviction disabled or misconfigured; skipping")
        return None

    bulk_delete_before = getattr(store, "bulk_delete_before", None)
    if not callable(bulk_delete_before):
        raise EvictionFailure("Record store does not support bulk deletion")

    cutoff = to_ymd_local(compute_cutoff(days, today=today))
    try:
        deleted = bulk_delete_before(cutoff)
    except Exception as e:
        raise EvictionFailure(f"Failed to delete events before {cutoff}: {e}") from e

    logger.info("Evicted %s events dated before %s", deleted, cutoff)
    return deleted


def evict_after_day_closed(store: Any, settings: Any, *, today: date | None = None) -> None:
    """Best-effort eviction after an end marker was stored.

    Failures are logged and never reach the caller, so they cannot undo or
    block the write that triggered them.
    """
    try:
        evict_expired(store, settings, today=today)
    except EvictionFailure as e:
        logger.warning("Retention eviction failed: %s", e, exc_info=e.__cause__ is not None)
