"""Backup snapshots: export, validation, normalization and restore.

A snapshot is a versioned JSON document:

    {
      "version": 1,
      "exported_at": "2025-06-15T08:00:00Z",
      "settings": {...},
      "database": {
        "categories": [{"name", "code", "is_default"}],
        "task_records": [{"category_name", "task_name", "start_time",
                          "date", "task_type", "created_at"?}]
      }
    }

Restoring is a full replacement, never a merge: rows are normalized first and
then every category and event is swapped in a single transaction.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pydantic
from pydantic import BaseModel

from daylog.errors import ValidationError
from daylog.events import CATEGORY_CODE_MAX_LENGTH, EVENT_KINDS, parse_time_input
from daylog.settings import Settings, settings_from_dict

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1
SUPPORTED_VERSIONS = frozenset({SNAPSHOT_VERSION})


class SnapshotDatabase(BaseModel):
    categories: list[Any]
    task_records: list[Any]


class Snapshot(BaseModel):
    """Top-level shape of a backup document. Rows stay raw until normalized."""

    version: int
    exported_at: str | None = None
    settings: dict[str, Any] = {}
    database: SnapshotDatabase


class RestoreResult(BaseModel):
    categories: int
    task_records: int
    dropped_records: int
    settings: Settings


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _field(row: Any, name: str) -> Any:
    return row.get(name) if isinstance(row, dict) else None


def _start_time(value: str) -> str:
    """Zero-pad a valid H:mm time; anything else is kept as given."""
    try:
        return parse_time_input(value)
    except ValidationError:
        return value


def normalize_categories(raw_categories: list[Any]) -> list[dict[str, Any]]:
    """Clean imported categories.

    Names are trimmed; blank names and repeats (case-sensitive) are dropped,
    keeping the first. Codes are trimmed and cut to 10 characters. Exactly one
    category ends up default: the first one flagged, else the first one.
    """
    seen: set[str] = set()
    deduped: list[dict[str, Any]] = []
    for row in raw_categories:
        name = _text(_field(row, "name"))
        if not name or name in seen:
            continue
        seen.add(name)
        deduped.append({
            "name": name,
            "code": _text(_field(row, "code"))[:CATEGORY_CODE_MAX_LENGTH],
            "is_default": bool(_field(row, "is_default")),
        })

    default_name = next((c["name"] for c in deduped if c["is_default"]), None)
    if default_name is None and deduped:
        default_name = deduped[0]["name"]

    for category in deduped:
        category["is_default"] = category["name"] == default_name
    return deduped


def normalize_task_records(raw_records: list[Any]) -> list[dict[str, Any]]:
    """Clean imported task events.

    Every field is coerced to text and valid start times are zero-padded.
    Rows missing a category, task name, start time or date are dropped.
    Unknown or missing kinds become 'normal'. Only the first end marker per
    date is kept; later ones are dropped without error. An original created_at is kept when present.
    """
    end_dates: set[str] = set()
    normalized: list[dict[str, Any]] = []
    for row in raw_records:
        category_name = _text(_field(row, "category_name"))
        task_name = _text(_field(row, "task_name"))
        start_time = _start_time(_text(_field(row, "start_time")))
        day = _text(_field(row, "date"))

        task_type = _text(_field(row, "task_type") or "normal").lower()
        if task_type not in EVENT_KINDS:
            task_type = "normal"

        if not category_name or not task_name or not start_time or not day:
            continue

        if task_type == "end":
            if day in end_dates:
                continue
            end_dates.add(day)

        record: dict[str, Any] = {
            "category_name": category_name,
            "task_name": task_name,
            "start_time": start_time,
            "date": day,
            "task_type": task_type,
        }
        created_at = _field(row, "created_at")
        if created_at is not None:
            record["created_at"] = str(created_at)
        normalized.append(record)
    return normalized


def parse_snapshot(document: Any) -> Snapshot:
    """Validate the top-level shape of a backup document.

    Raises:
        ValidationError: If the version is not supported or a section is missing.
    """
    if not isinstance(document, dict):
        raise ValidationError("Invalid backup file: expected a JSON object")

    version = document.get("version")
    if not isinstance(version, int) or isinstance(version, bool) or version not in SUPPORTED_VERSIONS:
        raise ValidationError(f"Unsupported backup version: {version!r}")

    try:
        return Snapshot.model_validate(document)
    except pydantic.ValidationError as e:
        raise ValidationError(
            "Invalid backup file: expected 'database' with 'categories' and 'task_records' lists"
        ) from e


def read_snapshot(path: Path) -> Snapshot:
    """Read and validate a backup file."""
    try:
        document = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid backup file: {e}") from e
    return parse_snapshot(document)


def export_snapshot(store: Any, settings: Settings, *, now: datetime | None = None) -> dict[str, Any]:
    """Build a backup document from the store and current settings."""
    if now is None:
        now = datetime.now(timezone.utc)
    rows = store.export_rows()
    return {
        "version": SNAPSHOT_VERSION,
        "exported_at": now.strftime("%Y-%m-%dT%H:%M:%SZ"),
        "settings": settings.model_dump(),
        "database": {
            "categories": [
                {"name": c["name"], "code": c["code"], "is_default": c["is_default"]}
                for c in rows["categories"]
            ],
            "task_records": [
                {
                    "category_name": r["category_name"],
                    "task_name": r["task_name"],
                    "start_time": r["start_time"],
                    "date": r["date"],
                    "task_type": r["task_type"],
                    "created_at": r["created_at"],
                }
                for r in rows["task_records"]
            ],
        },
    }


def restore_snapshot(store: Any, snapshot: Snapshot) -> RestoreResult:
    """Replace everything in the store with the snapshot's normalized contents.

    Returns the counts restored and the settings carried by the snapshot.
    """
    categories = normalize_categories(snapshot.database.categories)
    records = normalize_task_records(snapshot.database.task_records)
    store.replace_all(categories, records)

    dropped = len(snapshot.database.task_records) - len(records)
    logger.info(
        "Restored %d categories and %d task records (%d rows dropped)",
        len(categories),
        len(records),
        dropped,
    )
    return RestoreResult(
        categories=len(categories),
        task_records=len(records),
        dropped_records=dropped,
        settings=settings_from_dict(snapshot.settings),
    )
