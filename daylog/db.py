"""SQLite record store for Day Log."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from daylog.errors import DuplicateEndOfDayError, StoreUnavailableError, ValidationError
from daylog.events import SPECIAL_CATEGORY, Category, TaskEvent, validate_cutoff_date
from daylog.guard import END_PER_DAY_INDEX

SCHEMA = """
CREATE TABLE IF NOT EXISTS categories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT UNIQUE NOT NULL,
    code TEXT NOT NULL DEFAULT '',
    is_default INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS task_records (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    category_name TEXT NOT NULL,
    task_name TEXT NOT NULL,
    start_time TEXT NOT NULL,
    date TEXT NOT NULL,
    task_type TEXT NOT NULL DEFAULT 'normal' CHECK (task_type IN ('normal', 'pause', 'end')),
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_task_records_date ON task_records(date);
CREATE UNIQUE INDEX IF NOT EXISTS idx_end_per_day ON task_records(date) WHERE task_type = 'end';
"""

DEFAULT_CATEGORIES = ("Development", "Meeting", "Maintenance")

# Column SQLite names when the partial index on date rejects a row
_END_PER_DAY_COLUMN = "task_records.date"

logger = logging.getLogger(__name__)


def _utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _is_end_per_day_violation(error: sqlite3.IntegrityError) -> bool:
    message = str(error)
    return _END_PER_DAY_COLUMN in message or END_PER_DAY_INDEX in message


class TaskStore:
    """SQLite-backed store for task events and categories.

    Not thread-safe. Each thread should have its own TaskStore instance.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._init_schema()
        self._seed_default_categories()

    def __enter__(self) -> "TaskStore":
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def _init_schema(self) -> None:
        """Initialize database schema."""
        self._conn.executescript(SCHEMA)
        self._conn.commit()

    def _seed_default_categories(self) -> None:
        """Create the starter categories in an empty database."""
        count = self._conn.execute("SELECT COUNT(*) FROM categories").fetchone()[0]
        if count > 0:
            return
        now = _utc_now()
        with self._conn:
            for index, name in enumerate(DEFAULT_CATEGORIES):
                self._conn.execute(
                    "INSERT INTO categories (name, code, is_default, created_at) VALUES (?, '', ?, ?)",
                    (name, 1 if index == 0 else 0, now),
                )
        logger.debug("Seeded default categories")

    @classmethod
    def open(cls, path: Path) -> TaskStore:
        """Open or create a database at the given path.

        Raises:
            StoreUnavailableError: If the database cannot be opened.
        """
        try:
            conn = sqlite3.connect(path)
            conn.row_factory = sqlite3.Row
            return cls(conn)
        except sqlite3.Error as e:
            raise StoreUnavailableError(str(e)) from e

    @classmethod
    def open_in_memory(cls) -> TaskStore:
        """Create an in-memory database for testing."""
        conn = sqlite3.connect(":memory:")
        conn.row_factory = sqlite3.Row
        return cls(conn)

    # Task records

    def get_by_date(self, day: str) -> list[TaskEvent]:
        """Get all events for a calendar date ('YYYY-MM-DD')."""
        cursor = self._conn.execute(
            "SELECT * FROM task_records WHERE date = ? ORDER BY start_time, id",
            (day,),
        )
        return [TaskEvent.model_validate(dict(row)) for row in cursor.fetchall()]

    def get_event(self, event_id: int) -> TaskEvent | None:
        row = self._conn.execute(
            "SELECT * FROM task_records WHERE id = ?", (event_id,)
        ).fetchone()
        return TaskEvent.model_validate(dict(row)) if row else None

    def get_all_events(self) -> list[TaskEvent]:
        cursor = self._conn.execute("SELECT * FROM task_records ORDER BY date, start_time, id")
        return [TaskEvent.model_validate(dict(row)) for row in cursor.fetchall()]

    def insert(self, event: TaskEvent) -> TaskEvent:
        """Insert an event and return it with its assigned ID.

        Raises:
            DuplicateEndOfDayError: If the date already has an end marker.
        """
        category_name = event.category_name or SPECIAL_CATEGORY
        created_at = event.created_at or _utc_now()
        try:
            cursor = self._conn.execute(
                """
                INSERT INTO task_records
                (category_name, task_name, start_time, date, task_type, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    category_name,
                    event.task_name,
                    event.start_time,
                    event.date,
                    event.task_type,
                    created_at,
                ),
            )
            self._conn.commit()
        except sqlite3.IntegrityError as e:
            self._conn.rollback()
            if _is_end_per_day_violation(e):
                raise DuplicateEndOfDayError() from e
            raise
        return event.model_copy(
            update={"id": cursor.lastrowid, "category_name": category_name, "created_at": created_at}
        )

    def update(self, event_id: int, fields: dict[str, Any]) -> bool:
        """Update mutable fields of an event.

        Only category_name, task_name, start_time and date can change.

        Returns:
            True if the event exists, False otherwise.

        Raises:
            ValidationError: If there is nothing to update.
            DuplicateEndOfDayError: If moving an end marker onto a date that has one.
        """
        allowed = ("category_name", "task_name", "start_time", "date")
        updates = {k: fields[k] for k in allowed if fields.get(k) is not None}
        if not updates:
            raise ValidationError("No fields to update")

        assignments = ", ".join(f"{column} = ?" for column in updates)
        try:
            cursor = self._conn.execute(
                f"UPDATE task_records SET {assignments} WHERE id = ?",
                [*updates.values(), event_id],
            )
            self._conn.commit()
        except sqlite3.IntegrityError as e:
            self._conn.rollback()
            if _is_end_per_day_violation(e):
                raise DuplicateEndOfDayError() from e
            raise
        return cursor.rowcount > 0

    def delete(self, event_id: int) -> bool:
        """Delete an event. Returns True if it existed."""
        cursor = self._conn.execute("DELETE FROM task_records WHERE id = ?", (event_id,))
        self._conn.commit()
        return cursor.rowcount > 0

    def bulk_delete_before(self, cutoff_date: str) -> int:
        """Delete all events dated strictly before cutoff_date. Returns the count.

        Raises:
            ValidationError: If cutoff_date is not a real, non-future date.
        """
        validate_cutoff_date(cutoff_date)
        cursor = self._conn.execute("DELETE FROM task_records WHERE date < ?", (cutoff_date,))
        self._conn.commit()
        return cursor.rowcount

    # Categories

    def get_all_categories(self) -> list[Category]:
        cursor = self._conn.execute("SELECT * FROM categories ORDER BY name")
        return [Category.model_validate(dict(row)) for row in cursor.fetchall()]

    def get_category(self, category_id: int) -> Category | None:
        row = self._conn.execute(
            "SELECT * FROM categories WHERE id = ?", (category_id,)
        ).fetchone()
        return Category.model_validate(dict(row)) if row else None

    def category_exists(self, name: str) -> bool:
        row = self._conn.execute(
            "SELECT COUNT(*) AS count FROM categories WHERE name = ?", (name,)
        ).fetchone()
        return row["count"] > 0

    def add_category(self, name: str, code: str = "") -> Category:
        """Insert a category.

        Raises:
            ValidationError: If a category with the same name exists.
        """
        try:
            cursor = self._conn.execute(
                "INSERT INTO categories (name, code, is_default, created_at) VALUES (?, ?, 0, ?)",
                (name, code, _utc_now()),
            )
            self._conn.commit()
        except sqlite3.IntegrityError as e:
            self._conn.rollback()
            raise ValidationError(f"Category '{name}' already exists") from e
        category = self.get_category(cursor.lastrowid)
        assert category is not None
        return category

    def update_category(self, category_id: int, name: str, code: str | None = None) -> bool:
        """Rename a category and optionally change its code.

        Raises:
            ValidationError: If another category already has the name.
        """
        try:
            if code is None:
                cursor = self._conn.execute(
                    "UPDATE categories SET name = ? WHERE id = ?", (name, category_id)
                )
            else:
                cursor = self._conn.execute(
                    "UPDATE categories SET name = ?, code = ? WHERE id = ?",
                    (name, code, category_id),
                )
            self._conn.commit()
        except sqlite3.IntegrityError as e:
            self._conn.rollback()
            raise ValidationError(f"Category '{name}' already exists") from e
        return cursor.rowcount > 0

    def delete_category(self, category_id: int) -> bool:
        cursor = self._conn.execute("DELETE FROM categories WHERE id = ?", (category_id,))
        self._conn.commit()
        return cursor.rowcount > 0

    def set_default_category(self, category_id: int) -> None:
        """Make one category the default (clear all, then set one, atomically)."""
        with self._conn:
            self._conn.execute("UPDATE categories SET is_default = 0")
            self._conn.execute(
                "UPDATE categories SET is_default = 1 WHERE id = ?", (category_id,)
            )

    def get_default_category(self) -> Category | None:
        row = self._conn.execute(
            "SELECT * FROM categories WHERE is_default = 1 ORDER BY id LIMIT 1"
        ).fetchone()
        return Category.model_validate(dict(row)) if row else None

    # Full replacement (restore)

    def replace_all(
        self,
        categories: Iterable[dict[str, Any]],
        records: Iterable[dict[str, Any]],
    ) -> None:
        """Replace every category and event in a single transaction.

        Input must already be normalized (see daylog.backup). Any failure
        rolls the whole replacement back.
        """
        now = _utc_now()
        with self._conn:  # Automatic transaction handling (commits on success)
            self._conn.execute("DELETE FROM task_records")
            self._conn.execute("DELETE FROM categories")
            for category in categories:
                self._conn.execute(
                    "INSERT INTO categories (name, code, is_default, created_at) VALUES (?, ?, ?, ?)",
                    (category["name"], category["code"], 1 if category["is_default"] else 0, now),
                )
            for record in records:
                self._conn.execute(
                    """
                    INSERT INTO task_records
                    (category_name, task_name, start_time, date, task_type, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record["category_name"],
                        record["task_name"],
                        record["start_time"],
                        record["date"],
                        record["task_type"],
                        record.get("created_at") or now,
                    ),
                )

    def export_rows(self) -> dict[str, list[dict[str, Any]]]:
        """Dump categories and task records as plain dicts."""
        categories = [
            dict(row) for row in self._conn.execute("SELECT * FROM categories ORDER BY id")
        ]
        for category in categories:
            category["is_default"] = bool(category["is_default"])
        task_records = [
            dict(row) for row in self._conn.execute("SELECT * FROM task_records ORDER BY id")
        ]
        return {"categories": categories, "task_records": task_records}
