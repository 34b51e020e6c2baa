"""CLI entry point for Day Log."""

from __future__ import annotations

import json
import logging
import sys
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable

import click

from daylog import categories as category_ops
from daylog.backup import export_snapshot, read_snapshot, restore_snapshot
from daylog.db import TaskStore
from daylog.errors import DayLogError, StaleReferenceError
from daylog.events import (
    SPECIAL_CATEGORY,
    TaskEvent,
    TaskUpdate,
    current_time_string,
    format_duration_minutes,
)
from daylog.records import DayLog
from daylog.settings import DEFAULT_SETTINGS_PATH, Settings, load_settings, save_settings
from daylog.timeline import CategoryShare

DEFAULT_DB_PATH = Path.home() / ".local" / "share" / "daylog" / "daylog.db"


def make_progress_bar(value: int, max_value: int, width: int = 16) -> str:
    """Create ASCII progress bar.

    Args:
        value: Current value.
        max_value: Maximum value (100%).
        width: Total width of bar (default: 16).

    Returns:
        Progress bar string like '████████░░░░░░░░'.
    """
    if max_value == 0 or value == 0:
        return "░" * width
    filled = max(1, min(width, round((value / max_value) * width)))
    return "█" * filled + "░" * (width - filled)


def format_day_header(day: str) -> str:
    """Format 'YYYY-MM-DD' like 'Mon, Jan 27, 2025'."""
    return datetime.strptime(day, "%Y-%m-%d").strftime("%a, %b %d, %Y")


def _fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def db_option(func: Callable[..., Any]) -> Callable[..., Any]:
    return click.option(
        "--db",
        type=click.Path(path_type=Path),
        default=DEFAULT_DB_PATH,
        help="Path to SQLite database",
    )(func)


def settings_option(func: Callable[..., Any]) -> Callable[..., Any]:
    return click.option(
        "--settings",
        "settings_path",
        type=click.Path(path_type=Path),
        default=DEFAULT_SETTINGS_PATH,
        help="Path to settings JSON file",
    )(func)


def date_option(func: Callable[..., Any]) -> Callable[..., Any]:
    return click.option(
        "--date",
        "day",
        type=str,
        default=None,
        help="Day to use (YYYY-MM-DD, default: today)",
    )(func)


def _open_store(db: Path) -> TaskStore:
    # Ensure database directory exists
    db.parent.mkdir(parents=True, exist_ok=True)
    return TaskStore.open(db)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging")
def main(verbose: bool) -> None:
    """Day Log CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@main.command("add")
@click.argument("category")
@click.argument("task")
@click.option("--time", "start_time", help="Start time (HH:mm, default: now)")
@date_option
@db_option
def add_command(category: str, task: str, start_time: str | None, day: str | None, db: Path) -> None:
    """Log TASK in CATEGORY starting at --time.

    Example:
        daylog add Development "Code review" --time 09:30
    """
    try:
        with _open_store(db) as store:
            log = DayLog(store, day or date.today())
            log.load()
            created = log.add_task(category, task, start_time or current_time_string())
    except DayLogError as e:
        _fail(str(e))
        return
    click.echo(f"Added #{created.id} {created.start_time} {created.category_name}: {created.task_name}")


def _add_marker(kind: str, label: str, day: str | None, db: Path, settings_path: Path) -> None:
    settings = load_settings(settings_path)
    try:
        with _open_store(db) as store:
            log = DayLog(store, day or date.today(), settings)
            log.load()
            created = log.add_special(kind, label)
    except DayLogError as e:
        _fail(str(e))
        return
    click.echo(f"Added {kind} #{created.id} at {created.start_time}: {created.task_name}")


@main.command("pause")
@click.argument("label", default="Pause")
@date_option
@db_option
@settings_option
def pause_command(label: str, day: str | None, db: Path, settings_path: Path) -> None:
    """Start a break now."""
    _add_marker("pause", label, day, db, settings_path)


@main.command("end")
@click.argument("label", default="End of day")
@date_option
@db_option
@settings_option
def end_command(label: str, day: str | None, db: Path, settings_path: Path) -> None:
    """Close the day now. Runs retention eviction when enabled."""
    _add_marker("end", label, day, db, settings_path)


@main.command("day")
@date_option
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@db_option
@settings_option
def day_command(day: str | None, output_json: bool, db: Path, settings_path: Path) -> None:
    """Show a day's timeline with derived durations and category totals."""
    if not db.exists():
        click.echo("No database found", err=True)
        sys.exit(1)

    settings = load_settings(settings_path)
    try:
        with TaskStore.open(db) as store:
            log = DayLog(store, day or date.today(), settings)
            log.load()
    except DayLogError as e:
        _fail(str(e))
        return

    # Read "now" once so every figure in the report agrees
    now = datetime.now()
    timeline = log.timeline
    rows = [(event, timeline.calculate_duration(event, now=now)) for event in timeline.ordered]
    total_minutes = timeline.total_minutes_tracked(now=now)
    breakdown = timeline.category_breakdown(now=now)

    if output_json:
        _output_json_day(log.day, rows, total_minutes, breakdown)
    else:
        _output_human_day(log.day, rows, total_minutes, breakdown, settings.target_work_hours)


def _output_json_day(
    day: str,
    rows: list[tuple[TaskEvent, str]],
    total_minutes: int,
    breakdown: list[CategoryShare],
) -> None:
    """Output JSON day report."""
    output = {
        "date": day,
        "generated_at": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "total_minutes": total_minutes,
        "events": [
            {**event.model_dump(), "duration": duration}
            for event, duration in rows
        ],
        "by_category": [share.model_dump() for share in breakdown],
    }
    click.echo(json.dumps(output, indent=2))


def _output_human_day(
    day: str,
    rows: list[tuple[TaskEvent, str]],
    total_minutes: int,
    breakdown: list[CategoryShare],
    target_work_hours: float,
) -> None:
    """Output human-readable day report."""
    click.echo(f"Day: {format_day_header(day)}")
    click.echo()

    if not rows:
        click.echo("No events logged for this day.")
        return

    for event, duration in rows:
        category = f"({event.task_type})" if event.category_name == SPECIAL_CATEGORY else event.category_name
        if len(category) > 16:
            category = category[:13] + "..."
        click.echo(
            f"  #{event.id:<4} {event.start_time:<5}  {category:<16} {duration:>7}  {event.task_name}"
        )
    click.echo()

    target_minutes = round(target_work_hours * 60)
    click.echo(f"Total: {format_duration_minutes(total_minutes)} (target {format_duration_minutes(target_minutes)})")
    if not breakdown:
        return

    click.echo()
    click.echo("By Category:")
    max_minutes = max(share.minutes for share in breakdown)
    for share in breakdown:
        name = share.category_name
        if len(name) > 20:
            name = name[:17] + "..."
        bar = make_progress_bar(share.minutes, max_minutes)
        click.echo(
            f"  {name:<20} {format_duration_minutes(share.minutes):>9} {share.percentage:5.1f}%   {bar}"
        )


def _load_day_of(store: TaskStore, event_id: int) -> DayLog:
    event = store.get_event(event_id)
    if event is None:
        raise StaleReferenceError(event_id)
    log = DayLog(store, event.date)
    log.load()
    return log


@main.command("edit")
@click.argument("event_id", type=int)
@click.option("--category", "category_name", help="New category")
@click.option("--task", "task_name", help="New task name")
@click.option("--time", "start_time", help="New start time (HH:mm)")
@click.option("--date", "new_date", help="Move to another day (YYYY-MM-DD)")
@db_option
def edit_command(
    event_id: int,
    category_name: str | None,
    task_name: str | None,
    start_time: str | None,
    new_date: str | None,
    db: Path,
) -> None:
    """Change an event's category, task name, time or date."""
    update = TaskUpdate(
        category_name=category_name,
        task_name=task_name,
        start_time=start_time,
        date=new_date,
    )
    try:
        with _open_store(db) as store:
            log = _load_day_of(store, event_id)
            log.update_task(event_id, update)
    except DayLogError as e:
        _fail(str(e))
        return
    click.echo(f"Updated #{event_id}")


@main.command("delete")
@click.argument("event_id", type=int)
@db_option
def delete_command(event_id: int, db: Path) -> None:
    """Delete an event."""
    try:
        with _open_store(db) as store:
            log = _load_day_of(store, event_id)
            log.delete_task(event_id)
    except DayLogError as e:
        _fail(str(e))
        return
    click.echo(f"Deleted #{event_id}")


@main.group("categories")
def categories_group() -> None:
    """Manage categories."""


@categories_group.command("list")
@db_option
def categories_list(db: Path) -> None:
    """List categories (default marked with *)."""
    with _open_store(db) as store:
        for category in store.get_all_categories():
            marker = "*" if category.is_default else " "
            code = f" [{category.code}]" if category.code else ""
            click.echo(f"{marker} {category.id:>3}  {category.name}{code}")


@categories_group.command("add")
@click.argument("name")
@click.option("--code", help="Short code (max 10 characters)")
@db_option
def categories_add(name: str, code: str | None, db: Path) -> None:
    """Add a category."""
    try:
        with _open_store(db) as store:
            category = category_ops.add_category(store, name, code)
    except DayLogError as e:
        _fail(str(e))
        return
    click.echo(f"Added category {category.id}: {category.name}")


@categories_group.command("rename")
@click.argument("category_id", type=int)
@click.argument("name")
@click.option("--code", help="Short code (max 10 characters)")
@db_option
def categories_rename(category_id: int, name: str, code: str | None, db: Path) -> None:
    """Rename a category."""
    try:
        with _open_store(db) as store:
            category_ops.update_category(store, category_id, name, code)
    except DayLogError as e:
        _fail(str(e))
        return
    click.echo(f"Updated category {category_id}")


@categories_group.command("delete")
@click.argument("category_id", type=int)
@db_option
def categories_delete(category_id: int, db: Path) -> None:
    """Delete a category."""
    try:
        with _open_store(db) as store:
            category_ops.delete_category(store, category_id)
    except DayLogError as e:
        _fail(str(e))
        return
    click.echo(f"Deleted category {category_id}")


@categories_group.command("default")
@click.argument("category_id", type=int)
@db_option
def categories_default(category_id: int, db: Path) -> None:
    """Make a category the default."""
    try:
        with _open_store(db) as store:
            category_ops.set_default_category(store, category_id)
    except DayLogError as e:
        _fail(str(e))
        return
    click.echo(f"Default category is now {category_id}")


@main.command("settings")
@click.option("--retention/--no-retention", "retention_enabled", default=None, help="Evict old events when a day is closed")
@click.option("--retention-days", type=int, help="Days of history to keep (30-3650)")
@click.option("--target-hours", type=float, help="Target work hours per day")
@settings_option
def settings_command(
    retention_enabled: bool | None,
    retention_days: int | None,
    target_hours: float | None,
    settings_path: Path,
) -> None:
    """Show or change settings."""
    settings = load_settings(settings_path)
    changes: dict[str, Any] = {}
    if retention_enabled is not None:
        changes["retention_enabled"] = retention_enabled
    if retention_days is not None:
        changes["retention_days"] = retention_days
    if target_hours is not None:
        changes["target_work_hours"] = target_hours

    if changes:
        # Re-validate so retention days are clamped
        settings = Settings.model_validate({**settings.model_dump(), **changes})
        save_settings(settings_path, settings)

    click.echo(f"Retention: {'on' if settings.retention_enabled else 'off'} ({settings.retention_days} days)")
    click.echo(f"Target work hours: {settings.target_work_hours:g}")


@main.command("backup")
@click.argument("path", type=click.Path(path_type=Path))
@db_option
@settings_option
def backup_command(path: Path, db: Path, settings_path: Path) -> None:
    """Write a full backup of categories, events and settings to PATH."""
    settings = load_settings(settings_path)
    with _open_store(db) as store:
        document = export_snapshot(store, settings)
    path.write_text(json.dumps(document, indent=2) + "\n")
    click.echo(
        f"Backed up {len(document['database']['categories'])} categories and "
        f"{len(document['database']['task_records'])} events to {path}"
    )


@main.command("restore")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@db_option
@settings_option
def restore_command(path: Path, db: Path, settings_path: Path) -> None:
    """Replace all data with the contents of a backup file.

    Duplicate categories and extra end markers for a day are dropped.
    """
    try:
        snapshot = read_snapshot(path)
        with _open_store(db) as store:
            result = restore_snapshot(store, snapshot)
    except DayLogError as e:
        _fail(str(e))
        return
    save_settings(settings_path, result.settings)

    click.echo(f"Restored {result.categories} categories and {result.task_records} events")
    if result.dropped_records:
        click.echo(f"Skipped {result.dropped_records} invalid or duplicate rows", err=True)


if __name__ == "__main__":
    main()
