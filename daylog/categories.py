"""Category validation on top of the record store."""

from __future__ import annotations

from daylog.db import TaskStore
from daylog.errors import StoreUnavailableError, ValidationError
from daylog.events import CATEGORY_CODE_MAX_LENGTH, SPECIAL_CATEGORY, Category


def _clean_name(name: str) -> str:
    trimmed = (name or "").strip()
    if not trimmed:
        raise ValidationError("Category name cannot be empty")
    if trimmed == SPECIAL_CATEGORY:
        raise ValidationError(f"'{SPECIAL_CATEGORY}' is reserved")
    return trimmed


def _clean_code(code: str | None) -> str | None:
    if code is None:
        return None
    trimmed = code.strip()
    if len(trimmed) > CATEGORY_CODE_MAX_LENGTH:
        raise ValidationError(
            f"Category code cannot exceed {CATEGORY_CODE_MAX_LENGTH} characters"
        )
    return trimmed


def _require(store: TaskStore | None) -> TaskStore:
    if store is None:
        raise StoreUnavailableError()
    return store


def add_category(store: TaskStore | None, name: str, code: str | None = None) -> Category:
    """Create a category with a trimmed, unique name and optional short code."""
    store = _require(store)
    return store.add_category(_clean_name(name), _clean_code(code) or "")


def update_category(
    store: TaskStore | None, category_id: int, name: str, code: str | None = None
) -> None:
    store = _require(store)
    if not store.update_category(category_id, _clean_name(name), _clean_code(code)):
        raise ValidationError(f"Category {category_id} not found")


def delete_category(store: TaskStore | None, category_id: int) -> None:
    """Delete a category. The default category cannot be deleted."""
    store = _require(store)
    default = store.get_default_category()
    if default is not None and default.id == category_id:
        raise ValidationError(
            "Cannot delete the default category. Please set another category as default first."
        )
    if not store.delete_category(category_id):
        raise ValidationError(f"Category {category_id} not found")


def set_default_category(store: TaskStore | None, category_id: int) -> None:
    store = _require(store)
    if store.get_category(category_id) is None:
        raise ValidationError(f"Category {category_id} not found")
    store.set_default_category(category_id)


def category_exists(store: TaskStore | None, name: str) -> bool:
    trimmed = (name or "").strip()
    if not trimmed:
        return False
    return _require(store).category_exists(trimmed)
