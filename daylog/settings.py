"""User settings read by the engine.

Settings live in a small JSON file next to the database. Values are
validated and clamped here so that consumers can trust them.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError, field_validator

logger = logging.getLogger(__name__)

RETENTION_DAYS_MIN = 30
RETENTION_DAYS_MAX = 3650
DEFAULT_RETENTION_DAYS = 180

DEFAULT_SETTINGS_PATH = Path.home() / ".local" / "share" / "daylog" / "settings.json"


class Settings(BaseModel):
    retention_enabled: bool = False
    retention_days: int = DEFAULT_RETENTION_DAYS
    target_work_hours: float = 8

    @field_validator("retention_days", mode="before")
    @classmethod
    def clamp_retention_days(cls, value: Any) -> int:
        """Clamp to the supported window; unreadable values fall back to the default."""
        try:
            days = int(value)
        except (TypeError, ValueError, OverflowError):
            return DEFAULT_RETENTION_DAYS
        return min(RETENTION_DAYS_MAX, max(RETENTION_DAYS_MIN, days))


def settings_from_dict(data: Any) -> Settings:
    """Validate a settings mapping, falling back to defaults if it is invalid."""
    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        logger.warning("Ignoring invalid settings: %s", e)
        return Settings()


def load_settings(path: Path) -> Settings:
    """Load settings from a JSON file.

    A missing file yields defaults. An unreadable or invalid file is logged
    and also yields defaults.
    """
    if not path.exists():
        return Settings()
    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Ignoring invalid settings file %s: %s", path, e)
        return Settings()
    return settings_from_dict(data)


def save_settings(path: Path, settings: Settings) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(settings.model_dump(), indent=2) + "\n")
