"""Configuration constants for KidCoach."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

APP_ENV = os.environ.get("KIDCOACH_ENV", "development")
SQLITE_FILE_NAME = os.environ.get("KIDCOACH_SQLITE", "kidcoach.db")
LOG_PATH: Optional[Path] = Path(os.environ["KIDCOACH_LOG_PATH"]) if os.environ.get("KIDCOACH_LOG_PATH") else None

# Product constants; changing them is a product decision, not a runtime option.
EVENING_HOUR = 17
DAILY_TASK_GOAL = 1
APPROVAL_TARGET_MINUTES = 60
MAX_HIGHLIGHTS = 6
SYSTEM_AUTHOR = "system"
FAMILY_SCOPE = "family"


def is_production() -> bool:
    """True when running with ``KIDCOACH_ENV=production``."""

    return os.environ.get("KIDCOACH_ENV", APP_ENV).strip().lower() == "production"


def sqlite_file_name() -> str:
    """SQLite database path, read from the environment at call time."""

    return os.environ.get("KIDCOACH_SQLITE", SQLITE_FILE_NAME)


__all__ = [
    "APP_ENV",
    "SQLITE_FILE_NAME",
    "LOG_PATH",
    "EVENING_HOUR",
    "DAILY_TASK_GOAL",
    "APPROVAL_TARGET_MINUTES",
    "MAX_HIGHLIGHTS",
    "SYSTEM_AUTHOR",
    "FAMILY_SCOPE",
    "is_production",
    "sqlite_file_name",
]
