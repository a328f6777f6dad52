"""Operational utilities for KidCoach."""

from __future__ import annotations

import json
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .config import LOG_PATH

LEVELS = ("debug", "info", "warning", "error")
MAX_LOG_ENTRIES = 1000


class StructuredLogger:
    """Write JSON lines log entries for admin inspection."""

    def __init__(self, *, path: Path | None = None, max_entries: int = MAX_LOG_ENTRIES) -> None:
        self.path = path
        # Oldest entries drop out once the buffer is full; the file sink keeps everything.
        self._entries: deque[dict] = deque(maxlen=max_entries)

    def log(self, event_type: str, *, level: str = "info", **fields: object) -> dict:
        if level not in LEVELS:
            raise ValueError(f"Unknown log level: {level!r}")
        entry = {"timestamp": datetime.now(timezone.utc).isoformat(), "level": level, "event": event_type, **fields}
        self._entries.append(entry)
        if self.path:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(entry, default=str) + "\n")
        return entry

    def info(self, event_type: str, **fields: object) -> dict:
        return self.log(event_type, level="info", **fields)

    def warning(self, event_type: str, **fields: object) -> dict:
        return self.log(event_type, level="warning", **fields)

    def error(self, event_type: str, **fields: object) -> dict:
        return self.log(event_type, level="error", **fields)

    def tail(self, limit: int = 50, *, level: Optional[str] = None) -> tuple[dict, ...]:
        entries = list(self._entries) if level is None else [entry for entry in self._entries if entry["level"] == level]
        return tuple(entries[-limit:])

    def clear(self) -> None:
        self._entries.clear()


_default_logger: StructuredLogger | None = None


def get_logger() -> StructuredLogger:
    """Return the process-wide logger, writing to ``KIDCOACH_LOG_PATH`` when set."""

    global _default_logger
    if _default_logger is None:
        _default_logger = StructuredLogger(path=LOG_PATH)
    return _default_logger


__all__ = ["LEVELS", "MAX_LOG_ENTRIES", "StructuredLogger", "get_logger"]
