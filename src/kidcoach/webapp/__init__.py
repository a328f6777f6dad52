"""KidCoach web application package.

``uvicorn kidcoach.webapp:app`` serves the analytics and coaching API.
"""
from __future__ import annotations

from . import persistence
from .application import app, now_local, set_time_provider
from .persistence import (
    SqlInsightStore,
    create_db_and_tables,
    engine,
    get_session,
    list_family_ids,
    load_family_records,
    make_engine,
)

__all__ = [
    "SqlInsightStore",
    "app",
    "create_db_and_tables",
    "engine",
    "get_session",
    "list_family_ids",
    "load_family_records",
    "make_engine",
    "now_local",
    "persistence",
    "set_time_provider",
]
