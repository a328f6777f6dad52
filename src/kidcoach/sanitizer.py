"""Removal of internal identifiers from user-facing text."""

from __future__ import annotations

import re
from dataclasses import replace
from typing import Iterable, Optional

from .config import is_production
from .models import ChildSummary, Insight
from .ops import StructuredLogger, get_logger

UUID_PATTERN = re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE)
_UUID_SEARCH = re.compile(UUID_PATTERN.pattern, re.IGNORECASE)
CHILD_ID_PATTERN = re.compile(r"child\s+ID\s*[\"']?[0-9a-f-]{16,}[\"']?", re.IGNORECASE)
LEAK_MARKERS = re.compile(r"child\s+id|no specific behavior data|no data available|uuid", re.IGNORECASE)

GENERIC_CHILD_NAME = "this child"
FALLBACK_OBSERVATION = "Not enough activity was logged this week to detect a clear pattern."
FALLBACK_RECOMMENDATION = "Pick one daily task and track it for 7 days to unlock meaningful insights."
PREVIEW_LENGTH = 100

_SPACE_RUNS = re.compile(r"[ \t]{2,}")
_SPACE_BEFORE_PUNCTUATION = re.compile(r"[ \t]+([.,;:!?)])")


def resolve_child_name(children: Iterable[ChildSummary], child_id: Optional[str]) -> str:
    """Display name for ``child_id`` or the generic fallback."""

    if child_id:
        for child in children:
            if child.id == child_id and child.name.strip():
                return child.name.strip()
    return GENERIC_CHILD_NAME


def sanitize_text(
    text: str,
    children: Iterable[ChildSummary] = (),
    child_id: Optional[str] = None,
    *,
    logger: Optional[StructuredLogger] = None,
    production: Optional[bool] = None,
) -> str:
    """Replace or drop identifiers so ``text`` is safe to show to a parent.

    "child ID <hex>" phrases become the child's name. Any other UUID, even one
    glued to surrounding characters, becomes the child's name when
    ``child_id`` is known and is removed otherwise.
    Outside production a UUID that survives is logged as ``uuid_leak``.
    """

    if not text:
        return text
    child_name = resolve_child_name(children, child_id)
    sanitized = CHILD_ID_PATTERN.sub(child_name, text)
    sanitized = UUID_PATTERN.sub(child_name if child_id else "", sanitized)
    sanitized = _SPACE_RUNS.sub(" ", sanitized)
    sanitized = _SPACE_BEFORE_PUNCTUATION.sub(r"\1", sanitized).strip()

    if production is None:
        production = is_production()
    if not production and _UUID_SEARCH.search(sanitized):
        (logger or get_logger()).warning("uuid_leak", preview=sanitized[:PREVIEW_LENGTH])
    return sanitized


def needs_sanitization(text: Optional[str]) -> bool:
    """True when ``text`` still carries identifiers or placeholder phrases."""

    if not text:
        return False
    return bool(LEAK_MARKERS.search(text) or UUID_PATTERN.search(text))


def insight_needs_sanitization(insight: Optional[Insight]) -> bool:
    if insight is None:
        return False
    return needs_sanitization(" ".join((insight.observation, insight.diagnosis, insight.recommendation)))


def sanitize_insight(
    insight: Insight,
    children: Iterable[ChildSummary] = (),
    child_id: Optional[str] = None,
    *,
    logger: Optional[StructuredLogger] = None,
    production: Optional[bool] = None,
) -> Insight:
    """Apply :func:`sanitize_text` to every text field of ``insight``."""

    roster = tuple(children)

    def clean(value: str) -> str:
        return sanitize_text(value, roster, child_id, logger=logger, production=production)

    return replace(
        insight,
        title=clean(insight.title),
        observation=clean(insight.observation),
        diagnosis=clean(insight.diagnosis),
        recommendation=clean(insight.recommendation),
        expected_result=clean(insight.expected_result),
        next_check=clean(insight.next_check),
    )


def safe_insight(insight: Insight) -> Insight:
    """Swap in the generic template when the insight still looks unsafe."""

    if not insight_needs_sanitization(insight):
        return insight
    return replace(insight, observation=FALLBACK_OBSERVATION, recommendation=FALLBACK_RECOMMENDATION)


__all__ = [
    "CHILD_ID_PATTERN",
    "FALLBACK_OBSERVATION",
    "FALLBACK_RECOMMENDATION",
    "GENERIC_CHILD_NAME",
    "UUID_PATTERN",
    "insight_needs_sanitization",
    "needs_sanitization",
    "resolve_child_name",
    "safe_insight",
    "sanitize_insight",
    "sanitize_text",
]
