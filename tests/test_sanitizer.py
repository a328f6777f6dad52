import re

from kidcoach import sanitizer
from kidcoach.models import ChildSummary, Insight
from kidcoach.ops import StructuredLogger
from kidcoach.sanitizer import (
    FALLBACK_OBSERVATION,
    FALLBACK_RECOMMENDATION,
    UUID_PATTERN,
    needs_sanitization,
    safe_insight,
    sanitize_insight,
    sanitize_text,
)

CHILD_ID = "123e4567-e89b-12d3-a456-426614174000"
ROSTER = (ChildSummary(id=CHILD_ID, name="Ava"),)


def test_child_id_phrase_becomes_child_name() -> None:
    text = f"Great effort from child ID {CHILD_ID} this week."

    assert sanitize_text(text, ROSTER, CHILD_ID, production=True) == "Great effort from Ava this week."


def test_child_id_phrase_without_known_child_uses_generic_name() -> None:
    text = f"Check in with child ID '{CHILD_ID}' tonight."

    assert sanitize_text(text, production=True) == "Check in with this child tonight."


def test_bare_uuid_is_removed_without_child_context() -> None:
    text = f"Ask {CHILD_ID} about chores ."

    assert sanitize_text(text, production=True) == "Ask about chores."


def test_bare_uuid_becomes_name_with_child_context() -> None:
    assert sanitize_text(f"{CHILD_ID} finished early.", ROSTER, CHILD_ID, production=True) == "Ava finished early."


def test_blank_names_fall_back_to_generic() -> None:
    roster = (ChildSummary(id=CHILD_ID, name="  "),)

    assert sanitize_text(f"{CHILD_ID} did well.", roster, CHILD_ID, production=True) == "this child did well."


def test_empty_text_is_returned_unchanged() -> None:
    assert sanitize_text("", production=True) == ""


def test_uuid_glued_to_text_is_removed() -> None:
    logger = StructuredLogger()

    assert sanitize_text(f"Ref x{CHILD_ID}", logger=logger, production=False) == "Ref x"
    assert sanitize_text(f"{CHILD_ID}s chores", production=True) == "s chores"
    assert logger.tail() == ()


def test_uuid_glued_to_text_becomes_child_name() -> None:
    text = f"Progress for child_{CHILD_ID}"

    cleaned = sanitize_text(text, ROSTER, CHILD_ID, production=True)

    assert cleaned == "Progress for child_Ava"
    assert not UUID_PATTERN.search(cleaned)


def test_surviving_uuid_is_logged_outside_production(monkeypatch) -> None:
    monkeypatch.setattr(sanitizer, "UUID_PATTERN", re.compile(r"(?!)"))
    logger = StructuredLogger()

    result = sanitize_text(f"ref x{CHILD_ID}", logger=logger, production=False)

    assert CHILD_ID in result
    (entry,) = logger.tail(level="warning")
    assert entry["event"] == "uuid_leak"
    assert entry["preview"].startswith("ref x")


def test_surviving_uuid_is_not_logged_in_production(monkeypatch) -> None:
    monkeypatch.setattr(sanitizer, "UUID_PATTERN", re.compile(r"(?!)"))
    logger = StructuredLogger()

    sanitize_text(f"ref x{CHILD_ID}", logger=logger, production=True)

    assert logger.tail() == ()


def test_needs_sanitization_markers() -> None:
    assert needs_sanitization("Talk with child ID abc")
    assert needs_sanitization("There was no data available.")
    assert needs_sanitization("No specific behavior data was logged")
    assert needs_sanitization(f"id {CHILD_ID}")
    assert not needs_sanitization("Everyone finished their chores.")
    assert not needs_sanitization(None)
    assert not needs_sanitization("")


def _insight(observation: str) -> Insight:
    return Insight(
        title="Keep Up the Great Work",
        observation=observation,
        diagnosis="Routines are working.",
        recommendation="Continue your current routines.",
        expected_result="Sustained progress.",
        next_check="Weekly completion rate",
        impact_score=40,
    )


def test_sanitize_insight_cleans_every_text_field() -> None:
    insight = _insight(f"child ID {CHILD_ID} completed 5 tasks.")

    cleaned = sanitize_insight(insight, ROSTER, CHILD_ID, production=True)

    assert cleaned.observation == "Ava completed 5 tasks."
    assert cleaned.impact_score == 40
    assert not any(UUID_PATTERN.search(field) for field in cleaned.text_fields())


def test_safe_insight_swaps_in_fallback_text() -> None:
    unsafe = _insight(f"Progress for {CHILD_ID}")

    replaced = safe_insight(unsafe)

    assert replaced.observation == FALLBACK_OBSERVATION
    assert replaced.recommendation == FALLBACK_RECOMMENDATION
    assert replaced.title == unsafe.title


def test_safe_insight_keeps_clean_text() -> None:
    clean = _insight("Your family completed 80% of tasks.")

    assert safe_insight(clean) is clean


def test_sanitize_insight_removes_glued_identifiers() -> None:
    insight = _insight(f"Progress for child_{CHILD_ID}")

    cleaned = sanitize_insight(insight, ROSTER, CHILD_ID, production=True)

    assert cleaned.observation == "Progress for child_Ava"
    assert not any(UUID_PATTERN.search(field) for field in cleaned.text_fields())
