"""Custom exception hierarchy for the KidCoach package."""

from __future__ import annotations


class KidCoachError(Exception):
    """Base class for all KidCoach specific errors."""


class DuplicateInsightError(KidCoachError):
    """Raised when an insight already exists for a family, scope and week."""


class InsightNotFoundError(KidCoachError):
    """Raised when a stored insight lookup fails."""
