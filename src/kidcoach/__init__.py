"""KidCoach package: behavioral metrics and weekly coaching insights for families."""

from .api import ApiExporter
from .exceptions import DuplicateInsightError, InsightNotFoundError, KidCoachError
from .insights import INSIGHT_RULES, InsightRule, activity_highlights, generate_weekly_insight
from .metrics import build_snapshot
from .models import (
    ChildSnapshot,
    ChildSummary,
    ConsistencyBand,
    DailyPoint,
    FamilyRecords,
    Insight,
    KPIData,
    LeaderboardMetric,
    MetricsSnapshot,
    MomentumLabel,
    Outcome,
    OutcomeLink,
    RangeKind,
    RedemptionRecord,
    StoredInsight,
    TaskEventRecord,
    TaskRecord,
    TaskStatus,
    Trend,
    Window,
    WindowPair,
)
from .ops import StructuredLogger, get_logger
from .sanitizer import needs_sanitization, safe_insight, sanitize_insight, sanitize_text
from .scoring import leaderboard, needs_attention
from .service import InsightStore, KidCoach, WeeklyRunResult
from .windows import resolve_window_pair, week_start, weekly_window_pair

__all__ = [
    "ApiExporter",
    "ChildSnapshot",
    "ChildSummary",
    "ConsistencyBand",
    "DailyPoint",
    "DuplicateInsightError",
    "FamilyRecords",
    "INSIGHT_RULES",
    "Insight",
    "InsightNotFoundError",
    "InsightRule",
    "InsightStore",
    "KPIData",
    "KidCoach",
    "KidCoachError",
    "LeaderboardMetric",
    "MetricsSnapshot",
    "MomentumLabel",
    "Outcome",
    "OutcomeLink",
    "RangeKind",
    "RedemptionRecord",
    "StoredInsight",
    "StructuredLogger",
    "TaskEventRecord",
    "TaskRecord",
    "TaskStatus",
    "Trend",
    "WeeklyRunResult",
    "Window",
    "WindowPair",
    "activity_highlights",
    "build_snapshot",
    "generate_weekly_insight",
    "get_logger",
    "leaderboard",
    "needs_attention",
    "needs_sanitization",
    "resolve_window_pair",
    "safe_insight",
    "sanitize_insight",
    "sanitize_text",
    "week_start",
    "weekly_window_pair",
]
