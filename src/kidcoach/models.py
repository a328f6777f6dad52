"""Domain models used by the KidCoach package."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Mapping, Optional, Tuple


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TaskStatus(str, Enum):
    """Lifecycle states of an assigned task, owned by the approval workflow."""

    ACTIVE = "active"
    READY_FOR_REVIEW = "ready_for_review"
    APPROVED = "approved"
    REJECTED = "rejected"


class TaskEventType(str, Enum):
    """Task event types relevant to approval latency."""

    COMPLETED = "completed"
    APPROVED = "approved"
    REJECTED = "rejected"


class RangeKind(str, Enum):
    """Named reporting ranges understood by the window resolver."""

    THIS_WEEK = "this_week"
    LAST_WEEK = "last_week"
    LAST_30_DAYS = "last_30_days"
    CUSTOM = "custom"


class ConsistencyBand(str, Enum):
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


class MomentumLabel(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class Trend(str, Enum):
    UP = "up"
    DOWN = "down"
    FLAT = "flat"


class LeaderboardMetric(str, Enum):
    MINUTES_EARNED = "minutes_earned"
    APPROVED_COUNT = "approved_count"
    CONSISTENCY_DAYS_ACTIVE = "consistency_days_active"


# ---------------------------------------------------------------------------
# Source records (read-only inputs supplied by the data store)
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class TaskRecord:
    """One assigned task instance."""

    id: str
    child_id: str
    status: str
    created_at: datetime
    reward_minutes: int = 0

    @property
    def is_approved(self) -> bool:
        return self.status == TaskStatus.APPROVED.value


@dataclass(frozen=True, slots=True)
class TaskEventRecord:
    """A status event for an assigned task; only used for latency pairing."""

    assigned_task_id: str
    event_type: str
    created_at: datetime


@dataclass(frozen=True, slots=True)
class RedemptionRecord:
    """Minutes of reward time spent by a child."""

    child_id: str
    minutes_spent: int
    created_at: datetime


@dataclass(frozen=True, slots=True)
class ChildSummary:
    """Roster entry for a child that has not been soft deleted."""

    id: str
    name: str


@dataclass(frozen=True, slots=True)
class Outcome:
    """A behavior outcome tasks can be linked to."""

    id: str
    title: str = ""
    active: bool = True


@dataclass(frozen=True, slots=True)
class OutcomeLink:
    """Row of the outcome-mapping table."""

    outcome_id: str
    assigned_task_id: str


@dataclass(frozen=True, slots=True)
class FamilyRecords:
    """All records of one family, already scoped and free of deleted children."""

    tasks: Tuple[TaskRecord, ...] = ()
    events: Tuple[TaskEventRecord, ...] = ()
    redemptions: Tuple[RedemptionRecord, ...] = ()
    children: Tuple[ChildSummary, ...] = ()
    outcomes: Tuple[Outcome, ...] = ()
    outcome_links: Tuple[OutcomeLink, ...] = ()

    def __post_init__(self) -> None:
        for name in ("tasks", "events", "redemptions", "children", "outcomes", "outcome_links"):
            object.__setattr__(self, name, tuple(getattr(self, name)))

    def child_name(self, child_id: Optional[str]) -> Optional[str]:
        for child in self.children:
            if child.id == child_id:
                return child.name
        return None


# ---------------------------------------------------------------------------
# Derived values
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Window:
    """Closed time interval ``[start, end]``."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError("Window start must not be after its end.")

    def includes(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def day_count(self) -> int:
        """Number of calendar days touched by the window."""

        return (self.end.date() - self.start.date()).days + 1


@dataclass(frozen=True, slots=True)
class WindowPair:
    """A current window and the equal-length window right before it."""

    current: Window
    previous: Window


@dataclass(frozen=True, slots=True)
class KPIData:
    value: int
    prev_value: int
    delta: int
    delta_pct: int
    trend: Trend


@dataclass(frozen=True, slots=True)
class DailyPoint:
    """One bar of the seven day chart."""

    day: date
    day_name: str
    tasks_completed: int
    minutes_earned: int
    minutes_redeemed: int
    met_goal: bool


@dataclass(frozen=True, slots=True)
class ChartSummary:
    best_day: Optional[str] = None
    missed_goal_days: Tuple[str, ...] = ()
    goal_met_count: int = 0
    total_days: int = 0


@dataclass(frozen=True, slots=True)
class ChildSnapshot:
    """Per-child statistics for the selected window plus trailing activity."""

    child_id: str
    name: str
    assigned_count: int = 0
    active_count: int = 0
    submitted_count: int = 0
    approved_count: int = 0
    completion_rate: float = 0.0
    minutes_earned: int = 0
    minutes_redeemed: int = 0
    consistency_days_active: int = 0
    consistency_band: ConsistencyBand = ConsistencyBand.RED
    momentum_delta: int = 0
    momentum_label: MomentumLabel = MomentumLabel.STABLE
    last7_approved: int = 0
    prior7_approved: int = 0


def _flat_kpi() -> KPIData:
    return KPIData(value=0, prev_value=0, delta=0, delta_pct=0, trend=Trend.FLAT)


@dataclass(frozen=True, slots=True)
class MetricsSnapshot:
    """Aggregated signals for one family (or one child) over a window pair."""

    window: Optional[WindowPair] = None
    child_id: Optional[str] = None
    assigned_count: int = 0
    completed_count: int = 0
    completion_rate: float = 0.0
    minutes_earned: int = 0
    minutes_redeemed: int = 0
    total_tasks: KPIData = field(default_factory=_flat_kpi)
    completed: KPIData = field(default_factory=_flat_kpi)
    time_earned: KPIData = field(default_factory=_flat_kpi)
    time_redeemed: KPIData = field(default_factory=_flat_kpi)
    approval_latency_avg_minutes: float = 0.0
    approvals_count: int = 0
    on_time_rate: float = 0.0
    evening_slump_score: float = 0.0
    missing_outcome_rate: float = 0.0
    top_contributing_child_id: Optional[str] = None
    pending_approval_count: int = 0
    daily: Tuple[DailyPoint, ...] = ()
    chart: ChartSummary = field(default_factory=ChartSummary)
    children: Tuple[ChildSnapshot, ...] = ()


@dataclass(frozen=True, slots=True)
class Insight:
    """A single coaching insight; all text fields are sanitized."""

    title: str
    observation: str
    diagnosis: str
    recommendation: str
    expected_result: str
    next_check: str
    impact_score: int
    rule: str = ""

    def text_fields(self) -> Tuple[str, ...]:
        return (
            self.title,
            self.observation,
            self.diagnosis,
            self.recommendation,
            self.expected_result,
            self.next_check,
        )


@dataclass(frozen=True, slots=True)
class StoredInsight:
    """An insight persisted under ``(family_id, scope, week_start)``."""

    family_id: str
    scope: str
    week_start: date
    insight: Insight
    source_metrics: Mapping[str, Any] = field(default_factory=dict)
    created_by: str = "system"
    child_id: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)

    @property
    def key(self) -> Tuple[str, str, date]:
        return (self.family_id, self.scope, self.week_start)
