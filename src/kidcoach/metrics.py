"""Metric aggregation over task, event and redemption records.

Every function here is pure: it receives already-fetched records and returns
new values. Counting rules:

* a task belongs to a window when its ``created_at`` falls inside it;
* a task counts as completed once its status is ``approved``;
* redemptions belong to the window of their ``created_at``.

Rates are ratios in ``[0, 1]`` and zero denominators produce ``0``.
"""

from __future__ import annotations

import math
from dataclasses import replace
from datetime import datetime, timedelta, tzinfo
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence, Set, Tuple

from .config import APPROVAL_TARGET_MINUTES, DAILY_TASK_GOAL, EVENING_HOUR
from .models import (
    ChartSummary,
    ChildSnapshot,
    ChildSummary,
    DailyPoint,
    FamilyRecords,
    KPIData,
    MetricsSnapshot,
    Outcome,
    OutcomeLink,
    RedemptionRecord,
    TaskEventRecord,
    TaskEventType,
    TaskRecord,
    TaskStatus,
    Window,
    WindowPair,
)
from .numeric import clamp, round_half_up, safe_ratio
from .scoring import consistency_band, kpi_trend, momentum_label
from .windows import as_local, days_since_sunday, end_of_day, start_of_day

DAY = timedelta(days=1)
DAY_NAMES = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")
TRAILING_DAYS = 7
SERIES_DAYS = 7


class LatencyStats(NamedTuple):
    avg_minutes: float
    pair_count: int
    approvals_count: int
    on_time_rate: float


class TrailingActivity(NamedTuple):
    days_active: int
    last7_approved: int
    prior7_approved: int

    @property
    def momentum_delta(self) -> int:
        return self.last7_approved - self.prior7_approved


# ---------------------------------------------------------------------------
# Record selection
# ---------------------------------------------------------------------------
def localize_records(records: FamilyRecords, tz: Optional[tzinfo] = None) -> FamilyRecords:
    """Return ``records`` with every timestamp converted to naive local time."""

    return replace(
        records,
        tasks=tuple(replace(task, created_at=as_local(task.created_at, tz)) for task in records.tasks),
        events=tuple(replace(event, created_at=as_local(event.created_at, tz)) for event in records.events),
        redemptions=tuple(
            replace(redemption, created_at=as_local(redemption.created_at, tz)) for redemption in records.redemptions
        ),
    )


def scope_records(records: FamilyRecords, child_id: Optional[str]) -> FamilyRecords:
    """Restrict tasks, events and redemptions to one child when ``child_id`` is given."""

    if child_id is None:
        return records
    tasks = tuple(task for task in records.tasks if task.child_id == child_id)
    task_ids = {task.id for task in tasks}
    return replace(
        records,
        tasks=tasks,
        events=tuple(event for event in records.events if event.assigned_task_id in task_ids),
        redemptions=tuple(redemption for redemption in records.redemptions if redemption.child_id == child_id),
        children=tuple(child for child in records.children if child.id == child_id),
    )


def tasks_in(tasks: Iterable[TaskRecord], window: Window) -> List[TaskRecord]:
    return [task for task in tasks if window.includes(task.created_at)]


def redemptions_in(redemptions: Iterable[RedemptionRecord], window: Window) -> List[RedemptionRecord]:
    return [redemption for redemption in redemptions if window.includes(redemption.created_at)]


def approved(tasks: Iterable[TaskRecord]) -> List[TaskRecord]:
    return [task for task in tasks if task.is_approved]


def minutes_earned(tasks: Iterable[TaskRecord]) -> int:
    return sum(int(task.reward_minutes) for task in tasks if task.is_approved)


def minutes_redeemed(redemptions: Iterable[RedemptionRecord]) -> int:
    return sum(int(redemption.minutes_spent) for redemption in redemptions)


# ---------------------------------------------------------------------------
# Family signals
# ---------------------------------------------------------------------------
def completion_rate(completed_count: int, assigned_count: int) -> float:
    return safe_ratio(completed_count, assigned_count)


def calculate_kpi(current: int, previous: int) -> KPIData:
    """Compare a current value with the previous period's value."""

    delta = current - previous
    if previous > 0:
        delta_pct = round_half_up(100 * delta / previous)
    else:
        delta_pct = 100 if current > 0 else 0
    return KPIData(value=current, prev_value=previous, delta=delta, delta_pct=delta_pct, trend=kpi_trend(delta))


def approval_latency(
    events: Iterable[TaskEventRecord],
    window: Window,
    *,
    target_minutes: int = APPROVAL_TARGET_MINUTES,
) -> LatencyStats:
    """Average minutes between ``completed`` and ``approved`` per task.

    Only events inside ``window`` are paired. When a task has several events
    of one type the latest wins. Pairs with a non-positive latency are
    dropped as clock skew.
    """

    in_window = sorted(
        (event for event in events if window.includes(event.created_at)),
        key=lambda event: event.created_at,
    )
    pairs: Dict[str, Dict[str, datetime]] = {}
    approvals_count = 0
    for event in in_window:
        if event.event_type == TaskEventType.APPROVED.value:
            approvals_count += 1
        if not event.assigned_task_id:
            continue
        if event.event_type in (TaskEventType.COMPLETED.value, TaskEventType.APPROVED.value):
            pairs.setdefault(event.assigned_task_id, {})[event.event_type] = event.created_at

    latencies: List[float] = []
    for stamps in pairs.values():
        completed_at = stamps.get(TaskEventType.COMPLETED.value)
        approved_at = stamps.get(TaskEventType.APPROVED.value)
        if completed_at is None or approved_at is None:
            continue
        latency = (approved_at - completed_at).total_seconds() / 60
        if latency > 0:
            latencies.append(latency)

    if not latencies:
        return LatencyStats(avg_minutes=0.0, pair_count=0, approvals_count=approvals_count, on_time_rate=0.0)
    on_time = sum(1 for latency in latencies if latency <= target_minutes)
    return LatencyStats(
        avg_minutes=sum(latencies) / len(latencies),
        pair_count=len(latencies),
        approvals_count=approvals_count,
        on_time_rate=safe_ratio(on_time, len(latencies)),
    )


def evening_slump_score(tasks: Sequence[TaskRecord], *, evening_hour: int = EVENING_HOUR) -> float:
    """Completion-rate drop (0-100) for tasks created at or after ``evening_hour``."""

    earlier = [task for task in tasks if task.created_at.hour < evening_hour]
    evening = [task for task in tasks if task.created_at.hour >= evening_hour]
    if not earlier or not evening:
        return 0.0
    earlier_rate = completion_rate(len(approved(earlier)), len(earlier))
    evening_rate = completion_rate(len(approved(evening)), len(evening))
    return clamp((earlier_rate - evening_rate) * 100, 0.0, 100.0)


def missing_outcome_rate(
    tasks: Sequence[TaskRecord],
    outcomes: Iterable[Outcome],
    links: Iterable[OutcomeLink],
) -> float:
    """Share of ``tasks`` not linked to any outcome; 0 without active outcomes."""

    if not tasks or not any(outcome.active for outcome in outcomes):
        return 0.0
    linked: Set[str] = {link.assigned_task_id for link in links if link.assigned_task_id}
    unlinked = sum(1 for task in tasks if task.id not in linked)
    return safe_ratio(unlinked, len(tasks))


def top_contributing_child(tasks: Iterable[TaskRecord]) -> Optional[str]:
    counts: Dict[str, int] = {}
    for task in tasks:
        if task.is_approved and task.child_id:
            counts[task.child_id] = counts.get(task.child_id, 0) + 1
    top_child: Optional[str] = None
    top_count = 0
    for child_id, count in counts.items():
        if count > top_count:
            top_child, top_count = child_id, count
    return top_child


# ---------------------------------------------------------------------------
# Per-child activity
# ---------------------------------------------------------------------------
def trailing_activity(tasks: Iterable[TaskRecord], now: datetime) -> TrailingActivity:
    """Approved activity in the 7 days before ``now`` against the 7 days before that.

    Tasks are bucketed by whole days elapsed since creation; records dated
    after ``now`` are ignored.
    """

    active_days: Set = set()
    last7 = 0
    prior7 = 0
    for task in tasks:
        if not task.is_approved or task.created_at > now:
            continue
        days_ago = math.floor((now - task.created_at) / DAY)
        if days_ago < TRAILING_DAYS:
            last7 += 1
            active_days.add(task.created_at.date())
        elif days_ago < 2 * TRAILING_DAYS:
            prior7 += 1
    return TrailingActivity(days_active=len(active_days), last7_approved=last7, prior7_approved=prior7)


def child_snapshot(
    child: ChildSummary,
    tasks: Sequence[TaskRecord],
    redemptions: Sequence[RedemptionRecord],
    window: Window,
    now: datetime,
) -> ChildSnapshot:
    child_tasks = [task for task in tasks if task.child_id == child.id]
    period_tasks = tasks_in(child_tasks, window)
    period_redemptions = redemptions_in((r for r in redemptions if r.child_id == child.id), window)
    approved_count = len(approved(period_tasks))
    activity = trailing_activity(child_tasks, now)
    return ChildSnapshot(
        child_id=child.id,
        name=child.name,
        assigned_count=len(period_tasks),
        active_count=sum(1 for task in period_tasks if task.status == TaskStatus.ACTIVE.value),
        submitted_count=sum(1 for task in period_tasks if task.status == TaskStatus.READY_FOR_REVIEW.value),
        approved_count=approved_count,
        completion_rate=completion_rate(approved_count, len(period_tasks)),
        minutes_earned=minutes_earned(period_tasks),
        minutes_redeemed=minutes_redeemed(period_redemptions),
        consistency_days_active=activity.days_active,
        consistency_band=consistency_band(activity.days_active),
        momentum_delta=activity.momentum_delta,
        momentum_label=momentum_label(activity.momentum_delta),
        last7_approved=activity.last7_approved,
        prior7_approved=activity.prior7_approved,
    )


# ---------------------------------------------------------------------------
# Chart data
# ---------------------------------------------------------------------------
def daily_series(
    tasks: Sequence[TaskRecord],
    redemptions: Sequence[RedemptionRecord],
    end: datetime,
    *,
    daily_goal: int = DAILY_TASK_GOAL,
) -> Tuple[DailyPoint, ...]:
    """One point per calendar day for the 7 days ending on ``end``'s date."""

    points = []
    for offset in range(SERIES_DAYS - 1, -1, -1):
        day = end.date() - offset * DAY
        day_window = Window(start=start_of_day(day), end=end_of_day(day))
        day_completed = approved(tasks_in(tasks, day_window))
        completed_count = len(day_completed)
        points.append(
            DailyPoint(
                day=day,
                day_name=DAY_NAMES[days_since_sunday(day)],
                tasks_completed=completed_count,
                minutes_earned=minutes_earned(day_completed),
                minutes_redeemed=minutes_redeemed(redemptions_in(redemptions, day_window)),
                met_goal=completed_count >= daily_goal,
            )
        )
    return tuple(points)


def chart_summary(points: Sequence[DailyPoint]) -> ChartSummary:
    best_day: Optional[str] = None
    best_count = 0
    for point in points:
        if point.tasks_completed > best_count:
            best_day, best_count = point.day_name, point.tasks_completed
    return ChartSummary(
        best_day=best_day,
        missed_goal_days=tuple(point.day_name for point in points if not point.met_goal),
        goal_met_count=sum(1 for point in points if point.met_goal),
        total_days=len(points),
    )


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------
def build_snapshot(
    records: FamilyRecords,
    pair: WindowPair,
    *,
    now: datetime,
    child_id: Optional[str] = None,
    daily_goal: int = DAILY_TASK_GOAL,
    tz: Optional[tzinfo] = None,
) -> MetricsSnapshot:
    """Aggregate ``records`` over ``pair`` into an immutable snapshot.

    ``now`` anchors the trailing 7/14 day activity used for consistency and
    momentum; it is independent of the selected window. ``tz`` is applied to
    timezone-aware timestamps (see :func:`kidcoach.windows.as_local`).
    """

    scoped = scope_records(localize_records(records, tz), child_id)
    reference = as_local(now, tz)

    current_tasks = tasks_in(scoped.tasks, pair.current)
    previous_tasks = tasks_in(scoped.tasks, pair.previous)
    current_redemptions = redemptions_in(scoped.redemptions, pair.current)
    previous_redemptions = redemptions_in(scoped.redemptions, pair.previous)

    assigned_count = len(current_tasks)
    completed_count = len(approved(current_tasks))
    earned = minutes_earned(current_tasks)
    redeemed = minutes_redeemed(current_redemptions)
    latency = approval_latency(scoped.events, pair.current)
    daily = daily_series(scoped.tasks, scoped.redemptions, pair.current.end, daily_goal=daily_goal)

    return MetricsSnapshot(
        window=pair,
        child_id=child_id,
        assigned_count=assigned_count,
        completed_count=completed_count,
        completion_rate=completion_rate(completed_count, assigned_count),
        minutes_earned=earned,
        minutes_redeemed=redeemed,
        total_tasks=calculate_kpi(assigned_count, len(previous_tasks)),
        completed=calculate_kpi(completed_count, len(approved(previous_tasks))),
        time_earned=calculate_kpi(earned, minutes_earned(previous_tasks)),
        time_redeemed=calculate_kpi(redeemed, minutes_redeemed(previous_redemptions)),
        approval_latency_avg_minutes=latency.avg_minutes,
        approvals_count=latency.approvals_count,
        on_time_rate=latency.on_time_rate,
        evening_slump_score=evening_slump_score(current_tasks),
        missing_outcome_rate=missing_outcome_rate(current_tasks, scoped.outcomes, scoped.outcome_links),
        top_contributing_child_id=top_contributing_child(current_tasks),
        pending_approval_count=sum(1 for task in scoped.tasks if task.status == TaskStatus.READY_FOR_REVIEW.value),
        daily=daily,
        chart=chart_summary(daily),
        children=tuple(
            child_snapshot(child, scoped.tasks, scoped.redemptions, pair.current, reference)
            for child in scoped.children
        ),
    )


__all__ = [
    "LatencyStats",
    "TrailingActivity",
    "approval_latency",
    "build_snapshot",
    "calculate_kpi",
    "chart_summary",
    "child_snapshot",
    "completion_rate",
    "daily_series",
    "evening_slump_score",
    "localize_records",
    "missing_outcome_rate",
    "scope_records",
    "top_contributing_child",
    "trailing_activity",
]
