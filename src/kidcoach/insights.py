"""Rule-based coaching insights derived from a metrics snapshot.

Rules are evaluated in the order of :data:`INSIGHT_RULES` and the first
match wins, so a later rule never fires while an earlier one holds. The last
rule always matches, which makes :func:`generate_weekly_insight` total.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable, Iterable, List, Optional, Tuple

from .config import MAX_HIGHLIGHTS
from .models import ChildSummary, Insight, MetricsSnapshot, MomentumLabel
from .numeric import clamp, percent, round_half_up, round_tenths
from .ops import StructuredLogger
from .sanitizer import sanitize_insight, sanitize_text

MISSING_OUTCOME_THRESHOLD = 0.30
LATENCY_THRESHOLD_MINUTES = 60
EVENING_SLUMP_THRESHOLD = 30
LOW_COMPLETION_THRESHOLD = 0.60


@dataclass(frozen=True, slots=True)
class InsightRule:
    """One row of the decision table."""

    name: str
    applies: Callable[[MetricsSnapshot], bool]
    build: Callable[[MetricsSnapshot], Insight]


def _tracking_clarity(metrics: MetricsSnapshot) -> Insight:
    return Insight(
        title="Improve Task Tracking Clarity",
        observation=(
            f"{percent(metrics.missing_outcome_rate)}% of tasks aren't linked to behavior outcomes. "
            "This makes it harder to track progress toward your family's goals."
        ),
        diagnosis="Tasks without outcome connections reduce visibility into which behaviors are improving over time.",
        recommendation=(
            "Link more tasks to specific outcomes. "
            "This helps you see patterns and measure progress toward your family goals."
        ),
        expected_result=(
            "Better visibility into which behaviors are improving, making it easier to celebrate wins "
            "and identify areas needing support."
        ),
        next_check="Percentage of tasks linked to outcomes",
        impact_score=min(100, round_half_up(metrics.missing_outcome_rate * 150)),
        rule="tracking_clarity",
    )


def _approval_speed(metrics: MetricsSnapshot) -> Insight:
    hours = round_tenths(metrics.approval_latency_avg_minutes / 60)
    return Insight(
        title="Speed Up Task Approvals",
        observation=(
            f"Tasks are taking an average of {hours} hours to get approved. "
            "Research shows faster feedback loops boost motivation."
        ),
        diagnosis=(
            "Delayed approvals can reduce children's motivation and break the connection between effort and reward."
        ),
        recommendation=(
            "Set aside 5-10 minutes twice daily for quick approvals. "
            "Consider auto-approval rules for high-reliability tasks your children complete consistently."
        ),
        expected_result=(
            "Children feel more immediate recognition for their efforts, "
            "which can increase task completion and engagement."
        ),
        next_check="Average approval time in hours",
        impact_score=min(100, round_half_up(metrics.approval_latency_avg_minutes / 10)),
        rule="approval_speed",
    )


def _evening_schedule(metrics: MetricsSnapshot) -> Insight:
    return Insight(
        title="Optimize Evening Task Schedule",
        observation=(
            f"Task completion drops significantly in the evening "
            f"({round_half_up(metrics.evening_slump_score)}% lower than morning completion rate)."
        ),
        diagnosis=(
            "Evening fatigue, competing activities, or natural energy dips can reduce task completion later in the day."
        ),
        recommendation=(
            "Move critical or challenging tasks earlier in the day. "
            "Reserve evenings for lighter tasks or reduce evening task load altogether."
        ),
        expected_result=(
            "Higher overall completion rates and reduced stress from trying to complete tasks during lower-energy times."
        ),
        next_check="Evening vs morning completion rate difference",
        impact_score=min(100, round_half_up(metrics.evening_slump_score)),
        rule="evening_schedule",
    )


def _build_momentum(metrics: MetricsSnapshot) -> Insight:
    return Insight(
        title="Build Momentum with Smaller Wins",
        observation=(
            f"Your family is completing {percent(metrics.completion_rate)}% of assigned tasks. "
            "Small, consistent improvements can create positive momentum."
        ),
        diagnosis=(
            "Lower completion rates can happen when tasks feel overwhelming, schedules are too packed, "
            "or motivation needs a boost."
        ),
        recommendation=(
            "Start by breaking larger tasks into smaller steps, reducing daily task load temporarily, "
            "or adding more frequent positive reinforcement. Focus on consistency over volume."
        ),
        expected_result=(
            "Gradual increase in completion rates as children build confidence and routines become more established."
        ),
        next_check="Weekly completion rate percentage",
        impact_score=min(100, round_half_up((1 - metrics.completion_rate) * 100)),
        rule="build_momentum",
    )


def _positive_reinforcement(metrics: MetricsSnapshot) -> Insight:
    return Insight(
        title="Keep Up the Great Work",
        observation=(
            f"Your family completed {percent(metrics.completion_rate)}% of tasks this week "
            f"with {metrics.completed_count} tasks finished."
        ),
        diagnosis=(
            "Your current approach is working well. "
            "Consistency and positive reinforcement are key to maintaining progress."
        ),
        recommendation=(
            "Continue your current routines. Consider adding new challenges gradually, "
            "and keep celebrating the wins along the way."
        ),
        expected_result="Sustained progress and continued engagement as children build positive habits.",
        next_check="Weekly completion rate and total tasks completed",
        impact_score=round_half_up(metrics.completion_rate * 50),
        rule="positive_reinforcement",
    )


INSIGHT_RULES: Tuple[InsightRule, ...] = (
    InsightRule(
        "tracking_clarity",
        lambda m: m.missing_outcome_rate > MISSING_OUTCOME_THRESHOLD,
        _tracking_clarity,
    ),
    InsightRule(
        "approval_speed",
        lambda m: m.approval_latency_avg_minutes > LATENCY_THRESHOLD_MINUTES and m.approvals_count > 0,
        _approval_speed,
    ),
    InsightRule(
        "evening_schedule",
        lambda m: m.evening_slump_score > EVENING_SLUMP_THRESHOLD,
        _evening_schedule,
    ),
    InsightRule(
        "build_momentum",
        lambda m: m.completion_rate < LOW_COMPLETION_THRESHOLD and m.assigned_count > 0,
        _build_momentum,
    ),
    InsightRule("positive_reinforcement", lambda m: True, _positive_reinforcement),
)


def matching_rule(metrics: MetricsSnapshot, rules: Iterable[InsightRule] = INSIGHT_RULES) -> InsightRule:
    for rule in rules:
        if rule.applies(metrics):
            return rule
    raise LookupError("No insight rule matched; the rule table must end with a catch-all.")


def generate_weekly_insight(
    metrics: MetricsSnapshot,
    *,
    children: Iterable[ChildSummary] = (),
    child_id: Optional[str] = None,
    logger: Optional[StructuredLogger] = None,
) -> Insight:
    """Return exactly one sanitized insight for ``metrics``."""

    insight = matching_rule(metrics).build(metrics)
    insight = sanitize_insight(insight, children, child_id, logger=logger)
    return replace(insight, impact_score=int(clamp(insight.impact_score, 0, 100)))


# ---------------------------------------------------------------------------
# Dashboard highlights
# ---------------------------------------------------------------------------
def format_minutes(minutes: int) -> str:
    """Render minutes as ``45m``, ``2h`` or ``1h 30m``."""

    if minutes < 60:
        return f"{minutes}m"
    hours, mins = divmod(minutes, 60)
    return f"{hours}h {mins}m" if mins else f"{hours}h"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def activity_highlights(
    metrics: MetricsSnapshot,
    *,
    limit: int = MAX_HIGHLIGHTS,
    logger: Optional[StructuredLogger] = None,
) -> Tuple[str, ...]:
    """Short observations for the analytics dashboard, most urgent first."""

    lines: List[str] = []
    children = metrics.children
    roster = tuple(ChildSummary(id=child.child_id, name=child.name) for child in children)

    for child in children:
        if child.momentum_label is MomentumLabel.DECLINING:
            lines.append(
                f"{child.name} is declining: completed {_plural(child.last7_approved, 'task')} "
                f"in the last 7 days vs {child.prior7_approved} the week before."
            )

    if children:
        best = max(children, key=lambda child: child.consistency_days_active)
        if best.consistency_days_active > 0:
            lines.append(f"Best consistency: {best.name} ({best.consistency_days_active}/7 active days).")

    chart = metrics.chart
    if chart.best_day:
        best_point = next(point for point in metrics.daily if point.day_name == chart.best_day)
        lines.append(f"Most productive day: {chart.best_day} ({best_point.minutes_earned} minutes earned).")

    if children:
        most_redeemed = max(children, key=lambda child: child.minutes_redeemed)
        if most_redeemed.minutes_redeemed > 0:
            lines.append(
                f"Most time redeemed: {most_redeemed.name} ({format_minutes(most_redeemed.minutes_redeemed)})."
            )

    pending = metrics.pending_approval_count
    if pending > 0:
        lines.append(f"{pending} task{' is' if pending == 1 else 's are'} waiting for approval.")

    if 0 < len(chart.missed_goal_days) < chart.total_days:
        lines.append(f"Missed daily goal: {', '.join(chart.missed_goal_days)}.")

    if chart.goal_met_count > 0:
        lines.append(f"Daily goal met {chart.goal_met_count}/{chart.total_days} days this week.")

    return tuple(sanitize_text(line, roster, logger=logger) for line in lines[:limit])


__all__ = [
    "INSIGHT_RULES",
    "InsightRule",
    "activity_highlights",
    "format_minutes",
    "generate_weekly_insight",
    "matching_rule",
]
