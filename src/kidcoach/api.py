"""JSON export helpers for KidCoach."""

from __future__ import annotations

import json
from datetime import date, datetime
from typing import Dict, Optional

from .models import ChildSnapshot, DailyPoint, Insight, KPIData, MetricsSnapshot, StoredInsight, Window


class ApiExporter:
    """Convert KidCoach data structures to JSON friendly dictionaries."""

    def snapshot_payload(self, snapshot: MetricsSnapshot) -> Dict[str, object]:
        window = snapshot.window
        return {
            "window": {
                "current": self._serialise_window(window.current) if window else None,
                "previous": self._serialise_window(window.previous) if window else None,
            },
            "child_id": snapshot.child_id,
            "assigned_count": snapshot.assigned_count,
            "completed_count": snapshot.completed_count,
            "completion_rate": snapshot.completion_rate,
            "minutes_earned": snapshot.minutes_earned,
            "minutes_redeemed": snapshot.minutes_redeemed,
            "kpis": {
                "total_tasks": self._serialise_kpi(snapshot.total_tasks),
                "completed": self._serialise_kpi(snapshot.completed),
                "time_earned": self._serialise_kpi(snapshot.time_earned),
                "time_redeemed": self._serialise_kpi(snapshot.time_redeemed),
            },
            "approval_latency_avg_minutes": snapshot.approval_latency_avg_minutes,
            "approvals_count": snapshot.approvals_count,
            "on_time_rate": snapshot.on_time_rate,
            "evening_slump_score": snapshot.evening_slump_score,
            "missing_outcome_rate": snapshot.missing_outcome_rate,
            "top_contributing_child_id": snapshot.top_contributing_child_id,
            "pending_approval_count": snapshot.pending_approval_count,
            "daily": [self._serialise_day(point) for point in snapshot.daily],
            "chart": {
                "best_day": snapshot.chart.best_day,
                "missed_goal_days": list(snapshot.chart.missed_goal_days),
                "goal_met_count": snapshot.chart.goal_met_count,
                "total_days": snapshot.chart.total_days,
            },
            "children": [self._serialise_child(child) for child in snapshot.children],
        }

    def source_metrics(self, snapshot: MetricsSnapshot) -> Dict[str, object]:
        """The subset of signals the insight rules read, stored next to an insight."""

        return {
            "tasks_assigned_count": snapshot.assigned_count,
            "tasks_completed_count": snapshot.completed_count,
            "completion_rate": snapshot.completion_rate,
            "approval_latency_avg_minutes": snapshot.approval_latency_avg_minutes,
            "approvals_count": snapshot.approvals_count,
            "evening_slump_score": snapshot.evening_slump_score,
            "missing_outcome_rate": snapshot.missing_outcome_rate,
            "on_time_rate": snapshot.on_time_rate,
        }

    def insight_payload(self, insight: Insight, *, stored: Optional[StoredInsight] = None) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "title": insight.title,
            "observation": insight.observation,
            "diagnosis": insight.diagnosis,
            "recommendation": insight.recommendation,
            "expected_result": insight.expected_result,
            "next_check": insight.next_check,
            "impact_score": insight.impact_score,
            "rule": insight.rule,
        }
        if stored is not None:
            payload.update(
                {
                    "family_id": stored.family_id,
                    "scope": stored.scope,
                    "week_start": stored.week_start.isoformat(),
                    "created_by": stored.created_by,
                    "child_id": stored.child_id,
                }
            )
        return payload

    def to_json(self, payload: Dict[str, object]) -> str:
        return json.dumps(payload, sort_keys=True, default=self._default)

    def _serialise_window(self, window: Window) -> Dict[str, str]:
        return {"start": window.start.isoformat(), "end": window.end.isoformat()}

    def _serialise_kpi(self, kpi: KPIData) -> Dict[str, object]:
        return {
            "value": kpi.value,
            "prev_value": kpi.prev_value,
            "delta": kpi.delta,
            "delta_pct": kpi.delta_pct,
            "trend": kpi.trend.value,
        }

    def _serialise_day(self, point: DailyPoint) -> Dict[str, object]:
        return {
            "date": point.day.isoformat(),
            "day_name": point.day_name,
            "tasks_completed": point.tasks_completed,
            "minutes_earned": point.minutes_earned,
            "minutes_redeemed": point.minutes_redeemed,
            "met_goal": point.met_goal,
        }

    def _serialise_child(self, child: ChildSnapshot) -> Dict[str, object]:
        return {
            "child_id": child.child_id,
            "name": child.name,
            "assigned_count": child.assigned_count,
            "active_count": child.active_count,
            "submitted_count": child.submitted_count,
            "approved_count": child.approved_count,
            "completion_rate": child.completion_rate,
            "minutes_earned": child.minutes_earned,
            "minutes_redeemed": child.minutes_redeemed,
            "consistency_days_active": child.consistency_days_active,
            "consistency_band": child.consistency_band.value,
            "momentum_delta": child.momentum_delta,
            "momentum_label": child.momentum_label.value,
        }

    @staticmethod
    def _default(value: object) -> object:
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


__all__ = ["ApiExporter"]
