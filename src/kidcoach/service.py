"""High level service that runs the metrics and insight pipeline for families."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from typing import Callable, Dict, Mapping, Optional, Tuple

from .api import ApiExporter
from .config import FAMILY_SCOPE, SYSTEM_AUTHOR
from .exceptions import DuplicateInsightError, InsightNotFoundError
from .insights import activity_highlights, generate_weekly_insight
from .metrics import build_snapshot
from .models import FamilyRecords, MetricsSnapshot, RangeKind, StoredInsight
from .ops import StructuredLogger, get_logger
from .windows import as_local, resolve_window_pair, week_start, weekly_window_pair

InsightKey = Tuple[str, str, date]

STATUS_GENERATED = "generated"
STATUS_SKIPPED = "skipped"
STATUS_FAILED = "failed"
REASON_EXISTS = "insight_exists"
REASON_NO_TASKS = "no_tasks_assigned"


class InsightStore:
    """In-memory insight storage keyed by ``(family_id, scope, week_start)``.

    The SQL-backed store in :mod:`kidcoach.webapp.persistence` exposes the
    same ``exists``/``get``/``add`` methods.
    """

    def __init__(self) -> None:
        self._insights: Dict[InsightKey, StoredInsight] = {}

    def exists(self, family_id: str, scope: str, week: date) -> bool:
        return (family_id, scope, week) in self._insights

    def get(self, family_id: str, scope: str, week: date) -> StoredInsight:
        try:
            return self._insights[(family_id, scope, week)]
        except KeyError as exc:
            raise InsightNotFoundError(f"No {scope} insight for family '{family_id}' in week {week}.") from exc

    def add(self, stored: StoredInsight) -> StoredInsight:
        if stored.key in self._insights:
            raise DuplicateInsightError(
                f"A {stored.scope} insight for family '{stored.family_id}' already exists for week {stored.week_start}."
            )
        self._insights[stored.key] = stored
        return stored

    def list(self, family_id: Optional[str] = None) -> Tuple[StoredInsight, ...]:
        entries = [entry for entry in self._insights.values() if family_id is None or entry.family_id == family_id]
        return tuple(sorted(entries, key=lambda entry: (entry.family_id, entry.week_start)))


@dataclass(frozen=True, slots=True)
class WeeklyRunResult:
    family_id: str
    week_start: date
    status: str
    reason: str = ""
    stored: Optional[StoredInsight] = None

    @property
    def success(self) -> bool:
        return self.status == STATUS_GENERATED


class KidCoach:
    """Compute analytics snapshots and at most one system insight per family and week."""

    __slots__ = ("_store", "_logger", "_api", "_clock", "_tz")

    def __init__(
        self,
        *,
        store: Optional[InsightStore] = None,
        logger: Optional[StructuredLogger] = None,
        clock: Callable[[], datetime] = datetime.now,
        tz: Optional[tzinfo] = None,
    ) -> None:
        self._store = store if store is not None else InsightStore()
        self._logger = logger or get_logger()
        self._api = ApiExporter()
        self._clock = clock
        self._tz = tz

    @property
    def store(self) -> InsightStore:
        return self._store

    @property
    def logger(self) -> StructuredLogger:
        return self._logger

    def now(self) -> datetime:
        return as_local(self._clock(), self._tz)

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------
    def analytics(
        self,
        records: FamilyRecords,
        *,
        range_kind: RangeKind | str = RangeKind.THIS_WEEK,
        custom_start: Optional[date] = None,
        custom_end: Optional[date] = None,
        child_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> MetricsSnapshot:
        moment = as_local(now, self._tz) if now else self.now()
        pair = resolve_window_pair(range_kind, now=moment, custom_start=custom_start, custom_end=custom_end)
        return build_snapshot(records, pair, now=moment, child_id=child_id, tz=self._tz)

    def highlights(self, snapshot: MetricsSnapshot) -> Tuple[str, ...]:
        return activity_highlights(snapshot, logger=self._logger)

    # ------------------------------------------------------------------
    # Weekly insights
    # ------------------------------------------------------------------
    def weekly_snapshot(
        self,
        records: FamilyRecords,
        *,
        week_of: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> MetricsSnapshot:
        moment = as_local(now, self._tz) if now else self.now()
        pair = weekly_window_pair(week_start(week_of or moment))
        return build_snapshot(records, pair, now=moment, tz=self._tz)

    def weekly_insight(
        self,
        family_id: str,
        records: FamilyRecords,
        *,
        week_of: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> WeeklyRunResult:
        """Generate and store the family insight for the week, unless one exists.

        Weeks without any assigned task are skipped because there is nothing
        to coach on.
        """

        moment = as_local(now, self._tz) if now else self.now()
        monday = week_start(week_of or moment)
        if self._store.exists(family_id, FAMILY_SCOPE, monday):
            return self._skipped(family_id, monday, REASON_EXISTS)

        snapshot = self.weekly_snapshot(records, week_of=monday, now=moment)
        if snapshot.assigned_count == 0:
            return self._skipped(family_id, monday, REASON_NO_TASKS)

        insight = generate_weekly_insight(snapshot, children=records.children, logger=self._logger)
        stored = StoredInsight(
            family_id=family_id,
            scope=FAMILY_SCOPE,
            week_start=monday,
            insight=insight,
            source_metrics=self._api.source_metrics(snapshot),
            created_by=SYSTEM_AUTHOR,
        )
        try:
            self._store.add(stored)
        except DuplicateInsightError:
            return self._skipped(family_id, monday, REASON_EXISTS)
        self._logger.info(
            "insight_generated",
            family=family_id,
            week_start=monday.isoformat(),
            rule=insight.rule,
            impact_score=insight.impact_score,
        )
        return WeeklyRunResult(family_id=family_id, week_start=monday, status=STATUS_GENERATED, stored=stored)

    def run_weekly(
        self,
        families: Mapping[str, FamilyRecords],
        *,
        now: Optional[datetime] = None,
    ) -> Tuple[WeeklyRunResult, ...]:
        """Run :meth:`weekly_insight` for every family; one failure does not stop the rest."""

        moment = as_local(now, self._tz) if now else self.now()
        results = []
        for family_id in sorted(families):
            try:
                result = self.weekly_insight(family_id, families[family_id], now=moment)
            except Exception as exc:
                self._logger.error("insight_failed", family=family_id, error=str(exc))
                result = WeeklyRunResult(
                    family_id=family_id,
                    week_start=week_start(moment),
                    status=STATUS_FAILED,
                    reason=str(exc),
                )
            results.append(result)
        return tuple(results)

    def get_insight(self, family_id: str, week: date, *, scope: str = FAMILY_SCOPE) -> StoredInsight:
        return self._store.get(family_id, scope, week_start(week))

    def _skipped(self, family_id: str, monday: date, reason: str) -> WeeklyRunResult:
        self._logger.info("insight_skipped", family=family_id, week_start=monday.isoformat(), reason=reason)
        return WeeklyRunResult(family_id=family_id, week_start=monday, status=STATUS_SKIPPED, reason=reason)


__all__ = [
    "InsightStore",
    "KidCoach",
    "REASON_EXISTS",
    "REASON_NO_TASKS",
    "STATUS_FAILED",
    "STATUS_GENERATED",
    "STATUS_SKIPPED",
    "WeeklyRunResult",
]
