"""FastAPI frontend for the KidCoach analytics and weekly coaching engine.

Parents read the analytics dashboard for a family and the stored weekly
insight. The weekly job posts to ``/coaching/weekly`` once per week and
creates at most one system insight per family.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any, AsyncIterator, Callable, Dict, Optional

from fastapi import Depends, FastAPI, Query
from fastapi.responses import JSONResponse
from sqlmodel import Session

from ..api import ApiExporter
from ..config import FAMILY_SCOPE
from ..exceptions import InsightNotFoundError
from ..models import LeaderboardMetric, RangeKind
from ..ops import get_logger
from ..sanitizer import safe_insight
from ..scoring import leaderboard, needs_attention
from ..service import KidCoach, WeeklyRunResult
from ..windows import week_start
from .persistence import SqlInsightStore, create_db_and_tables, get_session, list_family_ids, load_family_records

# ---------------------------------------------------------------------------
# FastAPI application setup
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    create_db_and_tables()
    yield


app = FastAPI(title="Kid Coach", lifespan=lifespan)

_time_provider: Callable[[], datetime] = datetime.now
_exporter = ApiExporter()


def now_local() -> datetime:
    """Return naive local time using the configured provider."""

    return _time_provider()


def set_time_provider(provider: Callable[[], datetime]) -> None:
    global _time_provider
    _time_provider = provider


def _coach(session: Session) -> KidCoach:
    return KidCoach(store=SqlInsightStore(session), logger=get_logger(), clock=now_local)


def _result_payload(result: WeeklyRunResult) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "family_id": result.family_id,
        "week_start": result.week_start.isoformat(),
        "status": result.status,
        "reason": result.reason,
        "success": result.success,
    }
    if result.stored is not None:
        payload["insight"] = _exporter.insight_payload(result.stored.insight, stored=result.stored)
    return payload


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------
@app.get("/families/{family_id}/analytics")
def family_analytics(
    family_id: str,
    range_kind: RangeKind = Query(RangeKind.THIS_WEEK, alias="range"),
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    child_id: Optional[str] = Query(None),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    records = load_family_records(session, family_id)
    coach = _coach(session)
    snapshot = coach.analytics(
        records,
        range_kind=range_kind,
        custom_start=start,
        custom_end=end,
        child_id=child_id,
    )
    payload = _exporter.snapshot_payload(snapshot)
    payload["family_id"] = family_id
    payload["highlights"] = list(coach.highlights(snapshot))
    payload["leaderboard"] = {
        metric.value: [child.child_id for child in leaderboard(snapshot.children, metric)]
        for metric in LeaderboardMetric
    }
    payload["needs_attention"] = [child.child_id for child in needs_attention(snapshot.children)]
    get_logger().info(
        "snapshot_built",
        family=family_id,
        range=range_kind.value,
        child=child_id,
        assigned=snapshot.assigned_count,
    )
    return payload


# ---------------------------------------------------------------------------
# Weekly coaching
# ---------------------------------------------------------------------------
@app.post("/families/{family_id}/coaching/weekly")
def family_weekly_insight(
    family_id: str,
    week: Optional[date] = Query(None),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    records = load_family_records(session, family_id)
    result = _coach(session).weekly_insight(family_id, records, week_of=week)
    return _result_payload(result)


@app.get("/families/{family_id}/insights/{week}")
def family_insight(
    family_id: str,
    week: date,
    session: Session = Depends(get_session),
):
    try:
        stored = SqlInsightStore(session).get(family_id, FAMILY_SCOPE, week_start(week))
    except InsightNotFoundError as exc:
        return JSONResponse({"detail": str(exc)}, status_code=404)
    return _exporter.insight_payload(safe_insight(stored.insight), stored=stored)


@app.post("/coaching/weekly")
def run_weekly_coaching(session: Session = Depends(get_session)) -> Dict[str, Any]:
    families = {family_id: load_family_records(session, family_id) for family_id in list_family_ids(session)}
    moment = now_local()
    results = _coach(session).run_weekly(families, now=moment)
    return {
        "success": True,
        "week_start": week_start(moment).isoformat(),
        "families_processed": len(results),
        "results": [_result_payload(result) for result in results],
    }


__all__ = [
    "app",
    "family_analytics",
    "family_insight",
    "family_weekly_insight",
    "now_local",
    "run_weekly_coaching",
    "set_time_provider",
]
