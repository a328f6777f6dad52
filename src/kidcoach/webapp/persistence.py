"""Persistence and SQLModel definitions for the KidCoach web service."""
from __future__ import annotations

import json
from datetime import date, datetime
from typing import Iterator, List, Optional, Sequence

from sqlalchemy import UniqueConstraint
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Field, Session, SQLModel, create_engine, select

from ..config import SYSTEM_AUTHOR, sqlite_file_name
from ..exceptions import DuplicateInsightError, InsightNotFoundError
from ..models import (
    ChildSummary,
    FamilyRecords,
    Insight,
    Outcome as OutcomeRecord,
    OutcomeLink,
    RedemptionRecord,
    StoredInsight,
    TaskEventRecord,
    TaskRecord,
    utc_now,
)

# ---------------------------------------------------------------------------
# Database models
# ---------------------------------------------------------------------------
# Ensure fresh metadata when re-importing in test contexts.
SQLModel.metadata.clear()


class Child(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    child_id: str = Field(index=True)
    family_id: str = Field(index=True)
    name: str
    deleted_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)


class AssignedTask(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    task_id: str = Field(index=True)
    family_id: str = Field(index=True)
    child_id: str
    title: str = ""
    status: str = "active"  # active|ready_for_review|approved|rejected
    reward_minutes: int = 0
    created_at: datetime = Field(default_factory=datetime.now)


class TaskEvent(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    family_id: str = Field(index=True)
    assigned_task_id: str
    event_type: str  # completed|approved|rejected|...
    created_at: datetime = Field(default_factory=datetime.now)


class Redemption(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    family_id: str = Field(index=True)
    child_id: str
    minutes_spent: int = 0
    created_at: datetime = Field(default_factory=datetime.now)


class Outcome(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    outcome_id: str = Field(index=True)
    family_id: str = Field(index=True)
    title: str = ""
    active: bool = True


class OutcomeTask(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    outcome_id: str
    assigned_task_id: str = Field(index=True)


class CoachInsight(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("family_id", "scope", "week_start", "created_by"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    family_id: str = Field(index=True)
    scope: str = "family"
    child_id: Optional[str] = None
    week_start: date
    title: str
    observation: str
    diagnosis: str
    recommendation: str
    expected_result: str
    next_check: str
    impact_score: int
    rule: str = ""
    created_by: str = SYSTEM_AUTHOR
    source_metrics: str = "{}"
    created_at: datetime = Field(default_factory=utc_now)


def make_engine(url: Optional[str] = None) -> Engine:
    return create_engine(
        url or f"sqlite:///{sqlite_file_name()}",
        echo=False,
        connect_args={"check_same_thread": False},
    )


engine = make_engine()


def create_db_and_tables(target: Optional[Engine] = None) -> None:
    SQLModel.metadata.create_all(target or engine)


def get_session() -> Iterator[Session]:
    with Session(engine, expire_on_commit=False) as session:
        yield session


# ---------------------------------------------------------------------------
# Loading records
# ---------------------------------------------------------------------------
def list_family_ids(session: Session) -> List[str]:
    rows = session.exec(select(Child.family_id).where(Child.deleted_at.is_(None)).distinct()).all()
    return sorted(rows)


def load_family_records(session: Session, family_id: str) -> FamilyRecords:
    """Fetch one family's records, leaving out soft-deleted children and their data."""

    children = session.exec(
        select(Child)
        .where(Child.family_id == family_id, Child.deleted_at.is_(None))
        .order_by(Child.created_at, Child.id)
    ).all()
    child_ids = [child.child_id for child in children]

    tasks: Sequence[AssignedTask] = []
    redemptions: Sequence[Redemption] = []
    if child_ids:
        tasks = session.exec(
            select(AssignedTask)
            .where(AssignedTask.family_id == family_id, AssignedTask.child_id.in_(child_ids))
            .order_by(AssignedTask.created_at, AssignedTask.id)
        ).all()
        redemptions = session.exec(
            select(Redemption)
            .where(Redemption.family_id == family_id, Redemption.child_id.in_(child_ids))
            .order_by(Redemption.created_at, Redemption.id)
        ).all()
    task_ids = [task.task_id for task in tasks]

    events: Sequence[TaskEvent] = []
    links: Sequence[OutcomeTask] = []
    if task_ids:
        events = session.exec(
            select(TaskEvent)
            .where(TaskEvent.family_id == family_id, TaskEvent.assigned_task_id.in_(task_ids))
            .order_by(TaskEvent.created_at, TaskEvent.id)
        ).all()
        links = session.exec(
            select(OutcomeTask).where(OutcomeTask.assigned_task_id.in_(task_ids)).order_by(OutcomeTask.id)
        ).all()
    outcomes = session.exec(select(Outcome).where(Outcome.family_id == family_id).order_by(Outcome.id)).all()

    return FamilyRecords(
        tasks=tuple(
            TaskRecord(
                id=task.task_id,
                child_id=task.child_id,
                status=task.status,
                reward_minutes=task.reward_minutes,
                created_at=task.created_at,
            )
            for task in tasks
        ),
        events=tuple(
            TaskEventRecord(assigned_task_id=event.assigned_task_id, event_type=event.event_type, created_at=event.created_at)
            for event in events
        ),
        redemptions=tuple(
            RedemptionRecord(child_id=row.child_id, minutes_spent=row.minutes_spent, created_at=row.created_at)
            for row in redemptions
        ),
        children=tuple(ChildSummary(id=child.child_id, name=child.name) for child in children),
        outcomes=tuple(OutcomeRecord(id=row.outcome_id, title=row.title, active=row.active) for row in outcomes),
        outcome_links=tuple(OutcomeLink(outcome_id=link.outcome_id, assigned_task_id=link.assigned_task_id) for link in links),
    )


# ---------------------------------------------------------------------------
# Insight storage
# ---------------------------------------------------------------------------
class SqlInsightStore:
    """Coach insight storage backed by the ``coachinsight`` table."""

    def __init__(self, session: Session, *, created_by: str = SYSTEM_AUTHOR) -> None:
        self.session = session
        self.created_by = created_by

    def _row(self, family_id: str, scope: str, week: date) -> Optional[CoachInsight]:
        return self.session.exec(
            select(CoachInsight).where(
                CoachInsight.family_id == family_id,
                CoachInsight.scope == scope,
                CoachInsight.week_start == week,
                CoachInsight.created_by == self.created_by,
            )
        ).first()

    def exists(self, family_id: str, scope: str, week: date) -> bool:
        return self._row(family_id, scope, week) is not None

    def get(self, family_id: str, scope: str, week: date) -> StoredInsight:
        row = self._row(family_id, scope, week)
        if row is None:
            raise InsightNotFoundError(f"No {scope} insight for family '{family_id}' in week {week}.")
        return _to_stored(row)

    def add(self, stored: StoredInsight) -> StoredInsight:
        insight = stored.insight
        row = CoachInsight(
            family_id=stored.family_id,
            scope=stored.scope,
            child_id=stored.child_id,
            week_start=stored.week_start,
            title=insight.title,
            observation=insight.observation,
            diagnosis=insight.diagnosis,
            recommendation=insight.recommendation,
            expected_result=insight.expected_result,
            next_check=insight.next_check,
            impact_score=insight.impact_score,
            rule=insight.rule,
            created_by=stored.created_by,
            source_metrics=json.dumps(dict(stored.source_metrics), sort_keys=True),
            created_at=stored.created_at,
        )
        self.session.add(row)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise DuplicateInsightError(
                f"A {stored.scope} insight for family '{stored.family_id}' already exists for week {stored.week_start}."
            ) from exc
        return stored


def _to_stored(row: CoachInsight) -> StoredInsight:
    return StoredInsight(
        family_id=row.family_id,
        scope=row.scope,
        week_start=row.week_start,
        insight=Insight(
            title=row.title,
            observation=row.observation,
            diagnosis=row.diagnosis,
            recommendation=row.recommendation,
            expected_result=row.expected_result,
            next_check=row.next_check,
            impact_score=row.impact_score,
            rule=row.rule,
        ),
        source_metrics=json.loads(row.source_metrics or "{}"),
        created_by=row.created_by,
        child_id=row.child_id,
        created_at=row.created_at,
    )


__all__ = [
    "AssignedTask",
    "Child",
    "CoachInsight",
    "Outcome",
    "OutcomeTask",
    "Redemption",
    "SqlInsightStore",
    "TaskEvent",
    "create_db_and_tables",
    "engine",
    "get_session",
    "list_family_ids",
    "load_family_records",
    "make_engine",
]
