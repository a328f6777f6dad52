from datetime import date, datetime, timedelta
from typing import Iterator

import pytest

pytest.importorskip("fastapi")
from fastapi.testclient import TestClient
from sqlmodel import Session, select

from kidcoach.exceptions import DuplicateInsightError
from kidcoach.models import Insight, StoredInsight
from kidcoach.sanitizer import FALLBACK_OBSERVATION
from kidcoach.webapp import application, persistence

NOW = datetime(2024, 5, 15, 10, 30)


@pytest.fixture
def engine(tmp_path, monkeypatch):
    test_engine = persistence.make_engine(f"sqlite:///{tmp_path / 'kidcoach.db'}")
    persistence.create_db_and_tables(test_engine)
    monkeypatch.setattr(persistence, "engine", test_engine)
    monkeypatch.setattr(application, "_time_provider", lambda: NOW)
    return test_engine


@pytest.fixture
def client(engine) -> Iterator[TestClient]:
    with TestClient(application.app) as test_client:
        yield test_client


def add_child(engine, family_id: str, child_id: str, name: str, *, deleted: bool = False) -> None:
    with Session(engine) as session:
        session.add(
            persistence.Child(
                child_id=child_id,
                family_id=family_id,
                name=name,
                deleted_at=datetime(2024, 5, 1) if deleted else None,
            )
        )
        session.commit()


def add_task(engine, task_id: str, child_id: str, status: str, created_at: datetime, reward: int = 0) -> None:
    with Session(engine) as session:
        session.add(
            persistence.AssignedTask(
                task_id=task_id,
                family_id="fam1",
                child_id=child_id,
                status=status,
                reward_minutes=reward,
                created_at=created_at,
            )
        )
        session.commit()


def add_event(engine, task_id: str, event_type: str, created_at: datetime) -> None:
    with Session(engine) as session:
        session.add(
            persistence.TaskEvent(family_id="fam1", assigned_task_id=task_id, event_type=event_type, created_at=created_at)
        )
        session.commit()


@pytest.fixture
def seeded(engine):
    add_child(engine, "fam1", "c1", "Ava")
    add_child(engine, "fam1", "c2", "Ben")
    add_child(engine, "fam1", "c3", "Cal", deleted=True)
    add_child(engine, "fam2", "z1", "Zoe")
    add_task(engine, "t1", "c1", "approved", datetime(2024, 5, 13, 9, 0), 30)
    add_task(engine, "t2", "c1", "approved", datetime(2024, 5, 14, 18, 0), 20)
    add_task(engine, "t3", "c2", "ready_for_review", datetime(2024, 5, 14, 19, 0), 15)
    add_task(engine, "t4", "c2", "active", datetime(2024, 5, 15, 8, 0), 10)
    add_task(engine, "t5", "c1", "approved", datetime(2024, 5, 8, 10, 0), 10)
    add_task(engine, "t6", "c3", "approved", datetime(2024, 5, 14, 9, 0), 50)
    add_event(engine, "t1", "completed", datetime(2024, 5, 13, 9, 30))
    add_event(engine, "t1", "approved", datetime(2024, 5, 13, 10, 0))
    add_event(engine, "t2", "completed", datetime(2024, 5, 14, 18, 30))
    add_event(engine, "t2", "approved", datetime(2024, 5, 14, 21, 0))
    add_event(engine, "t6", "completed", datetime(2024, 5, 14, 9, 5))
    add_event(engine, "t6", "approved", datetime(2024, 5, 14, 9, 10))
    with Session(engine) as session:
        session.add(persistence.Redemption(family_id="fam1", child_id="c1", minutes_spent=90, created_at=datetime(2024, 5, 14, 20, 0)))
        session.add(persistence.Outcome(outcome_id="o1", family_id="fam1", title="Tidy room"))
        session.add(persistence.OutcomeTask(outcome_id="o1", assigned_task_id="t1"))
        session.commit()
    return engine


def test_load_family_records_excludes_deleted_children(seeded) -> None:
    with Session(seeded) as session:
        records = persistence.load_family_records(session, "fam1")
        families = persistence.list_family_ids(session)

    assert [child.id for child in records.children] == ["c1", "c2"]
    assert {task.id for task in records.tasks} == {"t1", "t2", "t3", "t4", "t5"}
    assert all(event.assigned_task_id != "t6" for event in records.events)
    assert records.outcome_links[0].assigned_task_id == "t1"
    assert families == ["fam1", "fam2"]


def test_family_analytics_endpoint(seeded, client: TestClient) -> None:
    response = client.get("/families/fam1/analytics")

    assert response.status_code == 200
    payload = response.json()
    assert payload["family_id"] == "fam1"
    assert payload["assigned_count"] == 4
    assert payload["completed_count"] == 2
    assert payload["minutes_redeemed"] == 90
    assert payload["approvals_count"] == 2
    assert payload["missing_outcome_rate"] == pytest.approx(0.75)
    assert payload["kpis"]["total_tasks"]["prev_value"] == 1
    assert payload["window"]["current"]["start"] == "2024-05-12T00:00:00"
    assert [child["child_id"] for child in payload["children"]] == ["c1", "c2"]
    assert payload["leaderboard"]["minutes_earned"] == ["c1", "c2"]
    assert payload["needs_attention"][0] == "c2"
    assert "Most time redeemed: Ava (1h 30m)." in payload["highlights"]
    assert len(payload["daily"]) == 7


def test_family_analytics_filters(seeded, client: TestClient) -> None:
    last_week = client.get("/families/fam1/analytics", params={"range": "last_week"}).json()
    custom = client.get(
        "/families/fam1/analytics",
        params={"range": "custom", "start": "2024-05-14", "end": "2024-05-14"},
    ).json()
    ben = client.get("/families/fam1/analytics", params={"child_id": "c2"}).json()

    assert last_week["assigned_count"] == 1
    assert custom["assigned_count"] == 2
    assert custom["window"]["previous"]["start"] == "2024-05-13T00:00:00"
    assert ben["assigned_count"] == 2
    assert ben["completed_count"] == 0


def test_family_analytics_rejects_unknown_range(seeded, client: TestClient) -> None:
    response = client.get("/families/fam1/analytics", params={"range": "fortnight"})

    assert response.status_code == 422


def test_weekly_insight_endpoint_creates_one_insight(seeded, client: TestClient) -> None:
    first = client.post("/families/fam1/coaching/weekly")
    second = client.post("/families/fam1/coaching/weekly")

    assert first.status_code == 200
    created = first.json()
    assert created["status"] == "generated"
    assert created["week_start"] == "2024-05-13"
    assert created["insight"]["title"] == "Improve Task Tracking Clarity"
    assert second.json()["status"] == "skipped"
    assert second.json()["reason"] == "insight_exists"
    with Session(seeded) as session:
        rows = session.exec(select(persistence.CoachInsight)).all()
    assert len(rows) == 1
    assert rows[0].created_by == "system"


def test_stored_insight_lookup(seeded, client: TestClient) -> None:
    missing = client.get("/families/fam1/insights/2024-05-15")
    client.post("/families/fam1/coaching/weekly")
    found = client.get("/families/fam1/insights/2024-05-15")

    assert missing.status_code == 404
    assert found.status_code == 200
    assert found.json()["week_start"] == "2024-05-13"
    assert found.json()["scope"] == "family"


def test_unsafe_stored_insight_is_replaced_on_read(engine, client: TestClient) -> None:
    with Session(engine) as session:
        session.add(
            persistence.CoachInsight(
                family_id="fam1",
                week_start=date(2024, 5, 13),
                title="Check in",
                observation="No data available for child ID 123e4567-e89b-12d3-a456-426614174000",
                diagnosis="diag",
                recommendation="rec",
                expected_result="res",
                next_check="check",
                impact_score=10,
            )
        )
        session.commit()

    response = client.get("/families/fam1/insights/2024-05-13")

    assert response.json()["observation"] == FALLBACK_OBSERVATION


def test_batch_weekly_run(seeded, client: TestClient) -> None:
    response = client.post("/coaching/weekly")

    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert payload["week_start"] == "2024-05-13"
    assert payload["families_processed"] == 2
    statuses = {result["family_id"]: (result["status"], result["reason"]) for result in payload["results"]}
    assert statuses == {"fam1": ("generated", ""), "fam2": ("skipped", "no_tasks_assigned")}


def test_sql_store_rejects_duplicate_insights(engine) -> None:
    insight = Insight(
        title="Keep Up the Great Work",
        observation="obs",
        diagnosis="diag",
        recommendation="rec",
        expected_result="res",
        next_check="check",
        impact_score=40,
    )
    stored = StoredInsight(family_id="fam1", scope="family", week_start=date(2024, 5, 13), insight=insight)

    with Session(engine) as session:
        store = persistence.SqlInsightStore(session)
        store.add(stored)
        with pytest.raises(DuplicateInsightError):
            store.add(stored)
        assert store.get("fam1", "family", date(2024, 5, 13)).insight.impact_score == 40


def test_record_defaults_use_local_wall_clock() -> None:
    task = persistence.AssignedTask(task_id="t1", family_id="fam1", child_id="c1")
    child = persistence.Child(child_id="c1", family_id="fam1", name="Ava")

    assert task.created_at.tzinfo is None
    assert child.created_at.utcoffset() == timedelta(0)
