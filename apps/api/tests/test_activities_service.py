from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timezone
from typing import Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base
from app.crm.activities import (
    SYSTEM_ACTOR,
    ActivityService,
    UserActor,
    describe_change,
    diff_fields,
    field_label,
    lead_change_entries,
    stringify,
)
from app.crm.schemas import ActivityCreate


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


def test_field_label_handles_snake_and_camel_case() -> None:
    assert field_label("scholarship_amount") == "Scholarship Amount"
    assert field_label("scholarshipAmount") == "Scholarship Amount"
    assert field_label("notes") == "Notes"


def test_describe_change_uses_empty_for_missing_values() -> None:
    assert describe_change("City", None, "Pune") == 'City changed from "empty" to "Pune"'
    assert describe_change("City", "Pune", "") == 'City changed from "Pune" to "empty"'


def test_stringify() -> None:
    assert stringify(None) == ""
    assert stringify(True) == "true"
    assert stringify(["us", "ca"]) == '["us", "ca"]'
    assert stringify(datetime(2026, 1, 2, tzinfo=timezone.utc)) == "2026-01-02T00:00:00+00:00"


def test_diff_fields_skips_timestamps_and_unchanged_values() -> None:
    before = {"notes": "a", "budget": "10k", "updated_at": 1}
    after = {"notes": "b", "budget": "10k", "updated_at": 2}
    assert diff_fields(before, after, after.keys()) == [("notes", "a", "b")]


def test_lead_change_entries_only_for_tracked_transitions() -> None:
    before: dict[str, Any] = {"status": "new", "counselor_id": None, "is_lost": False, "lost_reason": None}

    assert lead_change_entries(before, dict(before)) == []

    entries = lead_change_entries(before, {**before, "status": "contacted", "is_lost": "1", "lost_reason": "fees"})
    assert [entry.activity_type for entry in entries] == ["status_changed", "marked_lost", "lost_reason_updated"]

    unlost = lead_change_entries({**before, "is_lost": True}, {**before, "is_lost": 0})
    assert [entry.activity_type for entry in unlost] == ["unmarked_lost"]

    # Blank and missing reasons are the same value.
    assert lead_change_entries({**before, "lost_reason": ""}, {**before, "lost_reason": None}) == []


def test_log_activity_attributes_user_or_system(db_session: Session) -> None:
    service = ActivityService()
    by_user = service.log_activity(
        db_session, "lead", "l1", "comment", "Called", actor=UserActor(user_id="u1", name="Uma")
    )
    by_system = service.log_activity(db_session, "lead", "l1", "comment", "Auto follow-up")

    assert by_user is not None and by_system is not None
    assert (by_user.user_id, by_user.user_name) == ("u1", "Uma")
    assert (by_system.user_id, by_system.user_name) == (None, SYSTEM_ACTOR.label)
    assert SYSTEM_ACTOR.label == "Next Bot"


def test_log_activity_failure_is_swallowed(db_session: Session, monkeypatch: pytest.MonkeyPatch) -> None:
    service = ActivityService()

    def broken_create(session: Session, values: dict[str, Any]) -> None:
        raise OperationalError("INSERT INTO activities", {}, Exception("disk full"))

    monkeypatch.setattr(service.repository, "create", broken_create)
    assert service.log_activity(db_session, "lead", "l1", "comment", "Lost") is None


def test_log_field_changes_writes_one_row_per_change(db_session: Session) -> None:
    service = ActivityService()
    written = service.log_field_changes(
        db_session,
        "admission",
        "a1",
        {"decision": "pending", "tuition_fee": "1000", "notes": None},
        {"decision": "accepted", "tuition_fee": "1000", "notes": "great"},
    )
    assert written == 2

    rows = service.get_activities(db_session, "admission", "a1")
    assert {row.field_name for row in rows} == {"decision", "notes"}
    assert {row.title for row in rows} == {"Decision updated", "Notes updated"}
    assert all(row.activity_type == "updated" for row in rows)


def test_timeline_is_newest_first(db_session: Session) -> None:
    service = ActivityService()
    for title in ("first", "second", "third"):
        service.log_activity(db_session, "student", "s1", "comment", title)

    assert [row.title for row in service.get_activities(db_session, "student", "s1")] == ["third", "second", "first"]


def test_create_and_transfer_activities(db_session: Session) -> None:
    service = ActivityService()
    created = service.create_activity(
        db_session,
        ActivityCreate(entity_type="lead", entity_id="l9", title="Walk-in visit"),
        UserActor(user_id="u2"),
    )
    assert created.activity_type == "comment"

    assert service.transfer_activities(db_session, "lead", "l9", "student", "s9") == 1
    assert service.get_activities(db_session, "lead", "l9") == []
    assert [row.id for row in service.get_activities(db_session, "student", "s9")] == [created.id]
