from __future__ import annotations

import re
from collections.abc import Callable, Generator
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base, get_db
from app.crm.api import get_current_user
from app.crm.service import ActorUser
from app.main import app


ADMISSION_CODE = re.compile(r"^ADM-\d{6}-\d{3}$")
APPLICATION_CODE = re.compile(r"^APP-\d{6}-\d{3}$")


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


@pytest.fixture()
def client(db_session: Session) -> Generator[tuple[TestClient, Callable[[str], None]], None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    actors = {
        "admin": ActorUser(user_id="admin-1", role="admin", correlation_id="corr-app"),
        "counselor1": ActorUser(user_id="c1", role="counselor", correlation_id="corr-app"),
        "counselor2": ActorUser(user_id="c2", role="counselor", correlation_id="corr-app"),
        "regional_manager_unassigned": ActorUser(user_id="rm-0", role="regional_manager", correlation_id="corr-app"),
        "regional_manager": ActorUser(user_id="rm-1", role="regional_manager", region_id="r1", correlation_id="corr-app"),
    }
    state = {"current": "admin"}

    def override_get_current_user() -> ActorUser:
        return actors[state["current"]]

    def set_actor(name: str) -> None:
        state["current"] = name

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    with TestClient(app) as test_client:
        yield test_client, set_actor
    app.dependency_overrides.clear()


def _create_student(test_client: TestClient, **overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {"name": "Kiran Rao", "counselor_id": "c1", "region_id": "r1"}
    payload.update(overrides)
    response = test_client.post("/api/students", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def _create_application(test_client: TestClient, student_id: str, **overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "student_id": student_id,
        "university": "University of Toronto",
        "program": "MSc Computer Science",
        "country": "canada",
        "intake": "Fall 2027",
    }
    payload.update(overrides)
    response = test_client.post("/api/applications", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def _student_activity_types(test_client: TestClient, student_id: str) -> list[str]:
    response = test_client.get(f"/api/activities/student/{student_id}")
    assert response.status_code == 200
    return [item["activity_type"] for item in response.json()]


def test_create_application_generates_code_and_logs_on_student(
    client: tuple[TestClient, Callable[[str], None]],
) -> None:
    test_client, _ = client
    student = _create_student(test_client)
    application = _create_application(test_client, student["id"])

    assert APPLICATION_CODE.match(application["application_code"])
    assert application["app_status"] == "open"
    assert "application_created" in _student_activity_types(test_client, student["id"])

    own = test_client.get(f"/api/activities/application/{application['id']}").json()
    assert [item["activity_type"] for item in own] == ["created"]


def test_create_application_requires_visible_student(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, set_actor = client
    student = _create_student(test_client)

    missing = test_client.post(
        "/api/applications",
        json={"student_id": "ghost", "university": "UBC", "program": "MBA"},
    )
    assert missing.status_code == 422
    assert missing.json()["code"] == "PARENT_NOT_FOUND"

    set_actor("counselor2")
    hidden = test_client.post(
        "/api/applications",
        json={"student_id": student["id"], "university": "UBC", "program": "MBA"},
    )
    assert hidden.status_code == 422
    assert hidden.json()["details"] == {"entity_type": "student", "entity_id": student["id"]}


def test_applications_scoped_through_owning_student(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, set_actor = client
    mine = _create_student(test_client)
    theirs = _create_student(test_client, name="Other", counselor_id="c2", region_id="r2")
    own_application = _create_application(test_client, mine["id"])
    other_application = _create_application(test_client, theirs["id"], university="McGill")

    set_actor("counselor1")
    assert [row["id"] for row in test_client.get("/api/applications").json()] == [own_application["id"]]
    assert test_client.get(f"/api/applications/{other_application['id']}").status_code == 404
    assert test_client.get(f"/api/applications/student/{theirs['id']}").json() == []
    assert test_client.get(f"/api/activities/application/{other_application['id']}").status_code == 404

    set_actor("regional_manager")
    assert [row["id"] for row in test_client.get("/api/applications").json()] == [own_application["id"]]

    set_actor("regional_manager_unassigned")
    assert test_client.get("/api/applications").json() == []
    assert test_client.get("/api/applications/stats").json() == {"total": 0, "by_status": {}}


def test_application_update_diff_and_stats(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client
    student = _create_student(test_client)
    application = _create_application(test_client, student["id"])
    _create_application(test_client, student["id"], university="UBC")

    response = test_client.put(
        f"/api/applications/{application['id']}",
        json={"app_status": "submitted", "intake": "Fall 2027"},
    )
    assert response.status_code == 200
    assert response.json()["app_status"] == "submitted"

    history = test_client.get(f"/api/activities/application/{application['id']}").json()
    updates = [item for item in history if item["activity_type"] == "updated"]
    assert len(updates) == 1
    assert updates[0]["field_name"] == "app_status"
    assert updates[0]["title"] == "App Status updated"

    stats = test_client.get("/api/applications/stats").json()
    assert stats == {"total": 2, "by_status": {"open": 1, "submitted": 1}}


def test_clearing_required_application_and_admission_columns_is_rejected(
    client: tuple[TestClient, Callable[[str], None]],
) -> None:
    test_client, _ = client
    student = _create_student(test_client)
    application = _create_application(test_client, student["id"])
    admission = test_client.post("/api/admissions", json={"application_id": application["id"]}).json()

    for body in ({"app_status": None}, {"university": None}, {"program": None}):
        assert test_client.put(f"/api/applications/{application['id']}", json=body).status_code == 422
    for body in ({"decision": None}, {"visa_status": None}, {"deposit_required": None}):
        assert test_client.put(f"/api/admissions/{admission['id']}", json=body).status_code == 422

    assert test_client.get(f"/api/applications/{application['id']}").json()["app_status"] == "open"
    assert test_client.get(f"/api/admissions/{admission['id']}").json()["decision"] == "pending"


def test_search_applications_by_university(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client
    student = _create_student(test_client)
    _create_application(test_client, student["id"])
    _create_application(test_client, student["id"], university="Monash University")

    found = test_client.get("/api/applications/search", params={"q": "monash"}).json()
    assert [row["university"] for row in found] == ["Monash University"]


def test_create_admission_inherits_from_application(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client
    student = _create_student(test_client)
    application = _create_application(test_client, student["id"])

    response = test_client.post(
        "/api/admissions",
        json={"application_id": application["id"], "decision": "accepted", "scholarship_amount": "5000"},
    )
    assert response.status_code == 201, response.text
    admission = response.json()
    assert ADMISSION_CODE.match(admission["admission_code"])
    assert admission["student_id"] == student["id"]
    assert admission["university"] == "University of Toronto"
    assert admission["program"] == "MSc Computer Science"
    assert admission["decision"] == "accepted"
    assert admission["visa_status"] == "pending"
    assert admission["deposit_required"] is False

    assert "admission_created" in _student_activity_types(test_client, student["id"])
    listed = test_client.get(f"/api/admissions/student/{student['id']}").json()
    assert [row["id"] for row in listed] == [admission["id"]]


def test_create_admission_rejects_unknown_application_and_bad_decision(
    client: tuple[TestClient, Callable[[str], None]],
) -> None:
    test_client, _ = client
    student = _create_student(test_client)
    application = _create_application(test_client, student["id"])

    missing = test_client.post("/api/admissions", json={"application_id": "ghost"})
    assert missing.status_code == 422
    assert missing.json()["code"] == "PARENT_NOT_FOUND"

    invalid = test_client.post("/api/admissions", json={"application_id": application["id"], "decision": "maybe"})
    assert invalid.status_code == 422


def test_admissions_scoped_and_counted_by_decision(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, set_actor = client
    mine = _create_student(test_client)
    theirs = _create_student(test_client, name="Other", counselor_id="c2", region_id="r2")
    own_admission = test_client.post(
        "/api/admissions",
        json={"application_id": _create_application(test_client, mine["id"])["id"]},
    ).json()
    test_client.post(
        "/api/admissions",
        json={"application_id": _create_application(test_client, theirs["id"])["id"], "decision": "rejected"},
    )

    assert test_client.get("/api/admissions/stats").json() == {
        "total": 2,
        "by_status": {"pending": 1, "rejected": 1},
    }

    set_actor("counselor1")
    assert [row["id"] for row in test_client.get("/api/admissions").json()] == [own_admission["id"]]
    assert test_client.get("/api/admissions/stats").json() == {"total": 1, "by_status": {"pending": 1}}

    response = test_client.put(f"/api/admissions/{own_admission['id']}", json={"decision": "waitlisted"})
    assert response.status_code == 200
    assert response.json()["decision"] == "waitlisted"


def test_delete_application_and_admission(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client
    student = _create_student(test_client)
    application = _create_application(test_client, student["id"])
    admission = test_client.post("/api/admissions", json={"application_id": application["id"]}).json()

    assert test_client.delete(f"/api/admissions/{admission['id']}").json() == {"status": "deleted"}
    assert test_client.get(f"/api/admissions/{admission['id']}").status_code == 404
    assert test_client.delete(f"/api/applications/{application['id']}").json() == {"status": "deleted"}
    assert test_client.get(f"/api/applications/{application['id']}").json()["code"] == "NOT_FOUND"
