from __future__ import annotations

from collections.abc import Callable, Generator
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app import events
from app.core.database import Base, get_db
from app.crm.api import get_current_user
from app.crm.models import Branch, Lead, Notification, Region
from app.crm.service import ActorUser
from app.main import app


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
        "admin": ActorUser(user_id="admin-1", role="super_admin", user_name="Ada Admin", correlation_id="corr-lead"),
        "counselor1": ActorUser(user_id="c1", role="counselor", user_name="Cora One", correlation_id="corr-lead"),
        "counselor2": ActorUser(user_id="c2", role="counsellor", user_name="Cai Two", correlation_id="corr-lead"),
        "branch_manager_unassigned": ActorUser(user_id="bm-0", role="branch_manager", correlation_id="corr-lead"),
        "branch_manager": ActorUser(user_id="bm-1", role="branch_manager", branch_id="b1", correlation_id="corr-lead"),
        "guest": ActorUser(user_id="anonymous", role="guest"),
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


def _lead_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "name": "Priya Sharma",
        "email": "priya@example.com",
        "phone": "+91 98765 43210",
        "city": "Pune",
        "source": "website",
    }
    payload.update(overrides)
    return payload


def _create_lead(test_client: TestClient, **overrides: Any) -> dict[str, Any]:
    response = test_client.post("/api/leads", json=_lead_payload(**overrides))
    assert response.status_code == 201, response.text
    return response.json()


def _timeline(test_client: TestClient, lead_id: str) -> list[dict[str, Any]]:
    response = test_client.get(f"/api/activities/lead/{lead_id}")
    assert response.status_code == 200
    return response.json()


def test_create_lead_requires_name_and_email(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client
    response = test_client.post("/api/leads", json={"phone": "+1 555 0100"})
    assert response.status_code == 422


def test_create_lead_records_creator_activity_notification_and_event(
    client: tuple[TestClient, Callable[[str], None]],
    db_session: Session,
) -> None:
    test_client, _ = client
    events.published_events.clear()

    lead = _create_lead(test_client)
    assert lead["status"] == "new"
    assert lead["created_by"] == "admin-1"
    assert lead["is_converted"] is False
    assert lead["is_lost"] is False

    timeline = _timeline(test_client, lead["id"])
    assert [item["activity_type"] for item in timeline] == ["created"]
    assert timeline[0]["user_id"] == "admin-1"
    assert timeline[0]["user_name"] == "Ada Admin"

    notifications = db_session.scalars(select(Notification).where(Notification.entity_id == lead["id"])).all()
    assert len(notifications) == 1
    assert notifications[0].template_id == "nxtcrm_lead_creation"
    assert notifications[0].status == "pending"
    assert notifications[0].variables == {"lead_name": "Priya Sharma"}

    created = [item for item in events.published_events if item["event_type"] == "crm.lead.created"]
    assert created
    assert created[-1]["payload"]["lead_id"] == lead["id"]


def test_create_lead_fills_region_from_branch(
    client: tuple[TestClient, Callable[[str], None]],
    db_session: Session,
) -> None:
    test_client, _ = client
    db_session.add(Region(id="r-west", name="West"))
    db_session.add(Branch(id="b-pune", name="Pune", region_id="r-west"))
    db_session.commit()

    lead = _create_lead(test_client, branch_id="b-pune")
    assert lead["region_id"] == "r-west"


def test_create_lead_accepts_legacy_counsellor_spelling(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client
    lead = _create_lead(test_client, counsellor_id="c1")
    assert lead["counselor_id"] == "c1"


def test_duplicate_email_rejected_case_insensitively(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client
    _create_lead(test_client)

    response = test_client.post(
        "/api/leads",
        json=_lead_payload(email="  PRIYA@Example.com ", phone="+44 20 7946 0000"),
    )
    assert response.status_code == 409
    body = response.json()
    assert body["code"] == "DUPLICATE"
    assert body["details"] == {"email": True, "phone": False}


def test_duplicate_phone_rejected(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client
    _create_lead(test_client)

    response = test_client.post("/api/leads", json=_lead_payload(email="other@example.com"))
    assert response.status_code == 409
    assert response.json()["details"] == {"email": False, "phone": True}


def test_duplicate_check_is_symmetric_between_create_and_update(
    client: tuple[TestClient, Callable[[str], None]],
) -> None:
    test_client, _ = client
    first = _create_lead(test_client)
    second = _create_lead(test_client, name="Second", email="second@example.com", phone="+1 555 0199")

    response = test_client.put(f"/api/leads/{second['id']}", json={"email": first["email"]})
    assert response.status_code == 409
    assert response.json()["details"] == {"email": True, "phone": False}

    response = test_client.put(f"/api/leads/{second['id']}", json={"phone": first["phone"]})
    assert response.status_code == 409
    assert response.json()["details"] == {"email": False, "phone": True}


def test_update_with_own_contact_details_is_not_a_duplicate(
    client: tuple[TestClient, Callable[[str], None]],
) -> None:
    test_client, _ = client
    lead = _create_lead(test_client)

    response = test_client.put(
        f"/api/leads/{lead['id']}",
        json={"email": lead["email"], "phone": lead["phone"], "notes": "called back"},
    )
    assert response.status_code == 200
    assert response.json()["notes"] == "called back"


def test_email_equal_to_phone_rejected(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client
    response = test_client.post(
        "/api/leads",
        json=_lead_payload(email="15551234567", phone="+1 (555) 123-4567"),
    )
    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "EMAIL_PHONE_SAME"
    assert body["message"] == "Email and phone number cannot be the same"


def test_email_equal_to_phone_rejected_on_update(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client
    lead = _create_lead(test_client, phone="+1 (555) 123-4567")

    response = test_client.put(f"/api/leads/{lead['id']}", json={"email": "+15551234567"})
    assert response.status_code == 400
    assert response.json()["code"] == "EMAIL_PHONE_SAME"


def test_untracked_field_update_writes_no_activity(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client
    lead = _create_lead(test_client)

    response = test_client.put(f"/api/leads/{lead['id']}", json={"city": "Mumbai", "notes": "prefers email"})
    assert response.status_code == 200
    assert response.json()["city"] == "Mumbai"
    assert [item["activity_type"] for item in _timeline(test_client, lead["id"])] == ["created"]


def test_status_change_writes_single_status_activity(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client
    lead = _create_lead(test_client)

    response = test_client.put(f"/api/leads/{lead['id']}", json={"status": "contacted"})
    assert response.status_code == 200

    timeline = _timeline(test_client, lead["id"])
    status_changes = [item for item in timeline if item["activity_type"] == "status_changed"]
    assert len(status_changes) == 1
    assert status_changes[0]["field_name"] == "status"
    assert status_changes[0]["old_value"] == "new"
    assert status_changes[0]["new_value"] == "contacted"
    assert status_changes[0]["description"] == 'Status changed from "new" to "contacted"'

    # Same value again is not a change.
    test_client.put(f"/api/leads/{lead['id']}", json={"status": "contacted"})
    assert len([item for item in _timeline(test_client, lead["id"]) if item["activity_type"] == "status_changed"]) == 1


@pytest.mark.parametrize("field_name", ["status", "is_lost", "name"])
def test_clearing_required_lead_column_is_rejected(
    client: tuple[TestClient, Callable[[str], None]],
    field_name: str,
) -> None:
    test_client, _ = client
    lead = _create_lead(test_client)

    response = test_client.put(f"/api/leads/{lead['id']}", json={field_name: None})
    assert response.status_code == 422

    current = test_client.get(f"/api/leads/{lead['id']}").json()
    assert current["status"] == "new"
    assert current["is_lost"] is False
    assert current["name"] == "Priya Sharma"
    assert [item["activity_type"] for item in _timeline(test_client, lead["id"])] == ["created"]


def test_clearing_optional_lead_column_is_allowed(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client
    lead = _create_lead(test_client)

    response = test_client.put(f"/api/leads/{lead['id']}", json={"city": None, "lost_reason": None})
    assert response.status_code == 200
    assert response.json()["city"] is None


def test_assign_lead_logs_assignment(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client
    lead = _create_lead(test_client)

    response = test_client.post(f"/api/leads/{lead['id']}/assign", json={"counsellor_id": "c2"})
    assert response.status_code == 200
    assert response.json()["counselor_id"] == "c2"

    assigned = [item for item in _timeline(test_client, lead["id"]) if item["activity_type"] == "assigned"]
    assert len(assigned) == 1
    assert assigned[0]["field_name"] == "counselor_id"
    assert assigned[0]["new_value"] == "c2"


def test_mark_lost_queues_notification_only_on_transition(
    client: tuple[TestClient, Callable[[str], None]],
    db_session: Session,
) -> None:
    test_client, _ = client
    lead = _create_lead(test_client)

    response = test_client.put(f"/api/leads/{lead['id']}", json={"is_lost": "true", "lost_reason": "budget"})
    assert response.status_code == 200
    assert response.json()["is_lost"] is True

    response = test_client.put(f"/api/leads/{lead['id']}", json={"is_lost": 1, "lost_reason": "went elsewhere"})
    assert response.status_code == 200

    types = [item["activity_type"] for item in _timeline(test_client, lead["id"])]
    assert types.count("marked_lost") == 1
    assert types.count("lost_reason_updated") == 2

    lost_notifications = db_session.scalars(
        select(Notification).where(Notification.template_id == "nxtcrm_lead_lost")
    ).all()
    assert len(lost_notifications) == 1
    assert lost_notifications[0].variables == {"lead_name": "Priya Sharma", "lost_reason": "budget"}

    response = test_client.put(f"/api/leads/{lead['id']}", json={"is_lost": False})
    assert response.status_code == 200
    assert "unmarked_lost" in [item["activity_type"] for item in _timeline(test_client, lead["id"])]


def test_counselor_only_sees_own_leads(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, set_actor = client
    mine = _create_lead(test_client, counselor_id="c1")
    theirs = _create_lead(test_client, name="Other", email="other@example.com", phone="+1 555 0111", counselor_id="c2")

    set_actor("counselor1")
    listed = test_client.get("/api/leads")
    assert listed.status_code == 200
    assert [row["id"] for row in listed.json()] == [mine["id"]]

    hidden = test_client.get(f"/api/leads/{theirs['id']}")
    assert hidden.status_code == 404
    assert hidden.json()["code"] == "NOT_FOUND"

    blocked = test_client.put(f"/api/leads/{theirs['id']}", json={"status": "contacted"})
    assert blocked.status_code == 404

    set_actor("admin")
    assert len(test_client.get("/api/leads").json()) == 2


def test_admin_visible_set_contains_every_scoped_set(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, set_actor = client
    _create_lead(test_client, counselor_id="c1", branch_id="b1")
    _create_lead(test_client, name="B", email="b@example.com", phone="+1 555 0112", counselor_id="c2", branch_id="b1")
    _create_lead(test_client, name="C", email="c@example.com", phone="+1 555 0113", counselor_id="c2", branch_id="b2")

    admin_ids = {row["id"] for row in test_client.get("/api/leads").json()}
    for actor in ("counselor1", "counselor2", "branch_manager", "branch_manager_unassigned"):
        set_actor(actor)
        scoped_ids = {row["id"] for row in test_client.get("/api/leads").json()}
        assert scoped_ids <= admin_ids

    set_actor("branch_manager")
    assert len(test_client.get("/api/leads").json()) == 2


def test_branch_manager_without_branch_sees_nothing(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, set_actor = client
    _create_lead(test_client, branch_id="b1")

    set_actor("branch_manager_unassigned")
    assert test_client.get("/api/leads").json() == []
    assert test_client.get("/api/leads/search", params={"q": "Priya"}).json() == []
    stats = test_client.get("/api/leads/stats").json()
    assert stats == {"total": 0, "by_status": {}, "lost": 0, "converted": 0}


def test_search_matches_name_email_and_country(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client
    _create_lead(test_client, country=["canada"])
    _create_lead(test_client, name="Rahul", email="rahul@example.com", phone="+1 555 0114", country=["germany"])

    assert [row["name"] for row in test_client.get("/api/leads/search", params={"q": "priya"}).json()] == ["Priya Sharma"]
    assert [row["name"] for row in test_client.get("/api/leads/search", params={"q": "germ"}).json()] == ["Rahul"]
    assert test_client.get("/api/leads/search", params={"q": "   "}).json() == []


def test_lead_stats_count_status_and_lost(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client
    first = _create_lead(test_client)
    _create_lead(test_client, name="B", email="b@example.com", phone="+1 555 0115")
    test_client.put(f"/api/leads/{first['id']}", json={"status": "contacted", "is_lost": True})

    stats = test_client.get("/api/leads/stats").json()
    assert stats["total"] == 2
    assert stats["by_status"] == {"new": 1, "contacted": 1}
    assert stats["lost"] == 1
    assert stats["converted"] == 0


def test_list_fields_accept_json_strings(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client
    lead = _create_lead(test_client, country='["us","ca"]', program="mba")
    assert lead["country"] == ["us", "ca"]
    assert lead["program"] == ["mba"]


def test_delete_lead_keeps_timeline(
    client: tuple[TestClient, Callable[[str], None]],
    db_session: Session,
) -> None:
    test_client, _ = client
    lead = _create_lead(test_client)

    response = test_client.delete(f"/api/leads/{lead['id']}")
    assert response.status_code == 200
    assert response.json() == {"status": "deleted"}
    assert test_client.get(f"/api/leads/{lead['id']}").status_code == 404
    assert db_session.scalar(select(func.count()).select_from(Lead)) == 0

    types = [item["activity_type"] for item in _timeline(test_client, lead["id"])]
    assert "deleted" in types

    assert test_client.delete(f"/api/leads/{lead['id']}").status_code == 404


def test_guest_is_rejected_with_error_envelope(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, set_actor = client
    set_actor("guest")

    response = test_client.get("/api/leads", headers={"X-Correlation-Id": "guest-corr"})
    assert response.status_code == 401
    body = response.json()
    assert body["code"] == "crm_lead_list_failed"
    assert body["correlation_id"] == "guest-corr"
