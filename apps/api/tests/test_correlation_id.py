from __future__ import annotations

import uuid
from collections.abc import Generator

import pytest
from fastapi import Request
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app import events
from app.core.config import get_settings
from app.core.database import Base, get_db
from app.crm.api import get_current_user as crm_get_current_user
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


@pytest.fixture(autouse=True)
def clear_stubs() -> Generator[None, None, None]:
    events.published_events.clear()
    get_settings.cache_clear()
    yield
    events.published_events.clear()
    get_settings.cache_clear()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_current_user(request: Request) -> ActorUser:
        return ActorUser(
            user_id="user-1",
            role="super_admin",
            correlation_id=getattr(request.state, "correlation_id", None),
        )

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[crm_get_current_user] = override_get_current_user
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _create_lead(client: TestClient, correlation_id: str) -> dict:
    response = client.post(
        "/api/leads",
        json={"name": "Corr Lead", "email": "corr@example.com", "phone": "+1 555 0142"},
        headers={"X-Correlation-Id": correlation_id},
    )
    assert response.status_code == 201
    return response.json()


def test_generated_correlation_id_returned_in_header_and_error_envelope(client: TestClient) -> None:
    response = client.get(f"/api/leads/{uuid.uuid4()}")
    assert response.status_code == 404
    header_value = response.headers.get("x-correlation-id")
    assert header_value
    body = response.json()
    assert body["correlation_id"] == header_value
    assert body["code"] == "NOT_FOUND"
    assert body["message"] == "lead not found"
    request_id = response.headers.get("x-request-id")
    assert request_id and request_id != header_value


def test_correlation_id_respected_when_provided(client: TestClient) -> None:
    response = client.get(f"/api/students/{uuid.uuid4()}", headers={"X-Correlation-Id": "abc-123"})
    assert response.status_code == 404
    assert response.headers.get("x-correlation-id") == "abc-123"
    assert response.json()["correlation_id"] == "abc-123"


def test_oversized_correlation_id_is_replaced(client: TestClient) -> None:
    response = client.get("/health", headers={"X-Correlation-Id": "x" * 500})
    assert response.status_code == 200
    replacement = response.headers.get("x-correlation-id")
    assert replacement and replacement != "x" * 500


def test_domain_error_envelope_carries_correlation_id(client: TestClient) -> None:
    _create_lead(client, "corr-dup-1")
    response = client.post(
        "/api/leads",
        json={"name": "Again", "email": "corr@example.com"},
        headers={"X-Correlation-Id": "corr-dup-2"},
    )
    assert response.status_code == 409
    assert response.json() == {
        "code": "DUPLICATE",
        "message": "A lead with this email already exists",
        "details": {"email": True, "phone": False},
        "correlation_id": "corr-dup-2",
    }


def test_event_envelope_includes_correlation_id(client: TestClient) -> None:
    lead = _create_lead(client, "corr-event-1")

    created_events = [item for item in events.published_events if item.get("event_type") == "crm.lead.created"]
    assert created_events
    assert created_events[-1].get("correlation_id") == "corr-event-1"
    assert created_events[-1]["payload"] == {"lead_id": lead["id"], "status": "new"}
    assert created_events[-1]["actor_user_id"] == "user-1"


def test_conversion_event_includes_correlation_id(client: TestClient) -> None:
    lead = _create_lead(client, "corr-convert-0")
    response = client.post(
        "/api/students/convert-from-lead",
        json={"lead_id": lead["id"]},
        headers={"X-Correlation-Id": "corr-convert-1"},
    )
    assert response.status_code == 201

    converted = [item for item in events.published_events if item.get("event_type") == "crm.lead.converted"]
    assert converted
    assert converted[-1]["correlation_id"] == "corr-convert-1"
    assert converted[-1]["payload"]["student_id"] == response.json()["id"]
