from __future__ import annotations

import os
from collections.abc import Generator

import pytest
from fastapi import Request
from fastapi.testclient import TestClient
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("OTEL_ENABLED", "true")

from app.core.config import get_settings
from app.core.database import Base, get_db
from app.crm.api import get_current_user as crm_get_current_user
from app.crm.service import ActorUser
from app.main import app
from app.otel import setup_inmemory_otel


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
def setup_env() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def span_exporter() -> InMemorySpanExporter:
    exporter = setup_inmemory_otel("api")
    exporter.clear()
    return exporter


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
        json={"name": "OTel Lead", "email": "otel@example.com"},
        headers={"X-Correlation-Id": correlation_id},
    )
    assert response.status_code == 201
    return response.json()


def test_request_span_contains_correlation_id(client: TestClient, span_exporter: InMemorySpanExporter) -> None:
    _create_lead(client, "otel-corr-1")

    spans = span_exporter.get_finished_spans()
    assert spans
    assert any(span.attributes.get("correlation_id") == "otel-corr-1" for span in spans)


def test_request_span_carries_branch_and_region_headers(
    client: TestClient,
    span_exporter: InMemorySpanExporter,
) -> None:
    response = client.get("/api/leads", headers={"X-Branch-Id": "b7", "X-Region-Id": "r3"})
    assert response.status_code == 200

    spans = span_exporter.get_finished_spans()
    assert any(
        span.attributes.get("crm.branch_id") == "b7" and span.attributes.get("crm.region_id") == "r3" for span in spans
    )


def test_conversion_span_records_lead_student_and_transfer(
    client: TestClient,
    span_exporter: InMemorySpanExporter,
) -> None:
    lead = _create_lead(client, "otel-conv-0")
    response = client.post(
        "/api/students/convert-from-lead",
        json={"lead_id": lead["id"]},
        headers={"X-Correlation-Id": "otel-conv-1"},
    )
    assert response.status_code == 201

    conversion_spans = [span for span in span_exporter.get_finished_spans() if span.name == "crm.lead.convert"]
    assert conversion_spans
    assert any(
        span.attributes.get("lead_id") == lead["id"]
        and span.attributes.get("student_id") == response.json()["id"]
        and span.attributes.get("activities_transferred") == 1
        and span.attributes.get("correlation_id") == "otel-conv-1"
        for span in conversion_spans
    )


def test_rejected_conversion_marks_span_as_error(client: TestClient, span_exporter: InMemorySpanExporter) -> None:
    lead = _create_lead(client, "otel-rej-0")
    assert client.post("/api/students/convert-from-lead", json={"lead_id": lead["id"]}).status_code == 201
    span_exporter.clear()

    again = client.post("/api/students/convert-from-lead", json={"lead_id": lead["id"]})
    assert again.status_code == 409

    conversion_spans = [span for span in span_exporter.get_finished_spans() if span.name == "crm.lead.convert"]
    assert conversion_spans
    assert conversion_spans[-1].status.status_code == StatusCode.ERROR
