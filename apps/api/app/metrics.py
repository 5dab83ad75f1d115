from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

crm_scope_empty_total = Counter(
    "crm_scope_empty_total",
    "Scoped reads that resolved to an empty scope",
    ["resource", "role"],
)

crm_lead_conversions_total = Counter(
    "crm_lead_conversions_total",
    "Lead to student conversions by outcome",
    ["outcome"],
)

crm_activities_written_total = Counter(
    "crm_activities_written_total",
    "Activity rows written by entity and activity type",
    ["entity_type", "activity_type"],
)

crm_activities_transferred_total = Counter(
    "crm_activities_transferred_total",
    "Activity rows re-tagged to another entity",
)

crm_notifications_queued_total = Counter(
    "crm_notifications_queued_total",
    "Notifications queued by template and outcome",
    ["template_id", "outcome"],
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _sanitize_path(path: str) -> str:
    without_uuids = _UUID_RE.sub("{id}", path)
    return _INT_RE.sub("/{id}", without_uuids)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        route_path = getattr(route, "path_format", None) or getattr(route, "path", None)
        if isinstance(route_path, str) and route_path:
            return _PATH_PARAM_RE.sub("{id}", route_path)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_scope_empty(resource: str, role: str | None) -> None:
    crm_scope_empty_total.labels(resource=resource, role=role or "unknown").inc()


def observe_lead_conversion(outcome: str) -> None:
    crm_lead_conversions_total.labels(outcome=outcome).inc()


def observe_activity_written(entity_type: str, activity_type: str) -> None:
    crm_activities_written_total.labels(entity_type=entity_type, activity_type=activity_type).inc()


def observe_activities_transferred(count: int) -> None:
    if count > 0:
        crm_activities_transferred_total.inc(count)


def observe_notification_queued(template_id: str, outcome: str) -> None:
    crm_notifications_queued_total.labels(template_id=template_id, outcome=outcome).inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
