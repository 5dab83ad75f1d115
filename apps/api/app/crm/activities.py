from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.crm.fields import is_truthy
from app.crm.models import Activity
from app.crm.repositories import ActivityRepository
from app.crm.schemas import ActivityCreate, ActivityRead
from app.metrics import observe_activities_transferred, observe_activity_written


logger = logging.getLogger("app.crm.activities")

ENTITY_TYPES = ("lead", "student", "application", "admission")
TIMESTAMP_FIELDS = frozenset({"created_at", "updated_at"})


@dataclass(frozen=True, slots=True)
class UserActor:
    user_id: str
    name: str | None = None


@dataclass(frozen=True, slots=True)
class SystemActor:
    label: str


Actor = UserActor | SystemActor

SYSTEM_ACTOR = SystemActor(get_settings().system_actor_name)


def actor_columns(actor: Actor) -> dict[str, str | None]:
    if isinstance(actor, UserActor):
        return {"user_id": actor.user_id, "user_name": actor.name}
    return {"user_id": None, "user_name": actor.label}


def stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (list, tuple, dict)):
        return json.dumps(value)
    return str(value)


def field_label(name: str) -> str:
    """``scholarship_amount`` and ``scholarshipAmount`` both become ``Scholarship Amount``."""

    spaced = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", " ", name).replace("_", " ")
    return " ".join(word[:1].upper() + word[1:] for word in spaced.split())


def describe_change(label: str, old_value: Any, new_value: Any) -> str:
    old_text = stringify(old_value) or "empty"
    new_text = stringify(new_value) or "empty"
    return f'{label} changed from "{old_text}" to "{new_text}"'


def snapshot(row: Any, fields: Iterable[str]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for field_name in fields:
        value = getattr(row, field_name)
        values[field_name] = list(value) if isinstance(value, list) else value
    return values


def diff_fields(before: dict[str, Any], after: dict[str, Any], fields: Iterable[str]) -> list[tuple[str, Any, Any]]:
    changes: list[tuple[str, Any, Any]] = []
    for field_name in fields:
        if field_name in TIMESTAMP_FIELDS:
            continue
        old_value = before.get(field_name)
        new_value = after.get(field_name)
        if old_value != new_value:
            changes.append((field_name, old_value, new_value))
    return changes


@dataclass(frozen=True, slots=True)
class ActivityEntry:
    activity_type: str
    title: str
    description: str | None = None
    field_name: str | None = None
    old_value: str | None = None
    new_value: str | None = None


def _status_change(old_value: Any, new_value: Any) -> ActivityEntry | None:
    if old_value == new_value:
        return None
    return ActivityEntry(
        "status_changed",
        "Status changed",
        describe_change("Status", old_value, new_value),
        "status",
        stringify(old_value),
        stringify(new_value),
    )


def _counselor_change(old_value: Any, new_value: Any) -> ActivityEntry | None:
    if old_value == new_value:
        return None
    return ActivityEntry(
        "assigned",
        "Lead assigned to counselor",
        describe_change("Counselor", old_value, new_value),
        "counselor_id",
        stringify(old_value),
        stringify(new_value),
    )


def _lost_change(old_value: Any, new_value: Any) -> ActivityEntry | None:
    was_lost = is_truthy(old_value)
    now_lost = is_truthy(new_value)
    if was_lost == now_lost:
        return None
    if now_lost:
        return ActivityEntry("marked_lost", "Lead marked as lost", None, "is_lost", "false", "true")
    return ActivityEntry("unmarked_lost", "Lead unmarked as lost", None, "is_lost", "true", "false")


def _lost_reason_change(old_value: Any, new_value: Any) -> ActivityEntry | None:
    if (old_value or None) == (new_value or None):
        return None
    return ActivityEntry(
        "lost_reason_updated",
        "Lost reason updated",
        describe_change("Lost Reason", old_value, new_value),
        "lost_reason",
        stringify(old_value),
        stringify(new_value),
    )


LEAD_TRACKED_FIELDS = {
    "status": _status_change,
    "counselor_id": _counselor_change,
    "is_lost": _lost_change,
    "lost_reason": _lost_reason_change,
}


def lead_change_entries(before: dict[str, Any], after: dict[str, Any]) -> list[ActivityEntry]:
    entries: list[ActivityEntry] = []
    for field_name, build in LEAD_TRACKED_FIELDS.items():
        entry = build(before.get(field_name), after.get(field_name))
        if entry is not None:
            entries.append(entry)
    return entries


class ActivityService:
    def __init__(self, repository: ActivityRepository | None = None) -> None:
        self.repository = repository or ActivityRepository()

    def log_activity(
        self,
        session: Session,
        entity_type: str,
        entity_id: str,
        activity_type: str,
        title: str,
        description: str | None = None,
        field_name: str | None = None,
        old_value: str | None = None,
        new_value: str | None = None,
        actor: Actor = SYSTEM_ACTOR,
    ) -> Activity | None:
        """Append one timeline entry and commit it.

        The primary write has already been committed by the caller, so a failure
        here is logged and rolled back without surfacing to the request.
        """

        try:
            activity = self.repository.create(
                session,
                {
                    "entity_type": entity_type,
                    "entity_id": str(entity_id),
                    "activity_type": activity_type,
                    "title": title,
                    "description": description,
                    "field_name": field_name,
                    "old_value": old_value,
                    "new_value": new_value,
                    **actor_columns(actor),
                },
            )
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception(
                "activity_log_failed",
                extra={"entity_type": entity_type, "entity_id": str(entity_id), "error": str(exc)},
            )
            return None
        observe_activity_written(entity_type, activity_type)
        return activity

    def log_entry(self, session: Session, entity_type: str, entity_id: str, entry: ActivityEntry, actor: Actor) -> None:
        self.log_activity(
            session,
            entity_type,
            entity_id,
            entry.activity_type,
            entry.title,
            entry.description,
            entry.field_name,
            entry.old_value,
            entry.new_value,
            actor=actor,
        )

    def log_field_changes(
        self,
        session: Session,
        entity_type: str,
        entity_id: str,
        before: dict[str, Any],
        after: dict[str, Any],
        actor: Actor = SYSTEM_ACTOR,
    ) -> int:
        changes = diff_fields(before, after, after.keys())
        for field_name, old_value, new_value in changes:
            label = field_label(field_name)
            self.log_activity(
                session,
                entity_type,
                entity_id,
                "updated",
                f"{label} updated",
                describe_change(label, old_value, new_value),
                field_name,
                stringify(old_value),
                stringify(new_value),
                actor=actor,
            )
        return len(changes)

    def create_activity(self, session: Session, dto: ActivityCreate, actor: Actor) -> ActivityRead:
        activity = self.repository.create(
            session,
            {
                "entity_type": dto.entity_type,
                "entity_id": dto.entity_id,
                "activity_type": dto.activity_type,
                "title": dto.title,
                "description": dto.description,
                **actor_columns(actor),
            },
        )
        session.commit()
        observe_activity_written(dto.entity_type, dto.activity_type)
        return ActivityRead.model_validate(activity)

    def get_activities(self, session: Session, entity_type: str, entity_id: str) -> list[ActivityRead]:
        rows = self.repository.find_by_entity(session, entity_type, entity_id)
        return [ActivityRead.model_validate(row) for row in rows]

    def transfer_activities(self, session: Session, from_type: str, from_id: str, to_type: str, to_id: str) -> int:
        moved = self.repository.transfer(session, from_type, from_id, to_type, to_id)
        session.commit()
        observe_activities_transferred(moved)
        logger.info(
            "activities_transferred",
            extra={"entity_type": to_type, "entity_id": str(to_id), "activity_count": moved},
        )
        return moved


activity_service = ActivityService()
