from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.crm.models import Dropdown
from app.crm.schemas import DropdownCreate, DropdownRead


# Older rows store these fields under different names.
_FIELD_ALIASES = {
    "englishproficiency": ("elttest", "elt", "englishtest", "english"),
}


def normalize_name(value: str | None) -> str:
    return re.sub(r"[^a-z0-9]", "", (value or "").lower())


def normalize_module(value: str | None) -> str:
    normalized = normalize_name(value)
    return normalized[:-1] if normalized.endswith("s") else normalized


def field_candidates(field_name: str) -> set[str]:
    normalized = normalize_name(field_name)
    return {normalized, *_FIELD_ALIASES.get(normalized, ())}


class DropdownService:
    def list_by_module(self, session: Session, module_name: str) -> list[DropdownRead]:
        target = normalize_module(module_name)
        rows = [row for row in self._all(session) if normalize_module(row.module_name) == target]
        return [DropdownRead.model_validate(row) for row in rows]

    def list_by_module_and_field(self, session: Session, module_name: str, field_name: str) -> list[DropdownRead]:
        target = normalize_module(module_name)
        candidates = field_candidates(field_name)
        rows = [
            row
            for row in self._all(session)
            if normalize_module(row.module_name) == target and normalize_name(row.field_name) in candidates
        ]
        return [DropdownRead.model_validate(row) for row in rows]

    def grouped_by_field(self, session: Session, module_name: str) -> dict[str, list[DropdownRead]]:
        grouped: dict[str, list[DropdownRead]] = {}
        for item in self.list_by_module(session, module_name):
            grouped.setdefault(item.field_name, []).append(item)
        return grouped

    def create_dropdown(self, session: Session, dto: DropdownCreate) -> DropdownRead:
        dropdown = Dropdown(**dto.model_dump())
        session.add(dropdown)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="dropdown key already exists")
        return DropdownRead.model_validate(dropdown)

    def delete_dropdown(self, session: Session, dropdown_id: str) -> bool:
        dropdown = session.get(Dropdown, dropdown_id)
        if dropdown is None:
            return False
        session.delete(dropdown)
        session.commit()
        return True

    def options_for(self, session: Session, module_name: str) -> dict[str, dict[str, str]]:
        """Option values for one module keyed by normalized field name, then by option key or id."""

        target = normalize_module(module_name)
        options: dict[str, dict[str, str]] = {}
        for row in self._all(session):
            if normalize_module(row.module_name) != target:
                continue
            by_value = options.setdefault(normalize_name(row.field_name), {})
            by_value[row.key] = row.value
            by_value[row.id] = row.value
        return options

    def labels_for(
        self,
        session: Session,
        module_name: str,
        record: Any,
        fields: Iterable[str],
        options: dict[str, dict[str, str]] | None = None,
    ) -> dict[str, str]:
        """Map stored option keys on ``record`` to their display values.

        List-valued fields are joined with ``", "``. Values without a matching
        option are left out. Pass ``options`` from :meth:`options_for` to share
        one lookup across many records.
        """

        if options is None:
            options = self.options_for(session, module_name)
        labels: dict[str, str] = {}
        for field_name in fields:
            raw = getattr(record, field_name, None)
            if raw in (None, "", []):
                continue
            lookup: dict[str, str] = {}
            for candidate in sorted(field_candidates(field_name)):
                lookup.update(options.get(candidate, {}))
            values = raw if isinstance(raw, list) else [raw]
            resolved = [lookup[str(value)] for value in values if str(value) in lookup]
            if resolved:
                labels[field_name] = ", ".join(resolved)
        return labels

    @staticmethod
    def _all(session: Session) -> list[Dropdown]:
        return list(session.scalars(select(Dropdown).order_by(Dropdown.sequence.asc(), Dropdown.value.asc())).all())


dropdown_service = DropdownService()
