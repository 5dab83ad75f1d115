from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.crm.activities import activity_service
from app.crm.codes import next_registration_code, registration_code_prefix
from app.crm.errors import (
    DuplicateRegistrationError,
    IncompleteRegistrationError,
    ParentNotFoundError,
    RegistrationConvertedError,
)
from app.crm.models import Event, EventRegistration
from app.crm.schemas import (
    EventCreate,
    EventRead,
    EventUpdate,
    LeadCreate,
    LeadRead,
    RegistrationCreate,
    RegistrationRead,
    RegistrationUpdate,
)
from app.crm.service import ActorUser, LeadService, publish_event


logger = logging.getLogger("app.crm.registrations")


class EventService:
    def list_events(self, session: Session) -> list[EventRead]:
        rows = session.scalars(select(Event).order_by(Event.created_at.desc())).all()
        return [EventRead.model_validate(row) for row in rows]

    def get_event(self, session: Session, event_id: str) -> EventRead | None:
        event = session.get(Event, event_id)
        return EventRead.model_validate(event) if event is not None else None

    def create_event(self, session: Session, dto: EventCreate) -> EventRead:
        event = Event(**dto.model_dump())
        session.add(event)
        session.commit()
        return EventRead.model_validate(event)

    def update_event(self, session: Session, event_id: str, dto: EventUpdate) -> EventRead | None:
        event = session.get(Event, event_id)
        if event is None:
            return None
        for field_name, value in dto.model_dump(exclude_unset=True).items():
            setattr(event, field_name, value)
        session.commit()
        return EventRead.model_validate(event)

    def delete_event(self, session: Session, event_id: str) -> bool:
        event = session.get(Event, event_id)
        if event is None:
            return False
        session.delete(event)
        session.commit()
        return True


class EventRegistrationService:
    """Event sign-ups and their hand-off into lead intake."""

    def __init__(self, lead_service: LeadService) -> None:
        self.lead_service = lead_service

    def list_registrations(self, session: Session, event_id: str | None = None) -> list[RegistrationRead]:
        stmt = select(EventRegistration)
        if event_id is not None:
            stmt = stmt.where(EventRegistration.event_id == event_id)
        rows = session.scalars(stmt.order_by(EventRegistration.created_at.desc())).all()
        return [RegistrationRead.model_validate(row) for row in rows]

    def get_registration(self, session: Session, registration_id: str) -> RegistrationRead | None:
        registration = session.get(EventRegistration, registration_id)
        return RegistrationRead.model_validate(registration) if registration is not None else None

    def create_registration(self, session: Session, dto: RegistrationCreate) -> RegistrationRead:
        if session.get(Event, dto.event_id) is None:
            raise ParentNotFoundError("event", dto.event_id)
        payload = dto.model_dump()
        self._ensure_unique(session, dto.event_id, payload.get("email"), payload.get("number"))

        prefix = registration_code_prefix()
        latest = session.scalar(
            select(func.max(EventRegistration.registration_code)).where(
                EventRegistration.registration_code.like(f"{prefix}%")
            )
        )
        payload["registration_code"] = next_registration_code(prefix, latest)
        registration = EventRegistration(**payload)
        session.add(registration)
        session.commit()
        logger.info("registration_created", extra={"entity_type": "event_registration", "entity_id": registration.id})
        return RegistrationRead.model_validate(registration)

    def update_registration(
        self,
        session: Session,
        registration_id: str,
        dto: RegistrationUpdate,
    ) -> RegistrationRead | None:
        registration = session.get(EventRegistration, registration_id)
        if registration is None:
            return None
        payload = dto.model_dump(exclude_unset=True)
        if payload.get("email") or payload.get("number"):
            self._ensure_unique(
                session,
                registration.event_id,
                payload.get("email"),
                payload.get("number"),
                exclude_id=registration.id,
            )
        for field_name, value in payload.items():
            setattr(registration, field_name, value)
        session.commit()
        return RegistrationRead.model_validate(registration)

    def delete_registration(self, session: Session, registration_id: str) -> bool:
        registration = session.get(EventRegistration, registration_id)
        if registration is None:
            return False
        session.delete(registration)
        session.commit()
        return True

    def convert_to_lead(self, session: Session, actor_user: ActorUser, registration_id: str) -> LeadRead | None:
        """Create a lead from a registration through regular lead intake.

        Duplicate and email/phone checks run exactly as for the intake form. A
        rejected conversion leaves the registration unconverted.
        """

        registration = session.get(EventRegistration, registration_id)
        if registration is None:
            return None
        if registration.is_converted or registration.lead_id:
            raise RegistrationConvertedError(registration.id, registration.lead_id)

        if not (registration.email or "").strip():
            raise IncompleteRegistrationError(registration.id, ["email"])

        lead = self.lead_service.create_lead(session, actor_user, LeadCreate(**self._lead_values(registration)))

        registration.is_converted = True
        registration.lead_id = lead.id
        session.commit()

        event = registration.event
        activity_service.log_activity(
            session,
            "lead",
            lead.id,
            "event_registration",
            "Registered at event",
            f"Lead came from registration {registration.registration_code} for {event.name if event else 'an event'}",
            actor=actor_user.actor,
        )
        publish_event(
            "crm.event_registration.converted",
            actor_user,
            {"registration_id": registration.id, "event_id": registration.event_id, "lead_id": lead.id},
        )
        logger.info(
            "registration_converted",
            extra={"entity_type": "event_registration", "entity_id": registration.id, "lead_id": lead.id},
        )
        return lead

    @staticmethod
    def _lead_values(registration: EventRegistration) -> dict[str, Any]:
        return {
            "name": registration.name,
            "email": registration.email,
            "phone": registration.number or None,
            "city": registration.city or None,
            "source": registration.source or None,
            "status": "new",
        }

    def _ensure_unique(
        self,
        session: Session,
        event_id: str,
        email: str | None,
        number: str | None,
        exclude_id: str | None = None,
    ) -> None:
        base = select(EventRegistration.id).where(EventRegistration.event_id == event_id)
        if exclude_id is not None:
            base = base.where(EventRegistration.id != exclude_id)
        email_taken = bool(email) and session.scalar(
            base.where(func.lower(func.trim(EventRegistration.email)) == email.strip().lower()).limit(1)
        ) is not None
        number_taken = bool(number) and session.scalar(
            base.where(func.trim(EventRegistration.number) == number.strip()).limit(1)
        ) is not None
        if email_taken or number_taken:
            raise DuplicateRegistrationError(email=email_taken, number=number_taken)
