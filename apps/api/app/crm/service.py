from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from fastapi import HTTPException, status
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from sqlalchemy import String, case, func, or_, select, type_coerce, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app import events
from app.crm.activities import (
    LEAD_TRACKED_FIELDS,
    SYSTEM_ACTOR,
    Actor,
    UserActor,
    activity_service,
    lead_change_entries,
    snapshot,
)
from app.crm.codes import generate_admission_code, generate_application_code
from app.crm.dropdowns import dropdown_service
from app.crm.errors import (
    DuplicateLeadError,
    EmailPhoneSameError,
    EntityNotFoundError,
    LeadConvertedError,
    ParentNotFoundError,
)
from app.crm.models import Branch, Lead, Student, User
from app.crm.notifications import notification_service
from app.crm.repositories import (
    AdmissionRepository,
    ApplicationRepository,
    BaseRepository,
    LeadRepository,
    StudentRepository,
)
from app.crm.schemas import (
    AdmissionCreate,
    AdmissionRead,
    AdmissionUpdate,
    ApplicationCreate,
    ApplicationRead,
    ApplicationUpdate,
    EntityStats,
    LeadCreate,
    LeadRead,
    LeadStats,
    LeadUpdate,
    StudentConvertPayload,
    StudentCreate,
    StudentRead,
    StudentUpdate,
)
from app.crm.scope import AccessScope, resolve_scope
from app.metrics import observe_lead_conversion, observe_scope_empty


logger = logging.getLogger("app.crm.service")
tracer = trace.get_tracer("app.crm.service")

ANONYMOUS_USER_ID = "anonymous"

LEAD_LABEL_FIELDS = ("source", "status", "country", "program", "type", "study_level", "study_plan", "elt")
STUDENT_LABEL_FIELDS = ("status", "target_country", "english_proficiency", "nationality")

# Fields a converted student inherits from its lead when the payload leaves them out.
CONVERSION_CARRIED_FIELDS = (
    "branch_id",
    "region_id",
    "counselor_id",
    "admission_officer_id",
    "name",
    "email",
    "phone",
    "city",
    "partner",
    "sub_partner",
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ActorUser:
    user_id: str
    role: str
    branch_id: str | None = None
    region_id: str | None = None
    user_name: str | None = None
    correlation_id: str | None = None

    @property
    def scope(self) -> AccessScope:
        return resolve_scope(self.user_id, self.role, self.region_id, self.branch_id)

    @property
    def actor(self) -> Actor:
        if not self.user_id or self.user_id == ANONYMOUS_USER_ID:
            return SYSTEM_ACTOR
        return UserActor(user_id=self.user_id, name=self.user_name)


def email_matches_phone(email: str | None, phone: str | None) -> bool:
    """True when the email is really the phone number typed into the wrong field."""

    normalized_email = (email or "").strip().lower()
    normalized_phone = (phone or "").strip().lower()
    if not normalized_email or not normalized_phone:
        return False
    candidates = {normalized_phone}
    digits = re.sub(r"\D", "", normalized_phone)
    if digits:
        candidates.update({digits, f"+{digits}"})
    return normalized_email in candidates


def region_for_branch(session: Session, branch_id: str | None) -> str | None:
    if not branch_id:
        return None
    branch = session.get(Branch, branch_id)
    return branch.region_id if branch is not None else None


def user_display_name(session: Session, user_id: str | None) -> str | None:
    if not user_id or user_id == ANONYMOUS_USER_ID:
        return None
    user = session.get(User, user_id)
    return user.display_name if user is not None else None


def publish_event(event_type: str, actor_user: ActorUser, payload: dict[str, Any]) -> None:
    envelope = events.build_envelope(event_type, actor_user.user_id, payload)
    envelope["correlation_id"] = actor_user.correlation_id
    events.publish(envelope)


class ScopedEntityService:
    """Shared scoped reads for one entity; every list/get/search/stats goes through ``_scope``."""

    entity_type = ""
    repository: BaseRepository
    status_field = "status"
    search_fields: tuple[str, ...] = ()

    def _scope(self, actor_user: ActorUser) -> AccessScope:
        scope = actor_user.scope
        if scope.is_empty:
            observe_scope_empty(self.entity_type, actor_user.role)
            logger.info("scope_empty", extra={"entity_type": self.entity_type, "role": actor_user.role})
        return scope

    def find_visible(self, session: Session, actor_user: ActorUser, entity_id: str) -> Any | None:
        row = self.repository.find_by_id(session, entity_id)
        if row is None:
            return None
        if not self.repository.is_visible(session, entity_id, self._scope(actor_user)):
            return None
        return row

    def _list(self, session: Session, actor_user: ActorUser) -> list[Any]:
        scope = self._scope(actor_user)
        if scope.is_empty:
            return []
        return self.repository.find_all(session, scope)

    def _search(self, session: Session, actor_user: ActorUser, query: str) -> list[Any]:
        scope = self._scope(actor_user)
        term = (query or "").strip()
        if scope.is_empty or not term:
            return []
        model = self.repository.model
        pattern = f"%{term}%"
        # StringList columns are matched on their stored JSON text.
        conditions = [type_coerce(getattr(model, name), String).ilike(pattern) for name in self.search_fields]
        stmt = self.repository.listing_select(scope).where(or_(*conditions)).order_by(model.created_at.desc())
        return list(session.scalars(stmt).all())

    def _status_counts(self, session: Session, scope: AccessScope) -> dict[str, int]:
        model = self.repository.model
        status_column = getattr(model, self.status_field)
        stmt = self.repository.apply_scope_query(
            select(status_column, func.count(model.id)).select_from(model),
            scope,
        ).group_by(status_column)
        return {str(row[0]): int(row[1]) for row in session.execute(stmt).all()}

    def _stats(self, session: Session, actor_user: ActorUser) -> EntityStats:
        scope = self._scope(actor_user)
        if scope.is_empty:
            return EntityStats()
        by_status = self._status_counts(session, scope)
        return EntityStats(total=sum(by_status.values()), by_status=by_status)

    def _update_with_diff(self, session: Session, actor_user: ActorUser, row: Any, payload: dict[str, Any]) -> Any:
        before = snapshot(row, payload.keys())
        self.repository.update(session, row, payload)
        session.commit()
        after = snapshot(row, payload.keys())
        activity_service.log_field_changes(session, self.entity_type, row.id, before, after, actor=actor_user.actor)
        return row

    def _delete(self, session: Session, actor_user: ActorUser, row: Any, label: str) -> None:
        entity_id = row.id
        self.repository.delete(session, row)
        session.commit()
        activity_service.log_activity(
            session,
            self.entity_type,
            entity_id,
            "deleted",
            f"{self.entity_type.capitalize()} deleted",
            f"{self.entity_type.capitalize()} {label} was deleted from the system",
            actor=actor_user.actor,
        )
        logger.info("entity_deleted", extra={"entity_type": self.entity_type, "entity_id": entity_id})


class LeadService(ScopedEntityService):
    entity_type = "lead"
    repository = LeadRepository()
    search_fields = ("name", "email", "program", "country")

    def __init__(self) -> None:
        self.students = StudentRepository()

    def list_leads(self, session: Session, actor_user: ActorUser) -> list[LeadRead]:
        return self._to_reads(session, self._list(session, actor_user))

    def get_lead(self, session: Session, actor_user: ActorUser, lead_id: str) -> LeadRead | None:
        lead = self.find_visible(session, actor_user, lead_id)
        return self._to_read(session, lead) if lead is not None else None

    def search_leads(self, session: Session, actor_user: ActorUser, query: str) -> list[LeadRead]:
        return self._to_reads(session, self._search(session, actor_user, query))

    def get_lead_stats(self, session: Session, actor_user: ActorUser) -> LeadStats:
        scope = self._scope(actor_user)
        if scope.is_empty:
            return LeadStats()
        by_status = self._status_counts(session, scope)
        flag_counts = session.execute(
            self.repository.apply_scope_query(
                select(
                    func.sum(case((Lead.is_lost.is_(True), 1), else_=0)),
                    func.sum(case((Lead.is_converted.is_(True), 1), else_=0)),
                ).select_from(Lead),
                scope,
            )
        ).one()
        return LeadStats(
            total=sum(by_status.values()),
            by_status=by_status,
            lost=int(flag_counts[0] or 0),
            converted=int(flag_counts[1] or 0),
        )

    def check_duplicates(
        self,
        session: Session,
        email: str | None,
        phone: str | None,
        exclude_id: str | None = None,
    ) -> dict[str, bool]:
        return self.repository.find_duplicates(session, email, phone, exclude_id)

    def create_lead(self, session: Session, actor_user: ActorUser, dto: LeadCreate) -> LeadRead:
        payload = dto.model_dump()
        email = payload.get("email")
        phone = payload.get("phone")
        self._validate_contact(session, email, phone, check_email=email, check_phone=phone)

        if payload.get("region_id") is None:
            payload["region_id"] = region_for_branch(session, payload.get("branch_id"))
        payload["created_by"] = actor_user.user_id
        payload["updated_by"] = actor_user.user_id

        lead = self.repository.create(session, payload)
        session.commit()
        lead_id = lead.id

        activity_service.log_activity(
            session,
            self.entity_type,
            lead_id,
            "created",
            "Lead created",
            f"Lead {lead.name} was added to the system",
            actor=actor_user.actor,
        )
        notification_service.queue_lead_creation_notification(session, lead)
        publish_event("crm.lead.created", actor_user, {"lead_id": lead_id, "status": lead.status})
        logger.info("lead_created", extra={"lead_id": lead_id})
        return self._to_read(session, lead)

    def update_lead(self, session: Session, actor_user: ActorUser, lead_id: str, dto: LeadUpdate) -> LeadRead | None:
        lead = self.find_visible(session, actor_user, lead_id)
        if lead is None:
            return None

        # Guard, then contact checks, then the write: a rejected update leaves every column untouched.
        self._ensure_not_converted(session, lead)

        payload = dto.model_dump(exclude_unset=True)
        if "email" in payload or "phone" in payload:
            effective_email = payload["email"] if "email" in payload else lead.email
            effective_phone = payload["phone"] if "phone" in payload else lead.phone
            self._validate_contact(
                session,
                effective_email,
                effective_phone,
                check_email=payload.get("email"),
                check_phone=payload.get("phone"),
                exclude_id=lead.id,
            )
        if not payload:
            return self._to_read(session, lead)

        before = snapshot(lead, LEAD_TRACKED_FIELDS)
        payload["updated_by"] = actor_user.user_id
        self.repository.update(session, lead, payload)
        session.commit()
        after = snapshot(lead, LEAD_TRACKED_FIELDS)

        entries = lead_change_entries(before, after)
        for entry in entries:
            activity_service.log_entry(session, self.entity_type, lead_id, entry, actor_user.actor)
        if any(entry.activity_type == "marked_lost" for entry in entries):
            notification_service.queue_lead_lost_notification(session, lead)

        publish_event("crm.lead.updated", actor_user, {"lead_id": lead_id, "status": lead.status})
        return self._to_read(session, lead)

    def assign_lead(self, session: Session, actor_user: ActorUser, lead_id: str, counselor_id: str) -> LeadRead | None:
        return self.update_lead(session, actor_user, lead_id, LeadUpdate(counselor_id=counselor_id))

    def delete_lead(self, session: Session, actor_user: ActorUser, lead_id: str) -> bool:
        lead = self.find_visible(session, actor_user, lead_id)
        if lead is None:
            return False
        self._delete(session, actor_user, lead, lead.name)
        return True

    def is_converted(self, session: Session, lead: Lead) -> bool:
        return bool(lead.is_converted) or self.students.find_by_lead_id(session, lead.id) is not None

    def _ensure_not_converted(self, session: Session, lead: Lead) -> None:
        if self.is_converted(session, lead):
            raise LeadConvertedError(lead.id)

    def _validate_contact(
        self,
        session: Session,
        email: str | None,
        phone: str | None,
        *,
        check_email: str | None,
        check_phone: str | None,
        exclude_id: str | None = None,
    ) -> None:
        if email_matches_phone(email, phone):
            raise EmailPhoneSameError()
        duplicates = self.check_duplicates(session, check_email, check_phone, exclude_id)
        if duplicates["email"] or duplicates["phone"]:
            raise DuplicateLeadError(email=duplicates["email"], phone=duplicates["phone"])

    def _to_read(self, session: Session, lead: Lead, options: dict[str, dict[str, str]] | None = None) -> LeadRead:
        read = LeadRead.model_validate(lead)
        read.labels = dropdown_service.labels_for(session, "lead", lead, LEAD_LABEL_FIELDS, options)
        return read

    def _to_reads(self, session: Session, leads: list[Lead]) -> list[LeadRead]:
        options = dropdown_service.options_for(session, "lead") if leads else None
        return [self._to_read(session, lead, options) for lead in leads]


class StudentService(ScopedEntityService):
    entity_type = "student"
    repository = StudentRepository()
    leads = LeadRepository()
    search_fields = ("name", "email", "target_program", "target_country")

    def list_students(self, session: Session, actor_user: ActorUser) -> list[StudentRead]:
        return self._to_reads(session, self._list(session, actor_user))

    def get_student(self, session: Session, actor_user: ActorUser, student_id: str) -> StudentRead | None:
        student = self.find_visible(session, actor_user, student_id)
        return self._to_read(session, student) if student is not None else None

    def get_student_by_lead_id(self, session: Session, actor_user: ActorUser, lead_id: str) -> StudentRead | None:
        student = self.repository.find_by_lead_id(session, lead_id)
        if student is None:
            return None
        return self.get_student(session, actor_user, student.id)

    def search_students(self, session: Session, actor_user: ActorUser, query: str) -> list[StudentRead]:
        return self._to_reads(session, self._search(session, actor_user, query))

    def get_student_stats(self, session: Session, actor_user: ActorUser) -> EntityStats:
        return self._stats(session, actor_user)

    def create_student(self, session: Session, actor_user: ActorUser, dto: StudentCreate) -> StudentRead:
        payload = dto.model_dump()
        if payload.get("region_id") is None:
            payload["region_id"] = region_for_branch(session, payload.get("branch_id"))
        student = self.repository.create(session, payload)
        session.commit()
        self._log_created(session, actor_user, student)
        publish_event("crm.student.created", actor_user, {"student_id": student.id, "lead_id": student.lead_id})
        return self._to_read(session, student)

    def update_student(
        self,
        session: Session,
        actor_user: ActorUser,
        student_id: str,
        dto: StudentUpdate,
    ) -> StudentRead | None:
        student = self.find_visible(session, actor_user, student_id)
        if student is None:
            return None
        payload = dto.model_dump(exclude_unset=True)
        if payload:
            self._update_with_diff(session, actor_user, student, payload)
        return self._to_read(session, student)

    def delete_student(self, session: Session, actor_user: ActorUser, student_id: str) -> bool:
        student = self.find_visible(session, actor_user, student_id)
        if student is None:
            return False
        self._delete(session, actor_user, student, student.name)
        return True

    def convert_from_lead(
        self,
        session: Session,
        actor_user: ActorUser,
        lead_id: str,
        dto: StudentConvertPayload,
    ) -> StudentRead:
        """Turn a lead into a student and move the lead's timeline across.

        The steps commit one by one with no enclosing transaction. A crash after
        the student insert leaves the student in place with the lead unflagged
        and possibly some activities still on the lead.
        """

        with tracer.start_as_current_span("crm.lead.convert") as span:
            span.set_attribute("lead_id", lead_id)
            span.set_attribute("correlation_id", actor_user.correlation_id or "")

            lead = self.leads.find_by_id(session, lead_id)
            # Out-of-scope leads read as not found, as on GET.
            if lead is not None and not self.leads.is_visible(session, lead_id, self._scope(actor_user)):
                observe_lead_conversion("rejected")
                span.set_status(Status(StatusCode.ERROR, "lead not visible"))
                raise EntityNotFoundError("lead")
            if self.repository.find_by_lead_id(session, lead_id) is not None or (lead is not None and lead.is_converted):
                observe_lead_conversion("rejected")
                span.set_status(Status(StatusCode.ERROR, "lead already converted"))
                raise LeadConvertedError(lead_id)
            if lead is None:
                logger.warning("conversion_lead_missing", extra={"lead_id": lead_id})

            values = self._merge_conversion_payload(session, dto, lead)
            if not values.get("name"):
                observe_lead_conversion("rejected")
                raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="student name is required")
            values["lead_id"] = lead_id

            student = self.repository.create(session, values)
            session.commit()
            student_id = student.id
            span.set_attribute("student_id", student_id)
            self._log_created(session, actor_user, student)

            moved = activity_service.transfer_activities(session, "lead", lead_id, self.entity_type, student_id)
            span.set_attribute("activities_transferred", moved)
            activity_service.log_activity(
                session,
                self.entity_type,
                student_id,
                "converted",
                "Converted from lead",
                f"This record was converted from lead {lead_id}. All previous activities have been preserved.",
                actor=actor_user.actor,
            )

            self._mark_lead_converted(session, lead_id)

        observe_lead_conversion("converted")
        publish_event("crm.lead.converted", actor_user, {"lead_id": lead_id, "student_id": student_id})
        logger.info("lead_converted", extra={"lead_id": lead_id, "student_id": student_id, "activity_count": moved})
        return self._to_read(session, student)

    def _merge_conversion_payload(
        self,
        session: Session,
        dto: StudentConvertPayload,
        lead: Lead | None,
    ) -> dict[str, Any]:
        values = {key: value for key, value in dto.model_dump(exclude_unset=True).items() if value is not None}
        if lead is not None:
            for field_name in CONVERSION_CARRIED_FIELDS:
                if values.get(field_name) is None and getattr(lead, field_name) is not None:
                    values[field_name] = getattr(lead, field_name)
            if values.get("target_country") is None and lead.country is not None:
                values["target_country"] = list(lead.country)
        if values.get("region_id") is None:
            values["region_id"] = region_for_branch(session, values.get("branch_id"))
        values.setdefault("status", "active")
        return values

    def _mark_lead_converted(self, session: Session, lead_id: str) -> None:
        # Best effort: the student already exists and is not rolled back.
        try:
            session.execute(update(Lead).where(Lead.id == lead_id).values(is_converted=True, updated_at=utcnow()))
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception("lead_conversion_flag_failed", extra={"lead_id": lead_id, "error": str(exc)})

    def _log_created(self, session: Session, actor_user: ActorUser, student: Student) -> None:
        activity_service.log_activity(
            session,
            self.entity_type,
            student.id,
            "created",
            "Student created",
            f"Student {student.name} was added to the system",
            actor=actor_user.actor,
        )

    def _to_read(
        self,
        session: Session,
        student: Student,
        options: dict[str, dict[str, str]] | None = None,
    ) -> StudentRead:
        read = StudentRead.model_validate(student)
        read.labels = dropdown_service.labels_for(session, "student", student, STUDENT_LABEL_FIELDS, options)
        return read

    def _to_reads(self, session: Session, students: list[Student]) -> list[StudentRead]:
        options = dropdown_service.options_for(session, "student") if students else None
        return [self._to_read(session, student, options) for student in students]


class ApplicationService(ScopedEntityService):
    entity_type = "application"
    repository = ApplicationRepository()
    status_field = "app_status"
    search_fields = ("application_code", "university", "program", "country")

    def __init__(self, student_service: StudentService) -> None:
        self.student_service = student_service

    def list_applications(self, session: Session, actor_user: ActorUser) -> list[ApplicationRead]:
        return [ApplicationRead.model_validate(row) for row in self._list(session, actor_user)]

    def list_applications_by_student(self, session: Session, actor_user: ActorUser, student_id: str) -> list[ApplicationRead]:
        scope = self._scope(actor_user)
        if scope.is_empty:
            return []
        rows = self.repository.find_by_student(session, student_id, scope)
        return [ApplicationRead.model_validate(row) for row in rows]

    def get_application(self, session: Session, actor_user: ActorUser, application_id: str) -> ApplicationRead | None:
        application = self.find_visible(session, actor_user, application_id)
        return ApplicationRead.model_validate(application) if application is not None else None

    def search_applications(self, session: Session, actor_user: ActorUser, query: str) -> list[ApplicationRead]:
        return [ApplicationRead.model_validate(row) for row in self._search(session, actor_user, query)]

    def get_application_stats(self, session: Session, actor_user: ActorUser) -> EntityStats:
        return self._stats(session, actor_user)

    def create_application(self, session: Session, actor_user: ActorUser, dto: ApplicationCreate) -> ApplicationRead:
        student = self.student_service.find_visible(session, actor_user, dto.student_id)
        if student is None:
            raise ParentNotFoundError("student", dto.student_id)

        payload = dto.model_dump()
        payload["application_code"] = generate_application_code()
        application = self.repository.create(session, payload)
        session.commit()

        activity_service.log_activity(
            session,
            self.entity_type,
            application.id,
            "created",
            "Application created",
            f"Application to {application.university} for {application.program} was created",
            actor=actor_user.actor,
        )
        activity_service.log_activity(
            session,
            "student",
            dto.student_id,
            "application_created",
            "Application created",
            f"Application {application.application_code} to {application.university} was created",
            actor=actor_user.actor,
        )
        publish_event("crm.application.created", actor_user, {"application_id": application.id, "student_id": dto.student_id})
        return ApplicationRead.model_validate(application)

    def update_application(
        self,
        session: Session,
        actor_user: ActorUser,
        application_id: str,
        dto: ApplicationUpdate,
    ) -> ApplicationRead | None:
        application = self.find_visible(session, actor_user, application_id)
        if application is None:
            return None
        payload = dto.model_dump(exclude_unset=True)
        if payload:
            self._update_with_diff(session, actor_user, application, payload)
        return ApplicationRead.model_validate(application)

    def delete_application(self, session: Session, actor_user: ActorUser, application_id: str) -> bool:
        application = self.find_visible(session, actor_user, application_id)
        if application is None:
            return False
        self._delete(session, actor_user, application, application.application_code or application.id)
        return True


class AdmissionService(ScopedEntityService):
    entity_type = "admission"
    repository = AdmissionRepository()
    status_field = "decision"
    search_fields = ("admission_code", "university", "program")

    def __init__(self, application_service: ApplicationService) -> None:
        self.application_service = application_service

    def list_admissions(self, session: Session, actor_user: ActorUser) -> list[AdmissionRead]:
        return [AdmissionRead.model_validate(row) for row in self._list(session, actor_user)]

    def list_admissions_by_student(self, session: Session, actor_user: ActorUser, student_id: str) -> list[AdmissionRead]:
        scope = self._scope(actor_user)
        if scope.is_empty:
            return []
        rows = self.repository.find_by_student(session, student_id, scope)
        return [AdmissionRead.model_validate(row) for row in rows]

    def get_admission(self, session: Session, actor_user: ActorUser, admission_id: str) -> AdmissionRead | None:
        admission = self.find_visible(session, actor_user, admission_id)
        return AdmissionRead.model_validate(admission) if admission is not None else None

    def search_admissions(self, session: Session, actor_user: ActorUser, query: str) -> list[AdmissionRead]:
        return [AdmissionRead.model_validate(row) for row in self._search(session, actor_user, query)]

    def get_admission_stats(self, session: Session, actor_user: ActorUser) -> EntityStats:
        return self._stats(session, actor_user)

    def create_admission(self, session: Session, actor_user: ActorUser, dto: AdmissionCreate) -> AdmissionRead:
        application = self.application_service.find_visible(session, actor_user, dto.application_id)
        if application is None:
            raise ParentNotFoundError("application", dto.application_id)

        payload = dto.model_dump()
        payload["student_id"] = application.student_id
        payload["university"] = payload.get("university") or application.university
        payload["program"] = payload.get("program") or application.program
        payload["admission_code"] = generate_admission_code()
        admission = self.repository.create(session, payload)
        session.commit()

        activity_service.log_activity(
            session,
            self.entity_type,
            admission.id,
            "created",
            "Admission created",
            f"Admission decision {admission.decision} recorded for {admission.university}",
            actor=actor_user.actor,
        )
        activity_service.log_activity(
            session,
            "student",
            admission.student_id,
            "admission_created",
            "Admission created",
            f"Admission {admission.admission_code} for {admission.university} was recorded",
            actor=actor_user.actor,
        )
        publish_event(
            "crm.admission.created",
            actor_user,
            {"admission_id": admission.id, "application_id": admission.application_id, "student_id": admission.student_id},
        )
        return AdmissionRead.model_validate(admission)

    def update_admission(
        self,
        session: Session,
        actor_user: ActorUser,
        admission_id: str,
        dto: AdmissionUpdate,
    ) -> AdmissionRead | None:
        admission = self.find_visible(session, actor_user, admission_id)
        if admission is None:
            return None
        payload = dto.model_dump(exclude_unset=True)
        if payload:
            self._update_with_diff(session, actor_user, admission, payload)
        return AdmissionRead.model_validate(admission)

    def delete_admission(self, session: Session, actor_user: ActorUser, admission_id: str) -> bool:
        admission = self.find_visible(session, actor_user, admission_id)
        if admission is None:
            return False
        self._delete(session, actor_user, admission, admission.admission_code or admission.id)
        return True
