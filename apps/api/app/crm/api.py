from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.context import get_correlation_id
from app.core.auth import AuthUser, get_current_user as get_auth_user
from app.core.context import get_request_context
from app.core.database import get_db
from app.core.rbac import ADMIN_ROLES
from app.crm.activities import activity_service
from app.crm.dropdowns import dropdown_service
from app.crm.errors import CRMError, EntityNotFoundError
from app.crm.registrations import EventRegistrationService, EventService
from app.crm.schemas import (
    ActivityCreate,
    ActivityRead,
    AdmissionCreate,
    AdmissionRead,
    AdmissionUpdate,
    ApplicationCreate,
    ApplicationRead,
    ApplicationUpdate,
    ConvertLeadRequest,
    DropdownCreate,
    DropdownRead,
    EntityStats,
    EntityType,
    EventCreate,
    EventRead,
    EventUpdate,
    LeadAssignRequest,
    LeadCreate,
    LeadRead,
    LeadStats,
    LeadUpdate,
    RegistrationCreate,
    RegistrationRead,
    RegistrationUpdate,
    StudentCreate,
    StudentRead,
    StudentUpdate,
)
from app.crm.service import (
    ActorUser,
    AdmissionService,
    ApplicationService,
    LeadService,
    StudentService,
    region_for_branch,
    user_display_name,
)

leads_router = APIRouter(prefix="/api/leads", tags=["crm.leads"])
students_router = APIRouter(prefix="/api/students", tags=["crm.students"])
applications_router = APIRouter(prefix="/api/applications", tags=["crm.applications"])
admissions_router = APIRouter(prefix="/api/admissions", tags=["crm.admissions"])
activities_router = APIRouter(prefix="/api/activities", tags=["crm.activities"])
dropdowns_router = APIRouter(prefix="/api/dropdowns", tags=["crm.dropdowns"])
events_router = APIRouter(prefix="/api/events", tags=["crm.events"])
registrations_router = APIRouter(prefix="/api/event-registrations", tags=["crm.events"])
lead_service = LeadService()
student_service = StudentService()
application_service = ApplicationService(student_service)
admission_service = AdmissionService(application_service)
event_service = EventService()
registration_service = EventRegistrationService(lead_service)


@dataclass
class ErrorEnvelope:
    code: str
    message: str
    details: Any
    correlation_id: str | None


def _request_correlation_id(request: Request) -> str | None:
    context = get_request_context(request)
    return get_correlation_id() or (context.correlation_id if context is not None else None) or None


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    correlation_id = _request_correlation_id(request)
    payload = ErrorEnvelope(
        code=code,
        message=message,
        details=details,
        correlation_id=correlation_id,
    )
    return JSONResponse(status_code=status_code, content=payload.__dict__)


def crm_error_response(request: Request, exc: CRMError) -> JSONResponse:
    return error_response(
        request,
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        details=exc.details,
    )


def http_error_response(request: Request, exc: HTTPException, code: str) -> JSONResponse:
    return error_response(
        request,
        status_code=exc.status_code,
        code=code,
        message=str(exc.detail),
        details=exc.detail,
    )


def get_current_user(
    request: Request,
    auth_user: AuthUser = Depends(get_auth_user),
    db: Session = Depends(get_db),
) -> ActorUser:
    correlation_id = _request_correlation_id(request)
    region_id = auth_user.region_id
    if region_id is None and auth_user.branch_id is not None:
        region_id = region_for_branch(db, auth_user.branch_id)
    return ActorUser(
        user_id=auth_user.sub,
        role=auth_user.role,
        branch_id=auth_user.branch_id,
        region_id=region_id,
        user_name=auth_user.name or user_display_name(db, auth_user.sub),
        correlation_id=correlation_id,
    )


def require_authenticated(user: ActorUser) -> None:
    if user.role == "guest":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")


def require_admin(user: ActorUser) -> None:
    require_authenticated(user)
    if user.role not in ADMIN_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")


@leads_router.get("", response_model=list[LeadRead])
def list_leads(
    request: Request,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[LeadRead] | JSONResponse:
    try:
        require_authenticated(user)
        return lead_service.list_leads(db, user)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_lead_list_failed")


@leads_router.post("", response_model=LeadRead, status_code=status.HTTP_201_CREATED)
def create_lead(
    request: Request,
    dto: LeadCreate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> LeadRead | JSONResponse:
    try:
        require_authenticated(user)
        return lead_service.create_lead(db, user, dto)
    except CRMError as exc:
        return crm_error_response(request, exc)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_lead_create_failed")


@leads_router.get("/search", response_model=list[LeadRead])
def search_leads(
    request: Request,
    q: str = Query(default="", max_length=200),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[LeadRead] | JSONResponse:
    try:
        require_authenticated(user)
        return lead_service.search_leads(db, user, q)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_lead_search_failed")


@leads_router.get("/stats", response_model=LeadStats)
def lead_stats(
    request: Request,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> LeadStats | JSONResponse:
    try:
        require_authenticated(user)
        return lead_service.get_lead_stats(db, user)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_lead_stats_failed")


@leads_router.get("/{lead_id}", response_model=LeadRead)
def get_lead(
    request: Request,
    lead_id: str,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> LeadRead | JSONResponse:
    try:
        require_authenticated(user)
        lead = lead_service.get_lead(db, user, lead_id)
        if lead is None:
            raise EntityNotFoundError("lead")
        return lead
    except CRMError as exc:
        return crm_error_response(request, exc)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_lead_get_failed")


@leads_router.put("/{lead_id}", response_model=LeadRead)
def update_lead(
    request: Request,
    lead_id: str,
    dto: LeadUpdate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> LeadRead | JSONResponse:
    try:
        require_authenticated(user)
        lead = lead_service.update_lead(db, user, lead_id, dto)
        if lead is None:
            raise EntityNotFoundError("lead")
        return lead
    except CRMError as exc:
        return crm_error_response(request, exc)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_lead_update_failed")


@leads_router.post("/{lead_id}/assign", response_model=LeadRead)
def assign_lead(
    request: Request,
    lead_id: str,
    dto: LeadAssignRequest,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> LeadRead | JSONResponse:
    try:
        require_authenticated(user)
        lead = lead_service.assign_lead(db, user, lead_id, dto.counselor_id)
        if lead is None:
            raise EntityNotFoundError("lead")
        return lead
    except CRMError as exc:
        return crm_error_response(request, exc)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_lead_assign_failed")


@leads_router.delete("/{lead_id}", status_code=status.HTTP_200_OK, response_model=None)
def delete_lead(
    request: Request,
    lead_id: str,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> Any:
    try:
        require_authenticated(user)
        if not lead_service.delete_lead(db, user, lead_id):
            raise EntityNotFoundError("lead")
        return {"status": "deleted"}
    except CRMError as exc:
        return crm_error_response(request, exc)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_lead_delete_failed")


@students_router.get("", response_model=list[StudentRead])
def list_students(
    request: Request,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[StudentRead] | JSONResponse:
    try:
        require_authenticated(user)
        return student_service.list_students(db, user)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_student_list_failed")


@students_router.post("", response_model=StudentRead, status_code=status.HTTP_201_CREATED)
def create_student(
    request: Request,
    dto: StudentCreate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> StudentRead | JSONResponse:
    try:
        require_authenticated(user)
        return student_service.create_student(db, user, dto)
    except CRMError as exc:
        return crm_error_response(request, exc)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_student_create_failed")


@students_router.get("/search", response_model=list[StudentRead])
def search_students(
    request: Request,
    q: str = Query(default="", max_length=200),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[StudentRead] | JSONResponse:
    try:
        require_authenticated(user)
        return student_service.search_students(db, user, q)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_student_search_failed")


@students_router.get("/stats", response_model=EntityStats)
def student_stats(
    request: Request,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> EntityStats | JSONResponse:
    try:
        require_authenticated(user)
        return student_service.get_student_stats(db, user)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_student_stats_failed")


@students_router.get("/by-lead/{lead_id}", response_model=StudentRead)
def get_student_by_lead(
    request: Request,
    lead_id: str,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> StudentRead | JSONResponse:
    try:
        require_authenticated(user)
        student = student_service.get_student_by_lead_id(db, user, lead_id)
        if student is None:
            raise EntityNotFoundError("student")
        return student
    except CRMError as exc:
        return crm_error_response(request, exc)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_student_get_failed")


@students_router.post("/convert-from-lead", response_model=StudentRead, status_code=status.HTTP_201_CREATED)
def convert_from_lead(
    request: Request,
    dto: ConvertLeadRequest,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> StudentRead | JSONResponse:
    try:
        require_authenticated(user)
        return student_service.convert_from_lead(db, user, dto.lead_id, dto.student)
    except CRMError as exc:
        return crm_error_response(request, exc)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_lead_convert_failed")


@students_router.get("/{student_id}", response_model=StudentRead)
def get_student(
    request: Request,
    student_id: str,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> StudentRead | JSONResponse:
    try:
        require_authenticated(user)
        student = student_service.get_student(db, user, student_id)
        if student is None:
            raise EntityNotFoundError("student")
        return student
    except CRMError as exc:
        return crm_error_response(request, exc)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_student_get_failed")


@students_router.put("/{student_id}", response_model=StudentRead)
def update_student(
    request: Request,
    student_id: str,
    dto: StudentUpdate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> StudentRead | JSONResponse:
    try:
        require_authenticated(user)
        student = student_service.update_student(db, user, student_id, dto)
        if student is None:
            raise EntityNotFoundError("student")
        return student
    except CRMError as exc:
        return crm_error_response(request, exc)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_student_update_failed")


@students_router.delete("/{student_id}", status_code=status.HTTP_200_OK, response_model=None)
def delete_student(
    request: Request,
    student_id: str,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> Any:
    try:
        require_authenticated(user)
        if not student_service.delete_student(db, user, student_id):
            raise EntityNotFoundError("student")
        return {"status": "deleted"}
    except CRMError as exc:
        return crm_error_response(request, exc)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_student_delete_failed")


@applications_router.get("", response_model=list[ApplicationRead])
def list_applications(
    request: Request,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[ApplicationRead] | JSONResponse:
    try:
        require_authenticated(user)
        return application_service.list_applications(db, user)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_application_list_failed")


@applications_router.post("", response_model=ApplicationRead, status_code=status.HTTP_201_CREATED)
def create_application(
    request: Request,
    dto: ApplicationCreate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> ApplicationRead | JSONResponse:
    try:
        require_authenticated(user)
        return application_service.create_application(db, user, dto)
    except CRMError as exc:
        return crm_error_response(request, exc)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_application_create_failed")


@applications_router.get("/search", response_model=list[ApplicationRead])
def search_applications(
    request: Request,
    q: str = Query(default="", max_length=200),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[ApplicationRead] | JSONResponse:
    try:
        require_authenticated(user)
        return application_service.search_applications(db, user, q)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_application_search_failed")


@applications_router.get("/stats", response_model=EntityStats)
def application_stats(
    request: Request,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> EntityStats | JSONResponse:
    try:
        require_authenticated(user)
        return application_service.get_application_stats(db, user)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_application_stats_failed")


@applications_router.get("/student/{student_id}", response_model=list[ApplicationRead])
def list_applications_by_student(
    request: Request,
    student_id: str,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[ApplicationRead] | JSONResponse:
    try:
        require_authenticated(user)
        return application_service.list_applications_by_student(db, user, student_id)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_application_list_failed")


@applications_router.get("/{application_id}", response_model=ApplicationRead)
def get_application(
    request: Request,
    application_id: str,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> ApplicationRead | JSONResponse:
    try:
        require_authenticated(user)
        application = application_service.get_application(db, user, application_id)
        if application is None:
            raise EntityNotFoundError("application")
        return application
    except CRMError as exc:
        return crm_error_response(request, exc)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_application_get_failed")


@applications_router.put("/{application_id}", response_model=ApplicationRead)
def update_application(
    request: Request,
    application_id: str,
    dto: ApplicationUpdate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> ApplicationRead | JSONResponse:
    try:
        require_authenticated(user)
        application = application_service.update_application(db, user, application_id, dto)
        if application is None:
            raise EntityNotFoundError("application")
        return application
    except CRMError as exc:
        return crm_error_response(request, exc)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_application_update_failed")


@applications_router.delete("/{application_id}", status_code=status.HTTP_200_OK, response_model=None)
def delete_application(
    request: Request,
    application_id: str,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> Any:
    try:
        require_authenticated(user)
        if not application_service.delete_application(db, user, application_id):
            raise EntityNotFoundError("application")
        return {"status": "deleted"}
    except CRMError as exc:
        return crm_error_response(request, exc)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_application_delete_failed")


@admissions_router.get("", response_model=list[AdmissionRead])
def list_admissions(
    request: Request,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[AdmissionRead] | JSONResponse:
    try:
        require_authenticated(user)
        return admission_service.list_admissions(db, user)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_admission_list_failed")


@admissions_router.post("", response_model=AdmissionRead, status_code=status.HTTP_201_CREATED)
def create_admission(
    request: Request,
    dto: AdmissionCreate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> AdmissionRead | JSONResponse:
    try:
        require_authenticated(user)
        return admission_service.create_admission(db, user, dto)
    except CRMError as exc:
        return crm_error_response(request, exc)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_admission_create_failed")


@admissions_router.get("/search", response_model=list[AdmissionRead])
def search_admissions(
    request: Request,
    q: str = Query(default="", max_length=200),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[AdmissionRead] | JSONResponse:
    try:
        require_authenticated(user)
        return admission_service.search_admissions(db, user, q)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_admission_search_failed")


@admissions_router.get("/stats", response_model=EntityStats)
def admission_stats(
    request: Request,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> EntityStats | JSONResponse:
    try:
        require_authenticated(user)
        return admission_service.get_admission_stats(db, user)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_admission_stats_failed")


@admissions_router.get("/student/{student_id}", response_model=list[AdmissionRead])
def list_admissions_by_student(
    request: Request,
    student_id: str,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[AdmissionRead] | JSONResponse:
    try:
        require_authenticated(user)
        return admission_service.list_admissions_by_student(db, user, student_id)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_admission_list_failed")


@admissions_router.get("/{admission_id}", response_model=AdmissionRead)
def get_admission(
    request: Request,
    admission_id: str,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> AdmissionRead | JSONResponse:
    try:
        require_authenticated(user)
        admission = admission_service.get_admission(db, user, admission_id)
        if admission is None:
            raise EntityNotFoundError("admission")
        return admission
    except CRMError as exc:
        return crm_error_response(request, exc)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_admission_get_failed")


@admissions_router.put("/{admission_id}", response_model=AdmissionRead)
def update_admission(
    request: Request,
    admission_id: str,
    dto: AdmissionUpdate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> AdmissionRead | JSONResponse:
    try:
        require_authenticated(user)
        admission = admission_service.update_admission(db, user, admission_id, dto)
        if admission is None:
            raise EntityNotFoundError("admission")
        return admission
    except CRMError as exc:
        return crm_error_response(request, exc)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_admission_update_failed")


@admissions_router.delete("/{admission_id}", status_code=status.HTTP_200_OK, response_model=None)
def delete_admission(
    request: Request,
    admission_id: str,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> Any:
    try:
        require_authenticated(user)
        if not admission_service.delete_admission(db, user, admission_id):
            raise EntityNotFoundError("admission")
        return {"status": "deleted"}
    except CRMError as exc:
        return crm_error_response(request, exc)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_admission_delete_failed")


_ENTITY_SERVICES = {
    "lead": lead_service,
    "student": student_service,
    "application": application_service,
    "admission": admission_service,
}


@activities_router.get("/{entity_type}/{entity_id}", response_model=list[ActivityRead])
def list_activities(
    request: Request,
    entity_type: EntityType,
    entity_id: str,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[ActivityRead] | JSONResponse:
    try:
        require_authenticated(user)
        # A timeline outlives its entity, so only hide it when the entity exists outside the caller's scope.
        entity_service = _ENTITY_SERVICES[entity_type]
        if entity_service.repository.find_by_id(db, entity_id) is not None and entity_service.find_visible(db, user, entity_id) is None:
            raise EntityNotFoundError(entity_type)
        return activity_service.get_activities(db, entity_type, entity_id)
    except CRMError as exc:
        return crm_error_response(request, exc)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_activity_list_failed")


@activities_router.post("", response_model=ActivityRead, status_code=status.HTTP_201_CREATED)
def create_activity(
    request: Request,
    dto: ActivityCreate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> ActivityRead | JSONResponse:
    try:
        require_authenticated(user)
        if _ENTITY_SERVICES[dto.entity_type].find_visible(db, user, dto.entity_id) is None:
            raise EntityNotFoundError(dto.entity_type)
        return activity_service.create_activity(db, dto, user.actor)
    except CRMError as exc:
        return crm_error_response(request, exc)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_activity_create_failed")


@dropdowns_router.get("/{module_name}", response_model=dict[str, list[DropdownRead]])
def list_dropdowns(
    request: Request,
    module_name: str,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> dict[str, list[DropdownRead]] | JSONResponse:
    try:
        require_authenticated(user)
        return dropdown_service.grouped_by_field(db, module_name)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_dropdown_list_failed")


@dropdowns_router.post("", response_model=DropdownRead, status_code=status.HTTP_201_CREATED)
def create_dropdown(
    request: Request,
    dto: DropdownCreate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> DropdownRead | JSONResponse:
    try:
        require_admin(user)
        return dropdown_service.create_dropdown(db, dto)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_dropdown_create_failed")


@dropdowns_router.delete("/{dropdown_id}", status_code=status.HTTP_200_OK, response_model=None)
def delete_dropdown(
    request: Request,
    dropdown_id: str,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> Any:
    try:
        require_admin(user)
        if not dropdown_service.delete_dropdown(db, dropdown_id):
            raise EntityNotFoundError("dropdown")
        return {"status": "deleted"}
    except CRMError as exc:
        return crm_error_response(request, exc)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_dropdown_delete_failed")


@events_router.get("", response_model=list[EventRead])
def list_events(
    request: Request,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[EventRead] | JSONResponse:
    try:
        require_authenticated(user)
        return event_service.list_events(db)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_event_list_failed")


@events_router.post("", response_model=EventRead, status_code=status.HTTP_201_CREATED)
def create_event(
    request: Request,
    dto: EventCreate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> EventRead | JSONResponse:
    try:
        require_authenticated(user)
        return event_service.create_event(db, dto)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_event_create_failed")


@events_router.get("/{event_id}", response_model=EventRead)
def get_event(
    request: Request,
    event_id: str,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> EventRead | JSONResponse:
    try:
        require_authenticated(user)
        event = event_service.get_event(db, event_id)
        if event is None:
            raise EntityNotFoundError("event")
        return event
    except CRMError as exc:
        return crm_error_response(request, exc)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_event_get_failed")


@events_router.put("/{event_id}", response_model=EventRead)
def update_event(
    request: Request,
    event_id: str,
    dto: EventUpdate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> EventRead | JSONResponse:
    try:
        require_authenticated(user)
        event = event_service.update_event(db, event_id, dto)
        if event is None:
            raise EntityNotFoundError("event")
        return event
    except CRMError as exc:
        return crm_error_response(request, exc)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_event_update_failed")


@events_router.delete("/{event_id}", status_code=status.HTTP_200_OK, response_model=None)
def delete_event(
    request: Request,
    event_id: str,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> Any:
    try:
        require_authenticated(user)
        if not event_service.delete_event(db, event_id):
            raise EntityNotFoundError("event")
        return {"status": "deleted"}
    except CRMError as exc:
        return crm_error_response(request, exc)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_event_delete_failed")


@registrations_router.get("", response_model=list[RegistrationRead])
def list_registrations(
    request: Request,
    event_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[RegistrationRead] | JSONResponse:
    try:
        require_authenticated(user)
        return registration_service.list_registrations(db, event_id)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_registration_list_failed")


@registrations_router.post("", response_model=RegistrationRead, status_code=status.HTTP_201_CREATED)
def create_registration(
    request: Request,
    dto: RegistrationCreate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> RegistrationRead | JSONResponse:
    try:
        require_authenticated(user)
        return registration_service.create_registration(db, dto)
    except CRMError as exc:
        return crm_error_response(request, exc)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_registration_create_failed")


@registrations_router.get("/event/{event_id}", response_model=list[RegistrationRead])
def list_registrations_by_event(
    request: Request,
    event_id: str,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> list[RegistrationRead] | JSONResponse:
    try:
        require_authenticated(user)
        return registration_service.list_registrations(db, event_id)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_registration_list_failed")


@registrations_router.get("/{registration_id}", response_model=RegistrationRead)
def get_registration(
    request: Request,
    registration_id: str,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> RegistrationRead | JSONResponse:
    try:
        require_authenticated(user)
        registration = registration_service.get_registration(db, registration_id)
        if registration is None:
            raise EntityNotFoundError("registration")
        return registration
    except CRMError as exc:
        return crm_error_response(request, exc)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_registration_get_failed")


@registrations_router.put("/{registration_id}", response_model=RegistrationRead)
def update_registration(
    request: Request,
    registration_id: str,
    dto: RegistrationUpdate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> RegistrationRead | JSONResponse:
    try:
        require_authenticated(user)
        registration = registration_service.update_registration(db, registration_id, dto)
        if registration is None:
            raise EntityNotFoundError("registration")
        return registration
    except CRMError as exc:
        return crm_error_response(request, exc)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_registration_update_failed")


@registrations_router.delete("/{registration_id}", status_code=status.HTTP_200_OK, response_model=None)
def delete_registration(
    request: Request,
    registration_id: str,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> Any:
    try:
        require_authenticated(user)
        if not registration_service.delete_registration(db, registration_id):
            raise EntityNotFoundError("registration")
        return {"status": "deleted"}
    except CRMError as exc:
        return crm_error_response(request, exc)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_registration_delete_failed")


@registrations_router.post("/{registration_id}/convert", response_model=LeadRead, status_code=status.HTTP_201_CREATED)
def convert_registration(
    request: Request,
    registration_id: str,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> LeadRead | JSONResponse:
    try:
        require_authenticated(user)
        lead = registration_service.convert_to_lead(db, user, registration_id)
        if lead is None:
            raise EntityNotFoundError("registration")
        return lead
    except CRMError as exc:
        return crm_error_response(request, exc)
    except HTTPException as exc:
        return http_error_response(request, exc, "crm_registration_convert_failed")
