from __future__ import annotations

from datetime import datetime
from typing import Any, ClassVar, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from app.crm.fields import is_truthy, parse_string_list


EntityType = Literal["lead", "student", "application", "admission"]


class _StringListMixin(BaseModel):
    """Accept list fields as arrays, JSON array strings or a single bare string."""

    @field_validator("country", "program", "target_country", mode="before", check_fields=False)
    @classmethod
    def _coerce_string_list(cls, value: Any) -> list[str] | None:
        return parse_string_list(value)


class _PartialUpdate(BaseModel):
    """Partial update body; NOT NULL columns may be left out but never cleared."""

    non_nullable: ClassVar[tuple[str, ...]] = ()

    @model_validator(mode="before")
    @classmethod
    def _reject_cleared_columns(cls, data: Any) -> Any:
        if isinstance(data, dict):
            cleared = [name for name in cls.non_nullable if name in data and data[name] is None]
            if cleared:
                raise ValueError(f"{', '.join(cleared)} cannot be null")
        return data


class LeadBase(_StringListMixin):
    phone: str | None = None
    city: str | None = None
    country: list[str] | None = None
    program: list[str] | None = None
    source: str | None = None
    expectation: str | None = None
    type: str | None = None
    study_level: str | None = None
    study_plan: str | None = None
    elt: str | None = None
    notes: str | None = None
    counselor_id: str | None = Field(default=None, validation_alias=AliasChoices("counselor_id", "counsellor_id"))
    admission_officer_id: str | None = None
    branch_id: str | None = None
    region_id: str | None = None
    partner: str | None = None
    sub_partner: str | None = None


class LeadCreate(LeadBase):
    name: str = Field(min_length=1)
    email: str = Field(min_length=1)
    status: str = "new"


class LeadUpdate(LeadBase, _PartialUpdate):
    non_nullable = ("name", "status", "is_lost")

    name: str | None = Field(default=None, min_length=1)
    email: str | None = None
    status: str | None = None
    is_lost: bool | None = None
    lost_reason: str | None = None

    @field_validator("is_lost", mode="before")
    @classmethod
    def _coerce_lost_flag(cls, value: Any) -> bool | None:
        if value is None:
            return None
        return is_truthy(value)


class LeadAssignRequest(BaseModel):
    counselor_id: str = Field(min_length=1, validation_alias=AliasChoices("counselor_id", "counsellor_id"))


class LeadRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str | None
    phone: str | None
    city: str | None
    country: list[str] | None
    program: list[str] | None
    source: str | None
    status: str
    expectation: str | None
    type: str | None
    study_level: str | None
    study_plan: str | None
    elt: str | None
    lost_reason: str | None
    notes: str | None
    counselor_id: str | None
    admission_officer_id: str | None
    branch_id: str | None
    region_id: str | None
    partner: str | None
    sub_partner: str | None
    created_by: str | None
    updated_by: str | None
    is_converted: bool
    is_lost: bool
    created_at: datetime
    updated_at: datetime
    labels: dict[str, str] = Field(default_factory=dict)


class StudentBase(_StringListMixin):
    email: str | None = None
    phone: str | None = None
    city: str | None = None
    date_of_birth: str | None = None
    nationality: str | None = None
    passport_number: str | None = None
    academic_background: str | None = None
    english_proficiency: str | None = None
    target_country: list[str] | None = None
    target_program: str | None = None
    budget: str | None = None
    notes: str | None = None
    counselor_id: str | None = Field(default=None, validation_alias=AliasChoices("counselor_id", "counsellor_id"))
    admission_officer_id: str | None = None
    branch_id: str | None = None
    region_id: str | None = None
    partner: str | None = None
    sub_partner: str | None = None


class StudentCreate(StudentBase):
    name: str = Field(min_length=1)
    lead_id: str | None = None
    status: str = "active"


class StudentUpdate(StudentBase, _PartialUpdate):
    non_nullable = ("name", "status")

    name: str | None = Field(default=None, min_length=1)
    status: str | None = None


class StudentConvertPayload(StudentBase):
    name: str | None = Field(default=None, min_length=1)
    status: str | None = None


class ConvertLeadRequest(BaseModel):
    lead_id: str = Field(min_length=1)
    student: StudentConvertPayload = Field(default_factory=StudentConvertPayload)


class StudentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    lead_id: str | None
    name: str
    email: str | None
    phone: str | None
    city: str | None
    date_of_birth: str | None
    nationality: str | None
    passport_number: str | None
    academic_background: str | None
    english_proficiency: str | None
    target_country: list[str] | None
    target_program: str | None
    budget: str | None
    status: str
    notes: str | None
    counselor_id: str | None
    admission_officer_id: str | None
    branch_id: str | None
    region_id: str | None
    partner: str | None
    sub_partner: str | None
    created_at: datetime
    updated_at: datetime
    labels: dict[str, str] = Field(default_factory=dict)


class ApplicationBase(BaseModel):
    course_type: str | None = None
    case_status: str | None = None
    country: str | None = None
    channel_partner: str | None = None
    intake: str | None = None
    google_drive_link: str | None = None
    notes: str | None = None


class ApplicationCreate(ApplicationBase):
    student_id: str = Field(min_length=1)
    university: str = Field(min_length=1)
    program: str = Field(min_length=1)
    app_status: str = "open"


class ApplicationUpdate(ApplicationBase, _PartialUpdate):
    non_nullable = ("university", "program", "app_status")

    university: str | None = Field(default=None, min_length=1)
    program: str | None = Field(default=None, min_length=1)
    app_status: str | None = None


class ApplicationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    application_code: str | None
    student_id: str
    university: str
    program: str
    course_type: str | None
    app_status: str
    case_status: str | None
    country: str | None
    channel_partner: str | None
    intake: str | None
    google_drive_link: str | None
    notes: str | None
    created_at: datetime
    updated_at: datetime


AdmissionDecision = Literal["pending", "accepted", "rejected", "waitlisted", "deferred"]


class AdmissionBase(BaseModel):
    decision_date: datetime | None = None
    scholarship_amount: str | None = None
    conditions: str | None = None
    deposit_amount: str | None = None
    deposit_deadline: datetime | None = None
    tuition_fee: str | None = None
    notes: str | None = None


class AdmissionCreate(AdmissionBase):
    application_id: str = Field(min_length=1)
    university: str | None = None
    program: str | None = None
    decision: AdmissionDecision = "pending"
    deposit_required: bool = False
    visa_status: str = "pending"


class AdmissionUpdate(AdmissionBase, _PartialUpdate):
    non_nullable = ("university", "program", "decision", "deposit_required", "visa_status")

    university: str | None = Field(default=None, min_length=1)
    program: str | None = Field(default=None, min_length=1)
    decision: AdmissionDecision | None = None
    deposit_required: bool | None = None
    visa_status: str | None = None


class AdmissionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    admission_code: str | None
    application_id: str
    student_id: str
    university: str
    program: str
    decision: str
    decision_date: datetime | None
    scholarship_amount: str | None
    conditions: str | None
    deposit_required: bool
    deposit_amount: str | None
    deposit_deadline: datetime | None
    tuition_fee: str | None
    visa_status: str
    notes: str | None
    created_at: datetime
    updated_at: datetime


class EntityStats(BaseModel):
    total: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)


class LeadStats(EntityStats):
    lost: int = 0
    converted: int = 0


class ActivityCreate(BaseModel):
    entity_type: EntityType
    entity_id: str = Field(min_length=1)
    activity_type: str = Field(default="comment", min_length=1)
    title: str = Field(min_length=1)
    description: str | None = None


class ActivityRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    entity_type: str
    entity_id: str
    activity_type: str
    title: str
    description: str | None
    field_name: str | None
    old_value: str | None
    new_value: str | None
    user_id: str | None
    user_name: str | None
    created_at: datetime


class NotificationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    entity_type: str
    entity_id: str
    template_id: str
    channel: str
    status: str
    variables: dict[str, Any]
    recipient_address: str | None
    scheduled_at: datetime | None
    sent_at: datetime | None
    created_at: datetime


class DropdownCreate(BaseModel):
    module_name: str = Field(min_length=1)
    field_name: str = Field(min_length=1)
    key: str = Field(min_length=1)
    value: str = Field(min_length=1)
    sequence: int = 0


class DropdownRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    module_name: str
    field_name: str
    key: str
    value: str
    sequence: int


class EventBase(BaseModel):
    type: str | None = None
    date: str | None = None
    time: str | None = None
    venue: str | None = None


class EventCreate(EventBase):
    name: str = Field(min_length=1)


class EventUpdate(EventBase, _PartialUpdate):
    non_nullable = ("name",)

    name: str | None = Field(default=None, min_length=1)


class EventRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    type: str | None
    date: str | None
    time: str | None
    venue: str | None
    created_at: datetime
    updated_at: datetime


class RegistrationBase(BaseModel):
    number: str | None = Field(default=None, validation_alias=AliasChoices("number", "phone"))
    email: str | None = None
    city: str | None = None
    source: str | None = None


class RegistrationCreate(RegistrationBase):
    event_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    status: str = "registered"


class RegistrationUpdate(RegistrationBase, _PartialUpdate):
    non_nullable = ("name", "status")

    name: str | None = Field(default=None, min_length=1)
    status: str | None = None


class RegistrationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    event_id: str
    registration_code: str
    status: str
    name: str
    number: str | None
    email: str | None
    city: str | None
    source: str | None
    lead_id: str | None
    is_converted: bool
    created_at: datetime
    updated_at: datetime
