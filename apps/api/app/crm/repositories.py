from __future__ import annotations

from typing import Any

from sqlalchemy import Select, exists, false, func, select, update
from sqlalchemy.orm import Session

from app.crm.models import Activity, Admission, Application, Lead, Student
from app.crm.scope import AccessScope


_DIMENSION_COLUMNS = {
    "counselor": "counselor_id",
    "admission_officer": "admission_officer_id",
    "partner": "partner",
    "sub_partner": "sub_partner",
    "branch": "branch_id",
    "region": "region_id",
}


class BaseRepository:
    """CRUD and scoped finders over one mapped model."""

    model: Any = None
    resource = ""

    def find_by_id(self, session: Session, entity_id: str) -> Any | None:
        return session.get(self.model, entity_id)

    def find_all(self, session: Session, scope: AccessScope | None = None) -> list[Any]:
        stmt = self.listing_select(scope or AccessScope.all())
        return list(session.scalars(stmt.order_by(self.model.created_at.desc())).all())

    def find_by_counselor(self, session: Session, counselor_id: str) -> list[Any]:
        return self.find_all(session, AccessScope.match("counselor", counselor_id))

    def find_by_admission_officer(self, session: Session, officer_id: str) -> list[Any]:
        return self.find_all(session, AccessScope.match("admission_officer", officer_id))

    def find_by_partner(self, session: Session, partner_id: str) -> list[Any]:
        return self.find_all(session, AccessScope.match("partner", partner_id))

    def find_by_branch(self, session: Session, branch_id: str) -> list[Any]:
        return self.find_all(session, AccessScope.match("branch", branch_id))

    def find_by_region(self, session: Session, region_id: str) -> list[Any]:
        return self.find_all(session, AccessScope.match("region", region_id))

    def create(self, session: Session, values: dict[str, Any]) -> Any:
        row = self.model(**values)
        session.add(row)
        session.flush()
        return row

    def update(self, session: Session, row: Any, values: dict[str, Any]) -> Any:
        for field_name, value in values.items():
            setattr(row, field_name, value)
        session.flush()
        return row

    def delete(self, session: Session, row: Any) -> None:
        session.delete(row)
        session.flush()

    def is_visible(self, session: Session, entity_id: str, scope: AccessScope) -> bool:
        stmt = self.scoped_select(scope).where(self.model.id == entity_id)
        return session.scalar(select(exists(stmt))) is True

    def scoped_select(self, scope: AccessScope) -> Select[Any]:
        return self.apply_scope_query(select(self.model), scope)

    def listing_select(self, scope: AccessScope) -> Select[Any]:
        """Rows shown by list and search; single-row reads use ``scoped_select``."""
        return self.scoped_select(scope)

    def apply_scope_query(self, query: Select[Any], scope: AccessScope) -> Select[Any]:
        if scope.is_unrestricted:
            return query
        if scope.is_empty:
            return query.where(false())
        column = getattr(self.model, _DIMENSION_COLUMNS[scope.dimension])
        return query.where(column == scope.value)


class LeadRepository(BaseRepository):
    model = Lead
    resource = "lead"

    def listing_select(self, scope: AccessScope) -> Select[Any]:
        # Converted leads live on as students and drop out of list and search.
        return self.scoped_select(scope).where(~exists(select(Student.id).where(Student.lead_id == Lead.id)))

    def find_duplicates(
        self,
        session: Session,
        email: str | None,
        phone: str | None,
        exclude_id: str | None = None,
    ) -> dict[str, bool]:
        result = {"email": False, "phone": False}
        base = select(Lead.id)
        if exclude_id is not None:
            base = base.where(Lead.id != exclude_id)
        if email:
            stmt = base.where(func.lower(func.trim(Lead.email)) == email.strip().lower()).limit(1)
            result["email"] = session.scalar(stmt) is not None
        if phone:
            stmt = base.where(func.trim(Lead.phone) == phone.strip()).limit(1)
            result["phone"] = session.scalar(stmt) is not None
        return result


class StudentRepository(BaseRepository):
    model = Student
    resource = "student"

    def find_by_lead_id(self, session: Session, lead_id: str) -> Student | None:
        return session.scalar(select(Student).where(Student.lead_id == lead_id).limit(1))


class _StudentOwnedRepository(BaseRepository):
    """Applications and admissions are visible through the student that owns them."""

    students = StudentRepository()

    def apply_scope_query(self, query: Select[Any], scope: AccessScope) -> Select[Any]:
        if scope.is_unrestricted:
            return query
        if scope.is_empty:
            return query.where(false())
        scoped_students = self.students.apply_scope_query(select(Student.id), scope)
        return query.where(self.model.student_id.in_(scoped_students))

    def find_by_student(self, session: Session, student_id: str, scope: AccessScope | None = None) -> list[Any]:
        stmt = self.scoped_select(scope or AccessScope.all()).where(self.model.student_id == student_id)
        return list(session.scalars(stmt.order_by(self.model.created_at.desc())).all())


class ApplicationRepository(_StudentOwnedRepository):
    model = Application
    resource = "application"


class AdmissionRepository(_StudentOwnedRepository):
    model = Admission
    resource = "admission"

    def find_by_application(self, session: Session, application_id: str) -> list[Admission]:
        stmt = select(Admission).where(Admission.application_id == application_id)
        return list(session.scalars(stmt.order_by(Admission.created_at.desc())).all())


class ActivityRepository:
    def find_by_entity(self, session: Session, entity_type: str, entity_id: str) -> list[Activity]:
        stmt = (
            select(Activity)
            .where(Activity.entity_type == entity_type, Activity.entity_id == str(entity_id))
            .order_by(Activity.created_at.desc(), Activity.id.desc())
        )
        return list(session.scalars(stmt).all())

    def create(self, session: Session, values: dict[str, Any]) -> Activity:
        activity = Activity(**values)
        session.add(activity)
        session.flush()
        return activity

    def transfer(self, session: Session, from_type: str, from_id: str, to_type: str, to_id: str) -> int:
        result = session.execute(
            update(Activity)
            .where(Activity.entity_type == from_type, Activity.entity_id == str(from_id))
            .values(entity_type=to_type, entity_id=str(to_id))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

