"""create crm core tables

Revision ID: 202610190001
Revises:
Create Date: 2026-10-19 00:01:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610190001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "regions",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "branches",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("region_id", sa.String(length=64), sa.ForeignKey("regions.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("first_name", sa.String(length=255), nullable=True),
        sa.Column("last_name", sa.String(length=255), nullable=True),
        sa.Column("role", sa.String(length=64), nullable=False, server_default="counselor"),
        sa.Column("branch_id", sa.String(length=64), sa.ForeignKey("branches.id"), nullable=True),
        sa.Column("region_id", sa.String(length=64), sa.ForeignKey("regions.id"), nullable=True),
        sa.Column("department", sa.String(length=255), nullable=True),
        sa.Column("phone_number", sa.String(length=32), nullable=True),
        sa.Column("password_hash", sa.String(length=255), nullable=True),
        sa.Column("profile_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "leads",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("phone", sa.Text(), nullable=True),
        sa.Column("city", sa.Text(), nullable=True),
        sa.Column("country", sa.Text(), nullable=True),
        sa.Column("program", sa.Text(), nullable=True),
        sa.Column("source", sa.String(length=64), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="new"),
        sa.Column("expectation", sa.Text(), nullable=True),
        sa.Column("type", sa.String(length=64), nullable=True),
        sa.Column("study_level", sa.String(length=64), nullable=True),
        sa.Column("study_plan", sa.String(length=64), nullable=True),
        sa.Column("elt", sa.String(length=64), nullable=True),
        sa.Column("lost_reason", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("counselor_id", sa.String(length=64), nullable=True),
        sa.Column("admission_officer_id", sa.String(length=64), nullable=True),
        sa.Column("branch_id", sa.String(length=64), nullable=True),
        sa.Column("region_id", sa.String(length=64), nullable=True),
        sa.Column("partner", sa.String(length=64), nullable=True),
        sa.Column("sub_partner", sa.String(length=64), nullable=True),
        sa.Column("created_by", sa.String(length=64), nullable=True),
        sa.Column("updated_by", sa.String(length=64), nullable=True),
        sa.Column("is_converted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_lost", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_leads_scope", "leads", ["counselor_id", "branch_id", "region_id"], unique=False)
    op.create_index("ix_leads_email", "leads", ["email"], unique=False)
    op.create_index("ix_leads_phone", "leads", ["phone"], unique=False)

    op.create_table(
        "students",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("lead_id", sa.String(length=64), nullable=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("phone", sa.Text(), nullable=True),
        sa.Column("city", sa.Text(), nullable=True),
        sa.Column("date_of_birth", sa.String(length=32), nullable=True),
        sa.Column("nationality", sa.Text(), nullable=True),
        sa.Column("passport_number", sa.String(length=64), nullable=True),
        sa.Column("academic_background", sa.Text(), nullable=True),
        sa.Column("english_proficiency", sa.String(length=64), nullable=True),
        sa.Column("target_country", sa.Text(), nullable=True),
        sa.Column("target_program", sa.Text(), nullable=True),
        sa.Column("budget", sa.String(length=64), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="active"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("counselor_id", sa.String(length=64), nullable=True),
        sa.Column("admission_officer_id", sa.String(length=64), nullable=True),
        sa.Column("branch_id", sa.String(length=64), nullable=True),
        sa.Column("region_id", sa.String(length=64), nullable=True),
        sa.Column("partner", sa.String(length=64), nullable=True),
        sa.Column("sub_partner", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_students_lead_id", "students", ["lead_id"], unique=False)
    op.create_index("ix_students_scope", "students", ["counselor_id", "branch_id", "region_id"], unique=False)

    op.create_table(
        "applications",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("application_code", sa.String(length=32), nullable=True),
        sa.Column("student_id", sa.String(length=64), sa.ForeignKey("students.id", ondelete="CASCADE"), nullable=False),
        sa.Column("university", sa.Text(), nullable=False),
        sa.Column("program", sa.Text(), nullable=False),
        sa.Column("course_type", sa.String(length=64), nullable=True),
        sa.Column("app_status", sa.String(length=32), nullable=False, server_default="open"),
        sa.Column("case_status", sa.String(length=64), nullable=True),
        sa.Column("country", sa.String(length=64), nullable=True),
        sa.Column("channel_partner", sa.String(length=128), nullable=True),
        sa.Column("intake", sa.String(length=64), nullable=True),
        sa.Column("google_drive_link", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_applications_application_code", "applications", ["application_code"], unique=False)
    op.create_index("ix_applications_student_id", "applications", ["student_id"], unique=False)

    op.create_table(
        "admissions",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("admission_code", sa.String(length=32), nullable=True),
        sa.Column(
            "application_id",
            sa.String(length=64),
            sa.ForeignKey("applications.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("student_id", sa.String(length=64), sa.ForeignKey("students.id", ondelete="CASCADE"), nullable=False),
        sa.Column("university", sa.Text(), nullable=False),
        sa.Column("program", sa.Text(), nullable=False),
        sa.Column("decision", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("decision_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("scholarship_amount", sa.String(length=64), nullable=True),
        sa.Column("conditions", sa.Text(), nullable=True),
        sa.Column("deposit_required", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deposit_amount", sa.String(length=64), nullable=True),
        sa.Column("deposit_deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("tuition_fee", sa.String(length=64), nullable=True),
        sa.Column("visa_status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_admissions_admission_code", "admissions", ["admission_code"], unique=False)
    op.create_index("ix_admissions_application_id", "admissions", ["application_id"], unique=False)
    op.create_index("ix_admissions_student_id", "admissions", ["student_id"], unique=False)

    op.create_table(
        "activities",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("entity_type", sa.String(length=32), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("activity_type", sa.String(length=64), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("field_name", sa.String(length=128), nullable=True),
        sa.Column("old_value", sa.Text(), nullable=True),
        sa.Column("new_value", sa.Text(), nullable=True),
        sa.Column("user_id", sa.String(length=64), nullable=True),
        sa.Column("user_name", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_activities_entity", "activities", ["entity_type", "entity_id"], unique=False)

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("entity_type", sa.String(length=32), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("template_id", sa.String(length=128), nullable=False),
        sa.Column("channel", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("variables", sa.JSON(), nullable=False),
        sa.Column("recipient_address", sa.Text(), nullable=True),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "dropdowns",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("module_name", sa.String(length=128), nullable=False),
        sa.Column("field_name", sa.String(length=128), nullable=False),
        sa.Column("key", sa.String(length=128), nullable=False),
        sa.Column("value", sa.String(length=255), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("module_name", "field_name", "key", name="uq_dropdowns_module_field_key"),
    )


def downgrade() -> None:
    op.drop_table("dropdowns")
    op.drop_table("notifications")
    op.drop_index("ix_activities_entity", table_name="activities")
    op.drop_table("activities")
    op.drop_index("ix_admissions_student_id", table_name="admissions")
    op.drop_index("ix_admissions_application_id", table_name="admissions")
    op.drop_index("ix_admissions_admission_code", table_name="admissions")
    op.drop_table("admissions")
    op.drop_index("ix_applications_student_id", table_name="applications")
    op.drop_index("ix_applications_application_code", table_name="applications")
    op.drop_table("applications")
    op.drop_index("ix_students_scope", table_name="students")
    op.drop_index("ix_students_lead_id", table_name="students")
    op.drop_table("students")
    op.drop_index("ix_leads_phone", table_name="leads")
    op.drop_index("ix_leads_email", table_name="leads")
    op.drop_index("ix_leads_scope", table_name="leads")
    op.drop_table("leads")
    op.drop_table("users")
    op.drop_table("branches")
    op.drop_table("regions")
