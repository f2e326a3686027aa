"""Initial merit points schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-09-14
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


activity_status_enum = sa.Enum("OPEN", "CLOSED", "FULL", "CANCELLED", name="activity_status")
approval_status_enum = sa.Enum("PENDING", "APPROVED", "REJECTED", name="approval_status")
registration_status_enum = sa.Enum("REGISTERED", "CHECKED_IN", "CANCELLED", name="registration_status")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "terms",
        sa.Column("id", sa.String(32), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_terms"),
    )
    op.create_index("ix_terms_start_date", "terms", ["start_date"])

    op.create_table(
        "criteria",
        sa.Column("id", sa.String(32), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("group_no", sa.Integer(), nullable=False),
        sa.Column("max_point", sa.Numeric(6, 2), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_criteria"),
    )

    op.create_table(
        "students",
        sa.Column("id", sa.String(32), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_students"),
    )
    op.create_index("ix_students_email", "students", ["email"])

    op.create_table(
        "activities",
        sa.Column("id", sa.String(32), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("term_id", sa.String(32), nullable=False),
        sa.Column("criterion_id", sa.String(32), nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", activity_status_enum, nullable=False),
        sa.Column("approval_status", approval_status_enum, nullable=False),
        sa.Column("max_seats", sa.Integer(), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("organizer_id", sa.String(64), nullable=True),
        sa.Column("approved_by", sa.String(64), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("start_at < end_at", name="ck_activities_window"),
        sa.CheckConstraint("max_seats IS NULL OR max_seats >= 0", name="ck_activities_max_seats_non_negative"),
        sa.ForeignKeyConstraint(["term_id"], ["terms.id"], name="fk_activities_term_id_terms"),
        sa.ForeignKeyConstraint(["criterion_id"], ["criteria.id"], name="fk_activities_criterion_id_criteria"),
        sa.PrimaryKeyConstraint("id", name="pk_activities"),
    )
    op.create_index("ix_activities_term_id", "activities", ["term_id"])
    op.create_index("ix_activities_criterion_id", "activities", ["criterion_id"])
    op.create_index("ix_activities_start_at", "activities", ["start_at"])
    op.create_index("ix_activities_status", "activities", ["status"])
    op.create_index("ix_activities_approval_status", "activities", ["approval_status"])
    op.create_index("ix_activities_organizer_id", "activities", ["organizer_id"])

    op.create_table(
        "registrations",
        sa.Column("id", sa.String(32), nullable=False),
        sa.Column("activity_id", sa.String(32), nullable=False),
        sa.Column("student_id", sa.String(32), nullable=False),
        sa.Column("status", registration_status_enum, nullable=False),
        sa.Column("seat_no", sa.Integer(), nullable=True),
        sa.Column("registered_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("checked_in_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("seat_no IS NULL OR seat_no >= 1", name="ck_registrations_seat_no_positive"),
        sa.ForeignKeyConstraint(["activity_id"], ["activities.id"], name="fk_registrations_activity_id_activities"),
        sa.PrimaryKeyConstraint("id", name="pk_registrations"),
        sa.UniqueConstraint("activity_id", "student_id", name="uq_registrations_activity_student"),
        sa.UniqueConstraint("activity_id", "seat_no", name="uq_registrations_activity_seat"),
    )
    op.create_index("ix_registrations_activity_id", "registrations", ["activity_id"])
    op.create_index("ix_registrations_student_id", "registrations", ["student_id"])
    op.create_index("ix_registrations_status", "registrations", ["status"])

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("actor_id", sa.String(64), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("details_json", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_audit_events"),
    )
    op.create_index("ix_audit_events_id", "audit_events", ["id"])
    op.create_index("ix_audit_events_actor_id", "audit_events", ["actor_id"])
    op.create_index("ix_audit_events_action", "audit_events", ["action"])


def downgrade() -> None:
    op.drop_index("ix_audit_events_action", table_name="audit_events")
    op.drop_index("ix_audit_events_actor_id", table_name="audit_events")
    op.drop_index("ix_audit_events_id", table_name="audit_events")
    op.drop_table("audit_events")

    op.drop_index("ix_registrations_status", table_name="registrations")
    op.drop_index("ix_registrations_student_id", table_name="registrations")
    op.drop_index("ix_registrations_activity_id", table_name="registrations")
    op.drop_table("registrations")

    op.drop_index("ix_activities_organizer_id", table_name="activities")
    op.drop_index("ix_activities_approval_status", table_name="activities")
    op.drop_index("ix_activities_status", table_name="activities")
    op.drop_index("ix_activities_start_at", table_name="activities")
    op.drop_index("ix_activities_criterion_id", table_name="activities")
    op.drop_index("ix_activities_term_id", table_name="activities")
    op.drop_table("activities")

    op.drop_index("ix_students_email", table_name="students")
    op.drop_table("students")
    op.drop_table("criteria")
    op.drop_index("ix_terms_start_date", table_name="terms")
    op.drop_table("terms")

    bind = op.get_bind()
    registration_status_enum.drop(bind, checkfirst=True)
    approval_status_enum.drop(bind, checkfirst=True)
    activity_status_enum.drop(bind, checkfirst=True)
