"""create teacher applications and audit entries

Revision ID: a7c1e9d24b10
Revises:
Create Date: 2026-10-12 09:00:00.000000

This migration:
1. Creates the enum types for application status, background check status
   and audit actor role
2. Creates the teacher_applications table
3. Creates the append-only teacher_application_audit_entries table
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "a7c1e9d24b10"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create teacher application tables."""
    application_status_enum = postgresql.ENUM(
        "pending",
        "under_review",
        "approved",
        "rejected",
        "resubmission_required",
        name="teacher_application_status",
        create_type=False,
    )
    application_status_enum.create(op.get_bind(), checkfirst=True)

    background_check_status_enum = postgresql.ENUM(
        "not_started",
        "in_progress",
        "completed",
        "failed",
        name="background_check_status",
        create_type=False,
    )
    background_check_status_enum.create(op.get_bind(), checkfirst=True)

    actor_role_enum = postgresql.ENUM(
        "applicant",
        "reviewer",
        "system",
        name="audit_actor_role",
        create_type=False,
    )
    actor_role_enum.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "teacher_applications",
        sa.Column("id", sa.Uuid(), nullable=False),
        # Applicant
        sa.Column("applicant_id", sa.Uuid(), nullable=False),
        sa.Column("applicant_email", sa.String(length=255), nullable=True),
        sa.Column("applicant_name", sa.String(length=200), nullable=True),
        # Submitted material
        sa.Column("required_documents", sa.JSON(), nullable=False),
        sa.Column("teaching_experience", sa.JSON(), nullable=False),
        sa.Column("specializations", sa.JSON(), nullable=False),
        # Status tracking
        sa.Column("status", application_status_enum, nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_by", sa.Uuid(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("review_feedback", sa.Text(), nullable=True),
        sa.Column("requested_documents", sa.JSON(), nullable=True),
        # Background check
        sa.Column(
            "background_check_status",
            background_check_status_enum,
            nullable=False,
            server_default="not_started",
        ),
        sa.Column("background_check_notes", sa.Text(), nullable=True),
        # Reviewer-only notes
        sa.Column(
            "internal_notes",
            sa.JSON(),
            nullable=True,
            comment="Reviewer-only internal notes stored as JSON array",
        ),
        sa.Column("purged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_index(
        "ix_teacher_applications_status", "teacher_applications", ["status"], unique=False
    )
    op.create_index(
        "ix_teacher_applications_applicant_id",
        "teacher_applications",
        ["applicant_id"],
        unique=False,
    )
    op.create_index(
        "ix_teacher_applications_submitted_at",
        "teacher_applications",
        ["submitted_at"],
        unique=False,
    )

    op.create_table(
        "teacher_application_audit_entries",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("application_id", sa.Uuid(), nullable=False),
        sa.Column("from_status", application_status_enum, nullable=False),
        sa.Column("to_status", application_status_enum, nullable=False),
        sa.Column("actor_id", sa.Uuid(), nullable=False),
        sa.Column("actor_role", actor_role_enum, nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["application_id"],
            ["teacher_applications.id"],
            name="fk_teacher_application_audit_entries_application_id",
            ondelete="CASCADE",
        ),
    )

    op.create_index(
        "ix_teacher_application_audit_entries_application_timestamp",
        "teacher_application_audit_entries",
        ["application_id", "timestamp"],
        unique=False,
    )


def downgrade() -> None:
    """Drop teacher application tables and enum types."""
    op.drop_index(
        "ix_teacher_application_audit_entries_application_timestamp",
        table_name="teacher_application_audit_entries",
    )
    op.drop_table("teacher_application_audit_entries")

    op.drop_index("ix_teacher_applications_submitted_at", table_name="teacher_applications")
    op.drop_index("ix_teacher_applications_applicant_id", table_name="teacher_applications")
    op.drop_index("ix_teacher_applications_status", table_name="teacher_applications")
    op.drop_table("teacher_applications")

    op.execute("DROP TYPE IF EXISTS audit_actor_role")
    op.execute("DROP TYPE IF EXISTS background_check_status")
    op.execute("DROP TYPE IF EXISTS teacher_application_status")
