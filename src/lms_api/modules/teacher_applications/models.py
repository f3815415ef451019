"""
Teacher Applications Models

Database models for teacher onboarding applications and their append-only
audit trail.
"""

import enum
import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from lms_api.core.database import Base


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class ApplicationStatus(str, enum.Enum):
    """Status of a teacher application."""

    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    RESUBMISSION_REQUIRED = "resubmission_required"


class BackgroundCheckStatus(str, enum.Enum):
    """Informational background check state. Never gates transitions."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class ActorRole(str, enum.Enum):
    """Who performed a status transition."""

    APPLICANT = "applicant"
    REVIEWER = "reviewer"
    SYSTEM = "system"


class ReviewAction(str, enum.Enum):
    """Decisions a reviewer can take on an application."""

    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_RESUBMISSION = "request_resubmission"


class DocumentType(str, enum.Enum):
    """Required artifacts an applicant must supply."""

    RESUME = "resume"
    DEGREE = "degree"
    CERTIFICATION = "certification"
    IDENTIFICATION = "identification"


class TeacherApplication(Base):
    """
    Teacher onboarding application.

    Aggregate root of the review workflow. `status` only changes through the
    repository's transition path, which validates every edge against the
    state machine and writes the matching audit entry in the same commit.
    """

    __tablename__ = "teacher_applications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Applicant (identity is owned by the auth service)
    applicant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    applicant_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    applicant_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    # Submitted material
    # {"resume": bool, "degree": bool, "certification": bool, "identification": bool}
    required_documents: Mapped[dict] = mapped_column(JSON, nullable=False)
    # {"years": int, "previous_institutions": [str], "description": str}
    teaching_experience: Mapped[dict] = mapped_column(JSON, nullable=False)
    specializations: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    # Status tracking
    status: Mapped[ApplicationStatus] = mapped_column(
        Enum(ApplicationStatus, name="teacher_application_status", values_callable=_enum_values),
        nullable=False,
        default=ApplicationStatus.PENDING,
    )
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    review_feedback: Mapped[str | None] = mapped_column(Text, nullable=True)
    requested_documents: Mapped[list | None] = mapped_column(JSON, nullable=True)

    # Background check (informational)
    background_check_status: Mapped[BackgroundCheckStatus] = mapped_column(
        Enum(
            BackgroundCheckStatus,
            name="background_check_status",
            values_callable=_enum_values,
        ),
        nullable=False,
        default=BackgroundCheckStatus.NOT_STARTED,
    )
    background_check_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Reviewer-only notes, never shown to applicants
    # [{note: str, created_by: UUID, created_at: datetime}, ...]
    internal_notes: Mapped[list | None] = mapped_column(JSON, nullable=True)

    # Soft delete
    purged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_teacher_applications_status", "status"),
        Index("ix_teacher_applications_applicant_id", "applicant_id"),
        Index("ix_teacher_applications_submitted_at", "submitted_at"),
    )


class ApplicationAuditEntry(Base):
    """
    Immutable record of one status transition.

    Created exactly once per transition and never updated or deleted.
    """

    __tablename__ = "teacher_application_audit_entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    application_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("teacher_applications.id", ondelete="CASCADE"),
        nullable=False,
    )

    from_status: Mapped[ApplicationStatus] = mapped_column(
        Enum(ApplicationStatus, name="teacher_application_status", values_callable=_enum_values),
        nullable=False,
    )
    to_status: Mapped[ApplicationStatus] = mapped_column(
        Enum(ApplicationStatus, name="teacher_application_status", values_callable=_enum_values),
        nullable=False,
    )
    actor_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    actor_role: Mapped[ActorRole] = mapped_column(
        Enum(ActorRole, name="audit_actor_role", values_callable=_enum_values),
        nullable=False,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index(
            "ix_teacher_application_audit_entries_application_timestamp",
            "application_id",
            "timestamp",
        ),
    )
