"""
Teacher Applications Schemas

Pydantic schemas for request validation and response serialization.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Re-use enums from models (they work with Pydantic too!)
from lms_api.modules.teacher_applications.models import (
    ActorRole,
    ApplicationStatus,
    BackgroundCheckStatus,
    DocumentType,
    ReviewAction,
)


def _unique_stripped(values: list[str]) -> list[str]:
    """Strip, drop blanks and de-duplicate while keeping first-seen order."""
    seen: dict[str, None] = {}
    for value in values:
        cleaned = value.strip()
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)


# ============================================
# Submission Schemas
# ============================================


class RequiredDocuments(BaseModel):
    """Which required artifacts the applicant has supplied."""

    resume: bool = False
    degree: bool = False
    certification: bool = False
    identification: bool = False


class RequiredDocumentsUpdate(BaseModel):
    """Partial update of document flags on resubmission."""

    resume: bool | None = None
    degree: bool | None = None
    certification: bool | None = None
    identification: bool | None = None


class TeachingExperience(BaseModel):
    """Teaching history section."""

    years: int = Field(0, ge=0, le=80)
    previous_institutions: list[str] = Field(default_factory=list, max_length=50)
    description: str = Field("", max_length=5000)

    @field_validator("previous_institutions")
    @classmethod
    def strip_institutions(cls, value: list[str]) -> list[str]:
        return [item.strip() for item in value if item.strip()]


class TeacherApplicationCreate(BaseModel):
    """Request body for POST /teacher-applications."""

    required_documents: RequiredDocuments = Field(default_factory=RequiredDocuments)
    teaching_experience: TeachingExperience = Field(default_factory=TeachingExperience)
    specializations: list[str] = Field(default_factory=list, max_length=30)

    @field_validator("specializations")
    @classmethod
    def unique_specializations(cls, value: list[str]) -> list[str]:
        return _unique_stripped(value)


class ResubmitRequest(BaseModel):
    """Request body for POST /teacher-applications/{id}/resubmit.

    Omitted sections are left unchanged.
    """

    required_documents: RequiredDocumentsUpdate | None = None
    teaching_experience: TeachingExperience | None = None
    specializations: list[str] | None = Field(None, max_length=30)

    @field_validator("specializations")
    @classmethod
    def unique_specializations(cls, value: list[str] | None) -> list[str] | None:
        return _unique_stripped(value) if value is not None else None


class TeacherApplicationResponse(BaseModel):
    """Response after submitting or resubmitting an application."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    status: ApplicationStatus
    submitted_at: datetime
    completeness: int = Field(..., ge=0, le=100)
    message: str = "Application submitted. A reviewer will look at it soon."


# ============================================
# Applicant Status Schemas
# ============================================


class StatusStep(BaseModel):
    """A single step in the application progress."""

    name: str
    completed: bool
    completed_at: datetime | None = None


class ApplicantStatusResponse(BaseModel):
    """Response for GET /teacher-applications/me.

    Never includes audit history or reviewer-only notes.
    """

    id: UUID
    status: ApplicationStatus
    status_label: str
    status_description: str
    completeness: int = Field(..., ge=0, le=100)
    submitted_at: datetime
    reviewed_at: datetime | None = None
    review_feedback: str | None = None
    rejection_reason: str | None = None
    requested_documents: list[DocumentType] | None = None
    steps: list[StatusStep]


# ============================================
# Reviewer Schemas
# ============================================


class InternalNote(BaseModel):
    """Reviewer-only note. Never shown to applicants."""

    note: str = Field(..., min_length=1, max_length=2000)
    created_by: UUID
    created_at: datetime


class AuditEntryResponse(BaseModel):
    """One recorded status transition."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    application_id: UUID
    from_status: ApplicationStatus
    to_status: ApplicationStatus
    actor_id: UUID
    actor_role: ActorRole
    notes: str | None = None
    timestamp: datetime


class ApplicationListItem(BaseModel):
    """Application summary for the reviewer queue."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Application UUID")
    applicant_id: UUID = Field(..., description="Submitting user")
    applicant_name: str | None = Field(None, description="Applicant display name")
    status: ApplicationStatus = Field(..., description="Current application status")
    completeness: int = Field(..., ge=0, le=100, description="Checklist completeness (%)")
    specializations: list[str] = Field(default_factory=list)
    background_check_status: BackgroundCheckStatus
    submitted_at: datetime = Field(..., description="When application was submitted")
    reviewed_at: datetime | None = Field(None, description="Last reviewer action")
    reviewed_by: UUID | None = Field(None, description="Last acting reviewer")


class ApplicationListResponse(BaseModel):
    """Paginated reviewer queue."""

    items: list[ApplicationListItem]
    total: int = Field(..., ge=0, description="Applications matching the filter")
    page: int = Field(..., ge=1)
    page_size: int = Field(..., ge=1, le=100)


class ReviewStats(BaseModel):
    """Counts per status for the reviewer dashboard."""

    pending: int = Field(..., ge=0)
    under_review: int = Field(..., ge=0)
    approved: int = Field(..., ge=0)
    rejected: int = Field(..., ge=0)
    resubmission_required: int = Field(..., ge=0)
    total: int = Field(..., ge=0)


class ApplicationDetailResponse(BaseModel):
    """Complete application for reviewer decision, including audit history."""

    id: UUID
    applicant_id: UUID
    applicant_email: str | None = None
    applicant_name: str | None = None

    required_documents: RequiredDocuments
    teaching_experience: TeachingExperience
    specializations: list[str]

    status: ApplicationStatus
    submitted_at: datetime
    reviewed_at: datetime | None = None
    reviewed_by: UUID | None = None
    rejection_reason: str | None = None
    review_feedback: str | None = None
    requested_documents: list[DocumentType] | None = None

    background_check_status: BackgroundCheckStatus
    background_check_notes: str | None = None

    completeness: int = Field(..., ge=0, le=100)
    missing_signals: list[str]

    internal_notes: list[InternalNote] | None = None
    audit_history: list[AuditEntryResponse]


# ============================================
# Reviewer Action Schemas
# ============================================


class ReviewRequest(BaseModel):
    """Request body for POST /admin/teacher-applications/{id}/review."""

    action: ReviewAction
    notes: str | None = Field(
        None,
        max_length=2000,
        description="Feedback for the applicant (required for request_resubmission)",
    )
    rejection_reason: str | None = Field(
        None,
        max_length=1000,
        description="Reason shown to the applicant (required for reject)",
    )
    requested_documents: list[DocumentType] | None = Field(
        None,
        description="Documents the applicant should supply (request_resubmission only)",
    )

    @model_validator(mode="after")
    def validate_action_fields(self) -> "ReviewRequest":
        """Validate conditional fields."""
        if self.action == ReviewAction.REJECT and not (self.rejection_reason or "").strip():
            raise ValueError("rejection_reason is required when action is 'reject'")

        if self.action == ReviewAction.REQUEST_RESUBMISSION and not (self.notes or "").strip():
            raise ValueError("notes are required when action is 'request_resubmission'")

        if self.requested_documents and self.action != ReviewAction.REQUEST_RESUBMISSION:
            raise ValueError("requested_documents only applies to 'request_resubmission'")

        return self


class ReviewResponse(BaseModel):
    """Response after a reviewer action."""

    id: UUID
    status: ApplicationStatus
    reviewed_by: UUID | None = None
    reviewed_at: datetime | None = None
    notification_kind: str
    message: str


class AddNoteRequest(BaseModel):
    """Request body for adding an internal note."""

    note: str = Field(..., min_length=1, max_length=2000)


class AddNoteResponse(BaseModel):
    """Response after adding an internal note."""

    id: UUID
    note: InternalNote
    message: str = "Note added successfully"


class BackgroundCheckUpdate(BaseModel):
    """Request body for PUT /admin/teacher-applications/{id}/background-check."""

    status: BackgroundCheckStatus
    notes: str | None = Field(None, max_length=5000)


class BackgroundCheckResponse(BaseModel):
    """Response after updating background check state."""

    id: UUID
    background_check_status: BackgroundCheckStatus
    background_check_notes: str | None = None


class PurgeResponse(BaseModel):
    """Response after purging a decided application."""

    id: UUID
    purged_at: datetime
    message: str = "Application purged. Audit history is retained."
