"""
Teacher Applications Service Layer

Business logic for the teacher onboarding review workflow.
Orchestrates repository operations, the state machine, the audit trail and
applicant notifications.

This module implements:
1. Submission Flow:
   - Reject a second open application from the same applicant
   - Create the application in pending status

2. Review Flow:
   - Validate reviewer input before touching storage
   - Re-read the application under a row lock and refuse decided ones
   - Apply the transition and its audit entry in one commit
   - Notify the applicant after the commit (failures are logged only)

3. Resubmission Flow:
   - Only the owning applicant, only from resubmission_required
   - Merge the updated sections and start a new review cycle

4. Status Queries:
   - Applicant status view with progress steps and completeness
   - Paginated reviewer queue, reviewer detail with audit history, stats

5. Reviewer Housekeeping:
   - Internal notes, background check results, purge of decided applications
"""

import logging
from datetime import UTC, datetime
from typing import NamedTuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from lms_api.core.auth import CurrentUser
from lms_api.core.config import settings
from lms_api.modules.teacher_applications import audit, repository
from lms_api.modules.teacher_applications.audit import NotificationIntent
from lms_api.modules.teacher_applications.checklist import compute_completeness, missing_signals
from lms_api.modules.teacher_applications.models import (
    ActorRole,
    ApplicationAuditEntry,
    ApplicationStatus,
    BackgroundCheckStatus,
    DocumentType,
    ReviewAction,
    TeacherApplication,
)
from lms_api.modules.teacher_applications.schemas import (
    ApplicantStatusResponse,
    ApplicationDetailResponse,
    ApplicationListItem,
    AuditEntryResponse,
    InternalNote,
    ResubmitRequest,
    StatusStep,
    TeacherApplicationCreate,
)
from lms_api.modules.teacher_applications.state_machine import (
    InvalidStatusTransitionError,
    TransitionPreconditionError,
    check_preconditions,
    is_terminal,
)

logger = logging.getLogger(__name__)

# Target status for each reviewer decision
ACTION_TARGETS: dict[ReviewAction, ApplicationStatus] = {
    ReviewAction.APPROVE: ApplicationStatus.APPROVED,
    ReviewAction.REJECT: ApplicationStatus.REJECTED,
    ReviewAction.REQUEST_RESUBMISSION: ApplicationStatus.RESUBMISSION_REQUIRED,
}


class ApplicationServiceError(Exception):
    """Base exception for application service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class ApplicationNotFoundError(ApplicationServiceError):
    """Raised when an application is not found (or was purged)."""

    def __init__(self, application_id: UUID | None = None):
        message = (
            f"Application {application_id} not found" if application_id else "Application not found"
        )
        super().__init__(
            message=message,
            error_code="APPLICATION_NOT_FOUND",
            status_code=404,
        )


class UnauthorizedError(ApplicationServiceError):
    """Raised when the caller lacks the capability for an operation."""

    def __init__(
        self,
        message: str = "Reviewer access is required for this operation.",
        error_code: str = "REVIEW_ACCESS_REQUIRED",
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=403,
        )


class ReviewValidationError(ApplicationServiceError):
    """Raised when reviewer input fails a transition precondition."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            status_code=422,
        )


class InvalidTransitionError(ApplicationServiceError):
    """Raised when the requested status change is not allowed."""

    def __init__(self, current_status: str, target_status: str):
        super().__init__(
            message=(
                f"Cannot move application from '{current_status}' to '{target_status}'."
            ),
            error_code="INVALID_TRANSITION",
            status_code=409,
        )


class AlreadyDecidedError(ApplicationServiceError):
    """Raised when a reviewer acts on an approved or rejected application."""

    def __init__(self, current_status: str):
        super().__init__(
            message=f"Application has already been decided (status '{current_status}').",
            error_code="ALREADY_DECIDED",
            status_code=409,
        )


class DuplicateApplicationError(ApplicationServiceError):
    """Raised when an applicant already has an open application."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            error_code="DUPLICATE_APPLICATION",
            status_code=409,
        )


class CannotPurgeApplicationError(ApplicationServiceError):
    """Raised when purging an application that has not been decided."""

    def __init__(self, current_status: str):
        super().__init__(
            message=(
                f"Cannot purge application with status '{current_status}'. "
                "Only approved or rejected applications can be purged."
            ),
            error_code="CANNOT_PURGE_APPLICATION",
            status_code=409,
        )


class ReviewResult(NamedTuple):
    """Outcome of a committed transition."""

    application: TeacherApplication
    audit_entry: ApplicationAuditEntry
    notification: NotificationIntent


# ============================================
# Submission
# ============================================


async def submit_application(
    db: AsyncSession,
    applicant: CurrentUser,
    data: TeacherApplicationCreate,
) -> TeacherApplication:
    """
    Submit a new teacher application.

    Args:
        db: Database session
        applicant: Authenticated applicant (contact details are copied for
            notifications)
        data: Validated submission data

    Returns:
        The created TeacherApplication in pending status

    Raises:
        DuplicateApplicationError: If the applicant already has an open application
    """
    logger.info(f"Submitting teacher application for applicant {applicant.id}")

    existing = await repository.get_open_for_applicant(db, applicant.id)
    if existing:
        logger.warning(
            f"Duplicate application attempt by {applicant.id}: "
            f"existing application {existing.id} is {existing.status.value}"
        )
        raise DuplicateApplicationError(
            "You already have an application in progress. "
            "Please wait for a decision before applying again."
        )

    application = await repository.create(
        db,
        applicant.id,
        data,
        applicant_email=applicant.email or None,
        applicant_name=applicant.name,
    )

    logger.info(
        f"Application {application.id} submitted "
        f"(completeness {compute_completeness(application)}%)"
    )
    return application


# ============================================
# Review
# ============================================


async def review_application(
    db: AsyncSession,
    application_id: UUID,
    action: ReviewAction,
    actor_id: UUID,
    notes: str | None = None,
    rejection_reason: str | None = None,
    requested_documents: list[DocumentType] | None = None,
) -> ReviewResult:
    """
    Apply a reviewer decision to an application.

    Input is validated before any read, so a rejection without a reason is a
    validation error whatever the stored state. The current status is then
    re-read under a row lock; the transition, its reviewer stamp and its
    audit entry are committed together. The applicant notification is sent
    after the commit and its failure never undoes the decision.

    Args:
        db: Database session
        application_id: UUID of the application
        action: approve, reject or request_resubmission
        actor_id: UUID of the acting reviewer
        notes: Feedback for the applicant (required for request_resubmission)
        rejection_reason: Reason shown to the applicant (required for reject)
        requested_documents: Documents to supply (request_resubmission only)

    Returns:
        ReviewResult with the updated application, audit entry and notification

    Raises:
        ReviewValidationError: If a precondition on the input fails
        ApplicationNotFoundError: If application doesn't exist
        AlreadyDecidedError: If the application is approved or rejected
        InvalidTransitionError: If the state machine refuses the edge
    """
    target_status = ACTION_TARGETS[action]

    try:
        check_preconditions(target_status, rejection_reason=rejection_reason, feedback=notes)
    except TransitionPreconditionError as e:
        logger.warning(f"Invalid {action.value} request for application {application_id}: {e}")
        raise ReviewValidationError(str(e), field=e.field) from e

    logger.info(f"Reviewer {actor_id} applying '{action.value}' to application {application_id}")

    application = await repository.get_by_id_for_update(db, application_id)

    if not application:
        logger.warning(f"Application not found: {application_id}")
        raise ApplicationNotFoundError(application_id)

    current_status = application.status

    if is_terminal(current_status):
        logger.warning(
            f"Reviewer {actor_id} attempted '{action.value}' on decided application "
            f"{application_id} ({current_status.value})"
        )
        raise AlreadyDecidedError(current_status.value)

    fields: dict = {
        "reviewed_at": datetime.now(UTC),
        "reviewed_by": actor_id,
        "rejection_reason": (
            rejection_reason.strip() if action == ReviewAction.REJECT else None
        ),
        # Feedback belongs to this decision only; earlier feedback stays in the audit trail
        "review_feedback": notes.strip() if notes and notes.strip() else None,
    }
    if action == ReviewAction.REQUEST_RESUBMISSION:
        fields["requested_documents"] = (
            [doc.value for doc in requested_documents] if requested_documents else None
        )

    try:
        application, entry = await repository.apply_transition(
            db,
            application,
            target_status,
            actor_id=actor_id,
            actor_role=ActorRole.REVIEWER,
            notes=fields.get("review_feedback") or fields["rejection_reason"],
            **fields,
        )
    except InvalidStatusTransitionError as e:
        logger.error(f"Status transition error: {e}")
        raise InvalidTransitionError(current_status.value, target_status.value) from e

    logger.info(
        f"Application {application_id} moved {current_status.value} -> "
        f"{target_status.value} by reviewer {actor_id}"
    )

    notification = audit.notify(application, action)
    await audit.dispatch(notification)

    return ReviewResult(application, entry, notification)


async def start_review(
    db: AsyncSession,
    application_id: UUID,
    actor_id: UUID,
) -> ReviewResult:
    """
    Open a pending application for review.

    Raises:
        ApplicationNotFoundError: If application doesn't exist
        AlreadyDecidedError: If the application is approved or rejected
        InvalidTransitionError: If the application is not pending
    """
    logger.info(f"Reviewer {actor_id} starting review of application {application_id}")

    application = await repository.get_by_id_for_update(db, application_id)

    if not application:
        logger.warning(f"Application not found: {application_id}")
        raise ApplicationNotFoundError(application_id)

    current_status = application.status

    if is_terminal(current_status):
        raise AlreadyDecidedError(current_status.value)

    try:
        application, entry = await repository.apply_transition(
            db,
            application,
            ApplicationStatus.UNDER_REVIEW,
            actor_id=actor_id,
            actor_role=ActorRole.REVIEWER,
            reviewed_at=datetime.now(UTC),
            reviewed_by=actor_id,
        )
    except InvalidStatusTransitionError as e:
        logger.warning(f"Cannot start review of application {application_id}: {e}")
        raise InvalidTransitionError(
            current_status.value, ApplicationStatus.UNDER_REVIEW.value
        ) from e

    logger.info(f"Application {application_id} now under review by {actor_id}")

    notification = audit.notify(application)
    await audit.dispatch(notification)

    return ReviewResult(application, entry, notification)


async def resubmit_application(
    db: AsyncSession,
    application_id: UUID,
    applicant_id: UUID,
    data: ResubmitRequest,
) -> ReviewResult:
    """
    Resubmit an application after the reviewer asked for changes.

    Document flags are merged one by one; teaching experience and
    specializations replace the stored values when provided. The requested
    documents list and the previous review feedback are cleared and the
    application returns to pending.

    Args:
        db: Database session
        application_id: UUID of the application
        applicant_id: UUID of the authenticated applicant
        data: Sections to update

    Returns:
        ReviewResult for the resubmission transition

    Raises:
        ApplicationNotFoundError: If application doesn't exist
        UnauthorizedError: If the caller does not own the application
        InvalidTransitionError: If the application is not awaiting resubmission
    """
    logger.info(f"Applicant {applicant_id} resubmitting application {application_id}")

    application = await repository.get_by_id_for_update(db, application_id)

    if not application:
        logger.warning(f"Application not found: {application_id}")
        raise ApplicationNotFoundError(application_id)

    if application.applicant_id != applicant_id:
        logger.warning(
            f"Applicant {applicant_id} attempted to resubmit application {application_id} "
            f"owned by {application.applicant_id}"
        )
        raise UnauthorizedError(
            "You can only resubmit your own application.",
            error_code="NOT_APPLICATION_OWNER",
        )

    current_status = application.status
    fields: dict = {"requested_documents": None, "review_feedback": None}

    if data.required_documents is not None:
        fields["required_documents"] = {
            **(application.required_documents or {}),
            **data.required_documents.model_dump(exclude_none=True),
        }
    if data.teaching_experience is not None:
        fields["teaching_experience"] = data.teaching_experience.model_dump()
    if data.specializations is not None:
        fields["specializations"] = list(data.specializations)

    try:
        application, entry = await repository.apply_transition(
            db,
            application,
            ApplicationStatus.PENDING,
            actor_id=applicant_id,
            actor_role=ActorRole.APPLICANT,
            **fields,
        )
    except InvalidStatusTransitionError as e:
        logger.warning(f"Cannot resubmit application {application_id}: {e}")
        raise InvalidTransitionError(current_status.value, ApplicationStatus.PENDING.value) from e

    logger.info(
        f"Application {application_id} resubmitted "
        f"(completeness {compute_completeness(application)}%)"
    )

    notification = audit.notify(application)
    await audit.dispatch(notification)

    return ReviewResult(application, entry, notification)


# ============================================
# Status Queries
# ============================================

STATUS_LABELS: dict[ApplicationStatus, str] = {
    ApplicationStatus.PENDING: "Pending Review",
    ApplicationStatus.UNDER_REVIEW: "Under Review",
    ApplicationStatus.APPROVED: "Approved",
    ApplicationStatus.REJECTED: "Not Approved",
    ApplicationStatus.RESUBMISSION_REQUIRED: "Changes Requested",
}

STATUS_DESCRIPTIONS: dict[ApplicationStatus, str] = {
    ApplicationStatus.PENDING: (
        "Your application has been received and is waiting for a reviewer."
    ),
    ApplicationStatus.UNDER_REVIEW: (
        "A reviewer is currently looking at your application. "
        "You will receive an email once a decision has been made."
    ),
    ApplicationStatus.APPROVED: (
        "Congratulations! Your application has been approved. "
        "You can now start creating courses."
    ),
    ApplicationStatus.REJECTED: (
        "Unfortunately your application was not approved. "
        "See the reason below for details."
    ),
    ApplicationStatus.RESUBMISSION_REQUIRED: (
        "The reviewer asked for changes. Please update your application "
        "using the feedback below and resubmit it."
    ),
}

REVIEWED_STATUSES = frozenset(
    {
        ApplicationStatus.UNDER_REVIEW,
        ApplicationStatus.RESUBMISSION_REQUIRED,
        ApplicationStatus.APPROVED,
        ApplicationStatus.REJECTED,
    }
)


def _build_status_steps(application: TeacherApplication) -> list[StatusStep]:
    """
    Build the progress steps shown to the applicant.

    1. Application Submitted - always completed
    2. Under Review - a reviewer has picked the application up
    3. Decision - approved or rejected
    """
    under_review_completed = application.status in REVIEWED_STATUSES
    decision_completed = is_terminal(application.status)

    return [
        StatusStep(
            name="Application Submitted",
            completed=True,
            completed_at=application.submitted_at,
        ),
        StatusStep(
            name="Under Review",
            completed=under_review_completed,
            completed_at=application.reviewed_at if under_review_completed else None,
        ),
        StatusStep(
            name="Decision",
            completed=decision_completed,
            completed_at=application.reviewed_at if decision_completed else None,
        ),
    ]


async def get_for_applicant(db: AsyncSession, applicant_id: UUID) -> ApplicantStatusResponse:
    """
    Get the applicant's view of their most recent application.

    Never exposes audit history, internal notes or background check results.

    Raises:
        ApplicationNotFoundError: If the applicant has no application
    """
    application = await repository.get_latest_for_applicant(db, applicant_id)

    if not application:
        logger.info(f"No application found for applicant {applicant_id}")
        raise ApplicationNotFoundError()

    return ApplicantStatusResponse(
        id=application.id,
        status=application.status,
        status_label=STATUS_LABELS.get(application.status, application.status.value),
        status_description=STATUS_DESCRIPTIONS.get(
            application.status,
            "Please contact support for more information.",
        ),
        completeness=compute_completeness(application),
        submitted_at=application.submitted_at,
        reviewed_at=application.reviewed_at,
        review_feedback=application.review_feedback,
        rejection_reason=application.rejection_reason,
        requested_documents=application.requested_documents,
        steps=_build_status_steps(application),
    )


def _application_to_list_item(application: TeacherApplication) -> ApplicationListItem:
    return ApplicationListItem(
        id=application.id,
        applicant_id=application.applicant_id,
        applicant_name=application.applicant_name,
        status=application.status,
        completeness=compute_completeness(application),
        specializations=list(application.specializations or []),
        background_check_status=application.background_check_status,
        submitted_at=application.submitted_at,
        reviewed_at=application.reviewed_at,
        reviewed_by=application.reviewed_by,
    )


async def list_for_reviewers(
    db: AsyncSession,
    *,
    status: ApplicationStatus | None = None,
    page: int = 1,
    page_size: int = 20,
    sort_order: str = "desc",
) -> dict:
    """
    Get the paginated reviewer queue.

    Args:
        db: Database session
        status: Filter by application status (all statuses when omitted)
        page: 1-based page number
        page_size: Items per page, clamped to 1..review_page_size_max
        sort_order: Direction for submitted_at (asc/desc). Default: newest first

    Returns:
        Dict with items (ApplicationListItem), total, page and page_size
    """
    page = max(1, page)
    page_size = min(max(1, page_size), settings.review_page_size_max)

    logger.info(
        f"Listing applications for review: status={status}, page={page}, "
        f"page_size={page_size}, sort={sort_order}"
    )

    applications, total = await repository.list_for_reviewers(
        db,
        status=status,
        sort_order=sort_order,
        skip=(page - 1) * page_size,
        limit=page_size,
    )

    return {
        "items": [_application_to_list_item(app) for app in applications],
        "total": total,
        "page": page,
        "page_size": page_size,
    }


def _internal_notes(application: TeacherApplication) -> list[InternalNote] | None:
    if not application.internal_notes:
        return None
    return [
        InternalNote(
            note=note["note"],
            created_by=UUID(note["created_by"]),
            created_at=datetime.fromisoformat(note["created_at"].replace("Z", "+00:00")),
        )
        for note in application.internal_notes
    ]


async def get_detail_for_reviewer(
    db: AsyncSession,
    application_id: UUID,
    *,
    can_review: bool,
) -> ApplicationDetailResponse:
    """
    Get the complete application with completeness and audit history.

    Args:
        db: Database session
        application_id: UUID of the application
        can_review: Whether the caller holds the reviewer capability

    Returns:
        ApplicationDetailResponse including the audit trail in timestamp order

    Raises:
        UnauthorizedError: If the caller cannot review applications
        ApplicationNotFoundError: If application doesn't exist
    """
    if not can_review:
        raise UnauthorizedError()

    application = await repository.get_by_id(db, application_id)

    if not application:
        logger.warning(f"Application not found: {application_id}")
        raise ApplicationNotFoundError(application_id)

    entries = await repository.list_audit_entries(db, application_id)

    return ApplicationDetailResponse(
        id=application.id,
        applicant_id=application.applicant_id,
        applicant_email=application.applicant_email,
        applicant_name=application.applicant_name,
        required_documents=application.required_documents,
        teaching_experience=application.teaching_experience,
        specializations=list(application.specializations or []),
        status=application.status,
        submitted_at=application.submitted_at,
        reviewed_at=application.reviewed_at,
        reviewed_by=application.reviewed_by,
        rejection_reason=application.rejection_reason,
        review_feedback=application.review_feedback,
        requested_documents=application.requested_documents,
        background_check_status=application.background_check_status,
        background_check_notes=application.background_check_notes,
        completeness=compute_completeness(application),
        missing_signals=missing_signals(application),
        internal_notes=_internal_notes(application),
        audit_history=[AuditEntryResponse.model_validate(entry) for entry in entries],
    )


async def get_review_stats(db: AsyncSession) -> dict:
    """
    Get application counts per status for the reviewer dashboard.

    Returns:
        Dict with pending, under_review, approved, rejected,
        resubmission_required and total
    """
    counts = await repository.get_status_counts(db)
    stats = {status.value: counts.get(status, 0) for status in ApplicationStatus}
    stats["total"] = sum(counts.values())
    logger.info(f"Review stats: {stats}")
    return stats


# ============================================
# Reviewer Housekeeping
# ============================================


async def _get_or_404(db: AsyncSession, application_id: UUID) -> TeacherApplication:
    application = await repository.get_by_id(db, application_id)
    if not application:
        logger.warning(f"Application not found: {application_id}")
        raise ApplicationNotFoundError(application_id)
    return application


async def add_internal_note(
    db: AsyncSession,
    application_id: UUID,
    reviewer_id: UUID,
    note: str,
) -> dict:
    """
    Add a reviewer-only note to an application.

    Notes are not status transitions and produce no audit entry.

    Returns:
        The newly created note object

    Raises:
        ApplicationNotFoundError: If application doesn't exist
    """
    logger.info(f"Reviewer {reviewer_id} adding note to application {application_id}")

    application = await _get_or_404(db, application_id)
    new_note = await repository.add_internal_note(db, application, note, reviewer_id)

    logger.info(f"Note added to application {application_id}")
    return new_note


async def update_background_check(
    db: AsyncSession,
    application_id: UUID,
    reviewer_id: UUID,
    status: BackgroundCheckStatus,
    notes: str | None = None,
) -> TeacherApplication:
    """
    Record background check progress or results.

    Informational only: allowed in any status and never gates a transition.

    Raises:
        ApplicationNotFoundError: If application doesn't exist
    """
    application = await _get_or_404(db, application_id)
    updated = await repository.update_background_check(db, application, status, notes)

    logger.info(
        f"Reviewer {reviewer_id} set background check of application {application_id} "
        f"to {status.value}"
    )
    return updated


async def purge_application(
    db: AsyncSession,
    application_id: UUID,
    reviewer_id: UUID,
) -> TeacherApplication:
    """
    Soft-delete a decided application.

    The application disappears from every query; its audit history is kept.

    Raises:
        ApplicationNotFoundError: If application doesn't exist
        CannotPurgeApplicationError: If the application has not been decided
    """
    application = await _get_or_404(db, application_id)

    if not is_terminal(application.status):
        logger.warning(
            f"Cannot purge application {application_id}: status={application.status.value}"
        )
        raise CannotPurgeApplicationError(application.status.value)

    purged = await repository.mark_purged(db, application)

    logger.info(f"Reviewer {reviewer_id} purged application {application_id}")
    return purged
