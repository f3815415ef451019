"""
Teacher Applications Reviewer Router

API endpoints for reviewers deciding teacher applications.
All endpoints require authentication and the "can review applications"
capability (admin, super_admin or reviewer role).

Endpoints:
- GET /admin/teacher-applications - List applications with filters and pagination
- GET /admin/teacher-applications/stats - Get counts per status
- GET /admin/teacher-applications/{id} - Get application details and audit history
- POST /admin/teacher-applications/{id}/start-review - Start reviewing application
- POST /admin/teacher-applications/{id}/review - Approve, reject or request resubmission
- POST /admin/teacher-applications/{id}/notes - Add internal note
- PUT /admin/teacher-applications/{id}/background-check - Record background check
- DELETE /admin/teacher-applications/{id} - Purge a decided application

Security:
- All endpoints require a valid JWT token with a reviewer role
- Input validation via Pydantic schemas
- Structured error responses
- Rate limiting on action endpoints to prevent abuse
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from lms_api.core.auth import (
    CurrentUser,
    can_review_applications,
    get_current_reviewer,
    get_current_user,
)
from lms_api.core.database import get_db
from lms_api.core.rate_limit import RateLimitExceeded, check_rate_limit
from lms_api.modules.teacher_applications import service
from lms_api.modules.teacher_applications.models import ApplicationStatus
from lms_api.modules.teacher_applications.schemas import (
    AddNoteRequest,
    AddNoteResponse,
    ApplicationDetailResponse,
    ApplicationListResponse,
    BackgroundCheckResponse,
    BackgroundCheckUpdate,
    InternalNote,
    PurgeResponse,
    ReviewRequest,
    ReviewResponse,
    ReviewStats,
)
from lms_api.modules.teacher_applications.service import ApplicationServiceError

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================
# Rate Limiting Configuration
# ============================================

RATE_LIMIT_REVIEW = (10, 60)  # 10 decisions per minute
RATE_LIMIT_START_REVIEW = (30, 60)  # 30 review starts per minute
RATE_LIMIT_NOTES = (30, 60)  # 30 notes per minute
RATE_LIMIT_BACKGROUND_CHECK = (30, 60)  # 30 updates per minute
RATE_LIMIT_PURGE = (10, 60)  # 10 purges per minute

REVIEW_MESSAGES = {
    ApplicationStatus.APPROVED: "Application approved",
    ApplicationStatus.REJECTED: "Application rejected",
    ApplicationStatus.RESUBMISSION_REQUIRED: "Resubmission requested from the applicant",
}


async def _check_reviewer_rate_limit(
    reviewer: CurrentUser,
    action: str,
    limit: int,
    window_seconds: int,
) -> None:
    """
    Check rate limit for a reviewer action.

    Args:
        reviewer: The authenticated reviewer
        action: Action name (e.g., "review", "notes")
        limit: Maximum requests allowed
        window_seconds: Time window in seconds

    Raises:
        RateLimitExceeded: If rate limit is exceeded
    """
    key = f"reviewer:{action}:{reviewer.id}"
    allowed = await check_rate_limit(key, limit, window_seconds)

    if not allowed:
        logger.warning(
            f"Rate limit exceeded for reviewer {reviewer.id} on action '{action}': "
            f"{limit}/{window_seconds}s"
        )
        raise RateLimitExceeded(limit, window_seconds)


# ============================================
# Helper Functions
# ============================================


def _handle_service_error(e: ApplicationServiceError) -> None:
    """Convert service errors to HTTPExceptions."""
    raise HTTPException(
        status_code=e.status_code,
        detail={
            "error": e.error_code,
            "message": e.message,
        },
    ) from e


def _internal_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )


# ============================================
# List & Stats Endpoints
# ============================================


@router.get(
    "",
    response_model=ApplicationListResponse,
    summary="List Applications",
    description="""
Get paginated list of teacher applications.

**Filters:**
- `status`: Filter by application status (all statuses when omitted)

**Sorting:**
- `sort_order`: Direction for submission time (asc, desc). Default: desc (newest first)

**Pagination:**
- `page`: 1-based page number. Default: 1
- `page_size`: Items per page (1-100). Default: 20

Each item includes its checklist completeness.

**Access:** Reviewers only
""",
    responses={
        200: {
            "description": "List of applications with pagination",
            "model": ApplicationListResponse,
        },
        401: {
            "description": "Unauthorized - invalid or missing token",
        },
        403: {
            "description": "Forbidden - not a reviewer",
        },
    },
)
async def list_applications(
    status: ApplicationStatus | None = Query(
        None,
        description="Filter by application status",
    ),
    page: int = Query(
        1,
        ge=1,
        description="Page number",
    ),
    page_size: int = Query(
        20,
        ge=1,
        le=100,
        description="Items per page",
    ),
    sort_order: str = Query(
        "desc",
        pattern="^(asc|desc)$",
        description="Sort direction (asc/desc)",
    ),
    db: AsyncSession = Depends(get_db),
    reviewer: CurrentUser = Depends(get_current_reviewer),
) -> ApplicationListResponse:
    """
    List applications for the reviewer queue.
    """
    try:
        result = await service.list_for_reviewers(
            db,
            status=status,
            page=page,
            page_size=page_size,
            sort_order=sort_order,
        )

        logger.info(
            f"Reviewer {reviewer.id} listed applications: "
            f"total={result['total']}, returned={len(result['items'])}"
        )

        return ApplicationListResponse(**result)

    except ApplicationServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error listing applications: {e}")
        raise _internal_error() from e


@router.get(
    "/stats",
    response_model=ReviewStats,
    summary="Get Review Statistics",
    description="""
Get application counts per status for the reviewer dashboard.

**Statistics returned:**
- `pending`, `under_review`, `approved`, `rejected`, `resubmission_required`
- `total`: All applications (purged ones excluded)

**Access:** Reviewers only
""",
    responses={
        200: {
            "description": "Review statistics",
            "model": ReviewStats,
        },
        401: {
            "description": "Unauthorized - invalid or missing token",
        },
        403: {
            "description": "Forbidden - not a reviewer",
        },
    },
)
async def get_stats(
    db: AsyncSession = Depends(get_db),
    reviewer: CurrentUser = Depends(get_current_reviewer),
) -> ReviewStats:
    """
    Get counts per status.
    """
    try:
        stats = await service.get_review_stats(db)

        logger.info(f"Reviewer {reviewer.id} fetched review stats")

        return ReviewStats(**stats)

    except ApplicationServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error getting review stats: {e}")
        raise _internal_error() from e


# ============================================
# Detail & Review Endpoints
# ============================================


@router.get(
    "/{application_id}",
    response_model=ApplicationDetailResponse,
    summary="Get Application Details",
    description="""
Get complete details of a teacher application for review.

Returns all application fields including:
- Documents, teaching experience and specializations
- Completeness and the checklist items still missing
- Status, reviewer stamp, feedback and rejection reason
- Background check state and internal notes
- Audit history ordered by time

**Access:** Reviewers only
""",
    responses={
        200: {
            "description": "Complete application details",
            "model": ApplicationDetailResponse,
        },
        401: {
            "description": "Unauthorized - invalid or missing token",
        },
        403: {
            "description": "Forbidden - not a reviewer",
        },
        404: {
            "description": "Application not found",
        },
    },
)
async def get_application_detail(
    application_id: UUID,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> ApplicationDetailResponse:
    """
    Get complete details of an application.
    """
    try:
        detail = await service.get_detail_for_reviewer(
            db,
            application_id,
            can_review=can_review_applications(user),
        )

        logger.info(f"Reviewer {user.id} viewed application {application_id}")

        return detail

    except ApplicationServiceError as e:
        logger.warning(f"Detail of application {application_id} refused: {e.message}")
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error getting application detail: {e}")
        raise _internal_error() from e


@router.post(
    "/{application_id}/start-review",
    response_model=ReviewResponse,
    summary="Start Reviewing Application",
    description="""
Start reviewing an application.

Updates the application status from `pending` to `under_review` and records
which reviewer picked it up. Optional: reviewers may also decide directly on
a pending application.

**Access:** Reviewers only
""",
    responses={
        200: {
            "description": "Review started successfully",
            "model": ReviewResponse,
        },
        401: {
            "description": "Unauthorized - invalid or missing token",
        },
        403: {
            "description": "Forbidden - not a reviewer",
        },
        404: {
            "description": "Application not found",
        },
        409: {
            "description": "Application not in pending status",
        },
    },
)
async def start_review(
    application_id: UUID,
    db: AsyncSession = Depends(get_db),
    reviewer: CurrentUser = Depends(get_current_reviewer),
) -> ReviewResponse:
    """
    Start reviewing an application.
    """
    await _check_reviewer_rate_limit(reviewer, "start_review", *RATE_LIMIT_START_REVIEW)

    try:
        result = await service.start_review(db, application_id, reviewer.id)
        application = result.application

        return ReviewResponse(
            id=application.id,
            status=application.status,
            reviewed_by=application.reviewed_by,
            reviewed_at=application.reviewed_at,
            notification_kind=result.notification.kind.value,
            message="Application is now under review",
        )

    except ApplicationServiceError as e:
        logger.warning(f"Cannot start review of application {application_id}: {e.message}")
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error starting review: {e}")
        raise _internal_error() from e


@router.post(
    "/{application_id}/review",
    response_model=ReviewResponse,
    summary="Review Application",
    description="""
Apply a decision to an application.

**Actions:**
- `approve`: Approve the applicant as a teacher
- `reject`: Reject the application (`rejection_reason` required)
- `request_resubmission`: Ask for changes (`notes` required, optional
  `requested_documents`)

**Requirements:**
- Application must be `pending` or `under_review`
- Approved or rejected applications cannot be reviewed again

**Effects:**
- Status, reviewer and review time are updated
- An audit entry is recorded
- The applicant is notified by email

**Access:** Reviewers only
""",
    responses={
        200: {
            "description": "Decision recorded",
            "model": ReviewResponse,
        },
        401: {
            "description": "Unauthorized - invalid or missing token",
        },
        403: {
            "description": "Forbidden - not a reviewer",
        },
        404: {
            "description": "Application not found",
        },
        409: {
            "description": "Application already decided or transition not allowed",
        },
        422: {
            "description": "Missing rejection reason or feedback",
        },
    },
)
async def review_application(
    application_id: UUID,
    data: ReviewRequest,
    db: AsyncSession = Depends(get_db),
    reviewer: CurrentUser = Depends(get_current_reviewer),
) -> ReviewResponse:
    """
    Approve, reject or request resubmission of an application.
    """
    await _check_reviewer_rate_limit(reviewer, "review", *RATE_LIMIT_REVIEW)

    try:
        result = await service.review_application(
            db,
            application_id,
            data.action,
            reviewer.id,
            notes=data.notes,
            rejection_reason=data.rejection_reason,
            requested_documents=data.requested_documents,
        )
        application = result.application

        logger.info(
            f"Reviewer {reviewer.id} applied '{data.action.value}' to application "
            f"{application_id}"
        )

        return ReviewResponse(
            id=application.id,
            status=application.status,
            reviewed_by=application.reviewed_by,
            reviewed_at=application.reviewed_at,
            notification_kind=result.notification.kind.value,
            message=REVIEW_MESSAGES.get(application.status, "Application updated"),
        )

    except ApplicationServiceError as e:
        logger.warning(f"Review of application {application_id} refused: {e.message}")
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error reviewing application: {e}")
        raise _internal_error() from e


# ============================================
# Housekeeping Endpoints
# ============================================


@router.post(
    "/{application_id}/notes",
    response_model=AddNoteResponse,
    summary="Add Internal Note",
    description="""
Add an internal note to an application.

Notes are visible only to reviewers, never to the applicant, and do not
change the application status.

**Access:** Reviewers only
""",
    responses={
        200: {
            "description": "Note added successfully",
            "model": AddNoteResponse,
        },
        401: {
            "description": "Unauthorized - invalid or missing token",
        },
        403: {
            "description": "Forbidden - not a reviewer",
        },
        404: {
            "description": "Application not found",
        },
    },
)
async def add_note(
    application_id: UUID,
    data: AddNoteRequest,
    db: AsyncSession = Depends(get_db),
    reviewer: CurrentUser = Depends(get_current_reviewer),
) -> AddNoteResponse:
    """
    Add an internal note to an application.
    """
    await _check_reviewer_rate_limit(reviewer, "notes", *RATE_LIMIT_NOTES)

    try:
        note = await service.add_internal_note(db, application_id, reviewer.id, data.note)

        return AddNoteResponse(
            id=application_id,
            note=InternalNote(
                note=note["note"],
                created_by=UUID(note["created_by"]),
                created_at=note["created_at"],
            ),
        )

    except ApplicationServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error adding note: {e}")
        raise _internal_error() from e


@router.put(
    "/{application_id}/background-check",
    response_model=BackgroundCheckResponse,
    summary="Update Background Check",
    description="""
Record background check progress and results.

Informational only: it never blocks or triggers a status change.

**Access:** Reviewers only
""",
    responses={
        200: {
            "description": "Background check updated",
            "model": BackgroundCheckResponse,
        },
        401: {
            "description": "Unauthorized - invalid or missing token",
        },
        403: {
            "description": "Forbidden - not a reviewer",
        },
        404: {
            "description": "Application not found",
        },
    },
)
async def update_background_check(
    application_id: UUID,
    data: BackgroundCheckUpdate,
    db: AsyncSession = Depends(get_db),
    reviewer: CurrentUser = Depends(get_current_reviewer),
) -> BackgroundCheckResponse:
    """
    Update the background check state of an application.
    """
    await _check_reviewer_rate_limit(
        reviewer, "background_check", *RATE_LIMIT_BACKGROUND_CHECK
    )

    try:
        application = await service.update_background_check(
            db, application_id, reviewer.id, data.status, data.notes
        )

        return BackgroundCheckResponse(
            id=application.id,
            background_check_status=application.background_check_status,
            background_check_notes=application.background_check_notes,
        )

    except ApplicationServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error updating background check: {e}")
        raise _internal_error() from e


@router.delete(
    "/{application_id}",
    response_model=PurgeResponse,
    summary="Purge Application",
    description="""
Purge a decided application.

The application is hidden from every listing and lookup. Its audit history
is retained.

**Requirements:**
- Application must be `approved` or `rejected`

**Access:** Reviewers only
""",
    responses={
        200: {
            "description": "Application purged",
            "model": PurgeResponse,
        },
        401: {
            "description": "Unauthorized - invalid or missing token",
        },
        403: {
            "description": "Forbidden - not a reviewer",
        },
        404: {
            "description": "Application not found",
        },
        409: {
            "description": "Application has not been decided",
        },
    },
)
async def purge_application(
    application_id: UUID,
    db: AsyncSession = Depends(get_db),
    reviewer: CurrentUser = Depends(get_current_reviewer),
) -> PurgeResponse:
    """
    Purge a decided application.
    """
    await _check_reviewer_rate_limit(reviewer, "purge", *RATE_LIMIT_PURGE)

    try:
        application = await service.purge_application(db, application_id, reviewer.id)

        return PurgeResponse(id=application.id, purged_at=application.purged_at)

    except ApplicationServiceError as e:
        logger.warning(f"Cannot purge application {application_id}: {e.message}")
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error purging application: {e}")
        raise _internal_error() from e
