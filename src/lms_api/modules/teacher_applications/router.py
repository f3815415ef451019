"""
Teacher Applications Router

API endpoints for applicants going through teacher onboarding.
All endpoints require an authenticated user; applicants only ever see
their own application.

Endpoints:
- POST /teacher-applications - Submit a new application
- GET /teacher-applications/me - Get the status of my latest application
- POST /teacher-applications/{id}/resubmit - Resubmit after changes were requested

Security:
- Ownership is checked for resubmission
- Input validation via Pydantic schemas
- Reviewer-only data (audit history, internal notes) is never returned here
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from lms_api.core.auth import CurrentUser, get_current_user
from lms_api.core.database import get_db
from lms_api.modules.teacher_applications import service
from lms_api.modules.teacher_applications.checklist import compute_completeness
from lms_api.modules.teacher_applications.schemas import (
    ApplicantStatusResponse,
    ResubmitRequest,
    TeacherApplicationCreate,
    TeacherApplicationResponse,
)
from lms_api.modules.teacher_applications.service import (
    ApplicationNotFoundError,
    ApplicationServiceError,
    DuplicateApplicationError,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _internal_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred. Please try again later.",
        },
    )


@router.post(
    "",
    response_model=TeacherApplicationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit Teacher Application",
    description="""
Submit a new teacher onboarding application.

The application starts in `pending` status and enters the reviewer queue.
Completeness is computed from the supplied documents, teaching experience and
specializations; an incomplete application can still be submitted.

**Duplicate Prevention:**
- Only one open (not yet approved or rejected) application per applicant
""",
    responses={
        201: {
            "description": "Application created successfully",
            "model": TeacherApplicationResponse,
        },
        401: {
            "description": "Unauthorized - invalid or missing token",
        },
        409: {
            "description": "Applicant already has an open application",
            "content": {
                "application/json": {
                    "example": {
                        "error": "DUPLICATE_APPLICATION",
                        "message": "You already have an application in progress.",
                    }
                }
            },
        },
    },
)
async def submit_application(
    data: TeacherApplicationCreate,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> TeacherApplicationResponse:
    """
    Submit a new teacher application.

    Raises:
        HTTPException 409: If the applicant already has an open application
    """
    try:
        application = await service.submit_application(db, user, data)

        logger.info(f"Application submitted successfully: id={application.id}, applicant={user.id}")

        return TeacherApplicationResponse(
            id=application.id,
            status=application.status,
            submitted_at=application.submitted_at,
            completeness=compute_completeness(application),
        )

    except DuplicateApplicationError as e:
        logger.warning(f"Duplicate application rejected: {e.message}")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "error": e.error_code,
                "message": e.message,
            },
        ) from e
    except ApplicationServiceError as e:
        logger.error(f"Application service error: {e.message}")
        raise HTTPException(
            status_code=e.status_code,
            detail={
                "error": e.error_code,
                "message": e.message,
            },
        ) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error submitting application: {e}")
        raise _internal_error() from e


@router.get(
    "/me",
    response_model=ApplicantStatusResponse,
    summary="Get My Application Status",
    description="""
Get the status of the caller's most recent application.

Includes a user-friendly label and description, completeness, reviewer
feedback or rejection reason, requested documents, and progress steps:
1. Application Submitted
2. Under Review
3. Decision
""",
    responses={
        200: {
            "description": "Application status",
            "model": ApplicantStatusResponse,
        },
        401: {
            "description": "Unauthorized - invalid or missing token",
        },
        404: {
            "description": "No application found",
        },
    },
)
async def get_my_application(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> ApplicantStatusResponse:
    """
    Get the caller's application status.

    Raises:
        HTTPException 404: If the caller has not submitted an application
    """
    try:
        return await service.get_for_applicant(db, user.id)

    except ApplicationNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error": e.error_code,
                "message": "You have not submitted a teacher application yet.",
            },
        ) from e
    except ApplicationServiceError as e:
        raise HTTPException(
            status_code=e.status_code,
            detail={
                "error": e.error_code,
                "message": e.message,
            },
        ) from e
    except Exception as e:
        logger.exception(f"Unexpected error getting application status: {e}")
        raise _internal_error() from e


@router.post(
    "/{application_id}/resubmit",
    response_model=TeacherApplicationResponse,
    summary="Resubmit Application",
    description="""
Resubmit an application after the reviewer requested changes.

Only sections present in the body are updated. Document flags are merged
individually; teaching experience and specializations are replaced.

**Requirements:**
- The caller must own the application
- Application must be in `resubmission_required` status

**Effects:**
- Status returns to `pending` for a new review cycle
- Requested documents and previous feedback are cleared
""",
    responses={
        200: {
            "description": "Application resubmitted",
            "model": TeacherApplicationResponse,
        },
        401: {
            "description": "Unauthorized - invalid or missing token",
        },
        403: {
            "description": "Forbidden - not the application owner",
        },
        404: {
            "description": "Application not found",
        },
        409: {
            "description": "Application is not awaiting resubmission",
        },
    },
)
async def resubmit_application(
    application_id: UUID,
    data: ResubmitRequest,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> TeacherApplicationResponse:
    """
    Resubmit an application with updated sections.
    """
    try:
        result = await service.resubmit_application(db, application_id, user.id, data)
        application = result.application

        return TeacherApplicationResponse(
            id=application.id,
            status=application.status,
            submitted_at=application.submitted_at,
            completeness=compute_completeness(application),
            message="Application resubmitted. A reviewer will look at it again soon.",
        )

    except ApplicationServiceError as e:
        logger.warning(f"Resubmission of application {application_id} refused: {e.message}")
        raise HTTPException(
            status_code=e.status_code,
            detail={
                "error": e.error_code,
                "message": e.message,
            },
        ) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error resubmitting application: {e}")
        raise _internal_error() from e
