"""
Tests for teacher application service functions.

These tests verify the business logic with the repository mocked out:
- Submission and duplicate detection
- Reviewer decisions and the order of their checks
- Start of review and applicant resubmission
- Status queries for applicants and reviewers
- Internal notes, background checks and purge
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from lms_api.modules.teacher_applications.audit import NotificationIntent, NotificationKind
from lms_api.modules.teacher_applications.models import (
    ActorRole,
    ApplicationAuditEntry,
    ApplicationStatus,
    BackgroundCheckStatus,
    DocumentType,
    ReviewAction,
)
from lms_api.modules.teacher_applications.schemas import (
    RequiredDocumentsUpdate,
    ResubmitRequest,
    TeachingExperience,
)
from lms_api.modules.teacher_applications.service import (
    AlreadyDecidedError,
    ApplicationNotFoundError,
    CannotPurgeApplicationError,
    DuplicateApplicationError,
    InvalidTransitionError,
    ReviewValidationError,
    UnauthorizedError,
    add_internal_note,
    get_detail_for_reviewer,
    get_for_applicant,
    get_review_stats,
    list_for_reviewers,
    purge_application,
    resubmit_application,
    review_application,
    start_review,
    submit_application,
    update_background_check,
)
from lms_api.modules.teacher_applications.state_machine import InvalidStatusTransitionError

REPOSITORY = "lms_api.modules.teacher_applications.service.repository"
AUDIT = "lms_api.modules.teacher_applications.service.audit"


@pytest.fixture
def mock_audit():
    """Patch the audit module used by the service."""
    with patch(AUDIT) as audit_mock:
        audit_mock.notify = MagicMock(
            side_effect=lambda app, action=None: NotificationIntent(
                recipient_id=app.applicant_id,
                kind=NotificationKind.STATUS_CHANGED,
            )
        )
        audit_mock.dispatch = AsyncMock(return_value=True)
        yield audit_mock


def _transition_result(application, status):
    """Side effect for repository.apply_transition that mimics a commit."""

    async def _apply(db, app, new_status, *, actor_id, actor_role, notes=None, **fields):
        app.status = new_status
        for key, value in fields.items():
            setattr(app, key, value)
        entry = MagicMock(spec=ApplicationAuditEntry)
        entry.to_status = new_status
        entry.actor_role = actor_role
        return app, entry

    return _apply


# ============================================
# Test submit_application
# ============================================


@pytest.mark.asyncio
async def test_submit_application_success(
    mock_db, applicant, sample_application_create, make_application
):
    created = make_application()

    with patch(REPOSITORY) as mock_repo:
        mock_repo.get_open_for_applicant = AsyncMock(return_value=None)
        mock_repo.create = AsyncMock(return_value=created)

        result = await submit_application(mock_db, applicant, sample_application_create)

        assert result is created
        mock_repo.create.assert_called_once_with(
            mock_db,
            applicant.id,
            sample_application_create,
            applicant_email="teacher@test.com",
            applicant_name="Ada Teacher",
        )


@pytest.mark.asyncio
async def test_submit_application_duplicate(
    mock_db, applicant, sample_application_create, make_application
):
    with patch(REPOSITORY) as mock_repo:
        mock_repo.get_open_for_applicant = AsyncMock(
            return_value=make_application(ApplicationStatus.UNDER_REVIEW)
        )
        mock_repo.create = AsyncMock()

        with pytest.raises(DuplicateApplicationError) as exc_info:
            await submit_application(mock_db, applicant, sample_application_create)

        assert exc_info.value.status_code == 409
        mock_repo.create.assert_not_called()


# ============================================
# Test review_application
# ============================================


@pytest.mark.asyncio
async def test_review_approve_success(
    mock_db, application_id, reviewer_id, make_application, mock_audit
):
    application = make_application(ApplicationStatus.UNDER_REVIEW)

    with patch(REPOSITORY) as mock_repo:
        mock_repo.get_by_id_for_update = AsyncMock(return_value=application)
        mock_repo.apply_transition = AsyncMock(
            side_effect=_transition_result(application, ApplicationStatus.APPROVED)
        )

        result = await review_application(
            mock_db, application_id, ReviewAction.APPROVE, reviewer_id
        )

        assert result.application.status == ApplicationStatus.APPROVED
        assert result.application.reviewed_by == reviewer_id
        assert result.application.rejection_reason is None
        assert result.audit_entry.actor_role == ActorRole.REVIEWER

        args, kwargs = mock_repo.apply_transition.call_args
        assert args[2] == ApplicationStatus.APPROVED
        assert kwargs["actor_id"] == reviewer_id
        assert isinstance(kwargs["reviewed_at"], datetime)
        assert kwargs["review_feedback"] is None

        mock_audit.notify.assert_called_once_with(application, ReviewAction.APPROVE)
        mock_audit.dispatch.assert_awaited_once_with(result.notification)


@pytest.mark.asyncio
async def test_review_reject_sets_reason(
    mock_db, application_id, reviewer_id, make_application, mock_audit
):
    application = make_application(ApplicationStatus.PENDING)

    with patch(REPOSITORY) as mock_repo:
        mock_repo.get_by_id_for_update = AsyncMock(return_value=application)
        mock_repo.apply_transition = AsyncMock(
            side_effect=_transition_result(application, ApplicationStatus.REJECTED)
        )

        result = await review_application(
            mock_db,
            application_id,
            ReviewAction.REJECT,
            reviewer_id,
            rejection_reason="  Degree not recognised  ",
        )

        assert result.application.status == ApplicationStatus.REJECTED
        assert result.application.rejection_reason == "Degree not recognised"
        _, kwargs = mock_repo.apply_transition.call_args
        assert kwargs["notes"] == "Degree not recognised"


@pytest.mark.asyncio
async def test_review_request_resubmission_stores_documents(
    mock_db, application_id, reviewer_id, make_application, mock_audit
):
    application = make_application(ApplicationStatus.PENDING)

    with patch(REPOSITORY) as mock_repo:
        mock_repo.get_by_id_for_update = AsyncMock(return_value=application)
        mock_repo.apply_transition = AsyncMock(
            side_effect=_transition_result(
                application, ApplicationStatus.RESUBMISSION_REQUIRED
            )
        )

        result = await review_application(
            mock_db,
            application_id,
            ReviewAction.REQUEST_RESUBMISSION,
            reviewer_id,
            notes="Please add your certification",
            requested_documents=[DocumentType.CERTIFICATION],
        )

        assert result.application.status == ApplicationStatus.RESUBMISSION_REQUIRED
        assert result.application.review_feedback == "Please add your certification"
        assert result.application.requested_documents == ["certification"]


@pytest.mark.asyncio
@pytest.mark.parametrize("reason", [None, "", "   "])
async def test_review_reject_without_reason_is_validation_error(
    mock_db, application_id, reviewer_id, reason
):
    """Validation comes first: storage is never touched."""
    with patch(REPOSITORY) as mock_repo:
        mock_repo.get_by_id_for_update = AsyncMock()

        with pytest.raises(ReviewValidationError) as exc_info:
            await review_application(
                mock_db,
                application_id,
                ReviewAction.REJECT,
                reviewer_id,
                rejection_reason=reason,
            )

        assert exc_info.value.field == "rejection_reason"
        assert exc_info.value.status_code == 422
        mock_repo.get_by_id_for_update.assert_not_called()


@pytest.mark.asyncio
async def test_review_resubmission_without_notes_is_validation_error(
    mock_db, application_id, reviewer_id
):
    with patch(REPOSITORY) as mock_repo:
        mock_repo.get_by_id_for_update = AsyncMock()

        with pytest.raises(ReviewValidationError):
            await review_application(
                mock_db, application_id, ReviewAction.REQUEST_RESUBMISSION, reviewer_id
            )

        mock_repo.get_by_id_for_update.assert_not_called()


@pytest.mark.asyncio
async def test_review_not_found(mock_db, application_id, reviewer_id):
    with patch(REPOSITORY) as mock_repo:
        mock_repo.get_by_id_for_update = AsyncMock(return_value=None)

        with pytest.raises(ApplicationNotFoundError):
            await review_application(mock_db, application_id, ReviewAction.APPROVE, reviewer_id)


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [ApplicationStatus.APPROVED, ApplicationStatus.REJECTED])
async def test_review_already_decided(
    mock_db, application_id, reviewer_id, make_application, mock_audit, status
):
    with patch(REPOSITORY) as mock_repo:
        mock_repo.get_by_id_for_update = AsyncMock(return_value=make_application(status))
        mock_repo.apply_transition = AsyncMock()

        with pytest.raises(AlreadyDecidedError) as exc_info:
            await review_application(mock_db, application_id, ReviewAction.APPROVE, reviewer_id)

        assert exc_info.value.error_code == "ALREADY_DECIDED"
        mock_repo.apply_transition.assert_not_called()
        mock_audit.dispatch.assert_not_called()


@pytest.mark.asyncio
async def test_review_awaiting_resubmission_is_invalid_transition(
    mock_db, application_id, reviewer_id, make_application, mock_audit
):
    with patch(REPOSITORY) as mock_repo:
        mock_repo.get_by_id_for_update = AsyncMock(
            return_value=make_application(ApplicationStatus.RESUBMISSION_REQUIRED)
        )
        mock_repo.apply_transition = AsyncMock(
            side_effect=InvalidStatusTransitionError(
                ApplicationStatus.RESUBMISSION_REQUIRED, ApplicationStatus.APPROVED
            )
        )

        with pytest.raises(InvalidTransitionError) as exc_info:
            await review_application(mock_db, application_id, ReviewAction.APPROVE, reviewer_id)

        assert exc_info.value.status_code == 409
        mock_audit.dispatch.assert_not_called()


@pytest.mark.asyncio
async def test_review_storage_failure_propagates(
    mock_db, application_id, reviewer_id, make_application, mock_audit
):
    with patch(REPOSITORY) as mock_repo:
        mock_repo.get_by_id_for_update = AsyncMock(
            return_value=make_application(ApplicationStatus.UNDER_REVIEW)
        )
        mock_repo.apply_transition = AsyncMock(side_effect=RuntimeError("database is gone"))

        with pytest.raises(RuntimeError):
            await review_application(mock_db, application_id, ReviewAction.APPROVE, reviewer_id)

        mock_audit.dispatch.assert_not_called()


@pytest.mark.asyncio
async def test_review_succeeds_when_notification_fails(
    mock_db, application_id, reviewer_id, make_application, mock_audit
):
    application = make_application(ApplicationStatus.UNDER_REVIEW)
    mock_audit.dispatch = AsyncMock(return_value=False)

    with patch(REPOSITORY) as mock_repo:
        mock_repo.get_by_id_for_update = AsyncMock(return_value=application)
        mock_repo.apply_transition = AsyncMock(
            side_effect=_transition_result(application, ApplicationStatus.APPROVED)
        )

        result = await review_application(
            mock_db, application_id, ReviewAction.APPROVE, reviewer_id
        )

        assert result.application.status == ApplicationStatus.APPROVED


# ============================================
# Test start_review
# ============================================


@pytest.mark.asyncio
async def test_start_review_success(
    mock_db, application_id, reviewer_id, make_application, mock_audit
):
    application = make_application(ApplicationStatus.PENDING)

    with patch(REPOSITORY) as mock_repo:
        mock_repo.get_by_id_for_update = AsyncMock(return_value=application)
        mock_repo.apply_transition = AsyncMock(
            side_effect=_transition_result(application, ApplicationStatus.UNDER_REVIEW)
        )

        result = await start_review(mock_db, application_id, reviewer_id)

        assert result.application.status == ApplicationStatus.UNDER_REVIEW
        assert result.application.reviewed_by == reviewer_id
        mock_audit.notify.assert_called_once_with(application)


@pytest.mark.asyncio
async def test_start_review_wrong_status(
    mock_db, application_id, reviewer_id, make_application, mock_audit
):
    with patch(REPOSITORY) as mock_repo:
        mock_repo.get_by_id_for_update = AsyncMock(
            return_value=make_application(ApplicationStatus.UNDER_REVIEW)
        )
        mock_repo.apply_transition = AsyncMock(
            side_effect=InvalidStatusTransitionError(
                ApplicationStatus.UNDER_REVIEW, ApplicationStatus.UNDER_REVIEW
            )
        )

        with pytest.raises(InvalidTransitionError):
            await start_review(mock_db, application_id, reviewer_id)


# ============================================
# Test resubmit_application
# ============================================


@pytest.mark.asyncio
async def test_resubmit_merges_sections(
    mock_db, application_id, applicant_id, make_application, mock_audit
):
    application = make_application(
        ApplicationStatus.RESUBMISSION_REQUIRED,
        requested_documents=["certification"],
    )
    data = ResubmitRequest(
        required_documents=RequiredDocumentsUpdate(certification=True),
        teaching_experience=TeachingExperience(years=4, description="High school maths"),
    )

    with patch(REPOSITORY) as mock_repo:
        mock_repo.get_by_id_for_update = AsyncMock(return_value=application)
        mock_repo.apply_transition = AsyncMock(
            side_effect=_transition_result(application, ApplicationStatus.PENDING)
        )

        result = await resubmit_application(mock_db, application_id, applicant_id, data)

        assert result.application.status == ApplicationStatus.PENDING
        assert result.application.required_documents == {
            "resume": True,
            "degree": True,
            "certification": True,
            "identification": False,
        }
        assert result.application.teaching_experience["years"] == 4
        assert result.application.specializations == []
        assert result.application.requested_documents is None

        _, kwargs = mock_repo.apply_transition.call_args
        assert kwargs["actor_role"] == ActorRole.APPLICANT
        assert kwargs["actor_id"] == applicant_id
        assert kwargs["review_feedback"] is None


@pytest.mark.asyncio
async def test_resubmit_by_other_user_is_unauthorized(
    mock_db, application_id, make_application
):
    with patch(REPOSITORY) as mock_repo:
        mock_repo.get_by_id_for_update = AsyncMock(
            return_value=make_application(ApplicationStatus.RESUBMISSION_REQUIRED)
        )
        mock_repo.apply_transition = AsyncMock()

        with pytest.raises(UnauthorizedError) as exc_info:
            await resubmit_application(mock_db, application_id, uuid4(), ResubmitRequest())

        assert exc_info.value.error_code == "NOT_APPLICATION_OWNER"
        mock_repo.apply_transition.assert_not_called()


@pytest.mark.asyncio
async def test_resubmit_from_pending_is_invalid_transition(
    mock_db, application_id, applicant_id, make_application, mock_audit
):
    with patch(REPOSITORY) as mock_repo:
        mock_repo.get_by_id_for_update = AsyncMock(
            return_value=make_application(ApplicationStatus.PENDING)
        )
        mock_repo.apply_transition = AsyncMock(
            side_effect=InvalidStatusTransitionError(
                ApplicationStatus.PENDING, ApplicationStatus.PENDING, ActorRole.APPLICANT
            )
        )

        with pytest.raises(InvalidTransitionError):
            await resubmit_application(mock_db, application_id, applicant_id, ResubmitRequest())


# ============================================
# Test status queries
# ============================================


@pytest.mark.asyncio
async def test_get_for_applicant_success(mock_db, applicant_id, make_application):
    application = make_application(
        ApplicationStatus.RESUBMISSION_REQUIRED,
        reviewed_at=datetime.now(UTC),
        review_feedback="Add certification",
        requested_documents=["certification"],
    )

    with patch(REPOSITORY) as mock_repo:
        mock_repo.get_latest_for_applicant = AsyncMock(return_value=application)

        result = await get_for_applicant(mock_db, applicant_id)

        assert result.status == ApplicationStatus.RESUBMISSION_REQUIRED
        assert result.status_label == "Changes Requested"
        assert result.completeness == 33
        assert result.review_feedback == "Add certification"
        assert result.requested_documents == [DocumentType.CERTIFICATION]
        assert [step.name for step in result.steps] == [
            "Application Submitted",
            "Under Review",
            "Decision",
        ]
        assert result.steps[1].completed is True
        assert result.steps[2].completed is False


@pytest.mark.asyncio
async def test_get_for_applicant_not_found(mock_db, applicant_id):
    with patch(REPOSITORY) as mock_repo:
        mock_repo.get_latest_for_applicant = AsyncMock(return_value=None)

        with pytest.raises(ApplicationNotFoundError):
            await get_for_applicant(mock_db, applicant_id)


@pytest.mark.asyncio
async def test_list_for_reviewers_success(mock_db, make_application):
    with patch(REPOSITORY) as mock_repo:
        mock_repo.list_for_reviewers = AsyncMock(return_value=([make_application()], 1))

        result = await list_for_reviewers(
            mock_db, status=ApplicationStatus.PENDING, page=2, page_size=10
        )

        assert result["total"] == 1
        assert result["page"] == 2
        assert result["page_size"] == 10
        assert result["items"][0].completeness == 33
        mock_repo.list_for_reviewers.assert_called_once_with(
            mock_db,
            status=ApplicationStatus.PENDING,
            sort_order="desc",
            skip=10,
            limit=10,
        )


@pytest.mark.asyncio
async def test_list_for_reviewers_clamps_paging(mock_db):
    with patch(REPOSITORY) as mock_repo:
        mock_repo.list_for_reviewers = AsyncMock(return_value=([], 0))

        result = await list_for_reviewers(mock_db, page=0, page_size=500)

        assert result["page"] == 1
        assert result["page_size"] == 100
        _, kwargs = mock_repo.list_for_reviewers.call_args
        assert kwargs["skip"] == 0


@pytest.mark.asyncio
async def test_get_detail_requires_reviewer(mock_db, application_id):
    """The capability check happens before any read."""
    with patch(REPOSITORY) as mock_repo:
        mock_repo.get_by_id = AsyncMock()

        with pytest.raises(UnauthorizedError) as exc_info:
            await get_detail_for_reviewer(mock_db, application_id, can_review=False)

        assert exc_info.value.status_code == 403
        mock_repo.get_by_id.assert_not_called()


@pytest.mark.asyncio
async def test_get_detail_success(mock_db, application_id, reviewer_id, make_application):
    application = make_application(
        internal_notes=[
            {
                "note": "Called previous school",
                "created_by": str(reviewer_id),
                "created_at": "2026-01-14T12:30:00Z",
            }
        ]
    )

    with patch(REPOSITORY) as mock_repo:
        mock_repo.get_by_id = AsyncMock(return_value=application)
        mock_repo.list_audit_entries = AsyncMock(return_value=[])

        result = await get_detail_for_reviewer(mock_db, application_id, can_review=True)

        assert result.id == application_id
        assert result.completeness == 33
        assert "teaching_experience" in result.missing_signals
        assert result.internal_notes[0].created_by == reviewer_id
        assert result.audit_history == []


@pytest.mark.asyncio
async def test_get_review_stats(mock_db):
    with patch(REPOSITORY) as mock_repo:
        mock_repo.get_status_counts = AsyncMock(
            return_value={
                ApplicationStatus.PENDING: 3,
                ApplicationStatus.UNDER_REVIEW: 1,
                ApplicationStatus.APPROVED: 2,
                ApplicationStatus.REJECTED: 0,
                ApplicationStatus.RESUBMISSION_REQUIRED: 1,
            }
        )

        stats = await get_review_stats(mock_db)

        assert stats == {
            "pending": 3,
            "under_review": 1,
            "approved": 2,
            "rejected": 0,
            "resubmission_required": 1,
            "total": 7,
        }


# ============================================
# Test housekeeping
# ============================================


@pytest.mark.asyncio
async def test_add_internal_note_success(mock_db, application_id, reviewer_id, make_application):
    application = make_application()
    new_note = {
        "note": "Looks good",
        "created_by": str(reviewer_id),
        "created_at": datetime.now(UTC).isoformat(),
    }

    with patch(REPOSITORY) as mock_repo:
        mock_repo.get_by_id = AsyncMock(return_value=application)
        mock_repo.add_internal_note = AsyncMock(return_value=new_note)

        result = await add_internal_note(mock_db, application_id, reviewer_id, "Looks good")

        assert result == new_note
        mock_repo.add_internal_note.assert_called_once_with(
            mock_db, application, "Looks good", reviewer_id
        )


@pytest.mark.asyncio
async def test_add_internal_note_not_found(mock_db, application_id, reviewer_id):
    with patch(REPOSITORY) as mock_repo:
        mock_repo.get_by_id = AsyncMock(return_value=None)

        with pytest.raises(ApplicationNotFoundError):
            await add_internal_note(mock_db, application_id, reviewer_id, "Note")


@pytest.mark.asyncio
async def test_update_background_check_any_status(
    mock_db, application_id, reviewer_id, make_application
):
    application = make_application(ApplicationStatus.APPROVED)

    with patch(REPOSITORY) as mock_repo:
        mock_repo.get_by_id = AsyncMock(return_value=application)
        mock_repo.update_background_check = AsyncMock(return_value=application)

        result = await update_background_check(
            mock_db,
            application_id,
            reviewer_id,
            BackgroundCheckStatus.COMPLETED,
            "Clear",
        )

        assert result is application
        mock_repo.update_background_check.assert_called_once_with(
            mock_db, application, BackgroundCheckStatus.COMPLETED, "Clear"
        )


@pytest.mark.asyncio
async def test_purge_decided_application(mock_db, application_id, reviewer_id, make_application):
    application = make_application(ApplicationStatus.REJECTED)

    with patch(REPOSITORY) as mock_repo:
        mock_repo.get_by_id = AsyncMock(return_value=application)
        mock_repo.mark_purged = AsyncMock(return_value=application)

        result = await purge_application(mock_db, application_id, reviewer_id)

        assert result is application
        mock_repo.mark_purged.assert_called_once_with(mock_db, application)


@pytest.mark.asyncio
async def test_purge_open_application_refused(
    mock_db, application_id, reviewer_id, make_application
):
    with patch(REPOSITORY) as mock_repo:
        mock_repo.get_by_id = AsyncMock(return_value=make_application(ApplicationStatus.PENDING))
        mock_repo.mark_purged = AsyncMock()

        with pytest.raises(CannotPurgeApplicationError):
            await purge_application(mock_db, application_id, reviewer_id)

        mock_repo.mark_purged.assert_not_called()
