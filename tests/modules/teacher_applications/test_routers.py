"""
HTTP tests for the applicant and reviewer routers.

The service layer is patched; these tests cover authentication, request
validation, status codes and the structured error responses.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from lms_api.core import rate_limit
from lms_api.core.auth import CurrentUser, get_current_user
from lms_api.core.database import get_db
from lms_api.main import app
from lms_api.modules.teacher_applications.audit import NotificationIntent, NotificationKind
from lms_api.modules.teacher_applications.models import (
    ApplicationStatus,
    BackgroundCheckStatus,
    ReviewAction,
)
from lms_api.modules.teacher_applications.schemas import ApplicationListItem
from lms_api.modules.teacher_applications.service import (
    AlreadyDecidedError,
    ApplicationNotFoundError,
    DuplicateApplicationError,
    ReviewResult,
)

ADMIN_SERVICE = "lms_api.modules.teacher_applications.admin_router.service"
APPLICANT_SERVICE = "lms_api.modules.teacher_applications.router.service"
BASE = "/api/v1"


@pytest.fixture
def current_user(reviewer):
    """The user the auth dependency resolves to; tests may swap it."""
    return {"user": reviewer}


@pytest_asyncio.fixture
async def client(mock_db, current_user):
    async def _override_db():
        yield mock_db

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[get_current_user] = lambda: current_user["user"]
    rate_limit._memory_store.clear()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def _review_result(application, kind: NotificationKind) -> ReviewResult:
    return ReviewResult(
        application=application,
        audit_entry=MagicMock(),
        notification=NotificationIntent(recipient_id=application.applicant_id, kind=kind),
    )


# ============================================
# Health
# ============================================


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


# ============================================
# Applicant router
# ============================================


@pytest.mark.asyncio
async def test_submit_application_created(client, current_user, applicant, make_application):
    current_user["user"] = applicant

    with patch(APPLICANT_SERVICE) as mock_service:
        mock_service.submit_application = AsyncMock(return_value=make_application())

        response = await client.post(
            f"{BASE}/teacher-applications",
            json={
                "required_documents": {"resume": True, "degree": True},
                "teaching_experience": {"years": 0},
                "specializations": [],
            },
        )

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "pending"
    assert body["completeness"] == 33


@pytest.mark.asyncio
async def test_submit_application_duplicate(client, current_user, applicant):
    current_user["user"] = applicant

    with patch(APPLICANT_SERVICE) as mock_service:
        mock_service.submit_application = AsyncMock(
            side_effect=DuplicateApplicationError("You already have an application in progress.")
        )

        response = await client.post(f"{BASE}/teacher-applications", json={})

    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "DUPLICATE_APPLICATION"


@pytest.mark.asyncio
async def test_get_my_application_not_found(client, current_user, applicant):
    current_user["user"] = applicant

    with patch(APPLICANT_SERVICE) as mock_service:
        mock_service.get_for_applicant = AsyncMock(side_effect=ApplicationNotFoundError())

        response = await client.get(f"{BASE}/teacher-applications/me")

    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "APPLICATION_NOT_FOUND"


@pytest.mark.asyncio
async def test_unexpected_error_is_internal_error(client, current_user, applicant):
    current_user["user"] = applicant

    with patch(APPLICANT_SERVICE) as mock_service:
        mock_service.get_for_applicant = AsyncMock(side_effect=RuntimeError("boom"))

        response = await client.get(f"{BASE}/teacher-applications/me")

    assert response.status_code == 500
    assert response.json()["detail"]["error"] == "INTERNAL_ERROR"


@pytest.mark.asyncio
async def test_resubmit_application(client, current_user, applicant, make_application):
    current_user["user"] = applicant
    application = make_application(ApplicationStatus.PENDING)

    with patch(APPLICANT_SERVICE) as mock_service:
        mock_service.resubmit_application = AsyncMock(
            return_value=_review_result(application, NotificationKind.STATUS_CHANGED)
        )

        response = await client.post(
            f"{BASE}/teacher-applications/{application.id}/resubmit",
            json={"required_documents": {"certification": True}},
        )

    assert response.status_code == 200
    assert response.json()["status"] == "pending"


# ============================================
# Reviewer router
# ============================================


@pytest.mark.asyncio
async def test_list_requires_reviewer_role(client, current_user, applicant):
    current_user["user"] = applicant

    response = await client.get(f"{BASE}/admin/teacher-applications")

    assert response.status_code == 403
    assert response.json()["detail"]["error"] == "REVIEW_ACCESS_REQUIRED"


@pytest.mark.asyncio
async def test_list_applications(client, make_application):
    application = make_application()
    item = ApplicationListItem(
        id=application.id,
        applicant_id=application.applicant_id,
        applicant_name=application.applicant_name,
        status=application.status,
        completeness=33,
        specializations=[],
        background_check_status=BackgroundCheckStatus.NOT_STARTED,
        submitted_at=application.submitted_at,
    )

    with patch(ADMIN_SERVICE) as mock_service:
        mock_service.list_for_reviewers = AsyncMock(
            return_value={"items": [item], "total": 1, "page": 1, "page_size": 20}
        )

        response = await client.get(
            f"{BASE}/admin/teacher-applications",
            params={"status": "pending", "page_size": 20},
        )

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["items"][0]["completeness"] == 33
    mock_service.list_for_reviewers.assert_called_once()
    _, kwargs = mock_service.list_for_reviewers.call_args
    assert kwargs["status"] == ApplicationStatus.PENDING


@pytest.mark.asyncio
async def test_list_rejects_bad_sort_order(client):
    response = await client.get(
        f"{BASE}/admin/teacher-applications", params={"sort_order": "sideways"}
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_detail_forbidden_for_applicant(client, current_user, applicant):
    """The service refuses callers without the review capability."""
    current_user["user"] = applicant

    response = await client.get(f"{BASE}/admin/teacher-applications/{uuid4()}")

    assert response.status_code == 403
    assert response.json()["detail"]["error"] == "REVIEW_ACCESS_REQUIRED"


@pytest.mark.asyncio
async def test_review_approve(client, reviewer_id, make_application):
    application = make_application(
        ApplicationStatus.APPROVED,
        reviewed_by=reviewer_id,
        reviewed_at=datetime.now(UTC),
    )

    with patch(ADMIN_SERVICE) as mock_service:
        mock_service.review_application = AsyncMock(
            return_value=_review_result(application, NotificationKind.APPROVED)
        )

        response = await client.post(
            f"{BASE}/admin/teacher-applications/{application.id}/review",
            json={"action": "approve"},
        )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "approved"
    assert body["notification_kind"] == "approved"
    assert body["message"] == "Application approved"
    args, _ = mock_service.review_application.call_args
    assert args[2] == ReviewAction.APPROVE
    assert args[3] == reviewer_id


@pytest.mark.asyncio
async def test_review_reject_without_reason_is_422(client):
    with patch(ADMIN_SERVICE) as mock_service:
        mock_service.review_application = AsyncMock()

        response = await client.post(
            f"{BASE}/admin/teacher-applications/{uuid4()}/review",
            json={"action": "reject", "rejection_reason": ""},
        )

    assert response.status_code == 422
    mock_service.review_application.assert_not_called()


@pytest.mark.asyncio
async def test_review_already_decided_is_409(client):
    with patch(ADMIN_SERVICE) as mock_service:
        mock_service.review_application = AsyncMock(side_effect=AlreadyDecidedError("approved"))

        response = await client.post(
            f"{BASE}/admin/teacher-applications/{uuid4()}/review",
            json={"action": "approve"},
        )

    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "ALREADY_DECIDED"


@pytest.mark.asyncio
async def test_review_rate_limited(client):
    with patch(ADMIN_SERVICE) as mock_service:
        mock_service.review_application = AsyncMock(side_effect=AlreadyDecidedError("approved"))

        statuses = []
        for _ in range(11):
            response = await client.post(
                f"{BASE}/admin/teacher-applications/{uuid4()}/review",
                json={"action": "approve"},
            )
            statuses.append(response.status_code)

    assert statuses[:10] == [409] * 10
    assert statuses[10] == 429


@pytest.mark.asyncio
async def test_add_note(client, reviewer_id):
    application_id = uuid4()
    note = {
        "note": "Verified references",
        "created_by": str(reviewer_id),
        "created_at": datetime.now(UTC).isoformat(),
    }

    with patch(ADMIN_SERVICE) as mock_service:
        mock_service.add_internal_note = AsyncMock(return_value=note)

        response = await client.post(
            f"{BASE}/admin/teacher-applications/{application_id}/notes",
            json={"note": "Verified references"},
        )

    assert response.status_code == 200
    assert response.json()["note"]["note"] == "Verified references"


@pytest.mark.asyncio
async def test_purge_not_found(client):
    with patch(ADMIN_SERVICE) as mock_service:
        mock_service.purge_application = AsyncMock(side_effect=ApplicationNotFoundError())

        response = await client.delete(f"{BASE}/admin/teacher-applications/{uuid4()}")

    assert response.status_code == 404
