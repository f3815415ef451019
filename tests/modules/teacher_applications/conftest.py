"""
Fixtures for teacher applications tests.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from lms_api.core.auth import CurrentUser
from lms_api.core.database import Base
from lms_api.modules.teacher_applications.models import (
    ApplicationStatus,
    BackgroundCheckStatus,
    TeacherApplication,
)
from lms_api.modules.teacher_applications.schemas import (
    RequiredDocuments,
    TeacherApplicationCreate,
    TeachingExperience,
)


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.refresh = AsyncMock()
    db.rollback = AsyncMock()
    db.flush = AsyncMock()
    db.execute = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture
def reviewer_id():
    """Return a consistent reviewer UUID for testing."""
    return UUID("00000000-0000-0000-0000-000000000001")


@pytest.fixture
def applicant_id():
    """Return a consistent applicant UUID for testing."""
    return UUID("00000000-0000-0000-0000-0000000000a1")


@pytest.fixture
def application_id():
    """Return a fresh application UUID for testing."""
    return uuid4()


@pytest.fixture
def applicant(applicant_id):
    """Authenticated applicant."""
    return CurrentUser(
        id=applicant_id,
        email="teacher@test.com",
        role="teacher",
        name="Ada Teacher",
    )


@pytest.fixture
def reviewer(reviewer_id):
    """Authenticated reviewer."""
    return CurrentUser(
        id=reviewer_id,
        email="reviewer@test.com",
        role="admin",
        name="Rita Reviewer",
    )


@pytest.fixture
def make_application(application_id, applicant_id):
    """Factory for mocked TeacherApplication rows in a given status."""

    def _make(status: ApplicationStatus = ApplicationStatus.PENDING, **overrides):
        app = MagicMock(spec=TeacherApplication)
        app.id = application_id
        app.applicant_id = applicant_id
        app.applicant_email = "teacher@test.com"
        app.applicant_name = "Ada Teacher"
        app.required_documents = {
            "resume": True,
            "degree": True,
            "certification": False,
            "identification": False,
        }
        app.teaching_experience = {
            "years": 0,
            "previous_institutions": [],
            "description": "",
        }
        app.specializations = []
        app.status = status
        app.submitted_at = datetime.now(UTC) - timedelta(days=1)
        app.reviewed_at = None
        app.reviewed_by = None
        app.rejection_reason = None
        app.review_feedback = None
        app.requested_documents = None
        app.background_check_status = BackgroundCheckStatus.NOT_STARTED
        app.background_check_notes = None
        app.internal_notes = None
        app.purged_at = None
        for key, value in overrides.items():
            setattr(app, key, value)
        return app

    return _make


@pytest.fixture
def sample_application_create():
    """Submission with resume and degree only (2 of 6 signals)."""
    return TeacherApplicationCreate(
        required_documents=RequiredDocuments(resume=True, degree=True),
        teaching_experience=TeachingExperience(years=0),
        specializations=[],
    )


@pytest_asyncio.fixture
async def db_session():
    """Real AsyncSession on a fresh in-memory SQLite database."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session

    await engine.dispose()
