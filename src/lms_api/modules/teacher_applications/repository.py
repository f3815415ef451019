"""
Teacher Applications Repository

Database operations for teacher applications and their audit trail.
All operations are async and follow the repository pattern for clean
separation of concerns between data access and business logic.

Design Principles:
- Status changes go through apply_transition only, which validates the edge
  against the state machine and commits the change with its audit entry
- Purged (soft-deleted) applications are invisible to every read
- Timezone-aware datetime handling (UTC)
"""

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import asc, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from . import audit
from .models import (
    ActorRole,
    ApplicationAuditEntry,
    ApplicationStatus,
    BackgroundCheckStatus,
    TeacherApplication,
)
from .schemas import TeacherApplicationCreate
from .state_machine import TERMINAL_STATUSES, validate_transition

# Fields apply_transition may set alongside the status
TRANSITION_FIELDS = frozenset(
    {
        "reviewed_at",
        "reviewed_by",
        "rejection_reason",
        "review_feedback",
        "requested_documents",
        "required_documents",
        "teaching_experience",
        "specializations",
    }
)


async def create(
    db: AsyncSession,
    applicant_id: UUID,
    data: TeacherApplicationCreate,
    *,
    applicant_email: str | None = None,
    applicant_name: str | None = None,
) -> TeacherApplication:
    """Create a new application in PENDING status."""

    new_application = TeacherApplication(
        applicant_id=applicant_id,
        applicant_email=applicant_email,
        applicant_name=applicant_name,
        required_documents=data.required_documents.model_dump(),
        teaching_experience=data.teaching_experience.model_dump(),
        specializations=list(data.specializations),
        status=ApplicationStatus.PENDING,
        submitted_at=datetime.now(UTC),
    )

    db.add(new_application)
    await db.commit()
    await db.refresh(new_application)

    return new_application


async def get_by_id(db: AsyncSession, id: UUID) -> TeacherApplication | None:
    """Get a non-purged application by ID."""
    result = await db.execute(
        select(TeacherApplication).where(
            TeacherApplication.id == id,
            TeacherApplication.purged_at.is_(None),
        )
    )
    return result.scalar_one_or_none()


async def get_by_id_for_update(db: AsyncSession, id: UUID) -> TeacherApplication | None:
    """
    Re-read a non-purged application and lock its row until commit/rollback.

    populate_existing discards any stale copy held in the session's identity
    map, so the returned status is the persisted one.
    """
    result = await db.execute(
        select(TeacherApplication)
        .where(
            TeacherApplication.id == id,
            TeacherApplication.purged_at.is_(None),
        )
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_latest_for_applicant(
    db: AsyncSession, applicant_id: UUID
) -> TeacherApplication | None:
    """Get the applicant's most recently submitted, non-purged application."""
    result = await db.execute(
        select(TeacherApplication)
        .where(
            TeacherApplication.applicant_id == applicant_id,
            TeacherApplication.purged_at.is_(None),
        )
        .order_by(desc(TeacherApplication.submitted_at))
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_open_for_applicant(
    db: AsyncSession, applicant_id: UUID
) -> TeacherApplication | None:
    """Get the applicant's application that has not reached a decision, if any."""
    result = await db.execute(
        select(TeacherApplication)
        .where(
            TeacherApplication.applicant_id == applicant_id,
            TeacherApplication.purged_at.is_(None),
            TeacherApplication.status.not_in(list(TERMINAL_STATUSES)),
        )
        .limit(1)
    )
    return result.scalar_one_or_none()


async def apply_transition(
    db: AsyncSession,
    application: TeacherApplication,
    new_status: ApplicationStatus,
    *,
    actor_id: UUID,
    actor_role: ActorRole,
    notes: str | None = None,
    **fields,
) -> tuple[TeacherApplication, ApplicationAuditEntry]:
    """
    Move an application to a new status as one atomic unit of work.

    Validates the edge, applies the status and any extra fields, appends the
    audit entry and commits once. On any failure the session is rolled back
    so no partial change is ever visible.

    Args:
        db: Database session (the application should have been loaded with
            get_by_id_for_update in the same transaction)
        application: The application to transition
        new_status: Target status
        actor_id: User performing the transition
        actor_role: Role the actor performs it in
        notes: Free text recorded on the audit entry
        **fields: Additional columns to set (see TRANSITION_FIELDS)

    Returns:
        Tuple of (updated application, new audit entry)

    Raises:
        InvalidStatusTransitionError: If the edge is not allowed
        ValueError: If an unknown field is passed
    """
    unknown = set(fields) - TRANSITION_FIELDS
    if unknown:
        raise ValueError(f"Cannot set fields during a transition: {sorted(unknown)}")

    current_status = application.status
    validate_transition(current_status, new_status, actor_role)

    try:
        application.status = new_status
        for key, value in fields.items():
            setattr(application, key, value)

        entry = await audit.record(
            db,
            application,
            from_status=current_status,
            to_status=new_status,
            actor_id=actor_id,
            actor_role=actor_role,
            notes=notes,
        )

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(application)
    return application, entry


async def list_for_reviewers(
    db: AsyncSession,
    *,
    status: ApplicationStatus | None = None,
    sort_order: str = "desc",
    skip: int = 0,
    limit: int = 20,
) -> tuple[list[TeacherApplication], int]:
    """
    Get non-purged applications with optional status filter and pagination.

    Args:
        db: Database session
        status: Filter by application status (optional)
        sort_order: Direction for submitted_at ordering (asc, desc). Default: desc
        skip: Number of records to skip
        limit: Maximum records to return

    Returns:
        Tuple of (list of applications, total count matching filters)
    """
    query = select(TeacherApplication).where(TeacherApplication.purged_at.is_(None))

    if status:
        query = query.where(TeacherApplication.status == status)

    count_query = select(func.count()).select_from(query.subquery())
    total_result = await db.execute(count_query)
    total = total_result.scalar() or 0

    if sort_order.lower() == "asc":
        query = query.order_by(asc(TeacherApplication.submitted_at), asc(TeacherApplication.id))
    else:
        query = query.order_by(desc(TeacherApplication.submitted_at), desc(TeacherApplication.id))

    query = query.offset(skip).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all()), total


async def get_status_counts(db: AsyncSession) -> dict[ApplicationStatus, int]:
    """Count non-purged applications per status."""
    result = await db.execute(
        select(TeacherApplication.status, func.count())
        .where(TeacherApplication.purged_at.is_(None))
        .group_by(TeacherApplication.status)
    )
    counts = {status: 0 for status in ApplicationStatus}
    for status, count in result.all():
        counts[ApplicationStatus(status)] = count
    return counts


async def list_audit_entries(
    db: AsyncSession, application_id: UUID
) -> list[ApplicationAuditEntry]:
    """Get the audit trail of an application in chronological order."""
    result = await db.execute(
        select(ApplicationAuditEntry)
        .where(ApplicationAuditEntry.application_id == application_id)
        .order_by(asc(ApplicationAuditEntry.timestamp))
    )
    return list(result.scalars().all())


async def add_internal_note(
    db: AsyncSession,
    application: TeacherApplication,
    note: str,
    created_by: UUID,
) -> dict:
    """
    Append a reviewer-only note to the internal_notes JSON array.

    Returns:
        The newly created note object with note, created_by, created_at
    """
    new_note = {
        "note": note,
        "created_by": str(created_by),
        "created_at": datetime.now(UTC).isoformat(),
    }

    # Create a new list to trigger SQLAlchemy change detection
    application.internal_notes = [*(application.internal_notes or []), new_note]

    await db.commit()
    await db.refresh(application)

    return new_note


async def update_background_check(
    db: AsyncSession,
    application: TeacherApplication,
    status: BackgroundCheckStatus,
    notes: str | None,
) -> TeacherApplication:
    """Set the informational background check fields."""
    application.background_check_status = status
    application.background_check_notes = notes

    await db.commit()
    await db.refresh(application)

    return application


async def mark_purged(db: AsyncSession, application: TeacherApplication) -> TeacherApplication:
    """Soft-delete an application. Its audit entries are kept."""
    application.purged_at = datetime.now(UTC)

    await db.commit()
    await db.refresh(application)

    return application
