"""
Teacher Application Audit & Notifications

Appends immutable audit entries for status transitions and derives the
notification intent for each reviewer or applicant action. Delivery belongs
to the email service: a failed delivery is logged and never undoes a
committed transition.
"""

import enum
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lms_api.core.email import send_notification
from lms_api.modules.teacher_applications.models import (
    ActorRole,
    ApplicationAuditEntry,
    ApplicationStatus,
    ReviewAction,
    TeacherApplication,
)

logger = logging.getLogger(__name__)

_TIMESTAMP_STEP = timedelta(microseconds=1)


class NotificationKind(str, enum.Enum):
    """Kinds of notification the workflow can emit."""

    STATUS_CHANGED = "status_changed"
    RESUBMISSION_REQUESTED = "resubmission_requested"
    APPROVED = "approved"
    REJECTED = "rejected"


ACTION_NOTIFICATION_KINDS: dict[ReviewAction, NotificationKind] = {
    ReviewAction.APPROVE: NotificationKind.APPROVED,
    ReviewAction.REJECT: NotificationKind.REJECTED,
    ReviewAction.REQUEST_RESUBMISSION: NotificationKind.RESUBMISSION_REQUESTED,
}


@dataclass(frozen=True)
class NotificationIntent:
    """A notification to send, decoupled from its delivery."""

    recipient_id: UUID
    kind: NotificationKind
    payload: dict[str, Any] = field(default_factory=dict)


def _as_utc(value: datetime) -> datetime:
    # Some backends (SQLite) hand back naive datetimes for timezone-aware columns
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


async def _latest_timestamp(db: AsyncSession, application_id: UUID) -> datetime | None:
    result = await db.execute(
        select(func.max(ApplicationAuditEntry.timestamp)).where(
            ApplicationAuditEntry.application_id == application_id
        )
    )
    latest = result.scalar()
    return _as_utc(latest) if latest is not None else None


async def record(
    db: AsyncSession,
    application: TeacherApplication,
    from_status: ApplicationStatus,
    to_status: ApplicationStatus,
    actor_id: UUID,
    actor_role: ActorRole,
    notes: str | None = None,
) -> ApplicationAuditEntry:
    """
    Append an audit entry to the current unit of work.

    The entry is flushed but not committed: it becomes visible together with
    the status change it describes. Timestamps are strictly increasing per
    application even if the clock does not advance between two transitions.

    Args:
        db: Database session holding the transition's transaction
        application: The application being transitioned
        from_status: Status before the transition
        to_status: Status after the transition
        actor_id: User who caused the transition
        actor_role: Role the actor acted in
        notes: Optional free text recorded with the entry

    Returns:
        The new ApplicationAuditEntry

    Raises:
        SQLAlchemyError: If storage is unavailable (propagated)
    """
    timestamp = datetime.now(UTC)
    latest = await _latest_timestamp(db, application.id)
    if latest is not None and timestamp <= latest:
        timestamp = latest + _TIMESTAMP_STEP

    entry = ApplicationAuditEntry(
        application_id=application.id,
        from_status=from_status,
        to_status=to_status,
        actor_id=actor_id,
        actor_role=actor_role,
        notes=notes,
        timestamp=timestamp,
    )
    db.add(entry)
    await db.flush()

    logger.info(
        f"Audit: application {application.id} {from_status.value} -> {to_status.value} "
        f"by {actor_role.value} {actor_id}"
    )
    return entry


def notify(
    application: TeacherApplication,
    action: ReviewAction | None = None,
) -> NotificationIntent:
    """
    Build the notification intent for an action on an application.

    Reviewer decisions map to their own kind; every other transition
    (start of review, resubmission) is a plain status change.
    """
    kind = ACTION_NOTIFICATION_KINDS.get(action, NotificationKind.STATUS_CHANGED)

    payload: dict[str, Any] = {
        "application_id": str(application.id),
        "status": application.status.value,
        "applicant_email": application.applicant_email,
        "applicant_name": application.applicant_name,
    }

    if kind == NotificationKind.REJECTED:
        payload["rejection_reason"] = application.rejection_reason
    if kind in (NotificationKind.RESUBMISSION_REQUESTED, NotificationKind.APPROVED):
        payload["feedback"] = application.review_feedback
    if kind == NotificationKind.RESUBMISSION_REQUESTED:
        payload["requested_documents"] = list(application.requested_documents or [])

    return NotificationIntent(
        recipient_id=application.applicant_id,
        kind=kind,
        payload=payload,
    )


async def dispatch(intent: NotificationIntent) -> bool:
    """
    Hand a notification intent to the delivery service.

    Fire-and-forget: failures are logged and reported as False, never raised,
    and never retried here.
    """
    try:
        delivered = await send_notification(intent)
        if not delivered:
            logger.error(
                f"Notification '{intent.kind.value}' for {intent.recipient_id} was not delivered"
            )
        return delivered
    except Exception as e:
        logger.error(
            f"Failed to dispatch '{intent.kind.value}' notification for {intent.recipient_id}: {e}",
            exc_info=True,
        )
        return False
