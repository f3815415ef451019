"""
Teacher Application State Machine

Single source of truth for legal status transitions. Every status change in
the repository is validated here; callers never compare status strings to
decide what is allowed.

    pending --------------> under_review
    pending | under_review -> approved | rejected | resubmission_required
    resubmission_required -> pending   (applicant resubmits)
    approved, rejected     -> terminal
"""

from lms_api.modules.teacher_applications.models import ActorRole, ApplicationStatus

# Legal edges and the actor role that owns each one.
# Every ApplicationStatus must be a key, terminal states map to an empty dict.
TRANSITIONS: dict[ApplicationStatus, dict[ApplicationStatus, ActorRole]] = {
    ApplicationStatus.PENDING: {
        ApplicationStatus.UNDER_REVIEW: ActorRole.REVIEWER,  # Reviewer opens for decision
        ApplicationStatus.APPROVED: ActorRole.REVIEWER,  # Fast-track approval
        ApplicationStatus.REJECTED: ActorRole.REVIEWER,
        ApplicationStatus.RESUBMISSION_REQUIRED: ActorRole.REVIEWER,
    },
    ApplicationStatus.UNDER_REVIEW: {
        ApplicationStatus.APPROVED: ActorRole.REVIEWER,
        ApplicationStatus.REJECTED: ActorRole.REVIEWER,
        ApplicationStatus.RESUBMISSION_REQUIRED: ActorRole.REVIEWER,
    },
    ApplicationStatus.RESUBMISSION_REQUIRED: {
        ApplicationStatus.PENDING: ActorRole.APPLICANT,  # New review cycle
    },
    # Terminal states - no transitions allowed
    ApplicationStatus.APPROVED: {},
    ApplicationStatus.REJECTED: {},
}

TERMINAL_STATUSES = frozenset(status for status, edges in TRANSITIONS.items() if not edges)


class InvalidStatusTransitionError(ValueError):
    """Raised when a transition is not an edge of the state machine."""

    def __init__(
        self,
        current_status: ApplicationStatus,
        new_status: ApplicationStatus,
        actor_role: ActorRole | None = None,
    ):
        self.current_status = current_status
        self.new_status = new_status
        self.actor_role = actor_role
        valid_transitions = sorted(s.value for s in allowed_targets(current_status))
        detail = f"Invalid status transition: {current_status.value} -> {new_status.value}."
        if actor_role is not None and new_status in TRANSITIONS.get(current_status, {}):
            detail += f" Not allowed for actor role '{actor_role.value}'."
        super().__init__(f"{detail} Valid transitions: {valid_transitions}")


class TransitionPreconditionError(ValueError):
    """Raised when a transition's precondition is not satisfied."""

    def __init__(self, target_status: ApplicationStatus, field: str, message: str):
        self.target_status = target_status
        self.field = field
        super().__init__(message)


def allowed_targets(status: ApplicationStatus) -> frozenset[ApplicationStatus]:
    """Statuses reachable in one step from `status`."""
    return frozenset(TRANSITIONS.get(status, {}))


def is_terminal(status: ApplicationStatus) -> bool:
    """Approved and rejected end the review cycle."""
    return status in TERMINAL_STATUSES


def check_preconditions(
    target_status: ApplicationStatus,
    *,
    rejection_reason: str | None = None,
    feedback: str | None = None,
) -> None:
    """
    Enforce the per-target preconditions.

    Raises:
        TransitionPreconditionError: rejection without a reason, or a
            resubmission request without feedback for the applicant
    """
    if target_status == ApplicationStatus.REJECTED and not (rejection_reason or "").strip():
        raise TransitionPreconditionError(
            target_status,
            "rejection_reason",
            "A rejection reason is required to reject an application.",
        )

    if target_status == ApplicationStatus.RESUBMISSION_REQUIRED and not (feedback or "").strip():
        raise TransitionPreconditionError(
            target_status,
            "notes",
            "Feedback is required so the applicant knows what to fix.",
        )


def validate_transition(
    current_status: ApplicationStatus,
    new_status: ApplicationStatus,
    actor_role: ActorRole,
) -> None:
    """
    Validate a transition edge and the actor allowed to take it.

    Raises:
        InvalidStatusTransitionError: If the edge does not exist or belongs
            to a different actor role
    """
    edges = TRANSITIONS.get(current_status, {})

    if new_status not in edges:
        raise InvalidStatusTransitionError(current_status, new_status)

    if edges[new_status] != actor_role:
        raise InvalidStatusTransitionError(current_status, new_status, actor_role)
