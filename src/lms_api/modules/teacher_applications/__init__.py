"""
Teacher Applications Module

Handles the teacher onboarding review workflow:
1. Application submission with checklist completeness scoring
2. Reviewer decisions (approve, reject, request resubmission)
3. Applicant resubmission after requested changes
4. Append-only audit trail and applicant email notifications

API Endpoints (applicant):
- POST /teacher-applications - Submit new application
- GET /teacher-applications/me - Get my application status
- POST /teacher-applications/{id}/resubmit - Resubmit after requested changes

API Endpoints (reviewer):
- GET /admin/teacher-applications - Reviewer queue
- GET /admin/teacher-applications/stats - Counts per status
- GET /admin/teacher-applications/{id} - Details with audit history
- POST /admin/teacher-applications/{id}/start-review - Start reviewing
- POST /admin/teacher-applications/{id}/review - Decide
- POST /admin/teacher-applications/{id}/notes - Add internal note
- PUT /admin/teacher-applications/{id}/background-check - Record background check
- DELETE /admin/teacher-applications/{id} - Purge decided application

Design Features:
- State machine validation for every status transition
- Transition and audit entry committed together under a row lock
- Notification failures never undo a committed decision
"""

from .admin_router import router as admin_teacher_applications_router
from .router import router as teacher_applications_router

__all__ = ["teacher_applications_router", "admin_teacher_applications_router"]
