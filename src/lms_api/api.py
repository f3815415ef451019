from fastapi import APIRouter

from lms_api.modules.teacher_applications import (
    admin_teacher_applications_router,
    teacher_applications_router,
)

api_router = APIRouter()

api_router.include_router(
    teacher_applications_router,
    prefix="/teacher-applications",
    tags=["Teacher Applications"],
)

api_router.include_router(
    admin_teacher_applications_router,
    prefix="/admin/teacher-applications",
    tags=["Admin - Teacher Applications"],
)
