"""
Authentication and Authorization Module

Provides authentication dependencies for FastAPI endpoints.
Identity is owned by the external auth service; this module only validates
the bearer JWT it issues and exposes the "can review applications"
capability as a boolean check.

SECURITY NOTE:
- Development test tokens are ONLY accepted when PYTHON_ENV=development
- Production environments MUST set PYTHON_ENV=production
"""

import logging
import os
from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from lms_api.core.config import settings
from lms_api.core.security import decode_token

logger = logging.getLogger(__name__)

# Security scheme for OpenAPI documentation
security = HTTPBearer(
    auto_error=True,
    description="JWT Bearer token for authentication",
)

# Roles that carry the "can review applications" capability
REVIEWER_ROLES = frozenset({"admin", "super_admin", "reviewer"})


@dataclass
class CurrentUser:
    """
    Represents an authenticated user.

    Populated from JWT claims after token validation.

    Attributes:
        id: User's unique identifier (UUID)
        email: User's email address
        role: User's role (e.g. 'teacher', 'admin')
        name: User's display name (optional)
    """

    id: UUID
    email: str
    role: str
    name: str | None = None

    def __str__(self) -> str:
        return f"CurrentUser(id={self.id}, email={self.email}, role={self.role})"


def can_review_applications(user: CurrentUser) -> bool:
    """Capability check for reviewer-only operations."""
    return user.role in REVIEWER_ROLES


def _is_dev_mode_safe() -> bool:
    """
    Check if development test tokens may be accepted.

    Requires settings.is_development and a PYTHON_ENV environment variable
    explicitly set to development. An unset PYTHON_ENV never enables them.
    """
    env_var = os.getenv("PYTHON_ENV", "").lower()

    is_safe = (
        settings.is_development
        and not settings.is_production
        and env_var == "development"
    )

    if is_safe:
        logger.warning(
            "SECURITY: Development auth mode is ENABLED. This MUST NOT be used in production!"
        )

    return is_safe


_DEVELOPMENT_MODE = _is_dev_mode_safe()

# Development reviewer for local testing (only used when PYTHON_ENV=development)
_DEV_REVIEWER = CurrentUser(
    id=UUID("00000000-0000-0000-0000-000000000001"),
    email="reviewer@lms.dev",
    role="admin",
    name="Development Reviewer",
)


def _dev_user_from_token(token: str) -> CurrentUser | None:
    """Resolve development test tokens: 'dev-token' or 'applicant:<uuid>'."""
    if token == "dev-token":
        return _DEV_REVIEWER

    if token.startswith("applicant:"):
        try:
            user_id = UUID(token.split(":", 1)[1])
        except ValueError:
            return None
        return CurrentUser(
            id=user_id,
            email=f"teacher-{str(user_id)[:8]}@lms.dev",
            role="teacher",
            name="Test Teacher",
        )

    return None


def _unauthorized(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _validate_jwt_token(token: str) -> CurrentUser:
    """
    Validate JWT token and extract user claims.

    Raises:
        HTTPException 401: If token is invalid, expired or has bad claims
    """
    if _DEVELOPMENT_MODE:
        dev_user = _dev_user_from_token(token)
        if dev_user is not None:
            logger.debug("Development mode: Using test token")
            return dev_user

    payload = decode_token(token)

    if payload is None:
        logger.warning("Invalid or expired JWT token")
        raise _unauthorized("INVALID_TOKEN", "Invalid or expired authentication token.")

    if payload.get("type", "access") != "access":
        logger.warning(f"Invalid token type: {payload.get('type')}")
        raise _unauthorized("INVALID_TOKEN_TYPE", "This endpoint requires an access token.")

    try:
        user_id_str = payload.get("sub")
        if not user_id_str:
            raise ValueError("Missing 'sub' claim in token")

        return CurrentUser(
            id=UUID(user_id_str),
            email=payload.get("email", ""),
            role=payload.get("role", ""),
            name=payload.get("name"),
        )
    except (ValueError, KeyError) as e:
        logger.warning(f"Invalid token claims: {e}")
        raise _unauthorized(
            "INVALID_TOKEN_CLAIMS", "Token contains invalid or missing claims."
        ) from e


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> CurrentUser:
    """
    FastAPI dependency that validates the bearer token and returns the user.

    Usage:
        @router.get("/endpoint")
        async def endpoint(user: CurrentUser = Depends(get_current_user)):
            ...

    Raises:
        HTTPException 401: If token is missing, invalid, or expired
    """
    user = await _validate_jwt_token(credentials.credentials)
    logger.debug(f"Authenticated user: {user.id} ({user.role})")
    return user


async def get_current_reviewer(
    user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """
    FastAPI dependency for reviewer-only endpoints.

    Raises:
        HTTPException 401: If token is missing, invalid, or expired
        HTTPException 403: If the user cannot review applications
    """
    if not can_review_applications(user):
        logger.warning(
            f"Access denied: User {user.id} ({user.email}) has role '{user.role}', "
            f"but one of {sorted(REVIEWER_ROLES)} is required"
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "REVIEW_ACCESS_REQUIRED",
                "message": "Reviewer access is required for this operation.",
            },
        )

    return user


__all__ = [
    "CurrentUser",
    "REVIEWER_ROLES",
    "can_review_applications",
    "get_current_reviewer",
    "get_current_user",
]
