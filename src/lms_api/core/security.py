"""
Security Utilities

JWT encoding and decoding for bearer authentication.
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt

from lms_api.core.config import settings

logger = logging.getLogger(__name__)


def create_access_token(
    subject: str,
    *,
    email: str = "",
    role: str = "",
    name: str | None = None,
    expires_minutes: int | None = None,
) -> str:
    """
    Create a signed access token.

    Args:
        subject: User ID placed in the `sub` claim
        email: User email claim
        role: User role claim
        name: Optional display name claim
        expires_minutes: Lifetime override (defaults to settings)

    Returns:
        Encoded JWT string
    """
    now = datetime.now(UTC)
    lifetime = expires_minutes or settings.access_token_expire_minutes
    payload: dict[str, Any] = {
        "sub": subject,
        "email": email,
        "role": role,
        "type": "access",
        "iat": now,
        "exp": now + timedelta(minutes=lifetime),
    }
    if name:
        payload["name"] = name
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict[str, Any] | None:
    """
    Decode and verify a JWT.

    Returns:
        The claims dict, or None if the token is invalid or expired
    """
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        logger.debug("Token expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.debug(f"Token rejected: {e}")
        return None
