"""
Authentication dependencies for the assessment engine API.

Identity arrives as a bearer token and the role in an ``X-User-Role``
header set by the upstream RBAC layer. For development/testing the token is
taken as the user ID, and ``test-token`` maps to ``test-user``.
"""

import logging
from fastapi import Header, HTTPException, status
from typing import Optional

from backend.common.auth.user import UserRole

logger = logging.getLogger(__name__)


async def get_current_user_id(authorization: Optional[str] = Header(None)) -> str:
    """
    Get the current user ID from the authorization header.

    Args:
        authorization: Authorization header value

    Returns:
        User ID string

    Raises:
        HTTPException: If authentication fails
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header"
        )

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format"
        )

    if scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication scheme"
        )

    if token == "test-token":
        return "test-user"
    return token


async def get_current_role(x_user_role: Optional[str] = Header(None)) -> UserRole:
    """
    Get the caller's role from the ``X-User-Role`` header.

    A missing header means the least privileged learner role.

    Raises:
        HTTPException: If the header names an unknown role
    """
    try:
        return UserRole.parse(x_user_role)
    except ValueError:
        logger.warning(f"Rejected unknown role header: {x_user_role!r}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Unknown role: {x_user_role}"
        )


async def require_privileged_role(x_user_role: Optional[str] = Header(None)) -> UserRole:
    """Dependency admitting only ADMIN and TUTOR callers."""
    role = await get_current_role(x_user_role)
    if not role.is_privileged:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This operation requires an admin or tutor role"
        )
    return role
