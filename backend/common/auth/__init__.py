"""
Authentication Framework

Bearer-token identity, header-supplied roles and the user directory
collaborator.
"""

from backend.common.auth.user import (
    UserRole,
    UserProfile,
    UserDirectory,
    StaticUserDirectory
)

from backend.common.auth.dependencies import (
    get_current_user_id,
    get_current_role,
    require_privileged_role
)

__all__ = [
    'UserRole',
    'UserProfile',
    'UserDirectory',
    'StaticUserDirectory',
    'get_current_user_id',
    'get_current_role',
    'require_privileged_role',
]
