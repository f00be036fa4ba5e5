"""
User Models

Roles, the user profile record and the ``UserDirectory`` collaborator the
engine uses to resolve user identities held in a separate identity store.
"""

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional

from backend.common.serialization import SerializableMixin


class UserRole(enum.Enum):
    """User roles for authorization."""

    ADMIN = "admin"
    TUTOR = "tutor"
    STUDENT = "student"
    PARENT = "parent"

    @property
    def is_privileged(self) -> bool:
        """Roles that may author assessments and see every attempt and solution."""
        return self in (UserRole.ADMIN, UserRole.TUTOR)

    @classmethod
    def parse(cls, value: Any, default: 'UserRole' = None) -> 'UserRole':
        if isinstance(value, cls):
            return value
        if value is None:
            return default or cls.STUDENT
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown role: {value!r}")


@dataclass
class UserProfile(SerializableMixin):
    """
    A user as seen by the assessment engine.

    Attributes:
        id: User identifier shared with the identity store
        role: The user's role
        display_name: Name shown to markers and tutors
        grade: School grade, for learners
        metadata: Additional metadata about the user
    """

    __serializable_fields__ = ["id", "role", "display_name", "grade", "metadata"]
    __optional_fields__ = ["display_name", "grade", "metadata"]

    id: str
    role: UserRole = UserRole.STUDENT
    display_name: Optional[str] = None
    grade: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.role = UserRole.parse(self.role)

    @property
    def is_privileged(self) -> bool:
        return self.role.is_privileged


class UserDirectory(ABC):
    """
    Resolves user identifiers into profiles.

    Identities live outside the engine's own store, so the engine never
    assumes a user row exists for an ID it is given.
    """

    @abstractmethod
    async def resolve(self, user_id: str) -> Optional[UserProfile]:
        """
        Look up a user.

        Args:
            user_id: The user identifier

        Returns:
            The profile, or None if the identity store does not know the user
        """
        pass


class StaticUserDirectory(UserDirectory):
    """Directory over a fixed set of profiles."""

    def __init__(self, profiles: Optional[Iterable[UserProfile]] = None):
        self._profiles = {profile.id: profile for profile in profiles or []}

    def add(self, profile: UserProfile) -> None:
        self._profiles[profile.id] = profile

    async def resolve(self, user_id: str) -> Optional[UserProfile]:
        return self._profiles.get(user_id)
