"""
Performance Repositories

Per-topic mastery records and per-user learning profiles, with the storage
contract both the in-memory and SQL implementations follow.
"""

import datetime
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from backend.common.serialization import SerializableMixin, parse_datetime, utcnow
from backend.domain.questions.model import Difficulty


@dataclass
class TopicMastery(SerializableMixin):
    """
    A user's accumulated accuracy on one topic.

    Attributes:
        questions_attempted: Graded answers on the topic
        questions_correct: Graded answers marked correct
        mastery_percentage: ``round(correct / attempted * 100)``
    """

    __serializable_fields__ = [
        "user_id", "topic_id", "questions_attempted", "questions_correct",
        "total_score", "max_score", "mastery_percentage", "last_attempt_at", "updated_at"
    ]
    __optional_fields__ = [
        "questions_attempted", "questions_correct", "total_score", "max_score",
        "mastery_percentage", "last_attempt_at", "updated_at"
    ]

    user_id: str
    topic_id: str
    questions_attempted: int = 0
    questions_correct: int = 0
    total_score: float = 0.0
    max_score: float = 0.0
    mastery_percentage: int = 0
    last_attempt_at: Optional[datetime.datetime] = None
    updated_at: datetime.datetime = field(default_factory=utcnow)

    def __post_init__(self):
        self.last_attempt_at = parse_datetime(self.last_attempt_at)
        self.updated_at = parse_datetime(self.updated_at) or utcnow()


@dataclass
class LearningProfile(SerializableMixin):
    """The difficulty currently recommended for a user."""

    __serializable_fields__ = [
        "user_id", "recommended_difficulty", "last_percentage", "last_attempt_id", "updated_at"
    ]
    __optional_fields__ = ["recommended_difficulty", "last_percentage", "last_attempt_id", "updated_at"]

    user_id: str
    recommended_difficulty: Difficulty = Difficulty.MEDIUM
    last_percentage: Optional[int] = None
    last_attempt_id: Optional[str] = None
    updated_at: datetime.datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if isinstance(self.recommended_difficulty, str):
            self.recommended_difficulty = Difficulty(self.recommended_difficulty)
        self.updated_at = parse_datetime(self.updated_at) or utcnow()


class MasteryRepository(ABC):
    """
    Abstract base class for mastery storage. There is at most one mastery
    record per ``(user_id, topic_id)``.
    """

    @abstractmethod
    async def get(self, user_id: str, topic_id: str) -> Optional[TopicMastery]:
        pass

    @abstractmethod
    async def upsert(self, mastery: TopicMastery) -> TopicMastery:
        """Insert or replace the record for ``(user_id, topic_id)``."""
        pass

    @abstractmethod
    async def list_for_user(self, user_id: str) -> List[TopicMastery]:
        pass

    @abstractmethod
    async def get_profile(self, user_id: str) -> Optional[LearningProfile]:
        pass

    @abstractmethod
    async def save_profile(self, profile: LearningProfile) -> LearningProfile:
        pass


class MemoryMasteryRepository(MasteryRepository):
    """In-memory mastery storage for development and tests."""

    def __init__(self):
        self._mastery: Dict[Tuple[str, str], TopicMastery] = {}
        self._profiles: Dict[str, LearningProfile] = {}

    async def get(self, user_id: str, topic_id: str) -> Optional[TopicMastery]:
        return self._mastery.get((user_id, topic_id))

    async def upsert(self, mastery: TopicMastery) -> TopicMastery:
        self._mastery[(mastery.user_id, mastery.topic_id)] = mastery
        return mastery

    async def list_for_user(self, user_id: str) -> List[TopicMastery]:
        return [m for (owner, _), m in self._mastery.items() if owner == user_id]

    async def get_profile(self, user_id: str) -> Optional[LearningProfile]:
        return self._profiles.get(user_id)

    async def save_profile(self, profile: LearningProfile) -> LearningProfile:
        self._profiles[profile.user_id] = profile
        return profile
