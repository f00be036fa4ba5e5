"""
Question Repository Module

This module defines the storage contract for question bank items and the
filter object shared by its implementations.
"""

import abc
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .model import Difficulty, QuestionBankItem, QuestionSource, QuestionType


@dataclass
class QuestionFilter:
    """
    Criteria for listing bank items. Unset criteria match everything.

    ``tags`` matches items carrying any of the given tags; ``search`` is a
    case-insensitive substring match on the question text.
    """
    subject_id: Optional[str] = None
    module_id: Optional[str] = None
    topic_id: Optional[str] = None
    difficulty: Optional[Difficulty] = None
    type: Optional[QuestionType] = None
    source: Optional[QuestionSource] = None
    tags: List[str] = field(default_factory=list)
    search: Optional[str] = None
    is_active: Optional[bool] = None
    exclude_ids: List[str] = field(default_factory=list)

    def __post_init__(self):
        if isinstance(self.difficulty, str):
            self.difficulty = Difficulty(self.difficulty)
        if isinstance(self.type, str):
            self.type = QuestionType(self.type)
        if isinstance(self.source, str):
            self.source = QuestionSource(self.source)

    def matches(self, item: QuestionBankItem) -> bool:
        """Evaluate the filter against a single item."""
        if self.subject_id is not None and item.subject_id != self.subject_id:
            return False
        if self.module_id is not None and item.module_id != self.module_id:
            return False
        if self.topic_id is not None and item.topic_id != self.topic_id:
            return False
        if self.difficulty is not None and item.difficulty is not self.difficulty:
            return False
        if self.type is not None and item.type is not self.type:
            return False
        if self.source is not None and item.source is not self.source:
            return False
        if self.is_active is not None and item.is_active != self.is_active:
            return False
        if self.tags and not set(self.tags) & set(item.tags):
            return False
        if self.search and self.search.lower() not in item.question_text.lower():
            return False
        if item.id in self.exclude_ids:
            return False
        return True


class QuestionRepository(abc.ABC):
    """
    Abstract base class for question bank storage.
    """

    @abc.abstractmethod
    async def get_by_id(self, question_id: str) -> Optional[QuestionBankItem]:
        """
        Get a bank item by its ID.

        Args:
            question_id: The ID of the item to retrieve

        Returns:
            The item if found, None otherwise
        """

    @abc.abstractmethod
    async def get_many(self, question_ids: Iterable[str]) -> Dict[str, QuestionBankItem]:
        """
        Get several bank items at once.

        Args:
            question_ids: IDs to look up

        Returns:
            Mapping of ID to item for the IDs that exist
        """

    @abc.abstractmethod
    async def save(self, question: QuestionBankItem) -> QuestionBankItem:
        """
        Insert or update a bank item.

        Args:
            question: The item to save

        Returns:
            The saved item
        """

    @abc.abstractmethod
    async def save_many(self, questions: List[QuestionBankItem]) -> List[QuestionBankItem]:
        """Insert several items in one unit of work."""

    @abc.abstractmethod
    async def find(
        self,
        criteria: QuestionFilter,
        limit: int = 50,
        offset: int = 0
    ) -> List[QuestionBankItem]:
        """
        List items matching ``criteria``, newest first.

        Args:
            criteria: Filter to apply
            limit: Maximum number of items
            offset: Number of matching items to skip

        Returns:
            Matching items
        """

    @abc.abstractmethod
    async def sample(self, criteria: QuestionFilter, count: int) -> List[QuestionBankItem]:
        """Return up to ``count`` items matching ``criteria`` in random order."""

    @abc.abstractmethod
    async def count_by(self, subject_id: Optional[str] = None) -> Dict[str, int]:
        """
        Aggregate counts for the bank statistics view.

        Returns:
            Dictionary with ``total``, ``active`` and one ``difficulty:<name>``
            and ``type:<name>`` entry per value present
        """
