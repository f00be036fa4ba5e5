"""
Memory Question Repository Module

In-memory implementation of the QuestionRepository interface for
development and testing.
"""

import random
from collections import Counter
from typing import Dict, Iterable, List, Optional

from .model import QuestionBankItem
from .repository import QuestionFilter, QuestionRepository


class MemoryQuestionRepository(QuestionRepository):
    """
    Dict-backed question bank storage.
    """

    def __init__(self, initial_data: Optional[List[QuestionBankItem]] = None, rng: Optional[random.Random] = None):
        """
        Args:
            initial_data: Optional items to preload
            rng: Random source used by ``sample``
        """
        self._questions: Dict[str, QuestionBankItem] = {}
        self._rng = rng or random.Random()
        for question in initial_data or []:
            self._questions[question.id] = question

    async def get_by_id(self, question_id: str) -> Optional[QuestionBankItem]:
        return self._questions.get(question_id)

    async def get_many(self, question_ids: Iterable[str]) -> Dict[str, QuestionBankItem]:
        return {
            question_id: self._questions[question_id]
            for question_id in question_ids
            if question_id in self._questions
        }

    async def save(self, question: QuestionBankItem) -> QuestionBankItem:
        self._questions[question.id] = question
        return question

    async def save_many(self, questions: List[QuestionBankItem]) -> List[QuestionBankItem]:
        for question in questions:
            self._questions[question.id] = question
        return questions

    async def find(self, criteria: QuestionFilter, limit: int = 50, offset: int = 0) -> List[QuestionBankItem]:
        matching = [question for question in self._questions.values() if criteria.matches(question)]
        matching.sort(key=lambda question: question.created_at, reverse=True)
        return matching[offset:offset + limit]

    async def sample(self, criteria: QuestionFilter, count: int) -> List[QuestionBankItem]:
        matching = [question for question in self._questions.values() if criteria.matches(question)]
        return self._rng.sample(matching, min(count, len(matching)))

    async def count_by(self, subject_id: Optional[str] = None) -> Dict[str, int]:
        items = [
            question for question in self._questions.values()
            if subject_id is None or question.subject_id == subject_id
        ]
        counts: Counter = Counter()
        counts["total"] = len(items)
        counts["active"] = sum(1 for question in items if question.is_active)
        for question in items:
            counts[f"difficulty:{question.difficulty.value}"] += 1
            counts[f"type:{question.type.value}"] += 1
        return dict(counts)

    def get_all(self) -> List[QuestionBankItem]:
        """All stored items (memory implementation only)."""
        return list(self._questions.values())

    def clear(self) -> None:
        """Remove all items (memory implementation only)."""
        self._questions.clear()
