"""
In-memory assessment and attempt repositories for development and tests.
"""

import asyncio
import copy
from typing import Dict, List, Optional, Tuple

from backend.common.error_handling import AttemptLimitExceededError
from .models import (
    AssessmentAttempt,
    AssessmentDefinition,
    AssessmentQuestion,
    AssessmentSection,
    AttemptAnswer,
    AttemptStatus,
)
from .repositories import AssessmentFilter, AssessmentRepository, AttemptRepository


class MemoryAssessmentRepository(AssessmentRepository):
    """Dict-backed assessment storage."""

    def __init__(self):
        self._assessments: Dict[str, AssessmentDefinition] = {}
        self._sections: Dict[str, List[AssessmentSection]] = {}
        self._questions: Dict[str, List[AssessmentQuestion]] = {}

    async def get_by_id(self, assessment_id: str) -> Optional[AssessmentDefinition]:
        return self._assessments.get(assessment_id)

    async def save(self, definition: AssessmentDefinition) -> AssessmentDefinition:
        self._assessments[definition.id] = definition
        return definition

    async def find(self, criteria: AssessmentFilter, limit: int = 50, offset: int = 0) -> List[AssessmentDefinition]:
        matching = [a for a in self._assessments.values() if criteria.matches(a)]
        matching.sort(key=lambda a: a.created_at, reverse=True)
        return matching[offset:offset + limit]

    async def get_sections(self, assessment_id: str) -> List[AssessmentSection]:
        return sorted(self._sections.get(assessment_id, []), key=lambda s: s.order)

    async def get_questions(self, assessment_id: str) -> List[AssessmentQuestion]:
        return sorted(self._questions.get(assessment_id, []), key=lambda q: q.order)

    async def replace_structure(
        self,
        assessment_id: str,
        sections: List[AssessmentSection],
        questions: List[AssessmentQuestion]
    ) -> None:
        self._sections[assessment_id] = list(sections)
        self._questions[assessment_id] = list(questions)

    async def question_in_released_assessment(self, question_bank_item_id: str) -> bool:
        for assessment_id, questions in self._questions.items():
            assessment = self._assessments.get(assessment_id)
            if assessment is None or assessment.published_at is None:
                continue
            if any(q.question_bank_item_id == question_bank_item_id for q in questions):
                return True
        return False


class MemoryAttemptRepository(AttemptRepository):
    """
    Dict-backed attempt storage. Answers are keyed by
    ``(attempt_id, assessment_question_id)`` so an upsert can never create a
    second row.
    """

    def __init__(self):
        self._attempts: Dict[str, AssessmentAttempt] = {}
        self._answers: Dict[Tuple[str, str], AttemptAnswer] = {}
        self._lock = asyncio.Lock()

    async def get_by_id(self, attempt_id: str) -> Optional[AssessmentAttempt]:
        return self._attempts.get(attempt_id)

    async def count_for_user(self, assessment_id: str, user_id: str) -> int:
        return sum(
            1 for a in self._attempts.values()
            if a.assessment_id == assessment_id and a.user_id == user_id
        )

    async def create_attempt(self, attempt: AssessmentAttempt, max_attempts: Optional[int]) -> AssessmentAttempt:
        async with self._lock:
            existing = await self.count_for_user(attempt.assessment_id, attempt.user_id)
            if max_attempts is not None and existing >= max_attempts:
                raise AttemptLimitExceededError(attempt.assessment_id, attempt.user_id, max_attempts)
            attempt.attempt_number = existing + 1
            self._attempts[attempt.id] = attempt
            return attempt

    async def save(self, attempt: AssessmentAttempt) -> AssessmentAttempt:
        self._attempts[attempt.id] = attempt
        return attempt

    async def list_for_user(self, user_id: str, assessment_id: Optional[str] = None) -> List[AssessmentAttempt]:
        attempts = [
            a for a in self._attempts.values()
            if a.user_id == user_id and (assessment_id is None or a.assessment_id == assessment_id)
        ]
        return sorted(attempts, key=lambda a: a.started_at, reverse=True)

    async def find_in_progress(self) -> List[AssessmentAttempt]:
        return [a for a in self._attempts.values() if a.status is AttemptStatus.IN_PROGRESS]

    async def get_answers(self, attempt_id: str) -> List[AttemptAnswer]:
        return [answer for (owner, _), answer in self._answers.items() if owner == attempt_id]

    async def get_answer(self, attempt_id: str, assessment_question_id: str) -> Optional[AttemptAnswer]:
        return self._answers.get((attempt_id, assessment_question_id))

    async def upsert_answer(self, answer: AttemptAnswer) -> AttemptAnswer:
        key = (answer.attempt_id, answer.assessment_question_id)
        existing = self._answers.get(key)
        stored = copy.copy(answer)
        if existing is not None:
            stored.id = existing.id
        self._answers[key] = stored
        return stored

    async def graded_answers_for_user(self, user_id: str) -> List[AttemptAnswer]:
        graded = {
            a.id for a in self._attempts.values()
            if a.user_id == user_id and a.status in (AttemptStatus.GRADED, AttemptStatus.REVIEWED)
        }
        return [
            answer for (attempt_id, _), answer in self._answers.items()
            if attempt_id in graded and answer.score is not None
        ]
