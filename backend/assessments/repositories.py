"""
Assessment Repositories

Storage contracts for assessment definitions (with their sections and
question references) and for attempts and their answers.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from .models import (
    AssessmentAttempt,
    AssessmentDefinition,
    AssessmentQuestion,
    AssessmentSection,
    AssessmentStatus,
    AssessmentType,
    AttemptAnswer,
)


@dataclass
class AssessmentFilter:
    """
    Criteria for listing assessments. Unset criteria match everything.
    """
    statuses: List[AssessmentStatus] = field(default_factory=list)
    subject_id: Optional[str] = None
    module_id: Optional[str] = None
    grade: Optional[int] = None
    type: Optional[AssessmentType] = None

    def __post_init__(self):
        self.statuses = [AssessmentStatus(s) if isinstance(s, str) else s for s in self.statuses]
        if isinstance(self.type, str):
            self.type = AssessmentType(self.type)

    def matches(self, definition: AssessmentDefinition) -> bool:
        if self.statuses and definition.status not in self.statuses:
            return False
        if self.subject_id is not None and definition.subject_id != self.subject_id:
            return False
        if self.module_id is not None and definition.module_id != self.module_id:
            return False
        if self.grade is not None and definition.grade != self.grade:
            return False
        if self.type is not None and definition.type is not self.type:
            return False
        return True


class AssessmentRepository(ABC):
    """
    Abstract repository for assessment definitions and their structure.
    """

    @abstractmethod
    async def get_by_id(self, assessment_id: str) -> Optional[AssessmentDefinition]:
        """
        Retrieve an assessment by its ID.

        Args:
            assessment_id: The unique identifier for the assessment

        Returns:
            The assessment if found, None otherwise
        """
        pass

    @abstractmethod
    async def save(self, definition: AssessmentDefinition) -> AssessmentDefinition:
        """Insert or update an assessment definition."""
        pass

    @abstractmethod
    async def find(
        self,
        criteria: AssessmentFilter,
        limit: int = 50,
        offset: int = 0
    ) -> List[AssessmentDefinition]:
        """
        Find assessments matching ``criteria``, newest first.

        Args:
            criteria: Filter to apply
            limit: Maximum number of results to return
            offset: Number of results to skip

        Returns:
            List of matching assessments
        """
        pass

    @abstractmethod
    async def get_sections(self, assessment_id: str) -> List[AssessmentSection]:
        """Sections of an assessment in display order."""
        pass

    @abstractmethod
    async def get_questions(self, assessment_id: str) -> List[AssessmentQuestion]:
        """Question references of an assessment in display order."""
        pass

    @abstractmethod
    async def replace_structure(
        self,
        assessment_id: str,
        sections: List[AssessmentSection],
        questions: List[AssessmentQuestion]
    ) -> None:
        """
        Replace all sections and question references of an assessment.

        Args:
            assessment_id: The assessment being restructured
            sections: New sections
            questions: New question references
        """
        pass

    @abstractmethod
    async def question_in_released_assessment(self, question_bank_item_id: str) -> bool:
        """
        Whether an assessment that has been published (published or since
        archived) references the given bank item.
        """
        pass


class AttemptRepository(ABC):
    """
    Abstract repository for attempts and attempt answers.

    Implementations guarantee at most one attempt per
    ``(assessment_id, user_id, attempt_number)`` and at most one answer per
    ``(attempt_id, assessment_question_id)``.
    """

    @abstractmethod
    async def get_by_id(self, attempt_id: str) -> Optional[AssessmentAttempt]:
        pass

    @abstractmethod
    async def count_for_user(self, assessment_id: str, user_id: str) -> int:
        """Number of attempts a user has made at an assessment."""
        pass

    @abstractmethod
    async def create_attempt(self, attempt: AssessmentAttempt, max_attempts: Optional[int]) -> AssessmentAttempt:
        """
        Store a new attempt, numbering it after the user's existing attempts.

        Counting and inserting happen atomically.

        Args:
            attempt: The attempt to store; ``attempt_number`` is assigned here
            max_attempts: Attempt cap for the assessment, or None

        Returns:
            The stored attempt

        Raises:
            AttemptLimitExceededError: If the user already has ``max_attempts``
            ConflictError: If a concurrent start claimed the same number
        """
        pass

    @abstractmethod
    async def save(self, attempt: AssessmentAttempt) -> AssessmentAttempt:
        """Update an existing attempt."""
        pass

    @abstractmethod
    async def list_for_user(self, user_id: str, assessment_id: Optional[str] = None) -> List[AssessmentAttempt]:
        """A user's attempts, newest first."""
        pass

    @abstractmethod
    async def find_in_progress(self) -> List[AssessmentAttempt]:
        """All attempts still in progress."""
        pass

    @abstractmethod
    async def get_answers(self, attempt_id: str) -> List[AttemptAnswer]:
        pass

    @abstractmethod
    async def get_answer(self, attempt_id: str, assessment_question_id: str) -> Optional[AttemptAnswer]:
        pass

    @abstractmethod
    async def upsert_answer(self, answer: AttemptAnswer) -> AttemptAnswer:
        """
        Insert or replace the answer for ``(attempt_id, assessment_question_id)``.

        Returns:
            The stored row; an existing row keeps its ID
        """
        pass

    async def upsert_answers(self, answers: Iterable[AttemptAnswer]) -> List[AttemptAnswer]:
        return [await self.upsert_answer(answer) for answer in answers]

    @abstractmethod
    async def graded_answers_for_user(self, user_id: str) -> List[AttemptAnswer]:
        """Scored answers from the user's graded or reviewed attempts."""
        pass
