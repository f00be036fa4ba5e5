"""
Assessment Models

Data models for assessment definitions, their sections and question
references, and for user attempts and the answers recorded in them.
"""

import enum
import uuid
import datetime
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from backend.common.serialization import SerializableMixin, parse_datetime, utcnow
from backend.domain.questions.model import Answer, GradingResult, QuestionBankItem, answer_from_dict


class AssessmentType(enum.Enum):
    """Kinds of assessment."""
    QUIZ = "quiz"
    TEST = "test"
    EXAM = "exam"
    PRACTICE = "practice"
    NSC_SIMULATION = "nsc_simulation"
    DIAGNOSTIC = "diagnostic"


class AssessmentStatus(enum.Enum):
    """Publication status of an assessment definition."""
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


ASSESSMENT_TRANSITIONS = {
    AssessmentStatus.DRAFT: {AssessmentStatus.PUBLISHED, AssessmentStatus.ARCHIVED},
    AssessmentStatus.PUBLISHED: {AssessmentStatus.ARCHIVED},
    AssessmentStatus.ARCHIVED: set(),
}


class AttemptStatus(enum.Enum):
    """Lifecycle states of an attempt."""
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    TIMED_OUT = "timed_out"
    GRADED = "graded"
    REVIEWED = "reviewed"

    def can_transition_to(self, target: 'AttemptStatus') -> bool:
        return target in ATTEMPT_TRANSITIONS[self]


ATTEMPT_TRANSITIONS = {
    AttemptStatus.IN_PROGRESS: {AttemptStatus.SUBMITTED, AttemptStatus.TIMED_OUT},
    AttemptStatus.SUBMITTED: {AttemptStatus.GRADED},
    AttemptStatus.TIMED_OUT: {AttemptStatus.GRADED},
    AttemptStatus.GRADED: {AttemptStatus.REVIEWED},
    AttemptStatus.REVIEWED: set(),
}


def _new_id() -> str:
    return str(uuid.uuid4())


def _positive_or_none(name: str, value: Optional[int]) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {value!r}")


@dataclass
class AssessmentDefinition(SerializableMixin):
    """
    A gradable assessment assembled from bank items.

    Attributes:
        status: draft, published or archived
        max_attempts: Attempts allowed per user (None for unlimited)
        available_from: Start of the availability window (None for open)
        available_until: End of the availability window (None for open)
        published_at: When the assessment was published; archiving keeps it
    """

    __serializable_fields__ = [
        "id", "title", "description", "type", "status", "subject_id", "grade",
        "module_id", "topic_id", "time_limit_minutes", "total_marks", "pass_mark",
        "max_attempts", "shuffle_questions", "shuffle_options",
        "show_results_immediately", "show_correct_answers", "show_explanations",
        "available_from", "available_until", "instructions", "created_by",
        "published_at", "created_at", "updated_at"
    ]

    title: str
    type: AssessmentType
    id: str = field(default_factory=_new_id)
    status: AssessmentStatus = AssessmentStatus.DRAFT
    description: Optional[str] = None
    subject_id: Optional[str] = None
    grade: Optional[int] = None
    module_id: Optional[str] = None
    topic_id: Optional[str] = None
    time_limit_minutes: Optional[int] = None
    total_marks: Optional[int] = None
    pass_mark: Optional[int] = None
    max_attempts: Optional[int] = None
    shuffle_questions: bool = False
    shuffle_options: bool = False
    show_results_immediately: bool = True
    show_correct_answers: bool = True
    show_explanations: bool = True
    available_from: Optional[datetime.datetime] = None
    available_until: Optional[datetime.datetime] = None
    instructions: Optional[str] = None
    created_by: Optional[str] = None
    published_at: Optional[datetime.datetime] = None
    created_at: datetime.datetime = field(default_factory=utcnow)
    updated_at: datetime.datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if isinstance(self.type, str):
            try:
                self.type = AssessmentType(self.type)
            except ValueError:
                raise ValueError(f"Invalid assessment type: {self.type}")
        if isinstance(self.status, str):
            self.status = AssessmentStatus(self.status)
        self.available_from = parse_datetime(self.available_from)
        self.available_until = parse_datetime(self.available_until)
        self.published_at = parse_datetime(self.published_at)
        self.created_at = parse_datetime(self.created_at) or utcnow()
        self.updated_at = parse_datetime(self.updated_at) or utcnow()

        if not self.title or len(self.title.strip()) < 3:
            raise ValueError("Title must be at least 3 characters")
        for name in ("time_limit_minutes", "total_marks", "pass_mark", "max_attempts"):
            _positive_or_none(name, getattr(self, name))
        if self.total_marks is not None and self.pass_mark is not None and self.pass_mark > self.total_marks:
            raise ValueError("Pass mark cannot exceed total marks")
        if self.available_from and self.available_until and self.available_from > self.available_until:
            raise ValueError("available_from must not be after available_until")

    def is_available_at(self, now: datetime.datetime) -> bool:
        """Whether ``now`` lies inside ``[available_from, available_until]``."""
        if self.available_from is not None and now < self.available_from:
            return False
        if self.available_until is not None and now > self.available_until:
            return False
        return True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AssessmentDefinition':
        return cls(**{key: value for key, value in data.items() if key in cls.__serializable_fields__})


@dataclass
class AssessmentSection(SerializableMixin):
    """Optional ordered grouping of questions within an assessment."""

    __serializable_fields__ = ["id", "assessment_id", "order", "title", "instructions", "time_limit_minutes"]
    __optional_fields__ = ["id", "title", "instructions", "time_limit_minutes"]

    assessment_id: str
    order: int
    id: str = field(default_factory=_new_id)
    title: Optional[str] = None
    instructions: Optional[str] = None
    time_limit_minutes: Optional[int] = None


@dataclass
class AssessmentQuestion(SerializableMixin):
    """
    Reference from an assessment (and optionally a section) to a bank item.

    ``override_points`` replaces the bank item's points for this assessment only.
    """

    __serializable_fields__ = [
        "id", "assessment_id", "section_id", "question_bank_item_id", "order", "override_points"
    ]
    __optional_fields__ = ["id", "section_id", "override_points"]

    assessment_id: str
    question_bank_item_id: str
    order: int
    id: str = field(default_factory=_new_id)
    section_id: Optional[str] = None
    override_points: Optional[int] = None

    def __post_init__(self):
        _positive_or_none("override_points", self.override_points)

    def effective_points(self, item: Optional[QuestionBankItem]) -> int:
        if self.override_points is not None:
            return self.override_points
        if item is not None and item.points:
            return item.points
        return 1


@dataclass
class AssessmentAttempt(SerializableMixin):
    """One user's attempt at one assessment."""

    __serializable_fields__ = [
        "id", "assessment_id", "user_id", "attempt_number", "status", "started_at",
        "submitted_at", "total_score", "max_score", "percentage", "time_spent_seconds",
        "graded_by", "graded_at", "feedback", "metadata"
    ]
    __optional_fields__ = [
        "id", "attempt_number", "status", "started_at", "submitted_at", "total_score", "max_score",
        "percentage", "time_spent_seconds", "graded_by", "graded_at", "feedback", "metadata"
    ]

    assessment_id: str
    user_id: str
    attempt_number: int = 1
    id: str = field(default_factory=_new_id)
    status: AttemptStatus = AttemptStatus.IN_PROGRESS
    started_at: datetime.datetime = field(default_factory=utcnow)
    submitted_at: Optional[datetime.datetime] = None
    total_score: Optional[float] = None
    max_score: Optional[float] = None
    percentage: Optional[int] = None
    time_spent_seconds: Optional[int] = None
    graded_by: Optional[str] = None
    graded_at: Optional[datetime.datetime] = None
    feedback: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if isinstance(self.status, str):
            self.status = AttemptStatus(self.status)
        self.started_at = parse_datetime(self.started_at) or utcnow()
        self.submitted_at = parse_datetime(self.submitted_at)
        self.graded_at = parse_datetime(self.graded_at)
        self.metadata = dict(self.metadata or {})

    @property
    def is_open(self) -> bool:
        return self.status is AttemptStatus.IN_PROGRESS

    def summary(self) -> Dict[str, Any]:
        """Attempt-level score block."""
        return {
            "attempt_id": self.id,
            "status": self.status.value,
            "total_score": self.total_score,
            "max_score": self.max_score,
            "percentage": self.percentage,
        }


@dataclass
class AttemptAnswer(SerializableMixin):
    """
    The answer recorded for one assessment question within one attempt.

    There is at most one per ``(attempt_id, assessment_question_id)``.
    """

    __serializable_fields__ = [
        "id", "attempt_id", "assessment_question_id", "question_bank_item_id", "answer",
        "is_correct", "score", "max_score", "time_taken_seconds", "marker_comment", "answered_at"
    ]
    __optional_fields__ = [
        "id", "answer", "is_correct", "score", "max_score", "time_taken_seconds", "marker_comment", "answered_at"
    ]

    attempt_id: str
    assessment_question_id: str
    question_bank_item_id: str
    answer: Optional[Answer] = None
    id: str = field(default_factory=_new_id)
    is_correct: Optional[bool] = None
    score: Optional[float] = None
    max_score: Optional[float] = None
    time_taken_seconds: Optional[int] = None
    marker_comment: Optional[str] = None
    answered_at: Optional[datetime.datetime] = None

    def __post_init__(self):
        if isinstance(self.answer, dict):
            self.answer = answer_from_dict(self.answer)
        self.answered_at = parse_datetime(self.answered_at)

    @property
    def is_graded(self) -> bool:
        return self.score is not None

    @property
    def grading_result(self) -> GradingResult:
        return GradingResult(is_correct=self.is_correct, score=self.score, max_score=self.max_score or 0)

    def apply(self, result: GradingResult) -> None:
        self.is_correct = result.is_correct
        self.score = result.score
        self.max_score = result.max_score

    def to_response(self) -> Dict[str, Any]:
        """Per-answer score block returned to API clients."""
        return {
            "question_id": self.assessment_question_id,
            "is_correct": self.is_correct,
            "score": self.score,
            "max_score": self.max_score,
        }
