"""
Question Domain Model Module

This module defines the question bank entities: question types, the tagged
answer variants (used both for canonical correct answers and for submitted
answers), options, and the ``QuestionBankItem`` itself.
"""

import enum
import uuid
import datetime
from dataclasses import dataclass, field, fields, replace
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union

from backend.common.serialization import SerializableMixin, parse_datetime, utcnow


class QuestionType(enum.Enum):
    """Supported question types."""
    MULTIPLE_CHOICE = "multiple_choice"
    MULTI_SELECT = "multi_select"
    TRUE_FALSE = "true_false"
    SHORT_ANSWER = "short_answer"
    ESSAY = "essay"
    NUMERIC = "numeric"
    MATCHING = "matching"
    ORDERING = "ordering"
    FILL_IN_BLANK = "fill_in_blank"

    @property
    def is_objective(self) -> bool:
        """Whether answers to this type can be graded without a human marker."""
        return self not in (QuestionType.SHORT_ANSWER, QuestionType.ESSAY)

    @property
    def requires_options(self) -> bool:
        return self in (QuestionType.MULTIPLE_CHOICE, QuestionType.MULTI_SELECT)

    @property
    def is_choice(self) -> bool:
        """Types whose options are annotated with correctness on review."""
        return self in (QuestionType.MULTIPLE_CHOICE, QuestionType.MULTI_SELECT, QuestionType.TRUE_FALSE)


class Difficulty(enum.Enum):
    """Difficulty tier of a bank item."""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"
    ADAPTIVE = "adaptive"


class QuestionSource(enum.Enum):
    """Where a bank item came from."""
    MANUAL = "manual"
    NSC_PAST_PAPER = "nsc_past_paper"
    EXEMPLAR = "exemplar"
    TEXTBOOK = "textbook"
    AI_GENERATED = "ai_generated"
    IMPORTED = "imported"


class AnswerTag(enum.Enum):
    """Discriminator carried by every answer payload."""
    SINGLE = "single"
    BOOLEAN = "boolean"
    MULTI = "multi"
    TEXT = "text"
    NUMERIC = "numeric"
    PAIRS = "pairs"
    ORDER = "order"
    BLANKS = "blanks"


# Tags accepted for each question type
ANSWER_TAGS_BY_TYPE: Dict[QuestionType, Tuple[AnswerTag, ...]] = {
    QuestionType.MULTIPLE_CHOICE: (AnswerTag.SINGLE, AnswerTag.BOOLEAN),
    QuestionType.TRUE_FALSE: (AnswerTag.SINGLE, AnswerTag.BOOLEAN),
    QuestionType.MULTI_SELECT: (AnswerTag.MULTI,),
    QuestionType.SHORT_ANSWER: (AnswerTag.TEXT,),
    QuestionType.ESSAY: (AnswerTag.TEXT,),
    QuestionType.NUMERIC: (AnswerTag.NUMERIC,),
    QuestionType.MATCHING: (AnswerTag.PAIRS,),
    QuestionType.ORDERING: (AnswerTag.ORDER,),
    QuestionType.FILL_IN_BLANK: (AnswerTag.BLANKS,),
}


@dataclass(frozen=True)
class MatchPair:
    """One left/right association of a matching question."""
    left: str
    right: str

    def to_dict(self) -> Dict[str, Any]:
        return {"left": self.left, "right": self.right}


@dataclass(frozen=True)
class SingleAnswer:
    """A single option id (or scalar) selection."""
    tag: ClassVar[AnswerTag] = AnswerTag.SINGLE
    value: Any

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.tag.value, "value": self.value}


@dataclass(frozen=True)
class BooleanAnswer:
    tag: ClassVar[AnswerTag] = AnswerTag.BOOLEAN
    value: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.tag.value, "value": self.value}


@dataclass(frozen=True)
class MultiAnswer:
    tag: ClassVar[AnswerTag] = AnswerTag.MULTI
    value: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.tag.value, "value": list(self.value)}


@dataclass(frozen=True)
class TextAnswer:
    """
    Free-text answer.

    As a canonical answer ``value`` may hold several acceptable answers; these
    are shown to markers and never used to auto-grade.
    """
    tag: ClassVar[AnswerTag] = AnswerTag.TEXT
    value: Union[str, Tuple[str, ...]]

    @property
    def acceptable(self) -> Tuple[str, ...]:
        return (self.value,) if isinstance(self.value, str) else tuple(self.value)

    def to_dict(self) -> Dict[str, Any]:
        value = self.value if isinstance(self.value, str) else list(self.value)
        return {"type": self.tag.value, "value": value}


@dataclass(frozen=True)
class NumericAnswer:
    tag: ClassVar[AnswerTag] = AnswerTag.NUMERIC
    value: float
    tolerance: float = 0.0
    units: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {"type": self.tag.value, "value": self.value}
        if self.tolerance:
            result["tolerance"] = self.tolerance
        if self.units:
            result["units"] = self.units
        return result


@dataclass(frozen=True)
class PairsAnswer:
    tag: ClassVar[AnswerTag] = AnswerTag.PAIRS
    value: Tuple[MatchPair, ...]
    shuffle_left: bool = True
    shuffle_right: bool = True

    def to_dict(self) -> Dict[str, Any]:
        result = {"type": self.tag.value, "value": [pair.to_dict() for pair in self.value]}
        if not self.shuffle_left:
            result["shuffle_left"] = False
        if not self.shuffle_right:
            result["shuffle_right"] = False
        return result


@dataclass(frozen=True)
class OrderAnswer:
    tag: ClassVar[AnswerTag] = AnswerTag.ORDER
    value: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.tag.value, "value": list(self.value)}


@dataclass(frozen=True)
class BlanksAnswer:
    tag: ClassVar[AnswerTag] = AnswerTag.BLANKS
    value: Tuple[str, ...]
    case_sensitive: bool = False

    def to_dict(self) -> Dict[str, Any]:
        result = {"type": self.tag.value, "value": list(self.value)}
        if self.case_sensitive:
            result["case_sensitive"] = True
        return result


Answer = Union[
    SingleAnswer, BooleanAnswer, MultiAnswer, TextAnswer,
    NumericAnswer, PairsAnswer, OrderAnswer, BlanksAnswer
]

ANSWER_CLASSES: Dict[AnswerTag, type] = {
    cls.tag: cls for cls in (
        SingleAnswer, BooleanAnswer, MultiAnswer, TextAnswer,
        NumericAnswer, PairsAnswer, OrderAnswer, BlanksAnswer
    )
}


def _pair_from(item: Any) -> MatchPair:
    if isinstance(item, MatchPair):
        return item
    if isinstance(item, dict) and "left" in item and "right" in item:
        return MatchPair(left=item["left"], right=item["right"])
    raise ValueError(f"Invalid match pair: {item!r}")


def answer_from_dict(data: Union[Dict[str, Any], Answer]) -> Answer:
    """
    Build a tagged answer from its wire form ``{"type": <tag>, "value": ...}``.

    Args:
        data: Wire payload (or an answer instance, returned unchanged)

    Returns:
        The matching answer variant

    Raises:
        ValueError: If the tag is unknown or the value cannot be coerced
    """
    if isinstance(data, tuple(ANSWER_CLASSES.values())):
        return data
    if not isinstance(data, dict) or "type" not in data:
        raise ValueError(f"Answer must be an object with a 'type' field, got {data!r}")

    try:
        tag = AnswerTag(data["type"])
    except ValueError:
        raise ValueError(f"Unknown answer type: {data['type']!r}")

    value = data.get("value")
    if tag is AnswerTag.SINGLE:
        return SingleAnswer(value=value)
    if tag is AnswerTag.BOOLEAN:
        return BooleanAnswer(value=value)
    if tag is AnswerTag.MULTI:
        return MultiAnswer(value=tuple(value or ()))
    if tag is AnswerTag.TEXT:
        return TextAnswer(value=value if isinstance(value, str) else tuple(value or ()))
    if tag is AnswerTag.NUMERIC:
        return NumericAnswer(
            value=value,
            tolerance=data.get("tolerance") or 0.0,
            units=data.get("units")
        )
    if tag is AnswerTag.PAIRS:
        return PairsAnswer(
            value=tuple(_pair_from(item) for item in (value or ())),
            shuffle_left=data.get("shuffle_left", True) is not False,
            shuffle_right=data.get("shuffle_right", True) is not False
        )
    if tag is AnswerTag.ORDER:
        return OrderAnswer(value=tuple(value or ()))
    return BlanksAnswer(
        value=tuple(value or ()),
        case_sensitive=bool(data.get("case_sensitive", False))
    )


@dataclass(frozen=True)
class GradingResult:
    """
    Outcome of grading one answer.

    ``score`` and ``is_correct`` are None while a constructed-response answer
    waits for a human marker.
    """
    is_correct: Optional[bool]
    score: Optional[float]
    max_score: float
    percent_correct: Optional[int] = None
    feedback: Optional[str] = None

    @property
    def is_graded(self) -> bool:
        return self.score is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_correct": self.is_correct,
            "score": self.score,
            "max_score": self.max_score,
            "percent_correct": self.percent_correct,
            "feedback": self.feedback,
        }


@dataclass
class QuestionOption:
    """A displayed choice of an options-based question."""
    id: str
    text: str
    image_url: Optional[str] = None
    is_correct: Optional[bool] = None

    @classmethod
    def from_value(cls, value: Union[Dict[str, Any], 'QuestionOption']) -> 'QuestionOption':
        if isinstance(value, QuestionOption):
            return value
        return cls(
            id=str(value["id"]),
            text=value["text"],
            image_url=value.get("image_url"),
            is_correct=value.get("is_correct")
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {"id": self.id, "text": self.text}
        if self.image_url:
            result["image_url"] = self.image_url
        if self.is_correct is not None:
            result["is_correct"] = self.is_correct
        return result


# Fields that may change after the item is referenced by a published assessment
METADATA_FIELDS = frozenset({
    "explanation", "solution_steps", "tags", "reviewed_by", "reviewed_at", "is_active"
})


@dataclass
class QuestionBankItem(SerializableMixin):
    """
    A reusable, typed question definition.

    Attributes:
        type: The question type; decides which answer tag is valid
        question_text: Plain-text stem
        correct_answer: Canonical answer, a variant matching ``type``
        options: Ordered choices (options-based types only)
        points: Positive integer default mark
        topic_id: Topic used for mastery tracking
        is_active: Soft-delete flag
    """

    __serializable_fields__ = [
        "id", "subject_id", "module_id", "topic_id", "learning_outcome_id",
        "type", "difficulty", "question_text", "question_html", "image_url",
        "options", "correct_answer", "explanation", "solution_steps", "points",
        "time_limit_seconds", "tags", "source", "source_reference", "language",
        "is_active", "created_by", "reviewed_by", "reviewed_at",
        "created_at", "updated_at"
    ]

    type: QuestionType
    question_text: str
    correct_answer: Answer
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    subject_id: Optional[str] = None
    module_id: Optional[str] = None
    topic_id: Optional[str] = None
    learning_outcome_id: Optional[str] = None
    difficulty: Difficulty = Difficulty.MEDIUM
    question_html: Optional[str] = None
    image_url: Optional[str] = None
    options: List[QuestionOption] = field(default_factory=list)
    explanation: Optional[str] = None
    solution_steps: List[str] = field(default_factory=list)
    points: int = 1
    time_limit_seconds: Optional[int] = None
    tags: List[str] = field(default_factory=list)
    source: QuestionSource = QuestionSource.MANUAL
    source_reference: Optional[str] = None
    language: str = "en"
    is_active: bool = True
    created_by: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime.datetime] = None
    created_at: datetime.datetime = field(default_factory=utcnow)
    updated_at: datetime.datetime = field(default_factory=utcnow)

    def __post_init__(self):
        """Coerce wire values and validate the item."""
        if isinstance(self.type, str):
            try:
                self.type = QuestionType(self.type)
            except ValueError:
                raise ValueError(f"Invalid question type: {self.type}")
        if isinstance(self.difficulty, str):
            try:
                self.difficulty = Difficulty(self.difficulty)
            except ValueError:
                raise ValueError(f"Invalid difficulty: {self.difficulty}")
        if isinstance(self.source, str):
            self.source = QuestionSource(self.source)
        if isinstance(self.correct_answer, dict):
            self.correct_answer = answer_from_dict(self.correct_answer)
        self.options = [QuestionOption.from_value(option) for option in (self.options or [])]
        self.tags = list(self.tags or [])
        self.solution_steps = list(self.solution_steps or [])
        self.reviewed_at = parse_datetime(self.reviewed_at)
        self.created_at = parse_datetime(self.created_at) or utcnow()
        self.updated_at = parse_datetime(self.updated_at) or utcnow()

        if not self.question_text or not self.question_text.strip():
            raise ValueError("Question text is required")

        if isinstance(self.points, bool) or not isinstance(self.points, int) or self.points <= 0:
            raise ValueError(f"Points must be a positive integer, got {self.points!r}")

        self._validate_options()
        self._validate_correct_answer()

    def _validate_options(self) -> None:
        if self.type.requires_options and not self.options:
            raise ValueError(f"{self.type.value} questions require options")
        option_ids = [option.id for option in self.options]
        if len(option_ids) != len(set(option_ids)):
            raise ValueError("Option ids must be unique")

    def _validate_correct_answer(self) -> None:
        answer = self.correct_answer
        allowed = ANSWER_TAGS_BY_TYPE[self.type]
        if getattr(answer, "tag", None) not in allowed:
            raise ValueError(
                f"Correct answer for {self.type.value} must be tagged "
                f"{'/'.join(tag.value for tag in allowed)}"
            )

        option_ids = {option.id for option in self.options}
        if isinstance(answer, SingleAnswer) and option_ids and answer.value not in option_ids:
            raise ValueError(f"Correct option {answer.value!r} is not one of the options")
        if isinstance(answer, MultiAnswer):
            if not answer.value:
                raise ValueError("Multi-select questions need at least one correct option")
            unknown = set(answer.value) - option_ids
            if unknown:
                raise ValueError(f"Correct options {sorted(unknown)} are not among the options")
        if isinstance(answer, NumericAnswer):
            if isinstance(answer.value, bool) or not isinstance(answer.value, (int, float)):
                raise ValueError("Numeric correct answer must be a number")
            if answer.tolerance < 0:
                raise ValueError("Numeric tolerance cannot be negative")
        if isinstance(answer, PairsAnswer) and not answer.value:
            raise ValueError("Matching questions need at least one pair")
        if isinstance(answer, OrderAnswer) and len(answer.value) < 2:
            raise ValueError("Ordering questions need at least two items")
        if isinstance(answer, BlanksAnswer) and not answer.value:
            raise ValueError("Fill-in-blank questions need at least one blank")

    @classmethod
    def create(cls, **attributes: Any) -> 'QuestionBankItem':
        """
        Create a new bank item with a generated ID.

        Unknown keys are ignored so that API payloads can be passed directly.
        """
        attributes = {key: value for key, value in attributes.items() if key in _FIELD_NAMES}
        attributes.pop("id", None)
        return cls(**attributes)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'QuestionBankItem':
        return cls(**{key: value for key, value in data.items() if key in _FIELD_NAMES})

    def updated(self, changes: Dict[str, Any]) -> 'QuestionBankItem':
        """
        Return a copy with ``changes`` applied and ``updated_at`` refreshed.

        The copy goes through the same validation as a new item.
        """
        changes = {key: value for key, value in changes.items() if key in _FIELD_NAMES}
        changes.pop("id", None)
        changes.pop("created_at", None)
        changes["updated_at"] = utcnow()
        return replace(self, **changes)

    def content_changes(self, other: 'QuestionBankItem') -> List[str]:
        """Names of non-metadata fields whose value differs in ``other``."""
        return sorted(
            name for name in _CONTENT_FIELDS
            if getattr(self, name) != getattr(other, name)
        )


_FIELD_NAMES = frozenset(f.name for f in fields(QuestionBankItem))
_CONTENT_FIELDS = _FIELD_NAMES - METADATA_FIELDS - {"id", "created_at", "updated_at", "created_by"}
