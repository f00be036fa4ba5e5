"""
Grading Engine

Per-answer scoring rules for every question type, and attempt-level
aggregation of the resulting scores.

Scoring rules:

- multiple choice / true-false: exact match, all or nothing
- multi-select: ``max * (correct_selected - wrong_selected) / total_correct``
  clipped to ``[0, max]`` and rounded to two decimals; only an exact set
  match is marked correct
- numeric: correct within ``tolerance``, all or nothing
- matching / ordering: ``max`` times the fraction of pairs or positions that
  match, rounded half up; only a perfect arrangement is marked correct
- fill-in-blank: ``max`` times the fraction of blanks that match after
  trimming (case-insensitive unless the item says otherwise), rounded half
  up; a submission with the wrong number of blanks scores 0
- short answer / essay: left ungraded for a human marker
"""

import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional

from backend.common.error_handling import StructuralMismatchError
from backend.common.logger import app_logger, log_execution_time
from backend.domain.questions.model import (
    ANSWER_TAGS_BY_TYPE,
    Answer,
    BlanksAnswer,
    GradingResult,
    MultiAnswer,
    NumericAnswer,
    OrderAnswer,
    PairsAnswer,
    QuestionBankItem,
    QuestionType,
)
from .models import AssessmentAttempt, AttemptAnswer, AttemptStatus

logger = app_logger.getChild("assessments.grading")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _percent(score: Optional[float], max_score: float) -> Optional[int]:
    if score is None:
        return None
    if max_score <= 0:
        return 0
    return round_half_up(score / max_score * 100)


def _result(is_correct: Optional[bool], score: Optional[float], max_score: float,
            feedback: Optional[str] = None) -> GradingResult:
    return GradingResult(
        is_correct=is_correct,
        score=score,
        max_score=max_score,
        percent_correct=_percent(score, max_score),
        feedback=feedback
    )


def _binary(is_correct: bool, max_score: float) -> GradingResult:
    return _result(is_correct, max_score if is_correct else 0, max_score)


def _scalar(value: Any) -> Any:
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return value


def _grade_single(question: QuestionBankItem, answer: Answer, max_score: float) -> GradingResult:
    return _binary(answer.value == question.correct_answer.value, max_score)


def _grade_true_false(question: QuestionBankItem, answer: Answer, max_score: float) -> GradingResult:
    return _binary(_scalar(answer.value) == _scalar(question.correct_answer.value), max_score)


def _grade_multi_select(question: QuestionBankItem, answer: MultiAnswer, max_score: float) -> GradingResult:
    correct = set(question.correct_answer.value)
    selected = set(answer.value)
    hits = len(correct & selected)
    misses = len(selected - correct)

    raw = max_score * (hits - misses) / len(correct)
    score = round(min(max(raw, 0.0), max_score), 2)
    return _result(selected == correct, score, max_score)


def _grade_numeric(question: QuestionBankItem, answer: NumericAnswer, max_score: float) -> GradingResult:
    expected: NumericAnswer = question.correct_answer
    return _binary(abs(answer.value - expected.value) <= (expected.tolerance or 0), max_score)


def _grade_matching(question: QuestionBankItem, answer: PairsAnswer, max_score: float) -> GradingResult:
    expected = {pair.left: pair.right for pair in question.correct_answer.value}
    submitted = {pair.left: pair.right for pair in answer.value}
    matched = sum(1 for left, right in expected.items() if submitted.get(left) == right)
    total = len(expected)

    is_correct = matched == total and len(submitted) == total
    return _result(is_correct, round_half_up(max_score * matched / total), max_score)


def _grade_ordering(question: QuestionBankItem, answer: OrderAnswer, max_score: float) -> GradingResult:
    expected = question.correct_answer.value
    submitted = answer.value
    matched = sum(1 for position, item in enumerate(expected)
                  if position < len(submitted) and submitted[position] == item)
    total = len(expected)

    is_correct = matched == total and len(submitted) == total
    return _result(is_correct, round_half_up(max_score * matched / total), max_score)


def _grade_fill_in_blank(question: QuestionBankItem, answer: BlanksAnswer, max_score: float) -> GradingResult:
    expected: BlanksAnswer = question.correct_answer
    if len(answer.value) != len(expected.value):
        return _result(
            False, 0, max_score,
            feedback=f"Expected {len(expected.value)} blanks, got {len(answer.value)}"
        )

    def normalise(text: str) -> str:
        text = text.strip()
        return text if expected.case_sensitive else text.lower()

    matched = sum(
        1 for given, wanted in zip(answer.value, expected.value)
        if normalise(given) == normalise(wanted)
    )
    total = len(expected.value)
    return _result(matched == total, round_half_up(max_score * matched / total), max_score)


def _manual(question: QuestionBankItem, answer: Answer, max_score: float) -> GradingResult:
    return _result(None, None, max_score, feedback="Awaiting manual grading")


Grader = Callable[[QuestionBankItem, Answer, float], GradingResult]

GRADERS: Dict[QuestionType, Grader] = {
    QuestionType.MULTIPLE_CHOICE: _grade_single,
    QuestionType.TRUE_FALSE: _grade_true_false,
    QuestionType.MULTI_SELECT: _grade_multi_select,
    QuestionType.NUMERIC: _grade_numeric,
    QuestionType.MATCHING: _grade_matching,
    QuestionType.ORDERING: _grade_ordering,
    QuestionType.FILL_IN_BLANK: _grade_fill_in_blank,
    QuestionType.SHORT_ANSWER: _manual,
    QuestionType.ESSAY: _manual,
}

_missing = set(QuestionType) - set(GRADERS)
if _missing:
    raise RuntimeError(f"No grading rule for question types: {sorted(t.value for t in _missing)}")


@dataclass(frozen=True)
class AttemptTotals:
    """Attempt-level aggregation of answer scores."""
    total_score: float
    max_score: float
    percentage: int
    fully_graded: bool

    @property
    def status(self) -> AttemptStatus:
        return AttemptStatus.GRADED if self.fully_graded else AttemptStatus.SUBMITTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_score": self.total_score,
            "max_score": self.max_score,
            "percentage": self.percentage,
        }


class GradingEngine:
    """
    Stateless grader. Grading is a pure function of the question, the answer
    and the point value, so regrading the same answer always yields the same
    result.
    """

    def grade(self, question: QuestionBankItem, answer: Answer, max_score: Optional[float] = None) -> GradingResult:
        """
        Grade one answer.

        Args:
            question: The bank item being answered
            answer: A structurally valid answer for the item's type
            max_score: Effective points; defaults to the item's points

        Returns:
            The grading result; ``score`` is None for manually graded types

        Raises:
            StructuralMismatchError: If the answer's tag does not fit the type
        """
        max_score = question.points if max_score is None else max_score
        allowed = ANSWER_TAGS_BY_TYPE[question.type]
        tag = getattr(answer, "tag", None)
        if tag not in allowed:
            raise StructuralMismatchError(
                expected=[t.value for t in allowed],
                received=tag.value if tag is not None else None,
                question_type=question.type.value
            )
        return GRADERS[question.type](question, answer, max_score)

    def grade_unanswered(self, question: QuestionBankItem, max_score: Optional[float] = None) -> GradingResult:
        """Result for a question left blank: zero, for every type."""
        max_score = question.points if max_score is None else max_score
        return _result(False, 0, max_score, feedback="Not answered")

    @log_execution_time(logger)
    def finalize_attempt(self, attempt: AssessmentAttempt, answers: Iterable[AttemptAnswer]) -> AttemptTotals:
        """
        Aggregate answer scores into attempt totals and write them to
        ``attempt``.

        The attempt is fully graded only when every answer carries a score.
        Status changes are left to the caller.
        """
        answers = list(answers)
        total = sum(answer.score for answer in answers if answer.score is not None)
        maximum = sum(answer.max_score or 0 for answer in answers)
        percentage = round_half_up(total / maximum * 100) if maximum > 0 else 0

        totals = AttemptTotals(
            total_score=round(total, 2),
            max_score=maximum,
            percentage=percentage,
            fully_graded=all(answer.is_graded for answer in answers)
        )
        attempt.total_score = totals.total_score
        attempt.max_score = totals.max_score
        attempt.percentage = totals.percentage
        logger.debug(
            f"Attempt {attempt.id}: {totals.total_score}/{totals.max_score} "
            f"({totals.percentage}%), fully graded={totals.fully_graded}"
        )
        return totals
