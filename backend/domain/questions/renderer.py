"""
Question Renderer Module

Projects bank items for two audiences:

- attempt takers, with the canonical answer and option correctness removed
  and choices optionally shuffled;
- reviewers, with the canonical answer, the user's answer and the grading
  outcome side by side.

Rendering is a pure projection; it never mutates the item it is given.
"""

import random
from typing import Any, Dict, List, Optional, Sequence, TypeVar

from .model import (
    Answer,
    BooleanAnswer,
    GradingResult,
    MultiAnswer,
    OrderAnswer,
    PairsAnswer,
    QuestionBankItem,
    QuestionType,
    SingleAnswer,
)

T = TypeVar('T')


class QuestionRenderer:
    """
    Builds attempt and review projections of bank items.

    Args:
        rng_factory: Callable returning a fresh ``random.Random`` per render
            call; override it in tests to make shuffles deterministic
    """

    def __init__(self, rng_factory=None):
        self._rng_factory = rng_factory or random.Random

    def render_for_attempt(
        self,
        question: QuestionBankItem,
        shuffle_options: bool = False,
        show_points: bool = True,
        show_time_limit: bool = True,
        points: Optional[float] = None
    ) -> Dict[str, Any]:
        """
        Render a question for someone taking an attempt.

        The displayed order of options is never stored, so answers must be
        resolved by option id, never by position. Ordering options use the
        item itself as their id.

        Args:
            question: The bank item
            shuffle_options: Permute options-based choices
            show_points: Include the point value
            show_time_limit: Include the per-question time limit
            points: Effective point value for this assessment

        Returns:
            Dictionary safe to send to the attempt taker
        """
        rng = self._rng_factory()
        rendered: Dict[str, Any] = {
            "id": question.id,
            "type": question.type.value,
            "difficulty": question.difficulty.value,
            "question_text": question.question_text,
            "question_html": question.question_html,
            "image_url": question.image_url,
        }
        if show_points:
            rendered["points"] = points if points is not None else question.points
        if show_time_limit:
            rendered["time_limit_seconds"] = question.time_limit_seconds

        if question.options:
            options = [
                {key: value for key, value in option.to_dict().items() if key != "is_correct"}
                for option in question.options
            ]
            rendered["options"] = self.shuffled(options, rng) if shuffle_options else options

        answer = question.correct_answer
        if question.type is QuestionType.MATCHING and isinstance(answer, PairsAnswer):
            left = [pair.left for pair in answer.value]
            right = [pair.right for pair in answer.value]
            rendered["matching"] = {
                "left": self.shuffled(left, rng) if answer.shuffle_left else left,
                "right": self.shuffled(right, rng) if answer.shuffle_right else right,
            }

        if question.type is QuestionType.ORDERING and isinstance(answer, OrderAnswer):
            rendered["options"] = [{"id": item, "text": item} for item in self.shuffled(answer.value, rng)]

        return rendered

    def render_for_review(
        self,
        question: QuestionBankItem,
        user_answer: Optional[Answer] = None,
        grading_result: Optional[GradingResult] = None,
        include_correct_answer: bool = True,
        include_explanation: bool = True,
        points: Optional[float] = None
    ) -> Dict[str, Any]:
        """
        Render a question together with the user's answer and its grade.

        For choice-based types every option is annotated with
        ``is_user_selected`` and, when the canonical answer may be shown,
        ``is_correct``.

        Args:
            question: The bank item
            user_answer: The submitted answer, if any
            grading_result: The grading outcome, if any
            include_correct_answer: Reveal the canonical answer
            include_explanation: Reveal explanation and solution steps
            points: Effective point value for this assessment

        Returns:
            Review dictionary
        """
        rendered = question.to_dict()
        rendered["points"] = points if points is not None else question.points
        rendered["user_answer"] = user_answer.to_dict() if user_answer is not None else None
        rendered["grading_result"] = grading_result.to_dict() if grading_result is not None else None

        if not include_correct_answer:
            rendered.pop("correct_answer", None)
            rendered["options"] = [
                {key: value for key, value in option.items() if key != "is_correct"}
                for option in rendered.get("options", [])
            ]
        if not include_explanation:
            rendered.pop("explanation", None)
            rendered.pop("solution_steps", None)

        if question.type.is_choice and question.options:
            annotated = []
            for option in question.options:
                entry = {key: value for key, value in option.to_dict().items() if key != "is_correct"}
                if include_correct_answer:
                    entry["is_correct"] = _contains(question.correct_answer, option.id)
                entry["is_user_selected"] = _contains(user_answer, option.id)
                annotated.append(entry)
            rendered["options"] = annotated

        return rendered

    @staticmethod
    def shuffled(items: Sequence[T], rng: random.Random) -> List[T]:
        """Fisher-Yates shuffle of a copy of ``items``."""
        shuffled = list(items)
        for i in range(len(shuffled) - 1, 0, -1):
            j = rng.randint(0, i)
            shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
        return shuffled


def _choice_value(value: Any) -> Any:
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return value


def _contains(answer: Optional[Answer], option_id: str) -> bool:
    if isinstance(answer, (SingleAnswer, BooleanAnswer)):
        return _choice_value(answer.value) == _choice_value(option_id)
    if isinstance(answer, MultiAnswer):
        return option_id in answer.value
    return False
