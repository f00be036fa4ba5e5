"""
Answer Validation Module

Structural validation of submitted answers. A raw payload is accepted only
if it carries a tag allowed for the question type and a value of the shape
that tag requires; anything else is rejected before grading with a
``StructuralMismatchError``.
"""

import math
from typing import Any, Callable, Dict, Optional

from backend.common.error_handling import StructuralMismatchError
from backend.common.logger import app_logger
from .model import ANSWER_TAGS_BY_TYPE, Answer, AnswerTag, QuestionType, answer_from_dict

logger = app_logger.getChild("questions.validation")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _is_string_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) for item in value)


def _check_single(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (list, dict)):
        return "value must be a single option id or scalar"
    return None


def _check_boolean(value: Any) -> Optional[str]:
    return None if isinstance(value, bool) else "value must be a boolean"


def _check_multi(value: Any) -> Optional[str]:
    return None if _is_string_list(value) else "value must be an array of option ids"


def _check_text(value: Any) -> Optional[str]:
    return None if isinstance(value, str) else "value must be a string"


def _check_numeric(value: Any) -> Optional[str]:
    return None if _is_number(value) else "value must be a finite number"


def _check_pairs(value: Any) -> Optional[str]:
    if not isinstance(value, list):
        return "value must be an array of {left, right} pairs"
    for pair in value:
        if not (isinstance(pair, dict) and isinstance(pair.get("left"), str) and isinstance(pair.get("right"), str)):
            return "each pair must be an object with string 'left' and 'right'"
    return None


def _check_order(value: Any) -> Optional[str]:
    return None if _is_string_list(value) else "value must be an array of item identities"


def _check_blanks(value: Any) -> Optional[str]:
    return None if _is_string_list(value) else "value must be an array of strings, one per blank"


SHAPE_CHECKS: Dict[AnswerTag, Callable[[Any], Optional[str]]] = {
    AnswerTag.SINGLE: _check_single,
    AnswerTag.BOOLEAN: _check_boolean,
    AnswerTag.MULTI: _check_multi,
    AnswerTag.TEXT: _check_text,
    AnswerTag.NUMERIC: _check_numeric,
    AnswerTag.PAIRS: _check_pairs,
    AnswerTag.ORDER: _check_order,
    AnswerTag.BLANKS: _check_blanks,
}


class AnswerValidator:
    """
    Checks that a raw answer payload matches a question type.

    Examples:
        validator = AnswerValidator()
        answer = validator.validate(QuestionType.NUMERIC, {"type": "numeric", "value": 9.81})
    """

    def validate(self, question_type: QuestionType, payload: Any) -> Answer:
        """
        Validate ``payload`` against ``question_type`` and parse it.

        Args:
            question_type: Type of the question being answered
            payload: Wire payload ``{"type": <tag>, "value": ...}``

        Returns:
            The parsed answer variant

        Raises:
            StructuralMismatchError: If the tag or value shape is wrong
        """
        if isinstance(question_type, str):
            question_type = QuestionType(question_type)
        expected = [tag.value for tag in ANSWER_TAGS_BY_TYPE[question_type]]

        if not isinstance(payload, dict) or "type" not in payload:
            raise self._reject(question_type, expected, None, "answer must be an object with a 'type' field")

        received = payload["type"]
        if received not in expected:
            raise self._reject(question_type, expected, received)

        if "value" not in payload:
            raise self._reject(question_type, expected, received, "answer must have a 'value' field")

        tag = AnswerTag(received)
        problem = SHAPE_CHECKS[tag](payload["value"])
        if problem:
            raise self._reject(question_type, expected, received, problem)

        wire = {"type": received, "value": payload["value"]}
        if tag is AnswerTag.NUMERIC and isinstance(payload.get("units"), str):
            wire["units"] = payload["units"]
        return answer_from_dict(wire)

    def is_valid(self, question_type: QuestionType, payload: Any) -> bool:
        """Non-raising variant of ``validate``."""
        try:
            self.validate(question_type, payload)
        except StructuralMismatchError:
            return False
        return True

    @staticmethod
    def _reject(
        question_type: QuestionType,
        expected: list,
        received: Optional[str],
        reason: Optional[str] = None
    ) -> StructuralMismatchError:
        error = StructuralMismatchError(
            expected=expected,
            received=received if isinstance(received, str) or received is None else repr(received),
            reason=reason,
            question_type=question_type.value
        )
        logger.warning(f"Rejected answer for {question_type.value}: {error.message}")
        return error
