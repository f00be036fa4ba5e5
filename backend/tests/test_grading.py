"""
Tests for per-answer grading rules and attempt aggregation.
"""

import pytest

from backend.assessments.grading import GRADERS, GradingEngine, round_half_up
from backend.assessments.models import AssessmentAttempt, AttemptAnswer, AttemptStatus
from backend.common.error_handling import StructuralMismatchError
from backend.domain.questions.model import QuestionBankItem, QuestionType, answer_from_dict
from backend.tests.helpers import CORRECT_ANSWERS, question_payload


def make_item(question_type, **overrides):
    return QuestionBankItem.create(**question_payload(question_type, **overrides))


def grade(question_type, answer, points=None, **overrides):
    item = make_item(question_type, **overrides)
    return GradingEngine().grade(item, answer_from_dict(answer), points)


@pytest.fixture
def grading():
    return GradingEngine()


def test_every_question_type_has_a_rule():
    assert set(GRADERS) == set(QuestionType)


@pytest.mark.parametrize("question_type", [t.value for t in QuestionType if t.is_objective])
def test_canonical_answers_earn_full_marks(question_type):
    result = grade(question_type, CORRECT_ANSWERS[question_type], points=4)

    assert result.is_correct is True
    assert result.score == 4
    assert result.percent_correct == 100


@pytest.mark.parametrize("question_type", ["short_answer", "essay"])
def test_constructed_responses_wait_for_a_marker(question_type):
    result = grade(question_type, CORRECT_ANSWERS[question_type])

    assert result.is_graded is False
    assert result.score is None and result.is_correct is None
    assert result.max_score == 1


def test_wrong_tag_is_a_structural_mismatch(grading):
    with pytest.raises(StructuralMismatchError):
        grading.grade(make_item("numeric"), answer_from_dict({"type": "text", "value": "9.81"}))


def test_points_default_to_item_points(grading):
    result = grading.grade(make_item("true_false", points=3), answer_from_dict({"type": "boolean", "value": False}))

    assert result.score == 0
    assert result.max_score == 3
    assert result.is_correct is False


class TestChoice:

    def test_multiple_choice_is_all_or_nothing(self):
        assert grade("multiple_choice", {"type": "single", "value": "a"}, points=2).score == 0

    @pytest.mark.parametrize("given", [True, "true", " TRUE "])
    def test_true_false_accepts_boolean_strings(self, given):
        tag = "boolean" if isinstance(given, bool) else "single"
        assert grade("true_false", {"type": tag, "value": given}).is_correct is True

    def test_true_false_with_string_key(self):
        result = grade("true_false", {"type": "boolean", "value": False},
                       correct_answer={"type": "single", "value": "false"})
        assert result.is_correct is True


class TestMultiSelect:

    @pytest.mark.parametrize("selected, expected", [
        (["a", "b"], 4),
        (["a"], 2),
        (["a", "c"], 0),
        (["a", "b", "c"], 2),
        (["c", "d"], 0),
        ([], 0),
    ])
    def test_partial_credit(self, selected, expected):
        result = grade("multi_select", {"type": "multi", "value": selected}, points=4)

        assert result.score == expected
        assert result.is_correct is (set(selected) == {"a", "b"})

    def test_adding_a_wrong_option_never_raises_the_score(self):
        base = grade("multi_select", {"type": "multi", "value": ["a"]}, points=3).score
        worse = grade("multi_select", {"type": "multi", "value": ["a", "d"]}, points=3).score

        assert worse <= base

    def test_fractional_scores_round_to_two_decimals(self):
        result = grade(
            "multi_select", {"type": "multi", "value": ["a"]}, points=1,
            correct_answer={"type": "multi", "value": ["a", "b", "c"]}
        )

        assert result.score == 0.33


class TestNumeric:

    @pytest.mark.parametrize("value, correct", [(9.81, True), (9.77, True), (9.85, True), (9.7, False), (10, False)])
    def test_tolerance_band(self, value, correct):
        assert grade("numeric", {"type": "numeric", "value": value}).is_correct is correct

    def test_exact_match_without_tolerance(self):
        result = grade("numeric", {"type": "numeric", "value": 42.001},
                       correct_answer={"type": "numeric", "value": 42})
        assert result.is_correct is False


class TestMatchingAndOrdering:

    def test_three_of_four_pairs(self):
        answer = {"type": "pairs", "value": [
            {"left": "France", "right": "Paris"},
            {"left": "Kenya", "right": "Nairobi"},
            {"left": "Peru", "right": "Lima"},
            {"left": "Japan", "right": "Seoul"},
        ]}

        result = grade("matching", answer, points=4)
        half_up = grade("matching", answer, points=2)

        assert result.score == 3 and result.is_correct is False
        assert half_up.score == round_half_up(2 * 3 / 4) == 2

    def test_missing_pairs_count_as_wrong(self):
        answer = {"type": "pairs", "value": [{"left": "France", "right": "Paris"}]}

        assert grade("matching", answer, points=4).score == 1

    def test_ordering_counts_positions(self):
        result = grade("ordering", {"type": "order", "value": ["Mercury", "Venus", "Mars", "Earth"]}, points=4)

        assert result.score == 2
        assert result.percent_correct == 50

    def test_short_ordering_is_not_correct(self):
        result = grade("ordering", {"type": "order", "value": ["Mercury", "Venus", "Earth"]}, points=4)

        assert result.is_correct is False
        assert result.score == 3


class TestFillInBlank:

    def test_case_insensitive_and_trimmed_by_default(self):
        assert grade("fill_in_blank", {"type": "blanks", "value": [" FRANCE", "paris "]}).is_correct is True

    def test_case_sensitive_when_configured(self):
        result = grade(
            "fill_in_blank", {"type": "blanks", "value": ["france", "Paris"]}, points=2,
            correct_answer={"type": "blanks", "value": ["France", "Paris"], "case_sensitive": True}
        )

        assert result.score == 1
        assert result.is_correct is False

    def test_wrong_blank_count_scores_zero(self):
        result = grade("fill_in_blank", {"type": "blanks", "value": ["France"]}, points=2)

        assert result.score == 0
        assert "blanks" in result.feedback


def test_grading_is_repeatable(grading):
    item = make_item("matching")
    answer = answer_from_dict(CORRECT_ANSWERS["matching"])

    assert grading.grade(item, answer, 3) == grading.grade(item, answer, 3)


def test_unanswered_scores_zero(grading):
    result = grading.grade_unanswered(make_item("essay", points=5))

    assert result.score == 0
    assert result.is_correct is False
    assert result.max_score == 5


class TestFinalizeAttempt:

    def _answer(self, score, max_score, is_correct=None):
        return AttemptAnswer(
            attempt_id="attempt-1",
            assessment_question_id=f"q-{score}-{max_score}",
            question_bank_item_id="item-1",
            score=score,
            max_score=max_score,
            is_correct=is_correct
        )

    def test_totals_and_half_up_percentage(self, grading):
        attempt = AssessmentAttempt(assessment_id="assessment-1", user_id="student-1")
        answers = [self._answer(1, 2), self._answer(0.5, 2), self._answer(0, 4)]

        totals = grading.finalize_attempt(attempt, answers)

        assert totals.total_score == 1.5
        assert totals.max_score == 8
        assert totals.percentage == 19
        assert totals.fully_graded is True
        assert totals.status is AttemptStatus.GRADED
        assert (attempt.total_score, attempt.max_score, attempt.percentage) == (1.5, 8, 19)

    def test_pending_answer_keeps_attempt_submitted(self, grading):
        attempt = AssessmentAttempt(assessment_id="assessment-1", user_id="student-1")
        answers = [self._answer(2, 2), self._answer(None, 3)]

        totals = grading.finalize_attempt(attempt, answers)

        assert totals.fully_graded is False
        assert totals.status is AttemptStatus.SUBMITTED
        assert totals.total_score == 2
        assert totals.max_score == 5

    def test_empty_attempt(self, grading):
        attempt = AssessmentAttempt(assessment_id="assessment-1", user_id="student-1")

        totals = grading.finalize_attempt(attempt, [])

        assert totals.percentage == 0
        assert totals.max_score == 0


def test_round_half_up():
    assert round_half_up(0.5) == 1
    assert round_half_up(2.5) == 3
    assert round_half_up(2.49) == 2
