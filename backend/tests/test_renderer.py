"""
Tests for the attempt and review projections of bank items.
"""

import random

import pytest

from backend.assessments.grading import GradingEngine
from backend.domain.questions.model import QuestionBankItem, answer_from_dict
from backend.domain.questions.renderer import QuestionRenderer
from backend.tests.helpers import question_payload


def make_item(question_type, **overrides):
    return QuestionBankItem.create(**question_payload(question_type, explanation="Because.", **overrides))


@pytest.fixture
def renderer():
    return QuestionRenderer(rng_factory=lambda: random.Random(42))


class TestRenderForAttempt:

    def test_hides_correct_answer_and_explanation(self, renderer):
        rendered = renderer.render_for_attempt(make_item("multiple_choice"))

        assert "correct_answer" not in rendered
        assert "explanation" not in rendered
        assert all("is_correct" not in option for option in rendered["options"])
        assert [option["id"] for option in rendered["options"]] == ["a", "b", "c", "d"]

    def test_option_flags_are_stripped(self, renderer):
        options = [{"id": "x", "text": "X", "is_correct": True}, {"id": "y", "text": "Y", "is_correct": False}]
        item = make_item("multiple_choice", options=options, correct_answer={"type": "single", "value": "x"})

        rendered = renderer.render_for_attempt(item)

        assert rendered["options"] == [{"id": "x", "text": "X"}, {"id": "y", "text": "Y"}]

    def test_shuffle_is_a_permutation_and_deterministic_per_seed(self, renderer):
        item = make_item("multiple_choice")

        first = renderer.render_for_attempt(item, shuffle_options=True)
        second = renderer.render_for_attempt(item, shuffle_options=True)

        assert sorted(o["id"] for o in first["options"]) == ["a", "b", "c", "d"]
        assert first["options"] == second["options"]

    def test_points_and_time_limit_toggles(self, renderer):
        item = make_item("numeric", points=3, time_limit_seconds=90)

        shown = renderer.render_for_attempt(item, points=5)
        hidden = renderer.render_for_attempt(item, show_points=False, show_time_limit=False)

        assert shown["points"] == 5
        assert shown["time_limit_seconds"] == 90
        assert "points" not in hidden and "time_limit_seconds" not in hidden

    def test_matching_exposes_both_columns(self, renderer):
        rendered = renderer.render_for_attempt(make_item("matching"))

        assert sorted(rendered["matching"]["left"]) == ["France", "Japan", "Kenya", "Peru"]
        assert sorted(rendered["matching"]["right"]) == ["Lima", "Nairobi", "Paris", "Tokyo"]

    def test_matching_columns_can_stay_in_order(self, renderer):
        item = make_item("matching", correct_answer={
            "type": "pairs",
            "value": [{"left": "1", "right": "one"}, {"left": "2", "right": "two"}, {"left": "3", "right": "three"}],
            "shuffle_left": False,
        })

        rendered = renderer.render_for_attempt(item)

        assert rendered["matching"]["left"] == ["1", "2", "3"]

    def test_ordering_items_are_presented_by_identity(self, renderer):
        rendered = renderer.render_for_attempt(make_item("ordering"))

        assert sorted(option["text"] for option in rendered["options"]) == ["Earth", "Mars", "Mercury", "Venus"]
        assert all(option["id"] == option["text"] for option in rendered["options"])

    def test_ordering_submitted_by_rendered_ids_earns_full_marks(self, renderer):
        item = make_item("ordering")
        rendered = renderer.render_for_attempt(item)
        by_text = {option["text"]: option["id"] for option in rendered["options"]}
        ids = [by_text[planet] for planet in ("Mercury", "Venus", "Earth", "Mars")]

        result = GradingEngine().grade(item, answer_from_dict({"type": "order", "value": ids}))

        assert result.is_correct is True

    def test_render_then_grade_by_option_id_earns_full_marks(self, renderer):
        item = make_item("multiple_choice", points=2)
        rendered = renderer.render_for_attempt(item, shuffle_options=True)
        chosen = next(option for option in rendered["options"] if option["text"] == "Chloroplast")

        result = GradingEngine().grade(item, answer_from_dict({"type": "single", "value": chosen["id"]}))

        assert result.is_correct is True
        assert result.score == 2


class TestRenderForReview:

    def test_annotates_choice_options(self, renderer):
        item = make_item("multi_select")
        user_answer = answer_from_dict({"type": "multi", "value": ["a", "c"]})
        result = GradingEngine().grade(item, user_answer)

        rendered = renderer.render_for_review(item, user_answer=user_answer, grading_result=result)
        options = {option["id"]: option for option in rendered["options"]}

        assert options["a"] == {"id": "a", "text": "Mitochondria", "is_correct": True, "is_user_selected": True}
        assert options["b"]["is_correct"] is True and options["b"]["is_user_selected"] is False
        assert options["c"]["is_correct"] is False and options["c"]["is_user_selected"] is True
        assert rendered["user_answer"] == {"type": "multi", "value": ["a", "c"]}
        assert rendered["grading_result"]["score"] == 0

    @pytest.mark.parametrize("user_value, selected", [(True, "true"), (False, "false")])
    def test_annotates_true_false_options(self, renderer, user_value, selected):
        item = make_item(
            "true_false",
            options=[{"id": "true", "text": "True"}, {"id": "false", "text": "False"}],
        )
        user_answer = answer_from_dict({"type": "boolean", "value": user_value})

        rendered = renderer.render_for_review(item, user_answer=user_answer)
        options = {option["id"]: option for option in rendered["options"]}

        assert options["true"]["is_correct"] is True
        assert options["false"]["is_correct"] is False
        assert [o for o in options if options[o]["is_user_selected"]] == [selected]

    def test_can_withhold_answer_and_explanation(self, renderer):
        item = make_item("multiple_choice")

        rendered = renderer.render_for_review(item, include_correct_answer=False, include_explanation=False)

        assert "correct_answer" not in rendered
        assert "explanation" not in rendered and "solution_steps" not in rendered
        assert all("is_correct" not in option for option in rendered["options"])
        assert all(option["is_user_selected"] is False for option in rendered["options"])

    def test_reveals_answer_for_other_types(self, renderer):
        item = make_item("numeric")

        rendered = renderer.render_for_review(item, points=4)

        assert rendered["correct_answer"]["value"] == 9.81
        assert rendered["explanation"] == "Because."
        assert rendered["points"] == 4
        assert rendered["user_answer"] is None


def test_shuffled_leaves_input_untouched():
    items = [1, 2, 3, 4, 5]

    shuffled = QuestionRenderer.shuffled(items, random.Random(3))

    assert items == [1, 2, 3, 4, 5]
    assert sorted(shuffled) == items
