"""
Tests for question bank items and the QuestionBank service.
"""

import pytest

from backend.common.auth.user import UserRole
from backend.common.error_handling import ConflictError, NotFoundError, ValidationError
from backend.domain.questions.model import (
    BooleanAnswer,
    Difficulty,
    MatchPair,
    MultiAnswer,
    NumericAnswer,
    PairsAnswer,
    QuestionBankItem,
    QuestionSource,
    QuestionType,
    TextAnswer,
    answer_from_dict,
)
from backend.domain.questions.repository import QuestionFilter
from backend.tests.helpers import question_payload, publish_assessment


class TestQuestionBankItem:

    def test_create_coerces_wire_values(self):
        item = QuestionBankItem.create(**question_payload("multi_select", difficulty="hard", unknown_key=1))

        assert item.type is QuestionType.MULTI_SELECT
        assert item.difficulty is Difficulty.HARD
        assert item.source is QuestionSource.MANUAL
        assert isinstance(item.correct_answer, MultiAnswer)
        assert item.correct_answer.value == ("a", "b")
        assert [option.id for option in item.options] == ["a", "b", "c", "d"]

    def test_rejects_answer_tag_of_another_type(self):
        with pytest.raises(ValueError):
            QuestionBankItem.create(**question_payload("numeric", correct_answer={"type": "single", "value": "x"}))

    def test_rejects_correct_option_outside_options(self):
        with pytest.raises(ValueError):
            QuestionBankItem.create(**question_payload("multiple_choice", correct_answer={"type": "single", "value": "z"}))

    def test_choice_questions_need_options(self):
        with pytest.raises(ValueError):
            QuestionBankItem.create(**question_payload("multiple_choice", options=[]))

    def test_rejects_unknown_type(self):
        with pytest.raises(ValueError):
            QuestionBankItem.create(**question_payload("numeric", type="drawing"))

    def test_to_dict_round_trips_through_from_dict(self):
        item = QuestionBankItem.create(**question_payload("matching", tags=["geo"]))
        restored = QuestionBankItem.from_dict(item.to_dict())

        assert restored == item
        assert restored.correct_answer.value[0] == MatchPair(left="France", right="Paris")


class TestAnswerFromDict:

    def test_parses_each_variant(self):
        assert answer_from_dict({"type": "boolean", "value": False}) == BooleanAnswer(value=False)
        assert answer_from_dict({"type": "numeric", "value": 3, "tolerance": 0.5}) == NumericAnswer(value=3, tolerance=0.5)
        pairs = answer_from_dict({"type": "pairs", "value": [{"left": "a", "right": "1"}]})
        assert isinstance(pairs, PairsAnswer) and pairs.value == (MatchPair("a", "1"),)
        text = answer_from_dict({"type": "text", "value": ["one", "two"]})
        assert isinstance(text, TextAnswer) and text.acceptable == ("one", "two")

    def test_text_answers_carry_only_acceptable_answers(self):
        text = answer_from_dict({"type": "text", "value": ["war", "conflict"], "case_sensitive": True})

        assert text == TextAnswer(value=("war", "conflict"))
        assert text.to_dict() == {"type": "text", "value": ["war", "conflict"]}

    def test_unknown_tag_is_rejected(self):
        with pytest.raises(ValueError):
            answer_from_dict({"type": "drawing", "value": "x"})

    def test_missing_tag_is_rejected(self):
        with pytest.raises(ValueError):
            answer_from_dict({"value": "x"})


class TestQuestionBank:

    @pytest.mark.asyncio
    async def test_create_and_get(self, engine):
        created = await engine.bank.create(question_payload("numeric"), created_by="tutor-1")
        fetched = await engine.bank.get(created.id)

        assert fetched.created_by == "tutor-1"
        assert fetched.correct_answer.units == "m/s^2"

    @pytest.mark.asyncio
    async def test_get_unknown_raises_not_found(self, engine):
        with pytest.raises(NotFoundError):
            await engine.bank.get("missing")

    @pytest.mark.asyncio
    async def test_invalid_payload_raises_validation_error(self, engine):
        with pytest.raises(ValidationError):
            await engine.bank.create(question_payload("numeric", points=0))

    @pytest.mark.asyncio
    async def test_bulk_create_names_bad_index(self, engine):
        payloads = [question_payload("true_false"), question_payload("ordering", correct_answer={"type": "order", "value": ["x"]})]

        with pytest.raises(ValidationError) as exc_info:
            await engine.bank.bulk_create(payloads)

        assert exc_info.value.details["index"] == 1
        assert await engine.bank.list() == []

    @pytest.mark.asyncio
    async def test_bulk_create_marks_items_imported(self, engine):
        items = await engine.bank.bulk_create([question_payload("true_false"), question_payload("numeric")])

        assert len(items) == 2
        assert {item.source for item in items} == {QuestionSource.IMPORTED}

    @pytest.mark.asyncio
    async def test_list_filters(self, engine):
        await engine.bank.create(question_payload("true_false", subject_id="physics", tags=["energy"]))
        await engine.bank.create(question_payload("numeric", subject_id="physics"))
        await engine.bank.create(question_payload("essay", subject_id="history"))

        physics = await engine.bank.list(QuestionFilter(subject_id="physics"))
        tagged = await engine.bank.list(QuestionFilter(tags=["energy"]))
        searched = await engine.bank.list(QuestionFilter(search="FIRST WORLD WAR"))

        assert len(physics) == 2
        assert [item.type for item in tagged] == [QuestionType.TRUE_FALSE]
        assert [item.type for item in searched] == [QuestionType.ESSAY]

    @pytest.mark.asyncio
    async def test_delete_is_soft(self, engine):
        item = await engine.bank.create(question_payload("numeric"))

        await engine.bank.delete(item.id)

        assert (await engine.bank.get(item.id)).is_active is False
        assert await engine.bank.random_selection(5) == []

    @pytest.mark.asyncio
    async def test_random_selection_respects_count(self, engine):
        for question_type in ("true_false", "numeric", "ordering", "matching"):
            await engine.bank.create(question_payload(question_type))

        selection = await engine.bank.random_selection(3)

        assert len(selection) == 3
        assert len({item.id for item in selection}) == 3
        with pytest.raises(ValidationError):
            await engine.bank.random_selection(0)

    @pytest.mark.asyncio
    async def test_stats(self, engine):
        await engine.bank.create(question_payload("true_false", difficulty="easy"))
        await engine.bank.create(question_payload("numeric", difficulty="easy"))
        removed = await engine.bank.create(question_payload("essay", difficulty="hard"))
        await engine.bank.delete(removed.id)

        stats = await engine.bank.stats()

        assert stats["total"] == 3
        assert stats["active"] == 2
        assert stats["by_difficulty"]["easy"] == 2
        assert stats["by_type"]["essay"] == 1

    @pytest.mark.asyncio
    async def test_content_of_published_question_is_locked(self, engine):
        layout, _ = await publish_assessment(engine, ["numeric"])
        item_id = layout.entries[0].item.id

        with pytest.raises(ConflictError):
            await engine.bank.update(item_id, {"question_text": "Changed stem"})

        updated = await engine.bank.update(item_id, {"explanation": "g is about 9.81 m/s^2", "tags": ["mechanics"]})
        assert updated.explanation == "g is about 9.81 m/s^2"
        assert updated.question_text == "Acceleration due to gravity in m/s^2?"

    @pytest.mark.asyncio
    async def test_archiving_keeps_content_locked(self, engine):
        layout, ids = await publish_assessment(engine, ["multiple_choice"])
        item_id = layout.entries[0].item.id
        started = await engine.attempts.start(layout.definition.id, "student-1")
        attempt_id = started["attempt"]["id"]
        await engine.attempts.answer(attempt_id, "student-1", ids["multiple_choice"], {"type": "single", "value": "b"})
        await engine.attempts.submit(attempt_id, "student-1")
        await engine.composer.archive(layout.definition.id)

        with pytest.raises(ConflictError):
            await engine.bank.update(item_id, {"correct_answer": {"type": "single", "value": "c"}})

        review = await engine.attempts.review(attempt_id, "tutor-1", UserRole.TUTOR)
        chosen = [o for o in review["questions"][0]["options"] if o["is_user_selected"]]
        assert [(o["id"], o["is_correct"]) for o in chosen] == [("b", True)]
        assert review["questions"][0]["grading_result"]["score"] == 1
        assert review["questions"][0]["correct_answer"] == {"type": "single", "value": "b"}

    @pytest.mark.asyncio
    async def test_archived_draft_does_not_lock_content(self, engine):
        layout, _ = await publish_assessment(engine, ["numeric"], publish=False)
        await engine.composer.archive(layout.definition.id)

        updated = await engine.bank.update(layout.entries[0].item.id, {"question_text": "Changed stem"})

        assert updated.question_text == "Changed stem"

    @pytest.mark.asyncio
    async def test_content_of_draft_question_can_change(self, engine):
        layout, _ = await publish_assessment(engine, ["numeric"], publish=False)
        item_id = layout.entries[0].item.id

        updated = await engine.bank.update(item_id, {"question_text": "Changed stem"})

        assert updated.question_text == "Changed stem"

    @pytest.mark.asyncio
    async def test_mark_reviewed(self, engine):
        item = await engine.bank.create(question_payload("true_false"))

        reviewed = await engine.bank.mark_reviewed(item.id, "admin-1")

        assert reviewed.reviewed_by == "admin-1"
        assert reviewed.reviewed_at is not None
