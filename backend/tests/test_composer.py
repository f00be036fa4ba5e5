"""
Tests for assessment composition and the publication lifecycle.
"""

import datetime

import pytest

from backend.assessments.models import AssessmentStatus, AssessmentType
from backend.assessments.repositories import AssessmentFilter
from backend.common.auth.user import UserRole
from backend.common.error_handling import InvalidStateError, NotFoundError, ValidationError
from backend.tests.helpers import NOW, publish_assessment, question_payload


class TestCreate:

    @pytest.mark.asyncio
    async def test_creates_draft_with_ordered_questions(self, engine):
        layout, ids = await publish_assessment(engine, ["true_false", "numeric", "essay"], publish=False)

        assert layout.definition.status is AssessmentStatus.DRAFT
        assert layout.definition.type is AssessmentType.QUIZ
        assert [entry.question.order for entry in layout.entries] == [0, 1, 2]
        assert [entry.item.type.value for entry in layout.entries] == ["true_false", "numeric", "essay"]
        assert set(ids) == {"true_false", "numeric", "essay"}

    @pytest.mark.asyncio
    async def test_requires_a_question(self, engine):
        with pytest.raises(ValidationError):
            await engine.composer.create({"title": "Empty quiz", "type": "quiz", "questions": []})

    @pytest.mark.asyncio
    async def test_rejects_unknown_bank_items(self, engine):
        with pytest.raises(ValidationError) as exc_info:
            await engine.composer.create({"title": "Bad quiz", "type": "quiz", "questions": [{"question_bank_item_id": "nope"}]})

        assert exc_info.value.details["missing"] == ["nope"]

    @pytest.mark.asyncio
    async def test_rejects_inactive_bank_items(self, engine):
        item = await engine.bank.create(question_payload("numeric"))
        await engine.bank.delete(item.id)

        with pytest.raises(ValidationError):
            await engine.composer.create({"title": "Stale quiz", "type": "quiz", "questions": [{"question_bank_item_id": item.id}]})

    @pytest.mark.asyncio
    @pytest.mark.parametrize("definition", [
        {"title": "ab"},
        {"title": "Quiz", "pass_mark": 60, "total_marks": 50},
        {"title": "Quiz", "max_attempts": 0},
        {"title": "Quiz", "type": "oral"},
        {"title": "Quiz", "available_from": "2026-03-02T10:00:00", "available_until": "2026-03-01T10:00:00"},
    ])
    async def test_rejects_invalid_definitions(self, engine, definition):
        item = await engine.bank.create(question_payload("numeric"))

        with pytest.raises(ValidationError):
            await engine.composer.create(dict({"type": "quiz"}, **definition, questions=[{"question_bank_item_id": item.id}]))

    @pytest.mark.asyncio
    async def test_rejects_unknown_section_index(self, engine):
        item = await engine.bank.create(question_payload("numeric"))

        with pytest.raises(ValidationError):
            await engine.composer.create({
                "title": "Sectioned quiz",
                "type": "quiz",
                "sections": [{"title": "Part A"}],
                "questions": [{"question_bank_item_id": item.id, "section": 1}],
            })


class TestLayout:

    @pytest.mark.asyncio
    async def test_sectionless_questions_join_the_first_section(self, engine):
        layout, _ = await publish_assessment(
            engine,
            ["true_false", "numeric", "ordering"],
            sections=[{"title": "Part A"}, {"title": "Part B", "time_limit_minutes": 10}],
            section_of=[1, None, 0],
        )

        part_a, part_b = layout.sections
        assert part_a.section.title == "Part A"
        assert [e.item.type.value for e in part_a.entries] == ["numeric", "ordering"]
        assert [e.item.type.value for e in part_b.entries] == ["true_false"]

    @pytest.mark.asyncio
    async def test_effective_points(self, engine):
        item = await engine.bank.create(question_payload("numeric", points=3))
        other = await engine.bank.create(question_payload("true_false"))

        layout = await engine.composer.create({
            "title": "Points quiz",
            "type": "test",
            "questions": [
                {"question_bank_item_id": item.id},
                {"question_bank_item_id": other.id, "override_points": 5},
            ],
        })

        assert [entry.points for entry in layout.entries] == [3, 5]
        assert layout.total_points == 8

    @pytest.mark.asyncio
    async def test_unknown_assessment(self, engine):
        with pytest.raises(NotFoundError):
            await engine.composer.layout("missing")


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_publish_then_archive(self, engine):
        layout, _ = await publish_assessment(engine, ["numeric"], publish=False)
        assessment_id = layout.definition.id

        published = await engine.composer.publish(assessment_id)
        archived = await engine.composer.archive(assessment_id)

        assert published.status is AssessmentStatus.PUBLISHED
        assert archived.status is AssessmentStatus.ARCHIVED
        assert published.published_at is not None
        assert archived.published_at == published.published_at

    @pytest.mark.asyncio
    async def test_published_cannot_be_republished_or_unpublished(self, engine):
        layout, _ = await publish_assessment(engine, ["numeric"])

        with pytest.raises(InvalidStateError):
            await engine.composer.publish(layout.definition.id)

    @pytest.mark.asyncio
    async def test_archived_is_terminal(self, engine):
        layout, _ = await publish_assessment(engine, ["numeric"])
        await engine.composer.archive(layout.definition.id)

        with pytest.raises(InvalidStateError):
            await engine.composer.publish(layout.definition.id)
        with pytest.raises(InvalidStateError):
            await engine.composer.update(layout.definition.id, {"description": "Too late"})

    @pytest.mark.asyncio
    async def test_draft_can_change_freely(self, engine):
        layout, _ = await publish_assessment(engine, ["numeric", "true_false"], publish=False)
        extra = await engine.bank.create(question_payload("ordering"))

        updated = await engine.composer.update(layout.definition.id, {
            "title": "Renamed quiz",
            "shuffle_questions": True,
            "questions": [{"question_bank_item_id": extra.id}],
        })

        assert updated.definition.title == "Renamed quiz"
        assert updated.definition.shuffle_questions is True
        assert [entry.item.id for entry in updated.entries] == [extra.id]

    @pytest.mark.asyncio
    async def test_published_allows_only_presentation_and_window_edits(self, engine):
        layout, _ = await publish_assessment(engine, ["numeric"])
        assessment_id = layout.definition.id

        updated = await engine.composer.update(assessment_id, {
            "description": "Revised",
            "max_attempts": 3,
            "available_until": "2026-12-31T23:59:59",
        })
        assert updated.definition.max_attempts == 3
        assert updated.definition.available_until == datetime.datetime(2026, 12, 31, 23, 59, 59)

        with pytest.raises(InvalidStateError) as exc_info:
            await engine.composer.update(assessment_id, {"title": "New title", "time_limit_minutes": 5})
        assert exc_info.value.details["fields"] == ["time_limit_minutes", "title"]

        with pytest.raises(InvalidStateError):
            await engine.composer.update(assessment_id, {"questions": []})


class TestVisibility:

    async def _seed(self, engine):
        draft, _ = await publish_assessment(engine, ["numeric"], publish=False, title="Draft quiz")
        live, _ = await publish_assessment(engine, ["numeric"], title="Live quiz", subject_id="physics")
        future, _ = await publish_assessment(
            engine, ["numeric"], title="Future quiz", available_from="2026-04-01T00:00:00"
        )
        expired, _ = await publish_assessment(
            engine, ["numeric"], title="Expired quiz", available_until="2026-03-01T00:00:00"
        )
        return draft, live, future, expired

    @pytest.mark.asyncio
    async def test_learners_see_published_assessments_in_window(self, engine):
        await self._seed(engine)

        visible = await engine.composer.list(UserRole.STUDENT, now=NOW)
        parent = await engine.composer.list(UserRole.PARENT, AssessmentFilter(statuses=["draft"]), now=NOW)

        assert [d.title for d in visible] == ["Live quiz"]
        assert [d.title for d in parent] == ["Live quiz"]

    @pytest.mark.asyncio
    async def test_privileged_roles_see_everything(self, engine):
        await self._seed(engine)

        everything = await engine.composer.list(UserRole.TUTOR, now=NOW)
        drafts = await engine.composer.list(UserRole.ADMIN, AssessmentFilter(statuses=["draft"]), now=NOW)
        physics = await engine.composer.list(UserRole.ADMIN, AssessmentFilter(subject_id="physics"), now=NOW)

        assert len(everything) == 4
        assert [d.title for d in drafts] == ["Draft quiz"]
        assert [d.title for d in physics] == ["Live quiz"]

    @pytest.mark.asyncio
    async def test_learner_detail_is_an_outline(self, engine):
        draft, live, future, _ = await self._seed(engine)

        outline = await engine.composer.detail(live.definition.id, UserRole.STUDENT, now=NOW)
        full = await engine.composer.detail(live.definition.id, UserRole.TUTOR, now=NOW)

        assert outline["sections"][0]["questions"] == []
        assert outline["sections"][0]["question_count"] == 1
        assert full["sections"][0]["questions"][0]["question"]["correct_answer"]["value"] == 9.81
        assert full["total_points"] == 1

        with pytest.raises(NotFoundError):
            await engine.composer.detail(draft.definition.id, UserRole.STUDENT, now=NOW)
        with pytest.raises(NotFoundError):
            await engine.composer.detail(future.definition.id, UserRole.STUDENT, now=NOW)

    @pytest.mark.asyncio
    async def test_page_size_is_capped(self, engine):
        await self._seed(engine)

        page = await engine.composer.list(UserRole.ADMIN, limit=1000, offset=1, now=NOW)

        assert len(page) == 3
