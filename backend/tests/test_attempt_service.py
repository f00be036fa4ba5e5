"""
Tests for the attempt lifecycle.
"""

import pytest

from backend.assessments.models import AttemptStatus
from backend.common.auth.user import UserRole
from backend.common.error_handling import (
    AttemptClosedError,
    AttemptLimitExceededError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    NotPublishedError,
    OutOfWindowError,
    StructuralMismatchError,
    ValidationError,
)
from backend.tests.helpers import CORRECT_ANSWERS, publish_assessment

STUDENT = "student-1"


async def start(engine, assessment_id, user_id=STUDENT):
    started = await engine.attempts.start(assessment_id, user_id)
    return started["attempt"]["id"], started


class TestStart:

    @pytest.mark.asyncio
    async def test_start_renders_questions_without_answers(self, engine):
        layout, _ = await publish_assessment(engine, ["multiple_choice", "numeric"], time_limit_minutes=30)

        _, started = await start(engine, layout.definition.id)

        assert started["attempt"]["status"] == "in_progress"
        assert started["attempt"]["attempt_number"] == 1
        assert started["expires_at"] == "2026-03-02T09:30:00"
        assert started["assessment"]["total_points"] == 2
        questions = started["sections"][0]["questions"]
        assert [q["type"] for q in questions] == ["multiple_choice", "numeric"]
        assert all("correct_answer" not in q for q in questions)

    @pytest.mark.asyncio
    async def test_draft_cannot_be_started(self, engine):
        layout, _ = await publish_assessment(engine, ["numeric"], publish=False)

        with pytest.raises(NotPublishedError):
            await engine.attempts.start(layout.definition.id, STUDENT)

    @pytest.mark.asyncio
    async def test_archived_cannot_be_started(self, engine):
        layout, _ = await publish_assessment(engine, ["numeric"])
        await engine.composer.archive(layout.definition.id)

        with pytest.raises(NotPublishedError):
            await engine.attempts.start(layout.definition.id, STUDENT)

    @pytest.mark.asyncio
    async def test_window_is_enforced(self, engine, clock):
        layout, _ = await publish_assessment(
            engine, ["numeric"],
            available_from="2026-03-02T10:00:00", available_until="2026-03-02T11:00:00"
        )

        with pytest.raises(OutOfWindowError) as exc_info:
            await engine.attempts.start(layout.definition.id, STUDENT)
        assert exc_info.value.http_status == 403

        clock.advance(hours=1)
        await engine.attempts.start(layout.definition.id, STUDENT)

        clock.advance(hours=1, seconds=1)
        with pytest.raises(OutOfWindowError):
            await engine.attempts.start(layout.definition.id, STUDENT)

    @pytest.mark.asyncio
    async def test_attempt_limit(self, engine):
        layout, _ = await publish_assessment(engine, ["numeric"], max_attempts=2)
        assessment_id = layout.definition.id

        await start(engine, assessment_id)
        _, second = await start(engine, assessment_id)

        assert second["attempt"]["attempt_number"] == 2
        with pytest.raises(AttemptLimitExceededError):
            await engine.attempts.start(assessment_id, STUDENT)

        # other users have their own allowance
        _, other = await start(engine, assessment_id, user_id="student-2")
        assert other["attempt"]["attempt_number"] == 1

    @pytest.mark.asyncio
    async def test_unknown_assessment(self, engine):
        with pytest.raises(NotFoundError):
            await engine.attempts.start("missing", STUDENT)


class TestAnswer:

    @pytest.mark.asyncio
    async def test_answer_is_graded_on_write(self, engine):
        layout, ids = await publish_assessment(engine, ["multi_select"])
        attempt_id, _ = await start(engine, layout.definition.id)

        response = await engine.attempts.answer(
            attempt_id, STUDENT, ids["multi_select"], {"type": "multi", "value": ["a"]}, time_taken_seconds=12
        )

        assert response == {"question_id": ids["multi_select"], "is_correct": False, "score": 0.5, "max_score": 1}

    @pytest.mark.asyncio
    async def test_reanswering_replaces_the_row(self, engine):
        layout, ids = await publish_assessment(engine, ["true_false"])
        attempt_id, _ = await start(engine, layout.definition.id)

        await engine.attempts.answer(attempt_id, STUDENT, ids["true_false"], {"type": "boolean", "value": False})
        await engine.attempts.answer(attempt_id, STUDENT, ids["true_false"], {"type": "boolean", "value": True})

        answers = await engine.attempts.attempts.get_answers(attempt_id)
        assert len(answers) == 1
        assert answers[0].is_correct is True

    @pytest.mark.asyncio
    async def test_hidden_results(self, engine):
        layout, ids = await publish_assessment(engine, ["true_false"], show_results_immediately=False)
        attempt_id, _ = await start(engine, layout.definition.id)

        response = await engine.attempts.answer(attempt_id, STUDENT, ids["true_false"], CORRECT_ANSWERS["true_false"])

        assert response["score"] is None and response["is_correct"] is None

    @pytest.mark.asyncio
    async def test_only_the_owner_may_answer(self, engine):
        layout, ids = await publish_assessment(engine, ["numeric"])
        attempt_id, _ = await start(engine, layout.definition.id)

        with pytest.raises(ForbiddenError):
            await engine.attempts.answer(attempt_id, "student-2", ids["numeric"], CORRECT_ANSWERS["numeric"])

    @pytest.mark.asyncio
    async def test_structural_mismatch(self, engine):
        layout, ids = await publish_assessment(engine, ["numeric"])
        attempt_id, _ = await start(engine, layout.definition.id)

        with pytest.raises(StructuralMismatchError):
            await engine.attempts.answer(attempt_id, STUDENT, ids["numeric"], {"type": "text", "value": "9.8"})
        assert await engine.attempts.attempts.get_answers(attempt_id) == []

    @pytest.mark.asyncio
    async def test_unknown_question(self, engine):
        layout, _ = await publish_assessment(engine, ["numeric"])
        attempt_id, _ = await start(engine, layout.definition.id)

        with pytest.raises(NotFoundError):
            await engine.attempts.answer(attempt_id, STUDENT, "not-in-this-assessment", CORRECT_ANSWERS["numeric"])

    @pytest.mark.asyncio
    async def test_closed_attempt_rejects_answers(self, engine):
        layout, ids = await publish_assessment(engine, ["numeric"])
        attempt_id, _ = await start(engine, layout.definition.id)
        await engine.attempts.submit(attempt_id, STUDENT)

        with pytest.raises(AttemptClosedError) as exc_info:
            await engine.attempts.answer(attempt_id, STUDENT, ids["numeric"], CORRECT_ANSWERS["numeric"])
        assert exc_info.value.http_status == 409


class TestSubmit:

    @pytest.mark.asyncio
    async def test_objective_attempt_is_graded_on_submit(self, engine, clock):
        layout, ids = await publish_assessment(engine, ["multiple_choice", "numeric", "ordering", "matching"])
        attempt_id, _ = await start(engine, layout.definition.id)
        await engine.attempts.answer(attempt_id, STUDENT, ids["multiple_choice"], CORRECT_ANSWERS["multiple_choice"])
        await engine.attempts.answer(attempt_id, STUDENT, ids["numeric"], {"type": "numeric", "value": 3})
        await engine.attempts.answer(attempt_id, STUDENT, ids["ordering"], CORRECT_ANSWERS["ordering"])
        clock.advance(minutes=5)

        result = await engine.attempts.submit(attempt_id, STUDENT)

        assert result["status"] == "graded"
        assert result["total_score"] == 2
        assert result["max_score"] == 4
        assert result["percentage"] == 50
        assert result["time_spent_seconds"] == 300
        assert len(result["answers"]) == 4
        unanswered = next(a for a in result["answers"] if a["question_id"] == ids["matching"])
        assert unanswered["score"] == 0 and unanswered["is_correct"] is False

        graded = engine.events.events_of("AttemptGradedEvent")
        assert [event.percentage for event in graded] == [50]

    @pytest.mark.asyncio
    async def test_submit_twice_is_rejected(self, engine):
        layout, _ = await publish_assessment(engine, ["numeric"])
        attempt_id, _ = await start(engine, layout.definition.id)
        await engine.attempts.submit(attempt_id, STUDENT)

        with pytest.raises(AttemptClosedError):
            await engine.attempts.submit(attempt_id, STUDENT)

    @pytest.mark.asyncio
    async def test_only_the_owner_may_submit(self, engine):
        layout, _ = await publish_assessment(engine, ["numeric"])
        attempt_id, _ = await start(engine, layout.definition.id)

        with pytest.raises(ForbiddenError):
            await engine.attempts.submit(attempt_id, "student-2")

    @pytest.mark.asyncio
    async def test_hidden_results_on_submit(self, engine):
        layout, ids = await publish_assessment(engine, ["true_false"], show_results_immediately=False)
        attempt_id, _ = await start(engine, layout.definition.id)
        await engine.attempts.answer(attempt_id, STUDENT, ids["true_false"], CORRECT_ANSWERS["true_false"])

        result = await engine.attempts.submit(attempt_id, STUDENT)
        stored = await engine.attempts.attempts.get_by_id(attempt_id)

        assert result["total_score"] is None and result["answers"] == []
        assert stored.total_score == 1 and stored.percentage == 100


class TestManualGrading:

    @pytest.mark.asyncio
    async def test_essay_waits_for_marker(self, engine):
        layout, ids = await publish_assessment(engine, ["true_false", "essay"])
        attempt_id, _ = await start(engine, layout.definition.id)
        await engine.attempts.answer(attempt_id, STUDENT, ids["true_false"], CORRECT_ANSWERS["true_false"])
        await engine.attempts.answer(attempt_id, STUDENT, ids["essay"], CORRECT_ANSWERS["essay"])

        submitted = await engine.attempts.submit(attempt_id, STUDENT)

        assert submitted["status"] == "submitted"
        assert [e.pending_questions for e in engine.events.events_of("AttemptSubmittedEvent")] == [[ids["essay"]]]
        assert engine.events.events_of("AttemptGradedEvent") == []

        graded = await engine.attempts.grade_answer_manually(
            attempt_id, ids["essay"], "tutor-1", 1, marker_comment="Well argued"
        )

        assert graded["status"] == "graded"
        assert graded["total_score"] == 2 and graded["percentage"] == 100
        stored = await engine.attempts.attempts.get_by_id(attempt_id)
        assert stored.graded_by == "tutor-1"
        assert stored.graded_at is not None
        assert len(engine.events.events_of("AttemptGradedEvent")) == 1

    @pytest.mark.asyncio
    async def test_score_must_fit_the_question(self, engine):
        layout, ids = await publish_assessment(engine, ["essay"])
        attempt_id, _ = await start(engine, layout.definition.id)
        await engine.attempts.answer(attempt_id, STUDENT, ids["essay"], CORRECT_ANSWERS["essay"])
        await engine.attempts.submit(attempt_id, STUDENT)

        with pytest.raises(ValidationError):
            await engine.attempts.grade_answer_manually(attempt_id, ids["essay"], "tutor-1", 2)
        with pytest.raises(ValidationError):
            await engine.attempts.grade_answer_manually(attempt_id, ids["essay"], "tutor-1", -1)

    @pytest.mark.asyncio
    async def test_open_attempt_cannot_be_marked(self, engine):
        layout, ids = await publish_assessment(engine, ["essay"])
        attempt_id, _ = await start(engine, layout.definition.id)
        await engine.attempts.answer(attempt_id, STUDENT, ids["essay"], CORRECT_ANSWERS["essay"])

        with pytest.raises(InvalidStateError):
            await engine.attempts.grade_answer_manually(attempt_id, ids["essay"], "tutor-1", 1)

    @pytest.mark.asyncio
    async def test_feedback(self, engine):
        layout, _ = await publish_assessment(engine, ["numeric"])
        attempt_id, _ = await start(engine, layout.definition.id)

        with pytest.raises(InvalidStateError):
            await engine.attempts.set_attempt_feedback(attempt_id, "tutor-1", "Too early")

        await engine.attempts.submit(attempt_id, STUDENT)
        attempt = await engine.attempts.set_attempt_feedback(attempt_id, "tutor-1", "Revise chapter 3")

        assert attempt.feedback == "Revise chapter 3"


class TestTimeout:

    @pytest.mark.asyncio
    async def test_sweep_times_out_overdue_attempts(self, engine, clock):
        timed, ids = await publish_assessment(engine, ["numeric", "essay"], time_limit_minutes=10)
        untimed, _ = await publish_assessment(engine, ["numeric"])
        overdue_id, _ = await start(engine, timed.definition.id)
        open_id, _ = await start(engine, untimed.definition.id)
        await engine.attempts.answer(overdue_id, STUDENT, ids["numeric"], CORRECT_ANSWERS["numeric"])
        await engine.attempts.answer(overdue_id, STUDENT, ids["essay"], CORRECT_ANSWERS["essay"])

        clock.advance(minutes=10)
        assert await engine.attempts.sweep_overdue() == []

        clock.advance(seconds=1)
        assert await engine.attempts.sweep_overdue() == [overdue_id]

        overdue = await engine.attempts.attempts.get_by_id(overdue_id)
        assert overdue.status is AttemptStatus.TIMED_OUT
        assert overdue.metadata["timed_out"] is True
        assert overdue.total_score == 1
        assert (await engine.attempts.attempts.get_by_id(open_id)).status is AttemptStatus.IN_PROGRESS
        assert len(engine.events.events_of("AttemptTimedOutEvent")) == 1

        with pytest.raises(AttemptClosedError):
            await engine.attempts.answer(overdue_id, STUDENT, ids["numeric"], CORRECT_ANSWERS["numeric"])

    @pytest.mark.asyncio
    async def test_objective_timeout_is_graded(self, engine, clock, monkeypatch):
        layout, _ = await publish_assessment(engine, ["numeric"], time_limit_minutes=1)
        attempt_id, _ = await start(engine, layout.definition.id)
        clock.advance(minutes=2)
        repository = engine.attempts.attempts
        save = repository.save
        saved = []

        async def recording_save(attempt):
            saved.append(attempt.status)
            return await save(attempt)

        monkeypatch.setattr(repository, "save", recording_save)

        result = await engine.attempts.timeout(attempt_id)

        assert result["status"] == "graded"
        assert result["percentage"] == 0
        assert saved == [AttemptStatus.TIMED_OUT, AttemptStatus.GRADED]
        assert (await repository.get_by_id(attempt_id)).metadata["timed_out"] is True

    def test_in_progress_cannot_skip_to_graded(self):
        assert not AttemptStatus.IN_PROGRESS.can_transition_to(AttemptStatus.GRADED)
        assert AttemptStatus.TIMED_OUT.can_transition_to(AttemptStatus.GRADED)

    @pytest.mark.asyncio
    async def test_not_overdue(self, engine, clock):
        layout, _ = await publish_assessment(engine, ["numeric"], time_limit_minutes=10)
        attempt_id, _ = await start(engine, layout.definition.id)

        with pytest.raises(InvalidStateError):
            await engine.attempts.timeout(attempt_id)


class TestReview:

    @pytest.mark.asyncio
    async def test_owner_review_moves_graded_to_reviewed(self, engine):
        layout, ids = await publish_assessment(engine, ["multiple_choice", "numeric"])
        attempt_id, _ = await start(engine, layout.definition.id)
        await engine.attempts.answer(attempt_id, STUDENT, ids["multiple_choice"], {"type": "single", "value": "c"})
        await engine.attempts.submit(attempt_id, STUDENT)

        review = await engine.attempts.review(attempt_id, STUDENT, UserRole.STUDENT)

        assert review["attempt"]["status"] == "reviewed"
        first = review["questions"][0]
        assert first["assessment_question_id"] == ids["multiple_choice"]
        assert first["correct_answer"] == {"type": "single", "value": "b"}
        selected = [o["id"] for o in first["options"] if o["is_user_selected"]]
        assert selected == ["c"]
        assert review["questions"][1]["user_answer"] is None

        again = await engine.attempts.review(attempt_id, STUDENT, UserRole.STUDENT)
        assert again["attempt"]["status"] == "reviewed"

    @pytest.mark.asyncio
    async def test_tutor_review_leaves_status(self, engine):
        layout, _ = await publish_assessment(engine, ["numeric"])
        attempt_id, _ = await start(engine, layout.definition.id)
        await engine.attempts.submit(attempt_id, STUDENT)

        review = await engine.attempts.review(attempt_id, "tutor-1", UserRole.TUTOR)

        assert review["attempt"]["status"] == "graded"

    @pytest.mark.asyncio
    async def test_withheld_answers_are_shown_to_tutors_only(self, engine):
        layout, _ = await publish_assessment(
            engine, ["numeric"], show_correct_answers=False, show_explanations=False
        )
        attempt_id, _ = await start(engine, layout.definition.id)
        await engine.attempts.submit(attempt_id, STUDENT)

        learner = await engine.attempts.review(attempt_id, STUDENT, UserRole.STUDENT)
        tutor = await engine.attempts.review(attempt_id, "tutor-1", UserRole.TUTOR)

        assert "correct_answer" not in learner["questions"][0]
        assert tutor["questions"][0]["correct_answer"]["value"] == 9.81

    @pytest.mark.asyncio
    async def test_review_access(self, engine):
        layout, _ = await publish_assessment(engine, ["numeric"])
        attempt_id, _ = await start(engine, layout.definition.id)

        with pytest.raises(InvalidStateError):
            await engine.attempts.review(attempt_id, STUDENT, UserRole.STUDENT)

        await engine.attempts.submit(attempt_id, STUDENT)
        with pytest.raises(ForbiddenError):
            await engine.attempts.review(attempt_id, "student-2", UserRole.STUDENT)


class TestReadSide:

    @pytest.mark.asyncio
    async def test_in_progress_attempt_can_be_resumed(self, engine):
        layout, ids = await publish_assessment(engine, ["numeric", "true_false"])
        attempt_id, _ = await start(engine, layout.definition.id)
        await engine.attempts.answer(attempt_id, STUDENT, ids["numeric"], CORRECT_ANSWERS["numeric"])

        resumed = await engine.attempts.get_attempt(attempt_id, STUDENT, UserRole.STUDENT)

        assert len(resumed["sections"][0]["questions"]) == 2
        assert resumed["answers"][0]["question_id"] == ids["numeric"]
        assert resumed["answers"][0]["answer"] == {"type": "numeric", "value": 9.8}

    @pytest.mark.asyncio
    async def test_other_learners_are_refused(self, engine):
        layout, _ = await publish_assessment(engine, ["numeric"])
        attempt_id, _ = await start(engine, layout.definition.id)

        with pytest.raises(ForbiddenError):
            await engine.attempts.get_attempt(attempt_id, "student-2", UserRole.PARENT)
        assert (await engine.attempts.get_attempt(attempt_id, "admin-1", UserRole.ADMIN))["attempt"]["id"] == attempt_id

    @pytest.mark.asyncio
    async def test_list_user_attempts(self, engine):
        layout, _ = await publish_assessment(engine, ["numeric"])
        other, _ = await publish_assessment(engine, ["true_false"])
        await start(engine, layout.definition.id)
        await start(engine, other.definition.id)

        assert len(await engine.attempts.list_user_attempts(STUDENT)) == 2
        assert len(await engine.attempts.list_user_attempts(STUDENT, layout.definition.id)) == 1
        assert await engine.attempts.list_user_attempts("student-2") == []

    @pytest.mark.asyncio
    async def test_started_event(self, engine):
        layout, _ = await publish_assessment(engine, ["numeric"])
        attempt_id, _ = await start(engine, layout.definition.id)

        started = engine.events.events_of("AttemptStartedEvent")

        assert [(e.attempt_id, e.attempt_number) for e in started] == [(attempt_id, 1)]
        assert started[0].to_dict()["data"]["user_id"] == STUDENT
