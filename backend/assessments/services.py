"""
Attempt Services

The attempt lifecycle: starting attempts against published assessments,
recording answers, submission and timeout, manual grading of constructed
responses, and review.

State transitions::

    in_progress -> submitted | timed_out
    submitted   -> graded
    timed_out   -> graded
    graded      -> reviewed

Nothing re-enters ``in_progress``.
"""

import datetime
import random
from typing import Any, Callable, Dict, List, Optional

from backend.common.auth.user import UserRole
from backend.common.error_handling import (
    AttemptClosedError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    NotPublishedError,
    OutOfWindowError,
    ValidationError,
)
from backend.common.logger import app_logger
from backend.common.serialization import utcnow
from backend.domain.questions.renderer import QuestionRenderer
from backend.domain.questions.validation import AnswerValidator
from .composer import AssessmentComposer, AssessmentLayout, LayoutEntry
from .events import (
    AttemptGradedEvent,
    AttemptStartedEvent,
    AttemptSubmittedEvent,
    AttemptTimedOutEvent,
    EventEmitter,
)
from .grading import GradingEngine
from .models import (
    AssessmentAttempt,
    AssessmentDefinition,
    AssessmentStatus,
    AttemptAnswer,
    AttemptStatus,
)
from .repositories import AttemptRepository

logger = app_logger.getChild("assessments.attempts")


def attempt_deadline(attempt: AssessmentAttempt, definition: AssessmentDefinition) -> Optional[datetime.datetime]:
    """When an attempt runs out of time, or None for untimed assessments."""
    if not definition.time_limit_minutes:
        return None
    return attempt.started_at + datetime.timedelta(minutes=definition.time_limit_minutes)


class AttemptStateMachine:
    """
    Governs one user's attempt at one assessment.

    Args:
        composer: Resolves assessment layouts
        attempts: Attempt and answer storage
        grading: Grading engine
        validator: Structural answer validator
        renderer: Question renderer
        events: Optional domain event emitter
        mastery: Optional mastery aggregator, updated when an attempt is graded
        clock: Callable returning the current naive UTC time
        rng_factory: Callable returning a fresh ``random.Random`` per start
    """

    def __init__(
        self,
        composer: AssessmentComposer,
        attempts: AttemptRepository,
        grading: Optional[GradingEngine] = None,
        validator: Optional[AnswerValidator] = None,
        renderer: Optional[QuestionRenderer] = None,
        events: Optional[EventEmitter] = None,
        mastery=None,
        clock: Optional[Callable[[], datetime.datetime]] = None,
        rng_factory=None
    ):
        self.composer = composer
        self.attempts = attempts
        self.grading = grading or GradingEngine()
        self.validator = validator or AnswerValidator()
        self.renderer = renderer or QuestionRenderer()
        self.events = events
        self.mastery = mastery
        self._clock = clock or utcnow
        self._rng_factory = rng_factory or random.Random

    #--------------------------------------------------------------------------
    # Lifecycle
    #--------------------------------------------------------------------------

    async def start(self, assessment_id: str, user_id: str, now: Optional[datetime.datetime] = None) -> Dict[str, Any]:
        """
        Start a new attempt.

        Returns:
            The attempt together with the rendered questions

        Raises:
            NotFoundError: If the assessment does not exist
            NotPublishedError: If the assessment is not published
            OutOfWindowError: If ``now`` is outside the availability window
            AttemptLimitExceededError: If the user has used all attempts
        """
        now = now or self._clock()
        layout = await self.composer.layout(assessment_id)
        definition = layout.definition

        if definition.status is not AssessmentStatus.PUBLISHED:
            logger.warning(f"Start refused: assessment {assessment_id} is {definition.status.value}")
            raise NotPublishedError(assessment_id, definition.status.value)
        if not definition.is_available_at(now):
            logger.warning(f"Start refused: assessment {assessment_id} is outside its window")
            raise OutOfWindowError(assessment_id, definition.available_from, definition.available_until, now)

        attempt = await self.attempts.create_attempt(
            AssessmentAttempt(assessment_id=assessment_id, user_id=user_id, started_at=now),
            definition.max_attempts
        )
        logger.info(f"User {user_id} started attempt {attempt.id} (#{attempt.attempt_number}) on {assessment_id}")
        await self._emit(AttemptStartedEvent(
            attempt_id=attempt.id,
            assessment_id=assessment_id,
            user_id=user_id,
            attempt_number=attempt.attempt_number
        ))
        return self._attempt_payload(attempt, layout)

    async def answer(
        self,
        attempt_id: str,
        user_id: str,
        assessment_question_id: str,
        raw_answer: Any,
        time_taken_seconds: Optional[int] = None,
        now: Optional[datetime.datetime] = None
    ) -> Dict[str, Any]:
        """
        Record (or replace) the answer to one question.

        Objective answers are graded on write; the attempt total is only
        authoritative after submission.

        Raises:
            NotFoundError: If the attempt or the question does not exist
            ForbiddenError: If the attempt belongs to someone else
            AttemptClosedError: If the attempt is no longer in progress
            StructuralMismatchError: If the answer does not fit the question type
        """
        now = now or self._clock()
        attempt = await self._get_attempt(attempt_id)
        if attempt.user_id != user_id:
            raise ForbiddenError("Attempt belongs to another user", details={"attempt_id": attempt_id})
        if not attempt.is_open:
            raise AttemptClosedError(attempt_id, attempt.status.value)

        layout = await self.composer.layout(attempt.assessment_id)
        entry = layout.entry(assessment_question_id)
        if entry is None:
            raise NotFoundError("AssessmentQuestion", assessment_question_id)

        answer = self.validator.validate(entry.item.type, raw_answer)
        result = self.grading.grade(entry.item, answer, entry.points)
        row = AttemptAnswer(
            attempt_id=attempt_id,
            assessment_question_id=assessment_question_id,
            question_bank_item_id=entry.item.id,
            answer=answer,
            time_taken_seconds=time_taken_seconds,
            answered_at=now
        )
        row.apply(result)
        stored = await self.attempts.upsert_answer(row)
        logger.debug(f"Attempt {attempt_id}: answered {assessment_question_id}")

        response = stored.to_response()
        if not layout.definition.show_results_immediately:
            response.update(is_correct=None, score=None)
        return response

    async def submit(self, attempt_id: str, user_id: str, now: Optional[datetime.datetime] = None) -> Dict[str, Any]:
        """
        Submit an attempt and score it.

        Raises:
            NotFoundError: If the attempt does not exist
            ForbiddenError: If the attempt belongs to someone else
            AttemptClosedError: If the attempt is no longer in progress
        """
        attempt = await self._get_attempt(attempt_id)
        if attempt.user_id != user_id:
            raise ForbiddenError("Attempt belongs to another user", details={"attempt_id": attempt_id})
        if not attempt.is_open:
            raise AttemptClosedError(attempt_id, attempt.status.value)

        layout = await self.composer.layout(attempt.assessment_id)
        attempt, answers = await self._close(attempt, layout, AttemptStatus.SUBMITTED, now or self._clock())
        return self._result_payload(attempt, answers, layout.definition, privileged=False)

    async def timeout(self, attempt_id: str, now: Optional[datetime.datetime] = None) -> Dict[str, Any]:
        """
        Close an attempt that ran past its time limit. Triggered by the
        scheduler; scoring is the same as for ``submit``.

        Raises:
            AttemptClosedError: If the attempt is no longer in progress
            InvalidStateError: If the attempt is untimed or not yet overdue
        """
        now = now or self._clock()
        attempt = await self._get_attempt(attempt_id)
        if not attempt.is_open:
            raise AttemptClosedError(attempt_id, attempt.status.value)

        layout = await self.composer.layout(attempt.assessment_id)
        deadline = attempt_deadline(attempt, layout.definition)
        if deadline is None or now <= deadline:
            raise InvalidStateError(
                f"Attempt {attempt_id} is not overdue",
                details={"deadline": deadline.isoformat() if deadline else None}
            )

        attempt.metadata["timed_out"] = True
        attempt, answers = await self._close(attempt, layout, AttemptStatus.TIMED_OUT, now)
        await self._emit(AttemptTimedOutEvent(
            attempt_id=attempt.id, assessment_id=attempt.assessment_id, user_id=attempt.user_id
        ))
        return self._result_payload(attempt, answers, layout.definition, privileged=True)

    async def sweep_overdue(self, now: Optional[datetime.datetime] = None) -> List[str]:
        """
        Time out every in-progress attempt past its deadline.

        Returns:
            IDs of the attempts that were timed out
        """
        now = now or self._clock()
        definitions: Dict[str, AssessmentDefinition] = {}
        timed_out = []
        for attempt in await self.attempts.find_in_progress():
            if attempt.assessment_id not in definitions:
                definitions[attempt.assessment_id] = await self.composer.get(attempt.assessment_id)
            deadline = attempt_deadline(attempt, definitions[attempt.assessment_id])
            if deadline is not None and now > deadline:
                await self.timeout(attempt.id, now)
                timed_out.append(attempt.id)
        if timed_out:
            logger.info(f"Timed out {len(timed_out)} overdue attempts")
        return timed_out

    #--------------------------------------------------------------------------
    # Manual grading
    #--------------------------------------------------------------------------

    async def grade_answer_manually(
        self,
        attempt_id: str,
        assessment_question_id: str,
        grader_id: str,
        score: float,
        marker_comment: Optional[str] = None,
        now: Optional[datetime.datetime] = None
    ) -> Dict[str, Any]:
        """
        Record a marker's score for one answer and re-total the attempt.

        The attempt becomes ``graded`` once its last ungraded answer is scored.

        Raises:
            NotFoundError: If the attempt or answer does not exist
            InvalidStateError: If the attempt is still in progress
            ValidationError: If ``score`` is outside ``[0, max_score]``
        """
        now = now or self._clock()
        attempt = await self._get_attempt(attempt_id)
        if attempt.is_open:
            raise InvalidStateError(f"Attempt {attempt_id} has not been submitted")

        row = await self.attempts.get_answer(attempt_id, assessment_question_id)
        if row is None:
            raise NotFoundError("AttemptAnswer", assessment_question_id)
        if isinstance(score, bool) or not isinstance(score, (int, float)) or not 0 <= score <= (row.max_score or 0):
            raise ValidationError(
                f"Score must be between 0 and {row.max_score}",
                details={"score": score, "max_score": row.max_score}
            )

        row.score = score
        row.is_correct = score == row.max_score
        if marker_comment is not None:
            row.marker_comment = marker_comment
        await self.attempts.upsert_answer(row)
        logger.info(f"{grader_id} scored {assessment_question_id} of attempt {attempt_id}: {score}/{row.max_score}")

        answers = await self.attempts.get_answers(attempt_id)
        totals = self.grading.finalize_attempt(attempt, answers)
        attempt.graded_by = grader_id
        newly_graded = totals.fully_graded and attempt.status in (AttemptStatus.SUBMITTED, AttemptStatus.TIMED_OUT)
        if newly_graded:
            self._transition(attempt, AttemptStatus.GRADED)
        if totals.fully_graded:
            attempt.graded_at = now
        await self.attempts.save(attempt)

        if newly_graded:
            await self._on_graded(attempt)
        elif totals.fully_graded and self.mastery is not None:
            await self.mastery.update_after_attempt(attempt.user_id, attempt.id)

        layout = await self.composer.layout(attempt.assessment_id)
        return self._result_payload(attempt, answers, layout.definition, privileged=True)

    async def set_attempt_feedback(self, attempt_id: str, grader_id: str, feedback: str) -> AssessmentAttempt:
        """Attach overall marker feedback to a submitted attempt."""
        attempt = await self._get_attempt(attempt_id)
        if attempt.is_open:
            raise InvalidStateError(f"Attempt {attempt_id} has not been submitted")
        attempt.feedback = feedback
        attempt.graded_by = grader_id
        await self.attempts.save(attempt)
        logger.info(f"{grader_id} left feedback on attempt {attempt_id}")
        return attempt

    #--------------------------------------------------------------------------
    # Read side
    #--------------------------------------------------------------------------

    async def get_attempt(self, attempt_id: str, requester_id: str, role: UserRole) -> Dict[str, Any]:
        """
        The attempt with its answers. In-progress attempts also carry the
        rendered questions so the taker can resume.
        """
        attempt = await self._get_attempt(attempt_id)
        self._check_access(attempt, requester_id, role)
        layout = await self.composer.layout(attempt.assessment_id)
        answers = await self.attempts.get_answers(attempt_id)

        if attempt.is_open:
            payload = self._attempt_payload(attempt, layout)
            show_scores = role.is_privileged or layout.definition.show_results_immediately
            payload["answers"] = [
                {
                    "question_id": a.assessment_question_id,
                    "answer": a.answer.to_dict() if a.answer else None,
                    "answered_at": a.answered_at.isoformat() if a.answered_at else None,
                    "score": a.score if show_scores else None,
                    "max_score": a.max_score,
                }
                for a in answers
            ]
            return payload
        return self._result_payload(attempt, answers, layout.definition, privileged=role.is_privileged)

    async def list_user_attempts(self, user_id: str, assessment_id: Optional[str] = None) -> List[AssessmentAttempt]:
        return await self.attempts.list_for_user(user_id, assessment_id)

    async def review(self, attempt_id: str, requester_id: str, requester_role: UserRole) -> Dict[str, Any]:
        """
        Per-question review of a closed attempt.

        Correct answers and explanations are shown to privileged roles, and
        to everyone else only when the assessment allows it. The owner
        reviewing a graded attempt moves it to ``reviewed``.

        Raises:
            ForbiddenError: If the requester is neither owner nor privileged
            InvalidStateError: If the attempt is still in progress
        """
        attempt = await self._get_attempt(attempt_id)
        self._check_access(attempt, requester_id, requester_role)
        if attempt.is_open:
            raise InvalidStateError(f"Attempt {attempt_id} is still in progress")

        layout = await self.composer.layout(attempt.assessment_id)
        definition = layout.definition
        privileged = requester_role.is_privileged
        include_correct = privileged or definition.show_correct_answers
        include_explanation = privileged or definition.show_explanations
        answers = {a.assessment_question_id: a for a in await self.attempts.get_answers(attempt_id)}

        questions = []
        for entry in layout.entries:
            row = answers.get(entry.question.id)
            rendered = self.renderer.render_for_review(
                entry.item,
                user_answer=row.answer if row else None,
                grading_result=row.grading_result if row else None,
                include_correct_answer=include_correct,
                include_explanation=include_explanation,
                points=entry.points
            )
            rendered["assessment_question_id"] = entry.question.id
            rendered["order"] = entry.question.order
            rendered["marker_comment"] = row.marker_comment if row else None
            questions.append(rendered)

        if attempt.user_id == requester_id and attempt.status is AttemptStatus.GRADED:
            self._transition(attempt, AttemptStatus.REVIEWED)
            await self.attempts.save(attempt)

        summary = attempt.summary()
        summary["feedback"] = attempt.feedback
        summary["submitted_at"] = attempt.submitted_at.isoformat() if attempt.submitted_at else None
        summary["time_spent_seconds"] = attempt.time_spent_seconds
        return {"attempt": summary, "questions": questions}

    #--------------------------------------------------------------------------
    # Internals
    #--------------------------------------------------------------------------

    async def _get_attempt(self, attempt_id: str) -> AssessmentAttempt:
        attempt = await self.attempts.get_by_id(attempt_id)
        if attempt is None:
            raise NotFoundError("Attempt", attempt_id)
        return attempt

    @staticmethod
    def _check_access(attempt: AssessmentAttempt, requester_id: str, role: UserRole) -> None:
        if attempt.user_id != requester_id and not role.is_privileged:
            logger.warning(f"User {requester_id} denied access to attempt {attempt.id}")
            raise ForbiddenError("Not allowed to view this attempt", details={"attempt_id": attempt.id})

    @staticmethod
    def _transition(attempt: AssessmentAttempt, target: AttemptStatus) -> None:
        if not attempt.status.can_transition_to(target):
            raise InvalidStateError(
                f"Cannot move attempt {attempt.id} from {attempt.status.value} to {target.value}",
                details={"from": attempt.status.value, "to": target.value}
            )
        logger.info(f"Attempt {attempt.id}: {attempt.status.value} -> {target.value}")
        attempt.status = target

    async def _close(
        self,
        attempt: AssessmentAttempt,
        layout: AssessmentLayout,
        closing_status: AttemptStatus,
        now: datetime.datetime
    ):
        existing = {a.assessment_question_id: a for a in await self.attempts.get_answers(attempt.id)}
        changed = []
        for entry in layout.entries:
            row = existing.get(entry.question.id)
            if row is None:
                row = self._unanswered(attempt, entry)
                changed.append(row)
            elif row.answer is not None and row.score is None and entry.item.type.is_objective:
                row.apply(self.grading.grade(entry.item, row.answer, entry.points))
                changed.append(row)
            existing[entry.question.id] = row
        if changed:
            await self.attempts.upsert_answers(changed)

        answers = list(existing.values())
        totals = self.grading.finalize_attempt(attempt, answers)
        attempt.submitted_at = now
        attempt.time_spent_seconds = max(0, int((now - attempt.started_at).total_seconds()))
        self._transition(attempt, closing_status)
        await self.attempts.save(attempt)
        if totals.fully_graded:
            self._transition(attempt, AttemptStatus.GRADED)
            attempt.graded_at = now
            await self.attempts.save(attempt)
            await self._on_graded(attempt)
        else:
            await self._emit(AttemptSubmittedEvent(
                attempt_id=attempt.id,
                assessment_id=attempt.assessment_id,
                user_id=attempt.user_id,
                pending_questions=[a.assessment_question_id for a in answers if not a.is_graded]
            ))
        return attempt, answers

    def _unanswered(self, attempt: AssessmentAttempt, entry: LayoutEntry) -> AttemptAnswer:
        row = AttemptAnswer(
            attempt_id=attempt.id,
            assessment_question_id=entry.question.id,
            question_bank_item_id=entry.item.id
        )
        row.apply(self.grading.grade_unanswered(entry.item, entry.points))
        return row

    async def _on_graded(self, attempt: AssessmentAttempt) -> None:
        await self._emit(AttemptGradedEvent(
            attempt_id=attempt.id,
            assessment_id=attempt.assessment_id,
            user_id=attempt.user_id,
            total_score=attempt.total_score,
            max_score=attempt.max_score,
            percentage=attempt.percentage
        ))
        if self.mastery is not None:
            await self.mastery.update_after_attempt(attempt.user_id, attempt.id)

    async def _emit(self, event) -> None:
        if self.events is not None:
            await self.events.emit(event)

    def _attempt_payload(self, attempt: AssessmentAttempt, layout: AssessmentLayout) -> Dict[str, Any]:
        definition = layout.definition
        rng = self._rng_factory()
        sections = []
        for section_layout in layout.sections:
            entries = section_layout.entries
            if definition.shuffle_questions:
                entries = QuestionRenderer.shuffled(entries, rng)
            section = section_layout.section
            sections.append({
                "id": section.id if section else None,
                "title": section.title if section else None,
                "instructions": section.instructions if section else None,
                "time_limit_minutes": section.time_limit_minutes if section else None,
                "questions": [
                    dict(
                        self.renderer.render_for_attempt(
                            entry.item, shuffle_options=definition.shuffle_options, points=entry.points
                        ),
                        assessment_question_id=entry.question.id,
                        order=entry.question.order
                    )
                    for entry in entries
                ],
            })

        deadline = attempt_deadline(attempt, definition)
        return {
            "attempt": attempt.to_dict(),
            "assessment": {
                "id": definition.id,
                "title": definition.title,
                "type": definition.type.value,
                "instructions": definition.instructions,
                "time_limit_minutes": definition.time_limit_minutes,
                "total_points": layout.total_points,
            },
            "expires_at": deadline.isoformat() if deadline else None,
            "sections": sections,
        }

    @staticmethod
    def _result_payload(
        attempt: AssessmentAttempt,
        answers: List[AttemptAnswer],
        definition: AssessmentDefinition,
        privileged: bool
    ) -> Dict[str, Any]:
        result = attempt.summary()
        result["submitted_at"] = attempt.submitted_at.isoformat() if attempt.submitted_at else None
        result["time_spent_seconds"] = attempt.time_spent_seconds
        result["feedback"] = attempt.feedback
        if privileged or definition.show_results_immediately:
            result["answers"] = [a.to_response() for a in answers]
        else:
            result.update(total_score=None, percentage=None, answers=[])
        return result
