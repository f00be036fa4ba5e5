"""
Assessment Engine Controllers

HTTP endpoints for the question bank, assessment authoring, attempts and
mastery. Engine errors propagate to the application-level handler, which
turns them into the standard error envelope.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from backend.api import APIResponse
from backend.assessments.factory import AssessmentEngine
from backend.assessments.models import AssessmentStatus, AssessmentType
from backend.assessments.repositories import AssessmentFilter
from backend.common.auth.dependencies import get_current_role, get_current_user_id, require_privileged_role
from backend.common.auth.user import UserRole
from backend.common.logger import get_logger
from backend.config import settings
from backend.domain.questions.model import Difficulty, QuestionSource, QuestionType
from backend.domain.questions.repository import QuestionFilter

logger = get_logger(__name__)

router = APIRouter()


def get_engine(request: Request) -> AssessmentEngine:
    """The engine the application was started with."""
    return request.app.state.engine


def rate_limited(action: str, max_requests: int, period: int):
    """Dependency applying the engine's rate limiter to ``action``."""
    async def dependency(request: Request, engine: AssessmentEngine = Depends(get_engine)) -> bool:
        check = engine.rate_limiter.rate_limit_dependency(max_requests, period, action)
        return await check(request)

    return dependency


# Request Models
class QuestionOptionPayload(BaseModel):
    id: str
    text: str
    image_url: Optional[str] = None


class QuestionCreateRequest(BaseModel):
    type: QuestionType
    question_text: str = Field(..., min_length=1)
    correct_answer: Dict[str, Any]
    difficulty: Difficulty = Difficulty.MEDIUM
    points: int = Field(1, ge=1)
    options: List[QuestionOptionPayload] = Field(default_factory=list)
    subject_id: Optional[str] = None
    module_id: Optional[str] = None
    topic_id: Optional[str] = None
    learning_outcome_id: Optional[str] = None
    question_html: Optional[str] = None
    image_url: Optional[str] = None
    explanation: Optional[str] = None
    solution_steps: List[str] = Field(default_factory=list)
    time_limit_seconds: Optional[int] = Field(None, ge=1)
    tags: List[str] = Field(default_factory=list)
    source: QuestionSource = QuestionSource.MANUAL
    source_reference: Optional[str] = None
    language: str = "en"


class BulkQuestionRequest(BaseModel):
    questions: List[Dict[str, Any]] = Field(..., min_length=1)


class SectionPayload(BaseModel):
    title: Optional[str] = None
    instructions: Optional[str] = None
    time_limit_minutes: Optional[int] = Field(None, ge=1)


class AssessmentQuestionPayload(BaseModel):
    question_bank_item_id: str
    section: Optional[int] = Field(None, ge=0)
    override_points: Optional[int] = Field(None, ge=1)


class AssessmentCreateRequest(BaseModel):
    title: str = Field(..., min_length=3)
    type: AssessmentType = AssessmentType.QUIZ
    description: Optional[str] = None
    subject_id: Optional[str] = None
    grade: Optional[int] = None
    module_id: Optional[str] = None
    topic_id: Optional[str] = None
    time_limit_minutes: Optional[int] = Field(None, ge=1)
    total_marks: Optional[int] = Field(None, ge=1)
    pass_mark: Optional[int] = Field(None, ge=1)
    max_attempts: Optional[int] = Field(None, ge=1)
    shuffle_questions: bool = False
    shuffle_options: bool = False
    show_results_immediately: bool = True
    show_correct_answers: bool = True
    show_explanations: bool = True
    available_from: Optional[str] = None
    available_until: Optional[str] = None
    instructions: Optional[str] = None
    sections: List[SectionPayload] = Field(default_factory=list)
    questions: List[AssessmentQuestionPayload] = Field(..., min_length=1)


class AnswerRequest(BaseModel):
    assessment_question_id: str
    answer: Any
    time_taken_seconds: Optional[int] = Field(None, ge=0)


class GradeRequest(BaseModel):
    score: float = Field(..., ge=0)
    marker_comment: Optional[str] = None


class FeedbackRequest(BaseModel):
    feedback: str = Field(..., min_length=1)


# Questions (admin and tutor only)
@router.post("/questions")
async def create_question(
    request: QuestionCreateRequest,
    user_id: str = Depends(get_current_user_id),
    _: UserRole = Depends(require_privileged_role),
    engine: AssessmentEngine = Depends(get_engine)
):
    item = await engine.bank.create(request.model_dump(mode="json"), created_by=user_id)
    return APIResponse.success(item.to_dict(), "Question created")


@router.post("/questions/bulk")
async def bulk_create_questions(
    request: BulkQuestionRequest,
    user_id: str = Depends(get_current_user_id),
    _: UserRole = Depends(require_privileged_role),
    engine: AssessmentEngine = Depends(get_engine)
):
    items = await engine.bank.bulk_create(request.questions, created_by=user_id)
    return APIResponse.success([item.to_dict() for item in items], f"{len(items)} questions created")


@router.get("/questions")
async def list_questions(
    subject_id: Optional[str] = None,
    module_id: Optional[str] = None,
    topic_id: Optional[str] = None,
    difficulty: Optional[Difficulty] = None,
    type: Optional[QuestionType] = None,
    tags: Optional[List[str]] = Query(None),
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    _: UserRole = Depends(require_privileged_role),
    engine: AssessmentEngine = Depends(get_engine)
):
    criteria = QuestionFilter(
        subject_id=subject_id,
        module_id=module_id,
        topic_id=topic_id,
        difficulty=difficulty,
        type=type,
        tags=tags or [],
        search=search,
        is_active=is_active
    )
    items = await engine.bank.list(criteria, limit=limit, offset=offset)
    return APIResponse.success([item.to_dict() for item in items])


@router.get("/questions/stats")
async def question_stats(
    subject_id: Optional[str] = None,
    _: UserRole = Depends(require_privileged_role),
    engine: AssessmentEngine = Depends(get_engine)
):
    return APIResponse.success(await engine.bank.stats(subject_id))


@router.get("/questions/random")
async def random_questions(
    count: int = Query(10, ge=1, le=100),
    subject_id: Optional[str] = None,
    topic_id: Optional[str] = None,
    difficulty: Optional[Difficulty] = None,
    type: Optional[QuestionType] = None,
    _: UserRole = Depends(require_privileged_role),
    engine: AssessmentEngine = Depends(get_engine)
):
    criteria = QuestionFilter(subject_id=subject_id, topic_id=topic_id, difficulty=difficulty, type=type)
    items = await engine.bank.random_selection(count, criteria)
    return APIResponse.success([item.to_dict() for item in items])


@router.get("/questions/{question_id}")
async def get_question(
    question_id: str,
    _: UserRole = Depends(require_privileged_role),
    engine: AssessmentEngine = Depends(get_engine)
):
    item = await engine.bank.get(question_id)
    return APIResponse.success(item.to_dict())


@router.put("/questions/{question_id}")
async def update_question(
    question_id: str,
    changes: Dict[str, Any],
    _: UserRole = Depends(require_privileged_role),
    engine: AssessmentEngine = Depends(get_engine)
):
    item = await engine.bank.update(question_id, changes)
    return APIResponse.success(item.to_dict(), "Question updated")


@router.delete("/questions/{question_id}")
async def delete_question(
    question_id: str,
    _: UserRole = Depends(require_privileged_role),
    engine: AssessmentEngine = Depends(get_engine)
):
    item = await engine.bank.delete(question_id)
    return APIResponse.success({"id": item.id, "is_active": item.is_active}, "Question deactivated")


@router.post("/questions/{question_id}/review")
async def review_question(
    question_id: str,
    user_id: str = Depends(get_current_user_id),
    _: UserRole = Depends(require_privileged_role),
    engine: AssessmentEngine = Depends(get_engine)
):
    item = await engine.bank.mark_reviewed(question_id, user_id)
    return APIResponse.success(item.to_dict(), "Question reviewed")


# Assessments
@router.get("/assessments")
async def list_assessments(
    status: Optional[AssessmentStatus] = None,
    subject_id: Optional[str] = None,
    module_id: Optional[str] = None,
    grade: Optional[int] = None,
    type: Optional[AssessmentType] = None,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    _: str = Depends(get_current_user_id),
    role: UserRole = Depends(get_current_role),
    engine: AssessmentEngine = Depends(get_engine)
):
    criteria = AssessmentFilter(
        statuses=[status] if status else [],
        subject_id=subject_id,
        module_id=module_id,
        grade=grade,
        type=type
    )
    definitions = await engine.composer.list(role, criteria, limit=limit, offset=offset)
    return APIResponse.success([definition.to_dict() for definition in definitions])


@router.post("/assessments")
async def create_assessment(
    request: AssessmentCreateRequest,
    user_id: str = Depends(get_current_user_id),
    _: UserRole = Depends(require_privileged_role),
    engine: AssessmentEngine = Depends(get_engine)
):
    layout = await engine.composer.create(request.model_dump(mode="json"), created_by=user_id)
    data = layout.definition.to_dict()
    data["total_points"] = layout.total_points
    data["question_count"] = len(layout.entries)
    return APIResponse.success(data, "Assessment created")


@router.get("/assessments/{assessment_id}")
async def get_assessment(
    assessment_id: str,
    _: str = Depends(get_current_user_id),
    role: UserRole = Depends(get_current_role),
    engine: AssessmentEngine = Depends(get_engine)
):
    return APIResponse.success(await engine.composer.detail(assessment_id, role))


@router.put("/assessments/{assessment_id}")
async def update_assessment(
    assessment_id: str,
    changes: Dict[str, Any],
    _: UserRole = Depends(require_privileged_role),
    engine: AssessmentEngine = Depends(get_engine)
):
    layout = await engine.composer.update(assessment_id, changes)
    return APIResponse.success(layout.definition.to_dict(), "Assessment updated")


@router.post("/assessments/{assessment_id}/publish")
async def publish_assessment(
    assessment_id: str,
    _: UserRole = Depends(require_privileged_role),
    engine: AssessmentEngine = Depends(get_engine)
):
    definition = await engine.composer.publish(assessment_id)
    return APIResponse.success(definition.to_dict(), "Assessment published")


@router.post("/assessments/{assessment_id}/archive")
async def archive_assessment(
    assessment_id: str,
    _: UserRole = Depends(require_privileged_role),
    engine: AssessmentEngine = Depends(get_engine)
):
    definition = await engine.composer.archive(assessment_id)
    return APIResponse.success(definition.to_dict(), "Assessment archived")


@router.post("/assessments/{assessment_id}/start")
async def start_attempt(
    assessment_id: str,
    user_id: str = Depends(get_current_user_id),
    _: bool = Depends(rate_limited("start_attempt", settings.START_RATE_LIMIT, settings.START_RATE_PERIOD)),
    engine: AssessmentEngine = Depends(get_engine)
):
    payload = await engine.attempts.start(assessment_id, user_id)
    return APIResponse.success(payload, "Attempt started")


# Attempts
@router.get("/attempts")
async def list_attempts(
    assessment_id: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
    engine: AssessmentEngine = Depends(get_engine)
):
    attempts = await engine.attempts.list_user_attempts(user_id, assessment_id)
    return APIResponse.success([attempt.to_dict() for attempt in attempts])


@router.get("/attempts/{attempt_id}")
async def get_attempt(
    attempt_id: str,
    user_id: str = Depends(get_current_user_id),
    role: UserRole = Depends(get_current_role),
    engine: AssessmentEngine = Depends(get_engine)
):
    return APIResponse.success(await engine.attempts.get_attempt(attempt_id, user_id, role))


@router.put("/attempts/{attempt_id}")
async def set_attempt_feedback(
    attempt_id: str,
    request: FeedbackRequest,
    user_id: str = Depends(get_current_user_id),
    _: UserRole = Depends(require_privileged_role),
    engine: AssessmentEngine = Depends(get_engine)
):
    attempt = await engine.attempts.set_attempt_feedback(attempt_id, user_id, request.feedback)
    return APIResponse.success(attempt.to_dict(), "Feedback saved")


@router.put("/attempts/{attempt_id}/answer")
async def answer_question(
    attempt_id: str,
    request: AnswerRequest,
    user_id: str = Depends(get_current_user_id),
    _: bool = Depends(rate_limited("answer", settings.ANSWER_RATE_LIMIT, settings.ANSWER_RATE_PERIOD)),
    engine: AssessmentEngine = Depends(get_engine)
):
    result = await engine.attempts.answer(
        attempt_id,
        user_id,
        request.assessment_question_id,
        request.answer,
        time_taken_seconds=request.time_taken_seconds
    )
    return APIResponse.success(result, "Answer recorded")


@router.post("/attempts/{attempt_id}/submit")
async def submit_attempt(
    attempt_id: str,
    user_id: str = Depends(get_current_user_id),
    engine: AssessmentEngine = Depends(get_engine)
):
    result = await engine.attempts.submit(attempt_id, user_id)
    return APIResponse.success(result, "Attempt submitted")


@router.get("/attempts/{attempt_id}/review")
async def review_attempt(
    attempt_id: str,
    user_id: str = Depends(get_current_user_id),
    role: UserRole = Depends(get_current_role),
    engine: AssessmentEngine = Depends(get_engine)
):
    return APIResponse.success(await engine.attempts.review(attempt_id, user_id, role))


@router.put("/attempts/{attempt_id}/answers/{assessment_question_id}/grade")
async def grade_answer(
    attempt_id: str,
    assessment_question_id: str,
    request: GradeRequest,
    user_id: str = Depends(get_current_user_id),
    _: UserRole = Depends(require_privileged_role),
    engine: AssessmentEngine = Depends(get_engine)
):
    result = await engine.attempts.grade_answer_manually(
        attempt_id,
        assessment_question_id,
        user_id,
        request.score,
        marker_comment=request.marker_comment
    )
    return APIResponse.success(result, "Answer graded")


# Mastery
async def _mastery_report(engine: AssessmentEngine, user_id: str) -> Dict[str, Any]:
    mastery = engine.mastery
    limit, min_questions = settings.MASTERY_TOPIC_LIMIT, settings.MASTERY_MIN_QUESTIONS
    return {
        "user_id": user_id,
        "overall": await mastery.get_overall_mastery(user_id),
        "recommended_difficulty": (await mastery.get_recommended_difficulty(user_id)).value,
        "topics": [m.to_dict() for m in await mastery.get_user_mastery(user_id)],
        "weakest": [m.topic_id for m in await mastery.get_weakest_topics(user_id, limit, min_questions)],
        "strongest": [m.topic_id for m in await mastery.get_strongest_topics(user_id, limit, min_questions)],
    }


@router.get("/mastery/me")
async def my_mastery(
    user_id: str = Depends(get_current_user_id),
    engine: AssessmentEngine = Depends(get_engine)
):
    return APIResponse.success(await _mastery_report(engine, user_id))


@router.get("/mastery/{user_id}")
async def user_mastery(
    user_id: str,
    _: UserRole = Depends(require_privileged_role),
    engine: AssessmentEngine = Depends(get_engine)
):
    return APIResponse.success(await _mastery_report(engine, user_id))


logger.info(f"Assessment engine router loaded with {len(router.routes)} routes")
