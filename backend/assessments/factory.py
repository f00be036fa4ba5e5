"""
Assessment Engine Factory

Wires the engine's services to a storage backend and an event emitter.
Every collaborator is passed in explicitly; nothing here reaches for
process-wide clients.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from backend.common.logger import app_logger
from backend.common.performance.repository import MasteryRepository, MemoryMasteryRepository
from backend.common.performance.tracker import MasteryAggregator
from backend.common.rate_limiter import RateLimiter
from backend.database.repositories import (
    SqlAssessmentRepository,
    SqlAttemptRepository,
    SqlMasteryRepository,
    SqlQuestionRepository,
)
from backend.domain.questions.bank import QuestionBank
from backend.domain.questions.memory_repository import MemoryQuestionRepository
from backend.domain.questions.renderer import QuestionRenderer
from backend.domain.questions.repository import QuestionRepository
from backend.domain.questions.validation import AnswerValidator
from .composer import AssessmentComposer
from .events import EventEmitter, InMemoryEventEmitter, RedisEventEmitter
from .grading import GradingEngine
from .memory_repositories import MemoryAssessmentRepository, MemoryAttemptRepository
from .repositories import AssessmentRepository, AttemptRepository
from .services import AttemptStateMachine

logger = app_logger.getChild("assessments.factory")


@dataclass
class AssessmentEngine:
    """The wired set of engine services."""
    bank: QuestionBank
    composer: AssessmentComposer
    attempts: AttemptStateMachine
    mastery: MasteryAggregator
    events: EventEmitter
    rate_limiter: RateLimiter


def build_engine(
    questions: QuestionRepository,
    assessments: AssessmentRepository,
    attempts: AttemptRepository,
    mastery: MasteryRepository,
    events: Optional[EventEmitter] = None,
    rate_limiter: Optional[RateLimiter] = None,
    **attempt_options
) -> AssessmentEngine:
    """
    Build the engine over the given repositories.

    Args:
        questions: Question bank storage
        assessments: Assessment storage
        attempts: Attempt storage
        mastery: Mastery storage
        events: Event emitter (defaults to in-memory)
        rate_limiter: Rate limiter (defaults to a local one)
        **attempt_options: Extra arguments for ``AttemptStateMachine`` such
            as ``clock`` or ``rng_factory``
    """
    events = events or InMemoryEventEmitter()
    composer = AssessmentComposer(assessments, questions)
    aggregator = MasteryAggregator(mastery, attempts, questions, events)
    state_machine = AttemptStateMachine(
        composer,
        attempts,
        grading=GradingEngine(),
        validator=AnswerValidator(),
        renderer=QuestionRenderer(),
        events=events,
        mastery=aggregator,
        **attempt_options
    )
    return AssessmentEngine(
        bank=QuestionBank(questions, is_released_reference=assessments.question_in_released_assessment),
        composer=composer,
        attempts=state_machine,
        mastery=aggregator,
        events=events,
        rate_limiter=rate_limiter or RateLimiter()
    )


def create_memory_engine(**attempt_options) -> AssessmentEngine:
    """Engine over in-memory repositories, for development and tests."""
    return build_engine(
        MemoryQuestionRepository(),
        MemoryAssessmentRepository(),
        MemoryAttemptRepository(),
        MemoryMasteryRepository(),
        **attempt_options
    )


def create_sql_engine(
    session_factory: async_sessionmaker,
    redis=None,
    events_channel: str = "assessment_events"
) -> AssessmentEngine:
    """
    Engine over the SQL repositories. With a ``redis.asyncio`` client, events
    are published on Redis and rate limits are shared between instances.
    """
    events = RedisEventEmitter(redis, events_channel) if redis is not None else InMemoryEventEmitter(keep_history=False)
    logger.info(f"Creating SQL engine with {type(events).__name__}")
    return build_engine(
        SqlQuestionRepository(session_factory),
        SqlAssessmentRepository(session_factory),
        SqlAttemptRepository(session_factory),
        SqlMasteryRepository(session_factory),
        events=events,
        rate_limiter=RateLimiter(redis)
    )
