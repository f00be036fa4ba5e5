"""
Assessment Engine Tasks

Background jobs for the attempt lifecycle: the periodic sweep that times
out overdue attempts, and recomputation of a user's topic mastery.

The task bodies are coroutines over an ``AssessmentEngine`` so they can run
against any storage; the Celery wrappers build a SQL-backed engine per run.
"""

import asyncio
import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from redis.asyncio import Redis

from backend.assessments.events import AttemptGradedEvent
from backend.assessments.factory import AssessmentEngine, create_sql_engine
from backend.common.logger import app_logger, log_execution_time
from backend.common.tasks.scheduler import get_scheduler, schedule_task
from backend.config import settings
from backend.database.init_db import close_database, get_session_factory, initialize_database

logger = app_logger.getChild("assessments.tasks")

SWEEP_TASK = "assessments.sweep_overdue_attempts"
RECOMPUTE_TASK = "assessments.recompute_mastery"

celery_app = get_scheduler().celery_app


@log_execution_time(logger)
async def sweep_overdue_attempts(
    engine: AssessmentEngine,
    now: Optional[datetime.datetime] = None
) -> List[str]:
    """Time out every in-progress attempt past its deadline."""
    return await engine.attempts.sweep_overdue(now)


async def recompute_mastery(
    engine: AssessmentEngine,
    user_id: str,
    attempt_id: str
) -> Dict[str, Any]:
    """Rebuild the mastery of the topics touched by a graded attempt."""
    updated = await engine.mastery.update_after_attempt(user_id, attempt_id)
    difficulty = await engine.mastery.get_recommended_difficulty(user_id)
    return {
        "user_id": user_id,
        "topics": {record.topic_id: record.mastery_percentage for record in updated},
        "recommended_difficulty": difficulty.value,
    }


def enqueue_mastery_recompute(event: AttemptGradedEvent) -> str:
    """
    Queue a mastery recompute for a graded attempt. Subscribe it to
    ``AttemptGradedEvent`` to move mastery updates onto the workers.
    """
    return schedule_task(RECOMPUTE_TASK, args=(event.user_id, event.attempt_id))


def _run_with_engine(job: Callable[[AssessmentEngine], Awaitable[Any]]) -> Any:
    """Run ``job`` on a fresh SQL engine inside its own event loop."""
    async def runner():
        await initialize_database(
            database_url=settings.DATABASE_URL,
            echo=settings.SQL_ECHO,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT
        )
        redis = Redis.from_url(settings.REDIS_URL) if settings.REDIS_URL else None
        try:
            engine = create_sql_engine(get_session_factory(), redis=redis, events_channel=settings.EVENTS_CHANNEL)
            return await job(engine)
        finally:
            if redis is not None:
                await redis.aclose()
            await close_database()

    return asyncio.run(runner())


@celery_app.task(name=SWEEP_TASK)
def sweep_overdue_attempts_task() -> List[str]:
    return _run_with_engine(sweep_overdue_attempts)


@celery_app.task(name=RECOMPUTE_TASK, autoretry_for=(ConnectionError,), max_retries=3, retry_backoff=True)
def recompute_mastery_task(user_id: str, attempt_id: str) -> Dict[str, Any]:
    logger.info(f"Recomputing mastery of {user_id} from attempt {attempt_id}")
    return _run_with_engine(lambda engine: recompute_mastery(engine, user_id, attempt_id))


get_scheduler().schedule_periodic_task(SWEEP_TASK, get_scheduler().config.timeout_sweep_seconds)
