"""
Mastery Tracker

Folds graded attempt answers into per-topic mastery statistics and keeps
each learner's recommended difficulty current.

Mastery for a topic is always recomputed from the learner's full graded
history, so re-running an update for the same attempt is idempotent.
"""

from collections import defaultdict
from typing import Any, Dict, List, Optional

from backend.assessments.events import DifficultyRecommendedEvent, EventEmitter, MasteryChangedEvent
from backend.assessments.grading import round_half_up
from backend.assessments.models import AttemptStatus
from backend.assessments.repositories import AttemptRepository
from backend.common.logger import app_logger
from backend.common.performance.difficulty import recommend_difficulty
from backend.common.performance.repository import LearningProfile, MasteryRepository, TopicMastery
from backend.common.serialization import utcnow
from backend.domain.questions.model import Difficulty
from backend.domain.questions.repository import QuestionRepository

# Module logger
logger = app_logger.getChild("performance.tracker")

DEFAULT_TOPIC_LIMIT = 5
DEFAULT_MIN_QUESTIONS = 3


class MasteryAggregator:
    """
    Maintains topic mastery and learning profiles.

    Args:
        mastery: Mastery and profile storage
        attempts: Attempt storage, the source of graded answers
        questions: Question bank storage, used to map answers to topics
        events: Optional emitter for mastery and difficulty events
    """

    def __init__(
        self,
        mastery: MasteryRepository,
        attempts: AttemptRepository,
        questions: QuestionRepository,
        events: Optional[EventEmitter] = None
    ):
        self.mastery = mastery
        self.attempts = attempts
        self.questions = questions
        self.events = events

    async def update_after_attempt(self, user_id: str, attempt_id: str) -> List[TopicMastery]:
        """
        Recompute mastery of every topic touched by a graded attempt and
        refresh the user's recommended difficulty.

        Attempts that are not graded yet are ignored.

        Returns:
            The updated mastery records
        """
        attempt = await self.attempts.get_by_id(attempt_id)
        if attempt is None or attempt.user_id != user_id:
            logger.warning(f"Mastery update skipped: attempt {attempt_id} not found for user {user_id}")
            return []
        if attempt.status not in (AttemptStatus.GRADED, AttemptStatus.REVIEWED):
            logger.debug(f"Mastery update skipped: attempt {attempt_id} is {attempt.status.value}")
            return []

        attempt_answers = await self.attempts.get_answers(attempt_id)
        items = await self.questions.get_many({a.question_bank_item_id for a in attempt_answers})
        touched = {item.topic_id for item in items.values() if item.topic_id}

        updated = []
        if touched:
            history = await self.attempts.graded_answers_for_user(user_id)
            history_items = await self.questions.get_many({a.question_bank_item_id for a in history})
            by_topic = defaultdict(list)
            for answer in history:
                item = history_items.get(answer.question_bank_item_id)
                if item is not None and item.topic_id in touched:
                    by_topic[item.topic_id].append(answer)

            for topic_id in sorted(touched):
                updated.append(await self._store_topic(user_id, topic_id, by_topic[topic_id]))

        await self.update_learning_profile(user_id, attempt.percentage, attempt_id)
        return updated

    async def update_learning_profile(
        self,
        user_id: str,
        percentage: Optional[int],
        attempt_id: Optional[str] = None
    ) -> LearningProfile:
        """Persist the difficulty recommended for ``percentage``."""
        difficulty = recommend_difficulty(percentage)
        profile = LearningProfile(
            user_id=user_id,
            recommended_difficulty=difficulty,
            last_percentage=percentage,
            last_attempt_id=attempt_id
        )
        await self.mastery.save_profile(profile)
        logger.info(f"Recommended {difficulty.value} difficulty for user {user_id} ({percentage}%)")
        if self.events is not None:
            await self.events.emit(DifficultyRecommendedEvent(
                user_id=user_id, attempt_id=attempt_id, percentage=percentage, difficulty=difficulty.value
            ))
        return profile

    async def get_recommended_difficulty(self, user_id: str) -> Difficulty:
        profile = await self.mastery.get_profile(user_id)
        return profile.recommended_difficulty if profile else Difficulty.MEDIUM

    async def get_user_mastery(self, user_id: str) -> List[TopicMastery]:
        """All of a user's topic mastery, weakest first."""
        records = await self.mastery.list_for_user(user_id)
        return sorted(records, key=lambda m: (m.mastery_percentage, m.topic_id))

    async def get_weakest_topics(
        self,
        user_id: str,
        limit: int = DEFAULT_TOPIC_LIMIT,
        min_questions: int = DEFAULT_MIN_QUESTIONS
    ) -> List[TopicMastery]:
        records = [m for m in await self.get_user_mastery(user_id) if m.questions_attempted >= min_questions]
        return records[:limit]

    async def get_strongest_topics(
        self,
        user_id: str,
        limit: int = DEFAULT_TOPIC_LIMIT,
        min_questions: int = DEFAULT_MIN_QUESTIONS
    ) -> List[TopicMastery]:
        records = [m for m in await self.mastery.list_for_user(user_id) if m.questions_attempted >= min_questions]
        records.sort(key=lambda m: (-m.mastery_percentage, m.topic_id))
        return records[:limit]

    async def get_overall_mastery(self, user_id: str) -> Dict[str, Any]:
        """Totals across all of a user's topics."""
        records = await self.mastery.list_for_user(user_id)
        attempted = sum(m.questions_attempted for m in records)
        correct = sum(m.questions_correct for m in records)
        return {
            "topics": len(records),
            "questions_attempted": attempted,
            "questions_correct": correct,
            "mastery_percentage": round_half_up(correct / attempted * 100) if attempted else 0,
        }

    async def _store_topic(self, user_id: str, topic_id: str, answers) -> TopicMastery:
        previous = await self.mastery.get(user_id, topic_id)
        attempted = len(answers)
        correct = sum(1 for answer in answers if answer.is_correct)
        answered_at = [answer.answered_at for answer in answers if answer.answered_at is not None]

        record = TopicMastery(
            user_id=user_id,
            topic_id=topic_id,
            questions_attempted=attempted,
            questions_correct=correct,
            total_score=round(sum(answer.score or 0 for answer in answers), 2),
            max_score=sum(answer.max_score or 0 for answer in answers),
            mastery_percentage=round_half_up(correct / attempted * 100) if attempted else 0,
            last_attempt_at=max(answered_at) if answered_at else None,
            updated_at=utcnow()
        )
        stored = await self.mastery.upsert(record)

        before = previous.mastery_percentage if previous else None
        if before != stored.mastery_percentage:
            logger.info(f"Mastery of {topic_id} for {user_id}: {before} -> {stored.mastery_percentage}")
            if self.events is not None:
                await self.events.emit(MasteryChangedEvent(
                    user_id=user_id,
                    topic_id=topic_id,
                    previous_percentage=before,
                    mastery_percentage=stored.mastery_percentage
                ))
        return stored
