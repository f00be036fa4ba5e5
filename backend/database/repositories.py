"""
SQLAlchemy Repositories

Async SQL implementations of the question, assessment, attempt and mastery
repositories. Upserts use the dialect's ``INSERT ... ON CONFLICT DO UPDATE``
so that uniqueness is enforced by the database, not by application locks.
"""

import random
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete, exists, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.assessments.models import (
    AssessmentAttempt,
    AssessmentDefinition,
    AssessmentQuestion,
    AssessmentSection,
    AttemptAnswer,
    AttemptStatus,
)
from backend.assessments.repositories import AssessmentFilter, AssessmentRepository, AttemptRepository
from backend.common.error_handling import AttemptLimitExceededError, ConflictError
from backend.common.logger import app_logger
from backend.common.performance.repository import LearningProfile, MasteryRepository, TopicMastery
from backend.common.serialization import serialize
from backend.database.models import (
    AssessmentAttemptModel,
    AssessmentModel,
    AssessmentQuestionModel,
    AssessmentSectionModel,
    AttemptAnswerModel,
    LearningProfileModel,
    QuestionBankItemModel,
    TopicMasteryModel,
)
from backend.domain.questions.model import QuestionBankItem, QuestionOption
from backend.domain.questions.repository import QuestionFilter, QuestionRepository

logger = app_logger.getChild("database.repositories")


def _insert_for(session: AsyncSession, table):
    """Dialect-specific insert supporting ``on_conflict_do_update``."""
    dialect = session.bind.dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"Upsert is not supported for dialect {dialect}")


async def _upsert(session: AsyncSession, model, values: Dict[str, Any], conflict: List[str]) -> None:
    table = model.__table__
    row = {model.__mapper__.column_attrs[key].columns[0].name: value for key, value in values.items()}
    statement = _insert_for(session, table).values(**row)
    statement = statement.on_conflict_do_update(
        index_elements=conflict,
        set_={name: statement.excluded[name] for name in row if name not in conflict and name != "id"}
    )
    await session.execute(statement)


#------------------------------------------------------------------------------
# Row mapping
#------------------------------------------------------------------------------

def _question_values(item: QuestionBankItem) -> Dict[str, Any]:
    values = {name: getattr(item, name) for name in item.__serializable_fields__}
    values.update(
        type=item.type.value,
        difficulty=item.difficulty.value,
        source=item.source.value,
        options=[option.to_dict() for option in item.options],
        correct_answer=item.correct_answer.to_dict(),
        tags=list(item.tags),
        solution_steps=list(item.solution_steps),
    )
    return values


def _question_from_row(row: QuestionBankItemModel) -> QuestionBankItem:
    data = row.to_dict()
    data["options"] = [QuestionOption.from_value(option) for option in data.get("options") or []]
    return QuestionBankItem.from_dict(data)


def _assessment_values(definition: AssessmentDefinition) -> Dict[str, Any]:
    values = {name: getattr(definition, name) for name in definition.__serializable_fields__}
    values.update(type=definition.type.value, status=definition.status.value)
    return values


def _attempt_values(attempt: AssessmentAttempt) -> Dict[str, Any]:
    values = {name: getattr(attempt, name) for name in attempt.__serializable_fields__ if name != "metadata"}
    values.update(status=attempt.status.value, attempt_metadata=serialize(attempt.metadata))
    return values


def _attempt_from_row(row: AssessmentAttemptModel) -> AssessmentAttempt:
    data = row.to_dict()
    data["metadata"] = data.pop("attempt_metadata") or {}
    return AssessmentAttempt.from_dict(data)


def _answer_values(answer: AttemptAnswer) -> Dict[str, Any]:
    values = {name: getattr(answer, name) for name in answer.__serializable_fields__}
    values["answer"] = answer.answer.to_dict() if answer.answer is not None else None
    return values


#------------------------------------------------------------------------------
# Repositories
#------------------------------------------------------------------------------

class SqlQuestionRepository(QuestionRepository):
    """Question bank storage on SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    @staticmethod
    def _where(criteria: QuestionFilter) -> list:
        model = QuestionBankItemModel
        clauses = []
        for name in ("subject_id", "module_id", "topic_id"):
            value = getattr(criteria, name)
            if value is not None:
                clauses.append(getattr(model, name) == value)
        if criteria.difficulty is not None:
            clauses.append(model.difficulty == criteria.difficulty.value)
        if criteria.type is not None:
            clauses.append(model.type == criteria.type.value)
        if criteria.source is not None:
            clauses.append(model.source == criteria.source.value)
        if criteria.is_active is not None:
            clauses.append(model.is_active == criteria.is_active)
        if criteria.search:
            clauses.append(model.question_text.ilike(f"%{criteria.search}%"))
        if criteria.exclude_ids:
            clauses.append(model.id.notin_(criteria.exclude_ids))
        return clauses

    async def get_by_id(self, question_id: str) -> Optional[QuestionBankItem]:
        async with self._session_factory() as session:
            row = await session.get(QuestionBankItemModel, question_id)
            return _question_from_row(row) if row else None

    async def get_many(self, question_ids: Iterable[str]) -> Dict[str, QuestionBankItem]:
        ids = list(set(question_ids))
        if not ids:
            return {}
        async with self._session_factory() as session:
            rows = await session.scalars(select(QuestionBankItemModel).where(QuestionBankItemModel.id.in_(ids)))
            return {row.id: _question_from_row(row) for row in rows}

    async def save(self, question: QuestionBankItem) -> QuestionBankItem:
        async with self._session_factory() as session:
            async with session.begin():
                await session.merge(QuestionBankItemModel.from_dict(_question_values(question)))
        return question

    async def save_many(self, questions: List[QuestionBankItem]) -> List[QuestionBankItem]:
        async with self._session_factory() as session:
            async with session.begin():
                for question in questions:
                    await session.merge(QuestionBankItemModel.from_dict(_question_values(question)))
        return questions

    async def find(self, criteria: QuestionFilter, limit: int = 50, offset: int = 0) -> List[QuestionBankItem]:
        statement = (
            select(QuestionBankItemModel)
            .where(*self._where(criteria))
            .order_by(QuestionBankItemModel.created_at.desc())
        )
        async with self._session_factory() as session:
            if not criteria.tags:
                rows = await session.scalars(statement.limit(limit).offset(offset))
                return [_question_from_row(row) for row in rows]
            rows = await session.scalars(statement)
            items = [item for item in map(_question_from_row, rows) if criteria.matches(item)]
            return items[offset:offset + limit]

    async def sample(self, criteria: QuestionFilter, count: int) -> List[QuestionBankItem]:
        statement = select(QuestionBankItemModel).where(*self._where(criteria))
        async with self._session_factory() as session:
            if not criteria.tags:
                rows = await session.scalars(statement.order_by(func.random()).limit(count))
                return [_question_from_row(row) for row in rows]
            rows = await session.scalars(statement)
            items = [item for item in map(_question_from_row, rows) if criteria.matches(item)]
            return random.sample(items, min(count, len(items)))

    async def count_by(self, subject_id: Optional[str] = None) -> Dict[str, int]:
        model = QuestionBankItemModel
        where = [model.subject_id == subject_id] if subject_id is not None else []
        counts: Dict[str, int] = {}
        async with self._session_factory() as session:
            counts["total"] = await session.scalar(select(func.count()).select_from(model).where(*where)) or 0
            counts["active"] = await session.scalar(
                select(func.count()).select_from(model).where(*where, model.is_active.is_(True))
            ) or 0
            for column, prefix in ((model.difficulty, "difficulty"), (model.type, "type")):
                result = await session.execute(select(column, func.count()).where(*where).group_by(column))
                for value, count in result:
                    counts[f"{prefix}:{value}"] = count
        return counts


class SqlAssessmentRepository(AssessmentRepository):
    """Assessment storage on SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def get_by_id(self, assessment_id: str) -> Optional[AssessmentDefinition]:
        async with self._session_factory() as session:
            row = await session.get(AssessmentModel, assessment_id)
            return AssessmentDefinition.from_dict(row.to_dict()) if row else None

    async def save(self, definition: AssessmentDefinition) -> AssessmentDefinition:
        async with self._session_factory() as session:
            async with session.begin():
                await session.merge(AssessmentModel.from_dict(_assessment_values(definition)))
        return definition

    async def find(self, criteria: AssessmentFilter, limit: int = 50, offset: int = 0) -> List[AssessmentDefinition]:
        model = AssessmentModel
        clauses = []
        if criteria.statuses:
            clauses.append(model.status.in_([status.value for status in criteria.statuses]))
        for name in ("subject_id", "module_id", "grade"):
            value = getattr(criteria, name)
            if value is not None:
                clauses.append(getattr(model, name) == value)
        if criteria.type is not None:
            clauses.append(model.type == criteria.type.value)

        statement = select(model).where(*clauses).order_by(model.created_at.desc()).limit(limit).offset(offset)
        async with self._session_factory() as session:
            rows = await session.scalars(statement)
            return [AssessmentDefinition.from_dict(row.to_dict()) for row in rows]

    async def get_sections(self, assessment_id: str) -> List[AssessmentSection]:
        statement = (
            select(AssessmentSectionModel)
            .where(AssessmentSectionModel.assessment_id == assessment_id)
            .order_by(AssessmentSectionModel.order)
        )
        async with self._session_factory() as session:
            return [AssessmentSection.from_dict(row.to_dict()) for row in await session.scalars(statement)]

    async def get_questions(self, assessment_id: str) -> List[AssessmentQuestion]:
        statement = (
            select(AssessmentQuestionModel)
            .where(AssessmentQuestionModel.assessment_id == assessment_id)
            .order_by(AssessmentQuestionModel.order)
        )
        async with self._session_factory() as session:
            return [AssessmentQuestion.from_dict(row.to_dict()) for row in await session.scalars(statement)]

    async def replace_structure(
        self,
        assessment_id: str,
        sections: List[AssessmentSection],
        questions: List[AssessmentQuestion]
    ) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(
                    delete(AssessmentQuestionModel).where(AssessmentQuestionModel.assessment_id == assessment_id)
                )
                await session.execute(
                    delete(AssessmentSectionModel).where(AssessmentSectionModel.assessment_id == assessment_id)
                )
                session.add_all([AssessmentSectionModel.from_dict(s.to_dict()) for s in sections])
                await session.flush()
                session.add_all([AssessmentQuestionModel.from_dict(q.to_dict()) for q in questions])

    async def question_in_released_assessment(self, question_bank_item_id: str) -> bool:
        statement = select(
            exists()
            .where(AssessmentQuestionModel.question_bank_item_id == question_bank_item_id)
            .where(AssessmentQuestionModel.assessment_id == AssessmentModel.id)
            .where(AssessmentModel.published_at.isnot(None))
        )
        async with self._session_factory() as session:
            return bool(await session.scalar(statement))


class SqlAttemptRepository(AttemptRepository):
    """
    Attempt storage on SQLAlchemy.

    The unique ``(assessment_id, user_id, attempt_number)`` constraint backs
    the attempt cap, and the unique ``(attempt_id, assessment_question_id)``
    constraint backs answer upserts.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def get_by_id(self, attempt_id: str) -> Optional[AssessmentAttempt]:
        async with self._session_factory() as session:
            row = await session.get(AssessmentAttemptModel, attempt_id)
            return _attempt_from_row(row) if row else None

    @staticmethod
    async def _count(session: AsyncSession, assessment_id: str, user_id: str) -> int:
        statement = select(func.count()).select_from(AssessmentAttemptModel).where(
            AssessmentAttemptModel.assessment_id == assessment_id,
            AssessmentAttemptModel.user_id == user_id
        )
        return await session.scalar(statement) or 0

    async def count_for_user(self, assessment_id: str, user_id: str) -> int:
        async with self._session_factory() as session:
            return await self._count(session, assessment_id, user_id)

    async def create_attempt(self, attempt: AssessmentAttempt, max_attempts: Optional[int]) -> AssessmentAttempt:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    existing = await self._count(session, attempt.assessment_id, attempt.user_id)
                    if max_attempts is not None and existing >= max_attempts:
                        raise AttemptLimitExceededError(attempt.assessment_id, attempt.user_id, max_attempts)
                    attempt.attempt_number = existing + 1
                    session.add(AssessmentAttemptModel.from_dict(_attempt_values(attempt)))
        except IntegrityError as e:
            logger.warning(f"Concurrent start for {attempt.user_id} on {attempt.assessment_id}: {e.orig}")
            existing = await self.count_for_user(attempt.assessment_id, attempt.user_id)
            if max_attempts is not None and existing >= max_attempts:
                raise AttemptLimitExceededError(attempt.assessment_id, attempt.user_id, max_attempts)
            raise ConflictError("Another attempt was started at the same time; retry", cause=e)
        return attempt

    async def save(self, attempt: AssessmentAttempt) -> AssessmentAttempt:
        async with self._session_factory() as session:
            async with session.begin():
                await session.merge(AssessmentAttemptModel.from_dict(_attempt_values(attempt)))
        return attempt

    async def list_for_user(self, user_id: str, assessment_id: Optional[str] = None) -> List[AssessmentAttempt]:
        model = AssessmentAttemptModel
        clauses = [model.user_id == user_id]
        if assessment_id is not None:
            clauses.append(model.assessment_id == assessment_id)
        async with self._session_factory() as session:
            rows = await session.scalars(select(model).where(*clauses).order_by(model.started_at.desc()))
            return [_attempt_from_row(row) for row in rows]

    async def find_in_progress(self) -> List[AssessmentAttempt]:
        statement = select(AssessmentAttemptModel).where(
            AssessmentAttemptModel.status == AttemptStatus.IN_PROGRESS.value
        )
        async with self._session_factory() as session:
            return [_attempt_from_row(row) for row in await session.scalars(statement)]

    async def get_answers(self, attempt_id: str) -> List[AttemptAnswer]:
        statement = select(AttemptAnswerModel).where(AttemptAnswerModel.attempt_id == attempt_id)
        async with self._session_factory() as session:
            return [AttemptAnswer.from_dict(row.to_dict()) for row in await session.scalars(statement)]

    async def get_answer(self, attempt_id: str, assessment_question_id: str) -> Optional[AttemptAnswer]:
        statement = select(AttemptAnswerModel).where(
            AttemptAnswerModel.attempt_id == attempt_id,
            AttemptAnswerModel.assessment_question_id == assessment_question_id
        )
        async with self._session_factory() as session:
            row = await session.scalar(statement)
            return AttemptAnswer.from_dict(row.to_dict()) if row else None

    async def upsert_answer(self, answer: AttemptAnswer) -> AttemptAnswer:
        async with self._session_factory() as session:
            async with session.begin():
                await _upsert(session, AttemptAnswerModel, _answer_values(answer),
                              ["attempt_id", "assessment_question_id"])
        return await self.get_answer(answer.attempt_id, answer.assessment_question_id)

    async def upsert_answers(self, answers: Iterable[AttemptAnswer]) -> List[AttemptAnswer]:
        answers = list(answers)
        async with self._session_factory() as session:
            async with session.begin():
                for answer in answers:
                    await _upsert(session, AttemptAnswerModel, _answer_values(answer),
                                  ["attempt_id", "assessment_question_id"])
        return answers

    async def graded_answers_for_user(self, user_id: str) -> List[AttemptAnswer]:
        statement = (
            select(AttemptAnswerModel)
            .join(AssessmentAttemptModel, AssessmentAttemptModel.id == AttemptAnswerModel.attempt_id)
            .where(
                AssessmentAttemptModel.user_id == user_id,
                AssessmentAttemptModel.status.in_([AttemptStatus.GRADED.value, AttemptStatus.REVIEWED.value]),
                AttemptAnswerModel.score.is_not(None)
            )
        )
        async with self._session_factory() as session:
            return [AttemptAnswer.from_dict(row.to_dict()) for row in await session.scalars(statement)]


class SqlMasteryRepository(MasteryRepository):
    """Mastery and learning profile storage on SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def get(self, user_id: str, topic_id: str) -> Optional[TopicMastery]:
        statement = select(TopicMasteryModel).where(
            TopicMasteryModel.user_id == user_id, TopicMasteryModel.topic_id == topic_id
        )
        async with self._session_factory() as session:
            row = await session.scalar(statement)
            return TopicMastery.from_dict(row.to_dict()) if row else None

    async def upsert(self, mastery: TopicMastery) -> TopicMastery:
        values = {name: getattr(mastery, name) for name in mastery.__serializable_fields__}
        async with self._session_factory() as session:
            async with session.begin():
                await _upsert(session, TopicMasteryModel, values, ["user_id", "topic_id"])
        return mastery

    async def list_for_user(self, user_id: str) -> List[TopicMastery]:
        statement = select(TopicMasteryModel).where(TopicMasteryModel.user_id == user_id)
        async with self._session_factory() as session:
            return [TopicMastery.from_dict(row.to_dict()) for row in await session.scalars(statement)]

    async def get_profile(self, user_id: str) -> Optional[LearningProfile]:
        async with self._session_factory() as session:
            row = await session.get(LearningProfileModel, user_id)
            return LearningProfile.from_dict(row.to_dict()) if row else None

    async def save_profile(self, profile: LearningProfile) -> LearningProfile:
        values = {name: getattr(profile, name) for name in profile.__serializable_fields__}
        values["recommended_difficulty"] = profile.recommended_difficulty.value
        async with self._session_factory() as session:
            async with session.begin():
                await _upsert(session, LearningProfileModel, values, ["user_id"])
        return profile
