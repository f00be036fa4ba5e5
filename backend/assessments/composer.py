"""
Assessment Composer

Builds assessment definitions from bank items: creation and editing of the
ordered question references (optionally grouped into sections), the
publication lifecycle, and the resolved layout used to run attempts.
"""

import dataclasses
import datetime
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from backend.common.auth.user import UserRole
from backend.common.error_handling import InvalidStateError, NotFoundError, ValidationError
from backend.common.logger import app_logger
from backend.common.serialization import utcnow
from backend.domain.questions.model import QuestionBankItem
from backend.domain.questions.repository import QuestionRepository
from .models import (
    ASSESSMENT_TRANSITIONS,
    AssessmentDefinition,
    AssessmentQuestion,
    AssessmentSection,
    AssessmentStatus,
)
from .repositories import AssessmentFilter, AssessmentRepository

logger = app_logger.getChild("assessments.composer")

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100

# Fields of a published assessment that may still change
PUBLISHED_EDITABLE_FIELDS = frozenset({
    "description", "instructions", "available_from", "available_until", "max_attempts",
    "show_results_immediately", "show_correct_answers", "show_explanations",
})

_DEFINITION_FIELDS = frozenset(AssessmentDefinition.__serializable_fields__) - {
    "id", "status", "created_by", "published_at", "created_at", "updated_at"
}


@dataclass
class LayoutEntry:
    """A question reference resolved against its bank item."""
    question: AssessmentQuestion
    item: QuestionBankItem
    points: int


@dataclass
class SectionLayout:
    """A section (None for an assessment without sections) and its entries."""
    section: Optional[AssessmentSection]
    entries: List[LayoutEntry] = field(default_factory=list)


@dataclass
class AssessmentLayout:
    """An assessment with its sections and questions resolved, in order."""
    definition: AssessmentDefinition
    sections: List[SectionLayout]

    @property
    def entries(self) -> List[LayoutEntry]:
        return [entry for section in self.sections for entry in section.entries]

    def entry(self, assessment_question_id: str) -> Optional[LayoutEntry]:
        for entry in self.entries:
            if entry.question.id == assessment_question_id:
                return entry
        return None

    @property
    def total_points(self) -> int:
        return sum(entry.points for entry in self.entries)


class AssessmentComposer:
    """
    Assembles and manages assessment definitions.

    Args:
        assessments: Storage for definitions and their structure
        questions: The question bank storage
    """

    def __init__(self, assessments: AssessmentRepository, questions: QuestionRepository):
        self.assessments = assessments
        self.questions = questions

    async def create(self, data: Dict[str, Any], created_by: Optional[str] = None) -> AssessmentLayout:
        """
        Create a draft assessment.

        ``data`` holds the definition fields plus ``sections`` (a list of
        ``{title, instructions, time_limit_minutes}``) and ``questions`` (a
        list of ``{question_bank_item_id, section, override_points}`` where
        ``section`` is an index into ``sections``).

        Raises:
            ValidationError: If the definition is invalid, has no questions,
                or references unknown or inactive bank items
        """
        payload = {key: value for key, value in data.items() if key in _DEFINITION_FIELDS}
        try:
            definition = AssessmentDefinition(created_by=created_by, **payload)
        except (ValueError, TypeError) as e:
            raise ValidationError(f"Invalid assessment: {e}", cause=e)

        sections, questions = await self._build_structure(
            definition.id, data.get("sections") or [], data.get("questions") or []
        )
        await self.assessments.save(definition)
        await self.assessments.replace_structure(definition.id, sections, questions)
        logger.info(f"Created {definition.type.value} assessment {definition.id} with {len(questions)} questions")
        return await self.layout(definition.id)

    async def update(self, assessment_id: str, changes: Dict[str, Any]) -> AssessmentLayout:
        """
        Edit an assessment.

        Drafts may change freely. Published assessments only accept changes
        to ``PUBLISHED_EDITABLE_FIELDS``; archived ones accept none.

        Raises:
            NotFoundError: If the assessment does not exist
            InvalidStateError: If the change is not allowed in the current status
            ValidationError: If the result is invalid
        """
        definition = await self.get(assessment_id)
        structural = "sections" in changes or "questions" in changes
        field_changes = {key: value for key, value in changes.items() if key in _DEFINITION_FIELDS}

        if definition.status is AssessmentStatus.ARCHIVED:
            raise InvalidStateError(f"Assessment {assessment_id} is archived")
        if definition.status is AssessmentStatus.PUBLISHED:
            locked = sorted(set(field_changes) - PUBLISHED_EDITABLE_FIELDS)
            if structural:
                locked.append("questions/sections")
            if locked:
                logger.warning(f"Rejected edit of published assessment {assessment_id}: {locked}")
                raise InvalidStateError(
                    f"Assessment {assessment_id} is published; these fields cannot change",
                    details={"fields": locked}
                )

        try:
            updated = dataclasses.replace(definition, updated_at=utcnow(), **field_changes)
        except (ValueError, TypeError) as e:
            raise ValidationError(f"Invalid assessment update: {e}", cause=e)

        if structural:
            current = await self.layout(assessment_id)
            sections_payload = changes.get("sections")
            if sections_payload is None:
                sections_payload = [_section_payload(s.section) for s in current.sections if s.section]
            questions_payload = changes.get("questions")
            if questions_payload is None:
                questions_payload = _questions_payload(current)
            sections, questions = await self._build_structure(assessment_id, sections_payload, questions_payload)
            await self.assessments.replace_structure(assessment_id, sections, questions)

        await self.assessments.save(updated)
        logger.info(f"Updated assessment {assessment_id}")
        return await self.layout(assessment_id)

    async def publish(self, assessment_id: str) -> AssessmentDefinition:
        """Move a draft to published. Irreversible."""
        definition = await self._transition(assessment_id, AssessmentStatus.PUBLISHED)
        return definition

    async def archive(self, assessment_id: str) -> AssessmentDefinition:
        return await self._transition(assessment_id, AssessmentStatus.ARCHIVED)

    async def get(self, assessment_id: str) -> AssessmentDefinition:
        definition = await self.assessments.get_by_id(assessment_id)
        if definition is None:
            raise NotFoundError("Assessment", assessment_id)
        return definition

    async def layout(self, assessment_id: str) -> AssessmentLayout:
        """
        Resolve an assessment's sections and question references.

        Questions without a section go to the first section. Effective
        points are ``override_points``, else the item's points, else 1.
        """
        definition = await self.get(assessment_id)
        sections = await self.assessments.get_sections(assessment_id)
        references = await self.assessments.get_questions(assessment_id)
        items = await self.questions.get_many([ref.question_bank_item_id for ref in references])

        layouts = [SectionLayout(section=section) for section in sections] or [SectionLayout(section=None)]
        by_section = {layout.section.id: layout for layout in layouts if layout.section is not None}

        for ref in references:
            item = items.get(ref.question_bank_item_id)
            if item is None:
                logger.warning(f"Assessment {assessment_id} references missing question {ref.question_bank_item_id}")
                continue
            target = by_section.get(ref.section_id, layouts[0])
            target.entries.append(LayoutEntry(question=ref, item=item, points=ref.effective_points(item)))

        return AssessmentLayout(definition=definition, sections=layouts)

    async def detail(
        self,
        assessment_id: str,
        role: UserRole,
        now: Optional[datetime.datetime] = None
    ) -> Dict[str, Any]:
        """
        Detail view. Privileged roles see the full question content; other
        roles see only an outline of published, available assessments.
        """
        layout = await self.layout(assessment_id)
        definition = layout.definition
        if not role.is_privileged and not _visible_to_learners(definition, now or utcnow()):
            raise NotFoundError("Assessment", assessment_id)

        result = definition.to_dict()
        result["total_points"] = layout.total_points
        result["question_count"] = len(layout.entries)
        result["sections"] = []
        for section_layout in layout.sections:
            section = section_layout.section
            entry_dicts = []
            for entry in section_layout.entries:
                data = {
                    "id": entry.question.id,
                    "question_bank_item_id": entry.item.id,
                    "order": entry.question.order,
                    "points": entry.points,
                }
                if role.is_privileged:
                    data["question"] = entry.item.to_dict()
                entry_dicts.append(data)
            result["sections"].append({
                "id": section.id if section else None,
                "title": section.title if section else None,
                "instructions": section.instructions if section else None,
                "time_limit_minutes": section.time_limit_minutes if section else None,
                "questions": entry_dicts if role.is_privileged else [],
                "question_count": len(entry_dicts),
            })
        return result

    async def list(
        self,
        role: UserRole,
        criteria: Optional[AssessmentFilter] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
        now: Optional[datetime.datetime] = None
    ) -> List[AssessmentDefinition]:
        """
        List assessments. STUDENT and PARENT callers only see published
        assessments inside their availability window.
        """
        criteria = criteria or AssessmentFilter()
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        if role.is_privileged:
            return await self.assessments.find(criteria, limit=limit, offset=max(0, offset))

        criteria = dataclasses.replace(criteria, statuses=[AssessmentStatus.PUBLISHED])
        now = now or utcnow()
        published = await self.assessments.find(criteria, limit=MAX_PAGE_SIZE * 10, offset=0)
        visible = [definition for definition in published if definition.is_available_at(now)]
        return visible[max(0, offset):max(0, offset) + limit]

    async def _transition(self, assessment_id: str, target: AssessmentStatus) -> AssessmentDefinition:
        definition = await self.get(assessment_id)
        if target not in ASSESSMENT_TRANSITIONS[definition.status]:
            raise InvalidStateError(
                f"Cannot move assessment {assessment_id} from {definition.status.value} to {target.value}",
                details={"from": definition.status.value, "to": target.value}
            )
        if target is AssessmentStatus.PUBLISHED and not await self.assessments.get_questions(assessment_id):
            raise ValidationError("Cannot publish an assessment without questions")

        now = utcnow()
        updated = dataclasses.replace(definition, status=target, updated_at=now)
        if target is AssessmentStatus.PUBLISHED:
            updated.published_at = now
        await self.assessments.save(updated)
        logger.info(f"Assessment {assessment_id}: {definition.status.value} -> {target.value}")
        return updated

    async def _build_structure(
        self,
        assessment_id: str,
        sections_payload: List[Dict[str, Any]],
        questions_payload: List[Dict[str, Any]]
    ):
        if not questions_payload:
            raise ValidationError("An assessment needs at least one question")

        sections = []
        for index, data in enumerate(sections_payload):
            sections.append(AssessmentSection(
                assessment_id=assessment_id,
                order=index,
                title=data.get("title"),
                instructions=data.get("instructions"),
                time_limit_minutes=data.get("time_limit_minutes")
            ))

        item_ids = [entry.get("question_bank_item_id") for entry in questions_payload]
        items = await self.questions.get_many([item_id for item_id in item_ids if item_id])
        missing = [item_id for item_id in item_ids if item_id not in items]
        if missing:
            raise ValidationError("Unknown question bank items", details={"missing": missing})
        inactive = [item_id for item_id in item_ids if not items[item_id].is_active]
        if inactive:
            raise ValidationError("Inactive question bank items", details={"inactive": inactive})

        questions = []
        for order, entry in enumerate(questions_payload):
            section_index = entry.get("section")
            if section_index is not None and not 0 <= section_index < len(sections):
                raise ValidationError(f"Question {order} refers to unknown section {section_index}")
            try:
                questions.append(AssessmentQuestion(
                    assessment_id=assessment_id,
                    question_bank_item_id=entry["question_bank_item_id"],
                    order=order,
                    section_id=sections[section_index].id if section_index is not None else None,
                    override_points=entry.get("override_points")
                ))
            except ValueError as e:
                raise ValidationError(f"Question {order} is invalid: {e}", cause=e)
        return sections, questions


def _visible_to_learners(definition: AssessmentDefinition, now: datetime.datetime) -> bool:
    return definition.status is AssessmentStatus.PUBLISHED and definition.is_available_at(now)


def _section_payload(section: AssessmentSection) -> Dict[str, Any]:
    return {
        "title": section.title,
        "instructions": section.instructions,
        "time_limit_minutes": section.time_limit_minutes,
    }


def _questions_payload(layout: AssessmentLayout) -> List[Dict[str, Any]]:
    section_index = {
        section.section.id: index for index, section in enumerate(layout.sections) if section.section
    }
    return [
        {
            "question_bank_item_id": entry.question.question_bank_item_id,
            "section": section_index.get(entry.question.section_id),
            "override_points": entry.question.override_points,
        }
        for entry in layout.entries
    ]
