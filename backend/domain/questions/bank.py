"""
Question Bank Service

Canonical storage of question definitions and their correct answers.
Content of an item is frozen once an assessment that references it has been
published, and stays frozen after that assessment is archived. Metadata
(explanation, solution steps, tags, review flags, activity) stays editable.
"""

import dataclasses
from typing import Any, Awaitable, Callable, Dict, List, Optional

from backend.common.error_handling import ConflictError, NotFoundError, ValidationError
from backend.common.logger import app_logger
from backend.common.serialization import utcnow
from .model import QuestionBankItem, QuestionSource
from .repository import QuestionFilter, QuestionRepository

logger = app_logger.getChild("questions.bank")

MAX_PAGE_SIZE = 100

PublicationLookup = Callable[[str], Awaitable[bool]]


class QuestionBank:
    """
    Service over a ``QuestionRepository``.

    Args:
        repository: Storage for bank items
        is_released_reference: Async callable telling whether an item is
            referenced by an assessment that has been published
    """

    def __init__(
        self,
        repository: QuestionRepository,
        is_released_reference: Optional[PublicationLookup] = None
    ):
        self.repository = repository
        self._is_released_reference = is_released_reference

    async def create(self, data: Dict[str, Any], created_by: Optional[str] = None) -> QuestionBankItem:
        """
        Create a bank item from a payload.

        Raises:
            ValidationError: If the payload does not describe a valid item
        """
        item = self._build(data, created_by)
        saved = await self.repository.save(item)
        logger.info(f"Created {saved.type.value} question {saved.id}")
        return saved

    async def bulk_create(
        self,
        payloads: List[Dict[str, Any]],
        created_by: Optional[str] = None
    ) -> List[QuestionBankItem]:
        """
        Create many items at once. Either all payloads are valid and stored,
        or a ValidationError naming the first bad index is raised.
        """
        items = []
        for index, payload in enumerate(payloads):
            payload = dict(payload)
            payload.setdefault("source", QuestionSource.IMPORTED.value)
            try:
                items.append(self._build(payload, created_by))
            except ValidationError as e:
                raise ValidationError(f"Question at index {index} is invalid: {e.message}", details={"index": index})
        if not items:
            return []
        saved = await self.repository.save_many(items)
        logger.info(f"Bulk created {len(saved)} questions")
        return saved

    async def get(self, question_id: str) -> QuestionBankItem:
        item = await self.repository.get_by_id(question_id)
        if item is None:
            raise NotFoundError("Question", question_id)
        return item

    async def update(self, question_id: str, changes: Dict[str, Any]) -> QuestionBankItem:
        """
        Apply ``changes`` to an item.

        Raises:
            NotFoundError: If the item does not exist
            ConflictError: If content fields change while a published or
                archived assessment references the item
            ValidationError: If the result is not a valid item
        """
        current = await self.get(question_id)
        try:
            candidate = current.updated(changes)
        except (ValueError, TypeError, KeyError) as e:
            raise ValidationError(f"Invalid question update: {e}", cause=e)

        changed = current.content_changes(candidate)
        if changed and self._is_released_reference is not None:
            if await self._is_released_reference(question_id):
                logger.warning(f"Rejected content edit of released question {question_id}: {changed}")
                raise ConflictError(
                    f"Question {question_id} is used by a published or archived assessment; only metadata can change",
                    details={"question_id": question_id, "fields": changed}
                )

        saved = await self.repository.save(candidate)
        logger.info(f"Updated question {question_id}")
        return saved

    async def mark_reviewed(self, question_id: str, reviewer_id: str) -> QuestionBankItem:
        return await self.update(question_id, {"reviewed_by": reviewer_id, "reviewed_at": utcnow()})

    async def delete(self, question_id: str) -> QuestionBankItem:
        """Soft delete: the item stays for graded attempts but is deactivated."""
        current = await self.get(question_id)
        saved = await self.repository.save(dataclasses.replace(current, is_active=False, updated_at=utcnow()))
        logger.info(f"Deactivated question {question_id}")
        return saved

    async def list(
        self,
        criteria: Optional[QuestionFilter] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[QuestionBankItem]:
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        return await self.repository.find(criteria or QuestionFilter(), limit=limit, offset=max(0, offset))

    async def random_selection(self, count: int, criteria: Optional[QuestionFilter] = None) -> List[QuestionBankItem]:
        """Up to ``count`` random active items matching ``criteria``."""
        if count <= 0:
            raise ValidationError("count must be positive", details={"count": count})
        criteria = dataclasses.replace(criteria or QuestionFilter(), is_active=True)
        return await self.repository.sample(criteria, count)

    async def stats(self, subject_id: Optional[str] = None) -> Dict[str, Any]:
        counts = await self.repository.count_by(subject_id)
        return {
            "total": counts.get("total", 0),
            "active": counts.get("active", 0),
            "by_difficulty": {
                key.split(":", 1)[1]: value for key, value in counts.items() if key.startswith("difficulty:")
            },
            "by_type": {
                key.split(":", 1)[1]: value for key, value in counts.items() if key.startswith("type:")
            },
        }

    @staticmethod
    def _build(data: Dict[str, Any], created_by: Optional[str]) -> QuestionBankItem:
        payload = dict(data)
        if created_by is not None:
            payload["created_by"] = created_by
        try:
            return QuestionBankItem.create(**payload)
        except (ValueError, TypeError, KeyError) as e:
            raise ValidationError(f"Invalid question: {e}", cause=e)
