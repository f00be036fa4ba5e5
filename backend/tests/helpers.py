"""
Builders shared by the assessment engine tests.
"""

import datetime
from typing import Any, Dict, List, Optional, Tuple

from backend.assessments.composer import AssessmentLayout
from backend.assessments.factory import AssessmentEngine

NOW = datetime.datetime(2026, 3, 2, 9, 0, 0)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime.datetime = NOW):
        self.now = now

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **delta) -> datetime.datetime:
        self.now = self.now + datetime.timedelta(**delta)
        return self.now


CHOICES = [
    {"id": "a", "text": "Mitochondria"},
    {"id": "b", "text": "Chloroplast"},
    {"id": "c", "text": "Ribosome"},
    {"id": "d", "text": "Nucleus"},
]


def question_payload(question_type: str, **overrides: Any) -> Dict[str, Any]:
    """A valid bank item payload of the given type."""
    payloads = {
        "multiple_choice": {
            "question_text": "Where does photosynthesis take place?",
            "options": CHOICES,
            "correct_answer": {"type": "single", "value": "b"},
        },
        "multi_select": {
            "question_text": "Which organelles contain DNA?",
            "options": CHOICES,
            "correct_answer": {"type": "multi", "value": ["a", "b"]},
        },
        "true_false": {
            "question_text": "Water boils at 100 degrees Celsius at sea level.",
            "correct_answer": {"type": "boolean", "value": True},
        },
        "short_answer": {
            "question_text": "Name the process plants use to make food.",
            "correct_answer": {"type": "text", "value": "photosynthesis"},
        },
        "essay": {
            "question_text": "Discuss the causes of the First World War.",
            "correct_answer": {"type": "text", "value": ["alliances", "militarism"]},
        },
        "numeric": {
            "question_text": "Acceleration due to gravity in m/s^2?",
            "correct_answer": {"type": "numeric", "value": 9.81, "tolerance": 0.05, "units": "m/s^2"},
        },
        "matching": {
            "question_text": "Match each country to its capital.",
            "correct_answer": {"type": "pairs", "value": [
                {"left": "France", "right": "Paris"},
                {"left": "Kenya", "right": "Nairobi"},
                {"left": "Peru", "right": "Lima"},
                {"left": "Japan", "right": "Tokyo"},
            ]},
        },
        "ordering": {
            "question_text": "Order the planets from the Sun.",
            "correct_answer": {"type": "order", "value": ["Mercury", "Venus", "Earth", "Mars"]},
        },
        "fill_in_blank": {
            "question_text": "The capital of ___ is ___.",
            "correct_answer": {"type": "blanks", "value": ["France", "Paris"]},
        },
    }
    payload = dict(payloads[question_type], type=question_type, topic_id=f"topic-{question_type}")
    payload.update(overrides)
    return payload


# Answers earning full marks for ``question_payload`` items
CORRECT_ANSWERS = {
    "multiple_choice": {"type": "single", "value": "b"},
    "multi_select": {"type": "multi", "value": ["a", "b"]},
    "true_false": {"type": "boolean", "value": True},
    "numeric": {"type": "numeric", "value": 9.8},
    "matching": {"type": "pairs", "value": [
        {"left": "France", "right": "Paris"},
        {"left": "Kenya", "right": "Nairobi"},
        {"left": "Peru", "right": "Lima"},
        {"left": "Japan", "right": "Tokyo"},
    ]},
    "ordering": {"type": "order", "value": ["Mercury", "Venus", "Earth", "Mars"]},
    "fill_in_blank": {"type": "blanks", "value": ["france", " Paris "]},
    "short_answer": {"type": "text", "value": "Photosynthesis"},
    "essay": {"type": "text", "value": "Alliances and militarism made war likely."},
}


async def publish_assessment(
    engine: AssessmentEngine,
    question_types: List[str],
    sections: Optional[List[Dict[str, Any]]] = None,
    section_of: Optional[List[Optional[int]]] = None,
    publish: bool = True,
    **definition: Any
) -> Tuple[AssessmentLayout, Dict[str, str]]:
    """
    Create bank items of ``question_types``, compose them into an assessment
    and publish it.

    Returns:
        The layout and a map of question type to assessment question ID
    """
    items = [await engine.bank.create(question_payload(t), created_by="tutor-1") for t in question_types]
    questions = [
        {"question_bank_item_id": item.id, "section": section_of[i] if section_of else None}
        for i, item in enumerate(items)
    ]
    data = {"title": "Life Sciences Quiz", "type": "quiz"}
    data.update(definition)
    data.update(sections=sections or [], questions=questions)
    layout = await engine.composer.create(data, created_by="tutor-1")
    if publish:
        await engine.composer.publish(layout.definition.id)
        layout = await engine.composer.layout(layout.definition.id)
    ids = {entry.item.type.value: entry.question.id for entry in layout.entries}
    return layout, ids

