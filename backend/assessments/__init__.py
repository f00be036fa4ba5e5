"""
Assessments module.

Assessment definitions and their composition from bank items, the attempt
lifecycle, grading and domain events.
"""

from .models import (
    AssessmentAttempt,
    AssessmentDefinition,
    AssessmentQuestion,
    AssessmentSection,
    AssessmentStatus,
    AssessmentType,
    AttemptAnswer,
    AttemptStatus,
)
from .repositories import AssessmentFilter, AssessmentRepository, AttemptRepository
from .memory_repositories import MemoryAssessmentRepository, MemoryAttemptRepository
from .grading import AttemptTotals, GradingEngine
from .composer import AssessmentComposer, AssessmentLayout
from .events import EventEmitter, InMemoryEventEmitter, RedisEventEmitter
from .services import AttemptStateMachine

__all__ = [
    'AssessmentAttempt',
    'AssessmentDefinition',
    'AssessmentQuestion',
    'AssessmentSection',
    'AssessmentStatus',
    'AssessmentType',
    'AttemptAnswer',
    'AttemptStatus',
    'AssessmentFilter',
    'AssessmentRepository',
    'AttemptRepository',
    'MemoryAssessmentRepository',
    'MemoryAttemptRepository',
    'AttemptTotals',
    'GradingEngine',
    'AssessmentComposer',
    'AssessmentLayout',
    'EventEmitter',
    'InMemoryEventEmitter',
    'RedisEventEmitter',
    'AttemptStateMachine',
]
