"""
Performance tracking: per-topic mastery and difficulty recommendation.
"""

from backend.common.performance.difficulty import recommend_difficulty
from backend.common.performance.repository import (
    LearningProfile,
    MasteryRepository,
    MemoryMasteryRepository,
    TopicMastery
)
from backend.common.performance.tracker import MasteryAggregator

__all__ = [
    'recommend_difficulty',
    'LearningProfile',
    'MasteryRepository',
    'MemoryMasteryRepository',
    'TopicMastery',
    'MasteryAggregator',
]
