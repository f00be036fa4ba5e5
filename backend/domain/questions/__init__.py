"""
Question domain module.

Bank items, the tagged answer variants, structural answer validation and
the attempt/review renderer.
"""

from .model import (
    Answer,
    AnswerTag,
    Difficulty,
    GradingResult,
    MatchPair,
    QuestionBankItem,
    QuestionOption,
    QuestionSource,
    QuestionType,
    answer_from_dict,
)
from .repository import QuestionFilter, QuestionRepository
from .memory_repository import MemoryQuestionRepository
from .validation import AnswerValidator
from .renderer import QuestionRenderer
from .bank import QuestionBank

__all__ = [
    'Answer',
    'AnswerTag',
    'Difficulty',
    'GradingResult',
    'MatchPair',
    'QuestionBankItem',
    'QuestionOption',
    'QuestionSource',
    'QuestionType',
    'answer_from_dict',
    'QuestionFilter',
    'QuestionRepository',
    'MemoryQuestionRepository',
    'AnswerValidator',
    'QuestionRenderer',
    'QuestionBank',
]
