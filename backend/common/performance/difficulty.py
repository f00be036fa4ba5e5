"""
Difficulty Recommendation

Maps an attempt percentage to the difficulty tier recommended for a
learner's next content.
"""

from typing import Optional

from backend.common.logger import app_logger
from backend.domain.questions.model import Difficulty

# Module logger
logger = app_logger.getChild("performance.difficulty")

HARD_THRESHOLD = 85
MEDIUM_THRESHOLD = 65


def recommend_difficulty(percentage: Optional[float]) -> Difficulty:
    """
    Recommend a difficulty tier from a percentage score.

    Args:
        percentage: Score between 0 and 100 (None counts as 0)

    Returns:
        HARD at 85 and above, MEDIUM at 65 and above, EASY otherwise
    """
    percentage = percentage or 0
    if percentage >= HARD_THRESHOLD:
        return Difficulty.HARD
    elif percentage >= MEDIUM_THRESHOLD:
        return Difficulty.MEDIUM
    else:
        return Difficulty.EASY
