"""
Common Components

Infrastructure shared across the assessment engine:

1. Logging - Centralized logging configuration
2. Error Handling - Error taxonomy and response envelopes
3. Serialization - Dict/JSON conversion for domain models
4. Auth - Identity, roles and the user directory
5. Performance - Topic mastery and difficulty recommendation
6. Rate limiting and background tasks
"""

from backend.common.logger import app_logger

__all__ = ['app_logger']
