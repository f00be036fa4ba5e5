"""
Assessment Domain Events

Events raised by the attempt lifecycle and mastery tracking, and the
emitters that deliver them. Notification delivery (badges, websockets,
email) subscribes to these events outside the engine.
"""

import json
import time
import uuid
import asyncio
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List

from backend.common.logger import app_logger
from backend.common.serialization import serialize

logger = app_logger.getChild("assessments.events")


#------------------------------------------------------------------------------
# Domain Events
#------------------------------------------------------------------------------

class DomainEvent:
    """Base class for all domain events in the assessment engine"""

    def __init__(self, event_id: str = None, timestamp: float = None):
        self.event_id = event_id or str(uuid.uuid4())
        self.timestamp = timestamp or time.time()
        self.event_type = self.__class__.__name__

    def payload(self) -> Dict[str, Any]:
        return {
            key: serialize(value) for key, value in vars(self).items()
            if key not in ("event_id", "timestamp", "event_type")
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "timestamp": self.timestamp,
            "data": self.payload(),
        }


class AttemptStartedEvent(DomainEvent):
    """Raised when a user starts an attempt"""

    def __init__(self, attempt_id, assessment_id, user_id, attempt_number, event_id=None, timestamp=None):
        super().__init__(event_id, timestamp)
        self.attempt_id = attempt_id
        self.assessment_id = assessment_id
        self.user_id = user_id
        self.attempt_number = attempt_number


class AttemptSubmittedEvent(DomainEvent):
    """Raised when an attempt is submitted and still waits for manual grading"""

    def __init__(self, attempt_id, assessment_id, user_id, pending_questions, event_id=None, timestamp=None):
        super().__init__(event_id, timestamp)
        self.attempt_id = attempt_id
        self.assessment_id = assessment_id
        self.user_id = user_id
        self.pending_questions = pending_questions


class AttemptGradedEvent(DomainEvent):
    """Raised when every answer of an attempt carries a score"""

    def __init__(self, attempt_id, assessment_id, user_id, total_score, max_score, percentage,
                 event_id=None, timestamp=None):
        super().__init__(event_id, timestamp)
        self.attempt_id = attempt_id
        self.assessment_id = assessment_id
        self.user_id = user_id
        self.total_score = total_score
        self.max_score = max_score
        self.percentage = percentage


class AttemptTimedOutEvent(DomainEvent):
    """Raised when the scheduler closes an overdue attempt"""

    def __init__(self, attempt_id, assessment_id, user_id, event_id=None, timestamp=None):
        super().__init__(event_id, timestamp)
        self.attempt_id = attempt_id
        self.assessment_id = assessment_id
        self.user_id = user_id


class MasteryChangedEvent(DomainEvent):
    """Raised when a user's mastery of a topic changes"""

    def __init__(self, user_id, topic_id, previous_percentage, mastery_percentage,
                 event_id=None, timestamp=None):
        super().__init__(event_id, timestamp)
        self.user_id = user_id
        self.topic_id = topic_id
        self.previous_percentage = previous_percentage
        self.mastery_percentage = mastery_percentage


class DifficultyRecommendedEvent(DomainEvent):
    """Raised when a graded attempt produces a new difficulty recommendation"""

    def __init__(self, user_id, attempt_id, percentage, difficulty, event_id=None, timestamp=None):
        super().__init__(event_id, timestamp)
        self.user_id = user_id
        self.attempt_id = attempt_id
        self.percentage = percentage
        self.difficulty = difficulty


#------------------------------------------------------------------------------
# Emitters
#------------------------------------------------------------------------------

Handler = Callable[[DomainEvent], Any]


class EventEmitter(ABC):
    """Interface the engine publishes domain events through"""

    def __init__(self):
        self._subscribers: Dict[str, List[Handler]] = {}

    def subscribe(self, event_type: str, handler: Handler) -> None:
        """Subscribe a handler (sync or async) to an event type name"""
        self._subscribers.setdefault(event_type, []).append(handler)

    def unsubscribe(self, event_type: str, handler: Handler) -> None:
        if handler in self._subscribers.get(event_type, []):
            self._subscribers[event_type].remove(handler)

    async def _notify_local(self, event: DomainEvent) -> None:
        for handler in list(self._subscribers.get(event.event_type, [])):
            try:
                result = handler(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"Error in {event.event_type} handler: {e}")

    @abstractmethod
    async def emit(self, event: DomainEvent) -> None:
        """Deliver an event"""
        pass


class InMemoryEventEmitter(EventEmitter):
    """Delivers events to in-process subscribers and keeps a history"""

    def __init__(self, keep_history: bool = True):
        super().__init__()
        self.keep_history = keep_history
        self.history: List[DomainEvent] = []

    async def emit(self, event: DomainEvent) -> None:
        if self.keep_history:
            self.history.append(event)
        logger.debug(f"Emitting {event.event_type} {event.event_id}")
        await self._notify_local(event)

    def events_of(self, event_type: str) -> List[DomainEvent]:
        return [event for event in self.history if event.event_type == event_type]


class RedisEventEmitter(EventEmitter):
    """
    Publishes events on Redis pub/sub so that notification workers in other
    processes receive them; in-process subscribers are called as well.

    Args:
        redis: A ``redis.asyncio`` client
        channel_prefix: Prefix of the per-event-type channel name
    """

    def __init__(self, redis, channel_prefix: str = "assessment_events"):
        super().__init__()
        self.redis = redis
        self.channel_prefix = channel_prefix

    def channel_for(self, event_type: str) -> str:
        return f"{self.channel_prefix}:{event_type}"

    async def emit(self, event: DomainEvent) -> None:
        await self._notify_local(event)
        await self.redis.publish(self.channel_for(event.event_type), json.dumps(event.to_dict()))
