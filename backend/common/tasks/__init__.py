"""
Task Scheduling Module

Background jobs and periodic tasks run on Celery: the Celery application,
its configuration and helpers for sending and scheduling tasks.
"""

from backend.common.tasks.config import (
    TaskConfig,
    get_task_config,
    configure_tasks,
)

from backend.common.tasks.scheduler import (
    TaskScheduler,
    get_scheduler,
    schedule_task,
)

__all__ = [
    'TaskConfig',
    'get_task_config',
    'configure_tasks',
    'TaskScheduler',
    'get_scheduler',
    'schedule_task',
]
