"""
Task Scheduler Module

This module owns the Celery application and provides helpers for sending
tasks, registering periodic tasks and checking task status.
"""

import datetime
import logging
from typing import Any, Dict, Optional, Tuple, Union

from celery import Celery
from celery.schedules import crontab, schedule as interval_schedule

from backend.common.tasks.config import TaskConfig, get_task_config

# Set up logging
logger = logging.getLogger(__name__)


class TaskScheduler:
    """
    Scheduler for background tasks backed by Celery.

    Args:
        app_name: Name of the Celery application
        config: Task configuration (if None, uses global config)
    """

    def __init__(self, app_name: str = "assessment_engine", config: Optional[TaskConfig] = None):
        self.app_name = app_name
        self.config = config or get_task_config()
        self.celery_app = Celery(
            self.app_name,
            broker=self.config.broker_url,
            backend=self.config.result_backend
        )
        self.celery_app.conf.update(self.config.to_celery_config())
        self.celery_app.conf.beat_schedule = {}
        logger.info(f"Initialized Celery app {self.app_name} with broker {self.config.broker_url}")

    def schedule_task(
        self,
        task_name: str,
        args: Optional[Tuple] = None,
        kwargs: Optional[Dict[str, Any]] = None,
        countdown: Optional[int] = None,
        queue: Optional[str] = None
    ) -> str:
        """
        Send a task for execution.

        Returns:
            The task ID
        """
        result = self.celery_app.send_task(
            task_name,
            args=args or (),
            kwargs=kwargs or {},
            countdown=countdown,
            queue=queue
        )
        logger.info(f"Scheduled task {task_name} with ID {result.id}")
        return result.id

    def schedule_periodic_task(
        self,
        task_name: str,
        schedule: Union[int, crontab],
        args: Optional[Tuple] = None,
        kwargs: Optional[Dict[str, Any]] = None,
        entry_id: Optional[str] = None
    ) -> str:
        """
        Add a task to the beat schedule.

        Args:
            task_name: The name of the task to execute
            schedule: Interval in seconds or crontab
            args: Positional arguments for the task
            kwargs: Keyword arguments for the task
            entry_id: Beat schedule key (defaults to the task name)

        Returns:
            The beat schedule key
        """
        entry_id = entry_id or task_name
        if isinstance(schedule, int):
            schedule = interval_schedule(datetime.timedelta(seconds=schedule))

        self.celery_app.conf.beat_schedule[entry_id] = {
            'task': task_name,
            'schedule': schedule,
            'args': args or (),
            'kwargs': kwargs or {},
        }
        logger.info(f"Scheduled periodic task {task_name} as {entry_id}")
        return entry_id


# Global task scheduler instance
_scheduler: Optional[TaskScheduler] = None


def get_scheduler() -> TaskScheduler:
    """Get the global task scheduler."""
    global _scheduler

    if _scheduler is None:
        _scheduler = TaskScheduler()
    return _scheduler


def schedule_task(
    task_name: str,
    args: Optional[Tuple] = None,
    kwargs: Optional[Dict[str, Any]] = None,
    countdown: Optional[int] = None,
    queue: Optional[str] = None
) -> str:
    """Send a task through the global scheduler."""
    return get_scheduler().schedule_task(task_name, args=args, kwargs=kwargs, countdown=countdown, queue=queue)
