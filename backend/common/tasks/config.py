"""
Task Configuration Module

This module provides configuration settings for the background task system:
broker settings, serialization and the periodic schedule.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from backend.config import settings


@dataclass
class TaskConfig:
    """
    Configuration for the background task system.

    Attributes:
        broker_url: URL for the message broker
        result_backend: URL for the result backend
        worker_concurrency: Number of worker processes
        task_serializer: Format for serializing task messages
        result_serializer: Format for serializing results
        accept_content: List of content types to accept
        timezone: Timezone for scheduling
        enable_utc: Whether to use UTC as the default timezone
        timeout_sweep_seconds: Interval of the overdue attempt sweep
        task_routes: Routing configuration for tasks
        additional_options: Additional configuration options
    """
    broker_url: str = settings.CELERY_BROKER_URL
    result_backend: str = settings.CELERY_RESULT_BACKEND
    worker_concurrency: int = 2
    task_serializer: str = "json"
    result_serializer: str = "json"
    accept_content: List[str] = field(default_factory=lambda: ["json"])
    timezone: str = "UTC"
    enable_utc: bool = True
    timeout_sweep_seconds: int = settings.TIMEOUT_SWEEP_SECONDS
    task_routes: Dict[str, str] = field(default_factory=dict)
    additional_options: Dict[str, Any] = field(default_factory=dict)

    def to_celery_config(self) -> Dict[str, Any]:
        """
        Convert the task configuration to a Celery configuration dictionary.

        Returns:
            Dictionary of Celery configuration options
        """
        config = {
            "broker_url": self.broker_url,
            "result_backend": self.result_backend,
            "worker_concurrency": self.worker_concurrency,
            "task_serializer": self.task_serializer,
            "result_serializer": self.result_serializer,
            "accept_content": self.accept_content,
            "timezone": self.timezone,
            "enable_utc": self.enable_utc,
        }

        if self.task_routes:
            config["task_routes"] = self.task_routes

        config.update(self.additional_options)
        return config


# Global task configuration instance
_task_config: Optional[TaskConfig] = None


def get_task_config() -> TaskConfig:
    """Get the global task configuration."""
    global _task_config

    if _task_config is None:
        _task_config = TaskConfig()
    return _task_config


def configure_tasks(config: TaskConfig) -> None:
    """
    Replace the global task configuration.

    Must be called before the scheduler is first used.
    """
    global _task_config
    _task_config = config
