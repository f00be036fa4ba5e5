"""Application configuration module."""

from typing import Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Database settings
    DATABASE_URL: str = "sqlite+aiosqlite:///./assessments.db"
    SQL_ECHO: bool = False
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30

    # Logging settings
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False
    LOG_FILE: Optional[str] = None

    # API settings
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Assessment Attempt Engine"

    # Redis (rate limiting and event fan-out); unset means in-process fallbacks
    REDIS_URL: Optional[str] = None
    EVENTS_CHANNEL: str = "assessment-events"

    # Rate limits as (requests, period seconds)
    START_RATE_LIMIT: int = 10
    START_RATE_PERIOD: int = 60
    ANSWER_RATE_LIMIT: int = 120
    ANSWER_RATE_PERIOD: int = 60

    # Background tasks
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/2"
    TIMEOUT_SWEEP_SECONDS: int = 60

    # Mastery queries
    MASTERY_TOPIC_LIMIT: int = 5
    MASTERY_MIN_QUESTIONS: int = 3


# Create global settings instance
settings = Settings()
