"""
Main application entry point for the assessment engine.

This module builds the FastAPI application, registers the engine's router
and wires the engine to the configured database and Redis.

Usage:
    - Direct: python -m backend.main
    - ASGI server: uvicorn backend.main:app
"""

import os
from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from redis.asyncio import Redis

from backend.api import engine_exception_handler, main_router, register_module, validation_exception_handler
from backend.assessments.controllers import router as assessment_router
from backend.assessments.factory import AssessmentEngine, create_sql_engine
from backend.common.error_handling import AssessmentEngineError
from backend.common.logger import app_logger, configure_logger
from backend.config import settings
from backend.database.init_db import close_database, get_session_factory, initialize_database

# Setup module logger
logger = app_logger.getChild("main")

register_module("assessments", assessment_router, settings.API_V1_STR)


def create_app(engine: Optional[AssessmentEngine] = None) -> FastAPI:
    """
    Create the application.

    Args:
        engine: A ready engine. When omitted the engine is built on startup
            from the database and Redis settings.
    """
    application = FastAPI(
        title=settings.PROJECT_NAME,
        description="API for composing assessments, running attempts and grading them",
        version="0.1.0"
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.add_exception_handler(RequestValidationError, validation_exception_handler)
    application.add_exception_handler(AssessmentEngineError, engine_exception_handler)
    application.include_router(main_router)

    application.state.engine = engine
    application.state.redis = None

    @application.on_event("startup")
    async def startup_event():
        """Initialize services on application startup."""
        if application.state.engine is not None:
            logger.info("Using the provided engine")
            return
        try:
            await initialize_database(
                database_url=settings.DATABASE_URL,
                echo=settings.SQL_ECHO,
                pool_size=settings.DB_POOL_SIZE,
                max_overflow=settings.DB_MAX_OVERFLOW,
                pool_timeout=settings.DB_POOL_TIMEOUT,
                create_schema=settings.DATABASE_URL.startswith("sqlite")
            )
            if settings.REDIS_URL:
                application.state.redis = Redis.from_url(settings.REDIS_URL)
            application.state.engine = create_sql_engine(
                get_session_factory(),
                redis=application.state.redis,
                events_channel=settings.EVENTS_CHANNEL
            )
            logger.info("Application startup complete")
        except Exception as e:
            logger.error(f"Failed to initialize application: {str(e)}")
            raise

    @application.on_event("shutdown")
    async def shutdown_event():
        """Cleanup services on application shutdown."""
        try:
            if application.state.redis is not None:
                await application.state.redis.aclose()
            await close_database()
            logger.info("Application shutdown complete")
        except Exception as e:
            logger.error(f"Error during application shutdown: {str(e)}")
            raise

    @application.get("/")
    async def root():
        """Root endpoint."""
        return {"message": f"Welcome to the {settings.PROJECT_NAME} API"}

    logger.info(f"Application initialized with {len(application.routes)} routes")
    return application


configure_logger(level=settings.LOG_LEVEL, use_json=settings.LOG_JSON, log_file=settings.LOG_FILE)
app = create_app()

# Entry point for running the application directly
if __name__ == "__main__":
    import uvicorn

    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", 8000))
    reload_enabled = os.environ.get("RELOAD", "true").lower() == "true"

    logger.info(f"Starting server on {host}:{port} (reload: {reload_enabled})")

    uvicorn.run(
        "backend.main:app",
        host=host,
        port=port,
        reload=reload_enabled,
        log_level="info"
    )
