#!/usr/bin/env python3
"""
Database initialization script.

Creates the assessment engine's tables on the configured database. Use the
Alembic migrations for shared environments.
"""

import sys
import asyncio
import argparse

from backend.common.logger import app_logger, configure_logger
from backend.config import settings
from backend.database.init_db import close_database, initialize_database

logger = app_logger.getChild("scripts.init_db")


async def async_main(database_url: str, echo: bool) -> None:
    """Initialize the database."""
    try:
        await initialize_database(database_url=database_url, echo=echo, create_schema=True)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Error initializing database: {e}")
        sys.exit(1)
    finally:
        await close_database()


def main():
    parser = argparse.ArgumentParser(description="Create the assessment engine schema")
    parser.add_argument("--database-url", default=settings.DATABASE_URL)
    parser.add_argument("--echo", action="store_true", help="Echo SQL statements")
    args = parser.parse_args()

    configure_logger(level=settings.LOG_LEVEL)
    asyncio.run(async_main(args.database_url, args.echo))


if __name__ == "__main__":
    main()
