"""
Database connection management.
Provides the async SQLAlchemy engine and base class for models.
"""

import logging

from sqlalchemy import text
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import declarative_base

from shared.config import Settings
from shared.exceptions import DatabaseConnectionError

logger = logging.getLogger(__name__)

# Create base class for declarative models
Base = declarative_base()


def create_engine(settings: Settings) -> AsyncEngine:
    """
    Create the connection-pooled async engine.

    Args:
        settings: Loaded application settings

    Returns:
        AsyncEngine bound to settings.database_url

    Raises:
        DatabaseConnectionError: If the URL is malformed or its driver is missing
    """
    options = {
        "pool_pre_ping": True,  # Verify connections before using
        "echo": settings.debug,  # Log SQL in debug mode
    }
    # Single-connection SQLite pools take no sizing arguments
    if ":memory:" not in settings.database_url:
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
        )
    # Bars are bucketed in UTC; keep the session on UTC as well
    if settings.database_url.startswith("postgresql+asyncpg://"):
        options["connect_args"] = {"server_settings": {"timezone": "UTC"}}

    try:
        return create_async_engine(settings.database_url, **options)
    except (ArgumentError, ImportError, ValueError) as e:
        raise DatabaseConnectionError(f"Invalid database URL: {e}") from e


async def verify_connection(engine: AsyncEngine) -> None:
    """
    Open one pooled connection and run a trivial query.

    Raises:
        DatabaseConnectionError: If the store cannot be reached
    """
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        raise DatabaseConnectionError(
            f"Could not connect to database: {e}",
            details={"url": engine.url.render_as_string(hide_password=True)},
        ) from e

    logger.debug(f"Connected to {engine.url.render_as_string(hide_password=True)}")
