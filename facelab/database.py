"""
Database Connection and Session Management

This module handles database connectivity using SQLAlchemy async.
PostgreSQL with the asyncpg driver is the default; SQLite via aiosqlite
is accepted for local runs and tests.
"""
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy import text
from sqlalchemy.pool import NullPool
import logging

from facelab.config import DATABASE_URL, DB_POOL_SIZE, DB_MAX_OVERFLOW

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> dict:
    """Pool options for the given database URL."""
    options = {
        "echo": False,  # Set to True for SQL debugging
        "pool_pre_ping": True,  # Enable connection health checks
    }
    # File-backed SQLite: one connection per session, no sizing arguments
    if url.startswith("sqlite"):
        options["poolclass"] = NullPool
    else:
        options["pool_size"] = DB_POOL_SIZE
        options["max_overflow"] = DB_MAX_OVERFLOW
    return options


# Create async engine
engine = create_async_engine(DATABASE_URL, **_engine_options(DATABASE_URL))

# Session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

# Base class for ORM models
Base = declarative_base()


async def init_db():
    """Verify connectivity and create any missing tables."""
    # Register models on Base.metadata
    import facelab.models  # noqa: F401

    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database connection established successfully")
    except Exception as e:
        logger.error(f"Failed to connect to database: {e}")
        raise


async def close_db():
    """Close database connection pool."""
    await engine.dispose()
    logger.info("Database connection pool closed")
