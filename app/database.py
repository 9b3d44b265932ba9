"""
Database engine and session management for SQLAlchemy 2.0 (async).
PostgreSQL via asyncpg in production, aiosqlite when DATABASE_URL is unset.
"""
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy import text
from urllib.parse import urlparse
import logging

from app.config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()

_engine_args = {"echo": False}

if settings.DATABASE_URL.startswith("postgresql"):
    _engine_args.update({
        "pool_size": 5,
        "max_overflow": 10,
        "pool_pre_ping": True,  # Drop connections the server has closed
        "pool_recycle": 1800,
        "connect_args": {
            "server_settings": {
                "application_name": "gallery-backoffice"
            }
        }
    })

engine = create_async_engine(
    settings.DATABASE_URL or "sqlite+aiosqlite:///:memory:",
    **_engine_args
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncSession:
    """
    FastAPI dependency yielding a database session.
    Commits when the request succeeds, rolls back and re-raises otherwise.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error(f"Database session error: {str(e)}", exc_info=True)
            raise


def describe_database_url(url: str) -> str:
    """
    Describe DATABASE_URL for log output without leaking the password.

    Raises:
        ValueError: If the URL is empty or not a PostgreSQL/SQLite URL
    """
    if not url:
        raise ValueError("DATABASE_URL is empty")

    parsed = urlparse(url)
    if not parsed.scheme.startswith(("postgresql", "sqlite")):
        raise ValueError(f"Unsupported database URL scheme: {parsed.scheme}")

    if parsed.scheme.startswith("sqlite"):
        return f"SQLite database at {parsed.path or ':memory:'}"
    return f"Host: {parsed.hostname}, Port: {parsed.port or 5432}, Database: {parsed.path or '/postgres'}"


async def init_db():
    """
    Verify the database connection on startup and create missing tables.
    """
    if not settings.DATABASE_URL:
        logger.warning("DATABASE_URL not set, skipping database initialization")
        return

    logger.info(f"Connecting to database: {describe_database_url(settings.DATABASE_URL)}")

    # Import models so their tables are registered on Base.metadata
    from app import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database connection initialized successfully")


async def close_db():
    """Dispose the connection pool on shutdown."""
    await engine.dispose()
    logger.info("Database connections closed")
