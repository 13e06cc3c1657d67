from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import text
import logging

logger = logging.getLogger(__name__)

# Created by init_db() during application startup
engine: Optional[AsyncEngine] = None
AsyncSessionLocal: Optional[async_sessionmaker] = None


class Base(DeclarativeBase):
    pass


def create_engine_from_url(
    database_url: str,
    pool_size: int = 5,
    max_overflow: int = 10
) -> AsyncEngine:
    """Create the async engine used by the service."""
    if not database_url:
        raise ValueError("DATABASE_URL environment variable is not set")

    return create_async_engine(
        database_url,
        echo=False,
        pool_pre_ping=True,
        pool_size=pool_size,
        max_overflow=max_overflow,
    )


async def get_db():
    """Dependency to get database session"""
    if AsyncSessionLocal is None:
        raise RuntimeError("Database not initialised; call init_db() at startup")

    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(database_url: str, pool_size: int = 5, max_overflow: int = 10):
    """Initialize database connection and verify the statement tables exist"""
    global engine, AsyncSessionLocal

    engine = create_engine_from_url(database_url, pool_size, max_overflow)
    AsyncSessionLocal = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )

    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            logger.info("PostgreSQL connection successful")

            tables_query = text("""
                SELECT table_name
                FROM information_schema.tables
                WHERE table_schema = 'public'
            """)
            result = await conn.execute(tables_query)
            tables = {row[0] for row in result.fetchall()}

            expected = set(Base.metadata.tables.keys())
            missing = sorted(expected - tables)
            if missing:
                logger.warning(f"Missing tables: {missing}")

            return True
    except Exception as e:
        logger.error(f"Database initialization error: {e}")
        raise


async def close_db():
    """Dispose the engine on shutdown"""
    global engine, AsyncSessionLocal

    if engine is not None:
        await engine.dispose()
        logger.info("PostgreSQL connection pool disposed")
    engine = None
    AsyncSessionLocal = None
