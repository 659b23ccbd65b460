# database.py - Async engine, session factory and schema bootstrap
import logging
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from todolist import config

logger = logging.getLogger("todolist.database")


def _engine_options(url: str) -> dict:
    options = {"echo": config.SQL_ECHO, "future": True, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        options.update(pool_size=20, max_overflow=0, pool_recycle=3600)
    return options


# Create async engine with connection pooling
engine = create_async_engine(config.DATABASE_URL, **_engine_options(config.DATABASE_URL))

# Create async session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db_session():
    """Dependency for getting database session (FastAPI Depends)"""
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db():
    """Create tables that do not exist yet"""
    from todolist.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database schema ready")


async def check_db(session: AsyncSession) -> bool:
    """Round-trip a trivial query; used by the health endpoint"""
    await session.execute(text("SELECT 1"))
    return True


async def close_db():
    """Close database connection pool"""
    await engine.dispose()


@asynccontextmanager
async def get_db_context():
    """Context manager for database operations outside of FastAPI request cycle"""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
