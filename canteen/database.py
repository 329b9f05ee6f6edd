"""
Database Connection Module
Handles the async SQLAlchemy engine with an in-memory fallback.

The primary database (PostgreSQL by default) is tried first at startup. If it
cannot be reached and a fallback URL is configured, the session factory is
rebound to the fallback engine so the API still starts in development.
"""

import logging
from typing import AsyncIterator, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from canteen.core.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine with pool options suited to the backend."""
    if url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url:
            # One shared connection, otherwise every session sees an empty database
            options["poolclass"] = StaticPool
        return create_async_engine(url, echo=echo, **options)

    return create_async_engine(
        url,
        echo=echo,
        pool_size=20,
        max_overflow=10,
        pool_pre_ping=True,
        pool_recycle=1800,
    )


engine: AsyncEngine = build_engine(settings.database_url, echo=settings.database_echo)

# Session factory - creates new database sessions
async_session_maker = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,  # Objects remain accessible after commit
)

_using_fallback = False


# Base class for all our models
class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncIterator[AsyncSession]:
    """
    Dependency injection for FastAPI routes.
    Yields a database session and ensures cleanup.
    """
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


def use_engine(new_engine: AsyncEngine, fallback: bool = False) -> None:
    """Point the module engine and session factory at ``new_engine``."""
    global engine, _using_fallback
    engine = new_engine
    async_session_maker.configure(bind=new_engine)
    _using_fallback = fallback


async def _create_tables(target: AsyncEngine) -> None:
    # models must be imported so their tables are registered on Base.metadata
    import canteen.models  # noqa: F401

    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db() -> None:
    """
    Create all tables, falling back to ``database_fallback_url`` when the
    primary database is unreachable. Called once at application startup.
    """
    try:
        await _create_tables(engine)
        logger.info(f"✅ Connected to database: {describe_url(str(engine.url))}")
        return
    except (OSError, SQLAlchemyError) as e:
        if not settings.database_fallback_url:
            logger.error(f"❌ Database connection failed: {e}")
            raise
        logger.warning(f"⚠️ Primary database unavailable ({e.__class__.__name__}: {e})")

    logger.warning(f"⚠️ Falling back to {describe_url(settings.database_fallback_url)}")
    await engine.dispose()
    fallback = build_engine(settings.database_fallback_url, echo=settings.database_echo)
    try:
        await _create_tables(fallback)
    except (OSError, SQLAlchemyError) as e:
        await fallback.dispose()
        raise RuntimeError("Both primary and fallback database connections failed") from e

    use_engine(fallback, fallback=True)
    logger.info("💡 Data will not persist between restarts (using fallback database)")


async def dispose_db() -> None:
    await engine.dispose()


async def ping_db(session: AsyncSession) -> Optional[str]:
    """Return None when the database answers, else the error text."""
    try:
        await session.execute(text("SELECT 1"))
        return None
    except SQLAlchemyError as e:
        return str(e)


def is_using_fallback() -> bool:
    return _using_fallback


def describe_url(url: str) -> str:
    """Hide credentials before logging a connection URL."""
    if "@" in url and "://" in url:
        scheme, rest = url.split("://", 1)
        return f"{scheme}://***:***@{rest.split('@', 1)[1]}"
    return url
