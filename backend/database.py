"""
Database connection management for the rating show.

Provides an async SQLAlchemy engine and session factory. Defaults to a local
SQLite file for development; set DATABASE_URL for PostgreSQL.
"""

import logging
import os
from functools import wraps

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from errors import ControlActionError

logger = logging.getLogger(__name__)

DATABASE_URL = os.environ.get(
    "DATABASE_URL",
    "sqlite+aiosqlite:///./rating_show_dev.db",
)

if DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False}
else:
    connect_args = {}

engine = create_async_engine(
    DATABASE_URL,
    echo=False,
    connect_args=connect_args,
)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_session() -> AsyncSession:
    """Dependency that yields an async database session."""
    async with async_session() as session:
        yield session


async def init_db() -> None:
    """Create all tables. Used at application startup."""
    from models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose of the engine connection pool."""
    await engine.dispose()


def dialect_insert(session: AsyncSession, model):
    """
    Return an INSERT construct that supports ``on_conflict_do_update`` for the
    dialect the session is bound to (SQLite or PostgreSQL).
    """
    if session.get_bind().dialect.name == "postgresql":
        return postgresql.insert(model)
    return sqlite.insert(model)


def transactional(func):
    """
    Commit the session when the wrapped coroutine returns, roll back and
    re-raise when it fails.

    The wrapped coroutine must take ``session: AsyncSession`` as its first
    argument (or as the ``session`` keyword) and must not commit itself.
    """

    @wraps(func)
    async def wrapper(*args, **kwargs):
        session = kwargs.get("session")
        if session is None and args and isinstance(args[0], AsyncSession):
            session = args[0]
        if session is None:
            raise ValueError(
                f"@transactional requires 'session: AsyncSession' as first argument "
                f"of {func.__name__}"
            )

        try:
            result = await func(*args, **kwargs)
            await session.commit()
            return result
        except ControlActionError:
            await session.rollback()
            raise
        except Exception as e:
            logger.error("Transaction failed in %s: %s", func.__name__, e, exc_info=True)
            await session.rollback()
            raise

    return wrapper
