"""
Shared fixtures: a fresh SQLite database file per test.

A file (rather than :memory:) lets several sessions, such as the request
session and the prediction hooks' own sessions, see each other's commits.
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from models import Base


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Create tables in a throwaway database and yield its session factory."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'show.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as sess:
        yield sess
