"""Pytest configuration and shared fixtures.

Organization:
    - Database Fixtures: async SQLite engine and session
    - Settings Fixtures: settings cache isolation
    - Tree Fixtures: one mutation engine per test model

Tree models and tree-building helpers live in tests/fixtures.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine

from pathtree.core.database.base import Base
from pathtree.core.database.hierarchy import TreeMutationEngine
from pathtree.core.settings import clear_settings_cache
from tests.fixtures import Category, Region, Tag

# Deterministic defaults regardless of the developer's environment
os.environ.setdefault("TREE_SIGN_LENGTH", "4")
os.environ.setdefault("TREE_AUTOCOMMIT", "true")
os.environ.setdefault("TREE_SOFT_DELETE", "true")


# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Reload cached settings around every test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """Create async SQLite engine with every test table created.

    Yields:
        SQLAlchemy async engine connected to in-memory SQLite.
    """
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def session(async_engine: AsyncEngine) -> AsyncGenerator[AsyncSession]:
    """Create async database session for testing.

    Attributes are not expired on commit so tree nodes can be inspected
    between engine calls without lazy loads.

    Yields:
        Async database session for test operations.
    """
    async with AsyncSession(async_engine, expire_on_commit=False) as session:
        yield session


# ============================================================================
# Tree Fixtures
# ============================================================================


@pytest.fixture
def categories(session: AsyncSession) -> TreeMutationEngine[Category]:
    """Engine over the Category tree (derived order/level, soft delete)."""
    return TreeMutationEngine.for_session(session, Category)


@pytest.fixture
def regions(session: AsyncSession) -> TreeMutationEngine[Region]:
    """Engine over tenant "acme" of the Region tree (stored order/level)."""
    return TreeMutationEngine.for_session(session, Region, isolation={"tenant_id": "acme"})


@pytest.fixture
def tags(session: AsyncSession) -> TreeMutationEngine[Tag]:
    """Engine over the Tag tree (2-digit segments)."""
    return TreeMutationEngine.for_session(session, Tag)
