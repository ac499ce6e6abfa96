import os
import sys
from datetime import datetime, timezone

# Ensure Python path includes project root for `import repairhub`
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

# Test environment: in-memory SQLite, fixed JWT secret
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from repairhub.core.gamification.service import AchievementsService
from repairhub.db.base import async_session_context, create_db_and_tables, drop_db_and_tables, engine

FIXED_NOW = datetime(2026, 3, 10, 9, 30, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def setup_db():
    await create_db_and_tables()
    yield
    await drop_db_and_tables()
    # drop the pooled connection so the next test's event loop opens its own
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(setup_db) -> AsyncSession:
    async with async_session_context() as session:
        yield session


@pytest_asyncio.fixture
async def service(db_session: AsyncSession) -> AchievementsService:
    return AchievementsService(db_session, clock=lambda: FIXED_NOW, timezone_name="UTC")
