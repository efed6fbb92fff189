"""Shared test fixtures.

Each test gets its own SQLite file (aiosqlite) with the schema created from
the ORM metadata. Redis is disabled, so reward broadcasts are skipped unless a
test passes its own client to RewardEngine.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

os.environ.setdefault("ACADEMY_REDIS_URL", "")
os.environ.setdefault("ACADEMY_LOG_FORMAT", "console")
os.environ.setdefault("ACADEMY_SERVICE_TOKEN", "test-service-token")

from academy.config import get_settings  # noqa: E402
from academy.database import close_db, get_engine, get_session, init_db  # noqa: E402
from academy.db import models  # noqa: E402, F401
from academy.db.base import Base  # noqa: E402
from academy.main import create_app  # noqa: E402

SERVICE_TOKEN = "test-service-token"


@pytest_asyncio.fixture
async def database(tmp_path, monkeypatch) -> AsyncGenerator[str, None]:
    """Fresh SQLite database with all gamification tables."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'academy_test.db'}"
    monkeypatch.setenv("ACADEMY_DATABASE_URL", url)
    monkeypatch.setenv("ACADEMY_SERVICE_TOKEN", SERVICE_TOKEN)
    get_settings.cache_clear()

    await init_db(url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield url

    await close_db()
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def db_session(database: str) -> AsyncGenerator[AsyncSession, None]:
    """Get a direct database session for service calls and assertions."""
    async for session in get_session():
        yield session
        break


@pytest_asyncio.fixture
async def client(database: str) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against a fresh app bound to the test database."""
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def service_headers() -> dict[str, str]:
    return {"X-Service-Token": SERVICE_TOKEN}
