"""
Shared fixtures for DocMaker backend tests.

Tests run against a throwaway SQLite file (aiosqlite) instead of PostgreSQL;
the schema is created per test with create_all and dropped afterwards.
AI providers are never called: API keys are blanked and individual tests
monkeypatch the client methods they exercise.
"""
from __future__ import annotations

import os
import tempfile
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

# Override settings *before* any app module is imported, so that
# settings.DATABASE_URL and the global engine point at the test DB.
TEST_DATABASE_URL = os.environ.get(
    "TEST_DATABASE_URL",
    "sqlite+aiosqlite:///./test_docmaker.db",
)
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="docmaker-test-")
os.environ["GEMINI_API_KEY"] = ""
os.environ["OPENAI_API_KEY"] = ""
os.environ["SCRAPE_CREATORS_TOKEN"] = ""
os.environ["DEV_MODE"] = "false"
os.environ["ADMIN_EMAILS"] = "admin@example.com"

from docmaker.database import Base, get_db  # noqa: E402
from docmaker.main import app  # noqa: E402
from docmaker.services import admin_config  # noqa: E402
from docmaker.services.gemini_client import GeminiClient  # noqa: E402


# ---------------------------------------------------------------------------
# Per-test fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolate_providers(monkeypatch):
    """No retry back-off and a cold config cache in every test."""
    monkeypatch.setattr(GeminiClient, "RETRY_DELAY", 0.0)
    admin_config.clear_cache()
    yield
    admin_config.clear_cache()


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Provide a DB session for each test on a freshly created schema.
    All tables are dropped afterwards so each test starts with a clean slate.
    """
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    httpx AsyncClient wired to the FastAPI app with the DB dependency
    overridden to use the per-test session.
    """

    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

AUTH_HEADERS = {
    "X-User-Id": "test-user-1",
    "X-User-Email": "test1@example.com",
    "X-User-Name": "Test User 1",
}

AUTH_HEADERS_USER2 = {
    "X-User-Id": "test-user-2",
    "X-User-Email": "test2@example.com",
    "X-User-Name": "Test User 2",
}

ADMIN_HEADERS = {
    "X-User-Id": "admin-user",
    "X-User-Email": "admin@example.com",
    "X-User-Name": "Admin",
}


async def create_document(client: AsyncClient, data=None, headers=None, title: str = "") -> str:
    """Create a document through the API and return its id."""
    resp = await client.post(
        "/api/documents",
        json={"type": "quote", "title": title, "data": data or {}},
        headers=headers or AUTH_HEADERS,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["id"]
