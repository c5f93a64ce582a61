"""
NoteKeeper Backend — Test Configuration (conftest.py)
======================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Each test gets its own SQLite file under tmp_path with all tables
       created, a session factory bound to it, and (for endpoint tests) a
       fresh application whose session dependency and notes cache point at
       that database.

Fixture Hierarchy (all function-scoped):
    engine → session_factory ─┬→ db_session
                              ├→ note_cache
                              └→ app → client
    mock_db_session: AsyncMock session for pure unit tests
    register_user:   registers + logs in through the API, returns headers
"""

import os
import tempfile

# Settings are read at import time; configure before importing notekeeper
os.environ["DATABASE_URL"] = (
    "sqlite+aiosqlite:///" + os.path.join(tempfile.mkdtemp(prefix="notekeeper_test_"), "app.db")
)
os.environ["JWT_SECRET_KEY"] = "test-signing-key-not-for-production"
os.environ["CACHE_INVALIDATION"] = "global"
os.environ["LOG_LEVEL"] = "WARNING"

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from notekeeper.database import build_engine, build_session_factory, get_db_session, init_db
from notekeeper.services.note_cache import NoteCache
from notekeeper.services.token_service import TokenService

TEST_PASSWORD = "correct-horse-battery"


# ══════════════════════════════════════════════════════════════════════════
# Database Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def engine(tmp_path):
    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'notekeeper.db'}")
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_db_session():
    """
    AsyncMock standing in for AsyncSession.

    Usage:
        mock_db_session.execute.return_value.scalar_one_or_none.return_value = note
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


# ══════════════════════════════════════════════════════════════════════════
# Service Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def note_cache(session_factory):
    return NoteCache(session_factory, ttl=timedelta(hours=24), policy="global")


@pytest.fixture
def token_service():
    return TokenService("unit-test-key", ttl=timedelta(hours=24))


# ══════════════════════════════════════════════════════════════════════════
# API Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def app(session_factory, note_cache):
    """A fresh application wired to the per-test database."""
    from notekeeper.main import create_app

    application = create_app()
    application.state.note_cache = note_cache

    async def override_db_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    application.dependency_overrides[get_db_session] = override_db_session
    return application


@pytest_asyncio.fixture
async def client(app):
    """
    HTTPX AsyncClient talking to the app in-process.

    Usage:
        async def test_health(client):
            response = await client.get("/health")
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client


@pytest.fixture
def register_user(client):
    """
    Factory: register `username` and log in, returning Authorization headers.

    Usage:
        headers = await register_user("alice")
    """

    async def _register(username: str, password: str = TEST_PASSWORD) -> dict:
        response = await client.post(
            "/register",
            json={
                "username": username,
                "password": password,
                "first_name": username.title(),
                "last_name": "Tester",
                "email": f"{username}@notekeeper.io",
            },
        )
        assert response.status_code == 201, response.text
        response = await client.post(
            "/login", json={"username": username, "password": password}
        )
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['token']}"}

    return _register
