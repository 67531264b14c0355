"""
Pytest configuration and fixtures for the SIM device platform tests.

Provides:
- Async SQLite in-memory database with foreign keys enforced
- A session for driving services directly
- FastAPI app with get_db / get_provider_adapters overrides
- AsyncClient for testing async endpoints
"""

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from adapters import get_provider_adapters
from config import settings
from database import Base, configure_sqlite, get_db
from main import app


@pytest_asyncio.fixture
async def session_factory():
    """Fresh in-memory database per test; every session shares one connection."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )
    configure_sqlite(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def provider_adapters():
    """Adapters served to the API; tests append to this list."""
    return []


@pytest.fixture(autouse=True)
def reports_dir(tmp_path, monkeypatch):
    path = tmp_path / "reports"
    path.mkdir()
    monkeypatch.setattr(settings, "REPORTS_DIR", str(path))
    return path


@pytest_asyncio.fixture
async def async_client(session_factory, provider_adapters):
    """
    AsyncClient pointing at the FastAPI app backed by the test database.

    Yields:
        httpx.AsyncClient: Async HTTP client for making requests to the app.
    """
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_provider_adapters] = lambda: provider_adapters

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
