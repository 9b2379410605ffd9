"""Shared test fixtures for HubSync."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from hubsync.config import Settings
from hubsync.main import configure_storage, create_app

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from pathlib import Path

TEST_SYNC_API_KEY = "test-sync-api-key-with-enough-entropy"


@asynccontextmanager
async def create_test_client(settings: Settings) -> AsyncGenerator[AsyncClient]:
    """Create an HTTP test client with a fully initialized app.

    Manually performs the storage setup of the application lifespan because
    ASGITransport does not trigger it.
    """
    app = create_app(settings)
    configure_storage(app)

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    if app.state.engine is not None:
        await app.state.engine.dispose()


def auth_headers(token: str = TEST_SYNC_API_KEY) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Create test settings backed by a temporary SQLite database."""
    db_path = tmp_path / "test.db"
    return Settings(
        _env_file=None,
        sync_api_key=TEST_SYNC_API_KEY,
        debug=True,
        database_url=f"sqlite+aiosqlite:///{db_path}",
    )


@pytest.fixture
async def client(test_settings: Settings) -> AsyncGenerator[AsyncClient]:
    """Create test HTTP client."""
    async with create_test_client(test_settings) as ac:
        yield ac


@pytest.fixture
async def db_engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine]:
    """Create a test database engine."""
    engine = create_async_engine(
        test_settings.database_url,
        echo=False,
    )
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to the test engine."""
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session
