"""Shared fixtures for the Servicarr test suite."""

import os

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from servicarr.server.core.config import Settings
from servicarr.server.core.security import SecretEncryption, reset_encryption
from servicarr.server.db.init import build_engine, build_session_factory, init_db

# Test encryption key
TEST_ENCRYPTION_KEY = SecretEncryption.generate_key()
os.environ["ENCRYPTION_KEY"] = TEST_ENCRYPTION_KEY


@pytest.fixture(autouse=True)
def encryption_key(monkeypatch: pytest.MonkeyPatch):
    """Give every test the same key and a fresh shared encryption instance."""
    monkeypatch.setenv("ENCRYPTION_KEY", TEST_ENCRYPTION_KEY)
    reset_encryption()
    yield TEST_ENCRYPTION_KEY
    reset_encryption()


@pytest.fixture
async def session_factory(tmp_path) -> async_sessionmaker[AsyncSession]:
    """Session factory over a fresh file-backed SQLite database.

    Yields:
        async_sessionmaker bound to a database with all tables created.
    """
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(engine)

    yield build_session_factory(engine)

    await engine.dispose()


@pytest.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncSession:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def settings() -> Settings:
    """Settings with defaults, ignoring any local .env file."""
    return Settings(_env_file=None, status_page_url="", enable_scheduler=False)
