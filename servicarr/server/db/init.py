"""Engine construction, session factories and schema creation."""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from servicarr.server.core.config import get_settings
from servicarr.server.models.base import Base

SQLITE_BUSY_TIMEOUT_SECONDS = 30


def build_engine(database_url: str, echo: bool = False, pooled: bool = True) -> AsyncEngine:
    """Create an async engine for the given URL.

    SQLite writers wait on the database lock instead of failing at once.
    ``pooled=False`` opens a fresh connection per session, which is needed
    when sessions are used from more than one event loop.
    """
    connect_args: dict[str, Any] = {}
    if database_url.startswith("sqlite"):
        connect_args["timeout"] = SQLITE_BUSY_TIMEOUT_SECONDS

    options: dict[str, Any] = {"echo": echo, "connect_args": connect_args}
    if not pooled:
        options["poolclass"] = NullPool
    return create_async_engine(database_url, **options)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


settings = get_settings()
engine = build_engine(settings.database_url, echo=settings.database_echo)
AsyncSessionLocal = build_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session dependency.

    Commits when the request handler returns and rolls back if it raises.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(bind: AsyncEngine | None = None) -> None:
    """Create any missing tables on ``bind`` (the application engine by default)."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
