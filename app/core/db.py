# app/core/db.py
"""
Database configuration and session management (async SQLAlchemy 2.x).

- Lazy engine creation (no connection at import time).
- sqlite+aiosqlite by default; postgres URLs are normalised to asyncpg in settings.
- FastAPI dependency get_db(), background-job helper session_scope().
- init_db_async() / close_db_async() / health_check_db_async().
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings
from app.models.base import Base

logger = logging.getLogger(__name__)

_ASYNC_ENGINE: Optional[AsyncEngine] = None
_ASYNC_SESSION_MAKER: Optional[async_sessionmaker[AsyncSession]] = None


def _get_async_engine() -> AsyncEngine:
    """Create and cache the async engine lazily."""
    global _ASYNC_ENGINE, _ASYNC_SESSION_MAKER
    if _ASYNC_ENGINE is not None:
        return _ASYNC_ENGINE

    _ASYNC_ENGINE = create_async_engine(settings.DATABASE_URL, **settings.sqlalchemy_engine_options())
    _ASYNC_SESSION_MAKER = async_sessionmaker(
        bind=_ASYNC_ENGINE, expire_on_commit=False, class_=AsyncSession, autoflush=False
    )
    logger.info("Async engine created for %s", _ASYNC_ENGINE.url.render_as_string(hide_password=True))
    return _ASYNC_ENGINE


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    _get_async_engine()
    assert _ASYNC_SESSION_MAKER is not None
    return _ASYNC_SESSION_MAKER


async def get_db() -> AsyncIterator[AsyncSession]:
    """
    FastAPI dependency.
    The session is opened per request and always closed; the connection is taken here,
    not at import time.
    """
    session = get_session_maker()()
    try:
        yield session
    finally:
        await session.close()


@asynccontextmanager
async def session_scope(
    maker: Optional[async_sessionmaker[AsyncSession]] = None,
) -> AsyncIterator[AsyncSession]:
    """Session for background jobs: commit on success, rollback on error."""
    session = (maker or get_session_maker())()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def init_db_async(drop_all: bool = False) -> None:
    # models must be imported so their tables are registered on Base.metadata
    import app.models  # noqa: F401

    eng = _get_async_engine()
    async with eng.begin() as conn:
        if drop_all:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


async def close_db_async() -> None:
    global _ASYNC_ENGINE, _ASYNC_SESSION_MAKER
    if _ASYNC_ENGINE is not None:
        await _ASYNC_ENGINE.dispose()
    _ASYNC_ENGINE = None
    _ASYNC_SESSION_MAKER = None


async def health_check_db_async() -> dict:
    try:
        eng = _get_async_engine()
        async with eng.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"ok": True, "error": None}
    except Exception as e:
        logger.error("Async DB health check failed: %s", e)
        return {"ok": False, "error": str(e)}


__all__ = [
    "Base",
    "get_db",
    "get_session_maker",
    "session_scope",
    "init_db_async",
    "close_db_async",
    "health_check_db_async",
]
