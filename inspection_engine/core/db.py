"""
Database engine and session factory

Repositories receive an ``async_sessionmaker`` and open one short transaction
per call, so there is no request-scoped session dependency. The module-level
engine is lazily built from settings; tests build their own via
``build_session_maker``.
"""

from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from inspection_engine.core.config import settings

_engine: AsyncEngine | None = None
_session_maker: async_sessionmaker[AsyncSession] | None = None


def _engine_options(url: str) -> dict[str, Any]:
    options: dict[str, Any] = {"echo": settings.database_echo, "pool_pre_ping": True}
    # SQLite uses a static/null pool; sizing arguments are rejected there
    if not url.startswith("sqlite"):
        options.update(
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
        )
    return options


def get_async_engine() -> AsyncEngine:
    global _engine

    if _engine is None:
        url = settings.async_database_url
        _engine = create_async_engine(url, **_engine_options(url))
    return _engine


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False: rows are read after the session closes
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    global _session_maker

    if _session_maker is None:
        _session_maker = build_session_maker(get_async_engine())
    return _session_maker


async def init_db() -> None:
    """
    Create every table registered on ``Base.metadata``.

    Development convenience; deployed databases are migrated with Alembic.
    """
    # models import core.sqlalchemy_types; resolved here to keep core import-free of models
    from inspection_engine.models import Base

    async with get_async_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose the pool on shutdown."""
    global _engine, _session_maker

    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_maker = None
