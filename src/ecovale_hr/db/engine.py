"""Async SQLAlchemy engine and session factory.

Learn: SQLAlchemy 2.0 async mode — create_async_engine for connection pooling,
AsyncSession for per-request database access, dependency injection via FastAPI.
PostgreSQL (asyncpg) in production, SQLite (aiosqlite) for local runs and tests.
"""

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ecovale_hr.config import Settings, settings


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an engine; pool sizing only applies to server databases."""
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=echo)
    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=5,
        max_overflow=15,
        pool_pre_ping=True,
    )


engine = build_engine(settings.database_url, echo=settings.debug)


def session_factory_for(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


# Session factory — each request gets its own session.
async_session_factory = session_factory_for(engine)


def engine_for(config: Settings) -> AsyncEngine:
    """The process-wide engine, or a dedicated one if `config` names another database."""
    if config.database_url == settings.database_url:
        return engine
    return build_engine(config.database_url, echo=config.debug)


async def init_db(bind: AsyncEngine = engine) -> None:
    """Create tables that don't exist yet."""
    from ecovale_hr.db.models import Base

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db(request: Request) -> AsyncSession:
    """FastAPI dependency — yields a session per request, auto-closes.

    Sessions come from the factory the app was built with (see create_app).
    """
    factory = getattr(request.app.state, "session_factory", async_session_factory)
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()
