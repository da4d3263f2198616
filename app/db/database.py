"""
db/database.py

Async SQLAlchemy setup. PostgreSQL (asyncpg) in production, SQLite
(aiosqlite) for local development and tests.

Session lifecycle:
- Each HTTP request gets its own AsyncSession via the `get_db` dependency.
- Services commit their own unit of work (repositories.commit_session)
  before the route builds its response. The dependency only rolls back on
  an exception and closes the session.
"""

import logging
from typing import Any, AsyncGenerator, Dict

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from app.core.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


def _engine_options(url: str) -> Dict[str, Any]:
    if url.startswith("sqlite"):
        options: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        # An in-memory database only lives as long as its single connection.
        if ":memory:" in url or url.endswith("://"):
            options["poolclass"] = StaticPool
        return options
    return {
        "pool_pre_ping": True,
        "pool_size": 10,
        "max_overflow": 20,
        "pool_recycle": 3600,
    }


# ─── Engine ───────────────────────────────────────────────────────────────────

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    **_engine_options(settings.database_url),
)

# ─── Session Factory ──────────────────────────────────────────────────────────
# expire_on_commit=False keeps returned rows readable after the request commits.

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
    autocommit=False,
)


# ─── Declarative Base ─────────────────────────────────────────────────────────

class Base(DeclarativeBase):
    pass


# ─── FastAPI Dependency ───────────────────────────────────────────────────────

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped database session dependency. Uncommitted work is
    discarded when the request ends.

    Usage in a route:
        async def my_endpoint(db: AsyncSession = Depends(get_db)):
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ─── Schema Initialization ────────────────────────────────────────────────────

async def init_db() -> None:
    """
    Creates all tables on startup. Production deployments should run
    Alembic migrations instead of create_all().
    """
    from app.db import models  # noqa: F401  registers models on Base.metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables verified / created.")


async def drop_db() -> None:
    """Drops every table. Used by the test suite between cases."""
    from app.db import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
