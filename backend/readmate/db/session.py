"""
Database engine and session management.

One async engine per process. Services never hold a session across a
provider call: the persistence gateway opens a short transaction per
operation via `session_scope()`, so a slow LLM request cannot pin a
connection or hold a write lock.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from readmate.core.config import settings
from readmate.models.documents import Base

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def enforce_sqlite_foreign_keys(async_engine: AsyncEngine) -> None:
    """SQLite ignores FOREIGN KEY constraints unless each connection opts in."""
    if async_engine.dialect.name != "sqlite":
        return

    @event.listens_for(async_engine.sync_engine, "connect")
    def _set_pragma(dbapi_connection, _connection_record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine; SQLite URLs get their parent directory created."""
    if database_url.startswith("sqlite") and ":///" in database_url:
        db_path = database_url.split(":///", 1)[1]
        if db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    async_engine = create_async_engine(
        database_url,
        pool_pre_ping=True,          # detect stale connections before use
        echo=echo,                   # log SQL in dev; disable in prod
    )
    enforce_sqlite_foreign_keys(async_engine)
    return async_engine


engine: AsyncEngine = build_engine(settings.database_url, echo=settings.db_echo_sql)

# Session factory — expire_on_commit=False keeps ORM objects usable after commit
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


# ---------------------------------------------------------------------------
# Schema bootstrap
# ---------------------------------------------------------------------------

async def init_models(bind: AsyncEngine | None = None) -> None:
    """Create all tables that do not exist yet (idempotent)."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ready")


# ---------------------------------------------------------------------------
# Session helpers
# ---------------------------------------------------------------------------

@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Transactional scope: commits on normal exit, rolls back on any exception.

    Usage:
        async with session_scope() as db:
            db.add(obj)
    """
    async with (factory or AsyncSessionLocal)() as session:
        async with session.begin():
            yield session


# ---------------------------------------------------------------------------
# Health check helper
# ---------------------------------------------------------------------------

async def check_db_health(bind: AsyncEngine | None = None) -> dict:
    """Ping the database; used by the /ready endpoint."""
    try:
        async with (bind or engine).connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception as exc:
        logger.error("DB health check failed: %s", exc)
        return {"status": "error", "detail": str(exc)}
