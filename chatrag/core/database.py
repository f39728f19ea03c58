"""Async database engine and session factory.

SQLite (via aiosqlite) is the default store; any async SQLAlchemy URL
works, e.g. ``postgresql+asyncpg://`` with the ``postgres`` extra.
"""

import logging
from collections.abc import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from chatrag.core.config import get_settings

logger = logging.getLogger(__name__)


def build_engine(database_url: str) -> AsyncEngine:
    if make_url(database_url).get_backend_name() != "sqlite":
        return create_async_engine(
            database_url,
            echo=False,
            pool_size=20,
            max_overflow=10,
            pool_pre_ping=True,
        )

    eng = create_async_engine(database_url, echo=False)

    @event.listens_for(eng.sync_engine, "connect")
    def _sqlite_pragmas(dbapi_conn, connection_record):
        # Readers keep working while an ingest commits its chunks
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    return eng


engine = build_engine(get_settings().database_url)

async_session_factory = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an async DB session."""
    async with async_session_factory() as session:
        yield session


async def init_db() -> None:
    """Create the documents, chunks, settings and chats tables if missing."""
    import chatrag.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("Database ready at %s", engine.url.render_as_string(hide_password=True))
