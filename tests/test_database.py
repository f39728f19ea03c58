"""Tests for engine construction and table creation."""

from sqlalchemy import inspect, text
from sqlmodel import SQLModel

import chatrag.models  # noqa: F401
from chatrag.core.database import build_engine


async def test_sqlite_engine_creates_all_tables(tmp_path):
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'rag.db'}")
    try:
        async with eng.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
            tables = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
            mode = (await conn.execute(text("PRAGMA journal_mode"))).scalar_one()
    finally:
        await eng.dispose()

    assert {"documents", "document_chunks", "rag_settings", "chats"} <= set(tables)
    assert mode.lower() == "wal"
