"""Database initialization and migrations."""

from __future__ import annotations

import aiosqlite
import structlog

from pitch_ledger.db.models import SCHEMA_SQL

log = structlog.get_logger()


async def init_db(db_path: str) -> aiosqlite.Connection:
    """Create tables if they don't exist and return a connection.

    The connection runs in autocommit mode; multi-statement writes open
    their own explicit transaction through ``Repository.transaction``.
    """
    db = await aiosqlite.connect(db_path, isolation_level=None)
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA foreign_keys = ON")
    if db_path != ":memory:":
        await db.execute("PRAGMA journal_mode = WAL")
    await db.executescript(SCHEMA_SQL)
    log.info("database_initialized", path=db_path)
    return db
