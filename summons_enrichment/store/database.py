"""SQLite engine setup for the record store."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

# Registers the record table on SQLModel.metadata.
from summons_enrichment.store.models import RecordItem  # noqa: F401

SQLITE_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA busy_timeout=5000",
)


def _apply_pragmas(dbapi_conn: Any, connection_record: Any) -> None:
    cursor = dbapi_conn.cursor()
    for pragma in SQLITE_PRAGMAS:
        cursor.execute(pragma)
    cursor.close()


async def init_database(
    db_path: Path,
    echo: bool = False,
) -> tuple[AsyncEngine, async_sessionmaker]:
    """Open the record database, creating its parent directory and schema.

    Args:
        db_path: SQLite file to open; created if missing.
        echo: Log every SQL statement.

    Returns:
        Tuple of (engine, session_factory).
    """
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{db_path}",
        echo=echo,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(engine.sync_engine, "connect", _apply_pragmas)

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    return engine, async_sessionmaker(engine, expire_on_commit=False)
