"""SQLite-backed implementation of the record store contract."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker
from typing_extensions import Self

from summons_enrichment.store.database import init_database
from summons_enrichment.store.models import RecordItem

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)


class RecordNotFoundError(LookupError):
    """Raised when updating a record that does not exist."""

    def __init__(self, table_name: str, record_id: str) -> None:
        self.table_name = table_name
        self.record_id = record_id
        super().__init__(f"No record {record_id!r} in table {table_name!r}")


class SQLRecordStore:
    """Keyed record store on SQLite.

    Reads return the whole item as a dict. Updates merge the given
    attributes into the stored item inside one transaction, so concurrent
    writers of other attributes are not clobbered.

    Example::

        async with SQLRecordStore.open(db_path) as store:
            await store.put_record("Summons-dev", {"id": "abc", ...})
            item = await store.get_record("Summons-dev", "abc")
            await store.update_record("Summons-dev", "abc", {"lag_days": 4})
    """

    def __init__(
        self,
        engine: AsyncEngine,
        session_factory: async_sessionmaker,
    ) -> None:
        """Initialize with an engine and session factory.

        Args:
            engine: An async SQLAlchemy engine.
            session_factory: An async session factory bound to the engine.
        """
        self._engine = engine
        self._session_factory = session_factory
        self._lock = asyncio.Lock()

    @classmethod
    @asynccontextmanager
    async def open(cls, db_path: Path) -> AsyncIterator[Self]:
        """Open a database and create a store.

        Args:
            db_path: Path to the SQLite database file.

        Yields:
            SQLRecordStore instance.
        """
        engine, session_factory = await init_database(db_path)
        try:
            yield cls(engine, session_factory)
        finally:
            await engine.dispose()

    @property
    def engine(self) -> AsyncEngine:
        """Get the underlying async engine."""
        return self._engine

    async def get_record(
        self, table_name: str, record_id: str
    ) -> dict[str, Any] | None:
        """Fetch a record by id.

        Returns:
            The stored item, or None if it does not exist.
        """
        async with self._session_factory() as session:
            result = await session.execute(
                select(RecordItem).where(
                    RecordItem.table_name == table_name,
                    RecordItem.record_id == record_id,
                )
            )
            row = result.scalar_one_or_none()
            if row is None:
                return None
            return json.loads(row.item_json)

    async def put_record(
        self, table_name: str, item: Mapping[str, Any]
    ) -> None:
        """Insert or replace a whole record. The item must carry an ``id``."""
        record_id = item.get("id")
        if not record_id:
            raise ValueError("Record item must have a non-empty 'id'")

        async with self._lock, self._session_factory() as session:
            row = await session.get(RecordItem, (table_name, str(record_id)))
            if row is None:
                row = RecordItem(
                    table_name=table_name, record_id=str(record_id)
                )
            row.item_json = json.dumps(dict(item))
            row.modified_at = datetime.now(timezone.utc).isoformat()
            session.add(row)
            await session.commit()

    async def update_record(
        self,
        table_name: str,
        record_id: str,
        attributes: Mapping[str, Any],
    ) -> None:
        """Set the given attributes on an existing record.

        Attributes not named are left untouched.

        Raises:
            RecordNotFoundError: If the record does not exist.
        """
        async with self._lock, self._session_factory() as session:
            row = await session.get(RecordItem, (table_name, record_id))
            if row is None:
                raise RecordNotFoundError(table_name, record_id)

            item = json.loads(row.item_json)
            item.update(attributes)
            row.item_json = json.dumps(item)
            row.modified_at = datetime.now(timezone.utc).isoformat()
            session.add(row)
            await session.commit()

        logger.debug(
            f"Updated {table_name}/{record_id}: {', '.join(attributes)}"
        )

    async def list_record_ids(self, table_name: str) -> list[str]:
        """List the ids stored in a table, sorted."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(RecordItem.record_id)
                .where(RecordItem.table_name == table_name)
                .order_by(RecordItem.record_id)
            )
            return [row[0] for row in result.all()]
