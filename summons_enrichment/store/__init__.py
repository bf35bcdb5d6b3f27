"""Record store contract and its SQLite implementation.

The worker needs exactly two operations from the record store: fetch a
record by id, and set a list of attributes on it. Anything providing
those two coroutines can be passed to the worker.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol

from summons_enrichment.store.sql_store import (
    RecordNotFoundError,
    SQLRecordStore,
)


class RecordStore(Protocol):
    """Keyed record store used by the reconciler."""

    async def get_record(
        self, table_name: str, record_id: str
    ) -> dict[str, Any] | None: ...

    async def update_record(
        self,
        table_name: str,
        record_id: str,
        attributes: Mapping[str, Any],
    ) -> None: ...


__all__ = [
    "RecordNotFoundError",
    "RecordStore",
    "SQLRecordStore",
]
