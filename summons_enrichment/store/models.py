"""SQLModel table definitions for the record store.

Records are schemaless items keyed by ``(table_name, record_id)``, mirroring
the keyed document store the web application writes to. Each item is kept
as a JSON object so the worker can update a handful of attributes without
knowing the rest of the record's schema.

Tables:
- record_items: one row per stored record
"""

from __future__ import annotations

import sqlalchemy as sa
from sqlmodel import Field, SQLModel


class RecordItem(SQLModel, table=True):  # type: ignore[call-arg]
    """A stored record and its attributes as JSON."""

    __tablename__ = "record_items"
    __table_args__ = (sa.Index("idx_record_items_table", "table_name"),)

    table_name: str = Field(primary_key=True)
    record_id: str = Field(primary_key=True)
    item_json: str = Field(default="{}")
    created_at: str | None = Field(
        default=None,
        sa_column_kwargs={"server_default": sa.text("CURRENT_TIMESTAMP")},
    )
    modified_at: str | None = None
