"""Test doubles for the enrichment worker.

These stand in for the two external services the worker talks to besides
HTTP: the generative model and the record store.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

TEST_TABLE = "Summons-test"

MODEL_REPLY = json.dumps(
    {
        "license_plate_ocr": "ABC1234",
        "id_number": "2025-030846",
        "vehicle_type_ocr": "Box Truck",
        "prior_offense_status": "first offense",
        "violation_narrative": (
            "Respondent's vehicle was observed idling for more than three "
            "minutes while parked in front of 123 Main Street with no driver "
            "present and the refrigeration unit running."
        ),
        "idling_duration_ocr": "15 minutes",
        "critical_flags_ocr": ["no driver present", "refrigeration unit"],
        "name_on_summons_ocr": "ACME DELIVERY LLC",
    }
)


@dataclass
class ModelCall:
    prompt: str
    document: bytes
    mime_type: str


class FakeModelClient:
    """Returns a canned reply and records every call."""

    def __init__(self, reply: str = MODEL_REPLY) -> None:
        self.reply = reply
        self.calls: list[ModelCall] = []

    async def generate(
        self, prompt: str, document: bytes, mime_type: str
    ) -> str:
        self.calls.append(ModelCall(prompt, document, mime_type))
        return self.reply


class TimedModelClient(FakeModelClient):
    """FakeModelClient that notes the loop time of its first call."""

    def __init__(
        self, loop: asyncio.AbstractEventLoop, reply: str = MODEL_REPLY
    ) -> None:
        super().__init__(reply)
        self.loop = loop
        self.called_at: float | None = None

    async def generate(
        self, prompt: str, document: bytes, mime_type: str
    ) -> str:
        if self.called_at is None:
            self.called_at = self.loop.time()
        return await super().generate(prompt, document, mime_type)


class FailingModelClient:
    """Raises on every call, like an exhausted quota."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error or RuntimeError("429 Resource has been exhausted")
        self.calls = 0

    async def generate(
        self, prompt: str, document: bytes, mime_type: str
    ) -> str:
        self.calls += 1
        raise self.error


@dataclass
class InMemoryRecordStore:
    """Dict-backed RecordStore that records update calls.

    Set ``fail_reads`` or ``fail_updates`` to simulate an unavailable
    store.
    """

    items: dict[tuple[str, str], dict[str, Any]] = field(default_factory=dict)
    updates: list[tuple[str, str, dict[str, Any]]] = field(
        default_factory=list
    )
    fail_reads: bool = False
    fail_updates: bool = False

    def seed(self, table_name: str, item: Mapping[str, Any]) -> None:
        self.items[(table_name, item["id"])] = dict(item)

    async def get_record(
        self, table_name: str, record_id: str
    ) -> dict[str, Any] | None:
        if self.fail_reads:
            raise ConnectionError("record store unreachable")
        item = self.items.get((table_name, record_id))
        return dict(item) if item is not None else None

    async def update_record(
        self,
        table_name: str,
        record_id: str,
        attributes: Mapping[str, Any],
    ) -> None:
        self.updates.append((table_name, record_id, dict(attributes)))
        if self.fail_updates:
            raise ConnectionError("ProvisionedThroughputExceededException")
        self.items.setdefault((table_name, record_id), {}).update(attributes)


def summons_item(
    record_id: str = "summons-1", **fields: Any
) -> dict[str, Any]:
    """A stored summons record with no OCR data yet."""
    item: dict[str, Any] = {
        "id": record_id,
        "summons_number": "000954041L",
        "status": "SCHEDULED",
        "activity_log": [
            {
                "date": "2025-01-02T09:00:00.000Z",
                "type": "CREATED",
                "description": "Summons discovered",
                "old_value": None,
                "new_value": None,
            }
        ],
    }
    item.update(fields)
    return item
