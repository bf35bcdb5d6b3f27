"""Eligibility check and merge/commit of extraction results.

The reconciler owns the idempotency contract for a summons record: once a
record holds a violation narrative it is never re-enriched, unless the
caller asked for healing *and* the record still lacks its ID Number or
license plate. OCR calls are metered, and a second pass can be worse than
the first, so the check runs before any extraction starts.

After extraction the reconciler writes everything in one update:

- only fields that were actually extracted in this run;
- the existing activity log plus one OCR_COMPLETE entry;
- the ``updatedAt`` timestamp (and OCR bookkeeping when the PDF was read).

A failed write is fatal for the invocation. An empty merge writes nothing.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from summons_enrichment.common.dates import calculate_lag_days, format_iso
from summons_enrichment.common.exceptions import PersistenceException
from summons_enrichment.data_types import (
    ActivityLogEntry,
    ActivityType,
    DocumentExtraction,
    EligibilityDecision,
    EnrichmentRequest,
    ExistingRecordSnapshot,
    PageExtraction,
)
from summons_enrichment.store import RecordStore

logger = logging.getLogger(__name__)


def decide(
    request: EnrichmentRequest, snapshot: ExistingRecordSnapshot
) -> EligibilityDecision:
    """Apply the immutability check to a record.

    Args:
        request: The normalized trigger.
        snapshot: The record as stored before processing.

    Returns:
        PROCESS for records without a narrative, HEAL for healing requests
        on records missing critical fields, SKIP otherwise.
    """
    if not snapshot.has_narrative:
        return EligibilityDecision.PROCESS

    if not request.is_self_healing:
        logger.info(
            f"Summons {request.summons_number} already has OCR data "
            f"({snapshot.narrative_length} character narrative); skipping",
            extra={"summons_id": request.summons_id, "stage": "eligibility"},
        )
        return EligibilityDecision.SKIP

    missing = snapshot.missing_critical_fields
    if missing:
        logger.info(
            f"Healing summons {request.summons_number}: narrative present "
            f"but missing {', '.join(missing)}",
            extra={
                "summons_id": request.summons_id,
                "stage": "eligibility",
                "missing_fields": missing,
            },
        )
        return EligibilityDecision.HEAL

    logger.info(
        f"Healing requested for summons {request.summons_number} but no "
        "critical fields are missing; skipping",
        extra={"summons_id": request.summons_id, "stage": "eligibility"},
    )
    return EligibilityDecision.SKIP


def build_merged_update(
    request: EnrichmentRequest,
    page: PageExtraction | None,
    document: DocumentExtraction | None,
) -> dict[str, Any]:
    """Collect the fields extracted in this run.

    Fields never attempted, or attempted without result, are left out so
    a partial failure never blanks existing data.

    Args:
        request: The normalized trigger (for the violation date).
        page: Page scrape result, or None if skipped or failed.
        document: OCR result, or None if skipped or failed.

    Returns:
        Mapping of record attribute name to new value.
    """
    merged: dict[str, Any] = {}

    if page is not None and page.video_created_date:
        merged["video_created_date"] = page.video_created_date
        if request.violation_date:
            lag_days = calculate_lag_days(
                request.violation_date, page.video_created_date
            )
            if lag_days is not None:
                merged["lag_days"] = lag_days

    if document is not None:
        merged.update(document.present_fields())

    return merged


def summarize_fields(merged: Mapping[str, Any]) -> list[str]:
    """Names of merged fields that carry a non-empty value."""
    return [
        name
        for name, value in merged.items()
        if value is not None and value != "" and value != []
    ]


def build_activity_entry(
    merged: Mapping[str, Any],
    now: datetime,
    preview_length: int = 100,
) -> ActivityLogEntry:
    """Build the OCR_COMPLETE entry describing one merge.

    Args:
        merged: The merged update.
        now: Timestamp for the entry.
        preview_length: Maximum narrative characters kept in new_value.

    Returns:
        The activity log entry.
    """
    fields = summarize_fields(merged)
    if fields:
        description = f"Document scan completed: {', '.join(fields)}"
    else:
        description = "Document scan completed: no fields found"

    preview = None
    narrative = merged.get("violation_narrative")
    if narrative:
        if len(narrative) > preview_length:
            preview = narrative[:preview_length] + "..."
        else:
            preview = narrative

    return ActivityLogEntry(
        date=format_iso(now),
        type=ActivityType.OCR_COMPLETE,
        description=description,
        old_value=None,
        new_value=preview,
    )


class RecordReconciler:
    """Reads record state and commits merged results.

    Example::

        reconciler = RecordReconciler(store, table_name="Summons-dev")
        snapshot = await reconciler.load_snapshot(request)
        if decide(request, snapshot) is not EligibilityDecision.SKIP:
            ...
            await reconciler.commit(request, snapshot, merged)
    """

    def __init__(
        self,
        store: RecordStore,
        table_name: str,
        preview_length: int = 100,
    ) -> None:
        """Initialize the reconciler.

        Args:
            store: Record store holding summons records.
            table_name: Table the summons records live in.
            preview_length: Narrative characters kept in log entries.
        """
        self.store = store
        self.table_name = table_name
        self.preview_length = preview_length

    async def load_snapshot(
        self, request: EnrichmentRequest
    ) -> ExistingRecordSnapshot:
        """Read the record and capture an eligibility snapshot.

        Raises:
            PersistenceException: If the record store read fails.
        """
        try:
            item = await self.store.get_record(
                self.table_name, request.summons_id
            )
        except Exception as e:
            raise PersistenceException(
                f"Database read failed: {type(e).__name__}: {e}",
                summons_id=request.summons_id,
                context={"stage": "eligibility", "table": self.table_name},
            ) from e

        snapshot = ExistingRecordSnapshot.from_item(item)
        if not snapshot.exists:
            logger.warning(
                f"Summons {request.summons_id} not found in {self.table_name}",
                extra={"summons_id": request.summons_id, "stage": "eligibility"},
            )
        return snapshot

    async def commit(
        self,
        request: EnrichmentRequest,
        snapshot: ExistingRecordSnapshot,
        merged: Mapping[str, Any],
        document_scanned: bool = False,
    ) -> bool:
        """Persist the merged fields, a log entry and the timestamp.

        Args:
            request: The normalized trigger.
            snapshot: The record as stored before processing.
            merged: Output of build_merged_update().
            document_scanned: True when the PDF was read successfully.

        Returns:
            True if an update was written, False if there was nothing to
            write.

        Raises:
            PersistenceException: If the record store update fails.
        """
        if not merged:
            logger.info(
                f"No data extracted for summons {request.summons_number}; "
                "skipping database update",
                extra={"summons_id": request.summons_id, "stage": "reconcile"},
            )
            return False

        now = datetime.now(timezone.utc)
        entry = build_activity_entry(merged, now, self.preview_length)

        attributes: dict[str, Any] = dict(merged)
        attributes["activity_log"] = [
            *snapshot.activity_log,
            entry.to_dict(),
        ]
        attributes["updatedAt"] = format_iso(now)
        if document_scanned:
            attributes["ocr_status"] = "complete"
            attributes["last_scan_date"] = format_iso(now)

        try:
            await self.store.update_record(
                self.table_name, request.summons_id, attributes
            )
        except Exception as e:
            raise PersistenceException(
                f"Database update failed: {type(e).__name__}: {e}",
                summons_id=request.summons_id,
                context={
                    "stage": "reconcile",
                    "table": self.table_name,
                    "fields": ", ".join(merged),
                },
            ) from e

        logger.info(
            f"Updated summons {request.summons_number} with "
            f"{', '.join(merged)}",
            extra={"summons_id": request.summons_id, "stage": "reconcile"},
        )
        return True
