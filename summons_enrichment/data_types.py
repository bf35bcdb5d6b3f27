"""Data types for the enrichment pipeline.

This module defines the values passed between the orchestrator, the
extractors and the reconciler. These types are designed to be:

1. Immutable - Dataclasses with frozen=True; sequences are tuples
2. Explicit about absence - a field that was not determined is None,
   never an empty placeholder
3. Serializable - activity log entries round-trip through plain dicts
   so they can be stored in the record store unchanged
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# =============================================================================
# Transport
# =============================================================================


@dataclass(frozen=True)
class FetchedResponse:
    """A successful HTTP response returned by the request manager.

    Attributes:
        status_code: HTTP status code (always below 400).
        headers: Response headers.
        content: Raw body bytes (used for PDFs).
        text: Decoded body text (used for HTML pages).
        url: Final URL after redirects.
    """

    status_code: int
    headers: dict[str, str]
    content: bytes
    text: str
    url: str


# =============================================================================
# Requests and record state
# =============================================================================


@dataclass(frozen=True)
class EnrichmentRequest:
    """One record to enrich, normalized from either trigger shape.

    Attributes:
        summons_id: Record identifier in the record store.
        summons_number: Human-facing summons number, used in logs.
        pdf_link: URL of the summons PDF, if any.
        video_link: URL of the video evidence page, if any.
        violation_date: Reference date for lag computation, if known.
        is_self_healing: Permit re-processing a partially enriched record.
    """

    summons_id: str
    summons_number: str
    pdf_link: str | None = None
    video_link: str | None = None
    violation_date: str | None = None
    is_self_healing: bool = False


class ActivityType(Enum):
    """Kinds of entries in a summons activity log.

    Values:
        CREATED: Summons first discovered and added.
        STATUS_CHANGE: Case status changed.
        RESCHEDULE: Hearing date changed.
        RESULT_CHANGE: Hearing result changed.
        AMOUNT_CHANGE: Balance due changed.
        PAYMENT: Payment recorded.
        AMENDMENT: Violation code or description changed.
        OCR_COMPLETE: Document enrichment completed.
        ARCHIVED: Record archived.
    """

    CREATED = "CREATED"
    STATUS_CHANGE = "STATUS_CHANGE"
    RESCHEDULE = "RESCHEDULE"
    RESULT_CHANGE = "RESULT_CHANGE"
    AMOUNT_CHANGE = "AMOUNT_CHANGE"
    PAYMENT = "PAYMENT"
    AMENDMENT = "AMENDMENT"
    OCR_COMPLETE = "OCR_COMPLETE"
    ARCHIVED = "ARCHIVED"


@dataclass(frozen=True)
class ActivityLogEntry:
    """One entry of the append-only activity log.

    ``old_value`` and ``new_value`` are narrative slots for the audit
    trail, not a strict diff.
    """

    date: str
    type: ActivityType
    description: str
    old_value: str | None = None
    new_value: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the stored dict shape."""
        return {
            "date": self.date,
            "type": self.type.value,
            "description": self.description,
            "old_value": self.old_value,
            "new_value": self.new_value,
        }


@dataclass(frozen=True)
class ExistingRecordSnapshot:
    """Read-only view of a stored record when processing begins.

    Only the fields that drive eligibility are captured. The activity log
    is kept as raw dicts so entries written by other components survive
    the append untouched.

    Attributes:
        violation_narrative: The stored narrative, if any.
        id_number: The stored ID Number, if any.
        license_plate_ocr: The stored OCR'd license plate, if any.
        activity_log: The stored log, oldest first.
        exists: False when the record store had no such record.
    """

    violation_narrative: str | None = None
    id_number: str | None = None
    license_plate_ocr: str | None = None
    activity_log: tuple[dict[str, Any], ...] = ()
    exists: bool = True

    @classmethod
    def from_item(
        cls, item: Mapping[str, Any] | None
    ) -> ExistingRecordSnapshot:
        """Capture a snapshot from a raw record-store item.

        Args:
            item: The stored record, or None if it does not exist.

        Returns:
            A snapshot. A missing record yields an empty snapshot.
        """
        if item is None:
            return cls(exists=False)

        raw_log = item.get("activity_log") or []
        if isinstance(raw_log, str):
            # Some writers store the log as a JSON string.
            try:
                raw_log = json.loads(raw_log)
            except json.JSONDecodeError:
                raw_log = []
        log = tuple(
            dict(entry) for entry in raw_log if isinstance(entry, Mapping)
        )

        return cls(
            violation_narrative=item.get("violation_narrative"),
            id_number=item.get("id_number"),
            license_plate_ocr=item.get("license_plate_ocr"),
            activity_log=log,
        )

    @property
    def has_narrative(self) -> bool:
        """True if a non-empty narrative is stored."""
        return bool(self.violation_narrative)

    @property
    def narrative_length(self) -> int:
        return len(self.violation_narrative or "")

    @property
    def missing_critical_fields(self) -> list[str]:
        """Names of the critical fields this record still lacks."""
        missing = []
        if not self.license_plate_ocr:
            missing.append("license_plate_ocr")
        if not self.id_number:
            missing.append("id_number")
        return missing


# =============================================================================
# Extraction results
# =============================================================================


@dataclass(frozen=True)
class PageExtraction:
    """Result of scraping the video evidence page.

    Attributes:
        video_created_date: ISO-8601 timestamp, or None if no heuristic
            matched.
    """

    video_created_date: str | None = None


# Document fields in the order they are reported and stored.
DOCUMENT_FIELDS: tuple[str, ...] = (
    "license_plate_ocr",
    "id_number",
    "vehicle_type_ocr",
    "prior_offense_status",
    "violation_narrative",
    "idling_duration_ocr",
    "critical_flags_ocr",
    "name_on_summons_ocr",
)


@dataclass(frozen=True)
class DocumentExtraction:
    """Structured fields read from the summons PDF by the model.

    Every string field is None when the model could not determine it.
    ``critical_flags_ocr`` is always a tuple; an empty tuple means the
    model reported no flags.
    """

    license_plate_ocr: str | None = None
    id_number: str | None = None
    vehicle_type_ocr: str | None = None
    prior_offense_status: str | None = None
    violation_narrative: str | None = None
    idling_duration_ocr: str | None = None
    critical_flags_ocr: tuple[str, ...] = ()
    name_on_summons_ocr: str | None = None

    def present_fields(self) -> dict[str, Any]:
        """Return the fields to merge into the record.

        String fields are included only when present. The flag list is
        always included, as a list, because "no flags" is a concrete
        finding.
        """
        present: dict[str, Any] = {}
        for name in DOCUMENT_FIELDS:
            value = getattr(self, name)
            if name == "critical_flags_ocr":
                present[name] = list(value)
            elif value is not None:
                present[name] = value
        return present

    @property
    def has_critical_data(self) -> bool:
        """True if any field that marks a meaningful scan is present."""
        return bool(
            self.violation_narrative
            or self.id_number
            or self.license_plate_ocr
        )


# =============================================================================
# Outcomes
# =============================================================================


class EligibilityDecision(Enum):
    """Outcome of the immutability check.

    Values:
        PROCESS: No narrative stored yet; run the extractors.
        HEAL: Narrative stored, healing requested, critical fields missing.
        SKIP: Narrative stored and no healing is warranted.
    """

    PROCESS = "process"
    HEAL = "heal"
    SKIP = "skip"


@dataclass(frozen=True)
class EnrichmentOutcome:
    """Terminal result of one invocation.

    Attributes:
        status_code: 200 on success (including skips), 500 on failure.
        body: JSON-serializable response body.
    """

    status_code: int
    body: dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status_code == 200

    @property
    def extracted_fields(self) -> Sequence[str]:
        return self.body.get("extractedFields", [])

    def to_response(self) -> dict[str, Any]:
        """Render the invocation-response shape expected by the scheduler."""
        return {
            "statusCode": self.status_code,
            "body": json.dumps(self.body),
        }
