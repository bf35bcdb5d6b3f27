"""Enrichment worker: one invocation enriches one summons record.

The worker ties the pieces together::

    trigger ──normalize──> EnrichmentRequest
                               │
              load snapshot ───┤──> decide: PROCESS / HEAL / SKIP
                               │
             ┌─────────────────┴─────────────────┐
      scrape video page                 download + OCR summons PDF
             └─────────────────┬─────────────────┘
                               │ (both non-fatal)
                  merge ──> single record update

Only two failures are fatal and produce a 500 outcome: a trigger without
the required identifiers, and a record-store read or write failure. Either
extraction step may fail without affecting the other, and the run still
succeeds with whatever was extracted.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from typing_extensions import Self

from summons_enrichment.common.exceptions import (
    InvalidTriggerException,
    PersistenceException,
)
from summons_enrichment.common.request_manager import AsyncRequestManager
from summons_enrichment.config import WorkerConfig
from summons_enrichment.data_types import (
    DocumentExtraction,
    EligibilityDecision,
    EnrichmentOutcome,
    EnrichmentRequest,
    PageExtraction,
)
from summons_enrichment.extractors.document_fields import (
    DocumentFieldExtractor,
    ModelClient,
)
from summons_enrichment.extractors.page_date import scrape_video_page
from summons_enrichment.reconciler import (
    RecordReconciler,
    build_merged_update,
    decide,
)
from summons_enrichment.store import RecordStore, SQLRecordStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Data extraction completed"
SKIP_MESSAGE = "Skipped: record already has OCR data"

# =============================================================================
# Trigger normalization
# =============================================================================

# Request attribute -> key in a stream record image.
STREAM_IMAGE_KEYS: dict[str, str] = {
    "summons_id": "id",
    "summons_number": "summons_number",
    "pdf_link": "summons_pdf_link",
    "video_link": "video_link",
    "violation_date": "violation_date",
    "is_self_healing": "is_self_healing",
}


def unwrap_attribute(value: Any) -> Any:
    """Unwrap a typed stream attribute such as ``{"S": "abc"}``.

    Untyped values are returned unchanged. ``{"NULL": true}`` and unknown
    type tags become None.
    """
    match value:
        case {"NULL": True}:
            return None
        case {"S": text}:
            return text
        case {"N": number}:
            return number
        case {"BOOL": flag}:
            return flag
        case Mapping():
            return None
        case _:
            return value


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def normalize_event(event: Any) -> EnrichmentRequest:
    """Normalize either trigger shape into an EnrichmentRequest.

    Two shapes are accepted:

    - a direct payload with ``summons_id``, ``summons_number``,
      ``pdf_link``, ``video_link`` and ``violation_date``;
    - a change-stream event, read from ``Records[0].dynamodb.NewImage``
      whose attributes are typed (``{"S": ...}``, ``{"N": ...}``, ...).

    Args:
        event: The raw invocation payload.

    Returns:
        The normalized request.

    Raises:
        InvalidTriggerException: If the payload is not a mapping or lacks
            ``summons_id`` or ``summons_number``.
    """
    match event:
        case {"Records": [first, *_]}:
            stream = (
                first.get("dynamodb") if isinstance(first, Mapping) else None
            )
            image = (
                stream.get("NewImage") if isinstance(stream, Mapping) else None
            )
            if not isinstance(image, Mapping):
                image = {}
            fields = {
                name: unwrap_attribute(image.get(key))
                for name, key in STREAM_IMAGE_KEYS.items()
            }
        case Mapping():
            fields = {name: event.get(name) for name in STREAM_IMAGE_KEYS}
        case _:
            raise InvalidTriggerException(
                f"Trigger payload must be an object, got {type(event).__name__}"
            )

    summons_id = _as_text(fields["summons_id"])
    summons_number = _as_text(fields["summons_number"])
    if not summons_id or not summons_number:
        raise InvalidTriggerException(
            "Missing required parameters: summons_id or summons_number",
            summons_id=summons_id,
            context={"stage": "trigger"},
        )

    return EnrichmentRequest(
        summons_id=summons_id,
        summons_number=summons_number,
        pdf_link=_as_text(fields["pdf_link"]),
        video_link=_as_text(fields["video_link"]),
        violation_date=_as_text(fields["violation_date"]),
        is_self_healing=_as_flag(fields["is_self_healing"]),
    )


def failure_outcome(category: str, message: str) -> EnrichmentOutcome:
    """Build the 500 outcome for a fatal error."""
    return EnrichmentOutcome(
        status_code=500,
        body={"error": category, "message": message},
    )


# =============================================================================
# Worker
# =============================================================================


class EnrichmentWorker:
    """Enriches summons records from their video page and PDF.

    Example::

        config = WorkerConfig.from_env()
        async with EnrichmentWorker.open(config) as worker:
            outcome = await worker.run({"summons_id": "abc", ...})
    """

    def __init__(
        self,
        config: WorkerConfig,
        store: RecordStore,
        request_manager: AsyncRequestManager,
        document_extractor: DocumentFieldExtractor | None = None,
    ) -> None:
        """Initialize the worker.

        Args:
            config: Worker settings.
            store: Record store holding summons records.
            request_manager: Used for the video page and the PDF download.
            document_extractor: Reads summons PDFs. None disables OCR;
                PDF links are then skipped with a warning.
        """
        self.config = config
        self.request_manager = request_manager
        self.document_extractor = document_extractor
        self.reconciler = RecordReconciler(
            store,
            table_name=config.summons_table,
            preview_length=config.narrative_preview_length,
        )

    @classmethod
    @asynccontextmanager
    async def open(
        cls,
        config: WorkerConfig,
        model_client: ModelClient | None = None,
    ) -> AsyncIterator[Self]:
        """Build a worker with its store and HTTP client, and clean up.

        Args:
            config: Worker settings.
            model_client: Model used for OCR. Defaults to a Gemini client
                when ``config.gemini_api_key`` is set.

        Yields:
            EnrichmentWorker instance.
        """
        if model_client is None and config.gemini_api_key:
            from summons_enrichment.extractors.gemini import GeminiModelClient

            model_client = GeminiModelClient(
                api_key=config.gemini_api_key, model_name=config.model_name
            )

        async with (
            SQLRecordStore.open(config.database_path) as store,
            AsyncRequestManager(
                timeout=config.request_timeout,
                max_attempts=config.max_attempts,
                base_delay=config.retry_base_delay,
                max_delay=config.retry_max_delay,
            ) as request_manager,
        ):
            extractor = None
            if model_client is not None:
                extractor = DocumentFieldExtractor(
                    model_client, request_manager=request_manager
                )
            yield cls(config, store, request_manager, extractor)

    async def handle(self, event: Any) -> dict[str, Any]:
        """Run one invocation and render the scheduler response shape."""
        outcome = await self.run(event)
        return outcome.to_response()

    async def run(self, event: Any) -> EnrichmentOutcome:
        """Run one invocation.

        Args:
            event: A direct payload or a change-stream event.

        Returns:
            The outcome. Fatal errors are reported as a 500 outcome rather
            than raised.
        """
        try:
            request = normalize_event(event)
        except InvalidTriggerException as e:
            logger.error(f"Rejected trigger: {e}", extra={"stage": "trigger"})
            return failure_outcome("input_error", e.message)

        logger.info(
            f"Starting data extraction for summons {request.summons_number}",
            extra={
                "summons_id": request.summons_id,
                "has_pdf": request.pdf_link is not None,
                "has_video": request.video_link is not None,
                "is_self_healing": request.is_self_healing,
            },
        )

        try:
            snapshot = await self.reconciler.load_snapshot(request)
        except PersistenceException as e:
            logger.error(str(e), extra={"summons_id": request.summons_id})
            return failure_outcome("persistence_error", e.message)

        decision = decide(request, snapshot)
        if decision is EligibilityDecision.SKIP:
            return EnrichmentOutcome(
                status_code=200,
                body={
                    "message": SKIP_MESSAGE,
                    "summons_id": request.summons_id,
                    "extractedFields": [],
                    "skipped": True,
                    "hasOcrData": True,
                },
            )

        page, document = await asyncio.gather(
            self._extract_page(request),
            self._extract_document(request),
        )

        merged = build_merged_update(request, page, document)
        try:
            await self.reconciler.commit(
                request, snapshot, merged, document_scanned=document is not None
            )
        except PersistenceException as e:
            logger.error(str(e), extra={"summons_id": request.summons_id})
            return failure_outcome("persistence_error", e.message)

        body: dict[str, Any] = {
            "message": SUCCESS_MESSAGE,
            "summons_id": request.summons_id,
            "extractedFields": list(merged),
        }
        if decision is EligibilityDecision.HEAL:
            body["hasOcrData"] = (
                document is not None and document.has_critical_data
            )

        logger.info(
            f"Data extraction completed for summons {request.summons_number}: "
            f"{len(merged)} fields",
            extra={"summons_id": request.summons_id, "decision": decision.value},
        )
        return EnrichmentOutcome(status_code=200, body=body)

    async def _extract_page(
        self, request: EnrichmentRequest
    ) -> PageExtraction | None:
        """Scrape the video page. Failures are logged and yield None."""
        if not request.video_link:
            return None

        try:
            page = await scrape_video_page(
                request.video_link,
                self.request_manager,
                summons_id=request.summons_id,
            )
        except Exception as e:
            logger.warning(
                f"Video scraping failed for summons {request.summons_number}: "
                f"{e}",
                extra={"summons_id": request.summons_id, "stage": "page"},
            )
            return None

        if page.video_created_date is None:
            logger.info(
                f"No Video Created Date found for summons "
                f"{request.summons_number}",
                extra={"summons_id": request.summons_id, "stage": "page"},
            )
        return page

    async def _extract_document(
        self, request: EnrichmentRequest
    ) -> DocumentExtraction | None:
        """Download and OCR the PDF. Failures are logged and yield None."""
        if not request.pdf_link:
            return None

        if self.document_extractor is None:
            logger.warning(
                f"No model configured; skipping PDF for summons "
                f"{request.summons_number}",
                extra={"summons_id": request.summons_id, "stage": "document"},
            )
            return None

        try:
            return await self.document_extractor.extract_from_url(
                request.pdf_link, summons_id=request.summons_id
            )
        except Exception as e:
            logger.warning(
                f"PDF OCR failed for summons {request.summons_number}: {e}",
                extra={"summons_id": request.summons_id, "stage": "document"},
            )
            return None


async def handle_event(
    event: Any, config: WorkerConfig | None = None
) -> dict[str, Any]:
    """Process one event with a worker built from the environment.

    Args:
        event: A direct payload or a change-stream event.
        config: Worker settings; defaults to ``WorkerConfig.from_env()``.

    Returns:
        ``{"statusCode": ..., "body": "<json>"}``.
    """
    config = config or WorkerConfig.from_env()
    async with EnrichmentWorker.open(config) as worker:
        return await worker.handle(event)
