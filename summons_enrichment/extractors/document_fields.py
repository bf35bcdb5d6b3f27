"""Structured field extraction from summons PDFs via a generative model.

The model receives the PDF together with a fixed instruction and replies in
free text that should contain a single JSON object. The reply is handled in
three stages:

1. Locate the JSON span (first ``{`` to last ``}``) and decode it.
2. Promote the loose mapping into ``ModelFieldsPayload``, whose validators
   turn blanks into None and coerce odd shapes instead of failing.
3. Disambiguate the ID Number, which the model sometimes confuses with
   the Summons Number printed on the same page.

Any failure here is non-fatal to the pipeline: callers receive a
``DocumentExtractionException`` and carry on without OCR data.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

from summons_enrichment.common.exceptions import (
    DocumentExtractionException,
    ModelResponseParseException,
    TerminalRequestException,
    TransientException,
)
from summons_enrichment.common.request_manager import AsyncRequestManager
from summons_enrichment.data_types import DocumentExtraction

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"

# Gemini model used when none is configured.
DEFAULT_MODEL = "gemini-2.0-flash"

EXTRACTION_PROMPT = """You are an expert legal assistant analyzing a NYC OATH summons PDF for an idling violation. Extract the following fields and return ONLY a valid JSON object with no additional text or formatting:

{
  "license_plate_ocr": "license plate number",
  "id_number": "ID Number / DEP complaint number in the format YYYY-NNNNNN",
  "vehicle_type_ocr": "vehicle type (e.g., truck, van, car)",
  "prior_offense_status": "first offense, repeat offense, or unknown",
  "violation_narrative": "brief description of the violation",
  "idling_duration_ocr": "how long the vehicle was idling (e.g., '15 minutes')",
  "critical_flags_ocr": ["array of important flags like 'refrigeration unit', 'no driver present', etc."],
  "name_on_summons_ocr": "respondent/company name on the summons"
}

IMPORTANT - ID Number vs Summons Number:
- The ID Number is four digits (the year), a hyphen, then five or six digits, for example "2025-030846". It is usually labelled "ID Number" or "DEP Complaint Number".
- The Summons Number is nine or more digits, sometimes followed by one letter, for example "000954041L". It is NOT the ID Number. Never return it as "id_number".
- If no value in the YYYY-NNNNNN format is visible, set "id_number" to null.

Return ONLY the JSON object. If a field cannot be determined, use null."""


class ModelClient(Protocol):
    """A generative model that reads a document and answers in free text."""

    async def generate(
        self, prompt: str, document: bytes, mime_type: str
    ) -> str: ...


# =============================================================================
# ID Number disambiguation
# =============================================================================

ID_NUMBER_PATTERN = re.compile(r"[0-9]{4}-[0-9]{5,6}")
SUMMONS_NUMBER_PATTERN = re.compile(r"[0-9]{9,}[A-Za-z]?")


class IdNumberVerdict(Enum):
    """Why an ID Number candidate was accepted or discarded."""

    ACCEPTED = "ACCEPTED"
    REJECTED_SUMMONS_FORMAT = "REJECTED_SUMMONS_FORMAT"
    REJECTED_INVALID_FORMAT = "REJECTED_INVALID_FORMAT"
    EMPTY = "EMPTY"


@dataclass(frozen=True)
class IdNumberCheck:
    """Result of validating an ID Number candidate.

    Attributes:
        value: The accepted ID Number, or None.
        verdict: Why it was accepted or discarded.
        raw: The candidate as received.
    """

    value: str | None
    verdict: IdNumberVerdict
    raw: str | None = None

    @property
    def valid(self) -> bool:
        return self.verdict is IdNumberVerdict.ACCEPTED


def validate_id_number(raw: str | None) -> IdNumberCheck:
    """Accept a well-formed ID Number and discard everything else.

    The valid format is checked first. A Summons Number (9+ digits with an
    optional trailing letter) is discarded with its own verdict, since it is
    the usual confusion. Anything else is discarded as unrecognized: an
    ambiguous value is never guessed at.

    Example::

        validate_id_number("2025-030846").value  # "2025-030846"
        validate_id_number("000954041L").verdict  # REJECTED_SUMMONS_FORMAT
        validate_id_number("123").verdict         # REJECTED_INVALID_FORMAT

    Args:
        raw: The candidate value.

    Returns:
        IdNumberCheck describing the outcome. Never raises.
    """
    candidate = (raw or "").strip()
    if not candidate:
        return IdNumberCheck(value=None, verdict=IdNumberVerdict.EMPTY, raw=raw)

    if ID_NUMBER_PATTERN.fullmatch(candidate):
        return IdNumberCheck(
            value=candidate, verdict=IdNumberVerdict.ACCEPTED, raw=raw
        )

    if SUMMONS_NUMBER_PATTERN.fullmatch(candidate):
        return IdNumberCheck(
            value=None,
            verdict=IdNumberVerdict.REJECTED_SUMMONS_FORMAT,
            raw=raw,
        )

    return IdNumberCheck(
        value=None, verdict=IdNumberVerdict.REJECTED_INVALID_FORMAT, raw=raw
    )


# =============================================================================
# Response parsing
# =============================================================================

_STRING_FIELDS = (
    "license_plate_ocr",
    "id_number",
    "dep_id",
    "vehicle_type_ocr",
    "prior_offense_status",
    "violation_narrative",
    "idling_duration_ocr",
    "name_on_summons_ocr",
)


class ModelFieldsPayload(BaseModel):
    """Lenient view of the model's JSON reply.

    Unknown keys are ignored. Blank strings and literal "null" become None,
    scalars are stringified, and the flag list accepts a single string.
    ``dep_id`` is the legacy key under which older prompts asked for the
    ID Number.
    """

    model_config = ConfigDict(extra="ignore")

    license_plate_ocr: str | None = None
    id_number: str | None = None
    dep_id: str | None = None
    vehicle_type_ocr: str | None = None
    prior_offense_status: str | None = None
    violation_narrative: str | None = None
    idling_duration_ocr: str | None = None
    critical_flags_ocr: list[str] = Field(default_factory=list)
    name_on_summons_ocr: str | None = None

    @field_validator(*_STRING_FIELDS, mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> str | None:
        if value is None or isinstance(value, (dict, list)):
            return None
        text = str(value).strip()
        if not text or text.lower() == "null":
            return None
        return text

    @field_validator("critical_flags_ocr", mode="before")
    @classmethod
    def _normalize_flags(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, (list, tuple)):
            return []
        flags = []
        for item in value:
            if item is None or isinstance(item, (dict, list)):
                continue
            text = str(item).strip()
            if text:
                flags.append(text)
        return flags

    @property
    def raw_id_number(self) -> str | None:
        """The ID Number candidate, preferring the canonical key."""
        return self.id_number if self.id_number is not None else self.dep_id


def extract_json_object(
    response_text: str, summons_id: str | None = None
) -> dict[str, Any]:
    """Decode the JSON object embedded in a model reply.

    Args:
        response_text: Free text from the model.
        summons_id: Record being enriched, for error context.

    Returns:
        The decoded object.

    Raises:
        ModelResponseParseException: If there is no ``{...}`` span, it is
            not valid JSON, or it is not an object.
    """
    start = response_text.find("{")
    end = response_text.rfind("}")
    if start == -1 or end < start:
        raise ModelResponseParseException(
            "No valid JSON found in model response",
            response_text,
            summons_id=summons_id,
        )

    try:
        decoded = json.loads(response_text[start : end + 1])
    except json.JSONDecodeError as e:
        raise ModelResponseParseException(
            f"Model response JSON is malformed: {e}",
            response_text,
            summons_id=summons_id,
        ) from e

    if not isinstance(decoded, dict):
        raise ModelResponseParseException(
            "Model response JSON is not an object",
            response_text,
            summons_id=summons_id,
        )
    return decoded


def parse_model_response(
    response_text: str, summons_id: str | None = None
) -> DocumentExtraction:
    """Turn a model reply into a DocumentExtraction.

    Args:
        response_text: Free text from the model.
        summons_id: Record being enriched, for logs.

    Returns:
        The sanitized extraction.

    Raises:
        ModelResponseParseException: If the reply holds no usable object.
    """
    data = extract_json_object(response_text, summons_id=summons_id)
    try:
        payload = ModelFieldsPayload.model_validate(data)
    except ValidationError as e:
        raise ModelResponseParseException(
            f"Model response failed validation: {e.error_count()} errors",
            response_text,
            summons_id=summons_id,
        ) from e

    check = validate_id_number(payload.raw_id_number)
    if check.verdict in (
        IdNumberVerdict.REJECTED_SUMMONS_FORMAT,
        IdNumberVerdict.REJECTED_INVALID_FORMAT,
    ):
        logger.warning(
            f"Discarded ID Number {check.raw!r} for summons {summons_id}: "
            f"{check.verdict.value}",
            extra={
                "summons_id": summons_id,
                "stage": "document",
                "id_number_verdict": check.verdict.value,
            },
        )

    return DocumentExtraction(
        license_plate_ocr=payload.license_plate_ocr,
        id_number=check.value,
        vehicle_type_ocr=payload.vehicle_type_ocr,
        prior_offense_status=payload.prior_offense_status,
        violation_narrative=payload.violation_narrative,
        idling_duration_ocr=payload.idling_duration_ocr,
        critical_flags_ocr=tuple(payload.critical_flags_ocr),
        name_on_summons_ocr=payload.name_on_summons_ocr,
    )


# =============================================================================
# Extractor
# =============================================================================


class DocumentFieldExtractor:
    """Reads summons PDFs through a model client.

    Example::

        extractor = DocumentFieldExtractor(
            model_client=GeminiModelClient(api_key=key),
            request_manager=manager,
        )
        fields = await extractor.extract_from_url(pdf_url, summons_id="abc")
    """

    def __init__(
        self,
        model_client: ModelClient,
        request_manager: AsyncRequestManager | None = None,
        prompt: str = EXTRACTION_PROMPT,
    ) -> None:
        """Initialize the extractor.

        Args:
            model_client: The model used to read documents.
            request_manager: Used by extract_from_url() to download PDFs.
            prompt: Instruction sent with every document.
        """
        self.model_client = model_client
        self.request_manager = request_manager
        self.prompt = prompt

    async def extract(
        self, document: bytes, summons_id: str | None = None
    ) -> DocumentExtraction:
        """Extract fields from PDF bytes.

        Raises:
            DocumentExtractionException: If the model call fails or its
                reply cannot be parsed.
        """
        try:
            response_text = await self.model_client.generate(
                self.prompt, document, PDF_MIME_TYPE
            )
        except Exception as e:
            raise DocumentExtractionException(
                f"PDF OCR failed: {type(e).__name__}: {e}",
                summons_id=summons_id,
                context={"stage": "document"},
            ) from e

        logger.debug(f"Model response for summons {summons_id}: {response_text}")
        return parse_model_response(response_text, summons_id=summons_id)

    async def extract_from_url(
        self, url: str, summons_id: str | None = None
    ) -> DocumentExtraction:
        """Download a PDF and extract its fields.

        Raises:
            DocumentExtractionException: If the download, the model call or
                the parse fails.
        """
        if self.request_manager is None:
            raise DocumentExtractionException(
                "No request manager configured for PDF download",
                summons_id=summons_id,
                context={"stage": "document", "url": url},
            )

        try:
            response = await self.request_manager.fetch(url)
        except (TransientException, TerminalRequestException) as e:
            raise DocumentExtractionException(
                f"PDF download failed: {e}",
                summons_id=summons_id,
                context={"stage": "document", "url": url},
            ) from e

        return await self.extract(response.content, summons_id=summons_id)
