"""Worker configuration.

The worker never reads the process environment itself. Deployments build a
``WorkerConfig`` once, usually through ``WorkerConfig.from_env()``, and pass
it to ``EnrichmentWorker``; tests construct it directly.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from summons_enrichment.common.request_manager import (
    DEFAULT_BASE_DELAY,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_DELAY,
    DEFAULT_TIMEOUT,
)
from summons_enrichment.extractors.document_fields import DEFAULT_MODEL

DEFAULT_TABLE = "Summons-dev"


@dataclass(frozen=True)
class WorkerConfig:
    """Settings for one enrichment worker.

    Attributes:
        summons_table: Record store table holding summons records.
        gemini_api_key: Key for the Gemini API; None disables live OCR.
        model_name: Gemini model used for document extraction.
        database_path: SQLite file backing the record store.
        request_timeout: Per-attempt HTTP timeout in seconds.
        max_attempts: Total HTTP attempts per URL.
        retry_base_delay: First backoff delay in seconds.
        retry_max_delay: Cap on any single backoff delay in seconds.
        narrative_preview_length: Characters of narrative kept in the
            activity log entry.
    """

    summons_table: str = DEFAULT_TABLE
    gemini_api_key: str | None = None
    model_name: str = DEFAULT_MODEL
    database_path: Path = Path("summons.db")
    request_timeout: float = DEFAULT_TIMEOUT
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    retry_base_delay: float = DEFAULT_BASE_DELAY
    retry_max_delay: float = DEFAULT_MAX_DELAY
    narrative_preview_length: int = 100

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None
    ) -> WorkerConfig:
        """Build a config from environment variables.

        Reads ``SUMMONS_TABLE``, ``GEMINI_API_KEY``, ``GEMINI_MODEL``,
        ``SUMMONS_DB_PATH`` and ``FETCH_TIMEOUT_SECONDS``. Unset variables
        keep their defaults.

        Args:
            environ: Mapping to read instead of ``os.environ``.

        Raises:
            ValueError: If ``FETCH_TIMEOUT_SECONDS`` is not a number.
        """
        env = os.environ if environ is None else environ

        timeout_raw = env.get("FETCH_TIMEOUT_SECONDS")
        try:
            timeout = float(timeout_raw) if timeout_raw else DEFAULT_TIMEOUT
        except ValueError as e:
            raise ValueError(
                f"FETCH_TIMEOUT_SECONDS must be a number, got {timeout_raw!r}"
            ) from e

        return cls(
            summons_table=env.get("SUMMONS_TABLE") or DEFAULT_TABLE,
            gemini_api_key=env.get("GEMINI_API_KEY") or None,
            model_name=env.get("GEMINI_MODEL") or DEFAULT_MODEL,
            database_path=Path(env.get("SUMMONS_DB_PATH") or "summons.db"),
            request_timeout=timeout,
        )
