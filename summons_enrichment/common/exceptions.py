"""Exception types for the enrichment worker.

Two families live here:

1. Transport errors raised by the request manager. ``TransientException``
   subclasses are retried with backoff; ``TerminalRequestException``
   subclasses are not.
2. Pipeline errors (``EnrichmentException`` and friends) that carry the
   summons id and enough context for the scheduler's logs.
"""

from __future__ import annotations

from typing import Any

# =============================================================================
# Transport errors
# =============================================================================


class TransientException(Exception):
    """Base class for transport errors that might resolve on retry.

    Transient exceptions represent temporary failures like dropped
    connections, server errors (5xx), or timeouts. The request manager
    retries these with exponential backoff before giving up.
    """

    pass


class ServerErrorException(TransientException):
    """Raised when the server answers with a 5xx status code.

    Attributes:
        status_code: The HTTP status code received.
        url: The URL that returned the error.
        message: Human-readable error message.
    """

    def __init__(self, status_code: int, url: str) -> None:
        """Initialize the exception.

        Args:
            status_code: The actual status code received.
            url: The URL of the request.
        """
        self.status_code = status_code
        self.url = url
        self.message = f"HTTP {status_code} from {url} (server error)"
        super().__init__(self.message)


class RequestTimeoutException(TransientException):
    """Raised when a single attempt exceeds the per-attempt timeout.

    Attributes:
        url: The URL that timed out.
        timeout_seconds: The timeout duration in seconds.
        message: Human-readable error message.
    """

    def __init__(self, url: str, timeout_seconds: float) -> None:
        """Initialize the exception.

        Args:
            url: The URL that timed out.
            timeout_seconds: The timeout duration in seconds.
        """
        self.url = url
        self.timeout_seconds = timeout_seconds
        self.message = f"Request to {url} timed out after {timeout_seconds}s"
        super().__init__(self.message)


class ConnectionDroppedException(TransientException):
    """Raised when the socket was refused, reset, or never resolved.

    Attributes:
        url: The URL being fetched.
        reason: The underlying transport error message.
    """

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        self.message = f"Connection to {url} failed: {reason}"
        super().__init__(self.message)


class TerminalRequestException(Exception):
    """Base class for transport errors that retrying will not fix.

    Attributes:
        url: The URL being fetched.
        message: Human-readable error message.
    """

    def __init__(self, url: str, message: str) -> None:
        self.url = url
        self.message = message
        super().__init__(message)


class ClientErrorException(TerminalRequestException):
    """Raised when the server answers with a 4xx status code.

    Attributes:
        status_code: The HTTP status code received.
    """

    def __init__(self, status_code: int, url: str) -> None:
        self.status_code = status_code
        super().__init__(url, f"HTTP {status_code} from {url} (client error)")


# =============================================================================
# Pipeline errors
# =============================================================================


class EnrichmentException(Exception):
    """Base class for errors raised while enriching one summons record.

    Every pipeline error names the record it concerns so the external
    scheduler can correlate logs and decide whether to re-invoke.
    """

    def __init__(
        self,
        message: str,
        summons_id: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable description of the failure.
            summons_id: The record being processed, when known.
            context: Optional dict of additional context (stage, url, ...).
        """
        self.message = message
        self.summons_id = summons_id
        self.context = context or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the error message with context.

        Returns:
            Formatted error message string.
        """
        parts = [self.message]
        if self.summons_id:
            parts.append(f"Summons: {self.summons_id}")

        if self.context:
            parts.append("Context:")
            for key, value in self.context.items():
                parts.append(f"  {key}: {value}")

        return "\n".join(parts)


class InvalidTriggerException(EnrichmentException):
    """Raised when the trigger payload lacks the identifying fields.

    This is an input error: the invocation fails immediately without
    touching the network or the record store.
    """

    pass


class ExtractionException(EnrichmentException):
    """Base class for non-fatal extraction failures.

    The orchestrator logs these and continues with the affected
    field group absent.
    """

    pass


class PageScrapeException(ExtractionException):
    """Raised when the video page cannot be fetched or read."""

    pass


class DocumentExtractionException(ExtractionException):
    """Raised when the summons PDF cannot be fetched or the model call fails."""

    pass


class ModelResponseParseException(DocumentExtractionException):
    """Raised when the model reply holds no usable JSON object.

    Attributes:
        response_text: The raw model reply, for diagnosis.
    """

    def __init__(
        self,
        message: str,
        response_text: str,
        summons_id: str | None = None,
    ) -> None:
        self.response_text = response_text
        preview = response_text[:200]
        super().__init__(
            message,
            summons_id=summons_id,
            context={"response_preview": preview},
        )


class PersistenceException(EnrichmentException):
    """Raised when the record store read or write fails.

    This is the only downstream failure that fails the invocation, since
    silently dropping a successful extraction is worse than a loud error.
    """

    pass
