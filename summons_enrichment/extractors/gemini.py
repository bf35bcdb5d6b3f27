"""Google Gemini model client for document extraction."""

from __future__ import annotations

import logging

import google.generativeai as genai

from summons_enrichment.extractors.document_fields import DEFAULT_MODEL

logger = logging.getLogger(__name__)


class GeminiModelClient:
    """ModelClient backed by the Gemini multimodal API.

    The document is sent inline next to the prompt, so no upload step is
    needed for single summons PDFs.

    Example::

        client = GeminiModelClient(api_key=config.gemini_api_key)
        text = await client.generate(prompt, pdf_bytes, "application/pdf")
    """

    def __init__(
        self,
        api_key: str,
        model_name: str = DEFAULT_MODEL,
        temperature: float = 0.0,
    ) -> None:
        """Initialize the client.

        Args:
            api_key: Gemini API key.
            model_name: Model to call.
            temperature: Sampling temperature; 0 keeps extraction stable.
        """
        if not api_key:
            raise ValueError("A Gemini API key is required")

        genai.configure(api_key=api_key)
        self.model_name = model_name
        self._model = genai.GenerativeModel(
            model_name=model_name,
            generation_config={"temperature": temperature},
        )

    async def generate(
        self, prompt: str, document: bytes, mime_type: str
    ) -> str:
        """Send the prompt and document, returning the reply text.

        Raises:
            ValueError: If the reply was blocked or carries no text.
            google.api_core.exceptions.GoogleAPIError: On API failures.
        """
        logger.debug(
            f"Calling {self.model_name} with {len(document)} byte document"
        )
        response = await self._model.generate_content_async(
            [prompt, {"mime_type": mime_type, "data": document}]
        )
        return response.text
