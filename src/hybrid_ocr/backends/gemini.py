"""
Gemini OCR Backend
==================

LLM-based OCR using Google Gemini API with native multimodal support.
Uses PIL Images directly - no base64 encoding needed.
"""

import logging
import os
import time
from typing import Any

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..decoder import PixelBuffer
from ..errors import ErrorFactory, OCRError
from .base import EngineKind, EngineResult, ModelBackedBackend, ProgressReporter

logger = logging.getLogger(__name__)


class GeminiRetryableError(RuntimeError):
    """Raised for Gemini API errors that are worth retrying (429, RESOURCE_EXHAUSTED)."""


class GeminiBackend(ModelBackedBackend):
    """
    Accurate OCR backend using Google Gemini API with vision-capable models.

    Uses the google-genai SDK for native multimodal content generation.
    The genai client is created lazily, once, and reused.

    Environment variables:
        GEMINI_API_KEY: API key for Google Gemini
        GEMINI_OCR_MODEL: Model to use (default: gemini-2.5-flash)
    """

    DEFAULT_MODEL = "gemini-2.5-flash"

    # Gemini does not report token confidence
    REPORTED_CONFIDENCE = 92.0

    NO_TEXT_SENTINEL = "NO_TEXT_FOUND"

    OCR_PROMPT = f"""Extract all text from this image.

Rules:
- Return ONLY the extracted text, no explanations
- Keep the original layout (paragraphs, lists, tables)
- For tables: separate columns with | and rows with line breaks
- Ignore watermarks and backgrounds
- Write [illegible] for unreadable parts
- If the image contains no text at all, return exactly {NO_TEXT_SENTINEL}

Text:"""

    kind = EngineKind.ACCURATE

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        temperature: float = 0.0,
        timeout: int = 120,
    ):
        """
        Initialize Gemini backend.

        Args:
            api_key: Gemini API key (or GEMINI_API_KEY env var)
            model: Model to use (or GEMINI_OCR_MODEL env var)
            temperature: Model temperature (0.0 for deterministic)
            timeout: Request timeout in seconds
        """
        super().__init__(name="Gemini")

        self.api_key = api_key or os.getenv("GEMINI_API_KEY")
        self.model = model or os.getenv("GEMINI_OCR_MODEL", self.DEFAULT_MODEL)
        self.temperature = temperature
        self.timeout = timeout

    def _load_handle(self) -> Any:
        """Create the genai client."""
        if not self.api_key:
            raise ErrorFactory.model_load_failed(self.model, "GEMINI_API_KEY not configured")
        try:
            from google import genai

            return genai.Client(api_key=self.api_key)
        except Exception as e:
            raise ErrorFactory.model_load_failed(self.model, e) from e

    def is_available(self) -> bool:
        """Check if Gemini API is configured."""
        return bool(self.api_key)

    def translate_error(self, error: BaseException) -> OCRError:
        if isinstance(error, GeminiRetryableError):
            return ErrorFactory.network_error(error)
        return super().translate_error(error)

    def extract_text(
        self,
        image: PixelBuffer,
        progress: ProgressReporter,
        **kwargs: Any,
    ) -> EngineResult:
        """
        Extract text from an image using Gemini.

        Args:
            image: Pixels to recognize
            progress: Stage progress sink
            **kwargs: Additional options (model, prompt)

        Returns:
            EngineResult with extracted text
        """
        from google.genai import types

        start_time = time.time()
        prompt = kwargs.get("prompt", self.OCR_PROMPT)
        model = kwargs.get("model") or self.model

        progress("Connecting", 10)
        client = self.handle
        progress("Recognizing text", 30)

        # PIL Image goes to the API directly (with retry for rate limits)
        response = self._call_api(client, model, image.to_image(), prompt, types)

        text = (response.text or "").strip()
        if text == self.NO_TEXT_SENTINEL:
            text = ""
        processing_time = (time.time() - start_time) * 1000
        progress("Done", 100)

        logger.info(
            "Gemini OCR completed: model=%s, words=%d, time=%.0fms",
            model,
            len(text.split()),
            processing_time,
        )

        return EngineResult(
            text=text,
            confidence=self.REPORTED_CONFIDENCE,
            metadata={
                "model": model,
                "backend": "gemini",
                "processing_time_ms": processing_time,
            },
        )

    @retry(
        retry=retry_if_exception_type(GeminiRetryableError),
        stop=stop_after_attempt(5),
        wait=wait_exponential(multiplier=2, min=5, max=60),
        before_sleep=lambda retry_state: logger.warning(
            "Gemini API rate limited, retrying in %.0fs (attempt %d/5)",
            retry_state.next_action.sleep,  # type: ignore[union-attr]
            retry_state.attempt_number,
        ),
        reraise=True,
    )
    def _call_api(self, client: Any, model: str, image: Any, prompt: str, types: Any) -> Any:
        """Call Gemini API with retry logic for rate limits."""
        from google.genai import errors as genai_errors

        try:
            return client.models.generate_content(
                model=model,
                contents=[image, prompt],
                config=types.GenerateContentConfig(
                    temperature=self.temperature,
                    http_options=types.HttpOptions(timeout=self.timeout * 1000),
                ),
            )
        except genai_errors.ClientError as exc:
            if "429" in str(exc) or "RESOURCE_EXHAUSTED" in str(exc):
                raise GeminiRetryableError(str(exc)) from exc
            raise  # Non-retryable client error
