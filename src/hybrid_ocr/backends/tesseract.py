"""
Tesseract OCR Backend
=====================

Fast local OCR using Tesseract. Free, offline, good for clean printed text.
"""

import logging
import os
import time
from typing import Any, List, Optional

import pytesseract

from ..decoder import PixelBuffer
from ..errors import ErrorFactory, OCRError
from .base import BaseOCRBackend, EngineKind, EngineResult, ProgressReporter

logger = logging.getLogger(__name__)


class TesseractBackend(BaseOCRBackend):
    """
    Fast OCR backend using a local Tesseract installation.

    Good for:
    - Offline processing
    - Simple, clean documents
    - Low latency first pass

    Environment variables:
        TESSERACT_PATH: Path to tesseract binary (default: tesseract on PATH)
        TESSERACT_LANG: Languages to use (default: eng)
    """

    kind = EngineKind.FAST

    def __init__(
        self,
        tesseract_path: Optional[str] = None,
        lang: Optional[str] = None,
        config: str = "",
    ):
        """
        Initialize Tesseract backend.

        Args:
            tesseract_path: Path to tesseract binary
            lang: OCR languages (e.g., "eng" or "deu+eng")
            config: Extra command line options passed to tesseract
        """
        super().__init__(name="Tesseract")

        self.tesseract_path = tesseract_path or os.getenv("TESSERACT_PATH", "tesseract")
        self.lang = lang or os.getenv("TESSERACT_LANG", "eng")
        self.config = config

        pytesseract.pytesseract.tesseract_cmd = self.tesseract_path

    def is_available(self) -> bool:
        """Check if Tesseract is installed and accessible."""
        try:
            pytesseract.get_tesseract_version()
        except (pytesseract.TesseractNotFoundError, OSError):
            return False
        return True

    def translate_error(self, error: BaseException) -> OCRError:
        if isinstance(error, pytesseract.TesseractNotFoundError):
            return ErrorFactory.runtime_not_supported(f"tesseract binary '{self.tesseract_path}'")
        if isinstance(error, pytesseract.TesseractError):
            return ErrorFactory.processing_failed(self.name, error)
        return super().translate_error(error)

    def extract_text(
        self,
        image: PixelBuffer,
        progress: ProgressReporter,
        **kwargs: Any,
    ) -> EngineResult:
        """
        Recognize text with Tesseract.

        Text and confidence come from one ``image_to_data`` run; the
        confidence is the mean of the per-word confidences Tesseract
        reports for recognized words.

        Args:
            image: Pixels to recognize
            progress: Stage progress sink
            **kwargs: Additional options (lang, config)

        Returns:
            EngineResult with text and 0-100 confidence
        """
        start_time = time.time()
        lang = kwargs.get("lang", self.lang)
        config = kwargs.get("config", self.config)

        progress("Loading image", 5)
        pil_image = image.to_image()

        progress("Recognizing text", 20)
        data = pytesseract.image_to_data(
            pil_image,
            lang=lang,
            config=config,
            output_type=pytesseract.Output.DICT,
        )
        progress("Recognizing text", 90)

        text = self._assemble_text(data)
        confidence = self._mean_confidence(data)

        processing_time = (time.time() - start_time) * 1000
        progress("Done", 100)

        logger.info(
            "Tesseract OCR completed: lang=%s, words=%d, confidence=%.1f, time=%.0fms",
            lang,
            len(text.split()),
            confidence,
            processing_time,
        )

        return EngineResult(
            text=text,
            confidence=confidence,
            metadata={
                "backend": "tesseract",
                "lang": lang,
                "processing_time_ms": processing_time,
            },
        )

    @staticmethod
    def _assemble_text(data: dict[str, list[Any]]) -> str:
        """Rebuild lines from word boxes grouped by block, paragraph and line."""
        lines: list[str] = []
        current_key = None
        current_words: list[str] = []

        for i, word in enumerate(data.get("text", [])):
            word = str(word).strip()
            if not word:
                continue
            key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
            if key != current_key and current_words:
                lines.append(" ".join(current_words))
                current_words = []
            current_key = key
            current_words.append(word)

        if current_words:
            lines.append(" ".join(current_words))
        return "\n".join(lines)

    @staticmethod
    def _mean_confidence(data: dict[str, list[Any]]) -> float:
        """Mean word confidence, ignoring -1 entries for non-word boxes."""
        confidences = []
        for word, conf in zip(data.get("text", []), data.get("conf", [])):
            try:
                value = float(conf)
            except (TypeError, ValueError):
                continue
            if value >= 0 and str(word).strip():
                confidences.append(value)
        if not confidences:
            return 0.0
        return sum(confidences) / len(confidences)

    def get_available_languages(self) -> List[str]:
        """Get list of installed Tesseract languages."""
        try:
            return pytesseract.get_languages()
        except (pytesseract.TesseractNotFoundError, pytesseract.TesseractError, OSError):
            logger.warning("Could not list Tesseract languages", exc_info=True)
            return []
