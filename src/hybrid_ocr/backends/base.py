"""
Base OCR Backend
================

Uniform async contract over the fast and accurate OCR engines.
"""

import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Generic, Optional, TypeVar

from ..decoder import PixelBuffer
from ..errors import ErrorFactory, OCRError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int], None]

H = TypeVar("H")


class EngineKind(str, Enum):
    """Which engine produced (or should produce) a result."""

    FAST = "fast"            # Lightweight local OCR (Tesseract)
    ACCURATE = "accurate"    # Model-based OCR (TrOCR, Gemini)


@dataclass(frozen=True)
class EngineResult:
    """Text recognized by one engine run."""

    text: str
    confidence: float  # 0-100
    metadata: dict[str, Any] = field(default_factory=dict)


class ProgressReporter:
    """
    Progress sink for one stage.

    Clamps percentages to 0-100 and never reports less than what was
    already reported. A failing callback is logged, not propagated.
    Engines call it from their ``asyncio.to_thread`` worker thread.
    """

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self._callback = callback
        self._last = 0
        self._lock = threading.Lock()

    def __call__(self, status: str, percent: float) -> None:
        if self._callback is None:
            return
        with self._lock:
            value = max(self._last, min(100, max(0, int(round(percent)))))
            self._last = value
        try:
            self._callback(status, value)
        except Exception:
            logger.exception("Progress callback raised for status %r", status)

    @property
    def last_percent(self) -> int:
        return self._last


class LazyHandle(Generic[H]):
    """
    Initialize-once holder for an expensive resource such as a loaded model.

    Concurrent first calls to ``get`` collapse into a single ``loader``
    call; later calls reuse the cached handle. ``dispose`` drops it so the
    next ``get`` loads again. A failed load leaves the holder empty.
    """

    def __init__(self, loader: Callable[[], H]):
        self._loader = loader
        self._handle: H | None = None
        self._lock = threading.Lock()

    def get(self) -> H:
        handle = self._handle
        if handle is not None:
            return handle
        with self._lock:
            if self._handle is None:
                self._handle = self._loader()
            return self._handle

    def dispose(self) -> None:
        with self._lock:
            self._handle = None

    @property
    def is_loaded(self) -> bool:
        return self._handle is not None


class BaseOCRBackend(ABC):
    """
    Abstract base class for OCR backends.

    All OCR backends must implement:
    - extract_text(): Blocking recognition of one pixel buffer
    - is_available(): Check if the backend is available

    ``recognize()`` is the async entry point used by the processor. It runs
    ``extract_text()`` in a worker thread and guarantees that every failure
    leaves as an ``OCRError``.
    """

    kind: EngineKind = EngineKind.FAST

    def __init__(self, name: str = "BaseOCR"):
        """
        Initialize backend.

        Args:
            name: Human-readable name for the backend
        """
        self.name = name

    @abstractmethod
    def extract_text(
        self,
        image: PixelBuffer,
        progress: ProgressReporter,
        **kwargs: Any,
    ) -> EngineResult:
        """
        Recognize text in ``image``.

        Args:
            image: Decoded (and possibly preprocessed) pixels
            progress: Sink for stage progress
            **kwargs: Backend-specific options

        Returns:
            EngineResult with text and a 0-100 confidence
        """

    @abstractmethod
    def is_available(self) -> bool:
        """
        Check if this backend is available and configured.

        Returns:
            True if backend can be used, False otherwise
        """

    def translate_error(self, error: BaseException) -> OCRError:
        """Map an engine-specific exception onto the error taxonomy."""
        return ErrorFactory.from_error(error, context=self.name)

    def dispose(self) -> None:
        """Release cached resources. Stateless backends have nothing to do."""

    async def recognize(
        self,
        image: PixelBuffer,
        on_progress: Optional[ProgressCallback] = None,
        **kwargs: Any,
    ) -> EngineResult:
        """
        Run the engine without blocking the event loop.

        Raises:
            OCRError: for every failure, including OCR_NO_TEXT_FOUND
        """
        progress = ProgressReporter(on_progress)
        try:
            result = await asyncio.to_thread(self.extract_text, image, progress, **kwargs)
        except OCRError:
            raise
        except Exception as e:
            logger.warning("%s raised %s: %s", self.name, type(e).__name__, e)
            raise self.translate_error(e) from e

        return self._validate_result(result)

    def _validate_result(self, result: EngineResult) -> EngineResult:
        if not isinstance(result, EngineResult) or not isinstance(result.text, str):
            raise ErrorFactory.processing_failed(
                self.name, f"backend returned {type(result).__name__}"
            )

        text = result.text.strip()
        if not text:
            raise ErrorFactory.no_text_found(self.name)

        confidence = float(result.confidence)
        if not 0 <= confidence <= 100:
            logger.warning(
                "%s reported confidence %.2f outside 0-100, clamping", self.name, confidence
            )
            confidence = min(100.0, max(0.0, confidence))

        if text == result.text and confidence == result.confidence:
            return result
        return EngineResult(text=text, confidence=confidence, metadata=result.metadata)

    def __repr__(self) -> str:
        available = "available" if self.is_available() else "unavailable"
        return f"{self.__class__.__name__}(name='{self.name}', {available})"


class ModelBackedBackend(BaseOCRBackend):
    """
    Backend owning one lazily created, shared handle (model or API client).

    Subclasses implement ``_load_handle()``; ``handle`` loads it on first
    use, exactly once even under concurrent callers.
    """

    kind = EngineKind.ACCURATE

    def __init__(self, name: str):
        super().__init__(name=name)
        self._handle: LazyHandle[Any] = LazyHandle(self._load_handle)

    @abstractmethod
    def _load_handle(self) -> Any:
        """Create the expensive resource. Raise ``OCRError`` on failure."""

    @property
    def handle(self) -> Any:
        return self._handle.get()

    @property
    def is_loaded(self) -> bool:
        return self._handle.is_loaded

    def dispose(self) -> None:
        """Drop the cached handle; the next call reinitializes."""
        if self._handle.is_loaded:
            logger.info("Disposing %s handle", self.name)
        self._handle.dispose()
