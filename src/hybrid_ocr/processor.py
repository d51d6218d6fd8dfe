"""
Hybrid OCR Processor
====================

Runs the fast engine first, checks its output against a quality gate and
falls back to the accurate engine when the gate fails or the fast engine
errors. Every engine call runs under its own timeout.

Usage:
    processor = HybridProcessor(
        fast_backend=TesseractBackend(),
        accurate_backend=TrOCRBackend(),
    )
    result = await processor.extract(ImageFile.from_path("scan.png"))
    print(result.method, result.fallback_used, result.text)
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

from hybrid_ocr.backends.base import BaseOCRBackend, EngineKind, EngineResult
from hybrid_ocr.backends.tesseract import TesseractBackend
from hybrid_ocr.backends.trocr import TrOCRBackend
from hybrid_ocr.decoder import PixelBuffer, decode_image
from hybrid_ocr.errors import ErrorFactory, OCRError
from hybrid_ocr.models import (
    ExtractionResult,
    ExtractionState,
    ExtractOptions,
    ProcessorConfig,
)
from hybrid_ocr.preprocessing import PreprocessOptions, auto_options, preprocess
from hybrid_ocr.recovery import with_timeout
from hybrid_ocr.validation import ImageFile, validate_file

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _CallSettings:
    """ExtractOptions merged over ProcessorConfig for one call."""

    min_confidence: float
    min_text_length: int
    fallback_enabled: bool


class _StateTracker:
    """Debug trail of one call's state machine."""

    def __init__(self, name: str):
        self.name = name
        self.state = ExtractionState.IDLE

    def enter(self, state: ExtractionState) -> None:
        logger.debug("Extraction of %s: %s -> %s", self.name, self.state.value, state.value)
        self.state = state


class HybridProcessor:
    """Fast-then-accurate OCR processor with quality-gated fallback."""

    def __init__(
        self,
        fast_backend: BaseOCRBackend | None = None,
        accurate_backend: BaseOCRBackend | None = None,
        config: ProcessorConfig | None = None,
    ):
        """
        Initialize the HybridProcessor.

        Args:
            fast_backend: Fast OCR backend (default: TesseractBackend)
            accurate_backend: Accurate OCR backend (default: TrOCRBackend)
            config: Processor configuration
        """
        self.fast_backend = fast_backend or TesseractBackend()
        self.accurate_backend = accurate_backend or TrOCRBackend()
        self.config = config or ProcessorConfig()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def extract(
        self,
        file: ImageFile,
        options: ExtractOptions | None = None,
    ) -> ExtractionResult:
        """
        Extract text from an image using the fast/accurate fallback strategy.

        Args:
            file: Image bytes and declared MIME type
            options: Per-call overrides

        Returns:
            ExtractionResult with text and provenance

        Raises:
            OCRError: validation, decode or engine failure
        """
        options = options or ExtractOptions()
        settings = self._settings(options)
        tracker = _StateTracker(file.name)
        start_time = time.time()

        try:
            buffer = await self._load(file)

            if options.force_method is not None:
                return await self._extract_forced(buffer, options, tracker, start_time)

            tracker.enter(ExtractionState.RUNNING_FAST)
            fast_result: EngineResult | None = None
            fast_error: OCRError | None = None
            stages: list[str] = []
            try:
                fast_result, stages = await self._run_fast(buffer, options)
            except OCRError as e:
                fast_error = e
                logger.warning(
                    "%s failed for %s: %s",
                    self.fast_backend.name,
                    file.name,
                    e.message,
                )

            if fast_result is not None:
                if self.passes_quality_gate(fast_result, settings):
                    tracker.enter(ExtractionState.ACCEPTED)
                    tracker.enter(ExtractionState.DONE)
                    logger.info(
                        "%s accepted for %s (confidence=%.1f)",
                        self.fast_backend.name,
                        file.name,
                        fast_result.confidence,
                    )
                    return self._build_result(
                        text=fast_result.text,
                        method=EngineKind.FAST,
                        confidence=fast_result.confidence,
                        fallback_used=False,
                        start_time=start_time,
                        metadata={
                            "mode": "sequential",
                            "backend": self.fast_backend.name,
                            "preprocessing": stages,
                            "engine": fast_result.metadata,
                        },
                    )

                fast_error = ErrorFactory.low_quality(
                    fast_result.confidence, len(fast_result.text)
                )
                logger.warning(
                    "%s result for %s failed quality gate "
                    "(confidence=%.1f < %.1f or length=%d < %d)",
                    self.fast_backend.name,
                    file.name,
                    fast_result.confidence,
                    settings.min_confidence,
                    len(fast_result.text),
                    settings.min_text_length,
                )

            fast_confidence = fast_result.confidence if fast_result is not None else None

            if not settings.fallback_enabled:
                raise fast_error

            tracker.enter(ExtractionState.RUNNING_ACCURATE)
            try:
                accurate_result = await self._run_accurate(buffer, options)
            except OCRError as e:
                logger.error(
                    "Both engines failed for %s: fast=%s, accurate=%s",
                    file.name,
                    fast_error.code.value,
                    e.code.value,
                )
                raise ErrorFactory.both_engines_failed(fast_error, e, fast_confidence) from e

            tracker.enter(ExtractionState.DONE)
            logger.info(
                "%s fallback succeeded for %s after %s",
                self.accurate_backend.name,
                file.name,
                fast_error.code.value,
            )
            return self._build_result(
                text=accurate_result.text,
                method=EngineKind.ACCURATE,
                confidence=fast_confidence,
                fallback_used=True,
                start_time=start_time,
                metadata={
                    "mode": "sequential",
                    "backend": self.accurate_backend.name,
                    "fast_error": fast_error.to_dict(),
                    "engine": accurate_result.metadata,
                },
            )
        except OCRError:
            tracker.enter(ExtractionState.FAILED)
            raise

    async def extract_with_details(
        self,
        file: ImageFile,
        options: ExtractOptions | None = None,
    ) -> ExtractionResult:
        """Same as ``extract``; named for callers that disclose method and confidence."""
        return await self.extract(file, options)

    async def extract_text(
        self,
        file: ImageFile,
        options: ExtractOptions | None = None,
    ) -> str:
        """Extract and return only the text."""
        result = await self.extract(file, options)
        return result.text

    async def extract_parallel(
        self,
        file: ImageFile,
        options: ExtractOptions | None = None,
    ) -> ExtractionResult:
        """
        Run both engines concurrently and pick a result.

        The fast result wins if it passes the quality gate, otherwise the
        accurate result is used. Costs a full accurate run on every call.
        """
        options = options or ExtractOptions()
        if options.force_method is not None:
            return await self.extract(file, options)

        settings = self._settings(options)
        tracker = _StateTracker(file.name)
        start_time = time.time()

        try:
            buffer = await self._load(file)

            tracker.enter(ExtractionState.RUNNING_FAST)
            tracker.enter(ExtractionState.RUNNING_ACCURATE)
            fast_outcome, accurate_outcome = await asyncio.gather(
                self._run_fast(buffer, options),
                self._run_accurate(buffer, options),
                return_exceptions=True,
            )
            for outcome in (fast_outcome, accurate_outcome):
                if isinstance(outcome, BaseException) and not isinstance(outcome, OCRError):
                    raise outcome

            fast_result: EngineResult | None = None
            fast_error: OCRError | None = None
            stages: list[str] = []
            if isinstance(fast_outcome, OCRError):
                fast_error = fast_outcome
            else:
                fast_result, stages = fast_outcome
                if self.passes_quality_gate(fast_result, settings):
                    tracker.enter(ExtractionState.ACCEPTED)
                    tracker.enter(ExtractionState.DONE)
                    return self._build_result(
                        text=fast_result.text,
                        method=EngineKind.FAST,
                        confidence=fast_result.confidence,
                        fallback_used=False,
                        start_time=start_time,
                        metadata={
                            "mode": "parallel",
                            "backend": self.fast_backend.name,
                            "preprocessing": stages,
                            "engine": fast_result.metadata,
                        },
                    )
                fast_error = ErrorFactory.low_quality(
                    fast_result.confidence, len(fast_result.text)
                )

            fast_confidence = fast_result.confidence if fast_result is not None else None

            if isinstance(accurate_outcome, OCRError):
                logger.error("Both engines failed for %s in parallel mode", file.name)
                raise ErrorFactory.both_engines_failed(
                    fast_error, accurate_outcome, fast_confidence
                ) from accurate_outcome

            tracker.enter(ExtractionState.DONE)
            return self._build_result(
                text=accurate_outcome.text,
                method=EngineKind.ACCURATE,
                confidence=fast_confidence,
                fallback_used=True,
                start_time=start_time,
                metadata={
                    "mode": "parallel",
                    "backend": self.accurate_backend.name,
                    "fast_error": fast_error.to_dict(),
                    "engine": accurate_outcome.metadata,
                },
            )
        except OCRError:
            tracker.enter(ExtractionState.FAILED)
            raise

    def passes_quality_gate(
        self,
        result: EngineResult,
        settings: _CallSettings | None = None,
    ) -> bool:
        """Accept iff text is long enough AND confidence is high enough."""
        settings = settings or self._settings(ExtractOptions())
        return (
            len(result.text) >= settings.min_text_length
            and result.confidence >= settings.min_confidence
        )

    def dispose(self) -> None:
        """Release engine resources; the accurate model reloads on next use."""
        self.fast_backend.dispose()
        self.accurate_backend.dispose()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _settings(self, options: ExtractOptions) -> _CallSettings:
        def pick(value: Any, default: Any) -> Any:
            return default if value is None else value

        return _CallSettings(
            min_confidence=pick(options.min_confidence, self.config.min_confidence),
            min_text_length=pick(options.min_text_length, self.config.min_text_length),
            fallback_enabled=pick(options.fallback_enabled, self.config.fallback_enabled),
        )

    async def _load(self, file: ImageFile) -> PixelBuffer:
        """Validate before any decode, then decode off the event loop."""
        validate_file(file, self.config.max_file_size_bytes)
        return await asyncio.to_thread(decode_image, file.data)

    async def _extract_forced(
        self,
        buffer: PixelBuffer,
        options: ExtractOptions,
        tracker: _StateTracker,
        start_time: float,
    ) -> ExtractionResult:
        """Run only the requested engine, no quality gate and no fallback."""
        if options.force_method == EngineKind.FAST:
            tracker.enter(ExtractionState.RUNNING_FAST)
            result, stages = await self._run_fast(buffer, options)
            tracker.enter(ExtractionState.DONE)
            return self._build_result(
                text=result.text,
                method=EngineKind.FAST,
                confidence=result.confidence,
                fallback_used=False,
                start_time=start_time,
                metadata={
                    "mode": "forced",
                    "backend": self.fast_backend.name,
                    "preprocessing": stages,
                    "engine": result.metadata,
                },
            )

        tracker.enter(ExtractionState.RUNNING_ACCURATE)
        result = await self._run_accurate(buffer, options)
        tracker.enter(ExtractionState.DONE)
        return self._build_result(
            text=result.text,
            method=EngineKind.ACCURATE,
            confidence=None,
            fallback_used=False,
            start_time=start_time,
            metadata={
                "mode": "forced",
                "backend": self.accurate_backend.name,
                "engine": result.metadata,
            },
        )

    async def _run_fast(
        self,
        buffer: PixelBuffer,
        options: ExtractOptions,
    ) -> tuple[EngineResult, list[str]]:
        """Preprocess and recognize with the fast engine, both under its timeout."""

        async def run() -> tuple[EngineResult, list[str]]:
            prepared, stages = await asyncio.to_thread(self._prepare, buffer, options.preprocess)
            result = await self.fast_backend.recognize(prepared, on_progress=options.on_progress)
            return result, stages

        return await with_timeout(
            run(),
            self.config.fast_timeout,
            name=f"{self.fast_backend.name} OCR",
        )

    async def _run_accurate(
        self,
        buffer: PixelBuffer,
        options: ExtractOptions,
    ) -> EngineResult:
        """Recognize the un-preprocessed buffer with the accurate engine."""
        return await with_timeout(
            self.accurate_backend.recognize(buffer, on_progress=options.on_progress),
            self.config.accurate_timeout,
            name=f"{self.accurate_backend.name} OCR",
        )

    def _prepare(
        self,
        buffer: PixelBuffer,
        explicit: Optional[PreprocessOptions],
    ) -> tuple[PixelBuffer, list[str]]:
        if explicit is not None:
            return preprocess(buffer, explicit), explicit.enabled_stages()
        if self.config.auto_preprocess:
            chosen = auto_options(buffer)
            return preprocess(buffer, chosen), chosen.enabled_stages()
        return buffer, []

    @staticmethod
    def _build_result(
        text: str,
        method: EngineKind,
        confidence: float | None,
        fallback_used: bool,
        start_time: float,
        metadata: dict[str, Any],
    ) -> ExtractionResult:
        return ExtractionResult(
            text=text,
            method=method,
            confidence=confidence,
            fallback_used=fallback_used,
            duration_ms=int((time.time() - start_time) * 1000),
            metadata=metadata,
        )
