"""
TrOCR Backend
=============

Accurate, model-based OCR using Microsoft's TrOCR through Hugging Face
transformers. The processor and model are loaded once on first use and
shared by every later call until ``dispose()``.

Requires the ``neural`` extra (transformers, torch).
"""

import importlib.util
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Optional

from ..decoder import PixelBuffer
from ..errors import ErrorCode, ErrorFactory, OCRError
from .base import EngineKind, EngineResult, ModelBackedBackend, ProgressReporter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrOCRModel:
    """Loaded processor/model pair."""

    processor: Any
    model: Any


class TrOCRBackend(ModelBackedBackend):
    """
    OCR backend using a TrOCR vision encoder-decoder model.

    Good for:
    - Handwriting and stylized fonts
    - Noisy photos where Tesseract gives up

    Environment variables:
        TROCR_MODEL: Hugging Face model id (default: microsoft/trocr-base-printed)
    """

    DEFAULT_MODEL = "microsoft/trocr-base-printed"

    kind = EngineKind.ACCURATE

    def __init__(
        self,
        model_name: Optional[str] = None,
        max_new_tokens: int = 256,
    ):
        """
        Initialize TrOCR backend. Nothing is loaded until the first call.

        Args:
            model_name: Hugging Face model id (or TROCR_MODEL env var)
            max_new_tokens: Upper bound on generated tokens per image
        """
        super().__init__(name="TrOCR")
        self.model_name = model_name or os.getenv("TROCR_MODEL", self.DEFAULT_MODEL)
        self.max_new_tokens = max_new_tokens

    def is_available(self) -> bool:
        """Check if transformers and torch are installed, without importing them."""
        return all(
            importlib.util.find_spec(module) is not None
            for module in ("torch", "transformers")
        )

    def _load_handle(self) -> TrOCRModel:
        try:
            import torch  # noqa: F401
            from transformers import TrOCRProcessor, VisionEncoderDecoderModel
        except ImportError as e:
            raise ErrorFactory.runtime_not_supported(
                "transformers and torch (install the 'neural' extra)"
            ) from e

        start_time = time.time()
        logger.info("Loading TrOCR model %s", self.model_name)
        try:
            processor = TrOCRProcessor.from_pretrained(self.model_name)
            model = VisionEncoderDecoderModel.from_pretrained(self.model_name)
        except Exception as e:
            raise self._load_error(e) from e

        model.eval()
        logger.info(
            "TrOCR model %s loaded in %.0fms",
            self.model_name,
            (time.time() - start_time) * 1000,
        )
        return TrOCRModel(processor=processor, model=model)

    def _load_error(self, error: Exception) -> OCRError:
        """Network failures during download stay NETWORK_ERROR, the rest is a load failure."""
        translated = ErrorFactory.from_error(error, context=self.name)
        if translated.code in (ErrorCode.NETWORK_ERROR, ErrorCode.OUT_OF_MEMORY):
            return translated
        return ErrorFactory.model_load_failed(self.model_name, error)

    def extract_text(
        self,
        image: PixelBuffer,
        progress: ProgressReporter,
        **kwargs: Any,
    ) -> EngineResult:
        """
        Recognize text with TrOCR.

        Confidence is the mean probability of the generated tokens, scaled
        to 0-100.
        """
        start_time = time.time()
        max_new_tokens = kwargs.get("max_new_tokens", self.max_new_tokens)

        progress("Loading model", 0)
        loaded = self.handle
        progress("Model ready", 30)

        import torch

        pixel_values = loaded.processor(
            images=image.to_image().convert("RGB"),
            return_tensors="pt",
        ).pixel_values
        progress("Recognizing text", 40)

        with torch.no_grad():
            outputs = loaded.model.generate(
                pixel_values,
                max_new_tokens=max_new_tokens,
                output_scores=True,
                return_dict_in_generate=True,
            )
        progress("Recognizing text", 90)

        text = loaded.processor.batch_decode(outputs.sequences, skip_special_tokens=True)[0]
        confidence = self._sequence_confidence(loaded.model, outputs)

        processing_time = (time.time() - start_time) * 1000
        progress("Done", 100)

        logger.info(
            "TrOCR completed: model=%s, words=%d, confidence=%.1f, time=%.0fms",
            self.model_name,
            len(text.split()),
            confidence,
            processing_time,
        )

        return EngineResult(
            text=text,
            confidence=confidence,
            metadata={
                "backend": "trocr",
                "model": self.model_name,
                "processing_time_ms": processing_time,
            },
        )

    @staticmethod
    def _sequence_confidence(model: Any, outputs: Any) -> float:
        import torch

        if not outputs.scores:
            return 0.0
        scores = model.compute_transition_scores(
            outputs.sequences, outputs.scores, normalize_logits=True
        )
        probabilities = torch.exp(scores[0])
        return float(probabilities.mean().item()) * 100
