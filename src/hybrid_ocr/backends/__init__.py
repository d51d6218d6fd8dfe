"""
OCR Backends
============

Engine adapters behind one async contract.

Available Backends:
- TesseractBackend: Local Tesseract OCR (fast engine, offline, free)
- TrOCRBackend: Transformer OCR via Hugging Face (accurate engine, local model)
- GeminiBackend: LLM-based OCR via Google Gemini API (alternative accurate engine)

Usage:
    from hybrid_ocr.backends import GeminiBackend, TesseractBackend, TrOCRBackend

    # Fast local engine
    tesseract = TesseractBackend(lang="eng")
    if tesseract.is_available():
        result = await tesseract.recognize(buffer)

    # Accurate engine, model loaded once on first call
    trocr = TrOCRBackend()
    result = await trocr.recognize(buffer)
    trocr.dispose()  # free the model

    # LLM-based OCR via Gemini (native multimodal)
    gemini = GeminiBackend(api_key="...")
    if gemini.is_available():
        result = await gemini.recognize(buffer)
"""

from .base import (
    BaseOCRBackend,
    EngineKind,
    EngineResult,
    LazyHandle,
    ModelBackedBackend,
    ProgressCallback,
    ProgressReporter,
)
from .gemini import GeminiBackend, GeminiRetryableError
from .tesseract import TesseractBackend
from .trocr import TrOCRBackend

__all__ = [
    "BaseOCRBackend",
    "ModelBackedBackend",
    "EngineKind",
    "EngineResult",
    "LazyHandle",
    "ProgressCallback",
    "ProgressReporter",
    "GeminiBackend",
    "GeminiRetryableError",
    "TesseractBackend",
    "TrOCRBackend",
]
