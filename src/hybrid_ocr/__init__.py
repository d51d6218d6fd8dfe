"""
Hybrid OCR
==========

Image-to-text extraction that pairs a fast local OCR engine with a slower,
more accurate neural engine and picks between them by output quality.

Features:
- Deterministic preprocessing (grayscale, contrast, sharpen, Otsu binarize, ...)
- Auto preprocessing tuned from the image's own brightness and size
- Quality-gated fallback from Tesseract to TrOCR (or Gemini)
- Per-engine timeouts and a closed, user-facing error taxonomy

Basic Usage:
    import asyncio
    from hybrid_ocr import HybridProcessor, ImageFile

    processor = HybridProcessor()
    result = asyncio.run(processor.extract(ImageFile.from_path("receipt.jpg")))
    print(result.text, result.method, result.fallback_used)

Advanced Usage:
    from hybrid_ocr import ExtractOptions, HybridProcessor, PreprocessOptions
    from hybrid_ocr.backends import GeminiBackend, TesseractBackend

    processor = HybridProcessor(
        fast_backend=TesseractBackend(lang="deu+eng"),
        accurate_backend=GeminiBackend(api_key="..."),
    )
    options = ExtractOptions(
        min_confidence=75,
        preprocess=PreprocessOptions.document_defaults(),
    )
    result = await processor.extract(image_file, options)
"""

__version__ = "0.1.0"

from .backends import EngineKind, EngineResult
from .decoder import PixelBuffer, decode_image, encode_png
from .errors import ErrorCode, ErrorFactory, OCRError
from .models import ExtractionResult, ExtractionState, ExtractOptions, ProcessorConfig
from .preprocessing import PreprocessOptions, auto_options, auto_preprocess, preprocess
from .processor import HybridProcessor
from .recovery import retry_with_backoff, with_timeout
from .router import MethodRouter, RoutingDecision, estimate_best_method
from .validation import ImageFile, check_runtime_support, validate_file

__all__ = [
    # Version
    "__version__",
    # Errors
    "ErrorCode",
    "ErrorFactory",
    "OCRError",
    "retry_with_backoff",
    "with_timeout",
    # Input
    "ImageFile",
    "PixelBuffer",
    "check_runtime_support",
    "decode_image",
    "encode_png",
    "validate_file",
    # Preprocessing
    "PreprocessOptions",
    "auto_options",
    "auto_preprocess",
    "preprocess",
    # Routing
    "MethodRouter",
    "RoutingDecision",
    "estimate_best_method",
    # Processing
    "EngineKind",
    "EngineResult",
    "ExtractionResult",
    "ExtractionState",
    "ExtractOptions",
    "HybridProcessor",
    "ProcessorConfig",
]
