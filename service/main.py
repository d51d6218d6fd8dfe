"""
Hybrid OCR Service - FastAPI Application

Minimal REST API for image text extraction with quality-gated OCR fallback.
"""

import asyncio
import logging
import os
import time

from dotenv import load_dotenv
from fastapi import FastAPI, File, HTTPException, Query, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel

load_dotenv()
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

from hybrid_ocr import (
    EngineKind,
    ErrorCode,
    ErrorFactory,
    ExtractOptions,
    HybridProcessor,
    ImageFile,
    MethodRouter,
    OCRError,
    ProcessorConfig,
    __version__,
    check_runtime_support,
)
from hybrid_ocr.backends import BaseOCRBackend, GeminiBackend, TesseractBackend, TrOCRBackend

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Hybrid OCR Service",
    description="Image text extraction with fast OCR and neural fallback",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Initialize OCR backends and processor lazily (model loads on first use)
_fast_backend: TesseractBackend | None = None
_accurate_backend: BaseOCRBackend | None = None
_processor: HybridProcessor | None = None

ERROR_STATUS_CODES = {
    ErrorCode.FILE_TOO_LARGE: 413,
    ErrorCode.FILE_INVALID_TYPE: 415,
    ErrorCode.FILE_CORRUPTED: 422,
    ErrorCode.IMAGE_LOAD_FAILED: 422,
    ErrorCode.OCR_NO_TEXT_FOUND: 422,
    ErrorCode.OCR_LOW_QUALITY: 422,
    ErrorCode.OCR_TIMEOUT: 504,
    ErrorCode.RUNTIME_NOT_SUPPORTED: 503,
    ErrorCode.MODEL_LOAD_FAILED: 503,
    ErrorCode.NETWORK_ERROR: 503,
}


def _create_accurate_backend() -> BaseOCRBackend:
    """Pick the accurate engine from HYBRID_OCR_ACCURATE_ENGINE (trocr or gemini)."""
    engine = os.getenv("HYBRID_OCR_ACCURATE_ENGINE", "trocr").strip().lower()
    if engine == "gemini":
        return GeminiBackend()
    if engine != "trocr":
        logger.warning("Unknown HYBRID_OCR_ACCURATE_ENGINE %r, using trocr", engine)
    return TrOCRBackend()


def _get_backends() -> tuple[TesseractBackend, BaseOCRBackend]:
    global _fast_backend, _accurate_backend

    if _fast_backend is None:
        _fast_backend = TesseractBackend()
    if _accurate_backend is None:
        _accurate_backend = _create_accurate_backend()
    return _fast_backend, _accurate_backend


def get_processor() -> HybridProcessor:
    """Get or create the shared HybridProcessor."""
    global _processor

    if _processor is None:
        fast, accurate = _get_backends()
        _processor = HybridProcessor(
            fast_backend=fast,
            accurate_backend=accurate,
            config=ProcessorConfig.from_env(),
        )

    return _processor


# ============================================================================
# Pydantic Models
# ============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "healthy"
    version: str = __version__
    uptime_seconds: float
    runtime_supported: bool = True
    backends: dict[str, bool] = {}


class ExtractionResponse(BaseModel):
    """Text extraction response."""

    success: bool
    file_name: str
    text: str
    word_count: int
    method: str
    confidence: float | None = None
    fallback_used: bool
    duration_ms: int
    metadata: dict = {}


class EstimateResponse(BaseModel):
    """Engine pre-selection response."""

    method: str
    estimated_time_seconds: float
    fallback_possible: bool
    reasoning: str


class DisposeResponse(BaseModel):
    """Accurate engine teardown response."""

    success: bool = True
    backend: str
    was_loaded: bool


# ============================================================================
# Global state
# ============================================================================

_start_time = time.time()


# ============================================================================
# Endpoints
# ============================================================================


@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check():
    """Health check endpoint for container orchestration."""
    processor = get_processor()

    backends = {
        "fast": await asyncio.to_thread(processor.fast_backend.is_available),
        "accurate": await asyncio.to_thread(processor.accurate_backend.is_available),
    }

    try:
        check_runtime_support()
        runtime_supported = True
    except OCRError as e:
        logger.warning("Image runtime incomplete: %s", e.message)
        runtime_supported = False

    return HealthResponse(
        status="healthy",
        version=__version__,
        uptime_seconds=time.time() - _start_time,
        runtime_supported=runtime_supported,
        backends=backends,
    )


@app.get("/", tags=["System"])
async def root():
    """Root endpoint with API info."""
    return {
        "service": "hybrid-ocr",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }


@app.get("/api/v1/estimate", response_model=EstimateResponse, tags=["Extraction"])
async def estimate(
    size_bytes: int = Query(..., ge=0, description="File size in bytes"),
    mime_type: str = Query(..., description="Declared MIME type, e.g. image/png"),
):
    """
    Estimate which engine would handle a file, without processing it.

    The answer is advisory; the quality gate still decides at extraction time.
    """
    processor = get_processor()
    router = MethodRouter(
        fast_backend=processor.fast_backend,
        accurate_backend=processor.accurate_backend,
    )
    # Availability probes can shell out to tesseract
    decision = await asyncio.to_thread(router.route, size_bytes, mime_type)

    return EstimateResponse(
        method=decision.method.value,
        estimated_time_seconds=decision.estimated_time_seconds,
        fallback_possible=decision.fallback_possible,
        reasoning=decision.reasoning,
    )


@app.post("/api/v1/extract", response_model=ExtractionResponse, tags=["Extraction"])
async def extract_text(
    file: UploadFile = File(..., description="PNG, JPEG or WEBP image"),
    min_confidence: float | None = Query(
        default=None,
        ge=0,
        le=100,
        description="Quality gate confidence threshold (default: 60)",
    ),
    min_text_length: int | None = Query(
        default=None,
        ge=0,
        description="Quality gate minimum text length (default: 3)",
    ),
    method: str = Query(
        default="auto",
        description="Engine selection: auto, fast, accurate",
        pattern="^(auto|fast|accurate)$",
    ),
    mode: str = Query(
        default="sequential",
        description="sequential (fallback) or parallel (both engines at once)",
        pattern="^(sequential|parallel)$",
    ),
):
    """
    Extract text from an image.

    **Method options:**
    - **auto**: Fast engine first, accurate engine if quality is too low (default)
    - **fast**: Fast engine only, no quality gate
    - **accurate**: Accurate engine only

    **Mode options** (auto only):
    - **sequential**: Accurate engine only runs when needed (default)
    - **parallel**: Both engines run at once, the fast result wins if it passes
    """
    processor = get_processor()
    max_size = processor.config.max_file_size_bytes
    if file.size is not None and file.size > max_size:
        raise ErrorFactory.file_too_large(file.size, max_size)

    content = await file.read()
    image = ImageFile(
        data=content,
        mime_type=file.content_type or "",
        name=file.filename or "upload",
    )

    options = ExtractOptions(
        min_confidence=min_confidence,
        min_text_length=min_text_length,
        force_method=None if method == "auto" else EngineKind(method),
    )

    if mode == "parallel":
        result = await processor.extract_parallel(image, options)
    else:
        result = await processor.extract(image, options)

    return ExtractionResponse(
        success=True,
        file_name=image.name,
        text=result.text,
        word_count=len(result.text.split()),
        method=result.method.value,
        confidence=result.confidence,
        fallback_used=result.fallback_used,
        duration_ms=result.duration_ms,
        metadata=result.metadata,
    )


@app.post(
    "/api/v1/engines/accurate/dispose",
    response_model=DisposeResponse,
    tags=["System"],
)
async def dispose_accurate_engine():
    """Release the accurate engine's model; it reloads on the next request."""
    processor = get_processor()
    backend = processor.accurate_backend
    was_loaded = bool(getattr(backend, "is_loaded", False))
    processor.dispose()

    return DisposeResponse(backend=backend.name, was_loaded=was_loaded)


# ============================================================================
# Error handlers
# ============================================================================


@app.exception_handler(OCRError)
async def ocr_error_handler(request, exc: OCRError):
    """Map the OCR error taxonomy onto HTTP status codes."""
    status_code = ERROR_STATUS_CODES.get(exc.code, 500)
    if status_code >= 500:
        logger.error("Extraction failed: %s", exc.message)
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": exc.to_dict()},
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    """Custom HTTP exception handler."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    """General exception handler."""
    logger.exception("Unhandled error")
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error", "detail": str(exc)},
    )
