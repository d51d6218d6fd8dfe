"""
Method Router for Hybrid OCR
============================

Pre-selects an engine from file metadata alone, without decoding or running
anything. The decision is advisory: the processor's quality gate still
decides whether the accurate engine runs.

Usage:
    from hybrid_ocr import MethodRouter, estimate_best_method

    estimate_best_method(2_000_000, "image/png")   # EngineKind.FAST

    router = MethodRouter()
    decision = router.route(2_000_000, "image/png")
    print(decision.reasoning)
    print(f"Estimated time: {decision.estimated_time_seconds:.1f}s")

Routing Matrix:
    | Input                    | Engine | Why                             |
    |--------------------------|--------|---------------------------------|
    | > 10 MB                  | FAST   | lighter on memory               |
    | PNG / JPEG               | FAST   | documents, usually clean        |
    | anything else            | FAST   | fallback covers poor results    |
"""

from dataclasses import dataclass

from hybrid_ocr.backends.base import BaseOCRBackend, EngineKind
from hybrid_ocr.validation import normalize_mime_type

LARGE_FILE_BYTES = 10 * 1024 * 1024
DOCUMENT_MIME_TYPES = ("image/png", "image/jpeg", "image/jpg")


def estimate_best_method(size_bytes: int, mime_type: str) -> EngineKind:
    """
    Pure heuristic engine choice for a file of this size and type.

    Every branch currently picks the fast engine; the accurate engine is
    reached through fallback instead.
    """
    if size_bytes > LARGE_FILE_BYTES:
        return EngineKind.FAST

    if normalize_mime_type(mime_type) in DOCUMENT_MIME_TYPES:
        return EngineKind.FAST

    return EngineKind.FAST


@dataclass
class RoutingDecision:
    """Routing decision from MethodRouter.route()."""
    method: EngineKind
    size_bytes: int
    mime_type: str
    estimated_time_seconds: float     # Fast run plus expected fallback share
    fallback_possible: bool
    reasoning: str = ""               # Human-readable explanation


class MethodRouter:
    """
    Explains and times the engine choice made by ``estimate_best_method``.

    Attributes:
        fast_backend: Fast OCR backend (optional)
        accurate_backend: Accurate OCR backend (optional)
        time_per_mb_fast: Fast engine seconds per MB (default: 0.5)
        time_per_mb_accurate: Accurate engine seconds per MB (default: 4.0)
        fallback_rate: Expected share of calls that fall back (default: 0.2)
    """

    DEFAULT_TIME_PER_MB_FAST = 0.5       # seconds
    DEFAULT_TIME_PER_MB_ACCURATE = 4.0   # seconds
    DEFAULT_FALLBACK_RATE = 0.2

    def __init__(
        self,
        fast_backend: BaseOCRBackend | None = None,
        accurate_backend: BaseOCRBackend | None = None,
        time_per_mb_fast: float = DEFAULT_TIME_PER_MB_FAST,
        time_per_mb_accurate: float = DEFAULT_TIME_PER_MB_ACCURATE,
        fallback_rate: float = DEFAULT_FALLBACK_RATE,
    ) -> None:
        self.fast_backend = fast_backend
        self.accurate_backend = accurate_backend
        self.time_per_mb_fast = time_per_mb_fast
        self.time_per_mb_accurate = time_per_mb_accurate
        self.fallback_rate = fallback_rate

    def route(self, size_bytes: int, mime_type: str) -> RoutingDecision:
        """
        Recommend an engine for a file.

        Args:
            size_bytes: File size in bytes
            mime_type: Declared MIME type

        Returns:
            RoutingDecision with method, time estimate and reasoning
        """
        method = estimate_best_method(size_bytes, mime_type)

        fallback_possible = self._backend_available(self.accurate_backend)
        if method == EngineKind.FAST and self.fast_backend is not None:
            if not self.fast_backend.is_available() and fallback_possible:
                method = EngineKind.ACCURATE

        return RoutingDecision(
            method=method,
            size_bytes=size_bytes,
            mime_type=mime_type,
            estimated_time_seconds=self.estimate_time(size_bytes, method, fallback_possible),
            fallback_possible=fallback_possible and method == EngineKind.FAST,
            reasoning=self._generate_reasoning(size_bytes, mime_type, method, fallback_possible),
        )

    def estimate_time(
        self,
        size_bytes: int,
        method: EngineKind,
        fallback_possible: bool = True,
    ) -> float:
        """Expected processing seconds, weighting the fallback by its rate."""
        size_mb = max(size_bytes, 0) / (1024 * 1024)
        accurate_time = size_mb * self.time_per_mb_accurate
        if method == EngineKind.ACCURATE:
            return accurate_time

        fast_time = size_mb * self.time_per_mb_fast
        if fallback_possible:
            return fast_time + self.fallback_rate * accurate_time
        return fast_time

    @staticmethod
    def _backend_available(backend: BaseOCRBackend | None) -> bool:
        # Unknown backends are assumed present
        return backend is None or backend.is_available()

    def _generate_reasoning(
        self,
        size_bytes: int,
        mime_type: str,
        method: EngineKind,
        fallback_possible: bool,
    ) -> str:
        parts = [f"Size: {size_bytes / 1024 / 1024:.1f}MB", f"Type: {mime_type or 'unknown'}"]

        if method == EngineKind.ACCURATE:
            parts.append("Fast engine unavailable, using accurate engine")
        elif size_bytes > LARGE_FILE_BYTES:
            parts.append("Large file, fast engine uses less memory")
        elif normalize_mime_type(mime_type) in DOCUMENT_MIME_TYPES:
            parts.append("Document image, fast engine is usually sufficient")
        else:
            parts.append("Fast engine first")

        if method == EngineKind.FAST:
            parts.append("fallback available" if fallback_possible else "no fallback")

        return " | ".join(parts)
