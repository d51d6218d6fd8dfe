"""
Data Models for Hybrid OCR
==========================

Shared configuration, per-call options and results for the hybrid processor.
"""

import os
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Optional

from hybrid_ocr.backends.base import EngineKind, ProgressCallback
from hybrid_ocr.preprocessing import PreprocessOptions
from hybrid_ocr.validation import MAX_FILE_SIZE_BYTES


class ExtractionState(Enum):
    """States of one extraction call."""

    IDLE = "idle"
    RUNNING_FAST = "running_fast"
    ACCEPTED = "accepted"
    RUNNING_ACCURATE = "running_accurate"
    DONE = "done"
    FAILED = "failed"


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ProcessorConfig:
    """Configuration for HybridProcessor."""

    min_confidence: float = 60.0
    min_text_length: int = 3
    fast_timeout: float = 60.0        # seconds
    accurate_timeout: float = 120.0   # seconds, includes one-time model load
    fallback_enabled: bool = True
    auto_preprocess: bool = True
    max_file_size_bytes: int = MAX_FILE_SIZE_BYTES

    @classmethod
    def from_env(cls) -> "ProcessorConfig":
        """
        Build a config from HYBRID_OCR_* environment variables.

        Unset variables keep their defaults.
        """
        config = cls()
        if value := os.getenv("HYBRID_OCR_MIN_CONFIDENCE"):
            config.min_confidence = float(value)
        if value := os.getenv("HYBRID_OCR_MIN_TEXT_LENGTH"):
            config.min_text_length = int(value)
        if value := os.getenv("HYBRID_OCR_FAST_TIMEOUT"):
            config.fast_timeout = float(value)
        if value := os.getenv("HYBRID_OCR_ACCURATE_TIMEOUT"):
            config.accurate_timeout = float(value)
        if value := os.getenv("HYBRID_OCR_FALLBACK_ENABLED"):
            config.fallback_enabled = _env_bool(value)
        return config


@dataclass(frozen=True)
class ExtractOptions:
    """
    Per-call options. ``None`` fields inherit from ``ProcessorConfig``.

    Attributes:
        min_confidence: Quality gate confidence threshold (0-100)
        min_text_length: Quality gate minimum text length
        force_method: Run only this engine and skip the quality gate
        fallback_enabled: Allow the accurate engine after a gate failure
        preprocess: Explicit preprocessing; None uses auto mode when enabled
        on_progress: Progress sink ``(status, percent)``. It is called from the
            engine worker thread, not the event loop; asyncio callers must hand
            updates over with ``loop.call_soon_threadsafe``
    """

    min_confidence: Optional[float] = None
    min_text_length: Optional[int] = None
    force_method: Optional[EngineKind] = None
    fallback_enabled: Optional[bool] = None
    preprocess: Optional[PreprocessOptions] = None
    on_progress: Optional[ProgressCallback] = None


@dataclass(frozen=True)
class ExtractionResult:
    """Final outcome of one extraction call."""

    text: str
    method: EngineKind
    confidence: Optional[float]
    fallback_used: bool
    duration_ms: int
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["method"] = self.method.value
        return data
