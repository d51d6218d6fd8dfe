"""
Test Configuration and Fixtures for hybrid-ocr

This module provides shared fixtures, markers, and configuration for all tests.
"""

import asyncio
import io
import tempfile
import threading
from pathlib import Path
from typing import Any, Generator

import numpy as np
import pytest
from PIL import Image

from hybrid_ocr import ErrorFactory, ImageFile, PixelBuffer
from hybrid_ocr.backends.base import (
    BaseOCRBackend,
    EngineKind,
    EngineResult,
    ModelBackedBackend,
    ProgressReporter,
)


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, no external deps)")
    config.addinivalue_line("markers", "integration: Integration tests (full pipeline, mocked engines)")
    config.addinivalue_line("markers", "performance: Performance benchmark tests")
    config.addinivalue_line("markers", "slow: Slow tests (skip with -m 'not slow')")
    config.addinivalue_line("markers", "api: API/service tests")


# =============================================================================
# Path Fixtures
# =============================================================================

@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory(prefix="hybrid_ocr_test_") as tmpdir:
        yield Path(tmpdir)


# =============================================================================
# Image Fixtures
# =============================================================================

def encode_image(image: Image.Image, fmt: str = "PNG") -> bytes:
    """Encode a PIL image to bytes."""
    out = io.BytesIO()
    image.save(out, format=fmt)
    return out.getvalue()


def solid_buffer(width: int, height: int, rgb: tuple[int, int, int], alpha: int = 255) -> PixelBuffer:
    """PixelBuffer filled with one color."""
    samples = np.empty((height, width, 4), dtype=np.uint8)
    samples[..., :3] = rgb
    samples[..., 3] = alpha
    return PixelBuffer(width, height, samples)


@pytest.fixture
def create_image_bytes():
    """Factory fixture to create encoded image bytes."""
    def _create(
        width: int = 120,
        height: int = 60,
        color: tuple[int, int, int] = (255, 255, 255),
        fmt: str = "PNG",
    ) -> bytes:
        image = Image.new("RGB", (width, height), color=color)
        # A dark block so the image is not uniform
        for x in range(width // 4, width // 2):
            for y in range(height // 4, height // 2):
                image.putpixel((x, y), (0, 0, 0))
        return encode_image(image, fmt)
    return _create


@pytest.fixture
def create_image_file(create_image_bytes):
    """Factory fixture to create an ImageFile."""
    def _create(mime_type: str = "image/png", name: str = "scan.png", **kwargs) -> ImageFile:
        fmt = {"image/jpeg": "JPEG", "image/webp": "WEBP"}.get(mime_type, "PNG")
        return ImageFile(data=create_image_bytes(fmt=fmt, **kwargs), mime_type=mime_type, name=name)
    return _create


@pytest.fixture
def png_file(create_image_file) -> ImageFile:
    """A small valid PNG upload."""
    return create_image_file()


@pytest.fixture
def gradient_buffer() -> PixelBuffer:
    """64x48 buffer with a horizontal gradient and varying color."""
    x = np.linspace(0, 255, 64)
    samples = np.zeros((48, 64, 4), dtype=np.uint8)
    samples[..., 0] = np.rint(x).astype(np.uint8)
    samples[..., 1] = np.rint(255 - x).astype(np.uint8)
    samples[..., 2] = 128
    samples[..., 3] = 255
    return PixelBuffer(64, 48, samples)


@pytest.fixture
def noisy_buffer() -> PixelBuffer:
    """Deterministic random RGBA noise."""
    rng = np.random.default_rng(1234)
    samples = rng.integers(0, 256, size=(40, 50, 4), dtype=np.uint8)
    return PixelBuffer(50, 40, samples)


# =============================================================================
# Mock Backends
# =============================================================================

class MockOCRBackend(BaseOCRBackend):
    """Mock OCR backend with call tracking."""

    def __init__(
        self,
        name: str = "MockOCR",
        kind: EngineKind = EngineKind.FAST,
        available: bool = True,
        return_text: str = "Mock OCR Text",
        confidence: float = 90.0,
        error: BaseException | None = None,
        delay: float = 0.0,
    ):
        super().__init__(name)
        self.kind = kind
        self._available = available
        self._return_text = return_text
        self._confidence = confidence
        self._error = error
        self._delay = delay
        self.extract_calls: list[PixelBuffer] = []  # Track calls for verification
        self.dispose_calls = 0

    def is_available(self) -> bool:
        return self._available

    def extract_text(
        self,
        image: PixelBuffer,
        progress: ProgressReporter,
        **kwargs: Any,
    ) -> EngineResult:
        self.extract_calls.append(image)
        progress("Recognizing text", 50)

        if self._error is not None:
            raise self._error

        progress("Done", 100)
        return EngineResult(text=self._return_text, confidence=self._confidence)

    async def recognize(self, image, on_progress=None, **kwargs):
        if self._delay:
            await asyncio.sleep(self._delay)
        return await super().recognize(image, on_progress=on_progress, **kwargs)

    def dispose(self) -> None:
        self.dispose_calls += 1


class MockModelBackend(ModelBackedBackend):
    """Model-backed mock that counts handle loads."""

    def __init__(self, load_delay: float = 0.0, fail_loads: int = 0):
        super().__init__(name="MockModel")
        self.load_count = 0
        self._load_delay = load_delay
        self._fail_loads = fail_loads
        self._count_lock = threading.Lock()

    def _load_handle(self) -> Any:
        import time

        with self._count_lock:
            self.load_count += 1
            attempt = self.load_count
        time.sleep(self._load_delay)
        if attempt <= self._fail_loads:
            raise ErrorFactory.model_load_failed("mock-model", "download interrupted")
        return object()

    def is_available(self) -> bool:
        return True

    def extract_text(self, image, progress, **kwargs) -> EngineResult:
        handle = self.handle
        return EngineResult(text="Model text", confidence=80.0, metadata={"handle": id(handle)})


@pytest.fixture
def fast_backend() -> MockOCRBackend:
    """Fast backend returning confident text."""
    return MockOCRBackend(name="MockFast", return_text="INVOICE #1234", confidence=85.0)


@pytest.fixture
def accurate_backend() -> MockOCRBackend:
    """Accurate backend returning text."""
    return MockOCRBackend(
        name="MockAccurate",
        kind=EngineKind.ACCURATE,
        return_text="Thank you for your purchase",
        confidence=97.0,
    )


# =============================================================================
# Environment Fixtures
# =============================================================================

@pytest.fixture
def tesseract_available() -> bool:
    """Check if Tesseract is available."""
    from hybrid_ocr.backends import TesseractBackend

    return TesseractBackend().is_available()


@pytest.fixture
def skip_if_no_tesseract(tesseract_available):
    """Skip test if Tesseract is not available."""
    if not tesseract_available:
        pytest.skip("Tesseract not installed or not accessible")


# =============================================================================
# Factory Fixtures
# =============================================================================

@pytest.fixture
def make_backend():
    """Factory for MockOCRBackend instances."""
    return MockOCRBackend


@pytest.fixture
def make_model_backend():
    """Factory for MockModelBackend instances."""
    return MockModelBackend


@pytest.fixture
def make_solid_buffer():
    """Factory for single-color PixelBuffers."""
    return solid_buffer


@pytest.fixture
def performance_timer():
    """Simple performance timer context manager."""
    import time

    class Timer:
        def __init__(self):
            self.start_time = None
            self.end_time = None
            self.elapsed_ms = None

        def __enter__(self):
            self.start_time = time.perf_counter()
            return self

        def __exit__(self, *args):
            self.end_time = time.perf_counter()
            self.elapsed_ms = (self.end_time - self.start_time) * 1000

    return Timer
