"""
Unit Tests for BaseOCRBackend and Related Classes

Test Coverage:
- EngineKind enum
- EngineResult dataclass
- ProgressReporter clamping and monotonicity
- LazyHandle single-flight initialization
- BaseOCRBackend.recognize error translation and result validation
"""

import asyncio
import threading

import pytest

from hybrid_ocr.backends.base import (
    EngineKind,
    EngineResult,
    LazyHandle,
    ProgressReporter,
)
from hybrid_ocr.errors import ErrorCode, ErrorFactory, OCRError


# =============================================================================
# Test: EngineKind / EngineResult
# =============================================================================

class TestEngineKind:
    """Tests for EngineKind enum."""

    @pytest.mark.unit
    def test_values(self):
        assert EngineKind.FAST.value == "fast"
        assert EngineKind.ACCURATE.value == "accurate"
        assert EngineKind("accurate") is EngineKind.ACCURATE


class TestEngineResult:
    """Tests for EngineResult dataclass."""

    @pytest.mark.unit
    def test_defaults(self):
        result = EngineResult(text="Hello", confidence=88.0)
        assert result.metadata == {}

    @pytest.mark.unit
    def test_immutable(self):
        result = EngineResult(text="Hello", confidence=88.0)
        with pytest.raises(AttributeError):
            result.text = "changed"


# =============================================================================
# Test: ProgressReporter
# =============================================================================

class TestProgressReporter:
    """Tests for ProgressReporter."""

    @pytest.mark.unit
    def test_clamps_and_never_decreases(self):
        seen = []
        reporter = ProgressReporter(lambda status, pct: seen.append(pct))

        for value in (-10, 20, 10, 55.6, 250):
            reporter("working", value)

        assert seen == [0, 20, 20, 56, 100]
        assert reporter.last_percent == 100

    @pytest.mark.unit
    def test_no_callback_is_noop(self):
        ProgressReporter(None)("working", 50)

    @pytest.mark.unit
    def test_callback_errors_are_logged_not_raised(self, caplog):
        def broken(status, pct):
            raise RuntimeError("ui went away")

        ProgressReporter(broken)("working", 10)

        assert "Progress callback raised" in caplog.text


# =============================================================================
# Test: LazyHandle
# =============================================================================

class TestLazyHandle:
    """Tests for LazyHandle single-flight initialization."""

    @pytest.mark.unit
    def test_loads_once_and_caches(self):
        calls = []
        handle = LazyHandle(lambda: calls.append(1) or object())

        first = handle.get()
        second = handle.get()

        assert first is second
        assert len(calls) == 1
        assert handle.is_loaded

    @pytest.mark.unit
    def test_concurrent_first_calls_share_one_load(self):
        calls = []
        started = threading.Event()

        def loader():
            calls.append(1)
            started.wait(0.2)
            return object()

        handle = LazyHandle(loader)
        results = []
        threads = [threading.Thread(target=lambda: results.append(handle.get())) for _ in range(8)]
        for thread in threads:
            thread.start()
        started.set()
        for thread in threads:
            thread.join()

        assert len(calls) == 1
        assert all(result is results[0] for result in results)

    @pytest.mark.unit
    def test_dispose_forces_reload(self):
        handle = LazyHandle(object)
        first = handle.get()

        handle.dispose()

        assert not handle.is_loaded
        assert handle.get() is not first

    @pytest.mark.unit
    def test_failed_load_leaves_handle_empty(self):
        attempts = []

        def loader():
            attempts.append(1)
            if len(attempts) == 1:
                raise ErrorFactory.network_error("offline")
            return "model"

        handle = LazyHandle(loader)
        with pytest.raises(OCRError):
            handle.get()

        assert not handle.is_loaded
        assert handle.get() == "model"


# =============================================================================
# Test: BaseOCRBackend.recognize
# =============================================================================

class TestRecognize:
    """Tests for the async recognize contract."""

    @pytest.mark.unit
    def test_returns_result_and_reports_progress(self, make_backend, gradient_buffer):
        backend = make_backend(return_text="  Hello world \n", confidence=77.0)
        progress = []

        result = asyncio.run(
            backend.recognize(gradient_buffer, on_progress=lambda s, p: progress.append((s, p)))
        )

        assert result.text == "Hello world"
        assert result.confidence == 77.0
        assert progress == [("Recognizing text", 50), ("Done", 100)]
        assert backend.extract_calls == [gradient_buffer]

    @pytest.mark.unit
    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    def test_empty_text_is_no_text_found(self, make_backend, gradient_buffer, text):
        backend = make_backend(return_text=text)
        with pytest.raises(OCRError) as exc_info:
            asyncio.run(backend.recognize(gradient_buffer))
        assert exc_info.value.code == ErrorCode.OCR_NO_TEXT_FOUND

    @pytest.mark.unit
    def test_raw_errors_are_translated(self, make_backend, gradient_buffer):
        backend = make_backend(name="Flaky", error=ValueError("engine exploded"))
        with pytest.raises(OCRError) as exc_info:
            asyncio.run(backend.recognize(gradient_buffer))

        error = exc_info.value
        assert error.code == ErrorCode.OCR_PROCESSING_FAILED
        assert error.technical_details["method"] == "Flaky"
        assert isinstance(error.__cause__, ValueError)

    @pytest.mark.unit
    def test_memory_errors_are_translated(self, make_backend, gradient_buffer):
        backend = make_backend(error=MemoryError())
        with pytest.raises(OCRError) as exc_info:
            asyncio.run(backend.recognize(gradient_buffer))
        assert exc_info.value.code == ErrorCode.OUT_OF_MEMORY

    @pytest.mark.unit
    def test_ocr_errors_pass_through(self, make_backend, gradient_buffer):
        original = ErrorFactory.model_load_failed("trocr", "disk full")
        backend = make_backend(error=original)
        with pytest.raises(OCRError) as exc_info:
            asyncio.run(backend.recognize(gradient_buffer))
        assert exc_info.value is original

    @pytest.mark.unit
    @pytest.mark.parametrize("reported, expected", [(140.0, 100.0), (-3.0, 0.0)])
    def test_confidence_is_clamped(self, make_backend, gradient_buffer, reported, expected):
        backend = make_backend(confidence=reported)
        result = asyncio.run(backend.recognize(gradient_buffer))
        assert result.confidence == expected

    @pytest.mark.unit
    def test_repr(self, make_backend):
        assert repr(make_backend(name="X", available=False)) == "MockOCRBackend(name='X', unavailable)"


# =============================================================================
# Test: ModelBackedBackend
# =============================================================================

class TestModelBackedBackend:
    """Tests for the shared model handle."""

    @pytest.mark.unit
    def test_concurrent_first_calls_initialize_once(self, make_model_backend, gradient_buffer):
        backend = make_model_backend(load_delay=0.1)

        async def run_two():
            return await asyncio.gather(
                backend.recognize(gradient_buffer),
                backend.recognize(gradient_buffer),
            )

        first, second = asyncio.run(run_two())

        assert backend.load_count == 1
        assert first.metadata["handle"] == second.metadata["handle"]

    @pytest.mark.unit
    def test_dispose_then_reinitialize(self, make_model_backend, gradient_buffer):
        backend = make_model_backend()
        asyncio.run(backend.recognize(gradient_buffer))
        assert backend.is_loaded

        backend.dispose()
        assert not backend.is_loaded

        asyncio.run(backend.recognize(gradient_buffer))
        assert backend.load_count == 2

    @pytest.mark.unit
    def test_failed_load_surfaces_and_retries_next_call(self, make_model_backend, gradient_buffer):
        backend = make_model_backend(fail_loads=1)

        with pytest.raises(OCRError) as exc_info:
            asyncio.run(backend.recognize(gradient_buffer))
        assert exc_info.value.code == ErrorCode.MODEL_LOAD_FAILED
        assert not backend.is_loaded

        result = asyncio.run(backend.recognize(gradient_buffer))
        assert result.text == "Model text"
        assert backend.load_count == 2
