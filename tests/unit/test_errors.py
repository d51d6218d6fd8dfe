"""
Unit Tests for the OCR Error Taxonomy

Test Coverage:
- ErrorCode closed set
- OCRError contract (user message, suggestions, serialization)
- ErrorFactory constructors
- ErrorFactory.from_error classification
"""

import json

import pytest
from PIL import UnidentifiedImageError

from hybrid_ocr.errors import ErrorCode, ErrorFactory, OCRError


# =============================================================================
# Test: ErrorCode
# =============================================================================

class TestErrorCode:
    """Tests for the ErrorCode enum."""

    @pytest.mark.unit
    def test_closed_set(self):
        """Exactly the thirteen documented codes exist."""
        assert {code.value for code in ErrorCode} == {
            "FILE_TOO_LARGE",
            "FILE_INVALID_TYPE",
            "FILE_CORRUPTED",
            "OCR_NO_TEXT_FOUND",
            "OCR_LOW_QUALITY",
            "OCR_PROCESSING_FAILED",
            "OCR_TIMEOUT",
            "PREPROCESSING_FAILED",
            "IMAGE_LOAD_FAILED",
            "MODEL_LOAD_FAILED",
            "NETWORK_ERROR",
            "RUNTIME_NOT_SUPPORTED",
            "OUT_OF_MEMORY",
        }

    @pytest.mark.unit
    def test_codes_compare_as_strings(self):
        assert ErrorCode.OCR_TIMEOUT == "OCR_TIMEOUT"


# =============================================================================
# Test: OCRError
# =============================================================================

class TestOCRError:
    """Tests for the OCRError exception."""

    @pytest.mark.unit
    def test_is_exception(self):
        error = ErrorFactory.no_text_found()
        assert isinstance(error, Exception)
        with pytest.raises(OCRError):
            raise error

    @pytest.mark.unit
    def test_str_shows_code_and_user_message(self):
        error = ErrorFactory.invalid_file_type("text/plain")
        assert "FILE_INVALID_TYPE" in str(error)
        assert error.user_message in str(error)

    @pytest.mark.unit
    def test_rejects_empty_suggestions(self):
        with pytest.raises(ValueError):
            OCRError(
                code=ErrorCode.OCR_TIMEOUT,
                message="timeout",
                user_message="Took too long",
                suggestions=[],
                recoverable=True,
            )

    @pytest.mark.unit
    def test_rejects_empty_user_message(self):
        with pytest.raises(ValueError):
            OCRError(
                code=ErrorCode.OCR_TIMEOUT,
                message="timeout",
                user_message="",
                suggestions=["Try again"],
                recoverable=True,
            )

    @pytest.mark.unit
    def test_to_dict_is_json_serializable(self):
        inner = ErrorFactory.timeout("Tesseract OCR", 60)
        error = ErrorFactory.both_engines_failed(inner, RuntimeError("boom"), 42.0)

        data = error.to_dict()
        json.dumps(data)

        assert data["code"] == "OCR_PROCESSING_FAILED"
        assert data["recoverable"] is True
        assert data["suggestions"]
        assert data["technical_details"]["fast_error"]["code"] == "OCR_TIMEOUT"
        assert "boom" in data["technical_details"]["accurate_error"]


# =============================================================================
# Test: ErrorFactory
# =============================================================================

class TestErrorFactory:
    """Tests for ErrorFactory constructors."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "error, code, recoverable",
        [
            (ErrorFactory.file_too_large(25 * 1024 * 1024, 20 * 1024 * 1024), ErrorCode.FILE_TOO_LARGE, True),
            (ErrorFactory.invalid_file_type("text/plain"), ErrorCode.FILE_INVALID_TYPE, True),
            (ErrorFactory.file_corrupted(), ErrorCode.FILE_CORRUPTED, False),
            (ErrorFactory.no_text_found("Tesseract"), ErrorCode.OCR_NO_TEXT_FOUND, False),
            (ErrorFactory.low_quality(30.0, 2), ErrorCode.OCR_LOW_QUALITY, True),
            (ErrorFactory.processing_failed("Tesseract"), ErrorCode.OCR_PROCESSING_FAILED, True),
            (ErrorFactory.timeout("op", 1.5), ErrorCode.OCR_TIMEOUT, True),
            (ErrorFactory.preprocessing_failed("sharpen"), ErrorCode.PREPROCESSING_FAILED, True),
            (ErrorFactory.image_load_failed(), ErrorCode.IMAGE_LOAD_FAILED, True),
            (ErrorFactory.model_load_failed("trocr"), ErrorCode.MODEL_LOAD_FAILED, True),
            (ErrorFactory.network_error(), ErrorCode.NETWORK_ERROR, True),
            (ErrorFactory.runtime_not_supported("webp"), ErrorCode.RUNTIME_NOT_SUPPORTED, False),
            (ErrorFactory.out_of_memory(), ErrorCode.OUT_OF_MEMORY, True),
        ],
    )
    def test_code_and_recoverability(self, error, code, recoverable):
        """Every constructor sets its code, recoverability and a user-facing message."""
        assert error.code == code
        assert error.recoverable is recoverable
        assert error.user_message
        assert len(error.suggestions) >= 1

    @pytest.mark.unit
    def test_file_too_large_message_in_megabytes(self):
        error = ErrorFactory.file_too_large(22 * 1024 * 1024, 20 * 1024 * 1024)
        assert "22.0MB" in error.user_message
        assert "20MB" in error.user_message

    @pytest.mark.unit
    def test_timeout_details(self):
        error = ErrorFactory.timeout("TrOCR OCR", 120)
        assert error.technical_details == {
            "operation": "TrOCR OCR",
            "timeout_seconds": 120,
            "timeout_ms": 120000,
        }

    @pytest.mark.unit
    def test_both_engines_failed_keeps_both_causes(self):
        fast = ErrorFactory.timeout("Tesseract OCR", 60)
        accurate = ErrorFactory.model_load_failed("trocr", "no network")

        error = ErrorFactory.both_engines_failed(fast, accurate, fast_confidence=None)

        assert error.code == ErrorCode.OCR_PROCESSING_FAILED
        assert error.technical_details["fast_error"]["code"] == "OCR_TIMEOUT"
        assert error.technical_details["accurate_error"]["code"] == "MODEL_LOAD_FAILED"
        assert error.technical_details["both_methods_attempted"] is True


# =============================================================================
# Test: ErrorFactory.from_error
# =============================================================================

class TestFromError:
    """Tests for classification of arbitrary exceptions."""

    @pytest.mark.unit
    def test_ocr_error_passes_through(self):
        original = ErrorFactory.no_text_found()
        assert ErrorFactory.from_error(original) is original

    @pytest.mark.unit
    def test_memory_error(self):
        assert ErrorFactory.from_error(MemoryError()).code == ErrorCode.OUT_OF_MEMORY

    @pytest.mark.unit
    def test_unidentified_image(self):
        error = ErrorFactory.from_error(UnidentifiedImageError("cannot identify"))
        assert error.code == ErrorCode.FILE_CORRUPTED

    @pytest.mark.unit
    def test_connection_error(self):
        assert ErrorFactory.from_error(ConnectionError("reset")).code == ErrorCode.NETWORK_ERROR

    @pytest.mark.unit
    def test_network_message(self):
        error = ErrorFactory.from_error(RuntimeError("Failed to fetch model weights"))
        assert error.code == ErrorCode.NETWORK_ERROR

    @pytest.mark.unit
    def test_memory_message(self):
        error = ErrorFactory.from_error(RuntimeError("CUDA out of memory"))
        assert error.code == ErrorCode.OUT_OF_MEMORY

    @pytest.mark.unit
    def test_not_supported_message(self):
        error = ErrorFactory.from_error(RuntimeError("operation not supported"), "TrOCR")
        assert error.code == ErrorCode.RUNTIME_NOT_SUPPORTED

    @pytest.mark.unit
    def test_unclassified(self):
        error = ErrorFactory.from_error(ValueError("bad shape"), "Tesseract")
        assert error.code == ErrorCode.OCR_PROCESSING_FAILED
        assert error.technical_details["method"] == "Tesseract"
        assert "bad shape" in error.technical_details["error"]
