"""
OCR Error Taxonomy
==================

Closed set of failure codes and the factory that builds every ``OCRError``
raised by the pipeline. Each error carries a short user-facing message, a
non-empty list of suggestions, a recoverability flag, and technical details
meant for logs rather than for display.

Usage:
    from hybrid_ocr.errors import ErrorFactory, OCRError

    try:
        result = await processor.extract(image_file)
    except OCRError as e:
        print(e.user_message)
        for tip in e.suggestions:
            print(f"- {tip}")
"""

from enum import Enum
from typing import Any

from PIL import UnidentifiedImageError


class ErrorCode(str, Enum):
    """Machine-checkable failure codes."""

    # File-related errors
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    FILE_INVALID_TYPE = "FILE_INVALID_TYPE"
    FILE_CORRUPTED = "FILE_CORRUPTED"

    # OCR-related errors
    OCR_NO_TEXT_FOUND = "OCR_NO_TEXT_FOUND"
    OCR_LOW_QUALITY = "OCR_LOW_QUALITY"
    OCR_PROCESSING_FAILED = "OCR_PROCESSING_FAILED"
    OCR_TIMEOUT = "OCR_TIMEOUT"

    # Preprocessing errors
    PREPROCESSING_FAILED = "PREPROCESSING_FAILED"
    IMAGE_LOAD_FAILED = "IMAGE_LOAD_FAILED"

    # Model errors
    MODEL_LOAD_FAILED = "MODEL_LOAD_FAILED"
    NETWORK_ERROR = "NETWORK_ERROR"

    # System errors
    RUNTIME_NOT_SUPPORTED = "RUNTIME_NOT_SUPPORTED"
    OUT_OF_MEMORY = "OUT_OF_MEMORY"


class OCRError(Exception):
    """
    Typed failure raised by every stage of the extraction pipeline.

    Build instances through ``ErrorFactory``; the constructor only enforces
    that the user-facing contract is complete.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        user_message: str,
        suggestions: list[str],
        recoverable: bool,
        technical_details: Any = None,
    ):
        if not user_message:
            raise ValueError("OCRError requires a user_message")
        if not suggestions:
            raise ValueError("OCRError requires at least one suggestion")

        super().__init__(message)
        self.code = code
        self.message = message
        self.user_message = user_message
        self.suggestions = list(suggestions)
        self.recoverable = recoverable
        self.technical_details = technical_details

    def __str__(self) -> str:
        return f"OCRError [{self.code.value}]: {self.user_message}"

    def __repr__(self) -> str:
        return (
            f"OCRError(code={self.code.value!r}, message={self.message!r}, "
            f"recoverable={self.recoverable})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Serializable representation for logs and API responses."""
        return {
            "code": self.code.value,
            "message": self.message,
            "user_message": self.user_message,
            "suggestions": list(self.suggestions),
            "recoverable": self.recoverable,
            "technical_details": _jsonable(self.technical_details),
        }


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, OCRError):
        return value.to_dict()
    if isinstance(value, BaseException):
        return f"{type(value).__name__}: {value}"
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return str(value)


def _describe(error: Any) -> Any:
    """Reduce an arbitrary error to something worth keeping in details."""
    if isinstance(error, OCRError):
        return error.to_dict()
    if isinstance(error, BaseException):
        return f"{type(error).__name__}: {error}"
    return error


_NETWORK_MARKERS = ("network", "fetch", "connection", "timed out", "unreachable")
_MEMORY_MARKERS = ("out of memory", "memory", "cannot allocate")


class ErrorFactory:
    """Builds the appropriate ``OCRError`` for each failure situation."""

    @classmethod
    def file_too_large(cls, file_size: int, max_size: int) -> OCRError:
        return OCRError(
            code=ErrorCode.FILE_TOO_LARGE,
            message=f"File size {file_size} exceeds maximum {max_size}",
            user_message=(
                f"Image is too large ({file_size / 1024 / 1024:.1f}MB). "
                f"Maximum size is {max_size / 1024 / 1024:.0f}MB."
            ),
            suggestions=[
                "Compress the image before uploading",
                "Resize the image to a smaller resolution",
                "Convert to a more efficient format (e.g., JPEG)",
                "Crop the image to show only the text area",
            ],
            recoverable=True,
            technical_details={"file_size": file_size, "max_size": max_size},
        )

    @classmethod
    def invalid_file_type(cls, mime_type: str) -> OCRError:
        shown = mime_type or "unknown"
        return OCRError(
            code=ErrorCode.FILE_INVALID_TYPE,
            message=f"Invalid file type: {shown}",
            user_message=f"This file type ({shown}) is not supported.",
            suggestions=[
                "Please use PNG, JPEG, or WEBP images",
                "Convert your file to a supported image format",
                "Take a screenshot of the document if it's a PDF",
            ],
            recoverable=True,
            technical_details={"mime_type": mime_type},
        )

    @classmethod
    def file_corrupted(cls, error: Any = None) -> OCRError:
        return OCRError(
            code=ErrorCode.FILE_CORRUPTED,
            message="File appears to be corrupted or unreadable",
            user_message="The image file appears to be corrupted and cannot be read.",
            suggestions=[
                "Try uploading a different copy of the image",
                "Check if the file opens correctly in other applications",
                "Re-save or re-export the image",
            ],
            recoverable=False,
            technical_details=_describe(error),
        )

    @classmethod
    def no_text_found(cls, engine: str | None = None) -> OCRError:
        return OCRError(
            code=ErrorCode.OCR_NO_TEXT_FOUND,
            message="No readable text found in image",
            user_message="No text could be detected in the image.",
            suggestions=[
                "Ensure the image actually contains text",
                "Try a clearer or higher resolution image",
                "Make sure the text is not too small",
                "Check that the image is not blank",
            ],
            recoverable=False,
            technical_details={"engine": engine} if engine else None,
        )

    @classmethod
    def low_quality(cls, confidence: float, text_length: int | None = None) -> OCRError:
        return OCRError(
            code=ErrorCode.OCR_LOW_QUALITY,
            message=f"Low OCR confidence: {confidence:.0f}%",
            user_message=(
                f"Text extraction had low confidence ({confidence:.0f}%). "
                "Results may be inaccurate."
            ),
            suggestions=[
                "Try a higher resolution image",
                "Ensure better lighting in the photo",
                "Use a clearer image with better contrast",
                "Try straightening or rotating the image",
            ],
            recoverable=True,
            technical_details={"confidence": confidence, "text_length": text_length},
        )

    @classmethod
    def processing_failed(cls, method: str, error: Any = None) -> OCRError:
        return OCRError(
            code=ErrorCode.OCR_PROCESSING_FAILED,
            message=f"{method} processing failed",
            user_message="Text extraction failed. Please try again or use a different image.",
            suggestions=[
                "Try uploading the image again",
                "Try a different image format",
                "Check your internet connection (for first-time model loading)",
            ],
            recoverable=True,
            technical_details={"method": method, "error": _describe(error)},
        )

    @classmethod
    def preprocessing_failed(cls, stage: str, error: Any = None) -> OCRError:
        return OCRError(
            code=ErrorCode.PREPROCESSING_FAILED,
            message=f"Image preprocessing failed at stage '{stage}'",
            user_message="Failed to prepare the image for text extraction.",
            suggestions=[
                "The image might be in an unusual pixel format",
                "Try a simpler image without animations or layers",
                "Ensure the image is not corrupted",
            ],
            recoverable=True,
            technical_details={"stage": stage, "error": _describe(error)},
        )

    @classmethod
    def image_load_failed(cls, error: Any = None) -> OCRError:
        return OCRError(
            code=ErrorCode.IMAGE_LOAD_FAILED,
            message="Failed to load image",
            user_message="The image could not be loaded or decoded.",
            suggestions=[
                "Check if the image file is valid",
                "Try converting to PNG or JPEG format",
                "Make sure the image has non-zero dimensions",
            ],
            recoverable=True,
            technical_details=_describe(error),
        )

    @classmethod
    def model_load_failed(cls, model_name: str, error: Any = None) -> OCRError:
        return OCRError(
            code=ErrorCode.MODEL_LOAD_FAILED,
            message=f"Failed to load {model_name} model",
            user_message="Failed to load the AI model. This may be due to a network issue.",
            suggestions=[
                "Check your internet connection",
                "Try again in a few moments",
                "Clear the local model cache and try again",
            ],
            recoverable=True,
            technical_details={"model_name": model_name, "error": _describe(error)},
        )

    @classmethod
    def network_error(cls, error: Any = None) -> OCRError:
        return OCRError(
            code=ErrorCode.NETWORK_ERROR,
            message="Network error occurred",
            user_message="A network error occurred. Please check your internet connection.",
            suggestions=[
                "Check your internet connection",
                "Try again in a few moments",
                "Disable any VPN or proxy that might interfere",
            ],
            recoverable=True,
            technical_details=_describe(error),
        )

    @classmethod
    def runtime_not_supported(cls, feature: str) -> OCRError:
        return OCRError(
            code=ErrorCode.RUNTIME_NOT_SUPPORTED,
            message=f"Runtime does not support {feature}",
            user_message="This installation is missing a capability required for text extraction.",
            suggestions=[
                "Install the missing system dependency",
                "Upgrade Pillow to a build with PNG, JPEG and WEBP support",
                "Contact the service operator",
            ],
            recoverable=False,
            technical_details={"feature": feature},
        )

    @classmethod
    def out_of_memory(cls, error: Any = None) -> OCRError:
        return OCRError(
            code=ErrorCode.OUT_OF_MEMORY,
            message="Ran out of memory during processing",
            user_message="The image is too large to process with the available memory.",
            suggestions=[
                "Try a smaller image file",
                "Compress or downscale the image first",
                "Retry when fewer extractions are running",
            ],
            recoverable=True,
            technical_details=_describe(error),
        )

    @classmethod
    def timeout(cls, operation: str, timeout_seconds: float) -> OCRError:
        return OCRError(
            code=ErrorCode.OCR_TIMEOUT,
            message=f"{operation} timed out after {timeout_seconds:g}s",
            user_message="Text extraction took too long and was cancelled.",
            suggestions=[
                "Try a smaller or simpler image",
                "Check your internet connection",
                "Try again in a few moments",
            ],
            recoverable=True,
            technical_details={
                "operation": operation,
                "timeout_seconds": timeout_seconds,
                "timeout_ms": int(timeout_seconds * 1000),
            },
        )

    @classmethod
    def both_engines_failed(
        cls,
        fast_error: Any,
        accurate_error: Any,
        fast_confidence: float | None = None,
    ) -> OCRError:
        """Combined failure after the fast engine degraded and the accurate one failed."""
        if fast_error is not None and accurate_error is not None:
            user_message = (
                "We tried both our fast OCR and advanced AI methods, "
                "but couldn't extract text from this image."
            )
        else:
            user_message = "Failed to extract text from the image using both methods."

        return OCRError(
            code=ErrorCode.OCR_PROCESSING_FAILED,
            message="Both the fast and the accurate OCR engines failed",
            user_message=user_message,
            suggestions=[
                "Ensure the image contains visible, readable text",
                "Try a higher resolution or clearer image",
                "Check if the image is properly oriented (not upside down)",
                "Increase brightness if the image is too dark",
                "Make sure text isn't too small or blurry",
                "Check your internet connection (needed for first-time model download)",
            ],
            recoverable=True,
            technical_details={
                "fast_error": _describe(fast_error),
                "accurate_error": _describe(accurate_error),
                "fast_confidence": fast_confidence,
                "both_methods_attempted": True,
            },
        )

    @classmethod
    def from_error(cls, error: BaseException, context: str = "processing") -> OCRError:
        """Convert any exception to an ``OCRError``."""
        if isinstance(error, OCRError):
            return error

        if isinstance(error, MemoryError):
            return cls.out_of_memory(error)

        if isinstance(error, UnidentifiedImageError):
            return cls.file_corrupted(error)

        text = str(error).lower()

        if isinstance(error, ConnectionError) or any(m in text for m in _NETWORK_MARKERS):
            return cls.network_error(error)

        if any(m in text for m in _MEMORY_MARKERS):
            return cls.out_of_memory(error)

        if "not supported" in text:
            return cls.runtime_not_supported(context)

        return cls.processing_failed(context, error)
