"""
Input Validation
================

Pure checks applied to an uploaded image before any decode or engine work.
"""

import mimetypes
from dataclasses import dataclass
from pathlib import Path

from PIL import features

from .errors import ErrorFactory

MAX_FILE_SIZE_MB = 20
MAX_FILE_SIZE_BYTES = MAX_FILE_SIZE_MB * 1024 * 1024

# image/jpg is a common non-standard alias for JPEG
ALLOWED_MIME_TYPES = frozenset({"image/png", "image/jpeg", "image/jpg", "image/webp"})


@dataclass(frozen=True)
class ImageFile:
    """Raw image bytes plus the MIME type declared by the caller."""

    data: bytes
    mime_type: str
    name: str = "image"

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_path(cls, path: Path | str, mime_type: str | None = None) -> "ImageFile":
        """Read an image from disk, guessing the MIME type from the suffix."""
        path = Path(path)
        if mime_type is None:
            mime_type = mimetypes.guess_type(path.name)[0] or ""
        return cls(data=path.read_bytes(), mime_type=mime_type, name=path.name)


def normalize_mime_type(mime_type: str | None) -> str:
    """Lower-case and strip parameters (``image/PNG; q=1`` -> ``image/png``)."""
    if not mime_type:
        return ""
    return mime_type.split(";", 1)[0].strip().lower()


def validate_file(
    file: ImageFile,
    max_size_bytes: int = MAX_FILE_SIZE_BYTES,
) -> None:
    """
    Validate size and type of an uploaded image.

    Raises:
        OCRError: FILE_TOO_LARGE or FILE_INVALID_TYPE
    """
    if file.size > max_size_bytes:
        raise ErrorFactory.file_too_large(file.size, max_size_bytes)

    if normalize_mime_type(file.mime_type) not in ALLOWED_MIME_TYPES:
        raise ErrorFactory.invalid_file_type(file.mime_type)


def check_runtime_support() -> None:
    """
    Verify that this Pillow build can decode every accepted format.

    Raises:
        OCRError: RUNTIME_NOT_SUPPORTED naming the missing codec
    """
    for codec in ("zlib", "jpg"):
        if not features.check_codec(codec):
            raise ErrorFactory.runtime_not_supported(f"Pillow {codec} codec")
    if not features.check_module("webp"):
        raise ErrorFactory.runtime_not_supported("Pillow WEBP support")
